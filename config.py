"""
Centralized configuration for the Roast Engine
All environment variables and settings are defined here
"""

import json
import logging
import random
import sys
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Provides centralized configuration with validation and defaults.
    """

    # ======================
    # AI Provider Configuration
    # ======================
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_API_KEYS: Optional[str] = Field(
        default=None,
        description="JSON list of OpenAI keys rotated per request"
    )
    OPENAI_MODEL: str = Field(default="gpt-4o", description="OpenAI vision model")
    OPENAI_WEIGHT: float = Field(default=0.5, description="Ensemble weight for OpenAI")

    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    ANTHROPIC_API_KEYS: Optional[str] = Field(
        default=None,
        description="JSON list of Anthropic keys rotated per request"
    )
    ANTHROPIC_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model to use for analysis"
    )
    ANTHROPIC_WEIGHT: float = Field(default=0.3, description="Ensemble weight for Claude")

    GEMINI_API_KEY: str = Field(default="", description="Google Gemini API key")
    GEMINI_API_KEYS: Optional[str] = Field(
        default=None,
        description="JSON list of Gemini keys rotated per request"
    )
    GEMINI_MODEL: str = Field(default="gemini-1.5-flash", description="Gemini vision model")
    GEMINI_WEIGHT: float = Field(default=0.2, description="Ensemble weight for Gemini")

    PROVIDER_TIMEOUT: float = Field(
        default=15.0,
        description="Per-provider timeout in seconds"
    )
    PROVIDER_MAX_TOKENS: int = Field(default=1500, description="Max tokens per provider response")
    PROVIDER_TEMPERATURE: float = Field(default=0.7, description="Sampling temperature")
    ENSEMBLE_ISSUE_CAP: int = Field(default=4, description="Max issues kept after ensembling")
    ENSEMBLE_CACHE_TTL: int = Field(
        default=3600,
        description="Seconds an ensemble result is reused for the same image URL"
    )

    # ======================
    # Cache Configuration
    # ======================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    CACHE_BACKEND: str = Field(
        default="redis",
        description="Cache backend: 'redis' (tiered) or 'dynamodb' (single TTL)"
    )
    CACHE_HOT_TTL: int = Field(default=300, description="HOT tier TTL in seconds")
    CACHE_WARM_TTL: int = Field(default=3600, description="WARM tier TTL in seconds")
    CACHE_COLD_TTL: int = Field(default=86400, description="COLD tier TTL in seconds")
    CACHE_SCAN_COUNT: int = Field(
        default=100,
        description="SCAN batch size used by pattern invalidation"
    )
    CACHE_TABLE_NAME: str = Field(default="roast_cache", description="DynamoDB cache table")
    CACHE_DYNAMODB_TTL: int = Field(
        default=3600,
        description="Flat TTL used by the DynamoDB cache backend"
    )

    # ======================
    # Queue Configuration
    # ======================
    QUEUE_BROKER_URL: Optional[str] = Field(
        default=None,
        description="Kombu broker URL (defaults to REDIS_URL, use sqs:// in production)"
    )
    QUEUE_NAME: str = Field(default="screenshot-jobs", description="Screenshot job queue name")
    QUEUE_VISIBILITY_TIMEOUT: int = Field(
        default=180,
        description="Seconds a received message stays invisible before redelivery"
    )
    QUEUE_WAIT_TIME_SECONDS: int = Field(default=20, description="Long-poll wait time")
    QUEUE_CONCURRENCY: int = Field(default=3, description="Max jobs processed concurrently")
    QUEUE_HANDLER_TIMEOUT: int = Field(
        default=150,
        description="Seconds a single job may run before it is abandoned"
    )

    # ======================
    # Rate Limiting
    # ======================
    RATE_LIMIT_REQUESTS: int = Field(
        default=3,
        description="Roast requests allowed per client IP in one window (0 disables)"
    )
    RATE_LIMIT_WINDOW: int = Field(default=86400, description="Rate limit window in seconds")

    # ======================
    # Browser / Capture Configuration
    # ======================
    DESKTOP_VIEWPORT_WIDTH: int = Field(default=1440, description="Desktop viewport width")
    DESKTOP_VIEWPORT_HEIGHT: int = Field(default=900, description="Desktop viewport height")
    MOBILE_VIEWPORT_WIDTH: int = Field(default=375, description="Mobile viewport width")
    MOBILE_VIEWPORT_HEIGHT: int = Field(default=812, description="Mobile viewport height")
    DEVICE_SCALE_FACTOR: float = Field(default=2, description="Device pixel ratio")
    BROWSER_USER_AGENT: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 RoastMyLanding/1.0"
        ),
        description="User agent for capture contexts"
    )
    BROWSER_LAUNCH_TIMEOUT: int = Field(
        default=20,
        description="Timeout for launching browser in seconds"
    )
    NAVIGATION_ATTEMPTS: int = Field(default=3, description="Navigation attempts per capture")
    NAVIGATION_TIMEOUT_MS: int = Field(default=30000, description="Per-attempt navigation timeout")
    NAVIGATION_BACKOFF_MS: int = Field(
        default=2000,
        description="Backoff unit; wait is unit x attempt number"
    )
    LOAD_FALLBACK_MS: int = Field(
        default=5000,
        description="Max wait for the load event after DOM content loaded"
    )
    MOBILE_SETTLE_MS: int = Field(default=1000, description="Reflow delay after viewport resize")
    SCREENSHOT_QUALITY: int = Field(default=85, description="JPEG quality of raw captures")

    # ======================
    # Storage / Records / Metrics
    # ======================
    S3_BUCKET: str = Field(default="roastmylanding-screenshots", description="Screenshot bucket")
    AWS_REGION: str = Field(default="us-east-1", description="AWS region")
    PUBLIC_ASSET_BASE_URL: Optional[str] = Field(
        default=None,
        description="CDN base URL for uploaded assets (defaults to the bucket URL)"
    )
    SUPABASE_URL: Optional[str] = Field(default=None, description="Supabase project URL")
    SUPABASE_KEY: Optional[str] = Field(default=None, description="Supabase service key")
    METRICS_BACKEND: str = Field(default="log", description="'log' or 'cloudwatch'")
    METRICS_NAMESPACE: str = Field(
        default="RoastMyLanding/Screenshots",
        description="CloudWatch namespace"
    )

    # ======================
    # Logging Configuration
    # ======================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    @property
    def queue_broker(self) -> str:
        """Get queue broker URL, defaulting to REDIS_URL if not set"""
        return self.QUEUE_BROKER_URL or self.REDIS_URL

    @property
    def public_asset_base_url(self) -> str:
        if self.PUBLIC_ASSET_BASE_URL:
            return self.PUBLIC_ASSET_BASE_URL.rstrip("/")
        return f"https://{self.S3_BUCKET}.s3.amazonaws.com"

    @property
    def worst_case_capture_seconds(self) -> float:
        """
        Upper bound of one capture: every navigation attempt timing out, the
        linear backoff between attempts, the load-event fallback and the
        mobile settle delay.
        """
        attempts = self.NAVIGATION_ATTEMPTS
        navigation = attempts * self.NAVIGATION_TIMEOUT_MS
        backoff = sum(self.NAVIGATION_BACKOFF_MS * n for n in range(1, attempts))
        total_ms = navigation + backoff + self.LOAD_FALLBACK_MS + self.MOBILE_SETTLE_MS
        return total_ms / 1000

    @property
    def worst_case_job_seconds(self) -> float:
        """Capture bound plus the ensemble's provider timeout"""
        return self.worst_case_capture_seconds + self.PROVIDER_TIMEOUT

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars in .env file


# Global settings instance
settings = Settings()


# ======================
# Convenience Functions
# ======================

def get_rotating_api_key(vendor: str, config: Optional[Settings] = None) -> str:
    """
    Pick an API key for a vendor.

    A JSON list in ``{VENDOR}_API_KEYS`` spreads load across several keys;
    otherwise the single ``{VENDOR}_API_KEY`` is used.
    """
    config = config or settings
    raw_keys = getattr(config, f"{vendor}_API_KEYS", None)
    if raw_keys:
        try:
            keys: List[str] = json.loads(raw_keys)
        except json.JSONDecodeError:
            logging.getLogger(__name__).warning(
                f"⚠️  {vendor}_API_KEYS is not a JSON list, using {vendor}_API_KEY"
            )
            keys = []
        if keys:
            return random.choice(keys)
    return getattr(config, f"{vendor}_API_KEY", "")


def configure_logging(level: Optional[str] = None):
    """Configure root logging once for API and worker processes"""
    level = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()
    root.setLevel(level)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)
