from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Impact = Literal["high", "medium", "low"]


class ContractModel(BaseModel):
    """Base for every JSON contract: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# Analysis models
class Issue(ContractModel):
    issue: str
    location: str
    impact: Impact
    fix: str


class ScoreBreakdown(ContractModel):
    headline: int = Field(default=1, ge=0, le=2)
    trust: int = Field(default=1, ge=0, le=2)
    visual: int = Field(default=1, ge=0, le=2)
    cta: int = Field(default=1, ge=0, le=2)
    speed: int = Field(default=1, ge=0, le=2)


BREAKDOWN_DIMENSIONS = ("headline", "trust", "visual", "cta", "speed")


class ProviderAnalysis(ContractModel):
    provider_name: str
    weight: float = Field(gt=0, le=1)
    roast: str
    score: int = Field(ge=1, le=10)
    breakdown: ScoreBreakdown
    issues: List[Issue] = Field(default_factory=list, max_length=5)
    quick_wins: List[str] = Field(default_factory=list, max_length=3)


class EnsembleResult(ContractModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    roast: str
    score: int = Field(ge=1, le=10)
    breakdown: ScoreBreakdown
    issues: List[Issue] = Field(default_factory=list, max_length=4)
    quick_wins: List[str] = Field(default_factory=list, max_length=3)
    model_agreement: float = Field(ge=0, le=1)
    providers_used: List[str] = Field(default_factory=list)


# Capture models
class PerformanceMetrics(ContractModel):
    load_time_ms: float = 0
    dom_ready_ms: float = 0
    first_paint_ms: float = 0
    resource_count: int = 0


@dataclass(frozen=True)
class CaptureResult:
    desktop_image: bytes
    mobile_image: bytes
    metrics: PerformanceMetrics


class ScreenshotJob(ContractModel):
    """Message body published for the screenshot worker."""

    job_id: str
    url: str
    roast_id: str
    timestamp: int


# Roast request / result contracts
class RoastStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RoastRequest(ContractModel):
    url: str
    force_refresh: bool = False
    options: Optional[Dict[str, Any]] = None


class RoastResult(ContractModel):
    id: str
    url: str
    roast: str
    score: int
    breakdown: ScoreBreakdown
    issues: List[Issue]
    quick_wins: List[str]
    desktop_screenshot_url: str
    mobile_screenshot_url: str
    share_card_url: str
    model_agreement: float
    timestamp: int
    metrics: Optional[PerformanceMetrics] = None
    cached: bool = False
    processing_time_ms: Optional[int] = None


class RoastAccepted(ContractModel):
    roast_id: str
    job_id: str
    url: str
    status: RoastStatus = RoastStatus.PROCESSING
    cached: bool = False


class RoastRecord(ContractModel):
    """Row of the durable roast store as seen by the pipeline."""

    id: str
    url: str
    status: RoastStatus
    result: Optional[RoastResult] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class CacheStats(ContractModel):
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    total_bytes: int = 0
