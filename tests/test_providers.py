"""Tests for the provider roster and the worker's timing checks."""

import json

import pytest

from analyzer.providers import build_default_providers, vendor_provider
from config import Settings
from worker import check_timing_budget


def test_roster_order_and_weights():
    config = Settings(OPENAI_API_KEY="sk-1", ANTHROPIC_API_KEY="sk-2", GEMINI_API_KEY="g-3")

    providers = build_default_providers(config)

    assert [(p.name, p.weight) for p in providers] == [("gpt", 0.5), ("claude", 0.3), ("gemini", 0.2)]


def test_vendors_without_keys_are_skipped():
    config = Settings(
        OPENAI_API_KEY="",
        ANTHROPIC_API_KEY="sk-2",
        GEMINI_API_KEY="",
        GEMINI_API_KEYS='["g-1", "g-2"]',
        OPENAI_API_KEYS=None,
    )

    assert [p.name for p in build_default_providers(config)] == ["claude", "gemini"]


@pytest.mark.asyncio
async def test_vendor_provider_parses_raw_model_text():
    seen = {}

    async def fake_call(prompt, image_url, config):
        seen["prompt"] = prompt
        seen["image_url"] = image_url
        return "```json\n" + json.dumps({"roast": "Bland.", "score": 4, "quickWins": ["Add color"]}) + "\n```"

    provider = vendor_provider("claude", 0.3, fake_call)
    analysis = await provider.analyze("https://cdn.example.com/roast-1/desktop.jpg")

    assert seen["image_url"] == "https://cdn.example.com/roast-1/desktop.jpg"
    assert "RoastMaster" in seen["prompt"]
    assert analysis.provider_name == "claude"
    assert analysis.weight == 0.3
    assert analysis.score == 4
    assert analysis.quick_wins == ["Add color"]


def test_default_timing_budget_is_consistent():
    config = Settings()
    assert config.worst_case_capture_seconds == 102
    assert config.worst_case_job_seconds == 117
    assert check_timing_budget(config) is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"QUEUE_VISIBILITY_TIMEOUT": 120, "QUEUE_HANDLER_TIMEOUT": 150},
        {"QUEUE_HANDLER_TIMEOUT": 60},
        {"NAVIGATION_ATTEMPTS": 5},
        {"QUEUE_WAIT_TIME_SECONDS": 30},
    ],
)
def test_inconsistent_timing_is_flagged(overrides):
    assert check_timing_budget(Settings(**overrides)) is False


def test_queue_broker_falls_back_to_redis_url():
    assert Settings(REDIS_URL="redis://cache:6379/1").queue_broker == "redis://cache:6379/1"
    assert Settings(QUEUE_BROKER_URL="sqs://").queue_broker == "sqs://"
