"""Tests for provider response parsing and clamping."""

import json

import pytest

from analyzer.responses import (
    FALLBACK_QUICK_WINS,
    FALLBACK_ROAST,
    clamp_int,
    parse_provider_response,
)


def _payload(**overrides) -> str:
    body = {
        "roast": "The hero image looks like a stock photo graveyard.",
        "score": 6,
        "breakdown": {"headline": 1, "trust": 2, "visual": 1, "cta": 0, "speed": 2},
        "issues": [
            {"issue": "No social proof", "location": "Hero", "impact": "high", "fix": "Add logos"}
        ],
        "quickWins": ["Add testimonials"],
    }
    body.update(overrides)
    return json.dumps(body)


def test_parses_well_formed_response():
    analysis = parse_provider_response(_payload(), "gpt", 0.5)

    assert analysis.provider_name == "gpt"
    assert analysis.weight == 0.5
    assert analysis.score == 6
    assert analysis.breakdown.trust == 2
    assert analysis.issues[0].issue == "No social proof"
    assert analysis.quick_wins == ["Add testimonials"]


def test_tolerates_prose_and_code_fences():
    content = f"Sure! Here's the roast:\n```json\n{_payload()}\n```\nEnjoy."
    assert parse_provider_response(content, "claude", 0.3).score == 6


@pytest.mark.parametrize(
    "raw,expected", [(15, 10), (0, 1), (-3, 1), ("7", 7), (6.5, 7), (None, 5), ("bad", 5), (True, 5)]
)
def test_score_is_clamped_to_one_through_ten(raw, expected):
    assert parse_provider_response(_payload(score=raw), "gpt", 0.5).score == expected


def test_breakdown_is_clamped_and_defaulted():
    content = _payload(breakdown={"headline": 5, "trust": -1, "visual": "x"})
    breakdown = parse_provider_response(content, "gpt", 0.5).breakdown

    assert breakdown.headline == 2
    assert breakdown.trust == 0
    assert breakdown.visual == 1
    assert breakdown.cta == 1
    assert breakdown.speed == 1


def test_issues_and_quick_wins_are_capped():
    issues = [
        {"issue": f"Issue {i}", "location": "Body", "impact": "low", "fix": "Fix"} for i in range(8)
    ]
    content = _payload(issues=issues, quickWins=["a", "b", "c", "d", "e"])
    analysis = parse_provider_response(content, "gpt", 0.5)

    assert len(analysis.issues) == 5
    assert analysis.quick_wins == ["a", "b", "c"]


def test_malformed_issue_entries_are_dropped_or_normalized():
    issues = ["just a string", {"location": "Footer"}, {"issue": "Slow", "impact": "CRITICAL"}]
    analysis = parse_provider_response(_payload(issues=issues), "gpt", 0.5)

    assert len(analysis.issues) == 1
    assert analysis.issues[0].impact == "medium"
    assert analysis.issues[0].location == "General"


def test_accepts_snake_case_quick_wins():
    content = json.dumps({"roast": "Meh.", "score": 4, "quick_wins": ["Shorter form"]})
    assert parse_provider_response(content, "gemini", 0.2).quick_wins == ["Shorter form"]


@pytest.mark.parametrize("content", ["", "I cannot help with that.", "{not json at all"])
def test_unparseable_response_yields_fallback(content):
    analysis = parse_provider_response(content, "gemini", 0.2)

    assert analysis.roast == FALLBACK_ROAST
    assert analysis.score == 5
    assert analysis.breakdown.model_dump() == {
        "headline": 1,
        "trust": 1,
        "visual": 1,
        "cta": 1,
        "speed": 1,
    }
    assert [issue.issue for issue in analysis.issues] == ["Unable to analyze page"]
    assert analysis.quick_wins == FALLBACK_QUICK_WINS
    assert analysis.provider_name == "gemini"


def test_clamp_int_rejects_non_finite():
    assert clamp_int(float("nan"), 1, 10, 5) == 5
    assert clamp_int(float("inf"), 1, 10, 5) == 5
