"""
Provider response parsing.

Turns raw model text into a ProviderAnalysis. Out-of-range values are
clamped rather than rejected, and text with no usable JSON yields a fixed
fallback analysis so one malformed reply never sinks the ensemble.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from models import BREAKDOWN_DIMENSIONS, Issue, ProviderAnalysis, ScoreBreakdown
from utils.parsing.json import repair_and_parse_json

logger = logging.getLogger(__name__)

MAX_PROVIDER_ISSUES = 5
MAX_QUICK_WINS = 3
DEFAULT_SCORE = 5
DEFAULT_SUBSCORE = 1
IMPACTS = ("high", "medium", "low")

FALLBACK_ROAST = (
    "This landing page has potential, but I had trouble analyzing it properly. "
    "Try a different URL or check if the page is accessible."
)
FALLBACK_ISSUE = Issue(
    issue="Unable to analyze page",
    location="General",
    impact="medium",
    fix="Ensure the page is publicly accessible and properly loaded",
)
FALLBACK_QUICK_WINS = [
    "Check page accessibility",
    "Verify page loads correctly",
    "Try again in a few minutes",
]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_int(value: Any, low: int, high: int, default: int) -> int:
    """Coerce a model-supplied number into [low, high], or the default if unusable"""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(low, min(high, round_half_up(number)))


def _coerce_issue(raw: Any) -> Optional[Issue]:
    if not isinstance(raw, dict):
        return None
    text = str(raw.get("issue") or "").strip()
    if not text:
        return None

    impact = str(raw.get("impact") or "").strip().lower()
    if impact not in IMPACTS:
        impact = "medium"

    return Issue(
        issue=text,
        location=str(raw.get("location") or "General").strip(),
        impact=impact,
        fix=str(raw.get("fix") or "").strip(),
    )


def _coerce_issues(raw: Any) -> List[Issue]:
    if not isinstance(raw, list):
        return []
    issues = [issue for issue in (_coerce_issue(item) for item in raw) if issue]
    return issues[:MAX_PROVIDER_ISSUES]


def _coerce_quick_wins(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    wins = [str(item).strip() for item in raw if isinstance(item, (str, int, float))]
    return [win for win in wins if win][:MAX_QUICK_WINS]


def _coerce_breakdown(raw: Any) -> ScoreBreakdown:
    raw = raw if isinstance(raw, dict) else {}
    return ScoreBreakdown(
        **{
            dimension: clamp_int(raw.get(dimension), 0, 2, DEFAULT_SUBSCORE)
            for dimension in BREAKDOWN_DIMENSIONS
        }
    )


def fallback_analysis(provider_name: str, weight: float) -> ProviderAnalysis:
    """Neutral analysis used when a provider's reply cannot be parsed at all"""
    return ProviderAnalysis(
        provider_name=provider_name,
        weight=weight,
        roast=FALLBACK_ROAST,
        score=DEFAULT_SCORE,
        breakdown=ScoreBreakdown(),
        issues=[FALLBACK_ISSUE],
        quick_wins=list(FALLBACK_QUICK_WINS),
    )


def parse_provider_response(content: str, provider_name: str, weight: float) -> ProviderAnalysis:
    """
    Parse one provider's raw reply into the shared analysis schema.

    Args:
        content: Raw model text, possibly wrapped in prose or code fences
        provider_name: Name recorded on the analysis
        weight: Provider's ensembling weight

    Returns:
        A clamped ProviderAnalysis, or the fallback analysis when no JSON
        object can be recovered from the text
    """
    try:
        parsed: Dict[str, Any] = repair_and_parse_json(content)
    except ValueError as e:
        logger.warning(f"⚠️  {provider_name}: unparseable response, using fallback ({e})")
        return fallback_analysis(provider_name, weight)

    roast = str(parsed.get("roast") or "").strip() or "Unable to generate roast"
    quick_wins = parsed.get("quickWins", parsed.get("quick_wins"))

    return ProviderAnalysis(
        provider_name=provider_name,
        weight=weight,
        roast=roast,
        score=clamp_int(parsed.get("score"), 1, 10, DEFAULT_SCORE),
        breakdown=_coerce_breakdown(parsed.get("breakdown")),
        issues=_coerce_issues(parsed.get("issues")),
        quick_wins=_coerce_quick_wins(quick_wins),
    )
