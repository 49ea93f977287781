"""
Multi-model ensemble for landing page roasts.

Every provider in the roster analyzes the same screenshot concurrently, each
under its own timeout. Providers that fail or time out are dropped; the
survivors are reconciled into one EnsembleResult:

- score and breakdown are weight-averaged and rounded half-up
- the roast text with the best quality x weight product wins
- issues are deduplicated by (issue, location), ordered by impact and capped
- quick wins are unioned in first-seen order and capped
- model agreement falls linearly with the spread of the raw scores
"""

import asyncio
import logging
import statistics
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from analyzer.providers import Provider
from analyzer.responses import round_half_up
from config import settings
from models import BREAKDOWN_DIMENSIONS, EnsembleResult, Issue, ProviderAnalysis, ScoreBreakdown
from utils.concurrency import race_with_timeout

logger = logging.getLogger(__name__)

SPECIFICITY_WORDS = ("color", "button", "headline", "text", "image", "layout", "font", "size")
ANALOGY_WORDS = ("like", "looks", "seems", "reminds", "as if")
IMPACT_RANK = {"high": 0, "medium": 1, "low": 2}
MAX_QUICK_WINS = 3


class AllProvidersFailedError(RuntimeError):
    """Raised when no provider produced an analysis"""

    def __init__(self, failures: Dict[str, str]):
        self.failures = failures
        detail = "; ".join(f"{name}: {reason}" for name, reason in failures.items())
        super().__init__(f"All AI providers failed ({detail or 'no providers configured'})")


def score_roast_quality(roast: str) -> float:
    """Length signal plus specificity and analogy keyword hits"""
    lowered = roast.lower()
    score = min(len(roast) / 20, 10)
    score += sum(1 for word in SPECIFICITY_WORDS if word in lowered)
    score += 0.5 * sum(1 for word in ANALOGY_WORDS if word in lowered)
    return score


def weighted_round(values: Sequence[float], weights: Sequence[float]) -> int:
    total_weight = sum(weights)
    weighted = sum(value * weight for value, weight in zip(values, weights))
    return round_half_up(weighted / total_weight)


def select_best_roast(analyses: Sequence[ProviderAnalysis]) -> str:
    # max() keeps the first of equal candidates, so ties go to roster order
    best = max(analyses, key=lambda a: score_roast_quality(a.roast) * a.weight)
    return best.roast


def deduplicate_issues(issues: Sequence[Issue], cap: int) -> List[Issue]:
    seen = set()
    unique = []
    for issue in issues:
        key = (issue.issue, issue.location)
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)

    unique.sort(key=lambda issue: IMPACT_RANK[issue.impact])
    return unique[:cap]


def merge_quick_wins(groups: Sequence[Sequence[str]], cap: int = MAX_QUICK_WINS) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for win in group:
            if win not in merged:
                merged.append(win)
    return merged[:cap]


def calculate_agreement(scores: Sequence[float]) -> float:
    if len(scores) < 2:
        return 1.0
    return max(0.0, 1 - statistics.pstdev(scores) / 5)


def ensemble_results(
    analyses: Sequence[ProviderAnalysis], issue_cap: Optional[int] = None
) -> EnsembleResult:
    """
    Reconcile one or more provider analyses into a single result.

    Deterministic for a given list (order matters only for tie-breaks).

    Raises:
        ValueError: If ``analyses`` is empty
    """
    if not analyses:
        raise ValueError("Cannot ensemble an empty set of analyses")

    issue_cap = issue_cap if issue_cap is not None else settings.ENSEMBLE_ISSUE_CAP
    weights = [analysis.weight for analysis in analyses]

    score = weighted_round([a.score for a in analyses], weights)
    breakdown = ScoreBreakdown(
        **{
            dimension: weighted_round(
                [getattr(a.breakdown, dimension) for a in analyses], weights
            )
            for dimension in BREAKDOWN_DIMENSIONS
        }
    )

    return EnsembleResult(
        roast=select_best_roast(analyses),
        score=max(1, min(10, score)),
        breakdown=breakdown,
        issues=deduplicate_issues([i for a in analyses for i in a.issues], issue_cap),
        quick_wins=merge_quick_wins([a.quick_wins for a in analyses]),
        model_agreement=calculate_agreement([a.score for a in analyses]),
        providers_used=[a.provider_name for a in analyses],
    )


class EnsembleService:
    """
    Fans a screenshot out to every provider and reconciles the survivors.

    Results are remembered per image URL for ``cache_ttl`` seconds so the
    same screenshot is never paid for twice within that window.
    """

    def __init__(
        self,
        providers: List[Provider],
        timeout: Optional[float] = None,
        issue_cap: Optional[int] = None,
        cache_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.providers = list(providers)
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT
        self.issue_cap = issue_cap if issue_cap is not None else settings.ENSEMBLE_ISSUE_CAP
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.ENSEMBLE_CACHE_TTL
        self._clock = clock
        self._cache: Dict[str, Tuple[float, EnsembleResult]] = {}

    def _cached(self, image_url: str) -> Optional[EnsembleResult]:
        entry = self._cache.get(image_url)
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at >= self.cache_ttl:
            del self._cache[image_url]
            return None
        return result

    def _remember(self, image_url: str, result: EnsembleResult):
        now = self._clock()
        expired = [k for k, (t, _) in self._cache.items() if now - t >= self.cache_ttl]
        for key in expired:
            del self._cache[key]
        self._cache[image_url] = (now, result)

    async def _run_provider(
        self, provider: Provider, image_url: str
    ) -> Tuple[Optional[ProviderAnalysis], Optional[str]]:
        try:
            analysis = await race_with_timeout(
                provider.analyze(image_url), self.timeout, label=provider.name
            )
            return analysis, None
        except asyncio.TimeoutError:
            logger.warning(f"⏱️  {provider.name} timed out after {self.timeout}s")
            return None, "timeout"
        except Exception as e:
            logger.warning(f"⚠️  {provider.name} failed: {e}")
            return None, str(e) or type(e).__name__

    async def analyze(self, image_url: str) -> EnsembleResult:
        """
        Run the ensemble for one screenshot URL.

        Raises:
            AllProvidersFailedError: If every provider failed or timed out
        """
        cached = self._cached(image_url)
        if cached is not None:
            logger.info(f"✅ Ensemble cache hit for {image_url}")
            return cached

        start_time = time.time()
        outcomes = await asyncio.gather(
            *(self._run_provider(provider, image_url) for provider in self.providers)
        )

        analyses = [analysis for analysis, _ in outcomes if analysis is not None]
        if not analyses:
            failures = {
                provider.name: reason or "unknown"
                for provider, (_, reason) in zip(self.providers, outcomes)
            }
            logger.error(f"❌ All {len(self.providers)} providers failed for {image_url}")
            raise AllProvidersFailedError(failures)

        result = ensemble_results(analyses, self.issue_cap)
        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"🤖 Ensemble completed in {elapsed_ms}ms with "
            f"{len(analyses)}/{len(self.providers)} providers "
            f"(score {result.score}, agreement {result.model_agreement:.2f})"
        )

        self._remember(image_url, result)
        return result
