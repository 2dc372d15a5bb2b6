"""
D2D Neighborhood Atlas - Neighborhood Scoring
Computes a 0-100 suitability score per area from four weighted sub-scores

Rules:
- Each sub-score is 0-100
- Income / home value: 100 inside the target range, decaying by 50 points
  per buffer width outside it (income buffer 50k, home value buffer 100k)
- Density: 100 inside the 2,000-8,000 band, linear below, slow decay
  above with a floor of 50
- Conversion: neutral 50 with no leads; otherwise a 70/30 blend of
  conversion and interest rates on a percentage scale plus a sample-size
  boost, capped at 100
- Weights are normalized to sum to 1 before combining
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from canvass.errors import NeighborhoodEngineError, PersistenceError
from canvass.schemas.neighborhood import GeographicArea, LeadStats
from canvass.schemas.preferences import ScoringWeights, TargetDemographicPreferences
from canvass.storage.cache_store import NeighborhoodCacheStore
from canvass.utils.logging import get_logger

logger = get_logger(__name__)

INCOME_BUFFER = 50000.0
HOME_VALUE_BUFFER = 100000.0
RANGE_DECAY_POINTS = 50.0  # points lost per buffer width outside the range

DENSITY_OPTIMAL_MIN = 2000.0
DENSITY_OPTIMAL_MAX = 8000.0
DENSITY_EXCESS_SCALE = 10000.0
DENSITY_FLOOR = 50.0

NEUTRAL_CONVERSION_SCORE = 50.0
CONVERSION_WEIGHT = 70.0
INTEREST_WEIGHT = 30.0
MAX_SAMPLE_BOOST = 10.0


def calculate_range_score(value: float, target_min: float, target_max: float, buffer: float) -> float:
    """
    Score how well ``value`` matches [target_min, target_max].

    Returns:
        100 inside the range, otherwise 100 - 50 * (gap / buffer), floored at 0
    """
    if target_min <= value <= target_max:
        return 100.0

    distance = target_min - value if value < target_min else value - target_max
    return max(0.0, 100.0 - (distance / buffer) * RANGE_DECAY_POINTS)


def calculate_income_score(area: GeographicArea, preferences: TargetDemographicPreferences) -> float:
    return calculate_range_score(
        area.median_household_income, preferences.income_min, preferences.income_max, INCOME_BUFFER
    )


def calculate_home_value_score(area: GeographicArea, preferences: TargetDemographicPreferences) -> float:
    return calculate_range_score(
        area.average_home_value, preferences.home_value_min, preferences.home_value_max, HOME_VALUE_BUFFER
    )


def calculate_density_score(density: float) -> float:
    """Typical suburban density (2,000-8,000) scores 100."""
    if DENSITY_OPTIMAL_MIN <= density <= DENSITY_OPTIMAL_MAX:
        return 100.0

    if density < DENSITY_OPTIMAL_MIN:
        return max(0.0, (density / DENSITY_OPTIMAL_MIN) * 100.0)

    excess = density - DENSITY_OPTIMAL_MAX
    return max(DENSITY_FLOOR, 100.0 - (excess / DENSITY_EXCESS_SCALE) * 50.0)


def calculate_conversion_score(stats: LeadStats) -> float:
    """
    Historical success in the area.

    No leads yet -> neutral 50. Otherwise
    (conversion_rate * 70 + interest_rate * 30) * 100 + min(10, total / 2),
    capped at 100. Any conversion or interest saturates the score; areas
    with only cold leads get the sample boost alone.
    """
    if stats.total == 0:
        return NEUTRAL_CONVERSION_SCORE

    score = (stats.conversion_rate * CONVERSION_WEIGHT + stats.interest_rate * INTEREST_WEIGHT) * 100.0
    sample_boost = min(MAX_SAMPLE_BOOST, stats.total / 2.0)
    return float(np.clip(min(100.0, score + sample_boost), 0.0, 100.0))


def combine_scores(sub_scores: Dict[str, float], weights: ScoringWeights) -> float:
    """
    Weighted sum of sub-scores using normalized weights.

    Args:
        sub_scores: Keys income_match, population_density, home_value_match, conversion_rate
        weights: Raw (un-normalized) weights

    Returns:
        Total score in [0, 100]
    """
    normalized = weights.normalized()
    total = (
        sub_scores["income_match"] * normalized.income_match
        + sub_scores["population_density"] * normalized.population_density
        + sub_scores["home_value_match"] * normalized.home_value_match
        + sub_scores["conversion_rate"] * normalized.conversion_rate
    )
    # Guard against float drift at the edges
    return float(np.clip(total, 0.0, 100.0))


@dataclass
class ScoreBreakdown:
    """Sub-scores and weighted total for one area"""
    area_id: str
    income_match: float
    population_density: float
    home_value_match: float
    conversion_rate: float
    total: float


@dataclass
class BatchScoringResult:
    """Outcome of ``recalculate_all``"""
    scored: int = 0
    failures: List[Tuple[str, NeighborhoodEngineError]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class NeighborhoodScoreEngine:
    """
    Scores cached areas against a set of target-demographic preferences.

    Args:
        store: Cache store used to read lead stats and persist scores
    """

    def __init__(self, store: NeighborhoodCacheStore):
        self.store = store

    def lead_stats(self, area: GeographicArea) -> LeadStats:
        if area.record_id is None:
            return LeadStats()
        return LeadStats.from_counts(self.store.lead_status_counts(area.record_id))

    def breakdown(
        self,
        area: GeographicArea,
        preferences: TargetDemographicPreferences,
        weights: Optional[ScoringWeights] = None,
    ) -> ScoreBreakdown:
        """Compute sub-scores and total without persisting anything."""
        if weights is None:
            weights = preferences.weights
        sub_scores = {
            "income_match": calculate_income_score(area, preferences),
            "population_density": calculate_density_score(area.population_density),
            "home_value_match": calculate_home_value_score(area, preferences),
            "conversion_rate": calculate_conversion_score(self.lead_stats(area)),
        }
        return ScoreBreakdown(area_id=area.area_id, total=combine_scores(sub_scores, weights), **sub_scores)

    def score(
        self,
        area: GeographicArea,
        preferences: TargetDemographicPreferences,
        weights: Optional[ScoringWeights] = None,
    ) -> float:
        """
        Score ``area``, write the score onto it and persist it.

        Args:
            area: Cached area to score
            preferences: Target demographics
            weights: Override for ``preferences.weights``

        Returns:
            Total score in [0, 100]

        Raises:
            PersistenceError: If the score cannot be saved; ``error.score``
                holds the computed value and ``area.score`` is already set
        """
        result = self.breakdown(area, preferences, weights)
        area.score = result.total

        try:
            self.store.update_score(area)
        except PersistenceError as e:
            logger.error(f"Failed to save score for {area.area_id}: {e}")
            raise PersistenceError(str(e), score=result.total) from e

        logger.info(
            f"Scored neighborhood {area.name}: {result.total:.1f} "
            f"(income ${area.median_household_income:,.0f} -> {result.income_match:.1f}, "
            f"home value ${area.average_home_value:,.0f} -> {result.home_value_match:.1f}, "
            f"density {area.population_density:,.0f} -> {result.population_density:.1f}, "
            f"conversion {result.conversion_rate:.1f})"
        )
        return result.total

    def recalculate_all(
        self,
        preferences: TargetDemographicPreferences,
        weights: Optional[ScoringWeights] = None,
        stop_on_error: bool = True,
    ) -> BatchScoringResult:
        """
        Re-score every cached area, one at a time.

        Args:
            preferences: Target demographics
            weights: Override for ``preferences.weights``
            stop_on_error: If True (default) the first failure aborts the
                batch and propagates; if False failures are collected and
                the remaining areas are still scored

        Returns:
            BatchScoringResult with the number scored and any failures
        """
        areas = self.store.all_areas()
        logger.info(f"Recalculating scores for {len(areas)} neighborhoods")

        result = BatchScoringResult()
        for area in areas:
            try:
                self.score(area, preferences, weights)
                result.scored += 1
            except NeighborhoodEngineError as e:
                if stop_on_error:
                    logger.error(f"Batch rescoring aborted at {area.area_id}: {e}")
                    raise
                logger.warning(f"Skipping {area.area_id} after scoring failure: {e}")
                result.failures.append((area.area_id, e))

        logger.info(f"Rescored {result.scored}/{len(areas)} neighborhoods")
        return result
