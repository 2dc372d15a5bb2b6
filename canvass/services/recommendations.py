"""
D2D Neighborhood Atlas - Recommendations
Seeds the cache from lead locations and produces ranked recommendations

Lead-location scan:
1. Skip when areas are already cached (unless forced)
2. Sample up to LEAD_SCAN_LIMIT leads
3. Fetch + score the area around each lead, linking the lead to it
4. Per-lead failures are logged and skipped
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from pydantic import ValidationError

from canvass.errors import NeighborhoodEngineError
from canvass.processing.scoring import NeighborhoodScoreEngine
from canvass.schemas.neighborhood import Coordinate, GeographicArea
from canvass.schemas.preferences import ScoringWeights, TargetDemographicPreferences
from canvass.services.neighborhood_service import NeighborhoodDataService
from canvass.utils.logging import get_logger
from config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class LeadScanResult:
    """Summary of a lead-location scan"""
    leads_scanned: int = 0
    areas: List[GeographicArea] = field(default_factory=list)
    failed_lead_ids: List[int] = field(default_factory=list)
    skipped: bool = False


def scan_lead_locations(
    service: NeighborhoodDataService,
    scorer: NeighborhoodScoreEngine,
    preferences: TargetDemographicPreferences,
    limit: Optional[int] = None,
    force: bool = False,
    weights: Optional[ScoringWeights] = None,
) -> LeadScanResult:
    """
    Discover neighborhoods from where the user's leads are.

    Args:
        service: Data service used to fetch areas
        scorer: Score engine used to score each discovered area
        preferences: Target demographics for scoring
        limit: Maximum leads to sample (default: settings.LEAD_SCAN_LIMIT)
        force: Scan even when the cache already holds areas
        weights: Override for ``preferences.weights``

    Returns:
        LeadScanResult with the distinct areas found and failed lead ids
    """
    store = service.store
    if not force and store.count() > 0:
        logger.info("Neighborhoods already cached, skipping lead-location scan")
        return LeadScanResult(skipped=True)

    limit = settings.LEAD_SCAN_LIMIT if limit is None else limit
    leads = store.sample_leads(limit)
    logger.info(f"Scanning {len(leads)} lead locations for neighborhoods")

    result = LeadScanResult(leads_scanned=len(leads))
    seen: Set[int] = set()

    for lead in leads:
        try:
            coordinate = Coordinate.of(lead["latitude"], lead["longitude"])
            area = service.fetch_area(coordinate)
            store.assign_lead(lead["id"], area.record_id)
            scorer.score(area, preferences, weights)
        except (NeighborhoodEngineError, ValidationError) as e:
            logger.warning(f"Failed to process lead {lead['id']}: {e}")
            result.failed_lead_ids.append(lead["id"])
            continue

        if area.record_id not in seen:
            seen.add(area.record_id)
            result.areas.append(area)

    logger.info(
        f"Lead scan complete: {len(result.areas)} neighborhoods from "
        f"{len(leads)} leads ({len(result.failed_lead_ids)} failed)"
    )
    return result
