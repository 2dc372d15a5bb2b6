"""
D2D Neighborhood Atlas - Recommendation Runner

Refreshes neighborhood scores for a target profile and logs the best areas.

Stages:
1. Schema setup + connectivity check
2. Lead-location scan (only when the cache is empty, unless --force-scan)
3. Optional lookup of a single coordinate or postal code
4. Rescoring of every cached neighborhood
5. Top-N report

Usage:
    python -m canvass.run_recommendations --profile SOLAR_PANELS --top-n 5
    python -m canvass.run_recommendations --lat 43.65 --lon -79.38
    python -m canvass.run_recommendations --postal-code "M5H 2N2" --skip-scan
"""

import argparse
import sys
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import ValidationError

from canvass.errors import NeighborhoodEngineError
from canvass.ingest.census_adapter import postal_code_to_coordinate
from canvass.processing.ranking import RankingService
from canvass.processing.scoring import NeighborhoodScoreEngine
from canvass.schemas.neighborhood import Coordinate, GeographicArea
from canvass.schemas.preferences import TargetDemographicPreferences, TargetProfile
from canvass.services.neighborhood_service import NeighborhoodDataService
from canvass.services.recommendations import scan_lead_locations
from canvass.storage.cache_store import NeighborhoodCacheStore
from canvass.utils.logging import setup_logging
from config.database import init_db, test_connection
from config.settings import get_settings

logger = setup_logging("recommendations")
settings = get_settings()


def check_prerequisites() -> bool:
    """
    Create the schema and make sure the database answers.

    Returns:
        True if all checks pass, False otherwise
    """
    logger.info("Checking prerequisites")

    try:
        init_db()
    except Exception as e:
        logger.error(f"Schema initialization failed: {e}")
        return False

    if not test_connection():
        logger.error("Database connection failed")
        return False

    if not settings.CENSUS_API_KEY:
        logger.warning("CENSUS_API_KEY not set, Census API calls use the anonymous quota")

    logger.info("Prerequisites check passed")
    return True


def build_components() -> Tuple[NeighborhoodDataService, NeighborhoodScoreEngine, RankingService]:
    """Wire the store, data service, score engine and ranking service."""
    store = NeighborhoodCacheStore()
    return NeighborhoodDataService(store), NeighborhoodScoreEngine(store), RankingService(store)


def build_preferences(profile_name: str) -> TargetDemographicPreferences:
    profile = TargetProfile[profile_name]
    if profile is TargetProfile.CUSTOM:
        return TargetDemographicPreferences()
    return TargetDemographicPreferences.for_profile(profile)


def log_recommendations(areas: List[GeographicArea]) -> None:
    if not areas:
        logger.info("No neighborhoods cached yet")
        return

    for rank, area in enumerate(areas, start=1):
        logger.info(
            f"{rank:>2}. {area.name} ({area.city_name}, {area.state}) "
            f"score {area.score:.1f} [{area.score_grade}] "
            f"income {area.formatted_income}, home value {area.formatted_home_value}, "
            f"population {area.formatted_population}"
        )


def resolve_target(args: argparse.Namespace) -> Optional[Coordinate]:
    """Coordinate requested on the command line, if any."""
    if args.postal_code:
        return postal_code_to_coordinate(args.postal_code)
    if args.lat is not None and args.lon is not None:
        return Coordinate.of(args.lat, args.lon)
    return None


def main():
    """Recommendation run orchestration"""

    parser = argparse.ArgumentParser(
        description="D2D Neighborhood Atlas - Neighborhood Recommendations"
    )

    parser.add_argument(
        "--profile",
        type=str,
        default=TargetProfile.CUSTOM.name,
        choices=[p.name for p in TargetProfile],
        help="Target profile whose income/home value brackets drive scoring (default: CUSTOM)"
    )

    parser.add_argument(
        "--top-n",
        type=int,
        default=settings.DEFAULT_TOP_N,
        help=f"Number of neighborhoods to report (default: {settings.DEFAULT_TOP_N})"
    )

    parser.add_argument(
        "--skip-scan",
        action="store_true",
        help="Skip the lead-location scan"
    )

    parser.add_argument(
        "--force-scan",
        action="store_true",
        help="Scan lead locations even when neighborhoods are already cached"
    )

    parser.add_argument("--lat", type=float, help="Latitude of a location to look up")
    parser.add_argument("--lon", type=float, help="Longitude of a location to look up")
    parser.add_argument("--postal-code", type=str, help="Canadian postal code to look up")

    args = parser.parse_args()
    if (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")

    start_time = datetime.now()
    logger.info("=" * 60)
    logger.info("D2D Neighborhood Atlas - Recommendations")
    logger.info(f"Time: {start_time.isoformat()}")
    logger.info(f"Arguments: {vars(args)}")
    logger.info("=" * 60)

    if not check_prerequisites():
        logger.error("Prerequisites check failed, exiting")
        sys.exit(1)

    try:
        preferences = build_preferences(args.profile)
        logger.info(
            f"Profile {args.profile}: income {preferences.formatted_income_range}, "
            f"home value {preferences.formatted_home_value_range}"
        )

        service, scorer, ranking = build_components()

        if not args.skip_scan:
            scan_lead_locations(service, scorer, preferences, force=args.force_scan)

        target = resolve_target(args)
        if target is not None:
            area = service.fetch_area(target)
            scorer.score(area, preferences)
            logger.info(
                f"Neighborhood at {target}: {area.name} score {area.score:.1f} [{area.score_grade}]"
            )

        batch = scorer.recalculate_all(preferences, stop_on_error=False)
        if not batch.succeeded:
            logger.warning(f"{len(batch.failures)} neighborhoods could not be rescored")

        logger.info("\n" + "=" * 60)
        logger.info(f"TOP {args.top_n} NEIGHBORHOODS")
        logger.info("=" * 60)
        log_recommendations(ranking.top_n(args.top_n))

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"Duration: {duration:.1f} seconds")

        sys.exit(0)

    except (NeighborhoodEngineError, ValidationError) as e:
        logger.error(f"Recommendation run failed: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.warning("Recommendation run interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
