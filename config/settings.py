"""
D2D Neighborhood Atlas - Application Settings
Manages environment variables and configuration using Pydantic
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Everything has a default so the engine runs against a local SQLite
    file out of the box.

    Optional:
        - CENSUS_API_KEY (improves Census API rate limits)
    """

    # Database
    DATABASE_URL: str = "sqlite:///neighborhoods.db"

    # Application
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # External APIs
    CENSUS_API_KEY: Optional[str] = None
    FCC_BLOCK_API_URL: str = "https://geo.fcc.gov/api/census/block/find"
    CENSUS_API_BASE_URL: str = "https://api.census.gov/data"
    ACS_DATASET: str = "acs/acs5"
    ACS_YEAR: int = 2021
    STATCAN_API_BASE_URL: str = "https://api.statcan.gc.ca/census-recensement/profile/sdmx/rest"
    GEOCODER_CA_URL: str = "https://geocoder.ca"
    HTTP_TIMEOUT_SECONDS: int = 30

    # Rate limiting (requests per minute)
    CENSUS_API_RATE_LIMIT: int = 60
    STATCAN_API_RATE_LIMIT: int = 120
    GEOCODER_RATE_LIMIT: int = 30  # geocoder.ca throttles anonymous callers

    # Neighborhood cache policy
    CACHE_EXPIRATION_DAYS: int = 30
    CACHE_TOLERANCE_DEGREES: float = 0.01  # ~1.1km half-width bounding box

    # Recommendations
    DEFAULT_TOP_N: int = 10
    LEAD_SCAN_LIMIT: int = 50

    # File storage
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.LOG_DIR:
            os.makedirs(self.LOG_DIR, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Returns cached settings instance.
    Uses lru_cache to avoid re-reading .env on every call.
    """
    return Settings()


# Canada bounding box (degrees), used to route coordinates to the Canadian provider
CANADA_BOUNDS = {
    "lat_min": 41.7,
    "lat_max": 83.1,
    "lon_min": -141.0,
    "lon_max": -52.6,
}

# Census Bureau ACS variables pulled for each tract
ACS_TRACT_VARIABLES = {
    "B19013_001E": "median_household_income",
    "B01003_001E": "total_population",
    "B25077_001E": "median_home_value",
    "B25003_002E": "owner_occupied_units",
    "B25003_001E": "total_housing_units",
}

# Statistics Canada census profile characteristic codes
STATCAN_CHARACTERISTICS = {
    "1": "total_population",
    "897": "median_total_income",
    "906": "median_household_income",
    "1875": "average_dwelling_value",
    "83": "homeownership_pct",
}
