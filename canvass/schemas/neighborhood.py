"""
Data model for cached neighborhoods (geographic areas) and the leads
that reference them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    """WGS84 coordinate in decimal degrees. Rejects NaN/inf and out-of-range values."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    @classmethod
    def of(cls, latitude: float, longitude: float) -> "Coordinate":
        return cls(latitude=latitude, longitude=longitude)

    def __str__(self) -> str:
        return f"({self.latitude:.5f}, {self.longitude:.5f})"


@dataclass
class RawDemographics:
    """Normalized demographic figures for one area, as returned by a provider."""
    area_id: str
    name: str
    city_name: str
    state: str
    median_household_income: float
    total_population: float
    average_home_value: float
    home_ownership_rate: float  # fraction 0-1
    provider: str = "us_census"
    estimated_fields: list = field(default_factory=list)  # fields filled from estimate tables

    @property
    def is_estimated(self) -> bool:
        return bool(self.estimated_fields)


@dataclass
class GeographicArea:
    """
    A cached, scored neighborhood.

    ``population_density`` holds the tract population count, which the
    scoring rules treat as a density proxy.
    """
    area_id: str
    center_latitude: float
    center_longitude: float
    name: str = "Unknown"
    city_name: str = "Unknown"
    state: str = "Unknown"
    median_household_income: float = 0.0
    average_home_value: float = 0.0
    population_density: float = 0.0
    home_ownership_rate: float = 0.0
    score: float = 0.0
    last_updated: Optional[datetime] = None
    record_id: Optional[int] = None
    user_notes: Optional[str] = None

    @classmethod
    def from_demographics(cls, coordinate: Coordinate, data: RawDemographics) -> "GeographicArea":
        return cls(
            area_id=data.area_id,
            center_latitude=coordinate.latitude,
            center_longitude=coordinate.longitude,
            name=data.name,
            city_name=data.city_name,
            state=data.state,
            median_household_income=data.median_household_income,
            average_home_value=data.average_home_value,
            population_density=data.total_population,
            home_ownership_rate=data.home_ownership_rate,
            score=0.0,
        )

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.center_latitude, longitude=self.center_longitude)

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        """True when older than ``max_age``. Records with no timestamp never go stale."""
        if self.last_updated is None:
            return False
        return now - self.last_updated > max_age

    @property
    def score_grade(self) -> str:
        return score_grade(self.score)

    @property
    def score_color(self) -> str:
        return score_color(self.score)

    @property
    def formatted_income(self) -> str:
        return format_currency(self.median_household_income)

    @property
    def formatted_home_value(self) -> str:
        return format_currency(self.average_home_value)

    @property
    def formatted_population(self) -> str:
        return f"{self.population_density:,.0f}"


# Score bands, highest first: (lower bound, grade, color)
SCORE_BANDS = [
    (90.0, "Excellent", "green"),
    (75.0, "Very Good", "lightGreen"),
    (60.0, "Good", "yellow"),
    (45.0, "Fair", "orange"),
]


def score_grade(score: float) -> str:
    for lower, grade, _ in SCORE_BANDS:
        if score >= lower:
            return grade
    return "Poor"


def score_color(score: float) -> str:
    for lower, _, color in SCORE_BANDS:
        if score >= lower:
            return color
    return "red"


def format_currency(value: float) -> str:
    return f"${value:,.0f}"


class LeadStatus(str, Enum):
    """Lead pipeline status as stored on the lead record"""
    NOT_CONTACTED = "not_contacted"
    NOT_HOME = "not_home"
    INTERESTED = "interested"
    CONVERTED = "converted"
    NOT_INTERESTED = "not_interested"

    @classmethod
    def from_raw(cls, value: Optional[str]) -> "LeadStatus":
        """
        Map a raw status string, including pipeline-stage aliases used by
        the mobile app, onto a stored status. Unknown values count as
        not contacted.
        """
        if not value:
            return cls.NOT_CONTACTED
        key = value.strip().lower()
        try:
            return cls(key)
        except ValueError:
            return LEAD_STATUS_ALIASES.get(key, cls.NOT_CONTACTED)

    @property
    def display_name(self) -> str:
        return LEAD_STATUS_DISPLAY[self]


LEAD_STATUS_ALIASES: Dict[str, LeadStatus] = {
    "new": LeadStatus.NOT_CONTACTED,
    "contacted": LeadStatus.NOT_CONTACTED,
    "scheduled": LeadStatus.NOT_CONTACTED,
    "visited": LeadStatus.NOT_CONTACTED,
    "follow_up": LeadStatus.NOT_CONTACTED,
    "closed": LeadStatus.CONVERTED,
}

LEAD_STATUS_DISPLAY: Dict[LeadStatus, str] = {
    LeadStatus.NOT_CONTACTED: "Not Contacted",
    LeadStatus.NOT_HOME: "Not Home",
    LeadStatus.INTERESTED: "Interested",
    LeadStatus.CONVERTED: "Sold",
    LeadStatus.NOT_INTERESTED: "No Interest",
}


@dataclass
class LeadStats:
    """Lead outcome counts for one area"""
    total: int = 0
    converted: int = 0
    interested: int = 0

    @classmethod
    def from_counts(cls, counts: Mapping[str, int]) -> "LeadStats":
        """Build from a status -> count mapping (keys may be raw strings or LeadStatus)."""
        total = converted = interested = 0
        for status, count in counts.items():
            normalized = LeadStatus.from_raw(status)
            total += count
            if normalized == LeadStatus.CONVERTED:
                converted += count
            elif normalized == LeadStatus.INTERESTED:
                interested += count
        return cls(total=total, converted=converted, interested=interested)

    @property
    def conversion_rate(self) -> float:
        return self.converted / self.total if self.total else 0.0

    @property
    def interest_rate(self) -> float:
        """Share of leads that are interested or already converted."""
        return (self.interested + self.converted) / self.total if self.total else 0.0

    @property
    def conversion_rate_pct(self) -> float:
        return self.conversion_rate * 100.0
