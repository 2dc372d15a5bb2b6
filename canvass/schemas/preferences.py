"""
Pydantic schemas for target-demographic preferences and scoring weights

Preferences describe the ideal customer profile for a door-to-door
campaign. They are supplied by the caller and stay fixed for the length
of a scoring pass.
"""

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IncomeBracket(str, Enum):
    """Predefined household income brackets"""
    BUDGET = "Budget ($30k-$60k)"
    MODERATE = "Moderate ($60k-$100k)"
    COMFORTABLE = "Comfortable ($100k-$150k)"
    AFFLUENT = "Affluent ($150k-$250k)"
    WEALTHY = "Wealthy ($250k+)"
    CUSTOM = "Custom Range"

    @property
    def range(self) -> Tuple[float, float]:
        return INCOME_BRACKET_RANGES[self]


INCOME_BRACKET_RANGES = {
    IncomeBracket.BUDGET: (30000.0, 60000.0),
    IncomeBracket.MODERATE: (60000.0, 100000.0),
    IncomeBracket.COMFORTABLE: (100000.0, 150000.0),
    IncomeBracket.AFFLUENT: (150000.0, 250000.0),
    IncomeBracket.WEALTHY: (250000.0, 1000000.0),
    IncomeBracket.CUSTOM: (0.0, 0.0),
}


class HomeValueBracket(str, Enum):
    """Predefined home value brackets"""
    STARTER = "Starter Homes ($100k-$250k)"
    ESTABLISHED = "Established ($250k-$500k)"
    UPSCALE = "Upscale ($500k-$750k)"
    LUXURY = "Luxury ($750k-$1M)"
    ESTATE = "Estate ($1M+)"
    TORONTO_CONDO = "Toronto Condo ($600k-$900k)"
    TORONTO_HOME = "Toronto Home ($800k-$1.5M)"
    TORONTO_PREMIUM = "Toronto Premium ($1.5M-$3M)"
    CUSTOM = "Custom Range"

    @property
    def range(self) -> Tuple[float, float]:
        return HOME_VALUE_BRACKET_RANGES[self]


HOME_VALUE_BRACKET_RANGES = {
    HomeValueBracket.STARTER: (100000.0, 250000.0),
    HomeValueBracket.ESTABLISHED: (250000.0, 500000.0),
    HomeValueBracket.UPSCALE: (500000.0, 750000.0),
    HomeValueBracket.LUXURY: (750000.0, 1000000.0),
    HomeValueBracket.ESTATE: (1000000.0, 5000000.0),
    HomeValueBracket.TORONTO_CONDO: (600000.0, 900000.0),
    HomeValueBracket.TORONTO_HOME: (800000.0, 1500000.0),
    HomeValueBracket.TORONTO_PREMIUM: (1500000.0, 3000000.0),
    HomeValueBracket.CUSTOM: (0.0, 0.0),
}


class DensityPreference(str, Enum):
    """Preferred neighborhood density (informational; scoring uses a fixed optimal band)"""
    RURAL = "rural"
    SUBURBAN = "suburban"
    URBAN = "urban"
    MIXED = "mixed"


class TargetProfile(str, Enum):
    """Named preset profiles for common home-service verticals"""
    SOLAR_PANELS = "Solar Panels"
    ROOFING = "Roofing"
    HVAC = "HVAC"
    WINDOWS = "Windows & Doors"
    LANDSCAPING = "Landscaping"
    REMODELING = "Home Remodeling"
    SECURITY = "Security Systems"
    POOLS = "Pools & Spas"
    TORONTO_GENERAL = "Toronto - General"
    TORONTO_PREMIUM = "Toronto - Premium Areas"
    CUSTOM = "Custom Profile"

    @property
    def recommended_brackets(self) -> Tuple[IncomeBracket, HomeValueBracket]:
        return PROFILE_BRACKETS[self]


PROFILE_BRACKETS = {
    TargetProfile.SOLAR_PANELS: (IncomeBracket.COMFORTABLE, HomeValueBracket.ESTABLISHED),
    TargetProfile.ROOFING: (IncomeBracket.MODERATE, HomeValueBracket.ESTABLISHED),
    TargetProfile.HVAC: (IncomeBracket.COMFORTABLE, HomeValueBracket.ESTABLISHED),
    TargetProfile.WINDOWS: (IncomeBracket.MODERATE, HomeValueBracket.ESTABLISHED),
    TargetProfile.LANDSCAPING: (IncomeBracket.COMFORTABLE, HomeValueBracket.UPSCALE),
    TargetProfile.REMODELING: (IncomeBracket.AFFLUENT, HomeValueBracket.UPSCALE),
    TargetProfile.SECURITY: (IncomeBracket.COMFORTABLE, HomeValueBracket.ESTABLISHED),
    TargetProfile.POOLS: (IncomeBracket.AFFLUENT, HomeValueBracket.LUXURY),
    TargetProfile.TORONTO_GENERAL: (IncomeBracket.MODERATE, HomeValueBracket.TORONTO_HOME),
    TargetProfile.TORONTO_PREMIUM: (IncomeBracket.AFFLUENT, HomeValueBracket.TORONTO_PREMIUM),
    TargetProfile.CUSTOM: (IncomeBracket.MODERATE, HomeValueBracket.ESTABLISHED),
}


class ScoringWeights(BaseModel):
    """
    Relative weight of each sub-score. Weights need not sum to 1; use
    ``normalized()`` before combining.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    income_match: float = Field(0.30, ge=0)
    population_density: float = Field(0.20, ge=0)
    home_value_match: float = Field(0.25, ge=0)
    conversion_rate: float = Field(0.25, ge=0)

    @model_validator(mode="after")
    def check_not_all_zero(self):
        if self.total <= 0:
            raise ValueError("At least one scoring weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.income_match + self.population_density + self.home_value_match + self.conversion_rate

    def normalized(self) -> "ScoringWeights":
        total = self.total
        return ScoringWeights(
            income_match=self.income_match / total,
            population_density=self.population_density / total,
            home_value_match=self.home_value_match / total,
            conversion_rate=self.conversion_rate / total,
        )


class TargetDemographicPreferences(BaseModel):
    """
    User-configured ideal customer profile.

    Validation mirrors what the settings screen enforces: both ranges must
    be non-empty (min < max) and the ownership threshold a fraction.
    """

    model_config = ConfigDict(frozen=True)

    income_min: float = Field(60000.0, ge=0)
    income_max: float = Field(250000.0, ge=0)
    home_value_min: float = Field(600000.0, ge=0)
    home_value_max: float = Field(1500000.0, ge=0)
    prefer_homeowners: bool = True
    minimum_ownership_rate: float = Field(0.5, ge=0, le=1)
    preferred_density: DensityPreference = DensityPreference.SUBURBAN
    profile: TargetProfile = TargetProfile.CUSTOM
    weights: ScoringWeights = Field(default_factory=ScoringWeights)

    @model_validator(mode="after")
    def check_ranges(self):
        if self.income_min >= self.income_max:
            raise ValueError(
                f"income_min ({self.income_min}) must be below income_max ({self.income_max})"
            )
        if self.home_value_min >= self.home_value_max:
            raise ValueError(
                f"home_value_min ({self.home_value_min}) must be below "
                f"home_value_max ({self.home_value_max})"
            )
        return self

    @classmethod
    def defaults(cls) -> "TargetDemographicPreferences":
        """Values restored by 'reset to defaults' in the app."""
        return cls(
            income_min=50000.0,
            income_max=150000.0,
            home_value_min=200000.0,
            home_value_max=500000.0,
        )

    @classmethod
    def for_profile(cls, profile: TargetProfile, **overrides) -> "TargetDemographicPreferences":
        """Build preferences from a preset profile's recommended brackets."""
        income_bracket, home_bracket = profile.recommended_brackets
        income_min, income_max = income_bracket.range
        home_min, home_max = home_bracket.range
        values = {
            "income_min": income_min,
            "income_max": income_max,
            "home_value_min": home_min,
            "home_value_max": home_max,
            "profile": profile,
        }
        values.update(overrides)
        return cls(**values)

    def apply_profile(self, profile: TargetProfile) -> "TargetDemographicPreferences":
        """Return a copy with the profile's ranges, keeping the other settings."""
        return TargetDemographicPreferences.for_profile(
            profile,
            prefer_homeowners=self.prefer_homeowners,
            minimum_ownership_rate=self.minimum_ownership_rate,
            preferred_density=self.preferred_density,
            weights=self.weights,
        )

    @property
    def formatted_income_range(self) -> str:
        return f"${self.income_min:,.0f} - ${self.income_max:,.0f}"

    @property
    def formatted_home_value_range(self) -> str:
        return f"${self.home_value_min:,.0f} - ${self.home_value_max:,.0f}"
