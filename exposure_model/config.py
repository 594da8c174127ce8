"""
Configuration for the job-loss exposure model.

Holds the IPUMS USA variable names, the code tables used to derive person
fields, and the estimation settings that are passed explicitly to every
survey estimator call.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

from scipy import stats


# =============================================================================
# GEOGRAPHY
# =============================================================================

NYC_STATEFIP = 36

# IPUMS COUNTYFIP codes for the five boroughs
BOROUGH_NAMES: Dict[int, str] = {
    5: "Bronx",
    47: "Brooklyn",
    61: "Manhattan",
    81: "Queens",
    85: "Staten Island",
}
NYC_COUNTYFIPS: Tuple[int, ...] = tuple(BOROUGH_NAMES)


# =============================================================================
# IPUMS CODES
# =============================================================================

# INCWAGE: 999999 = N/A, 999998 = missing
WAGE_SENTINELS: Tuple[int, ...] = (999999, 999998)

# HHINCOME: 9999999 = N/A (group quarters / vacant)
HHINCOME_SENTINEL = 9999999

# OWNERSHP: 1 = owned or being bought, 2 = rented
TENURE_OWNED = 1
TENURE_RENTED = 2

# Rent burden thresholds (share of monthly household income)
RENT_BURDEN_THRESHOLD = 0.30
SEVERE_RENT_BURDEN_THRESHOLD = 0.50

# Household income buckets, left-closed [floor, ceiling)
INCOME_BUCKETS: List[Tuple[str, float, Optional[float]]] = [
    ("Less than $25K", float("-inf"), 25_000),
    ("$25K-$50K", 25_000, 50_000),
    ("$50K-$75K", 50_000, 75_000),
    ("$75K-$100K", 75_000, 100_000),
    ("$100K-$150K", 100_000, 150_000),
    ("$150K and over", 150_000, None),
]

# UNITSSTR detailed codes -> building size category
BUILDING_SIZE_CATEGORIES: Dict[int, str] = {
    1: "Other",               # Mobile home or trailer
    2: "Other",               # Boat, tent, van, other
    3: "1 family",            # 1-family house, detached
    4: "1 family",            # 1-family house, attached
    5: "2-4 units",           # 2-family building
    6: "2-4 units",           # 3-4 family building
    7: "5-19 units",          # 5-9 family building
    8: "5-19 units",          # 10-19 family building
    9: "20-49 units",         # 20-49 family building
    10: "50+ units",          # 50+ family building
}
BUILDING_SIZE_ORDER: List[str] = [
    "1 family", "2-4 units", "5-19 units", "20-49 units", "50+ units", "Other",
]

# RACE general codes (non-Latino only; HISPAN 1-4 is Latino)
RACE_LABELS: Dict[int, str] = {
    1: "White",
    2: "Black",
    4: "Asian",   # Chinese
    5: "Asian",   # Japanese
    6: "Asian",   # Other Asian or Pacific Islander
}
LATINO_LABEL = "Latino"
OTHER_RACE_LABEL = "Other"
RACE_ETHNICITY_ORDER: List[str] = ["White", "Black", "Latino", "Asian", "Other"]

RISK_LABELS: Dict[bool, str] = {
    True: "More vulnerable",
    False: "Less vulnerable",
}


# =============================================================================
# MICRODATA COLUMNS
# =============================================================================

@dataclass(frozen=True)
class MicrodataColumns:
    """
    Column names of an IPUMS USA person-level extract.

    Defaults match the IPUMS variable names; override when the extract has
    been renamed upstream.
    """
    household_id: str = "SERIAL"
    person_number: str = "PERNUM"
    person_weight: str = "PERWT"
    household_weight: str = "HHWT"
    occupation: str = "OCC"
    wage_income: str = "INCWAGE"
    household_income: str = "HHINCOME"
    tenure: str = "OWNERSHP"
    gross_rent: str = "RENTGRS"
    race: str = "RACE"
    hispanic: str = "HISPAN"
    building_size: str = "UNITSSTR"
    state: str = "STATEFIP"
    county: str = "COUNTYFIP"
    puma: str = "PUMA"

    # Replicate weights (80 for ACS 1-year)
    person_replicate_pattern: str = r"^REPWTP\d+$"
    household_replicate_pattern: str = r"^REPWT\d+$"

    @property
    def required(self) -> List[str]:
        """Columns every extract must carry."""
        return [
            self.household_id, self.person_number, self.person_weight,
            self.household_weight, self.occupation, self.wage_income,
            self.household_income, self.tenure, self.gross_rent, self.race,
            self.hispanic, self.building_size,
        ]

    @property
    def geography(self) -> List[str]:
        return [self.state, self.county, self.puma]

    @property
    def household_level(self) -> List[str]:
        """Attributes that are identical for every person in a household."""
        return [
            self.household_weight, self.household_income, self.tenure,
            self.gross_rent, self.building_size,
        ]


# =============================================================================
# ESTIMATION SETTINGS
# =============================================================================

VarianceMethod = Literal["replicate", "linearization"]
RadicandPolicy = Literal["ratio", "clamp", "unknown"]


@dataclass(frozen=True)
class EstimationConfig:
    """
    Settings for weighted estimation and MOE propagation.

    Attributes:
        confidence_level: Confidence level of every interval (ACS publishes 90%)
        variance_method: "replicate" uses successive difference replicate
            weights; "linearization" uses Taylor-series variance from the
            main weight only
        replicate_scale: Multiplier on the sum of squared replicate deviations
            (4/80 for the ACS 80-replicate design)
        degrees_of_freedom: None for a normal critical value, otherwise the
            Student-t degrees of freedom
        negative_radicand: Policy when the share MOE radicand is negative
        na_rm: Drop missing values (and their weights) before estimating;
            when False a group with any missing value is unknown
        columns: Microdata column names
    """
    confidence_level: float = 0.90
    variance_method: VarianceMethod = "replicate"
    replicate_scale: float = 4 / 80
    degrees_of_freedom: Optional[int] = None
    negative_radicand: RadicandPolicy = "ratio"
    na_rm: bool = True
    columns: MicrodataColumns = field(default_factory=MicrodataColumns)

    def __post_init__(self):
        if not 0 < self.confidence_level < 1:
            raise ValueError(
                f"confidence_level must be in (0, 1), got {self.confidence_level}"
            )
        if self.variance_method not in ("replicate", "linearization"):
            raise ValueError(f"Unknown variance method: {self.variance_method}")
        if self.negative_radicand not in ("ratio", "clamp", "unknown"):
            raise ValueError(f"Unknown radicand policy: {self.negative_radicand}")

    @property
    def critical_value(self) -> float:
        """Two-sided critical value for the configured confidence level."""
        alpha = (1 + self.confidence_level) / 2
        if self.degrees_of_freedom is None:
            return float(stats.norm.ppf(alpha))
        return float(stats.t.ppf(alpha, self.degrees_of_freedom))


# =============================================================================
# MAP CLASSIFICATION DEFAULTS
# =============================================================================

# Share of households with any member in a more vulnerable occupation
MAP_BREAKPOINTS: List[float] = [0.20, 0.30, 0.40, 0.50]
MAP_MAX_MOE = 0.10  # Suppress PUMA shares with MOE above 10 points
