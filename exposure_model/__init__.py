"""
Occupational Job-Loss Risk Exposure Model

Survey-weighted analysis of household exposure to pandemic job-loss risk,
rent burden and income, from IPUMS USA (ACS) person-level microdata and an
occupation risk crosswalk.
"""

from .config import EstimationConfig, MicrodataColumns
from .tristate import TriState
from .risk import attach_risk_flags, normalize_risk_table
from .derive import derive_person_fields
from .households import aggregate_household, aggregate_households
from .survey import StatisticKind, SurveyDesign, WeightedEstimate, weighted_quantile
from .combine import EstimateWithMOE, category_shares, combine_totals
from .reliability import INSUFFICIENT_DATA, ReliabilityClassifier
from .pipeline import PipelineResult, run_pipeline

__version__ = "1.0.0"
__all__ = [
    "EstimationConfig",
    "MicrodataColumns",
    "TriState",
    "attach_risk_flags",
    "normalize_risk_table",
    "derive_person_fields",
    "aggregate_household",
    "aggregate_households",
    "StatisticKind",
    "SurveyDesign",
    "WeightedEstimate",
    "weighted_quantile",
    "EstimateWithMOE",
    "category_shares",
    "combine_totals",
    "INSUFFICIENT_DATA",
    "ReliabilityClassifier",
    "PipelineResult",
    "run_pipeline",
]
