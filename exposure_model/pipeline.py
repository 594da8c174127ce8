"""
Batch pipeline: person records in, analysis tables out.

Stages run strictly in order, each returning a new table:

1. Validate person records (shape violations abort the run)
2. Join occupation risk flags
3. Derive person fields
4. Aggregate households
5. Estimate weighted statistics
6. Combine totals into shares and classify map estimates

Nothing is written to disk; presentation is left to reporting/charts.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import pandas as pd

from .combine import category_shares
from .config import MAP_BREAKPOINTS, MAP_MAX_MOE, EstimationConfig
from .data.validation import MicrodataValidator, validate_or_raise
from .derive import derive_person_fields
from .households import aggregate_households
from .reliability import ReliabilityClassifier
from .risk import attach_risk_flags, normalize_risk_table
from .survey import StatisticKind, SurveyDesign

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """
    Output of one pipeline run.

    Attributes:
        persons: Derived person table
        households: Household aggregate table
        tables: Named estimate tables
        config: Estimation settings used for every table
    """
    persons: pd.DataFrame
    households: pd.DataFrame
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    config: EstimationConfig = field(default_factory=EstimationConfig)

    def table(self, name: str) -> pd.DataFrame:
        if name not in self.tables:
            raise KeyError(f"No table named {name!r}; available: {sorted(self.tables)}")
        return self.tables[name]


def prepare_households(
    persons: pd.DataFrame,
    risk_table: pd.DataFrame,
    config: Optional[EstimationConfig] = None,
    occupation_col: str = "occupation",
    flag_col: str = "at_risk",
) -> tuple:
    """
    Stages 1-4: validate, join risk flags, derive fields, aggregate.

    Returns:
        (derived person table, household table)
    """
    config = config or EstimationConfig()
    cols = config.columns

    validate_or_raise(MicrodataValidator.validate_person_records(persons, cols))
    risk = normalize_risk_table(risk_table, occupation_col, flag_col)

    joined = attach_risk_flags(persons, risk, cols)
    derived = derive_person_fields(joined, cols)
    households = aggregate_households(derived, cols)
    return derived, households


def estimate_tables(
    persons: pd.DataFrame,
    households: pd.DataFrame,
    config: Optional[EstimationConfig] = None,
    classifier: Optional[ReliabilityClassifier] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Stages 5-6: the analysis tables.

    Tables:
        workers_by_risk: Workers by occupation risk flag (weighted count)
        workers_by_race: Share of workers in more vulnerable occupations by
            race/ethnicity
        households_by_risk: Households by any_risk (weighted count)
        households_by_income_bucket: Share of households with any member at
            risk, by income bucket
        rent_burden_by_risk: Rent-burden rates of renter households by any_risk
        risk_wage_share_median: Median share of household income from at-risk
            wages among households with any member at risk
        building_size_shares: Building size distribution of at-risk renter
            households, from totals with propagated MOEs
        puma_any_risk_share: Share of households with any member at risk by
            PUMA, with a reliability class
    """
    config = config or EstimationConfig()
    cols = config.columns
    classifier = classifier or ReliabilityClassifier(
        MAP_BREAKPOINTS, MAP_MAX_MOE, percent=True,
    )

    person_design = SurveyDesign.for_persons(persons, config)
    household_design = SurveyDesign.for_households(households, config)
    workers = person_design.filter(persons['is_worker'])

    tables = {}
    tables['workers_by_risk'] = workers.total(by=['at_risk'])
    tables['workers_by_race'] = workers.mean('at_risk', by=['race_ethnicity'])
    tables['households_by_risk'] = household_design.total(by=['any_risk'])
    tables['households_by_income_bucket'] = household_design.mean(
        'any_risk', by=['income_bucket'],
    )

    renters = household_design.filter(households['renter'])
    tables['rent_burden_by_risk'] = pd.concat([
        renters.mean(flag, by=['any_risk'])
        for flag in ('rent_burdened', 'moderately_rent_burdened', 'severely_rent_burdened')
    ], ignore_index=True)

    at_risk = household_design.filter(households['any_risk'])
    by_borough = ['borough'] if 'borough' in households.columns else None
    tables['risk_wage_share_median'] = at_risk.estimate(
        'risk_wage_share_of_income', StatisticKind.MEDIAN, by=by_borough,
    )

    at_risk_renters = household_design.filter(
        households['any_risk'].fillna(False).astype(bool) & households['renter']
    )
    building_totals = at_risk_renters.total(by=['building_size'])
    tables['building_size_shares'] = category_shares(
        building_totals, 'building_size', config=config,
    )

    if cols.puma in households.columns:
        puma_share = household_design.mean('any_risk', by=[cols.puma])
        tables['puma_any_risk_share'] = classifier.classify_frame(puma_share)

    for name, table in tables.items():
        logger.info(f"Estimated {name}: {len(table)} rows")
    return tables


def run_pipeline(
    persons: pd.DataFrame,
    risk_table: pd.DataFrame,
    config: Optional[EstimationConfig] = None,
    classifier: Optional[ReliabilityClassifier] = None,
    occupation_col: str = "occupation",
    flag_col: str = "at_risk",
) -> PipelineResult:
    """
    Run every stage on in-memory inputs.

    Args:
        persons: Person records already filtered to the geography of interest
        risk_table: Occupation risk crosswalk
        config: Estimation settings (ACS defaults when omitted)
        classifier: Map reliability classifier
        occupation_col: Occupation code column of the risk table
        flag_col: Risk flag column of the risk table

    Returns:
        PipelineResult with person, household and estimate tables
    """
    config = config or EstimationConfig()
    logger.info(f"Running pipeline on {len(persons):,} person records")

    derived, households = prepare_households(
        persons, risk_table, config, occupation_col, flag_col,
    )
    tables = estimate_tables(derived, households, config, classifier)
    return PipelineResult(
        persons=derived, households=households, tables=tables, config=config,
    )
