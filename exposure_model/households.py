"""
Household aggregation.

Folds person records sharing a household identifier into one household
record. Risk classification uses the TriState fold rules:

- any_risk: unknown if no member is classified, else true if any member is
  at risk, else false
- all_risk: unknown if no member is classified, else false if any classified
  member is not at risk, else true

Risk wages are summed treating unknown as zero, and their share of household
income is unknown whenever income is unknown or not positive.
"""

import logging
import re
from typing import Optional

import pandas as pd

from .config import MicrodataColumns
from .tristate import TriState

logger = logging.getLogger(__name__)

# Person-level columns carried from the reference person (lowest PERNUM)
REFERENCE_COLUMNS = [
    'hh_income', 'income_bucket', 'renter', 'rent_share_of_income',
    'rent_burdened', 'severely_rent_burdened', 'moderately_rent_burdened',
    'race_ethnicity', 'building_size', 'borough',
]


def risk_wage_share(total_risk_wages, household_income):
    """total_risk_wages / household_income, pd.NA when income is unknown or <= 0."""
    if household_income is None or pd.isna(household_income) or household_income <= 0:
        return pd.NA
    return float(total_risk_wages) / float(household_income)


def aggregate_household(members: pd.DataFrame) -> dict:
    """
    Aggregate one household's members.

    Args:
        members: Derived person records of a single household

    Returns:
        Dict with any_risk, all_risk (TriState), total_risk_wages and
        risk_wage_share_of_income
    """
    flags = list(members['at_risk'])
    total = float(members['risk_wages'].fillna(0).sum())
    income = members['hh_income'].iloc[0] if len(members) else pd.NA
    return {
        'any_risk': TriState.fold_any(flags),
        'all_risk': TriState.fold_all(flags),
        'total_risk_wages': total,
        'risk_wage_share_of_income': risk_wage_share(total, income),
    }


def aggregate_households(
    persons: pd.DataFrame,
    columns: Optional[MicrodataColumns] = None,
) -> pd.DataFrame:
    """
    Build the household table from derived person records.

    Args:
        persons: Output of derive_person_fields
        columns: Column names (IPUMS defaults when omitted)

    Returns:
        One row per household with weights, reference-person attributes,
        n_persons, n_workers, any_risk, all_risk (nullable boolean),
        total_risk_wages and risk_wage_share_of_income (Float64)
    """
    cols = columns or MicrodataColumns()
    hh = cols.household_id

    ordered = persons.sort_values([hh, cols.person_number], kind='mergesort')
    flags = ordered['at_risk'].astype("boolean")

    counts = pd.DataFrame({
        hh: ordered[hh],
        'n_true': flags.eq(True).fillna(False).astype(int),
        'n_false': flags.eq(False).fillna(False).astype(int),
        'risk_wages': ordered['risk_wages'].astype("Float64").fillna(0).astype(float),
        'is_worker': ordered['is_worker'].astype(int),
    }).groupby(hh, sort=True).agg(
        n_persons=('n_true', 'size'),
        n_true=('n_true', 'sum'),
        n_false=('n_false', 'sum'),
        total_risk_wages=('risk_wages', 'sum'),
        n_workers=('is_worker', 'sum'),
    )

    replicate_regex = re.compile(cols.household_replicate_pattern)
    carried = [cols.household_weight]
    carried += [c for c in ordered.columns if replicate_regex.match(c)]
    carried += [c for c in cols.geography + REFERENCE_COLUMNS if c in ordered.columns]
    carried += [cols.tenure, cols.gross_rent]
    carried = list(dict.fromkeys(c for c in carried if c in ordered.columns))

    # First row per household is the reference person; groupby.first would skip NA
    reference = ordered.drop_duplicates(hh, keep='first').set_index(hh)[carried]

    households = reference.join(counts, how='inner')
    households['any_risk'] = pd.array(
        [TriState.any_from_counts(t, f).to_nullable()
         for t, f in zip(households['n_true'], households['n_false'])],
        dtype="boolean",
    )
    households['all_risk'] = pd.array(
        [TriState.all_from_counts(t, f).to_nullable()
         for t, f in zip(households['n_true'], households['n_false'])],
        dtype="boolean",
    )
    households['risk_wage_share_of_income'] = pd.array(
        [risk_wage_share(w, i) for w, i in zip(
            households['total_risk_wages'],
            households['hh_income'] if 'hh_income' in households else [pd.NA] * len(households),
        )],
        dtype="Float64",
    )
    households = households.drop(columns=['n_true', 'n_false']).reset_index()

    logger.info(
        f"Aggregated {len(persons):,} persons into {len(households):,} households; "
        f"{int(households['any_risk'].eq(True).sum()):,} with any member at risk, "
        f"{int(households['any_risk'].isna().sum()):,} unclassified"
    )
    return households
