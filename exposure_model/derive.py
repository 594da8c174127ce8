"""
Person-level derived fields.

Every derived column is computed from raw IPUMS fields into a new column of a
copied frame; raw columns are never overwritten. Missing values stay
explicit (pd.NA in nullable dtypes).

Derived columns:
- wages: INCWAGE with N/A sentinels removed
- is_worker: wages known and positive
- at_risk: occupation risk flag, unknown unless the person has positive wages
- risk_wages: wages when at_risk, 0 when not, unknown when at_risk is unknown
- hh_income: HHINCOME with the N/A sentinel removed
- income_bucket: ordered household income bucket
- renter, rent_burdened, severely_rent_burdened, moderately_rent_burdened
- race_ethnicity: Latino of any race, otherwise race label
- building_size: building size category
- borough: NYC borough name (when COUNTYFIP is present)
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from .config import (
    BOROUGH_NAMES,
    BUILDING_SIZE_CATEGORIES,
    BUILDING_SIZE_ORDER,
    HHINCOME_SENTINEL,
    INCOME_BUCKETS,
    LATINO_LABEL,
    OTHER_RACE_LABEL,
    RACE_ETHNICITY_ORDER,
    RACE_LABELS,
    RENT_BURDEN_THRESHOLD,
    SEVERE_RENT_BURDEN_THRESHOLD,
    TENURE_RENTED,
    WAGE_SENTINELS,
    MicrodataColumns,
)

logger = logging.getLogger(__name__)


def clean_wages(raw: pd.Series) -> pd.Series:
    """INCWAGE as nullable floats, with N/A and missing sentinels as pd.NA."""
    wages = pd.to_numeric(raw, errors='coerce').astype("Float64")
    return wages.mask(raw.isin(WAGE_SENTINELS))


def clean_household_income(raw: pd.Series) -> pd.Series:
    income = pd.to_numeric(raw, errors='coerce').astype("Float64")
    return income.mask(raw == HHINCOME_SENTINEL)


def gate_risk_by_wages(occ_at_risk: pd.Series, wages: pd.Series) -> pd.Series:
    """
    Risk flag of the occupation a person currently holds.

    IPUMS reports an occupation for anyone who worked in the last five years.
    Without positive wages the person is not counted as holding it, so the
    flag becomes unknown.
    """
    has_wages = wages.gt(0).fillna(False).astype(bool)
    return occ_at_risk.astype("boolean").where(has_wages, pd.NA)


def risk_attributable_wages(at_risk: pd.Series, wages: pd.Series) -> pd.Series:
    """Wages when at risk, 0 when not at risk, pd.NA when the flag is unknown."""
    risky = at_risk.fillna(False).astype(bool)
    out = wages.astype("Float64").where(risky, 0.0)
    return out.mask(at_risk.isna())


def income_bucket(hh_income: pd.Series) -> pd.Series:
    """Ordered categorical of INCOME_BUCKETS; unknown income stays missing."""
    edges = [floor for _, floor, _ in INCOME_BUCKETS] + [np.inf]
    labels = [label for label, _, _ in INCOME_BUCKETS]
    # pd.NA -> NaN for pd.cut
    values = pd.Series(
        hh_income.astype("Float64").to_numpy(dtype="float64", na_value=np.nan),
        index=hh_income.index,
    )
    return pd.cut(values, bins=edges, labels=labels, right=False, ordered=True)


def rent_burden(
    gross_rent: pd.Series,
    hh_income: pd.Series,
    renter: pd.Series,
) -> pd.DataFrame:
    """
    Rent-burden flags for renter households.

    Burdened means gross monthly rent above 30% of monthly household income,
    severely burdened above 50%, moderately burdened is burdened but not
    severely. Owners and renters with zero, negative or unknown income are
    unknown.
    """
    monthly_income = hh_income.astype("Float64") / 12
    in_universe = renter.astype(bool) & monthly_income.gt(0).fillna(False).astype(bool)
    share = (gross_rent.astype("Float64") / monthly_income).mask(~in_universe)

    burdened = share.gt(RENT_BURDEN_THRESHOLD).astype("boolean")
    severe = share.gt(SEVERE_RENT_BURDEN_THRESHOLD).astype("boolean")
    return pd.DataFrame({
        'rent_share_of_income': share,
        'rent_burdened': burdened,
        'severely_rent_burdened': severe,
        'moderately_rent_burdened': burdened & ~severe,
    })


def race_ethnicity(race: pd.Series, hispanic: pd.Series) -> pd.Series:
    # HISPAN 1-4 are Latino origins; 0 = not Hispanic, 9 = not reported
    latino = hispanic.between(1, 4)
    labels = race.map(RACE_LABELS).fillna(OTHER_RACE_LABEL)
    labels = labels.where(~latino, LATINO_LABEL)
    return pd.Categorical(labels, categories=RACE_ETHNICITY_ORDER, ordered=False)


def building_size(unitsstr: pd.Series) -> pd.Series:
    return pd.Categorical(
        unitsstr.map(BUILDING_SIZE_CATEGORIES),
        categories=BUILDING_SIZE_ORDER,
    )


def derive_person_fields(
    persons: pd.DataFrame,
    columns: Optional[MicrodataColumns] = None,
) -> pd.DataFrame:
    """
    Add derived person fields to a copy of joined person records.

    Args:
        persons: Person records carrying `occ_at_risk` from the risk join
        columns: Column names (IPUMS defaults when omitted)

    Returns:
        New DataFrame with the derived columns listed in the module docstring
    """
    cols = columns or MicrodataColumns()
    if 'occ_at_risk' not in persons.columns:
        raise ValueError("Person records have no occ_at_risk column; run attach_risk_flags first")

    df = persons.copy()
    df['wages'] = clean_wages(df[cols.wage_income])
    df['is_worker'] = df['wages'].gt(0).fillna(False).astype(bool)
    df['at_risk'] = gate_risk_by_wages(df['occ_at_risk'], df['wages'])
    df['risk_wages'] = risk_attributable_wages(df['at_risk'], df['wages'])

    df['hh_income'] = clean_household_income(df[cols.household_income])
    df['income_bucket'] = income_bucket(df['hh_income'])
    df['renter'] = (df[cols.tenure] == TENURE_RENTED).astype(bool)

    burden = rent_burden(df[cols.gross_rent], df['hh_income'], df['renter'])
    for col in burden.columns:
        df[col] = burden[col]

    df['race_ethnicity'] = race_ethnicity(df[cols.race], df[cols.hispanic])
    df['building_size'] = building_size(df[cols.building_size])
    if cols.county in df.columns:
        df['borough'] = df[cols.county].map(BOROUGH_NAMES)

    logger.info(
        f"Derived person fields: {int(df['is_worker'].sum()):,} workers, "
        f"{int(df['at_risk'].eq(True).sum()):,} in more vulnerable occupations"
    )
    return df
