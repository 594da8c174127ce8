"""
Occupation risk classification join.

Attaches a nullable boolean `at_risk` flag to every person record by
occupation code. Occupations missing from the crosswalk stay unknown; they
are never defaulted to "less vulnerable".
"""

import logging
from typing import Optional

import pandas as pd

from .config import MicrodataColumns
from .data.validation import MicrodataValidator, validate_or_raise

logger = logging.getLogger(__name__)

_TRUE_LABELS = {"yes", "y", "true", "t", "1", "more vulnerable", "vulnerable", "high"}
_FALSE_LABELS = {"no", "n", "false", "f", "0", "less vulnerable", "not vulnerable", "low"}


def _parse_flag(value):
    if value is None or value is pd.NA:
        return pd.NA
    if isinstance(value, str):
        label = value.strip().lower()
        if label in _TRUE_LABELS:
            return True
        if label in _FALSE_LABELS:
            return False
        if label == "":
            return pd.NA
        raise ValueError(f"Unrecognized risk flag: {value!r}")
    if pd.isna(value):
        return pd.NA
    if value not in (0, 1, True, False):
        raise ValueError(f"Unrecognized risk flag: {value!r}")
    return bool(value)


def normalize_risk_table(
    df: pd.DataFrame,
    occupation_col: str = "occupation",
    flag_col: str = "at_risk",
) -> pd.DataFrame:
    """
    Normalize a raw crosswalk to two columns: occupation (int), at_risk (boolean).

    Flags may be booleans, 0/1, "yes"/"no" or "more/less vulnerable" labels.
    Duplicate rows with the same flag collapse; conflicting duplicates fail
    validation.
    """
    missing = [c for c in (occupation_col, flag_col) if c not in df.columns]
    if missing:
        raise ValueError(f"Risk table is missing columns: {missing}")

    out = pd.DataFrame({
        'occupation': pd.to_numeric(df[occupation_col], errors='raise').astype("Int64"),
        'at_risk': pd.array([_parse_flag(v) for v in df[flag_col]], dtype="boolean"),
    })
    validate_or_raise(MicrodataValidator.validate_risk_table(out))
    return out.drop_duplicates().reset_index(drop=True)


def attach_risk_flags(
    persons: pd.DataFrame,
    risk_table: pd.DataFrame,
    columns: Optional[MicrodataColumns] = None,
) -> pd.DataFrame:
    """
    Left-join the normalized risk table onto person records.

    Args:
        persons: Person records
        risk_table: Output of normalize_risk_table

    Returns:
        Copy of persons with an `occ_at_risk` boolean column; unmatched
        occupation codes are pd.NA
    """
    cols = columns or MicrodataColumns()
    lookup = risk_table.set_index('occupation')['at_risk']

    df = persons.copy()
    codes = pd.to_numeric(df[cols.occupation], errors='coerce').astype("Int64")
    df['occ_at_risk'] = codes.map(lookup).astype("boolean")

    # OCC 0 is "not in universe", not an unmatched code
    coded = codes.notna() & (codes != 0)
    unmatched = coded & df['occ_at_risk'].isna()
    if unmatched.any():
        sample = sorted(codes[unmatched].unique().tolist())[:10]
        logger.warning(
            f"{int(unmatched.sum()):,} records have occupation codes missing from "
            f"the risk table (e.g. {sample}); their risk flag is unknown"
        )
    logger.info(
        f"Attached risk flags: {int(df['occ_at_risk'].eq(True).sum()):,} more vulnerable, "
        f"{int(df['occ_at_risk'].eq(False).sum()):,} less vulnerable"
    )
    return df
