"""
Input-shape validation for microdata and the occupation risk table.

Shape violations (missing columns, wrong types, impossible codes) abort the
run before any estimate is produced; missing values inside valid columns do
not, they become explicit unknowns downstream.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd
from pandas.api import types as ptypes

from ..config import (
    BUILDING_SIZE_CATEGORIES,
    MicrodataColumns,
    TENURE_OWNED,
    TENURE_RENTED,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check."""
    passed: bool
    message: str
    details: Optional[dict] = None

    def __str__(self) -> str:
        status = "✓ PASS" if self.passed else "✗ FAIL"
        return f"{status}: {self.message}"


class MicrodataValidator:
    """
    Validation checks for IPUMS person records and the risk crosswalk.

    Checks:
    - Required columns present and numeric
    - No negative or missing sampling weights
    - Codes within their documented ranges
    - One row per (household, person number)
    - Household attributes identical within each household
    """

    # OWNERSHP: 0 = N/A (group quarters)
    VALID_TENURE = {0, TENURE_OWNED, TENURE_RENTED}
    # UNITSSTR: 0 = N/A
    VALID_BUILDING_SIZE = {0} | set(BUILDING_SIZE_CATEGORIES)
    # RACE general codes 1-9
    VALID_RACE = set(range(1, 10))
    # HISPAN: 0 = not Hispanic, 9 = not reported
    VALID_HISPAN = {0, 1, 2, 3, 4, 9}

    @staticmethod
    def validate_person_records(
        df: pd.DataFrame,
        columns: Optional[MicrodataColumns] = None,
    ) -> ValidationResult:
        """
        Validate a person-level extract.

        Args:
            df: Person records
            columns: Column names (IPUMS defaults when omitted)

        Returns:
            ValidationResult with pass/fail status and details
        """
        cols = columns or MicrodataColumns()
        issues = []

        if df.empty:
            return ValidationResult(passed=False, message="Person records are empty")

        missing = [c for c in cols.required if c not in df.columns]
        if missing:
            return ValidationResult(
                passed=False,
                message="Person records are missing required columns",
                details={'issues': [f"Missing columns: {missing}"]},
            )

        for col in cols.required:
            if not ptypes.is_numeric_dtype(df[col]):
                issues.append(f"Column {col} is not numeric ({df[col].dtype})")
        if issues:
            return ValidationResult(
                passed=False,
                message="Person records have non-numeric columns",
                details={'issues': issues},
            )

        for weight_col in (cols.person_weight, cols.household_weight):
            if df[weight_col].isna().any():
                issues.append(f"Missing values in weight column: {weight_col}")
            if (df[weight_col] < 0).any():
                issues.append(f"Negative values in weight column: {weight_col}")

        bad_tenure = ~df[cols.tenure].isin(MicrodataValidator.VALID_TENURE)
        if bad_tenure.any():
            issues.append(
                f"{int(bad_tenure.sum())} rows with out-of-range {cols.tenure} codes"
            )

        bad_size = ~df[cols.building_size].isin(MicrodataValidator.VALID_BUILDING_SIZE)
        if bad_size.any():
            issues.append(
                f"{int(bad_size.sum())} rows with out-of-range {cols.building_size} codes"
            )

        for col, valid in ((cols.race, MicrodataValidator.VALID_RACE),
                           (cols.hispanic, MicrodataValidator.VALID_HISPAN)):
            bad_codes = ~df[col].isin(valid)
            if bad_codes.any():
                issues.append(f"{int(bad_codes.sum())} rows with out-of-range {col} codes")

        for col in (cols.gross_rent, cols.wage_income):
            if (df[col] < 0).any():
                issues.append(f"Negative values in column: {col}")

        dupes = df.duplicated([cols.household_id, cols.person_number])
        if dupes.any():
            issues.append(f"{int(dupes.sum())} duplicate (household, person) keys")

        varying = MicrodataValidator._varying_household_columns(df, cols)
        if varying:
            issues.append(f"Household attributes vary within a household: {varying}")

        if issues:
            return ValidationResult(
                passed=False,
                message="Person record validation failed",
                details={'issues': issues},
            )

        return ValidationResult(
            passed=True,
            message=f"{len(df):,} person records passed validation",
        )

    @staticmethod
    def validate_risk_table(df: pd.DataFrame) -> ValidationResult:
        """
        Validate a normalized occupation risk table (occupation, at_risk).

        Args:
            df: Output of risk.normalize_risk_table

        Returns:
            ValidationResult with pass/fail status and details
        """
        if df.empty:
            return ValidationResult(passed=False, message="Risk table is empty")

        issues = []
        if df['occupation'].isna().any():
            issues.append("Missing occupation codes")

        conflicts = df.groupby('occupation')['at_risk'].nunique(dropna=False)
        conflicting = conflicts[conflicts > 1].index.tolist()
        if conflicting:
            issues.append(f"Conflicting risk flags for occupations: {conflicting[:10]}")

        if issues:
            return ValidationResult(
                passed=False,
                message="Risk table validation failed",
                details={'issues': issues},
            )

        return ValidationResult(
            passed=True,
            message=f"Risk table with {df['occupation'].nunique():,} occupations passed validation",
        )

    @staticmethod
    def _varying_household_columns(df: pd.DataFrame, cols: MicrodataColumns) -> List[str]:
        present = [c for c in cols.household_level if c in df.columns]
        counts = df.groupby(cols.household_id)[present].nunique(dropna=False)
        return [c for c in present if (counts[c] > 1).any()]


def validate_or_raise(result: ValidationResult) -> ValidationResult:
    """Raise ValueError for a failed validation, otherwise log and return it."""
    if not result.passed:
        issues = (result.details or {}).get('issues', [])
        for issue in issues:
            logger.error(issue)
        raise ValueError(f"{result.message}: {'; '.join(issues)}" if issues else result.message)
    logger.info(str(result))
    return result
