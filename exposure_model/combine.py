"""
Derived statistics from independently estimated totals.

Combines weighted totals and their margins of error with the standard ACS
approximation formulas, assuming independence between the inputs:

- Sum:        MOE = sqrt(sum of MOE_i^2)
- Proportion: p = X / Y, MOE = (1/Y) * sqrt(MOE_X^2 - p^2 * MOE_Y^2)
- Ratio:      R = X / Y, MOE = (1/Y) * sqrt(MOE_X^2 + R^2 * MOE_Y^2)
- Product:    MOE = sqrt(X^2 * MOE_Y^2 + Y^2 * MOE_X^2)

The proportion radicand can be negative. EstimationConfig.negative_radicand
selects what happens then: "ratio" switches to the ratio formula (Census
Bureau guidance), "clamp" returns a zero MOE and "unknown" returns an
unknown MOE. The formula actually used is recorded on the result.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .config import EstimationConfig, RadicandPolicy

logger = logging.getLogger(__name__)


def _known(x) -> bool:
    return x is not None and not pd.isna(x)


@dataclass(frozen=True)
class EstimateWithMOE:
    """
    A value and its additive margin of error.

    None marks an unknown value or MOE; unknowns propagate through arithmetic.

    Attributes:
        value: Point estimate
        moe: Margin of error at the confidence level of the inputs
        method: Formula that produced the MOE of a derived value
    """
    value: Optional[float]
    moe: Optional[float]
    method: Optional[str] = None

    def __post_init__(self):
        if _known(self.moe) and self.moe < 0:
            raise ValueError(f"Margin of error must be non-negative, got {self.moe}")

    @property
    def is_known(self) -> bool:
        return _known(self.value)

    @property
    def low(self) -> Optional[float]:
        if not (self.is_known and _known(self.moe)):
            return None
        return self.value - self.moe

    @property
    def high(self) -> Optional[float]:
        if not (self.is_known and _known(self.moe)):
            return None
        return self.value + self.moe

    def __add__(self, other: "EstimateWithMOE") -> "EstimateWithMOE":
        return combine_totals([self, other])

    def __sub__(self, other: "EstimateWithMOE") -> "EstimateWithMOE":
        if not (self.is_known and other.is_known):
            return EstimateWithMOE(None, None, "difference")
        return EstimateWithMOE(
            self.value - other.value,
            _root_sum_squares([self.moe, other.moe]),
            "difference",
        )

    def __mul__(self, other: "EstimateWithMOE") -> "EstimateWithMOE":
        if not (self.is_known and other.is_known):
            return EstimateWithMOE(None, None, "product")
        moe = None
        if _known(self.moe) and _known(other.moe):
            moe = math.sqrt(self.value ** 2 * other.moe ** 2 + other.value ** 2 * self.moe ** 2)
        return EstimateWithMOE(self.value * other.value, moe, "product")

    def ratio_to(self, other: "EstimateWithMOE") -> "EstimateWithMOE":
        """Ratio of two estimates where the numerator is not a subset of the denominator."""
        if not (self.is_known and other.is_known) or other.value == 0:
            return EstimateWithMOE(None, None, "ratio")
        ratio = self.value / other.value
        moe = None
        if _known(self.moe) and _known(other.moe):
            moe = math.sqrt(self.moe ** 2 + ratio ** 2 * other.moe ** 2) / abs(other.value)
        return EstimateWithMOE(ratio, moe, "ratio")

    def proportion_of(
        self,
        total: "EstimateWithMOE",
        policy: RadicandPolicy = "ratio",
    ) -> "EstimateWithMOE":
        """
        Share of a total that contains this estimate.

        Args:
            total: Estimate of the whole (numerator is a subset of it)
            policy: Behavior when the radicand is negative

        Returns:
            EstimateWithMOE with method "proportion", "ratio", "clamp" or
            "unknown" naming how the MOE was obtained
        """
        if not (self.is_known and total.is_known) or total.value == 0:
            return EstimateWithMOE(None, None, "proportion")
        share = self.value / total.value
        if not (_known(self.moe) and _known(total.moe)):
            return EstimateWithMOE(share, None, "proportion")

        radicand = self.moe ** 2 - share ** 2 * total.moe ** 2
        if radicand >= 0:
            return EstimateWithMOE(share, math.sqrt(radicand) / abs(total.value), "proportion")

        logger.warning(
            f"Negative radicand in proportion MOE (share={share:.4f}); applying '{policy}' policy"
        )
        if policy == "ratio":
            moe = math.sqrt(self.moe ** 2 + share ** 2 * total.moe ** 2) / abs(total.value)
            return EstimateWithMOE(share, moe, "ratio")
        if policy == "clamp":
            return EstimateWithMOE(share, 0.0, "clamp")
        if policy == "unknown":
            return EstimateWithMOE(share, None, "unknown")
        raise ValueError(f"Unknown radicand policy: {policy}")


def _root_sum_squares(moes: Iterable[Optional[float]]) -> Optional[float]:
    moes = list(moes)
    if not all(_known(m) for m in moes):
        return None
    return math.sqrt(sum(m ** 2 for m in moes))


def combine_totals(estimates: Sequence[EstimateWithMOE]) -> EstimateWithMOE:
    """Sum of independent totals; MOE is the root sum of squared MOEs."""
    estimates = list(estimates)
    if not estimates or not all(e.is_known for e in estimates):
        return EstimateWithMOE(None, None, "sum")
    return EstimateWithMOE(
        sum(e.value for e in estimates),
        _root_sum_squares(e.moe for e in estimates),
        "sum",
    )


def category_shares(
    totals: pd.DataFrame,
    category: str,
    value_col: str = "estimate",
    moe_col: str = "moe",
    by: Optional[Sequence[str]] = None,
    config: Optional[EstimationConfig] = None,
) -> pd.DataFrame:
    """
    Shares of disjoint categories in their combined total, with MOEs.

    Args:
        totals: One row per category (per `by` group) with a total and its MOE,
            e.g. the output of SurveyDesign.total(by=[category])
        category: Column naming the category
        value_col: Column holding the category total
        moe_col: Column holding the category total's MOE
        by: Outer grouping columns; shares are computed within each group
        config: Supplies the negative radicand policy

    Returns:
        DataFrame with by columns, category, total, total_moe,
        combined_total, combined_moe, share, share_moe, share_low,
        share_high and moe_method
    """
    config = config or EstimationConfig()
    by = list(by or [])
    missing = [c for c in by + [category, value_col, moe_col] if c not in totals.columns]
    if missing:
        raise ValueError(f"Totals table is missing columns: {missing}")

    rows: List[dict] = []
    groups = totals.groupby(by, sort=False, observed=True, dropna=False) if by else [((), totals)]
    for key, frame in groups:
        key = key if isinstance(key, tuple) else (key,)
        parts = [
            EstimateWithMOE(
                None if pd.isna(v) else float(v),
                None if pd.isna(m) else float(m),
            )
            for v, m in zip(frame[value_col], frame[moe_col])
        ]
        combined = combine_totals(parts)
        for cat, part in zip(frame[category], parts):
            share = part.proportion_of(combined, config.negative_radicand)
            row = dict(zip(by, key))
            row.update({
                category: cat,
                'total': part.value,
                'total_moe': part.moe,
                'combined_total': combined.value,
                'combined_moe': combined.moe,
                'share': share.value,
                'share_moe': share.moe,
                'share_low': share.low,
                'share_high': share.high,
                'moe_method': share.method,
            })
            rows.append(row)

    out = pd.DataFrame(rows, columns=by + [
        category, 'total', 'total_moe', 'combined_total', 'combined_moe',
        'share', 'share_moe', 'share_low', 'share_high', 'moe_method',
    ])
    for col in ('total', 'total_moe', 'combined_total', 'combined_moe',
                'share', 'share_moe', 'share_low', 'share_high'):
        out[col] = pd.array(
            [pd.NA if v is None or pd.isna(v) else float(v) for v in out[col]],
            dtype="Float64",
        )
    if isinstance(totals[category].dtype, pd.CategoricalDtype):
        out[category] = pd.Categorical(out[category], dtype=totals[category].dtype)
    return out
