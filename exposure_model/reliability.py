"""
Reliability classification of estimates for mapping.

Assigns each estimate to a bin defined by ordered breakpoints, or to an
"insufficient data" category when its margin of error is too large to
show. Bins are left-closed: with breakpoints b_0 < ... < b_k the bins are
(-inf, b_0), [b_0, b_1), ..., [b_k, +inf), so every known estimate falls in
exactly one bin. Unknown estimates or MOEs are insufficient data.
"""

import bisect
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = "Insufficient data"


def _format_break(value: float, percent: bool) -> str:
    return f"{value:.0%}" if percent else f"{value:,.4g}"


def default_labels(breakpoints: Sequence[float], percent: bool = False) -> List[str]:
    """Labels such as "Under 10%", "10% to 20%", "20% and over"."""
    fmt = [_format_break(b, percent) for b in breakpoints]
    labels = [f"Under {fmt[0]}"]
    labels += [f"{lo} to {hi}" for lo, hi in zip(fmt, fmt[1:])]
    labels.append(f"{fmt[-1]} and over")
    return labels


@dataclass
class ReliabilityClassifier:
    """
    Bin estimates, suppressing those with a large margin of error.

    Attributes:
        breakpoints: Strictly increasing bin edges
        max_moe: Suppression threshold; estimates with a larger MOE are
            insufficient data
        relative: Compare MOE / |estimate| (rather than MOE) to max_moe
        labels: One label per bin (len(breakpoints) + 1); generated if omitted
        percent: Format generated labels as percentages
    """
    breakpoints: Sequence[float]
    max_moe: float
    relative: bool = False
    labels: Optional[Sequence[str]] = None
    percent: bool = False
    categories: List[str] = field(init=False)

    def __post_init__(self):
        self.breakpoints = [float(b) for b in self.breakpoints]
        if not self.breakpoints:
            raise ValueError("At least one breakpoint is required")
        if any(b >= a for b, a in zip(self.breakpoints, self.breakpoints[1:])):
            raise ValueError(f"Breakpoints must be strictly increasing: {self.breakpoints}")
        if self.max_moe < 0:
            raise ValueError(f"max_moe must be non-negative, got {self.max_moe}")
        if self.labels is None:
            self.labels = default_labels(self.breakpoints, self.percent)
        if len(self.labels) != len(self.breakpoints) + 1:
            raise ValueError(
                f"Expected {len(self.breakpoints) + 1} labels, got {len(self.labels)}"
            )
        if INSUFFICIENT_DATA in self.labels:
            raise ValueError(f"'{INSUFFICIENT_DATA}' is reserved")
        self.categories = list(self.labels) + [INSUFFICIENT_DATA]

    def is_suppressed(self, estimate, moe) -> bool:
        if estimate is None or pd.isna(estimate) or moe is None or pd.isna(moe):
            return True
        if self.relative:
            if estimate == 0:
                return moe > 0
            return moe / abs(estimate) > self.max_moe
        return moe > self.max_moe

    def classify(self, estimate, moe) -> str:
        """Category of one estimate."""
        if self.is_suppressed(estimate, moe):
            return INSUFFICIENT_DATA
        return self.labels[bisect.bisect_right(self.breakpoints, float(estimate))]

    def classify_frame(
        self,
        estimates: pd.DataFrame,
        value_col: str = "estimate",
        moe_col: str = "moe",
        out_col: str = "reliability_class",
    ) -> pd.DataFrame:
        """Copy of estimates with an ordered categorical class column."""
        out = estimates.copy()
        classes = [self.classify(v, m) for v, m in zip(out[value_col], out[moe_col])]
        out[out_col] = pd.Categorical(classes, categories=self.categories, ordered=True)
        suppressed = sum(c == INSUFFICIENT_DATA for c in classes)
        if suppressed:
            logger.info(f"{suppressed} of {len(classes)} estimates suppressed as insufficient data")
        return out
