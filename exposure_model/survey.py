"""
Survey-weighted estimation with confidence intervals.

Estimates means/proportions, totals, medians and quantiles from weighted
microdata, optionally broken out by grouping columns, following ACS
conventions:

- Replicate variance: successive difference replication,
  Var = scale * sum_r (theta_r - theta)^2 with scale = 4/80 for the 80 ACS
  replicate weights
- Linearization variance: Taylor-series variance treating every record as
  its own primary sampling unit (with-replacement approximation), used when
  no replicate weights are available
- Quantile intervals under linearization use Woodruff's method (invert the
  interval of the estimated CDF), so they can be asymmetric

Quantile rule: the estimate is the first sorted value whose cumulative weight
reaches q * total weight. When the cumulative weight lands exactly on the
target, the estimate is the midpoint of that value and the next sorted value
(so the weighted median of 1, 2, 3, 4 with equal weights is 2.5).

Groups are formed from the `by` columns. Categorical columns contribute all
of their declared categories, so groups with no records still get a row:
totals of zero, and unknown means and quantiles. Groups whose records all
have zero weight get unknown estimates for every statistic.
"""

import itertools
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import EstimationConfig

logger = logging.getLogger(__name__)

# Relative tolerance for a cumulative weight landing on a quantile boundary
QUANTILE_BOUNDARY_RTOL = 1e-12


class StatisticKind(Enum):
    """Weighted statistic to estimate."""
    MEAN = "mean"           # Also proportions of 0/1 or boolean variables
    TOTAL = "total"
    MEDIAN = "median"
    QUANTILE = "quantile"


@dataclass(frozen=True)
class WeightedEstimate:
    """
    Point estimate with its confidence interval.

    Unknown values are None: an unknown estimate (zero total weight, missing
    values with na_rm=False) has unknown bounds, and a known estimate whose
    variance cannot be estimated (a single record) has unknown bounds.

    Attributes:
        statistic: Statistic name ("mean", "total", "median", "quantile")
        estimate: Point estimate
        standard_error: Standard error (implied by the interval for Woodruff)
        low: Lower confidence bound
        high: Upper confidence bound
        n: Unweighted number of records used
    """
    statistic: str
    estimate: Optional[float]
    standard_error: Optional[float] = None
    low: Optional[float] = None
    high: Optional[float] = None
    n: int = 0

    @property
    def is_known(self) -> bool:
        return self.estimate is not None

    @property
    def moe(self) -> Optional[float]:
        """Margin of error: the larger half-width of the interval."""
        if self.estimate is None or self.low is None or self.high is None:
            return None
        return max(self.estimate - self.low, self.high - self.estimate)

    @classmethod
    def unknown(cls, statistic: str, n: int = 0) -> "WeightedEstimate":
        return cls(statistic=statistic, estimate=None, n=n)

    def as_record(self) -> dict:
        return {
            'statistic': self.statistic,
            'estimate': self.estimate,
            'standard_error': self.standard_error,
            'low': self.low,
            'high': self.high,
            'moe': self.moe,
            'n': self.n,
        }


# =============================================================================
# WEIGHTED STATISTICS
# =============================================================================

def weighted_quantile(values: np.ndarray, weights: np.ndarray, q: float) -> Optional[float]:
    """
    Weighted quantile with midpoint interpolation on exact boundaries.

    Args:
        values: Observed values (no NaN)
        weights: Non-negative weights
        q: Quantile level in [0, 1]

    Returns:
        The quantile, or None when the total weight is zero
    """
    positive = weights > 0
    v = values[positive]
    w = weights[positive]
    if len(v) == 0:
        return None

    order = np.argsort(v, kind='mergesort')
    v = v[order]
    cum = np.cumsum(w[order])
    total = cum[-1]
    target = q * total
    tol = QUANTILE_BOUNDARY_RTOL * total

    i = min(int(np.searchsorted(cum, target - tol, side='left')), len(v) - 1)
    if abs(cum[i] - target) <= tol and i < len(v) - 1:
        return float((v[i] + v[i + 1]) / 2)
    return float(v[i])


def weighted_mean(values: np.ndarray, weights: np.ndarray) -> Optional[float]:
    """Weighted mean, centered on the first value so constants come back exactly."""
    total_weight = weights.sum()
    if total_weight <= 0:
        return None
    shift = values[0]
    return float(shift + ((values - shift) * weights).sum() / total_weight)


def weighted_total(values: np.ndarray, weights: np.ndarray) -> float:
    return float((values * weights).sum())


def _linearized_variance(scores: np.ndarray) -> Optional[float]:
    """With-replacement variance of a total of per-record scores."""
    n = len(scores)
    if n < 2:
        return None
    centered = scores - scores.mean()
    return float(n / (n - 1) * (centered ** 2).sum())


# =============================================================================
# SURVEY DESIGN
# =============================================================================

class SurveyDesign:
    """
    Weighted microdata with optional replicate weights.

    Holds the data read-only; filter() returns a new design. Every estimate
    uses the EstimationConfig given at construction.
    """

    def __init__(
        self,
        data: pd.DataFrame,
        weight: str,
        replicate_weights: Optional[Sequence[str]] = None,
        config: Optional[EstimationConfig] = None,
    ):
        self.config = config or EstimationConfig()
        if weight not in data.columns:
            raise ValueError(f"Weight column not found: {weight}")
        missing = [c for c in (replicate_weights or []) if c not in data.columns]
        if missing:
            raise ValueError(f"Replicate weight columns not found: {missing[:5]}")

        self.data = data
        self.weight = weight
        self.replicate_weights = list(replicate_weights or [])

        weights = data[weight].to_numpy(dtype=float)
        if np.isnan(weights).any() or (weights < 0).any():
            raise ValueError(f"Weight column {weight} has missing or negative values")

        if self.config.variance_method == "replicate" and not self.replicate_weights:
            logger.warning(
                "Replicate variance requested but no replicate weights given; "
                "using linearization"
            )

    @classmethod
    def from_pattern(
        cls,
        data: pd.DataFrame,
        weight: str,
        replicate_pattern: str,
        config: Optional[EstimationConfig] = None,
    ) -> "SurveyDesign":
        """Design whose replicate weights are the columns matching a regex."""
        regex = re.compile(replicate_pattern)
        replicates = [c for c in data.columns if regex.match(c)]
        replicates.sort(key=lambda c: int(re.sub(r"\D", "", c) or 0))
        return cls(data, weight, replicates, config)

    @classmethod
    def for_persons(cls, persons: pd.DataFrame, config: Optional[EstimationConfig] = None) -> "SurveyDesign":
        """Person-weighted design (PERWT with REPWTP replicates)."""
        config = config or EstimationConfig()
        cols = config.columns
        return cls.from_pattern(persons, cols.person_weight, cols.person_replicate_pattern, config)

    @classmethod
    def for_households(cls, households: pd.DataFrame, config: Optional[EstimationConfig] = None) -> "SurveyDesign":
        """Household-weighted design (HHWT with REPWT replicates)."""
        config = config or EstimationConfig()
        cols = config.columns
        return cls.from_pattern(households, cols.household_weight, cols.household_replicate_pattern, config)

    @property
    def uses_replicates(self) -> bool:
        return self.config.variance_method == "replicate" and bool(self.replicate_weights)

    def filter(self, mask: Union[pd.Series, np.ndarray]) -> "SurveyDesign":
        """
        Restrict to a subpopulation.

        A nullable boolean mask treats unknown as excluded.
        """
        if isinstance(mask, pd.Series):
            mask = mask.astype("boolean").fillna(False).astype(bool).to_numpy()
        subset = self.data.loc[np.asarray(mask, dtype=bool)]
        return SurveyDesign(subset, self.weight, self.replicate_weights, self.config)

    def with_config(self, config: EstimationConfig) -> "SurveyDesign":
        return SurveyDesign(self.data, self.weight, self.replicate_weights, config)

    # -------------------------------------------------------------------------
    # Public estimators
    # -------------------------------------------------------------------------

    def mean(self, variable: str, by: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Weighted mean; for 0/1 or boolean variables, a proportion."""
        return self.estimate(variable, StatisticKind.MEAN, by=by)

    def total(self, variable: Optional[str] = None, by: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Weighted total; with no variable, the weighted count."""
        return self.estimate(variable, StatisticKind.TOTAL, by=by)

    def median(self, variable: str, by: Optional[Sequence[str]] = None) -> pd.DataFrame:
        return self.estimate(variable, StatisticKind.MEDIAN, by=by)

    def quantile(self, variable: str, q: float, by: Optional[Sequence[str]] = None) -> pd.DataFrame:
        return self.estimate(variable, StatisticKind.QUANTILE, by=by, q=q)

    def estimate(
        self,
        variable: Optional[str],
        statistic: Union[StatisticKind, str] = StatisticKind.MEAN,
        by: Optional[Sequence[str]] = None,
        q: Optional[float] = None,
    ) -> pd.DataFrame:
        """
        Estimate a statistic overall or per group.

        Args:
            variable: Column to summarize (None only for a weighted count)
            statistic: StatisticKind or its value
            by: Grouping columns
            q: Quantile level for StatisticKind.QUANTILE

        Returns:
            DataFrame with the group columns, then variable, statistic,
            estimate, standard_error, low, high, moe (Float64, pd.NA when
            unknown) and n
        """
        kind = StatisticKind(statistic)
        if kind is StatisticKind.MEDIAN:
            q = 0.5
        if kind in (StatisticKind.MEDIAN, StatisticKind.QUANTILE):
            if q is None or not 0 <= q <= 1:
                raise ValueError(f"Quantile level must be in [0, 1], got {q}")
        if variable is None and kind is not StatisticKind.TOTAL:
            raise ValueError(f"A variable is required for {kind.value}")

        by = list(by or [])
        missing = [c for c in by if c not in self.data.columns]
        if missing:
            raise ValueError(f"Grouping columns not found: {missing}")

        values = self._values(variable)
        weights = self.data[self.weight].to_numpy(dtype=float)
        replicates = (
            self.data[self.replicate_weights].to_numpy(dtype=float)
            if self.uses_replicates else None
        )

        rows = []
        for key, index in _group_indices(self.data, by):
            result = self._estimate_group(
                values[index],
                weights[index],
                replicates[index] if replicates is not None else None,
                kind,
                q,
            )
            if result.n > 0 and not result.is_known:
                logger.warning(f"{kind.value} of {variable} is unknown for group {dict(zip(by, key))}")
            record = dict(zip(by, key))
            record['variable'] = variable if variable is not None else 'count'
            record.update(result.as_record())
            if kind is StatisticKind.QUANTILE:
                record['statistic'] = f"quantile_{q:g}"
            rows.append(record)

        return _to_estimate_frame(rows, by, self.data)

    def estimate_all(
        self,
        variable: str,
        statistics: Sequence[Union[StatisticKind, str]] = (StatisticKind.MEAN, StatisticKind.MEDIAN),
        by: Optional[Sequence[str]] = None,
    ) -> pd.DataFrame:
        """Several statistics of one variable stacked into one frame."""
        frames = [self.estimate(variable, s, by=by) for s in statistics]
        return pd.concat(frames, ignore_index=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _values(self, variable: Optional[str]) -> np.ndarray:
        if variable is None:
            return np.ones(len(self.data))
        if variable not in self.data.columns:
            raise ValueError(f"Variable not found: {variable}")
        series = self.data[variable]
        if isinstance(series.dtype, pd.CategoricalDtype):
            raise ValueError(f"Variable {variable} is categorical; estimate it as a grouping column")
        try:
            return series.astype("Float64").to_numpy(dtype="float64", na_value=np.nan)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Variable {variable} is not numeric ({series.dtype})") from e

    def _estimate_group(
        self,
        y: np.ndarray,
        w: np.ndarray,
        reps: Optional[np.ndarray],
        kind: StatisticKind,
        q: Optional[float],
    ) -> WeightedEstimate:
        name = kind.value
        present = ~np.isnan(y)
        if not present.all():
            if not self.config.na_rm:
                return WeightedEstimate.unknown(name, n=len(y))
            y, w = y[present], w[present]
            reps = reps[present] if reps is not None else None
        n = len(y)

        if kind is StatisticKind.TOTAL:
            if n == 0:
                return WeightedEstimate(name, 0.0, 0.0, 0.0, 0.0, n=0)
            if w.sum() <= 0:
                return WeightedEstimate.unknown(name, n=n)
            theta = weighted_total(y, w)
            if reps is not None:
                se = self._replicate_se(theta, reps.T @ y)
            else:
                var = _linearized_variance(w * y)
                se = None if var is None else float(np.sqrt(var))
            return self._symmetric(name, theta, se, n)

        if w.sum() <= 0:
            return WeightedEstimate.unknown(name, n=n)

        if kind is StatisticKind.MEAN:
            theta = weighted_mean(y, w)
            if reps is not None:
                rep_weight = reps.sum(axis=0)
                with np.errstate(divide='ignore', invalid='ignore'):
                    thetas = np.where(rep_weight > 0, y[0] + (reps.T @ (y - y[0])) / rep_weight, np.nan)
                se = self._replicate_se(theta, thetas)
            else:
                var = _linearized_variance(w * (y - theta) / w.sum())
                se = None if var is None else float(np.sqrt(var))
            return self._symmetric(name, theta, se, n)

        theta = weighted_quantile(y, w, q)
        if reps is not None:
            thetas = np.full(reps.shape[1], np.nan)
            for j in range(reps.shape[1]):
                rep_theta = weighted_quantile(y, reps[:, j], q)
                if rep_theta is not None:
                    thetas[j] = rep_theta
            se = self._replicate_se(theta, thetas)
            return self._symmetric(name, theta, se, n)
        return self._woodruff(name, theta, y, w, q, n)

    def _replicate_se(self, theta: float, thetas: np.ndarray) -> Optional[float]:
        if np.isnan(thetas).any():
            return None
        return float(np.sqrt(self.config.replicate_scale * ((thetas - theta) ** 2).sum()))

    def _symmetric(self, name: str, theta: float, se: Optional[float], n: int) -> WeightedEstimate:
        if se is None:
            return WeightedEstimate(name, theta, None, None, None, n=n)
        half = self.config.critical_value * se
        return WeightedEstimate(name, theta, se, theta - half, theta + half, n=n)

    def _woodruff(
        self,
        name: str,
        theta: float,
        y: np.ndarray,
        w: np.ndarray,
        q: float,
        n: int,
    ) -> WeightedEstimate:
        """Quantile interval from the interval of the CDF at the estimate."""
        below = (y <= theta).astype(float)
        p_hat = weighted_mean(below, w)
        var = _linearized_variance(w * (below - p_hat) / w.sum())
        if var is None:
            return WeightedEstimate(name, theta, None, None, None, n=n)

        z = self.config.critical_value
        se_p = float(np.sqrt(var))
        low = weighted_quantile(y, w, max(0.0, q - z * se_p))
        high = weighted_quantile(y, w, min(1.0, q + z * se_p))
        se = (high - low) / (2 * z) if z > 0 else 0.0
        return WeightedEstimate(name, theta, se, min(low, theta), max(high, theta), n=n)


# =============================================================================
# GROUP-BY-REDUCE
# =============================================================================

def _levels(series: pd.Series) -> Tuple[list, np.ndarray, bool]:
    """Ordered levels, per-row level codes (-1 = missing) and whether levels are declared."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories), series.cat.codes.to_numpy(), True
    observed = pd.unique(series.dropna())
    try:
        levels = sorted(observed)
    except TypeError:
        levels = list(observed)
    codes = pd.Categorical(series, categories=levels).codes
    return levels, np.asarray(codes), False


def _group_indices(data: pd.DataFrame, by: List[str]):
    """
    Yield (key, row positions) for every group, in level order.

    Missing group values form their own group, placed last. Declared
    categorical levels are expanded against every observed combination of
    the other columns, so empty groups are yielded with no rows.
    """
    if not by:
        yield (), np.arange(len(data))
        return

    level_info = [_levels(data[c]) for c in by]
    # Missing values take the code one past the last level
    codes = np.column_stack([
        np.where(c < 0, len(levels), c) for levels, c, _ in level_info
    ]) if len(data) else np.empty((0, len(by)), dtype=int)

    positions: Dict[tuple, list] = {}
    for row, key in enumerate(map(tuple, codes)):
        positions.setdefault(key, []).append(row)

    declared = [i for i, (_, _, is_declared) in enumerate(level_info) if is_declared]
    keys = set(positions)
    if declared:
        free = [i for i in range(len(by)) if i not in declared]
        projections = {tuple(k[i] for i in free) for k in positions} or {()}
        for proj in projections:
            for combo in itertools.product(*(range(len(level_info[i][0])) for i in declared)):
                key = [0] * len(by)
                for i, code in zip(free, proj):
                    key[i] = code
                for i, code in zip(declared, combo):
                    key[i] = code
                keys.add(tuple(key))

    for key in sorted(keys):
        values = tuple(
            level_info[i][0][code] if code < len(level_info[i][0]) else pd.NA
            for i, code in enumerate(key)
        )
        yield values, np.asarray(positions.get(key, []), dtype=int)


def _to_estimate_frame(rows: List[dict], by: List[str], data: pd.DataFrame) -> pd.DataFrame:
    columns = by + ['variable', 'statistic', 'estimate', 'standard_error', 'low', 'high', 'moe', 'n']
    frame = pd.DataFrame(rows, columns=columns)
    for col in ('estimate', 'standard_error', 'low', 'high', 'moe'):
        frame[col] = pd.array(
            [pd.NA if v is None or pd.isna(v) else float(v) for v in frame[col]],
            dtype="Float64",
        )
    frame['n'] = frame['n'].astype(int)
    for col in by:
        dtype = data[col].dtype
        if isinstance(dtype, pd.CategoricalDtype):
            frame[col] = pd.Categorical(frame[col], dtype=dtype)
        elif pd.api.types.is_bool_dtype(dtype) or str(dtype) == "boolean":
            frame[col] = frame[col].astype("boolean")
    return frame


def estimate_table(
    design: SurveyDesign,
    variable: Optional[str],
    statistic: Union[StatisticKind, str] = StatisticKind.MEAN,
    by: Optional[Sequence[str]] = None,
    q: Optional[float] = None,
    config: Optional[EstimationConfig] = None,
) -> pd.DataFrame:
    """Functional form of SurveyDesign.estimate with an optional config override."""
    if config is not None:
        design = design.with_config(config)
    return design.estimate(variable, statistic, by=by, q=q)
