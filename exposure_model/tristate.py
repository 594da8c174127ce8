"""
Three-valued (true / false / unknown) risk flags.

Household risk classification folds the risk flags of its members. Nullable
booleans make the fold rules easy to get backwards, so the rules live here on
an explicit enumeration:

any:  all unknown -> UNKNOWN; any TRUE -> TRUE; otherwise FALSE
all:  all unknown -> UNKNOWN; any FALSE -> FALSE; otherwise TRUE

Unknown members are ignored once at least one member is classified, so a
household of TRUE and UNKNOWN members is TRUE under both folds.
"""

from enum import Enum
from typing import Iterable

import pandas as pd


class TriState(Enum):
    """Tagged true/false/unknown value."""
    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value) -> "TriState":
        """Convert a bool, nullable bool or TriState to a TriState."""
        if isinstance(value, TriState):
            return value
        if value is None or value is pd.NA:
            return cls.UNKNOWN
        try:
            if pd.isna(value):
                return cls.UNKNOWN
        except (TypeError, ValueError):
            pass
        return cls.TRUE if bool(value) else cls.FALSE

    @classmethod
    def fold_any(cls, values: Iterable) -> "TriState":
        n_true, n_false = _count(values)
        return cls.any_from_counts(n_true, n_false)

    @classmethod
    def fold_all(cls, values: Iterable) -> "TriState":
        n_true, n_false = _count(values)
        return cls.all_from_counts(n_true, n_false)

    @classmethod
    def any_from_counts(cls, n_true: int, n_false: int) -> "TriState":
        if n_true + n_false == 0:
            return cls.UNKNOWN
        return cls.TRUE if n_true > 0 else cls.FALSE

    @classmethod
    def all_from_counts(cls, n_true: int, n_false: int) -> "TriState":
        if n_true + n_false == 0:
            return cls.UNKNOWN
        return cls.FALSE if n_false > 0 else cls.TRUE

    def to_nullable(self):
        """True / False / pd.NA, for storage in a pandas "boolean" column."""
        if self is TriState.UNKNOWN:
            return pd.NA
        return self is TriState.TRUE

    @property
    def is_known(self) -> bool:
        return self is not TriState.UNKNOWN


def _count(values: Iterable) -> tuple:
    n_true = n_false = 0
    for value in values:
        state = TriState.from_value(value)
        if state is TriState.TRUE:
            n_true += 1
        elif state is TriState.FALSE:
            n_false += 1
    return n_true, n_false


def to_boolean_series(states: Iterable[TriState], index=None) -> pd.Series:
    """Pack TriState values into a pandas nullable boolean Series."""
    return pd.Series(
        [TriState.from_value(s).to_nullable() for s in states],
        index=index,
        dtype="boolean",
    )
