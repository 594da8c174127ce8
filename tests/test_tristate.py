"""
Tests for three-valued risk flag folds.
"""

import itertools

import pandas as pd
import pytest

from exposure_model.tristate import TriState, to_boolean_series

T, F, U = TriState.TRUE, TriState.FALSE, TriState.UNKNOWN


class TestFromValue:
    """Conversion of raw flags."""

    @pytest.mark.parametrize("value, expected", [
        (True, T), (False, F), (1, T), (0, F),
        (None, U), (pd.NA, U), (float("nan"), U),
        (T, T), (U, U),
    ])
    def test_conversion(self, value, expected):
        assert TriState.from_value(value) is expected

    def test_to_nullable(self):
        assert T.to_nullable() is True
        assert F.to_nullable() is False
        assert U.to_nullable() is pd.NA


class TestFolds:
    """Household fold rules."""

    def test_all_unknown(self):
        assert TriState.fold_any([U, U]) is U
        assert TriState.fold_all([U, U]) is U

    def test_empty_is_unknown(self):
        assert TriState.fold_any([]) is U
        assert TriState.fold_all([]) is U

    def test_true_and_unknown_resolves_to_true(self):
        """Partially unknown with no FALSE is TRUE under both folds."""
        assert TriState.fold_any([T, U]) is T
        assert TriState.fold_all([T, U]) is T
        assert TriState.fold_all([U, T, U]) is T

    def test_true_and_false(self):
        assert TriState.fold_any([T, F]) is T
        assert TriState.fold_all([T, F]) is F

    def test_only_false(self):
        assert TriState.fold_any([F, U, F]) is F
        assert TriState.fold_all([F, U, F]) is F

    def test_accepts_nullable_booleans(self):
        assert TriState.fold_all([True, pd.NA]) is T
        assert TriState.fold_any([pd.NA, None]) is U

    @pytest.mark.parametrize("members", [
        list(p) for n in range(1, 4) for p in itertools.product([T, F, U], repeat=n)
    ])
    def test_rules_exhaustive(self, members):
        """Every household of up to three members follows the documented rules."""
        any_risk = TriState.fold_any(members)
        all_risk = TriState.fold_all(members)
        classified = [m for m in members if m is not U]

        if not classified:
            assert any_risk is U and all_risk is U
        elif T in classified and F not in classified:
            assert any_risk is T and all_risk is T
        elif T in classified and F in classified:
            assert any_risk is T and all_risk is F
        else:
            assert any_risk is F and all_risk is F

    def test_counts_match_folds(self):
        assert TriState.any_from_counts(0, 0) is U
        assert TriState.all_from_counts(2, 0) is T
        assert TriState.all_from_counts(2, 1) is F
        assert TriState.any_from_counts(0, 3) is F


def test_to_boolean_series():
    series = to_boolean_series([T, F, U])
    assert str(series.dtype) == "boolean"
    assert bool(series.iloc[0]) is True
    assert series.isna().tolist() == [False, False, True]
