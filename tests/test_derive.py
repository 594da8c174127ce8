"""
Tests for person-level derived fields.
"""

import numpy as np
import pandas as pd
import pytest

from exposure_model.derive import (
    clean_wages,
    derive_person_fields,
    gate_risk_by_wages,
    income_bucket,
    race_ethnicity,
    rent_burden,
)


class TestWages:
    """Wage cleaning and risk gating."""

    def test_sentinels_become_unknown(self):
        wages = clean_wages(pd.Series([40000, 999999, 999998, 0]))
        assert wages.isna().tolist() == [False, True, True, False]
        assert wages.iloc[0] == 40000

    def test_risk_gated_by_positive_wages(self):
        occ_flag = pd.Series([True, True, False, pd.NA], dtype="boolean")
        wages = pd.Series([100.0, 0.0, pd.NA, 50.0], dtype="Float64")
        gated = gate_risk_by_wages(occ_flag, wages)

        assert gated.iloc[0] == True  # noqa: E712
        assert gated.iloc[1:].isna().all()

    def test_derived_wage_fields(self, derived_persons):
        df = derived_persons
        assert df['is_worker'].tolist() == [True, False, True, True, True, False, False]
        assert df['at_risk'].isna().tolist() == [False, True, False, False, False, True, True]
        assert df.loc[0, 'risk_wages'] == 40000
        assert df.loc[3, 'risk_wages'] == 0
        assert pd.isna(df.loc[5, 'risk_wages'])


class TestHousingFields:
    """Income buckets and rent burden."""

    def test_income_bucket_edges_left_closed(self):
        buckets = income_bucket(pd.Series([24999, 25000, 150000, -500, pd.NA], dtype="Float64"))
        assert buckets.iloc[0] == "Less than $25K"
        assert buckets.iloc[1] == "$25K-$50K"
        assert buckets.iloc[2] == "$150K and over"
        assert buckets.iloc[3] == "Less than $25K"
        assert pd.isna(buckets.iloc[4])

    def test_rent_burden_levels(self):
        rent = pd.Series([2000, 1500, 1000, 800, 900])
        income = pd.Series([60000, 30000, 60000, 0, 50000], dtype="Float64")
        renter = pd.Series([True, True, True, True, False])
        burden = rent_burden(rent, income, renter)

        # 40% burdened not severe; 60% severe; 20% not burdened
        assert burden['rent_burdened'].iloc[:3].tolist() == [True, True, False]
        assert burden['severely_rent_burdened'].iloc[:3].tolist() == [False, True, False]
        assert burden['moderately_rent_burdened'].iloc[:3].tolist() == [True, False, False]
        # Zero income renter and owner are unknown
        assert burden['rent_burdened'].iloc[3:].isna().all()
        assert burden['moderately_rent_burdened'].iloc[3:].isna().all()

    def test_exact_threshold_is_not_burdened(self):
        burden = rent_burden(
            pd.Series([1500]), pd.Series([60000.0], dtype="Float64"), pd.Series([True]),
        )
        assert burden['rent_share_of_income'].iloc[0] == pytest.approx(0.30)
        assert burden['rent_burdened'].iloc[0] == False  # noqa: E712


class TestLabels:
    """Race/ethnicity and building size."""

    def test_latino_of_any_race(self):
        labels = race_ethnicity(pd.Series([1, 2, 4, 6, 3, 1]), pd.Series([0, 0, 0, 0, 0, 2]))
        assert list(labels) == ["White", "Black", "Asian", "Asian", "Other", "Latino"]

    def test_building_size_categories(self, derived_persons):
        assert list(derived_persons['building_size'].astype(str)[[0, 2, 4, 5]]) == [
            "50+ units", "1 family", "5-19 units", "2-4 units",
        ]

    def test_borough(self, derived_persons):
        assert derived_persons['borough'].tolist()[:3] == ["Manhattan", "Manhattan", "Brooklyn"]


class TestDerivePersonFields:
    """Whole-frame derivation."""

    def test_raw_columns_unchanged(self, person_records, risk_table, derived_persons):
        for col in person_records.columns:
            pd.testing.assert_series_equal(
                derived_persons[col], person_records[col], check_names=True,
            )

    def test_requires_risk_join(self, person_records):
        with pytest.raises(ValueError, match="attach_risk_flags"):
            derive_person_fields(person_records)

    def test_hh_income_sentinel(self, derived_persons):
        assert not np.any(derived_persons['hh_income'].fillna(0) == 9999999)
