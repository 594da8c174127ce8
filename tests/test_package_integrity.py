"""
Regression tests for package wiring.
"""

import exposure_model
import exposure_model.data
from exposure_model.config import BUILDING_SIZE_ORDER, INCOME_BUCKETS, MicrodataColumns


def test_package_exports_resolve():
    for module in (exposure_model, exposure_model.data):
        for name in module.__all__:
            assert hasattr(module, name), f"{module.__name__} is missing {name}"


def test_version():
    assert exposure_model.__version__.count(".") == 2


def test_income_buckets_are_contiguous():
    for (_, _, ceiling), (_, floor, _) in zip(INCOME_BUCKETS, INCOME_BUCKETS[1:]):
        assert ceiling == floor


def test_building_size_order_has_no_duplicates():
    assert len(BUILDING_SIZE_ORDER) == len(set(BUILDING_SIZE_ORDER))


def test_household_columns_are_required_columns():
    cols = MicrodataColumns()
    assert set(cols.household_level) <= set(cols.required)
