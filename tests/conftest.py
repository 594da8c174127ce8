"""
Pytest fixtures for exposure model tests.
"""

import pytest
import numpy as np
import pandas as pd
import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from exposure_model.config import EstimationConfig


# =============================================================================
# CONFIG FIXTURES
# =============================================================================

@pytest.fixture
def linearization_config():
    """90% intervals from Taylor linearization."""
    return EstimationConfig(variance_method="linearization")


@pytest.fixture
def replicate_config():
    """ACS default: 90% intervals from 80 SDR replicate weights."""
    return EstimationConfig()


# =============================================================================
# DATA FIXTURES
# =============================================================================

@pytest.fixture
def risk_table():
    """Raw crosswalk: 4720 (cashiers) more vulnerable, 1010 (programmers) not."""
    return pd.DataFrame({
        'occupation': [4720, 1010],
        'at_risk': ["yes", "no"],
    })


@pytest.fixture
def person_records():
    """
    Four hand-built households.

    1: at-risk worker + non-worker, renter, rent 40% of income
    2: at-risk worker + not-at-risk worker, owner
    3: not-at-risk worker, renter, rent 60% of income
    4: no classified workers, renter with zero income
    """
    return pd.DataFrame({
        'SERIAL':    [1, 1, 2, 2, 3, 4, 4],
        'PERNUM':    [1, 2, 1, 2, 1, 1, 2],
        'PERWT':     [100, 90, 50, 60, 80, 40, 45],
        'HHWT':      [100, 100, 50, 50, 80, 40, 40],
        'OCC':       [4720, 0, 4720, 1010, 1010, 4720, 9999],
        'INCWAGE':   [40000, 0, 50000, 70000, 30000, 999999, 0],
        'HHINCOME':  [60000, 60000, 120000, 120000, 30000, 0, 0],
        'OWNERSHP':  [2, 2, 1, 1, 2, 2, 2],
        'RENTGRS':   [2000, 2000, 0, 0, 1500, 800, 800],
        'RACE':      [1, 1, 2, 2, 4, 1, 1],
        'HISPAN':    [0, 0, 0, 0, 0, 1, 1],
        'UNITSSTR':  [10, 10, 3, 3, 7, 5, 5],
        'STATEFIP':  [36, 36, 36, 36, 36, 36, 36],
        'COUNTYFIP': [61, 61, 47, 47, 5, 81, 81],
        'PUMA':      [3801, 3801, 4001, 4001, 3701, 4101, 4101],
    })


def make_population(n_households: int = 400, n_replicates: int = 80, seed: int = 7) -> pd.DataFrame:
    """Seeded synthetic NYC extract with person and household replicate weights."""
    rng = np.random.default_rng(seed)
    occupations = [4720, 1010, 4110, 2310, 0]
    pumas = [3701, 3702, 3801, 3802, 4001, 4002, 4101, 4102]
    counties = {3701: 5, 3702: 5, 3801: 61, 3802: 61, 4001: 47, 4002: 47, 4101: 81, 4102: 81}

    rows = []
    for serial in range(1, n_households + 1):
        size = int(rng.integers(1, 5))
        hhwt = float(rng.integers(20, 200))
        hh_rep = hhwt * rng.uniform(0.5, 1.5, n_replicates)
        hhincome = int(rng.choice([0, 15000, 40000, 65000, 90000, 130000, 250000]))
        tenure = int(rng.choice([1, 2]))
        rent = int(rng.integers(500, 3500)) if tenure == 2 else 0
        puma = int(rng.choice(pumas))
        unitsstr = int(rng.choice([3, 4, 5, 6, 7, 8, 9, 10]))
        for pernum in range(1, size + 1):
            perwt = float(rng.integers(20, 200))
            wage = int(rng.choice([0, 0, 20000, 45000, 80000, 999999]))
            row = {
                'SERIAL': serial,
                'PERNUM': pernum,
                'PERWT': perwt,
                'HHWT': hhwt,
                'OCC': int(rng.choice(occupations)),
                'INCWAGE': wage,
                'HHINCOME': hhincome,
                'OWNERSHP': tenure,
                'RENTGRS': rent,
                'RACE': int(rng.choice([1, 2, 3, 4, 6, 8])),
                'HISPAN': int(rng.choice([0, 0, 0, 1, 4])),
                'UNITSSTR': unitsstr,
                'STATEFIP': 36,
                'COUNTYFIP': counties[puma],
                'PUMA': puma,
            }
            person_rep = perwt * rng.uniform(0.5, 1.5, n_replicates)
            for r in range(n_replicates):
                row[f'REPWTP{r + 1}'] = person_rep[r]
                row[f'REPWT{r + 1}'] = hh_rep[r]
            rows.append(row)
    return pd.DataFrame(rows)


@pytest.fixture
def synthetic_population():
    """Seeded synthetic extract (~1,000 persons, 80 replicates)."""
    return make_population()


@pytest.fixture
def synthetic_risk_table():
    return pd.DataFrame({
        'occupation': [4720, 1010, 4110, 2310],
        'at_risk': ["More vulnerable", "Less vulnerable", "More vulnerable", "Less vulnerable"],
    })


@pytest.fixture
def derived_persons(person_records, risk_table):
    """Hand-built records after the risk join and person derivation."""
    from exposure_model.derive import derive_person_fields
    from exposure_model.risk import attach_risk_flags, normalize_risk_table

    joined = attach_risk_flags(person_records, normalize_risk_table(risk_table))
    return derive_person_fields(joined)
