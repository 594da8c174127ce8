"""
Record loader for IPUMS USA person-level extracts.

Reads an extract from disk and narrows it to the geography of interest.
Retrieving the extract from IPUMS is out of scope; any CSV (optionally
gzipped) with IPUMS variable names works.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd

from ..config import BOROUGH_NAMES, NYC_COUNTYFIPS, NYC_STATEFIP, MicrodataColumns

logger = logging.getLogger(__name__)


def replicate_columns(columns: Iterable[str], pattern: str) -> List[str]:
    """Replicate weight columns matching pattern, in replicate-number order."""
    regex = re.compile(pattern)
    matched = [c for c in columns if regex.match(c)]
    return sorted(matched, key=lambda c: int(re.sub(r"\D", "", c) or 0))


def read_microdata(
    path: Union[str, Path],
    columns: Optional[MicrodataColumns] = None,
    include_replicates: bool = True,
) -> pd.DataFrame:
    """
    Read a person-level extract, keeping only the columns the model uses.

    Args:
        path: CSV or CSV.gz file
        columns: Column names (IPUMS defaults when omitted)
        include_replicates: Keep REPWTP*/REPWT* replicate weight columns

    Returns:
        DataFrame of person records
    """
    cols = columns or MicrodataColumns()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Microdata extract not found: {path}")

    header = pd.read_csv(path, nrows=0).columns.tolist()
    wanted = [c for c in cols.required + cols.geography if c in header]
    if include_replicates:
        wanted += replicate_columns(header, cols.person_replicate_pattern)
        wanted += replicate_columns(header, cols.household_replicate_pattern)

    df = pd.read_csv(path, usecols=wanted)
    logger.info(f"Loaded {len(df):,} person records from {path.name}")
    return df


def filter_geography(
    df: pd.DataFrame,
    state: int,
    counties: Optional[Iterable[int]] = None,
    pumas: Optional[Iterable[int]] = None,
    columns: Optional[MicrodataColumns] = None,
) -> pd.DataFrame:
    """
    Keep records in a state, optionally narrowed to counties and/or PUMAs.

    Returns a new frame; the input is not modified.
    """
    cols = columns or MicrodataColumns()
    needed = [cols.state]
    if counties is not None:
        needed.append(cols.county)
    if pumas is not None:
        needed.append(cols.puma)
    missing = [c for c in needed if c not in df.columns]
    if missing:
        raise ValueError(f"Cannot filter geography, missing columns: {missing}")

    mask = df[cols.state] == state
    if counties is not None:
        mask &= df[cols.county].isin(list(counties))
    if pumas is not None:
        mask &= df[cols.puma].isin(list(pumas))

    out = df.loc[mask].reset_index(drop=True)
    logger.info(f"Kept {len(out):,} of {len(df):,} records after geography filter")
    return out


def filter_to_nyc(df: pd.DataFrame, columns: Optional[MicrodataColumns] = None) -> pd.DataFrame:
    """Keep records in the five New York City counties."""
    return filter_geography(df, NYC_STATEFIP, counties=NYC_COUNTYFIPS, columns=columns)


def borough_of(county: int) -> Optional[str]:
    """Borough name for an IPUMS COUNTYFIP code, None outside NYC."""
    return BOROUGH_NAMES.get(int(county)) if pd.notna(county) else None
