"""
Data integration layer for exposure_model.

This package provides the microdata loader and input validators:
- IPUMS USA person-level extract reader and geography filters
- Shape checks for person records and the occupation risk table

Example usage:
    >>> from exposure_model.data import read_microdata, filter_to_nyc
    >>> persons = filter_to_nyc(read_microdata("usa_00042.csv.gz"))
"""

from exposure_model.data.loader import (
    borough_of,
    filter_geography,
    filter_to_nyc,
    read_microdata,
    replicate_columns,
)
from exposure_model.data.validation import (
    MicrodataValidator,
    ValidationResult,
    validate_or_raise,
)

__all__ = [
    'borough_of',
    'filter_geography',
    'filter_to_nyc',
    'read_microdata',
    'replicate_columns',
    'MicrodataValidator',
    'ValidationResult',
    'validate_or_raise',
]
