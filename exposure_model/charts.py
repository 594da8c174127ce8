"""
Choropleth maps of PUMA-level estimates.

Boundary files come from outside (e.g. the NYC Open Data PUMA GeoJSON); this
module only joins estimates onto geography names and builds the figure.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .reliability import INSUFFICIENT_DATA

logger = logging.getLogger(__name__)

# Sequential palette for bins, grey for suppressed estimates
CLASS_COLORS = ["#fee5d9", "#fcae91", "#fb6a4a", "#de2d26", "#a50f15"]
INSUFFICIENT_COLOR = "#bdbdbd"


def join_geography(
    estimates: pd.DataFrame,
    geography: pd.DataFrame,
    key: str = "PUMA",
    geography_key: Optional[str] = None,
) -> pd.DataFrame:
    """
    Attach geography attributes (names, borough) to estimates by code.

    Estimates with no matching geography keep missing attributes.
    """
    geography_key = geography_key or key
    right = geography.rename(columns={geography_key: key})
    merged = estimates.merge(right, on=key, how='left', validate='many_to_one')
    extra = [c for c in right.columns if c != key]
    if extra:
        unmatched = merged[extra[0]].isna() & merged[key].notna()
        if unmatched.any():
            logger.warning(
                f"{int(unmatched.sum())} estimates have {key} codes missing from the geography table"
            )
    return merged


def choropleth_map(
    estimates: pd.DataFrame,
    geojson: dict,
    key: str = "PUMA",
    feature_key: str = "properties.puma",
    class_col: str = "reliability_class",
    title: Optional[str] = None,
    hover_name: Optional[str] = None,
) -> go.Figure:
    """
    Choropleth of classified estimates.

    Args:
        estimates: Output of ReliabilityClassifier.classify_frame
        geojson: FeatureCollection whose features carry the geography code
        key: Geography code column of estimates
        feature_key: Path of the code inside each GeoJSON feature
        class_col: Ordered categorical class column
        title: Figure title
        hover_name: Column shown as the hover title

    Returns:
        plotly Figure
    """
    if class_col not in estimates.columns:
        raise ValueError(f"Estimates have no {class_col} column; classify them first")

    categories = list(estimates[class_col].cat.categories)
    binned = [c for c in categories if c != INSUFFICIENT_DATA]
    palette = (CLASS_COLORS * (len(binned) // len(CLASS_COLORS) + 1))[:len(binned)]
    color_map = dict(zip(binned, palette))
    color_map[INSUFFICIENT_DATA] = INSUFFICIENT_COLOR

    frame = estimates.copy()
    # GeoJSON properties are usually strings
    frame['_location'] = frame[key].astype(str)
    frame[class_col] = frame[class_col].astype(str)

    hover_data = {}
    for col in ("estimate", "moe"):
        if col in frame.columns:
            frame[col] = frame[col].to_numpy(dtype=float, na_value=np.nan)
            hover_data[col] = ":.1%"
    hover_data['_location'] = False

    fig = px.choropleth(
        frame,
        geojson=geojson,
        locations='_location',
        featureidkey=feature_key,
        color=class_col,
        color_discrete_map=color_map,
        category_orders={class_col: categories},
        hover_name=hover_name,
        hover_data=hover_data,
    )
    fig.update_geos(fitbounds="locations", visible=False)
    fig.update_layout(
        title=title,
        legend_title_text="",
        margin=dict(l=0, r=0, t=40 if title else 0, b=0),
    )
    return fig
