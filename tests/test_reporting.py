"""
Tests for text reports, charts and maps.
"""

import matplotlib.pyplot as plt
import pandas as pd
import plotly.graph_objects as go
import pytest

from exposure_model.charts import choropleth_map, join_geography
from exposure_model.pipeline import run_pipeline
from exposure_model.reliability import ReliabilityClassifier
from exposure_model.reporting import EstimateReport, format_estimate_table


@pytest.fixture
def hand_built_result(person_records, risk_table, linearization_config):
    return run_pipeline(person_records, risk_table, linearization_config)


@pytest.fixture
def puma_estimates():
    estimates = pd.DataFrame({
        'PUMA': [3701, 3801],
        'estimate': pd.array([0.25, 0.6], dtype="Float64"),
        'moe': pd.array([0.05, 0.3], dtype="Float64"),
    })
    classifier = ReliabilityClassifier(breakpoints=[0.2, 0.4], max_moe=0.1, percent=True)
    return classifier.classify_frame(estimates)


def _square(x):
    return [[[x, 0], [x + 1, 0], [x + 1, 1], [x, 1], [x, 0]]]


@pytest.fixture
def puma_geojson():
    return {
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'properties': {'puma': '3701'},
             'geometry': {'type': 'Polygon', 'coordinates': _square(0)}},
            {'type': 'Feature', 'properties': {'puma': '3801'},
             'geometry': {'type': 'Polygon', 'coordinates': _square(1)}},
        ],
    }


class TestFormatEstimateTable:
    """Display formatting."""

    def test_counts(self):
        table = pd.DataFrame({
            'group': ['a', 'b'],
            'variable': ['count', 'count'],
            'statistic': ['total', 'total'],
            'estimate': pd.array([1234.4, pd.NA], dtype="Float64"),
            'standard_error': pd.array([10.0, pd.NA], dtype="Float64"),
            'low': pd.array([1200.0, pd.NA], dtype="Float64"),
            'high': pd.array([1268.8, pd.NA], dtype="Float64"),
            'moe': pd.array([34.4, pd.NA], dtype="Float64"),
            'n': [12, 0],
        })
        out = format_estimate_table(table)

        assert list(out.columns) == ['group', 'Estimate', 'Interval', 'Records']
        assert out.loc[0, 'Estimate'] == "1,234"
        assert out.loc[0, 'Interval'] == "1,200 to 1,269"
        assert out.loc[1, 'Estimate'] == "n/a"

    def test_percent(self):
        table = pd.DataFrame({
            'variable': ['a', 'b'], 'statistic': ['mean', 'mean'],
            'estimate': [0.25, 0.5], 'low': [0.2, 0.4], 'high': [0.3, 0.6], 'n': [5, 6],
        })
        out = format_estimate_table(table, percent=True)
        assert out['Variable'].tolist() == ['a', 'b']
        assert out.loc[0, 'Estimate'] == "25.0%"

    def test_risk_flags_labelled(self, hand_built_result):
        out = format_estimate_table(hand_built_result.table('households_by_risk'))
        assert out['any_risk'].tolist() == ["Less vulnerable", "More vulnerable", "Unclassified"]


class TestEstimateReport:
    """Report on a pipeline run."""

    def test_text_report_sections(self, hand_built_result):
        text = EstimateReport(hand_built_result).generate_text_report()

        assert "HOUSEHOLD EXPOSURE REPORT" in text
        for name in hand_built_result.tables:
            assert name.replace('_', ' ').upper() in text
        assert "90% confidence intervals" in text

    def test_plot_returns_figure(self, hand_built_result, tmp_path):
        path = tmp_path / "households.png"
        fig = EstimateReport(hand_built_result).plot_estimates(
            'households_by_income_bucket', 'income_bucket', save_path=str(path),
        )
        assert isinstance(fig, plt.Figure)
        assert path.exists()
        plt.close(fig)

    def test_terminal_summary(self, hand_built_result, capsys):
        EstimateReport(hand_built_result).display_summary()
        out = capsys.readouterr().out
        assert "Household Exposure to Job-Loss Risk" in out
        assert "Building size" in out

    def test_plot_unknown_table(self, hand_built_result):
        with pytest.raises(KeyError):
            EstimateReport(hand_built_result).plot_estimates('nope', 'x')


class TestMaps:
    """Geography join and choropleth."""

    def test_join_geography(self, puma_estimates):
        names = pd.DataFrame({'puma_code': [3701], 'name': ["Riverdale"]})
        joined = join_geography(puma_estimates, names, geography_key='puma_code')

        assert joined['name'].iloc[0] == "Riverdale"
        assert pd.isna(joined['name'].iloc[1])
        assert len(joined) == len(puma_estimates)

    def test_choropleth(self, puma_estimates, puma_geojson):
        fig = choropleth_map(puma_estimates, puma_geojson, title="Households at risk")
        assert isinstance(fig, go.Figure)
        assert len(fig.data) >= 1

    def test_choropleth_requires_classes(self, puma_geojson):
        with pytest.raises(ValueError, match="classify them first"):
            choropleth_map(pd.DataFrame({'PUMA': [3701], 'estimate': [0.2]}), puma_geojson)
