"""
Reporting Module

Formats estimate tables as text and draws them with their confidence
intervals.
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker

from .config import RISK_LABELS
from .pipeline import PipelineResult

# Grouping columns holding occupation risk flags
RISK_FLAG_COLUMNS = ("at_risk", "any_risk", "all_risk")


def _fmt(value, percent: bool) -> str:
    if value is None or pd.isna(value):
        return "n/a"
    return f"{value:.1%}" if percent else f"{value:,.0f}"


def _risk_label(value) -> str:
    if value is None or pd.isna(value):
        return "Unclassified"
    return RISK_LABELS[bool(value)]


def format_estimate_table(
    table: pd.DataFrame,
    group_cols: Optional[Sequence[str]] = None,
    percent: bool = False,
) -> pd.DataFrame:
    """
    Display-ready copy of an estimate table.

    Args:
        table: Output of SurveyDesign.estimate
        group_cols: Grouping columns to keep (all non-estimate columns if omitted)
        percent: Format values as percentages

    Returns:
        DataFrame with the group columns (risk flags as labels), "Estimate",
        "90% CI" style interval column and "Records"
    """
    value_cols = {'variable', 'statistic', 'estimate', 'standard_error', 'low', 'high', 'moe', 'n'}
    if group_cols is None:
        group_cols = [c for c in table.columns if c not in value_cols]

    out = table[list(group_cols)].copy()
    for col in group_cols:
        if col in RISK_FLAG_COLUMNS:
            out[col] = [_risk_label(v) for v in table[col]]
    if 'variable' in table.columns and table['variable'].nunique() > 1:
        out['Variable'] = table['variable']
    out['Estimate'] = [_fmt(v, percent) for v in table['estimate']]
    out['Interval'] = [
        f"{_fmt(lo, percent)} to {_fmt(hi, percent)}"
        for lo, hi in zip(table['low'], table['high'])
    ]
    out['Records'] = table['n'].astype(int)
    return out.reset_index(drop=True)


class EstimateReport:
    """
    Text and chart output for a pipeline run.
    """

    # Tables whose estimates are shares rather than counts or dollars
    PERCENT_TABLES = {
        'workers_by_race', 'households_by_income_bucket', 'rent_burden_by_risk',
        'risk_wage_share_median', 'puma_any_risk_share',
    }

    def __init__(self, result: PipelineResult):
        self.result = result
        self.level = result.config.confidence_level

    def generate_text_report(self) -> str:
        """Generate a plain-text summary of every estimate table."""
        lines = []

        lines.append("=" * 70)
        lines.append("OCCUPATIONAL JOB-LOSS RISK: HOUSEHOLD EXPOSURE REPORT")
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"Person records:  {len(self.result.persons):>12,}")
        lines.append(f"Households:      {len(self.result.households):>12,}")
        lines.append(f"Confidence:      {self.level:>12.0%}")
        lines.append(f"Variance method: {self.result.config.variance_method:>12}")
        lines.append("")

        for name, table in self.result.tables.items():
            lines.append(name.replace('_', ' ').upper())
            lines.append("-" * 70)
            if name == 'building_size_shares':
                for _, row in table.iterrows():
                    lines.append(
                        f"{str(row['building_size']):<20} "
                        f"{_fmt(row['share'], True):>8} +/- {_fmt(row['share_moe'], True):>7}"
                    )
            else:
                formatted = format_estimate_table(table, percent=name in self.PERCENT_TABLES)
                lines.append(formatted.to_string(index=False))
            lines.append("")

        lines.append("NOTES")
        lines.append("-" * 40)
        lines.append(f"- Intervals are {self.level:.0%} confidence intervals")
        lines.append("- n/a marks unknown estimates (no weighted records)")
        lines.append("- Risk flags count only persons with positive wage income")
        lines.append("")

        return "\n".join(lines)

    def plot_estimates(
        self,
        name: str,
        category: str,
        save_path: Optional[str] = None,
        show: bool = False,
    ) -> plt.Figure:
        """
        Horizontal bar chart of one table with confidence interval whiskers.

        Unknown estimates are left out of the chart.
        """
        table = self.result.table(name)
        known = table[table['estimate'].notna()]
        percent = name in self.PERCENT_TABLES

        labels = [str(v) for v in known[category]]
        est = known['estimate'].to_numpy(dtype=float, na_value=np.nan)
        low = known['low'].to_numpy(dtype=float, na_value=np.nan)
        high = known['high'].to_numpy(dtype=float, na_value=np.nan)
        err = np.vstack([np.nan_to_num(est - low), np.nan_to_num(high - est)])

        fig, ax = plt.subplots(figsize=(10, max(3, 0.5 * len(labels) + 1)))
        ax.barh(labels, est, xerr=err, color='steelblue', ecolor='black', capsize=3)
        ax.invert_yaxis()
        ax.set_title(name.replace('_', ' ').capitalize())
        ax.set_xlabel(f"Estimate ({self.level:.0%} CI)")
        if percent:
            ax.xaxis.set_major_formatter(mticker.PercentFormatter(1.0))
        else:
            ax.xaxis.set_major_formatter(mticker.StrMethodFormatter('{x:,.0f}'))
        ax.grid(True, axis='x', alpha=0.3)
        fig.tight_layout()

        if save_path:
            fig.savefig(save_path, dpi=150, bbox_inches='tight')
        if show:
            plt.show()
        return fig

    def display_summary(self, names: Optional[Sequence[str]] = None):
        """Print the estimate tables to the terminal."""
        from rich.console import Console
        from rich.table import Table
        from rich.panel import Panel

        console = Console()

        console.print(Panel(
            f"[bold blue]{len(self.result.households):,} households[/bold blue] from "
            f"{len(self.result.persons):,} person records\n"
            f"{self.level:.0%} intervals, {self.result.config.variance_method} variance",
            title="Household Exposure to Job-Loss Risk",
        ))

        for name in names or list(self.result.tables):
            source = self.result.table(name)
            if name == 'building_size_shares':
                continue
            formatted = format_estimate_table(source, percent=name in self.PERCENT_TABLES)

            table = Table(title=f"\n{name.replace('_', ' ').capitalize()}")
            for i, col in enumerate(formatted.columns):
                if col in ('Estimate', 'Interval', 'Records'):
                    table.add_column(col, justify="right", style="bold" if col == 'Estimate' else None)
                else:
                    table.add_column(str(col), style="cyan" if i == 0 else None)
            for row in formatted.itertuples(index=False):
                table.add_row(*["n/a" if pd.isna(v) else str(v) for v in row])
            console.print(table)

        if 'building_size_shares' in (names or self.result.tables):
            shares = self.result.table('building_size_shares')
            table = Table(title="\nBuilding size of at-risk renter households")
            table.add_column("Building size", style="cyan")
            table.add_column("Share", justify="right", style="bold")
            table.add_column("MOE", justify="right")
            table.add_column("Method")
            for _, row in shares.iterrows():
                table.add_row(
                    str(row['building_size']),
                    _fmt(row['share'], True),
                    _fmt(row['share_moe'], True),
                    str(row['moe_method']),
                )
            console.print(table)
