#!/usr/bin/env python3
"""
Run the household exposure analysis on an IPUMS USA extract.

Usage:
    python scripts/run_exposure_analysis.py usa_00042.csv.gz occupation_risk.csv

Output:
    output/report.txt  - text report
    output/<table>.csv - one CSV per estimate table
"""

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from exposure_model.config import EstimationConfig
from exposure_model.data import filter_to_nyc, read_microdata
from exposure_model.pipeline import run_pipeline
from exposure_model.reporting import EstimateReport


def main():
    """Read the extract and risk table, run the pipeline, write the outputs."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("extract", help="IPUMS USA person-level extract (CSV or CSV.gz)")
    parser.add_argument("risk_table", help="Occupation risk crosswalk (CSV)")
    parser.add_argument("--occupation-col", default="occupation")
    parser.add_argument("--flag-col", default="at_risk")
    parser.add_argument("--level", type=float, default=0.90, help="Confidence level")
    parser.add_argument(
        "--variance", choices=["replicate", "linearization"], default="replicate",
    )
    parser.add_argument("--output", default="output", help="Output directory")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = EstimationConfig(confidence_level=args.level, variance_method=args.variance)
    persons = filter_to_nyc(read_microdata(args.extract, config.columns), config.columns)
    risk_table = pd.read_csv(args.risk_table)

    try:
        result = run_pipeline(
            persons, risk_table, config,
            occupation_col=args.occupation_col, flag_col=args.flag_col,
        )
    except ValueError as e:
        print(f"Input rejected: {e}", file=sys.stderr)
        return 1

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = EstimateReport(result)
    (output_dir / "report.txt").write_text(report.generate_text_report())
    for name, table in result.tables.items():
        table.to_csv(output_dir / f"{name}.csv", index=False)

    report.display_summary()
    print(f"\nWrote {len(result.tables)} tables to {output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
