#!/usr/bin/env python3
"""
MIDAS to Parsybone Conversion - Usage Examples
==============================================

This script demonstrates how to use the MIDAS conversion tools.
It includes:
  1. Creating a synthetic MIDAS file
  2. Inspecting column roles and experimental setups
  3. Simplifying a measured series
  4. Running the full conversion

Run this script to try the converter on synthetic data.
"""

from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from midas_ppf_pipeline import (
    ColumnClassifier,
    ConversionConfig,
    extract_experiments,
    find_experiment_setups,
    load_midas_table,
    perturbation_positions,
)
from ppf_writer import experiment_constraint, format_property
from run_midas_to_ppf import MidasToPpfConverter
from series_reduction import collapse_duplicates, reduce_series


# =============================================================================
# SYNTHETIC DATA GENERATION
# =============================================================================

def generate_synthetic_midas_data(
    stimuli: Optional[List[str]] = None,
    inhibitors: Optional[List[str]] = None,
    readouts: Optional[List[str]] = None,
    n_timepoints: int = 4,
    cell_line: str = "HepG2",
    random_seed: int = 42,
) -> pd.DataFrame:
    """
    Generate a synthetic MIDAS table for testing.

    Every on/off combination of stimuli and inhibitors gets a time course of
    ``n_timepoints`` rows. Readouts follow a random boolean walk that settles
    into a steady state, so simplification has duplicates to remove.

    Returns
    -------
    DataFrame
        Columns ``TR:<cell_line>:CellLine``, ``TR:<stimulus>``,
        ``TR:<inhibitor>i``, ``DA:ALL`` and ``DV:<readout>``; every cell a string.
    """
    stimuli = stimuli if stimuli is not None else ["EGF", "TNFa"]
    inhibitors = inhibitors if inhibitors is not None else ["PI3K"]
    readouts = readouts if readouts is not None else ["ERK", "AKT", "NFkB"]
    rng = np.random.default_rng(random_seed)

    perturbations = stimuli + inhibitors
    rows = []
    for combo in range(2 ** len(perturbations)):
        levels = [(combo >> bit) & 1 for bit in range(len(perturbations))]
        state = np.zeros(len(readouts), dtype=int)
        for t in range(n_timepoints):
            if t > 0 and t < n_timepoints - 1:
                state = rng.integers(0, 2, size=len(readouts))
            row = {f"TR:{cell_line}:CellLine": "1"}
            row.update({f"TR:{name}": str(v) for name, v in zip(stimuli, levels)})
            row.update({
                f"TR:{name}i": str(v)
                for name, v in zip(inhibitors, levels[len(stimuli):])
            })
            row["DA:ALL"] = str(t * 10)
            row.update({f"DV:{name}": str(v) for name, v in zip(readouts, state)})
            rows.append(row)

    return pd.DataFrame(rows)


def write_midas_csv(df: pd.DataFrame, path: Path, delimiter: str = ",") -> Path:
    """Write a MIDAS table without quoting or index."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [delimiter.join(df.columns)]
    lines += [delimiter.join(map(str, row)) for row in df.itertuples(index=False)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# =============================================================================
# EXAMPLE USAGE FUNCTIONS
# =============================================================================

def example_column_roles(midas_path: Path):
    """Example: Classify columns and list the experimental setups."""
    print("\n" + "="*70)
    print("EXAMPLE: Column Roles and Setups")
    print("="*70)

    table = load_midas_table(midas_path)
    classifier = ColumnClassifier()
    columns = classifier.describe_columns(table.headers)
    for column in columns:
        print(f"   {column.position:>3}  {column.role.value:<11} {column.name}")

    setups = find_experiment_setups(perturbation_positions(columns), table)
    print(f"\n   {len(setups)} setups")
    return setups


def example_series_reduction():
    """Example: Simplify a series with a repeated loop."""
    print("\n" + "="*70)
    print("EXAMPLE: Series Reduction")
    print("="*70)

    series = [[0, 0], [0, 0], [1, 1], [0, 0], [1, 1], [2, 2]]
    print(f"   Raw:                 {series}")
    print(f"   Without duplicates:  {collapse_duplicates(series).tolist()}")
    reduced = reduce_series(series)
    print(f"   Reduced:             {reduced.tolist()}")
    return reduced


def example_properties(midas_path: Path):
    """Example: Render the property text of each experiment."""
    print("\n" + "="*70)
    print("EXAMPLE: Property Rendering")
    print("="*70)

    table = load_midas_table(midas_path)
    experiments = extract_experiments(table)
    for experiment in experiments[:2]:
        experiment.series = reduce_series(experiment.series)
        print(f"\n   Constraint: {experiment_constraint(experiment) or '(none)'}")
        print(format_property(experiment))
    return experiments


def example_full_conversion(midas_path: Path, output_dir: Path) -> Dict[str, Path]:
    """Example: Run the converter end to end."""
    print("\n" + "="*70)
    print("EXAMPLE: Full Conversion")
    print("="*70)

    converter = MidasToPpfConverter(midas_path, ConversionConfig(), output_dir=output_dir)
    results = converter.run()
    print(f"\n   {len(results)} files written to {output_dir}")
    return results


# =============================================================================
# MAIN
# =============================================================================

def run_all_examples(work_dir: Path = Path("./test_midas_data")):
    """Run all example functions."""
    print("\n" + "#"*70)
    print("# MIDAS TO PARSYBONE CONVERSION - DEMONSTRATION")
    print("#"*70)

    print("\n1. Generating synthetic MIDAS data...")
    midas_path = write_midas_csv(generate_synthetic_midas_data(), work_dir / "synthetic.csv")
    print(f"   Saved to: {midas_path}")

    example_column_roles(midas_path)
    example_series_reduction()
    example_properties(midas_path)
    example_full_conversion(midas_path, work_dir / "properties")

    print("\n" + "#"*70)
    print("# DEMONSTRATION COMPLETE")
    print("#"*70)


if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1 and sys.argv[1].lower() == "reduction":
        example_series_reduction()
    else:
        run_all_examples()
