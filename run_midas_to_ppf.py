#!/usr/bin/env python3
"""
MIDAS to Parsybone Property Converter
=====================================

Converts a MIDAS data file into one Parsybone property file (.ppf) per
experimental setup.

Usage:
    # Convert next to the input file
    python run_midas_to_ppf.py data.csv

    # Custom output directory and configuration
    python run_midas_to_ppf.py data.csv --config convert.json --output ./properties

Features:
    - Configurable via JSON and command-line flags
    - Column roles read from MIDAS header tags
    - Consecutive duplicate and loop removal from time series
    - Comprehensive logging
    - Run manifest

Author: MIDAS Conversion Tools
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import traceback
from dataclasses import asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from midas_ppf_pipeline import (
    ColumnClassifier,
    ColumnDescriptor,
    ColumnRole,
    ConversionConfig,
    Experiment,
    ExperimentSetup,
    MidasTable,
    build_experiment,
    columns_of_role,
    find_experiment_setups,
    load_midas_table,
    perturbation_positions,
)
from ppf_writer import property_path, unique_paths, write_property
from series_reduction import reduce_series

__version__ = "1.1.0"


# =============================================================================
# LOGGING SETUP
# =============================================================================

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(message)s'
CONSOLE_FORMAT = '%(levelname)-8s | %(message)s'


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(
    log_dir: Optional[Path],
    run_name: str,
    log_level: str = "INFO",
    log_to_console: bool = True,
) -> Tuple[logging.Logger, Optional[Path]]:
    """
    Route the MidasToPpf loggers of one conversion run.

    The file log (DEBUG, one per run, named after the input file) is written
    only when ``log_dir`` is given; the console shows ``log_level`` and up.
    Returns the logger and the path of its log file, if any.
    """
    logger = logging.getLogger("MidasToPpf")
    logger.setLevel(logging.DEBUG)

    # Handlers of a previous run in this process
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"midas_to_ppf_{run_name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        logger.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG, LOG_FORMAT))

    if log_to_console:
        level = getattr(logging, log_level.upper())
        logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level, CONSOLE_FORMAT))

    return logger, log_file


# =============================================================================
# MAIN CONVERTER CLASS
# =============================================================================

class MidasToPpfConverter:
    """
    Batch conversion of one MIDAS file.

    Every setup is built and validated before the first property file is
    written, so a failure never leaves a partial set of outputs behind.
    """

    def __init__(
        self,
        input_path: Union[str, Path],
        config: Optional[ConversionConfig] = None,
        output_dir: Optional[Union[str, Path]] = None,
        log_level: str = "INFO",
        log_to_console: bool = True,
        log_dir: Optional[Union[str, Path]] = None,
        log_to_file: bool = True,
    ):
        """
        Initialize the converter.

        Parameters
        ----------
        input_path : str or Path
            MIDAS file to convert
        config : ConversionConfig, optional
            Conversion settings (defaults if omitted)
        output_dir : str or Path, optional
            Output directory (overrides config)
        log_level : str
            Console logging level (DEBUG, INFO, WARNING, ERROR)
        log_to_console : bool
            Whether to echo log messages to stdout
        log_dir : str or Path, optional
            Directory of the run log (default: <output>/logs)
        log_to_file : bool
            Whether to write a run log at all
        """
        self.input_path = Path(input_path)
        self.config = (config or ConversionConfig()).validate()

        if output_dir:
            self.output_dir = Path(output_dir)
        elif self.config.output_dir:
            self.output_dir = Path(self.config.output_dir)
        else:
            self.output_dir = self.input_path.parent

        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Setup logging
        if log_to_file:
            log_dir = Path(log_dir) if log_dir else self.output_dir / "logs"
        else:
            log_dir = None
        self.logger, self.log_file = setup_logging(
            log_dir, self.input_path.stem, log_level, log_to_console
        )

        self.classifier = ColumnClassifier.from_config(self.config)

        # Data storage
        self.table: Optional[MidasTable] = None
        self.columns: List[ColumnDescriptor] = []
        self.setups: List[ExperimentSetup] = []
        self.experiments: List[Experiment] = []

        # Track timing
        self.timing: Dict[str, float] = {}

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------
    def _log_step(self, step: str, message: str):
        self.logger.info(f"[{step}] {message}")

    def _log_timing(self, step: str, duration: float):
        self.timing[step] = duration
        self.logger.debug(f"[{step}] Completed in {duration:.3f} seconds")

    # =================================================================
    # Converter runner
    # =================================================================
    def run(self) -> Dict[str, Path]:
        """Run the complete conversion."""
        start_time = time.time()

        self.logger.info("=" * 70)
        self.logger.info("MIDAS TO PARSYBONE PROPERTY CONVERSION")
        self.logger.info("=" * 70)
        self.logger.info(f"Input: {self.input_path}")
        self.logger.info(f"Output: {self.output_dir}")
        self.logger.info(f"Non-integral policy: {self.config.on_non_integral}")
        self.logger.info(f"Simplify series: {self.config.simplify}")
        self.logger.info("=" * 70)

        output_files: Dict[str, Path] = {}

        try:
            # Step 1: Load table
            self._step_load_table()

            # Step 2: Classify columns
            self._step_classify_columns()

            # Step 3: Partition setups
            self._step_partition_setups()

            # Step 4: Build and simplify series
            self._step_build_experiments()

            # Step 5: Write property files
            output_files.update(self._step_write_properties())

            # Step 6: Save manifest
            if self.config.write_manifest:
                output_files["manifest"] = self._save_manifest(output_files)

            total_time = time.time() - start_time
            self.logger.info("=" * 70)
            self.logger.info("CONVERSION COMPLETE")
            self.logger.info(f"Total time: {total_time:.2f} seconds")
            self.logger.info(f"Property files: {len(self.experiments)}")
            self.logger.info("=" * 70)

        except Exception as e:
            self.logger.error(f"Conversion failed: {e}")
            self.logger.error(traceback.format_exc())
            raise

        return output_files

    # =================================================================
    # Step 1 - Load table
    # =================================================================
    def _step_load_table(self):
        step = "1_load_table"
        start = time.time()

        self.table = load_midas_table(self.input_path, delimiter=self.config.delimiter)

        self._log_timing(step, time.time() - start)
        self._log_step(step, f"Loaded {self.table.n_rows:,} rows, {len(self.table.headers)} columns")

    # =================================================================
    # Step 2 - Classify columns
    # =================================================================
    def _step_classify_columns(self):
        step = "2_classify_columns"

        self.columns = self.classifier.describe_columns(self.table.headers)

        for role in ColumnRole:
            names = [c.name for c in columns_of_role(self.columns, role)]
            self._log_step(step, f"{role.value.capitalize()}: {names}")
        n_ignored = len(self.table.headers) - len(self.columns)
        if n_ignored:
            self._log_step(step, f"Ignored {n_ignored} column(s)")
        if not columns_of_role(self.columns, ColumnRole.MEASURED):
            self.logger.warning(f"[{step}] No measured ({self.config.measured_prefix}) columns found")

    # =================================================================
    # Step 3 - Partition setups
    # =================================================================
    def _step_partition_setups(self):
        step = "3_partition_setups"

        self.setups = find_experiment_setups(perturbation_positions(self.columns), self.table)

        self._log_step(step, f"Found {len(self.setups)} experimental setup(s)")

    # =================================================================
    # Step 4 - Build experiments
    # =================================================================
    def _step_build_experiments(self):
        step = "4_build_experiments"
        start = time.time()

        self.experiments = []
        for setup in self.setups:
            experiment = build_experiment(
                setup, self.columns, self.table, on_non_integral=self.config.on_non_integral
            )
            n_raw = experiment.n_timepoints
            if self.config.simplify:
                experiment = replace(experiment, series=reduce_series(experiment.series))
            self.logger.debug(
                f"[{step}] {setup.as_dict()}: {n_raw} -> {experiment.n_timepoints} time point(s)"
            )
            self.experiments.append(experiment)

        self._log_timing(step, time.time() - start)
        n_stable = sum(1 for e in self.experiments if e.n_timepoints == 1)
        self._log_step(step, f"Built {len(self.experiments)} experiment(s), {n_stable} stable")

    # =================================================================
    # Step 5 - Write property files
    # =================================================================
    def _step_write_properties(self) -> Dict[str, Path]:
        step = "5_write_properties"

        paths = unique_paths([
            property_path(
                self.input_path, e, self.output_dir, extension=self.config.property_extension
            )
            for e in self.experiments
        ])

        output_files = {}
        for experiment, path in zip(self.experiments, paths):
            output_files[path.stem] = write_property(experiment, path)
            self._log_step(step, f"Saved: {path}")

        return output_files

    # =================================================================
    # Manifest
    # =================================================================
    def _save_manifest(self, output_files: Dict[str, Path]) -> Path:
        """Save conversion manifest with metadata."""
        manifest: Dict[str, Any] = {
            "input_file": str(self.input_path),
            "conversion_date": datetime.now().isoformat(),
            "converter_version": __version__,
            "configuration": asdict(self.config),
            "columns": [
                {"position": c.position, "name": c.name, "role": c.role.value}
                for c in self.columns
            ],
            "experiments": [
                {
                    "stimulated": e.stimulated,
                    "inhibited": e.inhibited,
                    "n_timepoints": e.n_timepoints,
                    "stable": e.n_timepoints == 1,
                }
                for e in self.experiments
            ],
            "timing": self.timing,
            "log_file": str(self.log_file) if self.log_file else None,
            "output_files": {k: str(v) for k, v in output_files.items()},
        }

        manifest_path = self.output_dir / f"{self.input_path.stem}_manifest.json"
        with open(manifest_path, 'w') as f:
            json.dump(manifest, f, indent=2)

        self._log_step("manifest", f"Saved: {manifest_path}")
        return manifest_path


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert a MIDAS file into Parsybone property files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Convert next to the input file
    python run_midas_to_ppf.py data.csv

    # Keep non-integral measurements as undefined values
    python run_midas_to_ppf.py data.csv --on-non-integral undefined

    # Write raw series without duplicate or loop removal
    python run_midas_to_ppf.py data.csv --no-simplify
        """
    )

    parser.add_argument(
        "midas",
        help="Data file in the MIDAS format (.csv)"
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to JSON configuration file"
    )
    parser.add_argument(
        "--output", "-o",
        help="Output directory (default: next to the input file)"
    )
    parser.add_argument(
        "--delimiter", "-d",
        help="Field delimiter (default: ,)"
    )
    parser.add_argument(
        "--on-non-integral",
        choices=["raise", "undefined"],
        help="Fail on non-integral measurements, or keep them as undefined (default: raise)"
    )
    parser.add_argument(
        "--simplify",
        dest="simplify",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Remove consecutive duplicates and loops from series (default: True)"
    )
    parser.add_argument(
        "--manifest",
        dest="write_manifest",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="Write a JSON manifest of the conversion (default: True)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-dir",
        help="Directory of the run log (default: <output>/logs)"
    )
    parser.add_argument(
        "--log-file",
        dest="log_to_file",
        default=True,
        action=argparse.BooleanOptionalAction,
        help="Write a DEBUG log of the run (default: True)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    # Validate input exists
    midas_path = Path(args.midas)
    if not midas_path.exists():
        print(f"ERROR: MIDAS file not found: {midas_path}")
        sys.exit(1)

    config = ConversionConfig.from_json(args.config) if args.config else ConversionConfig()
    overrides = {
        "delimiter": args.delimiter,
        "on_non_integral": args.on_non_integral,
        "simplify": args.simplify,
        "write_manifest": args.write_manifest,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    converter = MidasToPpfConverter(
        input_path=midas_path,
        config=config,
        output_dir=args.output,
        log_level=args.log_level,
        log_dir=args.log_dir,
        log_to_file=args.log_to_file,
    )

    results = converter.run()

    # Print summary
    print("\nGenerated files:")
    for name, path in sorted(results.items()):
        print(f"  {name}: {path}")


if __name__ == "__main__":
    main()
