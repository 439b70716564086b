"""
MIDAS to Parsybone Experiment Extraction
========================================

This module turns a MIDAS-style CSV table into per-condition experiments,
supporting:
  - Column role classification from header name patterns
  - Partitioning of rows into distinct experimental setups
  - Ordered, discretized measurement series per setup

Header vocabulary (defaults):
    TR:<name>:CellLine    cell line tag, ignored
    DV:<name>             measured value of <name>
    TR:<name>:Inhibitors  <name> is inhibited
    TR:<name>:Stimuli     <name> is stimulated (also "TR:<name> : Stimuli")
    TR:<name>i            <name> is inhibited
    TR:<name>             <name> is stimulated
    anything else         ignored (e.g. DA: time columns)

Input JSON config format (all keys optional):
{
    "delimiter": ",",
    "measured_prefix": "DV:",
    "perturbation_prefix": "TR:",
    "inhibitor_marker": "i",
    "on_non_integral": "raise",
    "simplify": true,
    "output_dir": null,
    "property_extension": ".ppf",
    "write_manifest": true
}
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger("MidasToPpf.pipeline")

NON_INTEGRAL_POLICIES = ("raise", "undefined")
UNDEFINED_VALUE = -1
INTEGER_TEXT = re.compile(r"[0-9]+")
MAX_MEASUREMENT_DIGITS = 18


# =============================================================================
# ERRORS
# =============================================================================

class MalformedTableError(ValueError):
    """The input table is not rectangular or has no header row."""


class ColumnVocabularyError(ValueError):
    """A header was recognized as a component but could not be given a role."""


class NonIntegralMeasurementError(ValueError):
    """A measured cell does not hold a non-negative integer."""

    def __init__(self, header: str, value: str, line_no: int):
        self.header = header
        self.value = value
        self.line_no = line_no
        super().__init__(
            f"Non-integral or out-of-range value {value!r} in column {header!r} at line {line_no} "
            "(measurements must be first discretized)."
        )


# =============================================================================
# CONFIGURATION & DATA CLASSES
# =============================================================================

@dataclass
class ConversionConfig:
    """Settings for a single MIDAS to property conversion."""
    delimiter: str = ","
    measured_prefix: str = "DV:"
    perturbation_prefix: str = "TR:"
    inhibitor_marker: str = "i"
    on_non_integral: str = "raise"
    simplify: bool = True
    output_dir: Optional[str] = None
    property_extension: str = ".ppf"
    write_manifest: bool = True

    def validate(self) -> "ConversionConfig":
        if len(self.delimiter) != 1:
            raise ValueError(f"delimiter must be a single character, got {self.delimiter!r}")
        if not self.measured_prefix or not self.perturbation_prefix:
            raise ValueError("measured_prefix and perturbation_prefix must not be empty")
        if len(self.inhibitor_marker) != 1:
            raise ValueError(
                f"inhibitor_marker must be a single character, got {self.inhibitor_marker!r}"
            )
        if self.on_non_integral not in NON_INTEGRAL_POLICIES:
            raise ValueError(
                f"on_non_integral must be one of {NON_INTEGRAL_POLICIES}, "
                f"got {self.on_non_integral!r}"
            )
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversionConfig":
        """Create ConversionConfig from a dictionary, ignoring unknown keys."""
        known = {f for f in cls.__dataclass_fields__}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known}).validate()

    @classmethod
    def from_json(cls, json_path: Union[str, Path]) -> "ConversionConfig":
        """Load configuration from JSON file."""
        json_path = Path(json_path)
        if not json_path.exists():
            raise FileNotFoundError(f"Config file not found: {json_path}")
        with open(json_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)


class ColumnRole(Enum):
    STIMULATED = "stimulated"
    INHIBITED = "inhibited"
    MEASURED = "measured"


@dataclass(frozen=True)
class ColumnDescriptor:
    """A table column that carries data for a named component."""
    position: int
    name: str
    role: ColumnRole


@dataclass(frozen=True)
class HeaderRule:
    """One header pattern; the ``name`` group yields the component name."""
    label: str
    pattern: Pattern[str]
    role: Optional[ColumnRole]


@dataclass
class MidasTable:
    """Header row plus a rectangular body of string cells."""
    headers: List[str]
    body: pd.DataFrame
    source: Optional[Path] = None
    line_numbers: List[int] = field(default_factory=list)

    @property
    def n_rows(self) -> int:
        return len(self.body)

    def line_of(self, row: int) -> int:
        """1-based line in the source file of body row `row`."""
        if self.line_numbers:
            return self.line_numbers[row]
        return row + 2


@dataclass(frozen=True)
class ExperimentSetup:
    """One combination of perturbation values, as (position, value) pairs."""
    conditions: Tuple[Tuple[int, str], ...]

    @classmethod
    def from_values(cls, positions: Sequence[int], values: Sequence[str]) -> "ExperimentSetup":
        return cls(tuple(sorted(zip(positions, (str(v) for v in values)))))

    def as_dict(self) -> Dict[int, str]:
        return dict(self.conditions)

    def sort_key(self) -> Tuple[str, ...]:
        return tuple(value for _, value in self.conditions)


@dataclass
class Experiment:
    """A setup together with its affected components and measured series."""
    setup: ExperimentSetup
    stimulated: Dict[str, int] = field(default_factory=dict)
    inhibited: Dict[str, int] = field(default_factory=dict)
    measured: List[str] = field(default_factory=list)
    series: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.int64))

    @property
    def n_timepoints(self) -> int:
        return int(self.series.shape[0])


# =============================================================================
# COLUMN CLASSIFICATION
# =============================================================================

def build_header_rules(
    measured_prefix: str = "DV:",
    perturbation_prefix: str = "TR:",
    inhibitor_marker: str = "i",
) -> List[HeaderRule]:
    """
    Build the ordered header rules.

    The order matters: patterns overlap (every inhibitor or stimulus tag is
    also a generic perturbation tag) and the first matching rule wins.
    """
    dv = re.escape(measured_prefix)
    tr = re.escape(perturbation_prefix)
    mark = re.escape(inhibitor_marker)
    return [
        HeaderRule("cell_line", re.compile(rf"{tr}.*:\s*CellLine"), None),
        HeaderRule("measured", re.compile(rf"{dv}(?P<name>.*)"), ColumnRole.MEASURED),
        HeaderRule(
            "inhibitors", re.compile(rf"{tr}(?P<name>.*?)\s*:\s*Inhibitors"), ColumnRole.INHIBITED
        ),
        HeaderRule(
            "stimuli", re.compile(rf"{tr}(?P<name>.*?)\s*:\s*Stimuli"), ColumnRole.STIMULATED
        ),
        HeaderRule("marked_inhibitor", re.compile(rf"{tr}(?P<name>.*){mark}"), ColumnRole.INHIBITED),
        HeaderRule(
            "stimulus", re.compile(rf"{tr}(?P<name>.*[^{mark}])"), ColumnRole.STIMULATED
        ),
    ]


DEFAULT_HEADER_RULES = build_header_rules()


class ColumnClassifier:
    """Map header strings to (component name, role) using ordered rules."""

    def __init__(self, rules: Optional[Sequence[HeaderRule]] = None):
        self.rules: Tuple[HeaderRule, ...] = tuple(
            DEFAULT_HEADER_RULES if rules is None else rules
        )

    @classmethod
    def from_config(cls, config: ConversionConfig) -> "ColumnClassifier":
        return cls(build_header_rules(
            measured_prefix=config.measured_prefix,
            perturbation_prefix=config.perturbation_prefix,
            inhibitor_marker=config.inhibitor_marker,
        ))

    def match(self, header: str) -> Optional[Tuple[HeaderRule, str]]:
        """Return the first matching rule and the derived name, if any."""
        header = header.strip()
        for rule in self.rules:
            m = rule.pattern.fullmatch(header)
            if m:
                return rule, m.groupdict().get("name") or ""
        return None

    def classify(self, header: str) -> Optional[Tuple[str, ColumnRole]]:
        """
        Classify a single header.

        Returns
        -------
        tuple or None
            ``(name, role)`` for a data-carrying column, None when the column
            is to be ignored.
        """
        matched = self.match(header)
        if matched is None:
            return None
        rule, name = matched
        name = name.strip()
        if not name:
            return None
        if rule.role is None:
            raise ColumnVocabularyError(
                f"Wrong column name {header!r}: rule {rule.label!r} names "
                f"component {name!r} but assigns no role"
            )
        return name, rule.role

    def describe_columns(self, headers: Sequence[str]) -> List[ColumnDescriptor]:
        """Classify all headers in order, keeping only data-carrying columns."""
        columns = []
        for position, header in enumerate(headers):
            result = self.classify(header)
            if result is None:
                logger.debug(f"Ignoring column {position}: {header!r}")
                continue
            name, role = result
            columns.append(ColumnDescriptor(position=position, name=name, role=role))
        return columns


def columns_of_role(columns: Sequence[ColumnDescriptor], role: ColumnRole) -> List[ColumnDescriptor]:
    return [c for c in columns if c.role == role]


def perturbation_positions(columns: Sequence[ColumnDescriptor]) -> List[int]:
    """Positions of all inhibitor columns followed by all stimulus columns."""
    return (
        [c.position for c in columns_of_role(columns, ColumnRole.INHIBITED)]
        + [c.position for c in columns_of_role(columns, ColumnRole.STIMULATED)]
    )


# =============================================================================
# DATA LOADING
# =============================================================================

def load_midas_table(path: Union[str, Path], delimiter: str = ",") -> MidasTable:
    """
    Read a delimited table with one header line.

    Cells are kept as stripped strings. Quoting is not interpreted and blank
    lines are skipped. Every data line must have exactly as many fields as
    the header line; field counts are taken from the raw lines, since pandas
    pads short rows.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"MIDAS file not found: {path}")

    numbered = [
        (line_no, line)
        for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1)
        if line.strip()
    ]
    if not numbered:
        raise MalformedTableError(f"{path}: file has no header row")

    n_headers = numbered[0][1].count(delimiter) + 1
    for line_no, line in numbered[1:]:
        n_fields = line.count(delimiter) + 1
        if n_fields != n_headers:
            raise MalformedTableError(
                f"{path}: data line {line_no} has {n_fields} fields, "
                f"header has {n_headers}"
            )

    raw = pd.read_csv(
        io.StringIO("\n".join(line for _, line in numbered)),
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
        quoting=csv.QUOTE_NONE,
        skip_blank_lines=False,
        engine="c",
    )

    headers = [str(h).strip() for h in raw.iloc[0].tolist()]
    body = raw.iloc[1:].reset_index(drop=True)
    body = pd.DataFrame(
        {k: body.iloc[:, k].str.strip() for k in range(len(headers))},
        index=body.index,
    )
    logger.debug(f"Loaded {len(body)} rows x {len(headers)} columns from {path}")
    return MidasTable(
        headers=headers,
        body=body,
        source=path,
        line_numbers=[line_no for line_no, _ in numbered[1:]],
    )


# =============================================================================
# SETUP PARTITIONING
# =============================================================================

def find_experiment_setups(positions: Sequence[int], table: MidasTable) -> List[ExperimentSetup]:
    """
    Collect the distinct perturbation-value combinations in the table.

    Values are compared as raw strings. The result is value-sorted: setups are
    ordered by their values read in ascending column position.
    """
    positions = list(positions)
    values = table.body.iloc[:, positions].to_numpy(dtype=object)
    setups = {ExperimentSetup.from_values(positions, tuple(row)) for row in values}
    return sorted(setups, key=ExperimentSetup.sort_key)


# =============================================================================
# SERIES BUILDING
# =============================================================================

def select_series_rows(setup: ExperimentSetup, table: MidasTable) -> pd.DataFrame:
    """Rows matching the setup on every perturbation column, in table order."""
    mask = np.ones(table.n_rows, dtype=bool)
    for position, value in setup.conditions:
        mask &= table.body.iloc[:, position].to_numpy(dtype=object) == value
    return table.body.loc[mask]


def parse_level(value: str) -> int:
    """Perturbation level of a setup cell; non-integer text counts as 0."""
    return int(value) if INTEGER_TEXT.fullmatch(value) else 0


def discretize_measurements(
    rows: pd.DataFrame,
    measured: Sequence[ColumnDescriptor],
    table: MidasTable,
    on_non_integral: str = "raise",
) -> np.ndarray:
    """
    Convert measured cells to a non-negative integer matrix.

    Parameters
    ----------
    rows : DataFrame
        Selected rows of ``table.body`` (index = body row number)
    measured : sequence of ColumnDescriptor
        Measured columns, in output order
    table : MidasTable
        Source table, used for header names and line numbers in diagnostics
    on_non_integral : {"raise", "undefined"}
        Raise NonIntegralMeasurementError, or store UNDEFINED_VALUE

    Integers with more than MAX_MEASUREMENT_DIGITS significant digits do not
    fit the series dtype and are treated as non-integral.
    """
    if on_non_integral not in NON_INTEGRAL_POLICIES:
        raise ValueError(f"Unknown non-integral policy: {on_non_integral!r}")

    result = np.zeros((len(rows), len(measured)), dtype=np.int64)
    for k, column in enumerate(measured):
        cells = rows.iloc[:, column.position]
        if cells.empty:
            continue
        header = table.headers[column.position]
        valid = (
            cells.str.fullmatch(INTEGER_TEXT.pattern).to_numpy(dtype=bool)
            & (cells.str.lstrip("0").str.len() <= MAX_MEASUREMENT_DIGITS).to_numpy(dtype=bool)
        )
        if not valid.all():
            if on_non_integral == "raise":
                bad = int(np.flatnonzero(~valid)[0])
                raise NonIntegralMeasurementError(
                    header=header,
                    value=cells.iloc[bad],
                    line_no=table.line_of(int(cells.index[bad])),
                )
            logger.debug(f"{int((~valid).sum())} undefined value(s) in column {header!r}")
        parsed = pd.to_numeric(cells.where(valid, str(UNDEFINED_VALUE)))
        result[:, k] = parsed.to_numpy(dtype=np.int64)
    return result


def build_experiment(
    setup: ExperimentSetup,
    columns: Sequence[ColumnDescriptor],
    table: MidasTable,
    on_non_integral: str = "raise",
) -> Experiment:
    """Assemble the experiment for one setup (series not yet simplified)."""
    values = setup.as_dict()
    rows = select_series_rows(setup, table)
    measured = columns_of_role(columns, ColumnRole.MEASURED)

    return Experiment(
        setup=setup,
        stimulated={
            c.name: parse_level(values[c.position])
            for c in columns_of_role(columns, ColumnRole.STIMULATED)
        },
        inhibited={
            c.name: parse_level(values[c.position])
            for c in columns_of_role(columns, ColumnRole.INHIBITED)
        },
        measured=[c.name for c in measured],
        series=discretize_measurements(rows, measured, table, on_non_integral),
    )


def extract_experiments(
    table: MidasTable,
    classifier: Optional[ColumnClassifier] = None,
    on_non_integral: str = "raise",
) -> List[Experiment]:
    """Classify, partition and build every experiment of a table."""
    classifier = classifier or ColumnClassifier()
    columns = classifier.describe_columns(table.headers)
    setups = find_experiment_setups(perturbation_positions(columns), table)
    return [build_experiment(s, columns, table, on_non_integral) for s in setups]
