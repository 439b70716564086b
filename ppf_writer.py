"""
Parsybone property file (.ppf) output for MIDAS experiments.

Each experiment becomes one ``<SERIES>`` element::

    <SERIES experiment="EGF=1&PI3K=0">
        <EXPR values="ERK=1&AKT=0" />
        <EXPR values="ERK=1&AKT=1" />
    </SERIES>

A series reduced to a single time point is written as a stable state
(``stable="1"`` on its only ``<EXPR>``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from midas_ppf_pipeline import Experiment

logger = logging.getLogger("MidasToPpf.writer")

PROPERTY_EXTENSION = ".ppf"
INDENT = "    "


def experiment_name(experiment: Experiment) -> str:
    """Name suffix listing the components that were tampered with, e.g. '_EGF_PI3K'."""
    active = [n for n, level in experiment.stimulated.items() if level]
    active += [n for n, level in experiment.inhibited.items() if level]
    return "".join(f"_{name}" for name in active)


def experiment_constraint(experiment: Experiment) -> str:
    """
    Constraint on the experimental conditions, e.g. 'EGF=1&TNFa=0&PI3K=0'.

    Stimuli are pinned to their level; an active inhibitor pins its component to 0.
    """
    atoms = [f"{name}={level}" for name, level in experiment.stimulated.items()]
    atoms += [f"{name}=0" for name, level in experiment.inhibited.items() if level]
    return "&".join(atoms)


def measurement_values(measured: Sequence[str], values: Sequence[int]) -> str:
    """Bind measured names to values, skipping anything that is not 0 or 1."""
    return "&".join(
        f"{name}={int(value)}" for name, value in zip(measured, values) if value in (0, 1)
    )


def format_property(experiment: Experiment) -> str:
    """Render one experiment as a <SERIES> element."""
    constraint = experiment_constraint(experiment)
    lines = [f'<SERIES experiment="{constraint}">' if constraint else "<SERIES>"]

    stable = experiment.n_timepoints == 1
    for row in experiment.series:
        attrs = f'values="{measurement_values(experiment.measured, row.tolist())}"'
        if stable:
            attrs += ' stable="1"'
        lines.append(f"{INDENT}<EXPR {attrs} />")

    lines.append("</SERIES>")
    return "\n".join(lines) + "\n"


def property_path(
    input_path: Union[str, Path],
    experiment: Experiment,
    output_dir: Optional[Union[str, Path]] = None,
    extension: str = PROPERTY_EXTENSION,
) -> Path:
    """<output_dir>/<input stem><experiment name><extension>."""
    input_path = Path(input_path)
    directory = Path(output_dir) if output_dir is not None else input_path.parent
    return directory / f"{input_path.stem}{experiment_name(experiment)}{extension}"


def unique_paths(paths: Sequence[Path]) -> List[Path]:
    """Disambiguate repeated paths by appending _2, _3, ... to the stem."""
    seen = {}
    result = []
    for path in paths:
        count = seen.get(path, 0) + 1
        seen[path] = count
        if count > 1:
            renamed = path.with_name(f"{path.stem}_{count}{path.suffix}")
            logger.warning(f"Output name {path.name} is used by several setups, writing {renamed.name}")
            path = renamed
        result.append(path)
    return result


def write_property(experiment: Experiment, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_property(experiment), encoding="utf-8")
    logger.debug(f"Wrote {experiment.n_timepoints} time point(s) to {path}")
    return path
