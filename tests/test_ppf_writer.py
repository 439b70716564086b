import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from midas_ppf_pipeline import Experiment, ExperimentSetup, extract_experiments, load_midas_table
from ppf_writer import (
    experiment_constraint,
    experiment_name,
    format_property,
    property_path,
    unique_paths,
    write_property,
)


def _experiment(stimulated, inhibited, series, measured=("A", "B")):
    return Experiment(
        setup=ExperimentSetup(()),
        stimulated=dict(stimulated),
        inhibited=dict(inhibited),
        measured=list(measured),
        series=np.asarray(series, dtype=np.int64).reshape(len(series), len(measured)),
    )


def test_name_and_constraint_skip_inactive_inhibitors():
    experiment = _experiment({"X": 1, "Z": 0}, {"Y": 0, "W": 1}, [[1, 0]])

    assert experiment_name(experiment) == "_X_W"
    assert experiment_constraint(experiment) == "X=1&Z=0&W=0"


def test_active_inhibitor_pins_component_to_zero(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("TR:X,TR:Yi,DV:A\n1,1,0\n", encoding="utf-8")

    (experiment,) = extract_experiments(load_midas_table(path))

    assert experiment_constraint(experiment) == "X=1&Y=0"
    assert format_property(experiment).startswith('<SERIES experiment="X=1&Y=0">')


def test_format_property_two_time_points():
    experiment = _experiment({"X": 1}, {"Y": 0}, [[1, 0], [1, 1]])

    assert format_property(experiment) == (
        '<SERIES experiment="X=1">\n'
        '    <EXPR values="A=1&B=0" />\n'
        '    <EXPR values="A=1&B=1" />\n'
        '</SERIES>\n'
    )


def test_format_property_marks_single_time_point_stable():
    experiment = _experiment({}, {}, [[1, 1]])

    assert format_property(experiment) == (
        '<SERIES>\n'
        '    <EXPR values="A=1&B=1" stable="1" />\n'
        '</SERIES>\n'
    )


def test_format_property_skips_values_other_than_zero_and_one():
    experiment = _experiment({"X": 1}, {}, [[2, 0], [-1, 1]])

    text = format_property(experiment)

    assert '<EXPR values="B=0" />' in text
    assert '<EXPR values="B=1" />' in text


def test_property_path_appends_experiment_name(tmp_path):
    experiment = _experiment({"EGF": 1}, {"PI3K": 1}, [[0, 0]])

    assert property_path(tmp_path / "in" / "data.csv", experiment) == tmp_path / "in" / "data_EGF_PI3K.ppf"
    assert property_path("data.csv", experiment, tmp_path, ".xml") == tmp_path / "data_EGF_PI3K.xml"


def test_unique_paths_suffixes_repeated_names(tmp_path):
    paths = [tmp_path / "d.ppf", tmp_path / "d_X.ppf", tmp_path / "d.ppf"]

    assert unique_paths(paths) == [tmp_path / "d.ppf", tmp_path / "d_X.ppf", tmp_path / "d_2.ppf"]


def test_write_property_creates_file(tmp_path):
    experiment = _experiment({"X": 1}, {}, [[0, 1]])

    path = write_property(experiment, tmp_path / "out" / "d_X.ppf")

    assert path.read_text(encoding="utf-8") == format_property(experiment)
