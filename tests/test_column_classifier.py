import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from midas_ppf_pipeline import (
    ColumnClassifier,
    ColumnDescriptor,
    ColumnRole,
    ColumnVocabularyError,
    ConversionConfig,
    HeaderRule,
    perturbation_positions,
)


@pytest.mark.parametrize(
    "header, expected",
    [
        ("TR:HepG2:CellLine", None),
        ("DV:ERK", ("ERK", ColumnRole.MEASURED)),
        ("TR:PI3K:Inhibitors", ("PI3K", ColumnRole.INHIBITED)),
        ("TR:EGF:Stimuli", ("EGF", ColumnRole.STIMULATED)),
        ("TR:EGF : Stimuli", ("EGF", ColumnRole.STIMULATED)),
        ("TR:PI3Ki", ("PI3K", ColumnRole.INHIBITED)),
        ("TR:EGF", ("EGF", ColumnRole.STIMULATED)),
        ("DA:ALL", None),
        ("ID:type", None),
    ],
)
def test_classify_each_header_rule(header, expected):
    assert ColumnClassifier().classify(header) == expected


def test_rule_order_resolves_overlapping_patterns():
    classifier = ColumnClassifier()

    # Also a generic "TR:" tag ending in "i"
    assert classifier.classify("TR:Mi:Stimuli") == ("Mi", ColumnRole.STIMULATED)
    # Also a generic stimulus tag
    assert classifier.classify("TR:Raf:Inhibitors") == ("Raf", ColumnRole.INHIBITED)
    # Ends in "i" and in ":CellLine"
    assert classifier.classify("TR:Hi:CellLine") is None


def test_empty_names_are_ignored():
    classifier = ColumnClassifier()

    assert classifier.classify("DV:") is None
    assert classifier.classify("TR:i") is None
    assert classifier.classify("TR:") is None


def test_headers_are_matched_without_surrounding_whitespace():
    assert ColumnClassifier().classify(" DV:AKT\r") == ("AKT", ColumnRole.MEASURED)


def test_describe_columns_keeps_positions_of_data_columns():
    headers = ["TR:HepG2:CellLine", "TR:EGF", "TR:PI3Ki", "DA:ALL", "DV:ERK", "DV:AKT"]

    columns = ColumnClassifier().describe_columns(headers)

    assert columns == [
        ColumnDescriptor(1, "EGF", ColumnRole.STIMULATED),
        ColumnDescriptor(2, "PI3K", ColumnRole.INHIBITED),
        ColumnDescriptor(4, "ERK", ColumnRole.MEASURED),
        ColumnDescriptor(5, "AKT", ColumnRole.MEASURED),
    ]
    assert perturbation_positions(columns) == [2, 1]


def test_classifier_from_config_uses_custom_vocabulary():
    config = ConversionConfig(measured_prefix="VAL:", perturbation_prefix="PT:", inhibitor_marker="x")
    classifier = ColumnClassifier.from_config(config)

    assert classifier.classify("VAL:ERK") == ("ERK", ColumnRole.MEASURED)
    assert classifier.classify("PT:MEKx") == ("MEK", ColumnRole.INHIBITED)
    assert classifier.classify("PT:Pi") == ("Pi", ColumnRole.STIMULATED)
    assert classifier.classify("DV:ERK") is None


def test_component_without_role_is_a_vocabulary_error():
    rules = [HeaderRule("tagged", re.compile(r"TAG:(?P<name>.+)"), None)]

    with pytest.raises(ColumnVocabularyError, match="TAG:foo"):
        ColumnClassifier(rules).classify("TAG:foo")
