import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from series_reduction import (
    as_series,
    collapse_cycles,
    collapse_duplicates,
    find_cycle,
    reduce_series,
)


def test_collapse_duplicates_keeps_first_of_each_run():
    series = [[1, 1], [1, 1], [0, 1], [0, 1], [0, 1], [1, 1]]

    assert collapse_duplicates(series).tolist() == [[1, 1], [0, 1], [1, 1]]


def test_collapse_duplicates_reduces_constant_series_to_one_row():
    assert collapse_duplicates([[1, 1], [1, 1], [1, 1]]).tolist() == [[1, 1]]


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_collapse_duplicates_properties(seed):
    rng = np.random.default_rng(seed)
    series = rng.integers(0, 2, size=(20, 2))

    once = collapse_duplicates(series)

    assert np.array_equal(collapse_duplicates(once), once)
    assert len(once) <= len(series)
    assert not any(np.array_equal(a, b) for a, b in zip(once[:-1], once[1:]))
    assert np.array_equal(once[0], series[0])


def test_collapse_duplicates_handles_empty_series():
    assert collapse_duplicates([]).shape == (0, 0)
    assert collapse_duplicates(np.zeros((0, 3), dtype=np.int64)).shape == (0, 3)


def test_collapse_duplicates_does_not_modify_input():
    series = np.array([[0, 0], [0, 0]])

    collapse_duplicates(series)

    assert series.tolist() == [[0, 0], [0, 0]]


def test_find_cycle_repeated_block():
    series = [[0, 0], [1, 1], [0, 0], [1, 1], [2, 2]]

    assert find_cycle(series) == (0, 2, 2, 4)


def test_find_cycle_prefers_earliest_start():
    # Blocks starting at 0 and at 1 both repeat; the scan starts at 0
    series = [[0], [1], [2], [0], [1], [2], [0], [3]]

    assert find_cycle(series) == (0, 3, 3, 6)


def test_find_cycle_none_without_repetition():
    assert find_cycle([[0], [1], [0], [2]]) is None
    assert find_cycle([]) is None


def test_collapse_cycles_scenario():
    series = [[0, 0], [1, 1], [0, 0], [1, 1], [2, 2]]

    assert collapse_cycles(series).tolist() == [[0, 0], [1, 1], [2, 2]]


def test_collapse_cycles_iterates_to_fixed_point():
    series = [[0], [1], [0], [1], [0], [1], [2]]

    reduced = collapse_cycles(series)

    assert reduced.tolist() == [[0], [1], [2]]
    assert np.array_equal(collapse_cycles(reduced), reduced)


def test_collapse_cycles_leaves_series_without_loops_unchanged():
    series = [[0, 1], [1, 1], [1, 0], [0, 1], [1, 0]]

    assert collapse_cycles(series).tolist() == series


def test_reduce_series_applies_both_steps():
    series = [[0, 0], [0, 0], [1, 1], [0, 0], [1, 1], [1, 1], [2, 2]]

    assert reduce_series(series).tolist() == [[0, 0], [1, 1], [2, 2]]


def test_reduce_series_stable_scenario():
    assert reduce_series([[1, 1], [1, 1], [1, 1]]).tolist() == [[1, 1]]


def test_as_series_rejects_one_dimensional_input():
    with pytest.raises(ValueError, match="two-dimensional"):
        as_series([0, 1, 2])
