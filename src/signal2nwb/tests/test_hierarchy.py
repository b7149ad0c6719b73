"""Test the grouping of sweeps into the icephys table hierarchy."""

import pytest

from signal2nwb import hierarchy, runs
from signal2nwb.config import GroupingSpec
from signal2nwb.errors import PartitionError, UnrecognizedSweepStateError


def assert_partition(layer, n_below):
    indices = [i for group in layer.groups for i in group]
    assert sorted(indices) == list(range(n_below))
    assert len(indices) == len(set(indices))


def test_simultaneous_layer_is_one_sweep_per_group():
    layer = hierarchy.simultaneous_layer([0.0, 5.0, 10.0])
    assert layer.groups == ((0,), (1,), (2,))
    assert layer.tags == ("noSimultaneousRecs",) * 3
    assert layer.tag_column == "simultaneous_recording_tag"


def test_simultaneous_layer_groups_electrodes_sharing_a_start():
    layer = hierarchy.simultaneous_layer([0.0, 0.0, 5.0, 5.0, 5.0], electrodes=["e1", "e2", "e1", "e2", "e1"])
    assert layer.groups == ((0, 1), (2, 3), (4,))
    assert layer.tags == ("simultaneous", "simultaneous", "noSimultaneousRecs")
    assert_partition(layer, 5)


def test_sequential_layer_splits_a_run_by_state():
    states = [0, 0, 1, 1]
    run_table = runs.get_runs(["1"] * 4, [10] * 4, [0.0, 1.0, 2.0, 3.0])
    sim = hierarchy.simultaneous_layer([0.0, 1.0, 2.0, 3.0])
    seq = hierarchy.sequential_layer(run_table, states, sim)
    assert seq.groups == ((0, 1), (2, 3))
    assert seq.tags == ("light", "current")
    assert seq.tag_column == "stimulus_type"


def test_sequential_layer_interleaved_states_stay_in_one_group():
    states = [1, 0, 1, 0]
    run_table = runs.get_runs(["1"] * 4, [10] * 4, [0.0, 1.0, 2.0, 3.0])
    sim = hierarchy.simultaneous_layer([0.0, 1.0, 2.0, 3.0])
    seq = hierarchy.sequential_layer(run_table, states, sim)
    # states are visited in ascending order
    assert seq.groups == ((1, 3), (0, 2))
    assert seq.tags == ("light", "current")


def test_sequential_layer_unknown_state_raises():
    run_table = runs.get_runs(["1", "1"], [10, 10], [0.0, 1.0])
    sim = hierarchy.simultaneous_layer([0.0, 1.0])
    with pytest.raises(UnrecognizedSweepStateError):
        hierarchy.sequential_layer(run_table, [1, 5], sim)


def test_stimulus_types():
    assert [hierarchy.stimulus_type(s) for s in (0, 1, 2, 9)] == ["light", "current", "combined", "noStim"]
    with pytest.raises(UnrecognizedSweepStateError):
        hierarchy.stimulus_type(3)


@pytest.mark.parametrize(
    "groups, n_below, message",
    [
        ([[0, 1], [2, 7]], 4, "outside"),
        ([[0, 1], [2]], 4, "not in any group"),
        ([[0, 1], [1, 2, 3]], 4, "both group"),
        ([[0, 1, 2, 3], []], 4, "empty"),
        ([[-1, 0, 1, 2, 3]], 4, "outside"),
    ],
)
def test_explicit_layer_rejects_bad_partitions(groups, n_below, message):
    with pytest.raises(PartitionError, match=message):
        hierarchy.explicit_layer("repetitions", groups, n_below)


def test_explicit_layer_tag_count_must_match():
    with pytest.raises(PartitionError, match="tags"):
        hierarchy.explicit_layer("experimental_conditions", [[0], [1]], 2, tags=["a"], tag_column="tag")


def test_singleton_strategy():
    layer = hierarchy.layer_from_spec("repetitions", GroupingSpec(strategy="singletons"), 3)
    assert layer.groups == ((0,), (1,), (2,))
    assert layer.tags is None


def test_build_hierarchy_for_a_full_cell(recording):
    run_table = runs.classify_runs(recording)
    icephys = hierarchy.build_hierarchy(
        recording,
        run_table,
        GroupingSpec(groups=((0, 1), (2,), (3,), (4,), (5, 6))),
        GroupingSpec(groups=((0, 4), (1, 3), (2,)), tags=("baselineStim", "noStim", "plasticityInduction")),
    )
    assert len(icephys.simultaneous) == len(recording)
    assert icephys.sequential.tags == ("light", "current", "noStim", "combined", "noStim", "light", "current")
    assert icephys.sequential.groups[0] == (0, 2, 4, 6)
    assert icephys.sequential.groups[3] == (10, 11, 12)
    assert icephys.conditions.tags == ("baselineStim", "noStim", "plasticityInduction")
    assert icephys.conditions.tag_column == "tag"

    n_below = len(recording)
    for layer in icephys.layers():
        assert_partition(layer, n_below)
        n_below = len(layer)


def test_build_hierarchy_rejects_configured_partition_errors(recording):
    run_table = runs.classify_runs(recording)
    with pytest.raises(PartitionError):
        hierarchy.build_hierarchy(
            recording,
            run_table,
            GroupingSpec(groups=((0, 1), (2,), (3,), (4,), (5, 6, 7))),
            GroupingSpec(groups=((0, 4), (1, 3), (2,))),
        )


def test_build_hierarchy_is_repeatable(recording):
    reps = GroupingSpec(groups=((0, 1), (2,), (3,), (4,), (5, 6)))
    conds = GroupingSpec(groups=((0, 4), (1, 3), (2,)), tags=("a", "b", "c"))
    first = hierarchy.build_hierarchy(recording, runs.classify_runs(recording), reps, conds)
    second = hierarchy.build_hierarchy(recording, runs.classify_runs(recording), reps, conds)
    assert first == second
