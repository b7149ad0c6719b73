"""
Group sweeps into the four nested icephys tables of NWB:

    simultaneous recordings  -> rows of the intracellular recordings table (sweeps)
    sequential recordings    -> rows of the simultaneous recordings table
    repetitions              -> rows of the sequential recordings table
    experimental conditions  -> rows of the repetitions table

Each layer is only a list of index groups into the layer below, plus an
optional tag per group; nothing here touches pynwb. The converter turns
each layer into rows of the matching NWB table.

The simultaneous and sequential layers are derived from the sweeps and
their runs. Repetitions and conditions have no general rule; they are
written down per dataset in the configuration (or, with the
"singletons" strategy, each lower row becomes its own group).
Every layer is checked to be a partition of the layer below before
anything is written.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from signal2nwb.config import GroupingSpec
from signal2nwb.errors import PartitionError, UnrecognizedSweepStateError
from signal2nwb.runs import RunTable

Logger = logging.getLogger("signal2nwb")

STIMULUS_TYPES = {0: "light", 1: "current", 2: "combined", 9: "noStim"}
NO_SIMULTANEOUS_TAG = "noSimultaneousRecs"
SIMULTANEOUS_TAG = "simultaneous"


@dataclass(frozen=True)
class GroupingLayer:
    name: str
    groups: Tuple[Tuple[int, ...], ...]
    tags: Optional[Tuple[str, ...]] = None
    tag_column: Optional[str] = None

    def __len__(self):
        return len(self.groups)


@dataclass(frozen=True)
class IcephysHierarchy:
    simultaneous: GroupingLayer
    sequential: GroupingLayer
    repetitions: GroupingLayer
    conditions: GroupingLayer

    def layers(self):
        return (self.simultaneous, self.sequential, self.repetitions, self.conditions)


def validate_partition(groups, n_below: int, layer: str, tags=None):
    """Check that groups split range(n_below) into disjoint, non-empty pieces.

    Raises:
        PartitionError: describing the first problem found
    """
    seen = {}
    for igroup, group in enumerate(groups):
        if len(group) == 0:
            raise PartitionError(f"{layer:s}: group {igroup:d} is empty")
        for index in group:
            if index < 0 or index >= n_below:
                raise PartitionError(
                    f"{layer:s}: group {igroup:d} references index {index:d}, "
                    f"outside the {n_below:d} rows of the layer below"
                )
            if index in seen:
                raise PartitionError(
                    f"{layer:s}: index {index:d} is in both group {seen[index]:d} and group {igroup:d}"
                )
            seen[index] = igroup
    missing = sorted(set(range(n_below)) - set(seen.keys()))
    if len(missing) > 0:
        raise PartitionError(f"{layer:s}: indices {missing!r} of the layer below are not in any group")
    if tags is not None and len(tags) != len(groups):
        raise PartitionError(f"{layer:s}: {len(tags):d} tags for {len(groups):d} groups")


def simultaneous_layer(start_times: Sequence[float], electrodes: Optional[Sequence[str]] = None) -> GroupingLayer:
    """Group sweeps recorded at the same instant on different electrodes.

    Without electrode information (a single electrode) every sweep is its own group.
    """
    n = len(start_times)
    if electrodes is None:
        groups = [(i,) for i in range(n)]
    else:
        if len(electrodes) != n:
            raise ValueError("electrodes must give one entry per sweep")
        groups = []
        open_groups = {}  # start time -> position in groups
        for i, (start, electrode) in enumerate(zip(start_times, electrodes)):
            gpos = open_groups.get(start, None)
            if gpos is not None and electrode not in [electrodes[j] for j in groups[gpos]]:
                groups[gpos] = groups[gpos] + (i,)
            else:
                open_groups[start] = len(groups)
                groups.append((i,))
    tags = [NO_SIMULTANEOUS_TAG if len(g) == 1 else SIMULTANEOUS_TAG for g in groups]
    validate_partition(groups, n, "simultaneous_recordings", tags)
    return GroupingLayer(
        name="simultaneous_recordings",
        groups=tuple(groups),
        tags=tuple(tags),
        tag_column="simultaneous_recording_tag",
    )


def stimulus_type(state: int) -> str:
    if state not in STIMULUS_TYPES:
        raise UnrecognizedSweepStateError(
            f"Unrecognized sweep state {state!r}; expected one of {sorted(STIMULUS_TYPES.keys())!r}"
        )
    return STIMULUS_TYPES[state]


def sequential_layer(run_table: RunTable, states: Sequence[int], simultaneous: GroupingLayer) -> GroupingLayer:
    """Within each run, gather the simultaneous recordings that share a stimulus state.

    States are visited in ascending order inside a run.
    """
    sim_of_sweep = {}
    for igroup, group in enumerate(simultaneous.groups):
        for sweep in group:
            sim_of_sweep[sweep] = igroup

    groups = []
    tags = []
    for run in run_table:
        run_sweeps = list(run.sweep_indices())
        for state in sorted(set(states[i] for i in run_sweeps)):
            tag = stimulus_type(state)
            sims = []
            for sweep in run_sweeps:
                if states[sweep] == state and sim_of_sweep[sweep] not in sims:
                    sims.append(sim_of_sweep[sweep])
            groups.append(tuple(sims))
            tags.append(tag)
    validate_partition(groups, len(simultaneous), "sequential_recordings", tags)
    return GroupingLayer(
        name="sequential_recordings",
        groups=tuple(groups),
        tags=tuple(tags),
        tag_column="stimulus_type",
    )


def explicit_layer(
    name: str,
    groups,
    n_below: int,
    tags: Optional[Sequence[str]] = None,
    tag_column: Optional[str] = None,
) -> GroupingLayer:
    """A layer written out by hand for one dataset."""
    groups = tuple(tuple(int(i) for i in g) for g in groups)
    tags = None if tags is None else tuple(tags)
    validate_partition(groups, n_below, name, tags)
    return GroupingLayer(name=name, groups=groups, tags=tags, tag_column=tag_column if tags else None)


def singleton_layer(
    name: str, n_below: int, tag: Optional[str] = None, tag_column: Optional[str] = None
) -> GroupingLayer:
    groups = tuple((i,) for i in range(n_below))
    tags = None if tag is None else tuple([tag] * n_below)
    return GroupingLayer(name=name, groups=groups, tags=tags, tag_column=tag_column if tags else None)


def layer_from_spec(name: str, spec: GroupingSpec, n_below: int, tag_column: Optional[str] = None) -> GroupingLayer:
    match spec.strategy:
        case "explicit":
            return explicit_layer(name, spec.groups, n_below, tags=spec.tags, tag_column=tag_column)
        case "singletons":
            tag = spec.tags[0] if spec.tags else None
            return singleton_layer(name, n_below, tag=tag, tag_column=tag_column)
        case _:
            raise PartitionError(f"{name:s}: unknown grouping strategy {spec.strategy!r}")


def build_hierarchy(
    recording,
    run_table: RunTable,
    repetitions: GroupingSpec,
    conditions: GroupingSpec,
    electrodes: Optional[Sequence[str]] = None,
) -> IcephysHierarchy:
    """Build and check all four grouping layers for a recording.

    Args:
        recording: signal_reader.Recording
        run_table (RunTable): runs of the recording
        repetitions (GroupingSpec): how sequential recordings form repetitions
        conditions (GroupingSpec): how repetitions form experimental conditions
        electrodes (Optional[Sequence[str]]): electrode of each sweep, when more than one was used

    Returns:
        IcephysHierarchy
    """
    sim = simultaneous_layer(recording.start_times, electrodes)
    seq = sequential_layer(run_table, recording.states, sim)
    rep = layer_from_spec("repetitions", repetitions, len(seq), tag_column="repetition_tag")
    cond = layer_from_spec("experimental_conditions", conditions, len(rep), tag_column="tag")
    hierarchy = IcephysHierarchy(simultaneous=sim, sequential=seq, repetitions=rep, conditions=cond)
    for layer in hierarchy.layers():
        Logger.info(f"{layer.name:s}: {len(layer):d} groups")
    return hierarchy
