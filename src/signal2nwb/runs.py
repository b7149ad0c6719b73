"""
Classify sweeps into runs.

A run is a maximal block of consecutive sweeps that belong to one
experimental category (baseline, break, or plasticity induction).
The acquisition labels encode the category in their first character,
so a new run starts wherever that character changes between two
neighbouring sweeps:

    'b' or '9' -> break       (amperes, voltage clamp)
    '0'        -> plasticity  (volts, current clamp)
    '1'        -> baseline    (amperes, voltage clamp)

The recording protocol always opens with a baseline, so the first sweep
starts a baseline run without looking at its label.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from signal2nwb.errors import UnrecognizedSweepLabelError

Logger = logging.getLogger("signal2nwb")

RUN_CATEGORIES = {
    "b": ("break", "amperes"),
    "9": ("break", "amperes"),
    "0": ("plasticity", "volts"),
    "1": ("baseline", "amperes"),
}
FIRST_RUN = ("baseline", "amperes")


@dataclass(frozen=True)
class Run:
    category: str
    unit: str
    start_index: int
    end_index: int  # inclusive
    start_time: float
    data_points: int  # points in the first sweep of the run

    def __len__(self):
        return self.end_index - self.start_index + 1

    def sweep_indices(self) -> range:
        return range(self.start_index, self.end_index + 1)


@dataclass(frozen=True)
class RunTable:
    """The runs of a recording, and the run each sweep belongs to."""

    runs: Tuple[Run, ...]
    run_of_sweep: Tuple[int, ...]

    def __len__(self):
        return len(self.runs)

    def __iter__(self):
        return iter(self.runs)

    def __getitem__(self, i):
        return self.runs[i]

    def run_for(self, sweep_index: int) -> Run:
        return self.runs[self.run_of_sweep[sweep_index]]


def category_for_label(label: str) -> Tuple[str, str]:
    """Return the (category, unit) encoded by the leading character of a label.

    Raises:
        UnrecognizedSweepLabelError: for an empty label or an unknown leading character.
    """
    if len(label) == 0:
        raise UnrecognizedSweepLabelError("Empty sweep label cannot be classified")
    key = label[0].lower()
    if key not in RUN_CATEGORIES:
        raise UnrecognizedSweepLabelError(
            f"Unrecognized sweep label {label!r}: leading character {label[0]!r} "
            f"is not one of {sorted(RUN_CATEGORIES.keys())!r}"
        )
    return RUN_CATEGORIES[key]


def _leading(label: str) -> str:
    return label[:1].lower()


def get_runs(
    labels: Sequence[str],
    data_points: Sequence[int],
    start_times: Sequence[float],
) -> RunTable:
    """Identify recording runs and their starting sweeps.

    Args:
        labels (Sequence[str]): sweep labels in recording order
        data_points (Sequence[int]): number of samples in each sweep
        start_times (Sequence[float]): sweep start times in seconds

    Returns:
        RunTable: runs in recording order, covering every sweep once

    Raises:
        ValueError: when the inputs are empty or of different lengths
        UnrecognizedSweepLabelError: when a run transition has an unknown leading character
    """
    nsweeps = len(labels)
    if nsweeps == 0:
        raise ValueError("Cannot classify runs of an empty sweep sequence")
    if len(data_points) != nsweeps or len(start_times) != nsweeps:
        raise ValueError(
            f"labels ({nsweeps:d}), data_points ({len(data_points):d}) and "
            f"start_times ({len(start_times):d}) must have the same length"
        )

    starts = [0]
    categories = [FIRST_RUN]
    for sweep in range(1, nsweeps):
        if _leading(labels[sweep]) != _leading(labels[sweep - 1]):
            categories.append(category_for_label(labels[sweep]))
            starts.append(sweep)

    ends = [s - 1 for s in starts[1:]] + [nsweeps - 1]
    runs = []
    run_of_sweep = []
    for irun, (start, end, (category, unit)) in enumerate(zip(starts, ends, categories)):
        runs.append(
            Run(
                category=category,
                unit=unit,
                start_index=start,
                end_index=end,
                start_time=float(start_times[start]),
                data_points=int(data_points[start]),
            )
        )
        run_of_sweep.extend([irun] * (end - start + 1))
        Logger.debug(f"Run {irun:d}: {category:s} ({unit:s}), sweeps {start:d}-{end:d}")
    return RunTable(runs=tuple(runs), run_of_sweep=tuple(run_of_sweep))


def classify_runs(recording) -> RunTable:
    """Run classification fed from a signal_reader.Recording."""
    run_table = get_runs(recording.labels, recording.data_points, recording.start_times)
    Logger.info(f"Classified {len(recording):d} sweeps into {len(run_table):d} runs")
    return run_table
