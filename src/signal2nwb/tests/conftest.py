# conftest.py
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as mpl
import numpy as np
import pytest
import scipy.io
import toml

from signal2nwb.signal_reader import Recording, Sweep

NPOINTS = 200
INTERVAL = 1e-4  # 10 kHz

# (label, state) for a cell laid out like the 180126 s1c1 recording:
# interleaved baseline, break, plasticity induction, break, interleaved baseline
PROTOCOL = (
    [("1 baseline", s) for s in (0, 1, 0, 1, 0, 1, 0, 1)]
    + [("break", 9)] * 2
    + [("0 plasticity", 2)] * 3
    + [("break", 9)] * 2
    + [("1 baseline", s) for s in (0, 1, 0, 1, 0, 1, 0, 1)]
)

REPETITIONS = [[0, 1], [2], [3], [4], [5, 6]]
CONDITIONS = [[0, 4], [1, 3], [2]]
CONDITION_TAGS = ["baselineStim", "noStim", "plasticityInduction"]


def raw_values(nsweeps: int, npoints: int = NPOINTS) -> np.ndarray:
    rng = np.random.default_rng(42)
    return rng.normal(0.0, 100.0, size=(nsweeps, npoints))


@pytest.fixture
def make_recording():
    """Factory for in-memory recordings from (label, state) pairs."""

    def _make(protocol=PROTOCOL, interval: float = INTERVAL) -> Recording:
        values = raw_values(len(protocol))
        sweeps = tuple(
            Sweep(
                order=i + 1,
                points=NPOINTS,
                start=5.0 * i,
                state=state,
                label=label,
                data=values[i],
            )
            for i, (label, state) in enumerate(protocol)
        )
        return Recording(sweeps=sweeps, interval=interval, source="synthetic")

    return _make


@pytest.fixture
def recording(make_recording):
    return make_recording()


def write_wave_mat(path: Path, variable: str, protocol=PROTOCOL, orders=None) -> Path:
    """Write a Signal-style wave data export with scipy.io.savemat."""
    nsweeps = len(protocol)
    values = raw_values(nsweeps).T[:, np.newaxis, :]  # samples x 1 x frames
    if orders is None:
        orders = range(1, nsweeps + 1)
    frameinfo = np.zeros(
        (nsweeps,),
        dtype=[("number", "O"), ("points", "O"), ("start", "O"), ("state", "O"), ("label", "O")],
    )
    for i, ((label, state), order) in enumerate(zip(protocol, orders)):
        frameinfo[i] = (float(order), float(NPOINTS), 5.0 * i, float(state), label)
    wave = {"values": values, "interval": INTERVAL, "frameinfo": frameinfo}
    scipy.io.savemat(str(path), {variable: wave})
    return path


@pytest.fixture
def wave_mat(tmp_path):
    return write_wave_mat(Path(tmp_path, "180126__s1c1_001_ED.mat"), "V180126__s1c1_001_wave_data")


@pytest.fixture
def slice_png(tmp_path):
    path = Path(tmp_path, "slice.png")
    image = np.linspace(0.0, 1.0, 32 * 48).reshape(32, 48)
    mpl.imsave(str(path), image, cmap="gray")
    return path


def dataset_config(repetitions=REPETITIONS, conditions=CONDITIONS, tags=CONDITION_TAGS) -> dict:
    return {
        "project": {
            "name": "Inhibitory plasticity experiment in CA1",
            "experimenter": ["MU"],
            "institution": "University of Bristol",
            "lab": "Jack Mellor lab",
            "brain_area": "Hippocampus CA1",
        },
        "subject": {
            "subject_id": "180126",
            "age": "34",
            "strain": "Ai32/PVcre",
            "sex": "F",
            "species": "Mus musculus",
            "description": "001",
        },
        "session": {
            "start": "2018-01-26",
            "slice_number": 1,
            "cell_number": 1,
            "description": "Current and voltage clamp recordings",
            "experiment_description": "Interleaved light and current stimulation",
            "notes": "synthetic test data",
        },
        "files": {"data_dir": ".", "image": "slice.png"},
        "grouping": {
            "repetitions": {"groups": repetitions},
            "conditions": {"groups": conditions, "tags": tags},
        },
    }


@pytest.fixture
def write_dataset(tmp_path, wave_mat, slice_png):
    """Factory writing a configuration next to the synthetic recording and image."""

    def _write(config: dict = None, name: str = "dataset.toml") -> Path:
        if config is None:
            config = dataset_config()
        path = Path(tmp_path, name)
        with open(path, "w") as fh:
            toml.dump(config, fh)
        return path

    return _write


@pytest.fixture
def config_dict():
    return dataset_config()


@pytest.fixture
def protocol():
    return list(PROTOCOL)
