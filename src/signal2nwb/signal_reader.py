"""
Read CED Signal recordings exported to MATLAB ("wave data" .mat files),
and the grayscale slice image that accompanies each cell.

The exported struct holds:
    values: samples x 1 x frames array of raw samples
    interval: the sample interval in seconds
    frameinfo: one record per frame (sweep) with
        number (recording order), points, start (s), state, label

Each frame becomes one Sweep; the whole file becomes a Recording.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import matplotlib.image as mpimg
import numpy as np
import scipy.io

from signal2nwb.errors import RecordingReadError

Logger = logging.getLogger("signal2nwb")

FRAME_FIELDS = ("number", "points", "start", "state", "label")


@dataclass(frozen=True, eq=False)
class Sweep:
    """One recorded trace (one stimulation trial)."""

    order: int  # 1-based recording order from the acquisition software
    points: int
    start: float
    state: int
    label: str
    data: np.ndarray


@dataclass(frozen=True, eq=False)
class Recording:
    sweeps: Tuple[Sweep, ...]
    interval: float
    source: str = ""

    def __post_init__(self):
        if len(self.sweeps) == 0:
            raise RecordingReadError(f"Recording {self.source!s} holds no sweeps")
        if self.interval <= 0:
            raise RecordingReadError(f"Sample interval must be positive, got {self.interval!r}")
        orders = [s.order for s in self.sweeps]
        expected = list(range(orders[0], orders[0] + len(orders)))
        if orders != expected:
            raise RecordingReadError(
                f"Sweep order numbers in {self.source!s} are not dense and increasing: {orders!r}"
            )
        for sweep in self.sweeps:
            # frames are padded to a common width; points is the recorded part
            if sweep.points < 1 or sweep.points > len(sweep.data):
                raise RecordingReadError(
                    f"Sweep {sweep.order:d} in {self.source!s} has {sweep.points:d} points "
                    f"but {len(sweep.data):d} stored samples"
                )

    def __len__(self):
        return len(self.sweeps)

    @property
    def sampling_rate(self) -> float:
        return 1.0 / self.interval

    @property
    def labels(self):
        return [s.label for s in self.sweeps]

    @property
    def states(self):
        return [s.state for s in self.sweeps]

    @property
    def start_times(self):
        return [s.start for s in self.sweeps]

    @property
    def data_points(self):
        return [s.points for s in self.sweeps]

    @property
    def orders(self):
        return [s.order for s in self.sweeps]


def _find_wave_data(contents: dict, variable: Union[str, None], path: Path):
    if variable:
        if variable not in contents:
            raise RecordingReadError(f"Variable '{variable:s}' not found in {path!s}")
        return contents[variable]
    candidates = [k for k in contents.keys() if k.endswith("_wave_data")]
    if len(candidates) != 1:
        raise RecordingReadError(
            f"Cannot identify the wave data variable in {path!s}; found {candidates!r}"
        )
    return contents[candidates[0]]


def _frame_label(value) -> str:
    if isinstance(value, np.ndarray):
        # empty MATLAB char arrays come back as empty ndarrays
        if value.size == 0:
            return ""
        value = "".join(str(v) for v in value.ravel())
    return str(value)


def read_signal_mat(path: Union[str, Path], variable: Union[str, None] = None) -> Recording:
    """Read a Signal wave data export.

    Args:
        path (Union[str, Path]): the .mat file
        variable (Union[str, None], optional): the struct variable name. When None, the
            single variable whose name ends in "_wave_data" is used.

    Returns:
        Recording: the sweeps in recording order and the sample interval

    Raises:
        RecordingReadError: when the file is missing, unreadable, or malformed.
    """
    path = Path(path)
    if not path.is_file():
        raise RecordingReadError(f"Recording file not found: {path!s}")
    try:
        contents = scipy.io.loadmat(str(path), squeeze_me=True, struct_as_record=False)
    except (OSError, ValueError, NotImplementedError) as exc:
        raise RecordingReadError(f"Unable to read {path!s}: {exc!s}") from exc

    wave = _find_wave_data(contents, variable, path)
    for name in ("values", "interval", "frameinfo"):
        if not hasattr(wave, name):
            raise RecordingReadError(f"Wave data in {path!s} has no '{name:s}' field")

    values = np.squeeze(np.asarray(wave.values, dtype=float))
    if values.ndim == 1:
        values = values[:, np.newaxis]  # a single frame
    if values.ndim != 2:
        raise RecordingReadError(f"Unexpected values shape {np.shape(wave.values)!r} in {path!s}")
    values = values.T  # sweeps x samples

    frames = np.atleast_1d(wave.frameinfo)
    if len(frames) != values.shape[0]:
        raise RecordingReadError(
            f"{path!s}: {len(frames):d} frame records but {values.shape[0]:d} sweeps of data"
        )

    sweeps = []
    for i, frame in enumerate(frames):
        missing = [f for f in FRAME_FIELDS if not hasattr(frame, f)]
        if len(missing) > 0:
            raise RecordingReadError(f"{path!s}: frame {i:d} lacks fields {missing!r}")
        sweeps.append(
            Sweep(
                order=int(frame.number),
                points=int(frame.points),
                start=float(frame.start),
                state=int(frame.state),
                label=_frame_label(frame.label),
                data=values[i, :],
            )
        )
    recording = Recording(sweeps=tuple(sweeps), interval=float(wave.interval), source=str(path))
    Logger.info(f"Read {len(recording):d} sweeps at {recording.sampling_rate:.1f} Hz from {path.name:s}")
    return recording


def read_slice_image(path: Union[str, Path]) -> np.ndarray:
    """Read the slice image as a 2-D [height, width] grayscale array.

    Colour images are reduced to luminance; the dtype of the file is kept.
    """
    path = Path(path)
    if not path.is_file():
        raise RecordingReadError(f"Slice image not found: {path!s}")
    try:
        image = mpimg.imread(str(path))
    except (OSError, ValueError, SyntaxError) as exc:
        raise RecordingReadError(f"Unable to read slice image {path!s}: {exc!s}") from exc
    if image.ndim == 3:
        dtype = image.dtype
        gray = np.dot(image[..., :3].astype(float), [0.299, 0.587, 0.114])
        image = gray.astype(dtype)
    if image.ndim != 2:
        raise RecordingReadError(f"Slice image {path!s} is not a 2-D image: shape {image.shape!r}")
    return image
