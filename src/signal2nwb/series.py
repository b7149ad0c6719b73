"""
Build the stimulus/response PatchClampSeries pair for one sweep.

Plasticity runs are recorded in current clamp, everything else in voltage
clamp. No separate command waveform is stored by the acquisition, so the
stimulus series reuses the recorded samples and differs from the response
only in its unit and descriptions.
"""

from typing import Tuple

import numpy as np
import pynwb as NWB

from signal2nwb.config import ScaleFactors
from signal2nwb.errors import UnrecognizedSweepStateError

PLASTICITY_DESCRIPTIONS = (
    "Plasticity condition",
    "Plasticity protocol: Simultaneous current and light stimulation",
)
BREAK_DESCRIPTIONS = (
    "Break sweeps are used while switching between two conditions: Nothing happens.",
    "No stimulation.",
)
BASELINE_DESCRIPTIONS = {
    0: ("Baseline condition: Light stimulation", "Baseline stimulation: Double light pulses."),
    1: ("Baseline condition: Current stimulation", "Baseline stimulation: Double current pulses."),
}


def is_current_clamp(category: str) -> bool:
    return category == "plasticity"


def scale_sweep(raw: np.ndarray, category: str, scaling: ScaleFactors) -> np.ndarray:
    """Convert raw samples to SI units with the calibration factor for the clamp mode."""
    if is_current_clamp(category):
        factor = scaling.current_clamp
    else:
        factor = scaling.voltage_clamp
    return np.asarray(raw, dtype=float) * factor


def series_descriptions(category: str, state: int) -> Tuple[str, str]:
    """Return (description, stimulus_description) for a sweep.

    Raises:
        UnrecognizedSweepStateError: for baseline sweeps whose state is neither light (0)
            nor current (1) stimulation, and for unknown categories.
    """
    match category:
        case "plasticity":
            return PLASTICITY_DESCRIPTIONS
        case "break":
            return BREAK_DESCRIPTIONS
        case "baseline":
            if state not in BASELINE_DESCRIPTIONS:
                raise UnrecognizedSweepStateError(
                    f"Unrecognized sweep state {state!r} in a baseline run; expected one of "
                    f"{sorted(BASELINE_DESCRIPTIONS.keys())!r}"
                )
            return BASELINE_DESCRIPTIONS[state]
        case _:
            raise UnrecognizedSweepStateError(f"No series description for run category {category!r}")


def series_name(sweep_index: int, width: int = 3) -> str:
    """PatchClampSeries001 for the first sweep (sweep_index 0)."""
    return f"PatchClampSeries{sweep_index + 1:0{width:d}d}"


def make_clamp_series(
    name: str,
    data: np.ndarray,
    sampling_rate: float,
    start_time: float,
    electrode: NWB.icephys.IntracellularElectrode,
    category: str,
    state: int,
    unit: str,
    sweep_order: int,
):
    """Create the stimulus and response series for one (already scaled) sweep.

    Args:
        name (str): name used for both series (one goes to stimulus, one to acquisition)
        data (np.ndarray): scaled samples
        sampling_rate (float): Hz
        start_time (float): sweep start in seconds
        electrode (IntracellularElectrode): the recording electrode
        category (str): run category of the sweep
        state (int): the sweep state code
        unit (str): unit of the recorded (response) data for this run
        sweep_order (int): recording order number of the sweep

    Returns:
        tuple: (stimulus series, response series)
    """
    description, stim_description = series_descriptions(category, state)
    common = dict(
        name=name,
        data=data,
        electrode=electrode,
        gain=1.0,
        continuity="continuous",
        description=description,
        stimulus_description=stim_description,
        starting_time=float(start_time),
        rate=float(sampling_rate),
        sweep_number=np.uint32(sweep_order),
    )
    if is_current_clamp(category):
        stimulus = NWB.icephys.CurrentClampStimulusSeries(unit="amperes", **common)
        response = NWB.icephys.CurrentClampSeries(unit=unit, **common)
    else:
        stimulus = NWB.icephys.VoltageClampStimulusSeries(unit="volts", **common)
        response = NWB.icephys.VoltageClampSeries(unit=unit, **common)
    return stimulus, response
