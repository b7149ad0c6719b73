"""Read back an NWB file written by signal2nwb, summarize the icephys
grouping tables and plot the recorded sweeps, one panel per stimulus type.
"""

import argparse
import logging
from pathlib import Path
from typing import Union

import matplotlib.pyplot as mpl
import numpy as np
import pandas as pd
from pynwb import NWBHDF5IO

from signal2nwb.log_config import create_logger

Logger = logging.getLogger("signal2nwb")


def ragged_rows(table, column: str) -> list:
    """Row indices referenced by each row of a ragged DynamicTableRegion column."""
    index = table[column]
    ends = np.asarray(index.data[:], dtype=int)
    values = np.asarray(index.target.data[:], dtype=int)
    starts = np.concatenate(([0], ends[:-1]))
    return [values[s:e].tolist() for s, e in zip(starts, ends)]


class ReadNWB:
    def __init__(self):
        self.session_id = None
        self.traces = {}
        self.sample_rate = {}
        self.sweeps = None
        self.sequential = None
        self.repetitions = None
        self.conditions = None
        self.sweeps_of_simultaneous = []

    def readfile(self, f: Union[Path, str]):
        """Load the response traces and the grouping tables of one file."""
        with NWBHDF5IO(str(Path(f)), mode="r") as io:
            nwbfile = io.read()
            self.session_id = nwbfile.session_id
            for name, ts in nwbfile.acquisition.items():
                if not name.startswith("PatchClampSeries"):
                    continue
                self.traces[name] = np.array(ts.data[:]) * ts.conversion
                self.sample_rate[name] = ts.rate  # data sample rate in Hz
            self.sweeps = nwbfile.intracellular_recordings.get_category("sweeps").to_dataframe()
            self.sequential = self._group_table(
                nwbfile.icephys_sequential_recordings, "simultaneous_recordings", "stimulus_type"
            )
            self.conditions = self._group_table(nwbfile.icephys_experimental_conditions, "repetitions", "tag")
            self.repetitions = self._group_table(nwbfile.icephys_repetitions, "sequential_recordings", None)
            # rows of the simultaneous table are sweeps here, one sweep each
            self.sweeps_of_simultaneous = ragged_rows(nwbfile.icephys_simultaneous_recordings, "recordings")

    def _group_table(self, table, column: str, tag_column: Union[str, None]) -> pd.DataFrame:
        rows = []
        for i, members in enumerate(ragged_rows(table, column)):
            row = {"id": int(table.id[i]), "members": members}
            if tag_column is not None and tag_column in table.colnames:
                row["tag"] = table[tag_column][i]
            rows.append(row)
        return pd.DataFrame(rows)

    def summarize(self) -> str:
        lines = [f"Session: {self.session_id!s}", f"Sweeps: {len(self.traces):d}"]
        lines.append("Sequential recordings:")
        lines.append(self.sequential.to_string(index=False))
        lines.append("Repetitions:")
        lines.append(self.repetitions.to_string(index=False))
        lines.append("Experimental conditions:")
        lines.append(self.conditions.to_string(index=False))
        text = "\n".join(lines)
        Logger.info("\n" + text)
        return text

    def plot_traces(self, show: bool = True):
        """One panel per stimulus type; every sweep in a panel is overlaid."""
        names = sorted(self.traces.keys())
        stimulus_types = list(dict.fromkeys(self.sequential["tag"]))
        fig, ax = mpl.subplots(len(stimulus_types), 1, squeeze=False, sharex=True)
        for _, row in self.sequential.iterrows():
            panel = ax[stimulus_types.index(row["tag"]), 0]
            for sim in row["members"]:
                for sweep in self.sweeps_of_simultaneous[sim]:
                    name = names[sweep]
                    t = np.arange(self.traces[name].shape[0]) / self.sample_rate[name]
                    panel.plot(t, self.traces[name], linewidth=0.5)
            panel.set_title(row["tag"])
        ax[-1, 0].set_xlabel("Time (s)")
        if show:
            mpl.show()
        return fig


def main():
    parser = argparse.ArgumentParser(description="Display an NWB file written by signal2nwb")
    parser.add_argument(dest="inputfile", type=str, help="input NWB filename")
    parser.add_argument("--noplot", action="store_true", dest="noplot", help="only print the tables")
    args = parser.parse_args()
    create_logger(log_name="signal2nwb", log_message=f"Reading {args.inputfile:s}")

    R = ReadNWB()
    R.readfile(args.inputfile)
    R.summarize()
    if not args.noplot:
        R.plot_traces()


if __name__ == "__main__":
    main()
