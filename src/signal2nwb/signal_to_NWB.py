"""
This program converts intracellular (patch clamp) recordings made with CED Signal
and exported to MATLAB wave data files into NWB format, together with the
slice image of the recorded cell.
It was written for the inhibitory plasticity experiments in hippocampal CA1,
where voltage clamp baselines (light and current stimulation, interleaved) are
followed by a current clamp plasticity induction protocol and a second baseline.
One dataset (one cell) is converted by calling ConvertFile(configfile), or with the
signal2nwb console script. The output can be checked with nwbinspector.

Each dataset is described by a TOML configuration file (see config.py) holding the
project, subject and session metadata, the rig description, the file names and the
hand-specified repetition and condition groupings.

    Mapping Signal to NWB:
    ======================
    Signal stores one cell's recording as a series of frames (sweeps). Each frame has
        an order number, a number of points, a start time, a state code and a label.
        The state code gives the stimulation: 0 light, 1 current, 2 plasticity
        induction (combined), 9 no stimulation (break between conditions).
        The first character of the label changes when the experiment moves to a new
        condition, which is how sweeps are split into runs (see runs.py).

    Mapping this to the NWB structure:
        1. PatchClampSeries: one VoltageClampStimulusSeries/VoltageClampSeries pair per
        baseline or break sweep, and one CurrentClampStimulusSeries/CurrentClampSeries
        pair per plasticity sweep. No command waveform is recorded, so the stimulus
        series holds the recorded samples too. Both are named PatchClampSeriesNNN
        (stimulus/presentation and acquisition).
        2. Intracellular Recordings Table: one row per sweep (id = sweep order), with a
        "sweeps" category holding the Signal frame information.
        3. Simultaneous Recordings Table: one row per sweep, as there is a single electrode.
        4. Sequential Recordings Table: the sweeps of one run that share a stimulus type.
        5. Repetitions Table: groups of sequential recordings, from the configuration.
        6. Experimental Conditions Table: groups of repetitions, with a tag, from the
        configuration.

        The slice image is stored as a GrayscaleImage in an Images container in acquisition.

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pynwb as NWB
from nwbinspector import inspect_nwbfile
from pynwb import NWBHDF5IO
from pynwb.base import Images
from pynwb.core import DynamicTable, VectorData
from pynwb.image import GrayscaleImage

from signal2nwb import hierarchy, runs, series, signal_reader
from signal2nwb.config import ConversionConfig, load_config
from signal2nwb.errors import ConversionError, ExportError
from signal2nwb.log_config import create_logger

Logger = logging.getLogger("signal2nwb")

SWEEP_COLUMNS = {
    "order": "Recorded sweep order.",
    "points": "The number of data points within the sweep.",
    "start": "The sweep recording start time in seconds.",
    "state": (
        "The experimental state ID: "
        "0 - light stimulation during the baseline condition. "
        "1 - current stimulation during the baseline condition. "
        "2 - inhibitory synaptic plasticity induction condition. "
        "9 - break between baseline and plasticity induction conditions."
    ),
    "label": "The experimental state label.",
}

TAG_DESCRIPTIONS = {
    "simultaneous_recording_tag": "A custom tag for simultaneous_recordings",
    "stimulus_type": "Column storing the type of stimulus used for the sequential recording",
    "repetition_tag": "A custom tag for repetitions",
    "tag": "Experimental condition label",
}

TABLE_DESCRIPTIONS = {
    "simultaneous_recordings": (
        "A table for grouping different intracellular recordings from the IntracellularRecordingsTable "
        "together that were recorded simultaneously from different electrodes."
    ),
    "sequential_recordings": (
        "A table for grouping different intracellular simultaneous recordings from the "
        "SimultaneousRecordingsTable together. Individual sweeps are grouped on the basis of the "
        "stimulation type: Light, current, combined, or none. Sweeps are grouped only if they belong "
        "to the same condition."
    ),
    "repetitions": (
        "A table for grouping different intracellular sequential recordings together. With each "
        "simultaneous recording representing a particular type of stimulus, the RepetitionsTable is "
        "used to group sets of stimuli applied in sequence."
    ),
    "experimental_conditions": (
        "A table for grouping different intracellular recording repetitions together that belong to "
        "the same experimental conditions."
    ),
}
SINGLE_SWEEP_NOTE = " As no sweeps were recorded simultaneously, groupings contain only single sweeps."


def part_filename(outfilename: Path) -> Path:
    """Temporary name used while writing; keeps the .nwb suffix."""
    return outfilename.with_name(outfilename.stem + ".part.nwb")


def _or_none(value):
    if value is None or len(value) == 0:
        return None
    return value


class SignaltoNWB:
    def __init__(self, config: ConversionConfig, out_file_path: Union[str, Path, None] = None):
        """Convert one cell recorded with CED Signal to NWB format (www.nwb.org).
        See the documentation above for the mapping between these formats.

        Args:
            config (ConversionConfig): the dataset configuration
            out_file_path (Union[str, Path, None], optional): directory for the output file.
                Defaults to None (current directory).
        """
        self.config = config
        self.out_file_path = Path(out_file_path) if out_file_path is not None else Path(".")
        self.electrode = None  # set when the NWB file is created

    def default_filename(self) -> Path:
        return Path(self.out_file_path, f"{self.config.session.session_id:s}.nwb")

    def make_subject(self) -> NWB.file.Subject:
        subj = self.config.subject
        return NWB.file.Subject(
            subject_id=subj.subject_id,
            age=subj.age,
            description=_or_none(subj.description),
            species=subj.species,
            sex=subj.sex,
            strain=_or_none(subj.strain),
            weight=subj.weight,
        )

    def make_nwbfile(self) -> NWB.NWBFile:
        """Populate the NWB session metadata, subject, amplifier and electrode."""
        cfg = self.config
        keywords = list(cfg.project.keywords)
        if len(keywords) == 0:
            keywords = ["intracellular recording", "patch clamp", "optogenetics", "synaptic plasticity"]
            keywords.extend([k for k in (cfg.project.brain_area, cfg.subject.strain) if k])

        nwbfile = NWB.NWBFile(
            session_description=cfg.session.description,
            identifier=cfg.identifier,
            session_start_time=cfg.session.start,
            session_id=cfg.session.session_id,
            experimenter=_or_none(list(cfg.project.experimenter)),
            institution=_or_none(cfg.project.institution),
            related_publications=_or_none(cfg.project.publications),
            lab=_or_none(cfg.project.lab),
            notes=_or_none(cfg.session.notes),
            experiment_description=_or_none(cfg.session.experiment_description),
            keywords=keywords,
            subject=self.make_subject(),
        )

        # Populate the NWB amplifier (device) object
        device = nwbfile.create_device(
            name=cfg.device.name,
            description=cfg.device.description,
            manufacturer=cfg.device.manufacturer,
        )
        self.electrode = nwbfile.create_icephys_electrode(
            name=cfg.electrode.name,
            description=cfg.electrode.description,
            location=cfg.electrode.location,
            slice=f"slice #{cfg.session.slice_number:d}",
            device=device,
        )
        return nwbfile

    def add_recordings(
        self,
        nwbfile: NWB.NWBFile,
        recording: signal_reader.Recording,
        run_table: runs.RunTable,
    ) -> List[int]:
        """Add the stimulus/response pair of every sweep to the intracellular recordings table.

        Returns:
            list of the intracellular recordings table row of each sweep
        """
        rows = []
        for isweep, sweep in enumerate(recording.sweeps):
            run = run_table.run_for(isweep)
            data = series.scale_sweep(sweep.data, run.category, self.config.scaling)
            stimulus, response = series.make_clamp_series(
                name=series.series_name(isweep),
                data=data,
                sampling_rate=recording.sampling_rate,
                start_time=sweep.start,
                electrode=self.electrode,
                category=run.category,
                state=sweep.state,
                unit=run.unit,
                sweep_order=sweep.order,
            )
            row = nwbfile.add_intracellular_recording(
                electrode=self.electrode,
                stimulus=stimulus,
                response=response,
                response_start_index=0,
                response_index_count=int(sweep.points),
                id=int(sweep.order),
            )
            rows.append(row)
        Logger.info(f"Added {len(rows):d} intracellular recordings")
        return rows

    def add_sweep_metadata(self, nwbfile: NWB.NWBFile, recording: signal_reader.Recording):
        """Add the Signal frame information as a "sweeps" category of the recordings table."""
        values = {
            "order": np.array(recording.orders, dtype=np.int64),
            "points": np.array(recording.data_points, dtype=np.int64),
            "start": np.array(recording.start_times, dtype=float),
            "state": np.array(recording.states, dtype=np.int64),
            "label": list(recording.labels),
        }
        columns = [
            VectorData(name=name, description=SWEEP_COLUMNS[name], data=values[name])
            for name in SWEEP_COLUMNS.keys()
        ]
        sweeps = DynamicTable(
            name="sweeps",
            description="Sweep metadata.",
            id=list(recording.orders),
            columns=columns,
        )
        nwbfile.intracellular_recordings.add_category(category=sweeps)

    def add_hierarchy(self, nwbfile: NWB.NWBFile, icephys: hierarchy.IcephysHierarchy, recording_rows: List[int]):
        """Write the four grouping layers into the icephys metadata tables."""
        sim_rows = [
            nwbfile.add_icephys_simultaneous_recording(recordings=[recording_rows[i] for i in group])
            for group in icephys.simultaneous.groups
        ]
        seq_rows = [
            nwbfile.add_icephys_sequential_recording(
                simultaneous_recordings=[sim_rows[i] for i in group],
                stimulus_type=tag,
            )
            for group, tag in zip(icephys.sequential.groups, icephys.sequential.tags)
        ]
        rep_rows = [
            nwbfile.add_icephys_repetition(sequential_recordings=[seq_rows[i] for i in group])
            for group in icephys.repetitions.groups
        ]
        for group in icephys.conditions.groups:
            nwbfile.add_icephys_experimental_condition(repetitions=[rep_rows[i] for i in group])

        tables = {
            "simultaneous_recordings": nwbfile.icephys_simultaneous_recordings,
            "sequential_recordings": nwbfile.icephys_sequential_recordings,
            "repetitions": nwbfile.icephys_repetitions,
            "experimental_conditions": nwbfile.icephys_experimental_conditions,
        }
        descriptions = dict(TABLE_DESCRIPTIONS)
        if all(len(group) == 1 for group in icephys.simultaneous.groups):
            descriptions["simultaneous_recordings"] += SINGLE_SWEEP_NOTE
        for name, table in tables.items():
            # pynwb fixes these descriptions when it creates the tables, and hdmf fields can only be set once
            table.fields["description"] = descriptions[name]
        for layer in (icephys.simultaneous, icephys.repetitions, icephys.conditions):
            if layer.tags is None or layer.tag_column is None:
                continue
            tables[layer.name].add_column(
                name=layer.tag_column,
                description=TAG_DESCRIPTIONS.get(layer.tag_column, f"A custom tag for {layer.name:s}"),
                data=list(layer.tags),
            )

    def add_slice_image(self, nwbfile: NWB.NWBFile, image: np.ndarray):
        slice_image = GrayscaleImage(
            name="slice_image",
            data=image,  # [height, width]
            description="Grayscale image of the recording slice.",
        )
        images = Images(
            name="ImageCollection",
            images=[slice_image],
            description="A container for slice images.",
        )
        nwbfile.add_acquisition(images)

    def build_nwbfile(
        self,
        recording: signal_reader.Recording,
        run_table: runs.RunTable,
        icephys: hierarchy.IcephysHierarchy,
        image: Optional[np.ndarray] = None,
    ) -> NWB.NWBFile:
        nwbfile = self.make_nwbfile()
        recording_rows = self.add_recordings(nwbfile, recording, run_table)
        self.add_sweep_metadata(nwbfile, recording)
        self.add_hierarchy(nwbfile, icephys, recording_rows)
        if image is not None:
            self.add_slice_image(nwbfile, image)
        return nwbfile

    def write(self, nwbfile: NWB.NWBFile, outfilename: Union[str, Path]) -> Path:
        """Write the file. The data goes to a "<name>.part.nwb" file that is renamed
        only when the write completed; on failure nothing is left behind.

        Raises:
            ExportError: when the file cannot be written
        """
        outfilename = Path(outfilename)
        partfile = part_filename(outfilename)
        try:
            outfilename.parent.mkdir(parents=True, exist_ok=True)
            with NWBHDF5IO(str(partfile), "w") as io:
                io.write(nwbfile)
            partfile.replace(outfilename)
        except Exception as exc:
            partfile.unlink(missing_ok=True)
            raise ExportError(f"Failed to write NWB file {outfilename!s}: {exc!s}") from exc
        Logger.info(f"NWB file written: {outfilename!s}")
        return outfilename

    def convert(self, outfilename: Union[str, Path, None] = None, inspect: bool = False) -> Path:
        """Read, classify, group and write one dataset.

        All classification and grouping checks run before the output file is opened.

        Args:
            outfilename (Union[str, Path, None], optional): NWB output filename.
                Defaults to None (<session id>.nwb in the output directory).
            inspect (bool): run nwbinspector on the written file

        Returns:
            Path: the output file
        """
        cfg = self.config
        if outfilename is None:
            outfilename = self.default_filename()
        Logger.info(f"NWB filename: {outfilename!s}")

        recording = signal_reader.read_signal_mat(cfg.recording_path, cfg.recording_variable)
        image = None
        if cfg.image_path is not None:
            image = signal_reader.read_slice_image(cfg.image_path)

        run_table = runs.classify_runs(recording)
        icephys = hierarchy.build_hierarchy(recording, run_table, cfg.repetitions, cfg.conditions)
        nwbfile = self.build_nwbfile(recording, run_table, icephys, image=image)
        outfilename = self.write(nwbfile, outfilename)
        if inspect:
            check_conversion(outfilename)
        return outfilename


# Read the data back in
def validate(testpath, nwbfile):
    with NWBHDF5IO(str(testpath), "r") as io:
        infile = io.read()

        # assert intracellular_recordings
        assert np.all(
            infile.intracellular_recordings.id[:] == nwbfile.intracellular_recordings.id[:]
        )

        # Assert that the ids and the VectorData, VectorIndex, and table target of each
        # grouping column are correct
        for table_name, column in (
            ("icephys_simultaneous_recordings", "recordings"),
            ("icephys_sequential_recordings", "simultaneous_recordings"),
            ("icephys_repetitions", "sequential_recordings"),
            ("icephys_experimental_conditions", "repetitions"),
        ):
            intable = getattr(infile, table_name)
            table = getattr(nwbfile, table_name)
            assert np.all(intable.id[:] == table.id[:])
            assert np.all(intable[column].target.data[:] == table[column].target.data[:])
            assert np.all(intable[column].data[:] == table[column].data[:])
            assert intable[column].target.table.name == table[column].target.table.name

        assert list(infile.icephys_sequential_recordings["stimulus_type"][:]) == list(
            nwbfile.icephys_sequential_recordings["stimulus_type"][:]
        )
        if "tag" in nwbfile.icephys_experimental_conditions.colnames:
            assert list(infile.icephys_experimental_conditions["tag"][:]) == list(
                nwbfile.icephys_experimental_conditions["tag"][:]
            )


def ConvertFile(
    configfile: Union[str, Path],
    outputpath: Union[str, Path, None] = None,
    outfilename: Union[str, Path, None] = None,
    inspect: bool = False,
) -> Path:
    config = load_config(configfile)
    S2N = SignaltoNWB(config, outputpath)
    NWBFile = S2N.convert(outfilename=outfilename, inspect=inspect)
    return NWBFile


def check_conversion(nwbf: Union[str, Path]) -> bool:
    """Run nwbinspector on a written file and report what it finds.

    Returns:
        True when nwbinspector has no messages for the file
    """
    results = list(inspect_nwbfile(nwbfile_path=str(nwbf)))
    if len(results) == 0:
        Logger.info(f"    Conversion OK: {nwbf!s}")
        return True
    Logger.warning(f"    nwbinspector reported {len(results):d} issue(s) for file {nwbf!s}")
    for result in results:
        Logger.warning(f"        {result.importance.name:s} {result.check_function_name:s}: {result.message:s}")
    return False


def build_parser():
    parser = argparse.ArgumentParser(
        description="Convert a CED Signal patch clamp recording (MATLAB export) to NWB",
    )
    parser.add_argument(dest="configfile", type=str, help="dataset configuration file (.toml)")
    parser.add_argument(
        "-o", "--outputpath", type=str, dest="outputpath", default=None, help="directory for the NWB file"
    )
    parser.add_argument(
        "-f", "--filename", type=str, dest="outfilename", default=None, help="NWB output file name (full path)"
    )
    parser.add_argument(
        "--inspect", action="store_true", dest="inspect", help="check the output with nwbinspector"
    )
    parser.add_argument("--log-file", type=str, dest="log_file", default=None, help="also log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", dest="verbose", help="debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    create_logger(
        log_name="signal2nwb",
        log_file=args.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_message=f"Converting {args.configfile:s}",
    )
    try:
        ConvertFile(
            configfile=args.configfile,
            outputpath=args.outputpath,
            outfilename=args.outfilename,
            inspect=args.inspect,
        )
    except ConversionError as exc:
        Logger.error(f"Conversion failed: {exc!s}")
        sys.exit(1)


if __name__ == "__main__":
    main()
