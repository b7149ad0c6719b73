"""
Dataset configuration for the Signal to NWB conversion.

Everything that describes a particular recording session (project, subject,
session, rig, file naming, calibration constants and the hand-written
repetition/condition groupings) lives in a TOML file, one per dataset.
It is read once into an immutable ConversionConfig and passed explicitly
to the converter.

A minimal file looks like::

    [project]
    name = "Inhibitory plasticity experiment in CA1"
    experimenter = ["MU"]

    [subject]
    subject_id = "180126"
    age = "34"

    [session]
    start = "2018-01-26"
    slice_number = 1
    cell_number = 1
    description = "Current and voltage clamp recordings"

    [grouping.repetitions]
    groups = [[0, 1], [2], [3], [4], [5, 6]]

    [grouping.conditions]
    groups = [[0, 4], [1, 3], [2]]
    tags = ["baselineStim", "noStim", "plasticityInduction"]

Grouping indices are 0-based row indices into the layer below.
"""

import datetime
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, Tuple, Union

import dateutil.parser as DUP
import toml
from dateutil.tz import tzlocal

from signal2nwb.errors import ConfigurationError

GroupingStrategy = Literal["explicit", "singletons"]


def def_tuple():
    return ()


@dataclass(frozen=True)
class ProjectInfo:
    """Project (experiment) level metadata."""

    name: str = ""
    experimenter: Tuple[str, ...] = field(default_factory=def_tuple)
    institution: str = ""
    publications: str = ""
    lab: str = ""
    brain_area: str = ""
    keywords: Tuple[str, ...] = field(default_factory=def_tuple)


@dataclass(frozen=True)
class SubjectInfo:
    subject_id: str
    age: str = ""
    strain: str = ""
    sex: str = "U"
    species: str = "Mus musculus"
    description: str = ""
    weight: Optional[str] = None


@dataclass(frozen=True)
class SessionInfo:
    start: datetime.datetime
    slice_number: int
    cell_number: int
    description: str
    experiment_description: str = ""
    notes: str = ""
    identifier: Optional[str] = None

    @property
    def session_id(self) -> str:
        return session_name(self.start, self.slice_number, self.cell_number)


@dataclass(frozen=True)
class DeviceInfo:
    name: str = "Amplifier_Multiclamp_700A"
    description: str = "Amplifier for recording intracellular data."
    manufacturer: str = "Molecular Devices"


@dataclass(frozen=True)
class ElectrodeInfo:
    name: str = "icephys_electrode"
    description: str = "A patch clamp electrode"
    location: str = "Cell soma in CA1 of hippocampus"


@dataclass(frozen=True)
class FileInfo:
    """Where the input files are. Empty names fall back to the lab naming scheme.
    A variable of None means the single "*_wave_data" variable of the file is used.
    """

    data_dir: Path = Path(".")
    recording: str = ""
    variable: Optional[str] = ""
    image: Optional[str] = ""


@dataclass(frozen=True)
class ScaleFactors:
    """Device calibration constants that convert raw samples to SI units."""

    voltage_clamp: float = 1 / 10e12
    current_clamp: float = 2.5 / 10e5


@dataclass(frozen=True)
class GroupingSpec:
    """Declarative grouping for one hand-specified layer."""

    strategy: GroupingStrategy = "explicit"
    groups: Tuple[Tuple[int, ...], ...] = field(default_factory=def_tuple)
    tags: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ConversionConfig:
    project: ProjectInfo
    subject: SubjectInfo
    session: SessionInfo
    files: FileInfo = field(default_factory=FileInfo)
    device: DeviceInfo = field(default_factory=DeviceInfo)
    electrode: ElectrodeInfo = field(default_factory=ElectrodeInfo)
    scaling: ScaleFactors = field(default_factory=ScaleFactors)
    repetitions: GroupingSpec = field(default_factory=GroupingSpec)
    conditions: GroupingSpec = field(default_factory=GroupingSpec)

    @property
    def recording_path(self) -> Path:
        name = self.files.recording or f"{self.session.session_id:s}_001_ED.mat"
        return Path(self.files.data_dir, name)

    @property
    def recording_variable(self) -> Optional[str]:
        """Name of the wave data struct; None lets the reader find it."""
        if self.files.variable is None:
            return None
        return self.files.variable or f"V{self.session.session_id:s}_001_wave_data"

    @property
    def image_path(self) -> Optional[Path]:
        """Path of the slice image; None when the configuration disables it."""
        if self.files.image is None:
            return None
        if self.files.image == "":
            s = self.session
            name = f"{s.start:%y%m%d} s{s.slice_number:d}c{s.cell_number:d}.jpg"
        else:
            name = self.files.image
        return Path(self.files.data_dir, name)

    @property
    def identifier(self) -> str:
        return self.session.identifier or self.session.session_id


def session_name(start: datetime.datetime, slice_number: int, cell_number: int) -> str:
    """
    Build the lab's short session name from the recording date, slice and cell:
    2018-01-26, slice 1, cell 1 -> "180126__s1c1"
    """
    return f"{start:%y%m%d}__s{slice_number:d}c{cell_number:d}"


def ISO8601_age(agestr: Union[str, int, None]) -> str:
    """Convert free-form age designators to ISO standard, e.g.:
        postnatal day 30 mouse = P30D  (or P30W, or P3Y)
        A bare number is taken as days.
        Ranges are P1D/P3D if bounded, or P12D/ if not known but have lower bound.

    Params:
        agestr (str or int): age as written in the configuration

    Returns:
        str: sanitized age string
    """
    if agestr is None:
        agestr = ""
    agestr = str(agestr).strip().replace(" ", "")
    agestr = agestr.replace("p", "P").replace("d", "D").replace("w", "W").replace("m", "M").replace("y", "Y")
    if "?" in agestr or "ish" in agestr.lower():
        raise ConfigurationError(f"Age {agestr!r} is not a valid age descriptor")
    if not agestr.startswith("P"):
        agestr = "P" + agestr
    if "/" not in agestr and agestr[-1] not in "DWMY":
        agestr = agestr + "D"
    if agestr == "PD":
        agestr = "P9999D"  # no age specified
    return agestr


def _section(config: dict, name: str, required: bool = True) -> dict:
    section = config.get(name, None)
    if section is None:
        if required:
            raise ConfigurationError(f"Configuration is missing the [{name:s}] section")
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"[{name:s}] must be a table")
    return section


def _require(section: dict, key: str, secname: str):
    if key not in section or section[key] in [None, ""]:
        raise ConfigurationError(f"Configuration [{secname:s}] is missing required key '{key:s}'")
    return section[key]


def _as_strings(value, key: str) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'{key:s}' must be a string or a list of strings")
    return tuple(str(v) for v in value)


def _as_text(value) -> str:
    """Long free-text fields may be written as a list of lines."""
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


def _parse_start(value) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        start = value
    elif isinstance(value, datetime.date):
        start = datetime.datetime.combine(value, datetime.time())
    else:
        try:
            start = DUP.parse(str(value))
        except (ValueError, OverflowError) as exc:
            raise ConfigurationError(f"Cannot parse session start '{value!s}'") from exc
    if start.tzinfo is None:
        start = start.replace(tzinfo=tzlocal())
    return start


def _parse_grouping(section: dict, name: str) -> GroupingSpec:
    strategy = section.get("strategy", "explicit")
    if strategy not in ("explicit", "singletons"):
        raise ConfigurationError(
            f"[grouping.{name:s}] strategy must be 'explicit' or 'singletons', not {strategy!r}"
        )
    raw_groups = section.get("groups", [])
    if strategy == "explicit" and len(raw_groups) == 0:
        raise ConfigurationError(f"[grouping.{name:s}] needs 'groups' for the explicit strategy")
    groups = []
    for group in raw_groups:
        if isinstance(group, int):
            group = [group]
        if not isinstance(group, (list, tuple)) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in group
        ):
            raise ConfigurationError(f"[grouping.{name:s}] groups must be lists of integers")
        groups.append(tuple(group))
    tags = section.get("tags", None)
    if tags is not None:
        tags = _as_strings(tags, f"grouping.{name:s}.tags")
    return GroupingSpec(strategy=strategy, groups=tuple(groups), tags=tags)


def parse_config(config: dict, basedir: Union[str, Path, None] = None) -> ConversionConfig:
    """Build a ConversionConfig from an already-parsed configuration dictionary.

    Args:
        config (dict): the configuration tables
        basedir (Union[str, Path, None]): relative data_dir entries are resolved against this.

    Returns:
        ConversionConfig
    """
    proj = _section(config, "project", required=False)
    project = ProjectInfo(
        name=str(proj.get("name", "")),
        experimenter=_as_strings(proj.get("experimenter", []), "experimenter"),
        institution=str(proj.get("institution", "")),
        publications=str(proj.get("publications", "")),
        lab=str(proj.get("lab", "")),
        brain_area=str(proj.get("brain_area", "")),
        keywords=_as_strings(proj.get("keywords", []), "keywords"),
    )

    subj = _section(config, "subject")
    weight = subj.get("weight", None)
    subject = SubjectInfo(
        subject_id=str(_require(subj, "subject_id", "subject")),
        age=ISO8601_age(subj.get("age", "")),
        strain=str(subj.get("strain", "")),
        sex=str(subj.get("sex", "U")).upper() or "U",
        species=str(subj.get("species", "Mus musculus")),
        description=str(subj.get("description", "")),
        weight=None if weight in [None, ""] else str(weight),
    )

    sess = _section(config, "session")
    try:
        slice_number = int(_require(sess, "slice_number", "session"))
        cell_number = int(_require(sess, "cell_number", "session"))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("slice_number and cell_number must be integers") from exc
    session = SessionInfo(
        start=_parse_start(_require(sess, "start", "session")),
        slice_number=slice_number,
        cell_number=cell_number,
        description=_as_text(_require(sess, "description", "session")),
        experiment_description=_as_text(sess.get("experiment_description", "")),
        notes=_as_text(sess.get("notes", "")),
        identifier=sess.get("identifier", None),
    )

    fil = _section(config, "files", required=False)
    data_dir = Path(fil.get("data_dir", "."))
    if basedir is not None and not data_dir.is_absolute():
        data_dir = Path(basedir, data_dir)
    image = fil.get("image", "")
    if image is False:
        image = None
    variable = fil.get("variable", "")
    variable = None if variable is False else str(variable)
    files = FileInfo(
        data_dir=data_dir,
        recording=str(fil.get("recording", "")),
        variable=variable,
        image=image,
    )

    dev = _section(config, "device", required=False)
    device = DeviceInfo(**{k: str(v) for k, v in dev.items() if k in DeviceInfo.__dataclass_fields__})
    elec = _section(config, "electrode", required=False)
    electrode = ElectrodeInfo(
        **{k: str(v) for k, v in elec.items() if k in ElectrodeInfo.__dataclass_fields__}
    )

    scal = _section(config, "scaling", required=False)
    try:
        scaling = ScaleFactors(**{k: float(v) for k, v in scal.items() if k in ScaleFactors.__dataclass_fields__})
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("[scaling] factors must be numbers") from exc

    grouping = _section(config, "grouping")
    repetitions = _parse_grouping(_section(grouping, "repetitions"), "repetitions")
    conditions = _parse_grouping(_section(grouping, "conditions"), "conditions")

    return ConversionConfig(
        project=project,
        subject=subject,
        session=session,
        files=files,
        device=device,
        electrode=electrode,
        scaling=scaling,
        repetitions=repetitions,
        conditions=conditions,
    )


def load_config(configfile: Union[str, Path]) -> ConversionConfig:
    """Read a dataset configuration file.

    Relative data directories in the file are taken relative to the
    directory holding the configuration file.

    Raises:
        ConfigurationError: when the file is missing, is not valid TOML, or lacks required entries
    """
    configfile = Path(configfile)
    if not configfile.is_file():
        raise ConfigurationError(f"No configuration file found at '{configfile!s}'")
    try:
        with open(configfile, "r") as fh:
            config = toml.load(fh)
    except toml.TomlDecodeError as exc:
        raise ConfigurationError(f"Configuration file '{configfile!s}' is not valid TOML: {exc!s}") from exc
    return parse_config(config, basedir=configfile.parent)
