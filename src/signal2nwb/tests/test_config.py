import datetime
from pathlib import Path

import pytest

from signal2nwb.config import ISO8601_age, load_config, parse_config, session_name
from signal2nwb.errors import ConfigurationError

CONFIG_DIR = Path(Path(__file__).parents[3], "config")


def test_load_dataset_config():
    cfg = load_config(Path(CONFIG_DIR, "180126_s1c1.toml"))
    assert cfg.session.session_id == "180126__s1c1"
    assert cfg.subject.age == "P34D"
    assert cfg.subject.sex == "F"
    assert cfg.project.experimenter == ("MU",)
    assert cfg.recording_path == Path(CONFIG_DIR, "..", "180126__s1c1_001_ED.mat")
    assert cfg.recording_variable == "V180126__s1c1_001_wave_data"
    assert cfg.image_path.name == "180126 s1c1.jpg"
    assert cfg.scaling.voltage_clamp == pytest.approx(1e-13)
    assert cfg.scaling.current_clamp == pytest.approx(2.5e-6)
    assert cfg.repetitions.groups == ((0, 1), (2,), (3,), (4,), (5, 6))
    assert cfg.conditions.tags == ("baselineStim", "noStim", "plasticityInduction")
    assert cfg.session.notes.startswith("180126 PV mouse")
    assert cfg.session.start.tzinfo is not None
    assert cfg.identifier == "180126__s1c1"


def test_session_name():
    assert session_name(datetime.datetime(2018, 1, 26), 2, 3) == "180126__s2c3"


@pytest.mark.parametrize(
    "age, expected",
    [
        ("34", "P34D"),
        (34, "P34D"),
        ("P30D", "P30D"),
        ("p3w", "P3W"),
        ("", "P9999D"),
        (None, "P9999D"),
        ("P12D/", "P12D/"),
        ("P1D/P3D", "P1D/P3D"),
    ],
)
def test_ISO8601_age(age, expected):
    assert ISO8601_age(age) == expected


def test_ISO8601_age_rejects_guesses():
    with pytest.raises(ConfigurationError):
        ISO8601_age("30?")


def test_defaults_from_dict(config_dict):
    cfg = parse_config(config_dict, basedir="/data")
    assert cfg.device.manufacturer == "Molecular Devices"
    assert cfg.electrode.name == "icephys_electrode"
    assert cfg.files.data_dir == Path("/data")
    assert cfg.image_path == Path("/data", "slice.png")


def test_variable_can_be_left_to_the_reader(config_dict):
    assert parse_config(config_dict).recording_variable == "V180126__s1c1_001_wave_data"
    config_dict["files"]["variable"] = False
    assert parse_config(config_dict).recording_variable is None


def test_image_can_be_disabled(config_dict):
    config_dict["files"]["image"] = False
    assert parse_config(config_dict).image_path is None


def test_missing_grouping(config_dict):
    del config_dict["grouping"]
    with pytest.raises(ConfigurationError, match="grouping"):
        parse_config(config_dict)


def test_missing_required_key(config_dict):
    del config_dict["session"]["slice_number"]
    with pytest.raises(ConfigurationError, match="slice_number"):
        parse_config(config_dict)


def test_bad_grouping(config_dict):
    config_dict["grouping"]["repetitions"]["groups"] = [["a"]]
    with pytest.raises(ConfigurationError):
        parse_config(config_dict)
    config_dict["grouping"]["repetitions"] = {"strategy": "guess"}
    with pytest.raises(ConfigurationError, match="strategy"):
        parse_config(config_dict)


def test_singletons_need_no_groups(config_dict):
    config_dict["grouping"]["repetitions"] = {"strategy": "singletons"}
    cfg = parse_config(config_dict)
    assert cfg.repetitions.strategy == "singletons"
    assert cfg.repetitions.groups == ()


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(Path(tmp_path, "absent.toml"))


def test_invalid_toml(tmp_path):
    path = Path(tmp_path, "broken.toml")
    path.write_text("[project\nname = ")
    with pytest.raises(ConfigurationError, match="TOML"):
        load_config(path)
