"""Tests for configuration management."""

from pathlib import Path

import pytest
import yaml

from wlangen.config import ScenarioConfig
from wlangen.errors import ConfigurationError

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config.yml"


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "config.yml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


def test_config_from_yaml(temp_config_file: Path, tmp_path: Path) -> None:
    """Test loading configuration from YAML file."""
    config = ScenarioConfig.from_yaml(temp_config_file)

    assert config.scenario.name == "unit_test"
    assert config.scenario.verbose is False
    assert config.cells.ap_count == 4
    assert config.layout.seed == 7
    assert config.traffic.interval == 1.0
    assert config.telemetry.max_packets_per_trace_file == 1_000_000
    assert config.output.directory == tmp_path / "out"


def test_config_defaults() -> None:
    """Test default configuration values."""
    config = ScenarioConfig()

    assert config.scenario.name == "experiment_v6"
    assert config.cells.ap_count == 10
    assert config.cells.sta_per_ap == 3
    assert config.addressing.base == "10.1.1.0"
    assert config.addressing.mask == "255.255.255.0"
    assert (config.layout.anchor_x, config.layout.anchor_y, config.layout.step) == (
        20.0,
        20.0,
        30.0,
    )
    assert config.traffic.port == 9
    assert config.traffic.payload_size == 64
    assert config.timing.global_stop == 10.0
    assert config.telemetry.detailed_trace is True
    assert config.telemetry.grace_interval == 3.0
    config.validate()


def test_repository_config_loads() -> None:
    config = ScenarioConfig.from_yaml(REPO_CONFIG)
    assert config.cells.ap_count == 10
    assert config.engine.data_rate_bps == 54e6
    assert config.output.export_topology is True


def test_integers_accepted_for_float_fields(tmp_path: Path, sample_config: dict) -> None:
    sample_config["timing"]["global_stop"] = 12
    config = ScenarioConfig.from_yaml(_write(tmp_path, sample_config))
    assert config.timing.global_stop == 12.0
    assert isinstance(config.timing.global_stop, float)


def test_optional_sections_default(tmp_path: Path, sample_config: dict) -> None:
    for name in ("scenario", "addressing", "layout", "output"):
        del sample_config[name]
    config = ScenarioConfig.from_yaml(_write(tmp_path, sample_config))
    assert config.scenario.name == "experiment_v6"
    assert config.layout.seed == 42


@pytest.mark.parametrize("section", ["cells", "traffic", "timing", "telemetry"])
def test_missing_required_section(tmp_path: Path, sample_config: dict, section: str) -> None:
    del sample_config[section]
    with pytest.raises(ConfigurationError, match=f"Missing required '{section}'"):
        ScenarioConfig.from_yaml(_write(tmp_path, sample_config))


def test_unknown_section_rejected(tmp_path: Path, sample_config: dict) -> None:
    sample_config["mobility"] = {"model": "random_walk"}
    with pytest.raises(ConfigurationError, match="Unknown configuration sections"):
        ScenarioConfig.from_yaml(_write(tmp_path, sample_config))


def test_unknown_key_rejected(tmp_path: Path, sample_config: dict) -> None:
    sample_config["cells"]["sta_count"] = 3
    with pytest.raises(ConfigurationError, match="Unknown keys in 'cells'"):
        ScenarioConfig.from_yaml(_write(tmp_path, sample_config))


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("cells", "ap_count", "ten"),
        ("cells", "ap_count", 2.5),
        ("cells", "ap_count", True),
        ("telemetry", "detailed_trace", "yes please"),
        ("timing", "global_stop", "soon"),
        ("scenario", "name", 42),
    ],
)
def test_wrong_types_rejected(
    tmp_path: Path, sample_config: dict, section: str, key: str, value
) -> None:
    sample_config[section][key] = value
    with pytest.raises(ConfigurationError, match=f"{section}.{key}"):
        ScenarioConfig.from_yaml(_write(tmp_path, sample_config))


def test_non_mapping_section_rejected(tmp_path: Path, sample_config: dict) -> None:
    sample_config["cells"] = [4, 3]
    with pytest.raises(ConfigurationError, match="must be a dictionary"):
        ScenarioConfig.from_yaml(_write(tmp_path, sample_config))


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    path = tmp_path / "list.yml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError, match="root must be a mapping"):
        ScenarioConfig.from_yaml(path)


@pytest.mark.parametrize(
    "section,key,value,message",
    [
        ("cells", "ap_count", 0, "ap_count must be positive"),
        ("cells", "sta_per_ap", 0, "sta_per_ap must be positive"),
        ("cells", "ap_count", 254, "overflow"),
        ("cells", "sta_per_ap", 254, "host addresses"),
        ("timing", "global_stop", 0.0, "global_stop must be positive"),
        ("traffic", "server_start", -1.0, "server_start must be >= 0"),
        ("traffic", "client_start", 1.0, "server_start < client_start"),
        ("traffic", "client_start", 10.0, "client_start < global_stop"),
        ("traffic", "port", 0, "traffic.port"),
        ("traffic", "max_packets", 0, "max_packets"),
        ("traffic", "interval", 0.0, "interval"),
        ("layout", "step", 0.0, "layout.step"),
        ("layout", "jitter_y", -1.0, "jitter"),
        ("telemetry", "grace_interval", -0.5, "grace_interval"),
        ("scenario", "name", "  ", "name must not be empty"),
    ],
)
def test_config_validation_invalid_params(section, key, value, message) -> None:
    """Test configuration validation with invalid parameters."""
    config = ScenarioConfig()
    setattr(getattr(config, section), key, value)
    with pytest.raises(ConfigurationError, match=message):
        config.validate()


def test_invalid_address_scheme() -> None:
    config = ScenarioConfig()
    config.addressing.base = "10.1.1.7"
    with pytest.raises(ConfigurationError):
        config.validate()


def test_configuration_error_is_value_error() -> None:
    config = ScenarioConfig()
    config.cells.ap_count = 0
    with pytest.raises(ValueError):
        config.validate()


def test_config_summary() -> None:
    """Test configuration summary generation."""
    summary = ScenarioConfig().summary()

    assert "MULTI-CELL SCENARIO CONFIGURATION" in summary
    assert "Access Points: 10" in summary
    assert "Total Nodes: 40" in summary
    assert "Echo Port: 9" in summary


def test_config_file_not_found() -> None:
    """Test handling of missing configuration file."""
    with pytest.raises(FileNotFoundError):
        ScenarioConfig.from_yaml(Path("non_existent_config.yml"))


def test_config_invalid_yaml(invalid_config_file: Path) -> None:
    """Test handling of invalid YAML."""
    with pytest.raises(yaml.YAMLError):
        ScenarioConfig.from_yaml(invalid_config_file)
