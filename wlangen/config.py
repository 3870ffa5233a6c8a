"""Configuration management for scenario generation."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from wlangen.addressing import DEFAULT_BASE_ADDRESS, DEFAULT_MASK, AddressAllocator
from wlangen.errors import ConfigurationError
from wlangen.log_config import get_logger

logger = get_logger(__name__)


@dataclass
class ScenarioMetadata:
    """Scenario identity and console behaviour.

    ``name`` prefixes every output artifact. ``verbose`` enables per-packet
    application log lines from the echo client and server.
    """

    name: str = "experiment_v6"
    verbose: bool = True


@dataclass
class CellsConfig:
    """Cell counts: access points and stations per access point."""

    ap_count: int = 10
    sta_per_ap: int = 3


@dataclass
class AddressingConfig:
    """Base address for cell 0; the third octet increments once per cell."""

    base: str = DEFAULT_BASE_ADDRESS
    mask: str = DEFAULT_MASK


@dataclass
class LayoutConfig:
    """Deterministic cell layout and seeded station jitter.

    Cell anchors advance diagonally by ``step`` on both axes starting at
    ``(anchor_x, anchor_y)``. Stations are drawn uniformly from
    ``[x - jitter_x, x + jitter_x] x [y - jitter_y, y + jitter_y]`` around
    their cell anchor.
    """

    anchor_x: float = 20.0
    anchor_y: float = 20.0
    step: float = 30.0
    jitter_x: float = 5.0
    jitter_y: float = 10.0
    seed: int = 42


@dataclass
class TrafficConfig:
    """Uniform echo traffic profile applied to every cell."""

    port: int = 9
    max_packets: int = 3
    interval: float = 1.0  # seconds between client packets
    payload_size: int = 64  # bytes
    server_start: float = 1.0
    client_start: float = 2.0


@dataclass
class TimingConfig:
    global_stop: float = 10.0  # stop time shared by every application


@dataclass
class TelemetryConfig:
    """Telemetry collection settings.

    When ``detailed_trace`` is enabled the engine horizon is extended by
    ``grace_interval`` so flow statistics settle; application stop times are
    not affected.
    """

    detailed_trace: bool = True
    grace_interval: float = 3.0
    max_packets_per_trace_file: int = 1_000_000


@dataclass
class EngineConfig:
    """Parameters for the in-process reference engine."""

    base_latency: float = 1e-4
    data_rate_bps: float = 54e6


@dataclass
class OutputConfig:
    directory: Path = field(default_factory=lambda: Path("."))
    export_topology: bool = False
    export_layout_map: bool = False
    dpi: int = 300

    def __post_init__(self) -> None:
        """Convert string paths to Path objects."""
        self.directory = Path(self.directory)


_SECTIONS: dict[str, type] = {
    "scenario": ScenarioMetadata,
    "cells": CellsConfig,
    "addressing": AddressingConfig,
    "layout": LayoutConfig,
    "traffic": TrafficConfig,
    "timing": TimingConfig,
    "telemetry": TelemetryConfig,
    "engine": EngineConfig,
    "output": OutputConfig,
}
_REQUIRED_SECTIONS = ("cells", "traffic", "timing", "telemetry")


@dataclass
class ScenarioConfig:
    """Complete multi-cell scenario configuration.

    Aggregates every subsystem configuration. Defaults reproduce the reference
    experiment: ten cells of three stations, echo traffic on port 9, a 10 s
    run with detailed tracing and a 3 s grace interval.
    """

    scenario: ScenarioMetadata = field(default_factory=ScenarioMetadata)
    cells: CellsConfig = field(default_factory=CellsConfig)
    addressing: AddressingConfig = field(default_factory=AddressingConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    traffic: TrafficConfig = field(default_factory=TrafficConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_yaml(cls, config_path: Path) -> ScenarioConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Parsed and validated configuration object.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            ConfigurationError: If configuration is invalid.
        """
        logger.info(f"Loading configuration from: {config_path}")

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in configuration: {e}")
            raise

        if not isinstance(raw_config, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {config_path}"
            )
        cfg = cls._from_dict(raw_config)
        cfg.validate()
        return cfg

    @classmethod
    def _from_dict(cls, config_dict: dict[str, Any]) -> ScenarioConfig:
        """Create configuration from dictionary.

        Args:
            config_dict: Raw configuration dictionary.

        Returns:
            Parsed configuration object (not yet validated).

        Raises:
            ConfigurationError: On missing required sections, unknown sections
                or keys, or values of the wrong type.
        """
        for name in _REQUIRED_SECTIONS:
            if name not in config_dict:
                raise ConfigurationError(
                    f"Missing required '{name}' configuration section"
                )
        unknown = set(config_dict) - set(_SECTIONS)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration sections: {sorted(unknown)}. "
                f"Allowed sections: {sorted(_SECTIONS)}"
            )

        parsed: dict[str, Any] = {}
        for name, section_cls in _SECTIONS.items():
            parsed[name] = _parse_section(name, section_cls, config_dict.get(name))
        return cls(**parsed)

    def validate(self) -> None:
        """Validate configuration parameters.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        logger.info("Validating configuration")

        if self.cells.ap_count <= 0:
            raise ConfigurationError(
                f"ap_count must be positive, got {self.cells.ap_count}"
            )
        if self.cells.sta_per_ap <= 0:
            raise ConfigurationError(
                f"sta_per_ap must be positive, got {self.cells.sta_per_ap}"
            )
        if not str(self.scenario.name).strip():
            raise ConfigurationError("scenario.name must not be empty")

        allocator = AddressAllocator(self.addressing.base, self.addressing.mask)
        allocator.check_capacity(self.cells.ap_count)
        host_capacity = allocator.allocate(0).host_capacity
        if self.cells.sta_per_ap + 1 > host_capacity:
            raise ConfigurationError(
                f"{self.cells.sta_per_ap} stations plus one access point exceed "
                f"the {host_capacity} host addresses of mask {self.addressing.mask}"
            )

        t = self.traffic
        stop = self.timing.global_stop
        if stop <= 0.0:
            raise ConfigurationError(f"global_stop must be positive, got {stop}")
        if t.server_start < 0.0:
            raise ConfigurationError(
                f"server_start must be >= 0, got {t.server_start}"
            )
        if not t.server_start < t.client_start < stop:
            raise ConfigurationError(
                "Timing must satisfy server_start < client_start < global_stop, got "
                f"{t.server_start} / {t.client_start} / {stop}"
            )
        if not 0 < t.port <= 65535:
            raise ConfigurationError(f"traffic.port must be in 1..65535, got {t.port}")
        if t.max_packets <= 0:
            raise ConfigurationError("traffic.max_packets must be positive")
        if t.interval <= 0.0:
            raise ConfigurationError("traffic.interval must be positive")
        if t.payload_size <= 0:
            raise ConfigurationError("traffic.payload_size must be positive")

        lay = self.layout
        if lay.step <= 0.0:
            raise ConfigurationError(
                "layout.step must be positive so anchors strictly increase"
            )
        if lay.jitter_x < 0.0 or lay.jitter_y < 0.0:
            raise ConfigurationError("layout jitter must be non-negative")

        tel = self.telemetry
        if tel.grace_interval < 0.0:
            raise ConfigurationError("telemetry.grace_interval must be non-negative")
        if tel.max_packets_per_trace_file <= 0:
            raise ConfigurationError(
                "telemetry.max_packets_per_trace_file must be positive"
            )

        if self.engine.base_latency < 0.0:
            raise ConfigurationError("engine.base_latency must be non-negative")
        if self.engine.data_rate_bps <= 0.0:
            raise ConfigurationError("engine.data_rate_bps must be positive")
        if self.output.dpi <= 0:
            raise ConfigurationError("output.dpi must be a positive integer")

        logger.info("Configuration validation passed")

    def summary(self) -> str:
        """Generate configuration summary string.

        Returns:
            Human-readable configuration summary.
        """
        c = self.cells
        t = self.traffic
        lines = [
            "MULTI-CELL SCENARIO CONFIGURATION",
            "=" * 60,
            "",
            "CELLS",
            "-" * 30,
            f"   Scenario: {self.scenario.name}",
            f"   Access Points: {c.ap_count}",
            f"   Stations per AP: {c.sta_per_ap}",
            f"   Total Nodes: {c.ap_count * (c.sta_per_ap + 1)}",
            f"   Base Subnet: {self.addressing.base}/{self.addressing.mask}",
            "",
            "LAYOUT",
            "-" * 30,
            f"   First Anchor: ({self.layout.anchor_x}, {self.layout.anchor_y})",
            f"   Diagonal Step: {self.layout.step}",
            f"   Jitter Box: ±{self.layout.jitter_x} x ±{self.layout.jitter_y}",
            f"   Seed: {self.layout.seed}",
            "",
            "TRAFFIC",
            "-" * 30,
            f"   Echo Port: {t.port}",
            f"   Packets: {t.max_packets} x {t.payload_size}B every {t.interval}s",
            f"   Server Start: {t.server_start}s",
            f"   Client Start: {t.client_start}s",
            f"   Global Stop: {self.timing.global_stop}s",
            "",
            "TELEMETRY",
            "-" * 30,
            f"   Detailed Trace: {self.telemetry.detailed_trace}",
            f"   Grace Interval: {self.telemetry.grace_interval}s",
            f"   Output Directory: {self.output.directory}",
            "",
            "=" * 60,
        ]

        return "\n".join(lines)


def _parse_section(name: str, section_cls: type, raw: Any) -> Any:
    """Build one section dataclass with strict key and type checks."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"'{name}' configuration section must be a dictionary")

    declared = {f.name: f for f in fields(section_cls)}
    extra = set(raw) - set(declared)
    if extra:
        raise ConfigurationError(
            f"Unknown keys in '{name}': {sorted(extra)}. "
            f"Allowed keys: {sorted(declared)}"
        )

    defaults = section_cls()
    values: dict[str, Any] = {}
    for key, value in raw.items():
        expected = type(getattr(defaults, key))
        values[key] = _coerce(f"{name}.{key}", value, expected)
    return section_cls(**values)


def _coerce(key: str, value: Any, expected: type) -> Any:
    if expected is bool:
        if not isinstance(value, bool):
            raise ConfigurationError(f"'{key}' must be a boolean, got {value!r}")
        return value
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"'{key}' must be an integer, got {value!r}")
        return value
    if expected is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
        return float(value)
    if issubclass(expected, Path):
        if not isinstance(value, (str, Path)):
            raise ConfigurationError(f"'{key}' must be a path string, got {value!r}")
        return Path(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"'{key}' must be a string, got {value!r}")
    return value
