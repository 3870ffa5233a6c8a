"""Pytest configuration and shared fixtures for wlangen tests."""

from __future__ import annotations

import itertools
import json
from pathlib import Path

import pytest

from wlangen.engine.base import (
    ChannelHandle,
    DeviceGroup,
    DeviceHandle,
    NodeHandle,
    SimulationEngine,
)
from wlangen.errors import EngineError


class RecordingEngine(SimulationEngine):
    """Engine stub recording every call by name.

    Returns sequential handles, assigns host addresses per subnet the way a
    real engine does, and writes placeholder files for registered captures
    and animation when the run completes. ``fail_on`` names a method that
    raises ``EngineError`` instead of running.
    """

    def __init__(self, output_dir: Path, fail_on: str | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.fail_on = fail_on
        self.calls: list[tuple[str, tuple]] = []
        self.positions: dict[int, tuple[float, float]] = {}
        self.applications: list = []
        self._ids = itertools.count()
        self._next_host: dict[str, int] = {}
        self._outputs: list[Path] = []

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if self.fail_on == name:
            raise EngineError(f"{name} failed")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def create_channel(self):
        self._record("create_channel")
        return ChannelHandle(next(self._ids))

    def create_device_group(self, channel, role, network_name, count, *, active_probing=False):
        self._record("create_device_group", channel, role, network_name, count)
        nodes = tuple(NodeHandle(next(self._ids)) for _ in range(count))
        devices = tuple(DeviceHandle(next(self._ids), n) for n in nodes)
        return DeviceGroup(channel, role, network_name, nodes, devices)

    def install_transport_stack(self, nodes):
        self._record("install_transport_stack", tuple(nodes))

    def allocate_addresses(self, subnet, devices):
        self._record("allocate_addresses", subnet, tuple(devices))
        out = []
        for _ in devices:
            ordinal = self._next_host.get(subnet.cidr, 1)
            out.append(subnet.host(ordinal))
            self._next_host[subnet.cidr] = ordinal + 1
        return out

    def schedule_application(self, endpoint):
        self._record("schedule_application", endpoint)
        self.applications.append(endpoint)

    def set_constant_position(self, node, x, y):
        self._record("set_constant_position", node, x, y)
        self.positions[node.node_id] = (x, y)

    def enable_capture(self, device, name):
        self._record("enable_capture", device, name)
        path = self.output_dir / f"{name}.json"
        self._outputs.append(path)
        return path

    def enable_animation(self, name, max_packets_per_file):
        self._record("enable_animation", name, max_packets_per_file)
        path = self.output_dir / f"{name}.json"
        self._outputs.append(path)
        return path

    def enable_flow_monitor(self):
        self._record("enable_flow_monitor")

    def populate_routing_tables(self):
        self._record("populate_routing_tables")

    def run_until(self, time):
        self._record("run_until", time)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for path in self._outputs:
            path.write_text(json.dumps({"name": path.stem}))

    def collect_flow_statistics(self):
        self._record("collect_flow_statistics")
        return {"horizon": 0.0, "flows": []}

    def destroy(self):
        self._record("destroy")

    def set_application_logging(self, enabled):
        self._record("set_application_logging", enabled)


@pytest.fixture
def recording_engine(tmp_path):
    """Recording stub engine writing placeholders under ``tmp_path/out``."""
    return RecordingEngine(tmp_path / "out")


@pytest.fixture
def failing_engine_factory(tmp_path):
    """Build a recording engine that fails on the named method."""

    def _make(method: str) -> RecordingEngine:
        return RecordingEngine(tmp_path / "out", fail_on=method)

    return _make


@pytest.fixture
def sample_config(tmp_path):
    """Sample configuration dictionary for testing."""
    return {
        "scenario": {"name": "unit_test", "verbose": False},
        "cells": {"ap_count": 4, "sta_per_ap": 3},
        "addressing": {"base": "10.1.1.0", "mask": "255.255.255.0"},
        "layout": {
            "anchor_x": 20.0,
            "anchor_y": 20.0,
            "step": 30.0,
            "jitter_x": 5.0,
            "jitter_y": 10.0,
            "seed": 7,
        },
        "traffic": {
            "port": 9,
            "max_packets": 3,
            "interval": 1.0,
            "payload_size": 64,
            "server_start": 1.0,
            "client_start": 2.0,
        },
        "timing": {"global_stop": 10.0},
        "telemetry": {
            "detailed_trace": True,
            "grace_interval": 3.0,
            "max_packets_per_trace_file": 1000000,
        },
        "output": {"directory": str(tmp_path / "out")},
    }


@pytest.fixture
def temp_config_file(tmp_path, sample_config):
    """Create a temporary configuration file for testing."""
    import yaml

    config_file = tmp_path / "test_config.yml"
    with open(config_file, "w") as f:
        yaml.dump(sample_config, f, default_flow_style=False, indent=2)
    return config_file


@pytest.fixture
def invalid_config_file(tmp_path):
    """Create an invalid YAML configuration file for testing."""
    config_file = tmp_path / "invalid_config.yml"
    config_file.write_text("invalid: yaml: content: [unclosed")
    return config_file


@pytest.fixture
def scenario_config(temp_config_file):
    """Create a complete ScenarioConfig object for testing."""
    from wlangen.config import ScenarioConfig

    return ScenarioConfig.from_yaml(temp_config_file)
