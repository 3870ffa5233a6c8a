"""Tests for telemetry registration, horizon and finalization."""

import json
import random

import pytest

from wlangen.addressing import AddressAllocator
from wlangen.errors import EngineError
from wlangen.telemetry import GLOBAL_TARGET, ArtifactKind, TelemetryPlan
from wlangen.topology import TopologyBuilder


def _cells(engine, count=3):
    return TopologyBuilder(engine, AddressAllocator(), random.Random(0)).build(count, 2)


@pytest.fixture
def plan(recording_engine):
    return TelemetryPlan(recording_engine, "exp", recording_engine.output_dir)


class TestRegister:
    def test_disabled_registers_nothing(self, plan, recording_engine):
        cells = _cells(recording_engine)
        before = len(recording_engine.calls)
        assert plan.register(cells, False) == []
        assert len(recording_engine.calls) == before
        assert plan.horizon(10.0) == 10.0

    def test_enabled_declares_all_artifacts(self, plan, recording_engine):
        cells = _cells(recording_engine, count=10)
        artifacts = plan.register(cells, True)

        captures = [a for a in artifacts if a.kind is ArtifactKind.CAPTURE]
        assert [a.target for a in captures] == list(range(10))
        assert [a.output_name for a in captures] == [f"exp_{i}" for i in range(10)]

        globals_ = [a for a in artifacts if a.target == GLOBAL_TARGET]
        assert [a.kind for a in globals_] == [
            ArtifactKind.ANIMATION,
            ArtifactKind.FLOW_SUMMARY,
        ]
        assert globals_[0].output_name == "exp_animation"
        assert globals_[1].output_name == "exp_flows"
        assert len({a.output_name for a in artifacts}) == len(artifacts) == 12

    def test_captures_target_ap_devices(self, plan, recording_engine):
        cells = _cells(recording_engine)
        plan.register(cells, True)
        devices = [args[0] for name, args in recording_engine.calls if name == "enable_capture"]
        assert devices == [c.ap_device for c in cells]
        assert "enable_flow_monitor" in recording_engine.call_names()

    def test_animation_packet_cap(self, recording_engine):
        plan = TelemetryPlan(
            recording_engine, "exp", recording_engine.output_dir, max_packets_per_trace_file=500
        )
        plan.register(_cells(recording_engine), True)
        anim = [args for name, args in recording_engine.calls if name == "enable_animation"]
        assert anim == [("exp_animation", 500)]

    def test_horizon_extends_by_grace_when_enabled(self, plan, recording_engine):
        plan.register(_cells(recording_engine), True)
        assert plan.horizon(10.0) == 13.0

    def test_custom_grace(self, recording_engine):
        plan = TelemetryPlan(recording_engine, "exp", recording_engine.output_dir, grace_interval=0.5)
        plan.register(_cells(recording_engine), True)
        assert plan.horizon(4.0) == 4.5


class TestFinalize:
    def test_writes_flow_summary(self, plan, recording_engine):
        artifacts = plan.register(_cells(recording_engine), True)
        recording_engine.run_until(plan.horizon(10.0))
        finalized = plan.finalize(artifacts)

        assert finalized == artifacts
        for artifact in artifacts:
            assert artifact.path.exists()
        flow_path = artifacts[-1].path
        data = json.loads(flow_path.read_text())
        assert data["scenario"] == "exp"
        assert data["flows"] == []
        assert not flow_path.with_suffix(".json.tmp").exists()

    def test_flows_annotated_with_cell(self, recording_engine):
        flows = [
            {"flow_id": 1, "source_address": "10.1.2.2", "destination_address": "10.1.2.1"},
            {"flow_id": 2, "source_address": "192.0.2.1", "destination_address": "10.1.1.1"},
        ]
        recording_engine.collect_flow_statistics = lambda: {"horizon": 13.0, "flows": flows}
        plan = TelemetryPlan(recording_engine, "exp", recording_engine.output_dir)
        artifacts = plan.register(_cells(recording_engine), True)
        recording_engine.run_until(13.0)
        plan.finalize(artifacts)

        data = json.loads(artifacts[-1].path.read_text())
        assert data["horizon"] == 13.0
        assert [f["cell"] for f in data["flows"]] == [1, None]

    def test_missing_engine_artifact_raises(self, plan, recording_engine):
        artifacts = plan.register(_cells(recording_engine), True)
        # the engine never ran, so no capture files exist
        with pytest.raises(EngineError, match="capture"):
            plan.finalize(artifacts)

    def test_finalize_nothing_when_disabled(self, plan, recording_engine):
        artifacts = plan.register(_cells(recording_engine), False)
        assert plan.finalize(artifacts) == []

    def test_discard_removes_files(self, plan, recording_engine):
        artifacts = plan.register(_cells(recording_engine), True)
        recording_engine.run_until(13.0)
        plan.discard(artifacts)
        assert not any(a.path.exists() for a in artifacts)
        # a second discard is a no-op
        plan.discard(artifacts)

    def test_discard_removes_interrupted_flow_summary(self, plan, recording_engine):
        artifacts = plan.register(_cells(recording_engine), True)
        flows = artifacts[-1].path
        tmp = flows.with_suffix(".json.tmp")
        tmp.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text("{")
        plan.discard(artifacts)
        assert not tmp.exists()

    def test_artifact_to_dict(self, plan, recording_engine):
        artifact = plan.register(_cells(recording_engine), True)[0]
        d = artifact.to_dict()
        assert d["kind"] == "capture"
        assert d["target"] == 0
        assert d["path"].endswith("exp_0.json")
