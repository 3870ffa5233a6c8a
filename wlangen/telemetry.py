"""Telemetry collection plan.

Declares the run's output artifacts before the engine starts and finalizes
them after it completes:

- one packet capture per cell on the access-point device;
- one global animation trace with every node position and packet hop;
- one global flow summary aggregating every transport flow.

With detailed tracing enabled, the engine horizon is extended by a grace
interval past the global stop time so in-flight packets are accounted for.
Application lifecycles are not extended.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

from wlangen.errors import EngineError
from wlangen.log_config import get_logger
from wlangen.naming import animation_name, capture_name, flow_summary_name

if TYPE_CHECKING:  # pragma: no cover - import-time types only
    from wlangen.config import ScenarioConfig
    from wlangen.engine.base import SimulationEngine
    from wlangen.topology import Cell

logger = get_logger(__name__)

GLOBAL_TARGET = "global"
DEFAULT_GRACE_INTERVAL = 3.0
DEFAULT_MAX_PACKETS_PER_TRACE_FILE = 1_000_000


class ArtifactKind(str, Enum):
    CAPTURE = "capture"
    ANIMATION = "animation"
    FLOW_SUMMARY = "flow-summary"


@dataclass(frozen=True)
class TelemetryArtifact:
    """Named output file produced at run completion.

    Attributes:
        kind: Capture, animation or flow summary.
        target: Cell index for captures, ``"global"`` otherwise.
        output_name: Deterministic artifact name (no extension).
        path: File the artifact is written to.
    """

    kind: ArtifactKind
    target: int | str
    output_name: str
    path: Path

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "output_name": self.output_name,
            "path": str(self.path),
        }


class TelemetryPlan:
    """Register collectors on an engine and finalize them after the run.

    Args:
        engine: Engine the collectors are registered with.
        scenario_name: Prefix of every artifact name.
        output_dir: Directory for the flow summary written by this plan.
        grace_interval: Horizon extension applied when tracing is enabled.
        max_packets_per_trace_file: Packet cap for the animation trace.
    """

    def __init__(
        self,
        engine: "SimulationEngine",
        scenario_name: str,
        output_dir: Path,
        *,
        grace_interval: float = DEFAULT_GRACE_INTERVAL,
        max_packets_per_trace_file: int = DEFAULT_MAX_PACKETS_PER_TRACE_FILE,
    ) -> None:
        self.engine = engine
        self.scenario_name = scenario_name
        self.output_dir = Path(output_dir)
        self.grace_interval = float(grace_interval)
        self.max_packets_per_trace_file = int(max_packets_per_trace_file)
        self.enabled = False
        self._address_cells: dict[str, int] = {}

    @classmethod
    def from_config(
        cls, engine: "SimulationEngine", config: "ScenarioConfig"
    ) -> TelemetryPlan:
        return cls(
            engine,
            config.scenario.name,
            config.output.directory,
            grace_interval=config.telemetry.grace_interval,
            max_packets_per_trace_file=config.telemetry.max_packets_per_trace_file,
        )

    def register(
        self, cells: Sequence["Cell"], enable_detailed_trace: bool
    ) -> list[TelemetryArtifact]:
        """Declare and register every artifact for ``cells``.

        Args:
            cells: Cells in creation order.
            enable_detailed_trace: When False nothing is registered and the
                scenario runs bare.

        Returns:
            Declared artifacts: one capture per cell, then the animation, then
            the flow summary. Empty when tracing is disabled.
        """
        self.enabled = bool(enable_detailed_trace)
        if not self.enabled:
            logger.info("Detailed trace disabled; no telemetry registered")
            return []

        artifacts: list[TelemetryArtifact] = []
        for cell in cells:
            name = capture_name(self.scenario_name, cell.index)
            path = self.engine.enable_capture(cell.ap_device, name)
            artifacts.append(
                TelemetryArtifact(ArtifactKind.CAPTURE, cell.index, name, path)
            )

        anim = animation_name(self.scenario_name)
        anim_path = self.engine.enable_animation(anim, self.max_packets_per_trace_file)
        artifacts.append(
            TelemetryArtifact(ArtifactKind.ANIMATION, GLOBAL_TARGET, anim, anim_path)
        )

        self.engine.enable_flow_monitor()
        flows = flow_summary_name(self.scenario_name)
        artifacts.append(
            TelemetryArtifact(
                ArtifactKind.FLOW_SUMMARY,
                GLOBAL_TARGET,
                flows,
                self.output_dir / f"{flows}.json",
            )
        )

        self._address_cells = {}
        for cell in cells:
            self._address_cells[cell.ap_address] = cell.index
            for addr in cell.station_addresses:
                self._address_cells[addr] = cell.index

        logger.info(
            "Registered %d telemetry artifacts (%d captures)",
            len(artifacts),
            len(cells),
        )
        return artifacts

    def horizon(self, global_stop: float) -> float:
        """Return the engine run horizon for ``global_stop``."""
        if self.enabled:
            return float(global_stop) + self.grace_interval
        return float(global_stop)

    def finalize(
        self, artifacts: Sequence[TelemetryArtifact]
    ) -> list[TelemetryArtifact]:
        """Write the flow summary and confirm engine-written artifacts exist.

        Must only be called after the engine's run has completed.

        Raises:
            EngineError: If flow statistics cannot be collected or an engine
                artifact is missing.
        """
        for artifact in artifacts:
            if artifact.kind is ArtifactKind.FLOW_SUMMARY:
                self._write_flow_summary(artifact.path)
            elif not artifact.path.exists():
                raise EngineError(
                    f"Engine did not produce {artifact.kind.value} artifact "
                    f"'{artifact.output_name}' at {artifact.path}"
                )
        if artifacts:
            logger.info("Finalized %d telemetry artifacts", len(artifacts))
        return list(artifacts)

    def discard(self, artifacts: Sequence[TelemetryArtifact]) -> None:
        """Remove any artifact files left behind by an aborted run."""
        for artifact in artifacts:
            paths = [artifact.path]
            if artifact.kind is ArtifactKind.FLOW_SUMMARY:
                paths.append(artifact.path.with_suffix(artifact.path.suffix + ".tmp"))
            for path in paths:
                try:
                    path.unlink(missing_ok=True)
                except OSError as exc:
                    logger.warning("Failed to remove %s: %s", path, exc)

    def _write_flow_summary(self, path: Path) -> None:
        stats = self.engine.collect_flow_statistics()
        flows = []
        for flow in stats.get("flows", []):
            record = dict(flow)
            record["cell"] = self._address_cells.get(
                str(record.get("source_address", ""))
            )
            flows.append(record)
        out = {
            "scenario": self.scenario_name,
            "horizon": stats.get("horizon"),
            "flows": flows,
        }
        # Write-then-rename so an interrupted write never leaves a partial file
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(out, f, indent=2)
            tmp.replace(path)
        except OSError as exc:
            raise EngineError(f"Failed to write flow summary {path}: {exc}") from exc
        logger.info(f"Saved flow summary ({len(flows)} flows) → {path}")
