"""Scenario driver: compose, run and collect one multi-cell scenario.

A run is atomic. Configuration errors abort before any engine resource is
allocated. Any later failure aborts the run, discards declared and side
artifacts and propagates unchanged. There is no retry and no partial-success mode.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wlangen.config import ScenarioConfig
from wlangen.engine.base import SimulationEngine
from wlangen.engine.local import LocalEngine
from wlangen.errors import EngineError
from wlangen.log_config import get_logger
from wlangen.naming import scenario_slug
from wlangen.telemetry import TelemetryArtifact, TelemetryPlan
from wlangen.topology import (
    Cell,
    TopologyBuilder,
    save_topology_json,
    topology_graph,
)
from wlangen.traffic import EndpointPair, TrafficPlan

logger = get_logger(__name__)


@dataclass
class ScenarioResult:
    """Everything a composed (and possibly executed) scenario produced."""

    cells: list[Cell]
    endpoints: list[EndpointPair]
    artifacts: list[TelemetryArtifact]
    horizon: float
    global_stop: float
    side_artifacts: list[Path] = field(default_factory=list)

    def describe(self, scenario_name: str = "scenario") -> dict[str, Any]:
        """Return a plain-data scenario descriptor."""
        return {
            "scenario": scenario_name,
            "global_stop": self.global_stop,
            "horizon": self.horizon,
            "cells": [c.to_dict() for c in self.cells],
            "endpoints": [
                {
                    "responder": p.responder.to_dict(),
                    "initiator": p.initiator.to_dict(),
                }
                for p in self.endpoints
            ],
            "telemetry": [a.to_dict() for a in self.artifacts],
        }


class ScenarioDriver:
    """Orchestrate topology, traffic and telemetry against one engine.

    Args:
        config: Scenario configuration.
        engine: Engine context to drive. Defaults to a fresh ``LocalEngine``
            writing into ``config.output.directory``; created only after the
            configuration validates.
        rng: Random source for station jitter. Defaults to
            ``random.Random(config.layout.seed)``.
    """

    def __init__(
        self,
        config: ScenarioConfig,
        engine: SimulationEngine | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self._engine = engine
        self._rng = rng

    def run(self) -> ScenarioResult:
        """Build, run and collect the scenario.

        Returns:
            Result with cells, endpoint pairs and finalized artifacts.

        Raises:
            ConfigurationError: If the configuration is invalid; no engine
                call has been made.
            EngineError: If the engine fails.

        Any failure after composition starts removes every declared artifact
        and side artifact before the exception propagates.
        """
        cfg = self.config
        cfg.validate()
        engine = self._engine if self._engine is not None else self._make_engine()

        artifacts: list[TelemetryArtifact] = []
        telemetry: TelemetryPlan | None = None
        side_written: list[Path] = []
        try:
            cells, pairs, telemetry, artifacts = self._compose(engine)
            horizon = telemetry.horizon(cfg.timing.global_stop)
            logger.info(
                "Running scenario '%s' until t=%.3fs (applications stop at %.3fs)",
                cfg.scenario.name,
                horizon,
                cfg.timing.global_stop,
            )
            engine.run_until(horizon)
            artifacts = telemetry.finalize(artifacts)
            result = ScenarioResult(
                cells=cells,
                endpoints=pairs,
                artifacts=artifacts,
                horizon=horizon,
                global_stop=cfg.timing.global_stop,
            )
            self._export_side_artifacts(cells, side_written)
            result.side_artifacts = list(side_written)
        except Exception as exc:
            if isinstance(exc, EngineError):
                logger.error("Scenario '%s' aborted: %s", cfg.scenario.name, exc)
            else:
                logger.error(
                    "Scenario '%s' aborted by %s: %s",
                    cfg.scenario.name,
                    type(exc).__name__,
                    exc,
                )
            if telemetry is not None:
                telemetry.discard(artifacts)
            _remove_paths(side_written)
            raise
        finally:
            engine.destroy()

        logger.info(
            "Scenario '%s' complete: %d cells, %d artifacts",
            cfg.scenario.name,
            len(result.cells),
            len(result.artifacts),
        )
        return result

    def plan(self) -> ScenarioResult:
        """Compose the scenario without running it.

        Artifacts are declared but never written. The engine is destroyed
        afterwards.
        """
        cfg = self.config
        cfg.validate()
        engine = self._engine if self._engine is not None else self._make_engine()
        try:
            cells, pairs, telemetry, artifacts = self._compose(engine)
        finally:
            engine.destroy()
        return ScenarioResult(
            cells=cells,
            endpoints=pairs,
            artifacts=artifacts,
            horizon=telemetry.horizon(cfg.timing.global_stop),
            global_stop=cfg.timing.global_stop,
        )

    def to_yaml(self, result: ScenarioResult) -> str:
        """Emit the scenario descriptor of ``result`` as YAML."""
        descriptor = result.describe(self.config.scenario.name)
        return yaml.safe_dump(descriptor, sort_keys=False, default_flow_style=False)

    def _compose(
        self, engine: SimulationEngine
    ) -> tuple[list[Cell], list[EndpointPair], TelemetryPlan, list[TelemetryArtifact]]:
        cfg = self.config
        engine.set_application_logging(cfg.scenario.verbose)

        builder = TopologyBuilder.from_config(engine, cfg, rng=self._rng)
        cells = builder.build(cfg.cells.ap_count, cfg.cells.sta_per_ap)

        traffic = TrafficPlan()
        pairs = traffic.attach_from_config(cells, cfg)
        traffic.install(engine, pairs)

        engine.populate_routing_tables()

        telemetry = TelemetryPlan.from_config(engine, cfg)
        artifacts = telemetry.register(cells, cfg.telemetry.detailed_trace)
        return cells, pairs, telemetry, artifacts

    def _make_engine(self) -> SimulationEngine:
        cfg = self.config
        return LocalEngine(
            cfg.output.directory,
            base_latency=cfg.engine.base_latency,
            data_rate_bps=cfg.engine.data_rate_bps,
        )

    def _export_side_artifacts(self, cells: list[Cell], written: list[Path]) -> None:
        """Write optional topology and layout exports, recording each path in ``written``.

        A path is recorded before its write starts so a partial file is
        removed if the run aborts.
        """
        cfg = self.config
        out_dir = cfg.output.directory
        stem = scenario_slug(cfg.scenario.name)
        if cfg.output.export_topology:
            path = out_dir / f"{stem}_topology.json"
            written.append(path)
            save_topology_json(topology_graph(cells), path)
        if cfg.output.export_layout_map:
            from wlangen.visualization import export_layout_map

            path = out_dir / f"{stem}_layout.jpg"
            try:
                export_layout_map(cells, path, dpi=cfg.output.dpi)
                written.append(path)
            except (ValueError, RuntimeError) as e:  # pragma: no cover - best-effort
                logger.warning("Failed to export layout map: %s", e)


def _remove_paths(paths: list[Path]) -> None:
    for path in paths:
        if not path.is_file():
            continue
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to remove %s: %s", path, exc)
