"""Request/response traffic plan.

Every cell gets exactly one echo responder on its access point and one echo
initiator on its first station. The remaining stations are associated but
idle. All cells share one traffic profile (port, payload size, packet count,
interval) and one lifecycle: responders run ``[server_start, global_stop]``
and initiators ``[client_start, global_stop]`` with the server started first.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Sequence

from wlangen.errors import ConfigurationError
from wlangen.log_config import get_logger

if TYPE_CHECKING:  # pragma: no cover - import-time types only
    from wlangen.config import ScenarioConfig
    from wlangen.engine.base import NodeHandle, SimulationEngine
    from wlangen.topology import Cell

logger = get_logger(__name__)


class EndpointRole(str, Enum):
    RESPONDER = "responder"
    INITIATOR = "initiator"


@dataclass(frozen=True)
class TrafficEndpoint:
    """One request- or response-generating application bound to a node.

    Attributes:
        cell_index: Owning cell.
        role: Responder (echo server) or initiator (echo client).
        node: Node the application runs on.
        port: Listen port for responders, target port for initiators.
        remote_address: Target address for initiators; ``None`` for responders.
        payload_size: UDP payload in bytes.
        max_packets: Packets the initiator sends.
        interval: Seconds between initiator packets.
        start: Application start time (s).
        stop: Application stop time (s).
    """

    cell_index: int
    role: EndpointRole
    node: "NodeHandle"
    port: int
    remote_address: str | None
    payload_size: int
    max_packets: int
    interval: float
    start: float
    stop: float

    def to_dict(self) -> dict[str, object]:
        return {
            "cell": self.cell_index,
            "role": self.role.value,
            "node": self.node.node_id,
            "port": self.port,
            "remote_address": self.remote_address,
            "payload_size": self.payload_size,
            "max_packets": self.max_packets,
            "interval": self.interval,
            "start": self.start,
            "stop": self.stop,
        }


@dataclass(frozen=True)
class EndpointPair:
    responder: TrafficEndpoint
    initiator: TrafficEndpoint


class TrafficPlan:
    """Attach one responder/initiator pair per cell and schedule them."""

    def attach(
        self,
        cells: Sequence["Cell"],
        responder_port: int,
        max_packets: int,
        interval: float,
        payload_size: int,
        server_start: float,
        client_start: float,
        global_stop: float,
    ) -> list[EndpointPair]:
        """Create the endpoint pairs for ``cells``.

        Pure construction: no engine call is made, so identical inputs yield
        identical pairs.

        Args:
            cells: Cells in creation order.
            responder_port: UDP port the responder listens on.
            max_packets: Packets each initiator sends.
            interval: Seconds between initiator packets.
            payload_size: UDP payload in bytes.
            server_start: Responder start time.
            client_start: Initiator start time; must follow ``server_start``.
            global_stop: Stop time shared by every application.

        Returns:
            One ``EndpointPair`` per cell, in cell order.

        Raises:
            ConfigurationError: If the profile or timing is invalid.
        """
        _validate_profile(responder_port, max_packets, interval, payload_size)
        _validate_timing(server_start, client_start, global_stop)

        pairs: list[EndpointPair] = []
        for cell in cells:
            responder = TrafficEndpoint(
                cell_index=cell.index,
                role=EndpointRole.RESPONDER,
                node=cell.access_point,
                port=int(responder_port),
                remote_address=None,
                payload_size=int(payload_size),
                max_packets=int(max_packets),
                interval=float(interval),
                start=float(server_start),
                stop=float(global_stop),
            )
            # Only the first station generates traffic; the rest stay idle.
            initiator = TrafficEndpoint(
                cell_index=cell.index,
                role=EndpointRole.INITIATOR,
                node=cell.stations[0],
                port=int(responder_port),
                remote_address=cell.ap_address,
                payload_size=int(payload_size),
                max_packets=int(max_packets),
                interval=float(interval),
                start=float(client_start),
                stop=float(global_stop),
            )
            pairs.append(EndpointPair(responder=responder, initiator=initiator))

        logger.info(
            "Attached %d echo pairs (port %d, %d x %dB every %.3gs)",
            len(pairs),
            responder_port,
            max_packets,
            payload_size,
            interval,
        )
        return pairs

    def attach_from_config(
        self, cells: Sequence["Cell"], config: "ScenarioConfig"
    ) -> list[EndpointPair]:
        t = config.traffic
        return self.attach(
            cells,
            responder_port=t.port,
            max_packets=t.max_packets,
            interval=t.interval,
            payload_size=t.payload_size,
            server_start=t.server_start,
            client_start=t.client_start,
            global_stop=config.timing.global_stop,
        )

    def install(
        self, engine: "SimulationEngine", pairs: Sequence[EndpointPair]
    ) -> None:
        """Schedule every responder, then every initiator, on ``engine``."""
        for pair in pairs:
            engine.schedule_application(pair.responder)
        for pair in pairs:
            engine.schedule_application(pair.initiator)
        logger.debug("Scheduled %d applications", 2 * len(pairs))


def _validate_profile(
    port: int, max_packets: int, interval: float, payload_size: int
) -> None:
    if not 0 < int(port) <= 65535:
        raise ConfigurationError(f"Responder port must be in 1..65535, got {port}")
    if int(max_packets) <= 0:
        raise ConfigurationError(f"max_packets must be positive, got {max_packets}")
    if float(interval) <= 0.0:
        raise ConfigurationError(f"interval must be positive, got {interval}")
    if int(payload_size) <= 0:
        raise ConfigurationError(
            f"payload_size must be positive, got {payload_size}"
        )


def _validate_timing(
    server_start: float, client_start: float, global_stop: float
) -> None:
    if server_start < 0.0:
        raise ConfigurationError(f"server_start must be >= 0, got {server_start}")
    if not server_start < client_start:
        raise ConfigurationError(
            f"server_start ({server_start}) must precede client_start ({client_start})"
        )
    if not client_start < global_stop:
        raise ConfigurationError(
            f"client_start ({client_start}) must precede global_stop ({global_stop})"
        )
