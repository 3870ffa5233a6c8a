"""Simulation engine interface and handle types.

The scenario core never touches engine internals: it talks to an engine
instance through the abstract methods below and only holds the immutable
handles the engine returns. Each engine instance is an isolated simulation
context with its own clock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:  # pragma: no cover - import-time types only
    from wlangen.addressing import SubnetDescriptor
    from wlangen.traffic import TrafficEndpoint


class DeviceRole(str, Enum):
    """Device roles in an infrastructure wireless topology."""

    ACCESS_POINT = "ap"
    STATION = "sta"


@dataclass(frozen=True)
class ChannelHandle:
    channel_id: int


@dataclass(frozen=True)
class NodeHandle:
    node_id: int


@dataclass(frozen=True)
class DeviceHandle:
    device_id: int
    node: NodeHandle


@dataclass(frozen=True)
class DeviceGroup:
    """Nodes and their wireless devices created together on one channel."""

    channel: ChannelHandle
    role: DeviceRole
    network_name: str
    nodes: tuple[NodeHandle, ...]
    devices: tuple[DeviceHandle, ...]


class SimulationEngine(ABC):
    """Discrete-event network simulation engine consumed by the scenario core."""

    @abstractmethod
    def create_channel(self) -> ChannelHandle:
        """Create a fresh, independent radio channel."""

    @abstractmethod
    def create_device_group(
        self,
        channel: ChannelHandle,
        role: DeviceRole,
        network_name: str,
        count: int,
        *,
        active_probing: bool = False,
    ) -> DeviceGroup:
        """Create ``count`` nodes, each with one wireless device on ``channel``.

        Access points advertise ``network_name``; stations only associate with
        an access point advertising the same name on the same channel.
        """

    @abstractmethod
    def install_transport_stack(self, nodes: Sequence[NodeHandle]) -> None:
        """Install the IP/UDP stack on every node in ``nodes``."""

    @abstractmethod
    def allocate_addresses(
        self, subnet: "SubnetDescriptor", devices: Sequence[DeviceHandle]
    ) -> list[str]:
        """Assign host addresses from ``subnet`` to ``devices`` in order.

        Successive calls on the same subnet continue from the next free host.
        """

    @abstractmethod
    def schedule_application(self, endpoint: "TrafficEndpoint") -> None:
        """Install and schedule one traffic endpoint application."""

    @abstractmethod
    def set_constant_position(self, node: NodeHandle, x: float, y: float) -> None:
        """Pin ``node`` at ``(x, y)`` for the whole run."""

    @abstractmethod
    def enable_capture(self, device: DeviceHandle, name: str) -> Path:
        """Capture every packet on ``device``; return the output path."""

    @abstractmethod
    def enable_animation(self, name: str, max_packets_per_file: int) -> Path:
        """Record node positions and packet timeline; return the output path."""

    @abstractmethod
    def enable_flow_monitor(self) -> None:
        """Track per-flow statistics on every node."""

    @abstractmethod
    def populate_routing_tables(self) -> None:
        """Compute routing state for all installed stacks."""

    @abstractmethod
    def run_until(self, time: float) -> None:
        """Run the event loop until simulated ``time``; blocks until done."""

    @abstractmethod
    def collect_flow_statistics(self) -> dict[str, Any]:
        """Return a serializable per-flow statistics summary."""

    @abstractmethod
    def destroy(self) -> None:
        """Release every engine resource."""

    def set_application_logging(self, enabled: bool) -> None:
        """Toggle per-packet application log lines. No-op by default."""
