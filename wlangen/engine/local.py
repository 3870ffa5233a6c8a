"""In-process reference simulation engine.

A small discrete-event engine with ideal, isolated channels. It implements
just enough behaviour to run echo scenarios end to end: association by
network name, fixed per-hop delay, UDP echo applications, flow statistics,
per-device captures and an animation trace. Physical-layer effects are not
modelled.
"""

from __future__ import annotations

import heapq
import itertools
import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

from wlangen.errors import EngineError
from wlangen.log_config import APP_LOGGER_NAME, get_logger

from .base import (
    ChannelHandle,
    DeviceGroup,
    DeviceHandle,
    DeviceRole,
    NodeHandle,
    SimulationEngine,
)

if TYPE_CHECKING:  # pragma: no cover - import-time types only
    from wlangen.addressing import SubnetDescriptor
    from wlangen.traffic import TrafficEndpoint

logger = get_logger(__name__)
app_logger = get_logger(APP_LOGGER_NAME)

SPEED_OF_LIGHT = 299_792_458.0
# IPv4 (20) + UDP (8) header bytes counted on top of the payload.
HEADER_OVERHEAD = 28
UDP_PROTOCOL = 17
FIRST_EPHEMERAL_PORT = 49153

_SEND = 0
_RX = 1


@dataclass(order=True)
class _Event:
    time: float
    seq: int
    kind: int
    payload: dict[str, Any] = field(compare=False)


@dataclass
class _Device:
    device_id: int
    node_id: int
    channel_id: int
    role: DeviceRole
    network_name: str
    active_probing: bool
    address: str | None = None
    associated_ap: int | None = None


@dataclass
class _Node:
    node_id: int
    role: DeviceRole
    device_ids: list[int] = field(default_factory=list)
    has_stack: bool = False
    position: tuple[float, float] = (0.0, 0.0)


@dataclass
class _App:
    endpoint: "TrafficEndpoint"
    source_port: int
    sent: int = 0
    received: int = 0


@dataclass
class _Flow:
    flow_id: int
    source_address: str
    destination_address: str
    source_port: int
    destination_port: int
    tx_packets: int = 0
    tx_bytes: int = 0
    rx_packets: int = 0
    rx_bytes: int = 0
    time_first_tx: float | None = None
    time_last_tx: float | None = None
    time_first_rx: float | None = None
    time_last_rx: float | None = None
    delay_sum: float = 0.0
    jitter_sum: float = 0.0
    last_delay: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "source_address": self.source_address,
            "destination_address": self.destination_address,
            "protocol": UDP_PROTOCOL,
            "source_port": self.source_port,
            "destination_port": self.destination_port,
            "tx_packets": self.tx_packets,
            "tx_bytes": self.tx_bytes,
            "rx_packets": self.rx_packets,
            "rx_bytes": self.rx_bytes,
            "lost_packets": self.tx_packets - self.rx_packets,
            "time_first_tx": self.time_first_tx,
            "time_last_tx": self.time_last_tx,
            "time_first_rx": self.time_first_rx,
            "time_last_rx": self.time_last_rx,
            "delay_sum": self.delay_sum,
            "mean_delay": (
                self.delay_sum / self.rx_packets if self.rx_packets else None
            ),
            "jitter_sum": self.jitter_sum,
        }


@dataclass
class _Capture:
    name: str
    path: Path
    device_id: int
    records: list[dict[str, Any]] = field(default_factory=list)


class LocalEngine(SimulationEngine):
    """Ideal-channel discrete-event engine writing artifacts to ``output_dir``.

    Args:
        output_dir: Directory receiving capture and animation files.
        base_latency: Fixed per-hop access delay in seconds.
        data_rate_bps: Nominal rate used for serialization delay.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        base_latency: float = 1e-4,
        data_rate_bps: float = 54e6,
    ) -> None:
        if base_latency < 0.0:
            raise EngineError(f"base_latency must be >= 0, got {base_latency}")
        if data_rate_bps <= 0.0:
            raise EngineError(f"data_rate_bps must be positive, got {data_rate_bps}")
        self.output_dir = Path(output_dir)
        self.base_latency = float(base_latency)
        self.data_rate_bps = float(data_rate_bps)

        self._channel_ids = itertools.count()
        self._node_ids = itertools.count()
        self._device_ids = itertools.count()
        self._seq = itertools.count()
        self._channels: set[int] = set()
        self._nodes: dict[int, _Node] = {}
        self._devices: dict[int, _Device] = {}
        self._address_index: dict[str, int] = {}
        self._next_host: dict[str, int] = {}
        self._apps: list[_App] = []
        self._next_port: dict[int, int] = {}
        self._queue: list[_Event] = []
        self._captures: dict[int, _Capture] = {}
        self._animation: dict[str, Any] | None = None
        self._flow_monitor = False
        self._flows: dict[tuple[str, str, int, int], _Flow] = {}
        self._routing_ready = False
        self._app_logging = False
        self._now = 0.0
        self._ran = False
        self._destroyed = False

    # ------------------------------------------------------------------
    # Construction API
    # ------------------------------------------------------------------

    @property
    def now(self) -> float:
        return self._now

    def create_channel(self) -> ChannelHandle:
        self._check_mutable()
        channel_id = next(self._channel_ids)
        self._channels.add(channel_id)
        return ChannelHandle(channel_id)

    def create_device_group(
        self,
        channel: ChannelHandle,
        role: DeviceRole,
        network_name: str,
        count: int,
        *,
        active_probing: bool = False,
    ) -> DeviceGroup:
        self._check_mutable()
        if channel.channel_id not in self._channels:
            raise EngineError(f"Unknown channel {channel.channel_id}")
        if count <= 0:
            raise EngineError(f"Device group size must be positive, got {count}")
        if not network_name:
            raise EngineError("Device group requires a network name")
        nodes: list[NodeHandle] = []
        devices: list[DeviceHandle] = []
        for _ in range(count):
            node = _Node(node_id=next(self._node_ids), role=DeviceRole(role))
            device = _Device(
                device_id=next(self._device_ids),
                node_id=node.node_id,
                channel_id=channel.channel_id,
                role=DeviceRole(role),
                network_name=network_name,
                active_probing=active_probing,
            )
            node.device_ids.append(device.device_id)
            self._nodes[node.node_id] = node
            self._devices[device.device_id] = device
            node_handle = NodeHandle(node.node_id)
            nodes.append(node_handle)
            devices.append(DeviceHandle(device.device_id, node_handle))
        return DeviceGroup(
            channel=channel,
            role=DeviceRole(role),
            network_name=network_name,
            nodes=tuple(nodes),
            devices=tuple(devices),
        )

    def install_transport_stack(self, nodes: Sequence[NodeHandle]) -> None:
        self._check_mutable()
        for handle in nodes:
            node = self._node(handle)
            if node.has_stack:
                raise EngineError(f"Transport stack already installed on node {handle.node_id}")
            node.has_stack = True

    def allocate_addresses(
        self, subnet: "SubnetDescriptor", devices: Sequence[DeviceHandle]
    ) -> list[str]:
        self._check_mutable()
        addresses: list[str] = []
        for handle in devices:
            device = self._device(handle)
            if not self._nodes[device.node_id].has_stack:
                raise EngineError(
                    f"Node {device.node_id} has no transport stack; install it first"
                )
            if device.address is not None:
                raise EngineError(f"Device {device.device_id} already has an address")
            ordinal = self._next_host.get(subnet.cidr, 1)
            try:
                address = subnet.host(ordinal)
            except ValueError as exc:
                raise EngineError(f"Subnet {subnet.cidr} exhausted: {exc}") from exc
            if address in self._address_index:
                raise EngineError(f"Address {address} already assigned")
            device.address = address
            self._address_index[address] = device.device_id
            self._next_host[subnet.cidr] = ordinal + 1
            addresses.append(address)
        return addresses

    def schedule_application(self, endpoint: "TrafficEndpoint") -> None:
        from wlangen.traffic import EndpointRole

        self._check_mutable()
        node = self._node(endpoint.node)
        if not node.has_stack:
            raise EngineError(f"Node {node.node_id} has no transport stack")
        if endpoint.stop <= endpoint.start:
            raise EngineError(
                f"Application on node {node.node_id} stops ({endpoint.stop}) "
                f"before it starts ({endpoint.start})"
            )
        port = self._next_port.get(node.node_id, FIRST_EPHEMERAL_PORT)
        self._next_port[node.node_id] = port + 1
        app = _App(endpoint=endpoint, source_port=port)
        self._apps.append(app)
        if endpoint.role is EndpointRole.INITIATOR:
            if endpoint.remote_address is None:
                raise EngineError(f"Initiator on node {node.node_id} has no target")
            self._push(endpoint.start, _SEND, {"app": app})

    def set_constant_position(self, node: NodeHandle, x: float, y: float) -> None:
        self._check_mutable()
        if not (math.isfinite(x) and math.isfinite(y)):
            raise EngineError(f"Position ({x}, {y}) for node {node.node_id} is not finite")
        self._node(node).position = (float(x), float(y))

    def enable_capture(self, device: DeviceHandle, name: str) -> Path:
        self._check_mutable()
        self._device(device)
        path = self.output_dir / f"{name}.json"
        self._captures[device.device_id] = _Capture(
            name=name, path=path, device_id=device.device_id
        )
        return path

    def enable_animation(self, name: str, max_packets_per_file: int) -> Path:
        self._check_mutable()
        if max_packets_per_file <= 0:
            raise EngineError("max_packets_per_file must be positive")
        path = self.output_dir / f"{name}.json"
        self._animation = {
            "name": name,
            "path": path,
            "max_packets": int(max_packets_per_file),
            "packets": [],
            "truncated": False,
        }
        return path

    def enable_flow_monitor(self) -> None:
        self._check_mutable()
        self._flow_monitor = True

    def populate_routing_tables(self) -> None:
        """Associate stations with the AP advertising their network name.

        Stations whose channel carries no matching AP stay unassociated and
        cannot exchange traffic.
        """
        self._check_mutable()
        aps: dict[tuple[int, str], int] = {}
        for device in self._devices.values():
            if device.role is DeviceRole.ACCESS_POINT:
                aps[(device.channel_id, device.network_name)] = device.device_id
        unassociated = 0
        for device in self._devices.values():
            if device.role is DeviceRole.STATION:
                device.associated_ap = aps.get((device.channel_id, device.network_name))
                if device.associated_ap is None:
                    unassociated += 1
        if unassociated:
            logger.warning("%d station(s) found no access point to associate with", unassociated)
        self._routing_ready = True

    def set_application_logging(self, enabled: bool) -> None:
        self._app_logging = bool(enabled)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run_until(self, time: float) -> None:
        self._check_mutable()
        if time < 0.0:
            raise EngineError(f"Run horizon must be >= 0, got {time}")
        if not self._routing_ready:
            self.populate_routing_tables()
        self._ran = True
        logger.info(
            "Running %d application(s) on %d node(s) until t=%.3fs",
            len(self._apps),
            len(self._nodes),
            time,
        )
        processed = 0
        while self._queue and self._queue[0].time <= time:
            event = heapq.heappop(self._queue)
            self._now = event.time
            if event.kind == _SEND:
                self._on_send(event.payload["app"])
            else:
                self._on_receive(event.payload)
            processed += 1
        self._now = float(time)
        logger.info("Run complete at t=%.3fs (%d events)", self._now, processed)
        self._write_outputs()

    def collect_flow_statistics(self) -> dict[str, Any]:
        if self._destroyed:
            raise EngineError("Engine already destroyed")
        if not self._ran:
            raise EngineError("Flow statistics requested before the run completed")
        if not self._flow_monitor:
            raise EngineError("Flow monitor was not enabled before the run")
        flows = sorted(self._flows.values(), key=lambda f: f.flow_id)
        return {
            "horizon": self._now,
            "flows": [f.to_dict() for f in flows],
        }

    def destroy(self) -> None:
        self._queue.clear()
        self._apps.clear()
        self._captures.clear()
        self._animation = None
        self._destroyed = True

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_send(self, app: _App) -> None:
        ep = app.endpoint
        if self._now >= ep.stop or app.sent >= ep.max_packets:
            return
        source = self._node_address(ep.node.node_id)
        self._transmit(
            src_node=ep.node.node_id,
            src_address=source,
            src_port=app.source_port,
            dst_address=ep.remote_address or "",
            dst_port=ep.port,
            payload=ep.payload_size,
        )
        app.sent += 1
        if self._app_logging:
            app_logger.info(
                "At time %.6fs client sent %d bytes to %s port %d",
                self._now,
                ep.payload_size,
                ep.remote_address,
                ep.port,
            )
        if app.sent < ep.max_packets:
            self._push(self._now + ep.interval, _SEND, {"app": app})

    def _on_receive(self, packet: dict[str, Any]) -> None:
        from wlangen.traffic import EndpointRole

        device = self._devices[packet["dst_device"]]
        self._record_rx(packet)
        for app in self._apps:
            ep = app.endpoint
            if ep.node.node_id != device.node_id:
                continue
            if not ep.start <= self._now < ep.stop:
                continue
            if ep.role is EndpointRole.RESPONDER and ep.port == packet["dst_port"]:
                app.received += 1
                if self._app_logging:
                    app_logger.info(
                        "At time %.6fs server received %d bytes from %s port %d",
                        self._now,
                        packet["payload"],
                        packet["src_address"],
                        packet["src_port"],
                    )
                self._transmit(
                    src_node=device.node_id,
                    src_address=device.address or "",
                    src_port=ep.port,
                    dst_address=packet["src_address"],
                    dst_port=packet["src_port"],
                    payload=packet["payload"],
                )
                if self._app_logging:
                    app_logger.info(
                        "At time %.6fs server sent %d bytes to %s port %d",
                        self._now,
                        packet["payload"],
                        packet["src_address"],
                        packet["src_port"],
                    )
                return
            if (
                ep.role is EndpointRole.INITIATOR
                and app.source_port == packet["dst_port"]
            ):
                app.received += 1
                if self._app_logging:
                    app_logger.info(
                        "At time %.6fs client received %d bytes from %s port %d",
                        self._now,
                        packet["payload"],
                        packet["src_address"],
                        packet["src_port"],
                    )
                return
        logger.debug(
            "No listener on node %d port %d at t=%.6fs",
            device.node_id,
            packet["dst_port"],
            self._now,
        )

    def _transmit(
        self,
        *,
        src_node: int,
        src_address: str,
        src_port: int,
        dst_address: str,
        dst_port: int,
        payload: int,
    ) -> None:
        size = payload + HEADER_OVERHEAD
        src_device = self._devices[self._nodes[src_node].device_ids[0]]
        packet = {
            "src_device": src_device.device_id,
            "src_address": src_address,
            "src_port": src_port,
            "dst_address": dst_address,
            "dst_port": dst_port,
            "payload": payload,
            "size": size,
            "tx_time": self._now,
        }
        self._record_capture(src_device.device_id, "tx", packet)
        flow = self._flow_for(packet)
        if flow is not None:
            flow.tx_packets += 1
            flow.tx_bytes += size
            if flow.time_first_tx is None:
                flow.time_first_tx = self._now
            flow.time_last_tx = self._now

        dst_id = self._address_index.get(dst_address)
        if dst_id is None or not self._reachable(src_device, self._devices[dst_id]):
            logger.debug("Dropped packet %s -> %s at t=%.6fs", src_address, dst_address, self._now)
            return
        dst_device = self._devices[dst_id]
        delay = self._hop_delay(src_device.node_id, dst_device.node_id, size)
        packet["dst_device"] = dst_id
        self._push(self._now + delay, _RX, packet)
        self._record_animation(src_device.node_id, dst_device.node_id, size)

    def _record_rx(self, packet: dict[str, Any]) -> None:
        self._record_capture(packet["dst_device"], "rx", packet)
        flow = self._flow_for(packet)
        if flow is None:
            return
        delay = self._now - packet["tx_time"]
        flow.rx_packets += 1
        flow.rx_bytes += packet["size"]
        if flow.time_first_rx is None:
            flow.time_first_rx = self._now
        flow.time_last_rx = self._now
        flow.delay_sum += delay
        if flow.last_delay is not None:
            flow.jitter_sum += abs(delay - flow.last_delay)
        flow.last_delay = delay

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reachable(self, src: _Device, dst: _Device) -> bool:
        if src.channel_id != dst.channel_id:
            return False
        if src.role is DeviceRole.STATION and dst.role is DeviceRole.ACCESS_POINT:
            return src.associated_ap == dst.device_id
        if src.role is DeviceRole.ACCESS_POINT and dst.role is DeviceRole.STATION:
            return dst.associated_ap == src.device_id
        if src.role is DeviceRole.STATION and dst.role is DeviceRole.STATION:
            return src.associated_ap is not None and src.associated_ap == dst.associated_ap
        return False

    def _hop_delay(self, src_node: int, dst_node: int, size: int) -> float:
        (x1, y1) = self._nodes[src_node].position
        (x2, y2) = self._nodes[dst_node].position
        distance = math.hypot(x2 - x1, y2 - y1)
        return self.base_latency + (size * 8) / self.data_rate_bps + distance / SPEED_OF_LIGHT

    def _flow_for(self, packet: dict[str, Any]) -> _Flow | None:
        if not self._flow_monitor:
            return None
        key = (
            packet["src_address"],
            packet["dst_address"],
            packet["src_port"],
            packet["dst_port"],
        )
        flow = self._flows.get(key)
        if flow is None:
            flow = _Flow(
                flow_id=len(self._flows) + 1,
                source_address=key[0],
                destination_address=key[1],
                source_port=key[2],
                destination_port=key[3],
            )
            self._flows[key] = flow
        return flow

    def _record_capture(self, device_id: int, direction: str, packet: dict[str, Any]) -> None:
        capture = self._captures.get(device_id)
        if capture is None:
            return
        capture.records.append(
            {
                "time": self._now,
                "direction": direction,
                "source": packet["src_address"],
                "destination": packet["dst_address"],
                "source_port": packet["src_port"],
                "destination_port": packet["dst_port"],
                "size": packet["size"],
            }
        )

    def _record_animation(self, src_node: int, dst_node: int, size: int) -> None:
        anim = self._animation
        if anim is None:
            return
        if len(anim["packets"]) >= anim["max_packets"]:
            anim["truncated"] = True
            return
        anim["packets"].append(
            {"time": self._now, "from_node": src_node, "to_node": dst_node, "size": size}
        )

    def _write_outputs(self) -> None:
        if not self._captures and self._animation is None:
            return
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            for capture in self._captures.values():
                device = self._devices[capture.device_id]
                with capture.path.open("w") as f:
                    json.dump(
                        {
                            "name": capture.name,
                            "device": device.device_id,
                            "node": device.node_id,
                            "address": device.address,
                            "records": capture.records,
                        },
                        f,
                        indent=2,
                    )
            if self._animation is not None:
                anim = self._animation
                nodes = [
                    {
                        "id": node.node_id,
                        "role": node.role.value,
                        "network_name": self._devices[node.device_ids[0]].network_name,
                        "x": node.position[0],
                        "y": node.position[1],
                    }
                    for node in self._nodes.values()
                ]
                with anim["path"].open("w") as f:
                    json.dump(
                        {
                            "name": anim["name"],
                            "max_packets_per_file": anim["max_packets"],
                            "truncated": anim["truncated"],
                            "nodes": nodes,
                            "packets": anim["packets"],
                        },
                        f,
                        indent=2,
                    )
        except OSError as exc:
            raise EngineError(f"Failed to write run outputs: {exc}") from exc

    def _push(self, time: float, kind: int, payload: dict[str, Any]) -> None:
        heapq.heappush(self._queue, _Event(float(time), next(self._seq), kind, payload))

    def _node(self, handle: NodeHandle) -> _Node:
        node = self._nodes.get(handle.node_id)
        if node is None:
            raise EngineError(f"Unknown node {handle.node_id}")
        return node

    def _device(self, handle: DeviceHandle) -> _Device:
        device = self._devices.get(handle.device_id)
        if device is None:
            raise EngineError(f"Unknown device {handle.device_id}")
        return device

    def _node_address(self, node_id: int) -> str:
        device = self._devices[self._nodes[node_id].device_ids[0]]
        if device.address is None:
            raise EngineError(f"Node {node_id} has no address")
        return device.address

    def _check_mutable(self) -> None:
        if self._destroyed:
            raise EngineError("Engine already destroyed")
        if self._ran:
            raise EngineError("Engine already ran; create a new engine per scenario")
