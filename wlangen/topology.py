"""Cell topology construction.

Builds the homogeneous, index-ordered collection of cells. Each cell owns one
access point and a fixed number of stations on a fresh channel, bound together
by a per-cell network name, addressed from a per-cell subnet and placed around
a diagonal anchor.
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

import networkx as nx

from wlangen.addressing import AddressAllocator, SubnetDescriptor
from wlangen.engine.base import (
    ChannelHandle,
    DeviceHandle,
    DeviceRole,
    NodeHandle,
    SimulationEngine,
)
from wlangen.errors import ConfigurationError
from wlangen.log_config import get_logger
from wlangen.naming import network_name

if TYPE_CHECKING:  # pragma: no cover - import-time types only
    from wlangen.config import ScenarioConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class PlacementSpec:
    """Cell anchor and the bounding box stations are jittered within."""

    anchor: tuple[float, float]
    x_bounds: tuple[float, float]
    y_bounds: tuple[float, float]

    def contains(self, x: float, y: float) -> bool:
        return (
            self.x_bounds[0] <= x <= self.x_bounds[1]
            and self.y_bounds[0] <= y <= self.y_bounds[1]
        )


@dataclass(frozen=True)
class Cell:
    """One access point plus its stations, sharing a channel and a subnet.

    Attributes:
        index: Zero-based creation order; drives all index-based wiring.
        access_point: AP node handle.
        stations: Station node handles in creation order.
        ap_device: AP wireless device (capture target).
        station_devices: Station wireless devices, aligned with ``stations``.
        channel: Channel owned exclusively by this cell.
        network_name: Name binding stations to this AP.
        subnet: Address range owned exclusively by this cell.
        ap_address: AP interface address.
        station_addresses: Station interface addresses.
        placement: Anchor and station jitter box.
        station_positions: Jittered station coordinates.
    """

    index: int
    access_point: NodeHandle
    stations: tuple[NodeHandle, ...]
    ap_device: DeviceHandle
    station_devices: tuple[DeviceHandle, ...]
    channel: ChannelHandle
    network_name: str
    subnet: SubnetDescriptor
    ap_address: str
    station_addresses: tuple[str, ...]
    placement: PlacementSpec
    station_positions: tuple[tuple[float, float], ...]

    @property
    def anchor(self) -> tuple[float, float]:
        return self.placement.anchor

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "network_name": self.network_name,
            "channel": self.channel.channel_id,
            "subnet": self.subnet.cidr,
            "access_point": {
                "node": self.access_point.node_id,
                "address": self.ap_address,
                "position": list(self.anchor),
            },
            "stations": [
                {"node": node.node_id, "address": addr, "position": list(pos)}
                for node, addr, pos in zip(
                    self.stations, self.station_addresses, self.station_positions
                )
            ],
            "jitter_box": {
                "x": list(self.placement.x_bounds),
                "y": list(self.placement.y_bounds),
            },
        }


class TopologyBuilder:
    """Materialize cells on a simulation engine.

    Args:
        engine: Engine context that owns every created resource.
        allocator: Per-cell subnet allocator.
        rng: Seeded random source for station jitter. Passing the same seed
            reproduces the same placement.
        anchor: Anchor of cell 0.
        step: Diagonal advance between consecutive anchors (both axes).
        jitter: Half-widths ``(dx, dy)`` of the station jitter box.
    """

    def __init__(
        self,
        engine: SimulationEngine,
        allocator: AddressAllocator,
        rng: random.Random,
        *,
        anchor: tuple[float, float] = (20.0, 20.0),
        step: float = 30.0,
        jitter: tuple[float, float] = (5.0, 10.0),
    ) -> None:
        if step <= 0.0:
            raise ConfigurationError(f"Anchor step must be positive, got {step}")
        if jitter[0] < 0.0 or jitter[1] < 0.0:
            raise ConfigurationError(f"Jitter half-widths must be >= 0, got {jitter}")
        self.engine = engine
        self.allocator = allocator
        self.rng = rng
        self.anchor = (float(anchor[0]), float(anchor[1]))
        self.step = float(step)
        self.jitter = (float(jitter[0]), float(jitter[1]))

    @classmethod
    def from_config(
        cls,
        engine: SimulationEngine,
        config: "ScenarioConfig",
        rng: random.Random | None = None,
    ) -> TopologyBuilder:
        lay = config.layout
        return cls(
            engine,
            AddressAllocator(config.addressing.base, config.addressing.mask),
            rng if rng is not None else random.Random(lay.seed),
            anchor=(lay.anchor_x, lay.anchor_y),
            step=lay.step,
            jitter=(lay.jitter_x, lay.jitter_y),
        )

    def placement(self, cell_index: int) -> PlacementSpec:
        """Return the placement for ``cell_index``.

        Anchors advance by ``step`` on both axes per cell; the jitter box
        translates with its anchor and keeps a constant size.
        """
        x = self.anchor[0] + self.step * cell_index
        y = self.anchor[1] + self.step * cell_index
        dx, dy = self.jitter
        return PlacementSpec(anchor=(x, y), x_bounds=(x - dx, x + dx), y_bounds=(y - dy, y + dy))

    def build(self, ap_count: int, sta_per_ap: int) -> list[Cell]:
        """Create ``ap_count`` cells of ``sta_per_ap`` stations each.

        Args:
            ap_count: Number of cells (one access point each).
            sta_per_ap: Stations per cell.

        Returns:
            Cells in creation order.

        Raises:
            ConfigurationError: If either count is not positive or the address
                scheme cannot hold the cells; raised before any engine call.
            EngineError: If the engine rejects an operation.
        """
        if ap_count <= 0:
            raise ConfigurationError(f"ap_count must be positive, got {ap_count}")
        if sta_per_ap <= 0:
            raise ConfigurationError(f"sta_per_ap must be positive, got {sta_per_ap}")
        self.allocator.check_capacity(ap_count)
        host_capacity = self.allocator.allocate(0).host_capacity
        if sta_per_ap + 1 > host_capacity:
            raise ConfigurationError(
                f"{sta_per_ap} stations plus one access point exceed the "
                f"{host_capacity} host addresses per cell subnet"
            )

        logger.info("Building %d cells with %d stations each", ap_count, sta_per_ap)
        cells = [self._build_cell(i, sta_per_ap) for i in range(ap_count)]
        logger.info(
            "Topology built: %d cells, %d nodes",
            len(cells),
            sum(1 + len(c.stations) for c in cells),
        )
        return cells

    def _build_cell(self, index: int, sta_per_ap: int) -> Cell:
        engine = self.engine
        subnet = self.allocator.allocate(index)
        name = network_name(index)

        # Fresh channel per cell keeps cells isolated from each other
        channel = engine.create_channel()
        ap_group = engine.create_device_group(channel, DeviceRole.ACCESS_POINT, name, 1)
        sta_group = engine.create_device_group(
            channel, DeviceRole.STATION, name, sta_per_ap, active_probing=False
        )

        engine.install_transport_stack(ap_group.nodes + sta_group.nodes)
        ap_addresses = engine.allocate_addresses(subnet, ap_group.devices)
        sta_addresses = engine.allocate_addresses(subnet, sta_group.devices)

        placement = self.placement(index)
        ap_node = ap_group.nodes[0]
        engine.set_constant_position(ap_node, *placement.anchor)
        positions: list[tuple[float, float]] = []
        for node in sta_group.nodes:
            pos = (
                self.rng.uniform(*placement.x_bounds),
                self.rng.uniform(*placement.y_bounds),
            )
            engine.set_constant_position(node, *pos)
            positions.append(pos)

        logger.debug(
            "Cell %d: %s on channel %d, subnet %s, anchor %s",
            index,
            name,
            channel.channel_id,
            subnet.cidr,
            placement.anchor,
        )
        return Cell(
            index=index,
            access_point=ap_node,
            stations=sta_group.nodes,
            ap_device=ap_group.devices[0],
            station_devices=sta_group.devices,
            channel=channel,
            network_name=name,
            subnet=subnet,
            ap_address=ap_addresses[0],
            station_addresses=tuple(sta_addresses),
            placement=placement,
            station_positions=tuple(positions),
        )


def topology_graph(cells: Sequence[Cell]) -> nx.Graph:
    """Render cells as a graph of AP and station nodes with association edges.

    Node ids are ``cell{i}/ap`` and ``cell{i}/sta{j}`` (1-based ``j``). Nodes
    carry ``role``, ``cell``, ``address``, ``pos_x`` and ``pos_y``; edges carry
    ``network_name`` and ``channel``.
    """
    G = nx.Graph()
    for cell in cells:
        ap_id = f"cell{cell.index}/ap"
        G.add_node(
            ap_id,
            role=DeviceRole.ACCESS_POINT.value,
            cell=cell.index,
            engine_node=cell.access_point.node_id,
            address=cell.ap_address,
            subnet=cell.subnet.cidr,
            pos_x=cell.anchor[0],
            pos_y=cell.anchor[1],
        )
        for j, (node, addr, pos) in enumerate(
            zip(cell.stations, cell.station_addresses, cell.station_positions), 1
        ):
            sta_id = f"cell{cell.index}/sta{j}"
            G.add_node(
                sta_id,
                role=DeviceRole.STATION.value,
                cell=cell.index,
                engine_node=node.node_id,
                address=addr,
                subnet=cell.subnet.cidr,
                pos_x=pos[0],
                pos_y=pos[1],
            )
            G.add_edge(
                ap_id,
                sta_id,
                network_name=cell.network_name,
                channel=cell.channel.channel_id,
            )
    return G


def save_topology_json(G: nx.Graph, path: Path, *, json_indent: int = 2) -> None:
    """Save the topology graph to JSON using string node ids.

    Args:
        G: Graph produced by ``topology_graph``.
        path: Output JSON file path.
        json_indent: Indentation for JSON pretty-printing.
    """
    logger.info(f"Saving topology graph to JSON: {path}")

    out: dict[str, Any] = {"graph_type": "wlan_cells", "nodes": [], "edges": []}
    for node_id, data in G.nodes(data=True):
        out["nodes"].append({"id": str(node_id), **data})
    for u, v, data in G.edges(data=True):
        out["edges"].append({"source": str(u), "target": str(v), **data})

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(out, f, indent=int(json_indent))
    logger.info(f"Saved topology graph JSON → {path}")
