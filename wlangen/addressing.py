"""Per-cell IPv4 subnet allocation.

Each cell receives its own subnet by incrementing the third octet of a fixed
base address once per cell index. The first, second and fourth octets of the
base stay fixed; host addresses inside a subnet are assigned per device by the
simulation engine.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from wlangen.errors import ConfigurationError
from wlangen.log_config import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_ADDRESS = "10.1.1.0"
DEFAULT_MASK = "255.255.255.0"
# Octets 254 and 255 are never handed out as a cell's third octet.
MAX_THIRD_OCTET = 253


@dataclass(frozen=True)
class SubnetDescriptor:
    """Network range assigned exclusively to one cell.

    Attributes:
        prefix: Four network octets, e.g. ``(10, 1, 3, 0)``.
        mask: Dotted netmask, e.g. ``"255.255.255.0"``.
    """

    prefix: tuple[int, int, int, int]
    mask: str

    @property
    def network(self) -> str:
        """Dotted network address, e.g. ``"10.1.3.0"``."""
        return ".".join(str(o) for o in self.prefix)

    @property
    def prefix_length(self) -> int:
        return self._ip_network().prefixlen

    @property
    def host_capacity(self) -> int:
        """Number of assignable host addresses (network/broadcast excluded)."""
        return max(0, self._ip_network().num_addresses - 2)

    def host(self, ordinal: int) -> str:
        """Return the ``ordinal``-th host address (1-based) in this subnet.

        Raises:
            ValueError: If the ordinal falls outside the assignable range.
        """
        if ordinal < 1 or ordinal > self.host_capacity:
            raise ValueError(
                f"Host ordinal {ordinal} outside subnet {self.cidr} "
                f"(1..{self.host_capacity})"
            )
        return str(self._ip_network().network_address + ordinal)

    @property
    def cidr(self) -> str:
        return f"{self.network}/{self.prefix_length}"

    def overlaps(self, other: "SubnetDescriptor") -> bool:
        return self._ip_network().overlaps(other._ip_network())

    def _ip_network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(f"{self.network}/{self.mask}")


class AddressAllocator:
    """Hand out a unique, non-overlapping subnet per cell.

    ``allocate`` is a pure function of the cell index and the base address:
    calling it twice with the same index returns equal descriptors, and two
    distinct indices never share an address range.

    Args:
        base_address: Network address of cell 0.
        mask: Netmask applied to every cell subnet. Must be /24 or narrower so
            that third-octet increments produce disjoint ranges.

    Raises:
        ConfigurationError: If the base address or mask is malformed.
    """

    def __init__(
        self, base_address: str = DEFAULT_BASE_ADDRESS, mask: str = DEFAULT_MASK
    ) -> None:
        try:
            network = ipaddress.IPv4Network(f"{base_address}/{mask}", strict=True)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid base address/mask '{base_address}/{mask}': {exc}"
            ) from exc
        if network.prefixlen < 24:
            raise ConfigurationError(
                f"Mask '{mask}' (/{network.prefixlen}) is wider than /24; "
                "per-cell third-octet increments would overlap"
            )
        if network.num_addresses < 4:
            raise ConfigurationError(
                f"Mask '{mask}' leaves no room for an access point and a station"
            )
        octets = tuple(int(o) for o in str(network.network_address).split("."))
        self._base: tuple[int, int, int, int] = octets  # type: ignore[assignment]
        self._mask = str(network.netmask)

    @property
    def base_address(self) -> str:
        return ".".join(str(o) for o in self._base)

    @property
    def mask(self) -> str:
        return self._mask

    @property
    def capacity(self) -> int:
        """Maximum number of cells this scheme can address."""
        return MAX_THIRD_OCTET - self._base[2] + 1

    def check_capacity(self, cell_count: int) -> None:
        """Fail early when ``cell_count`` cells cannot be addressed.

        Raises:
            ConfigurationError: If the third octet would overflow.
        """
        if cell_count > self.capacity:
            raise ConfigurationError(
                f"{cell_count} cells overflow the address scheme starting at "
                f"{self.base_address}: at most {self.capacity} cells fit in the "
                "third octet; widen the scheme or split across octets"
            )

    def allocate(self, cell_index: int) -> SubnetDescriptor:
        """Return the subnet for ``cell_index``.

        Args:
            cell_index: Zero-based cell index.

        Returns:
            Subnet whose third octet is ``base + cell_index``.

        Raises:
            ConfigurationError: If the index is negative or overflows the
                third octet.
        """
        if cell_index < 0:
            raise ConfigurationError(f"Cell index must be >= 0, got {cell_index}")
        self.check_capacity(cell_index + 1)
        a, b, c, d = self._base
        subnet = SubnetDescriptor(prefix=(a, b, c + cell_index, d), mask=self._mask)
        logger.debug("Allocated subnet %s for cell %d", subnet.cidr, cell_index)
        return subnet
