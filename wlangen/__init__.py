"""Multi-cell wireless scenario generator.

Builds parametric multi-cell WLAN scenarios (one access point and a fixed
number of stations per cell), drives them on a simulation engine and collects
captures, an animation trace and flow statistics.
"""

# Core classes and utilities
from .addressing import AddressAllocator, SubnetDescriptor
from .config import ScenarioConfig
from .driver import ScenarioDriver, ScenarioResult
from .errors import ConfigurationError, EngineError, WlangenError
from .telemetry import ArtifactKind, TelemetryArtifact, TelemetryPlan
from .topology import Cell, PlacementSpec, TopologyBuilder
from .traffic import EndpointPair, EndpointRole, TrafficEndpoint, TrafficPlan

__all__ = [
    "AddressAllocator",
    "ArtifactKind",
    "Cell",
    "ConfigurationError",
    "EndpointPair",
    "EndpointRole",
    "EngineError",
    "PlacementSpec",
    "ScenarioConfig",
    "ScenarioDriver",
    "ScenarioResult",
    "SubnetDescriptor",
    "TelemetryArtifact",
    "TelemetryPlan",
    "TopologyBuilder",
    "TrafficEndpoint",
    "TrafficPlan",
    "WlangenError",
]
