"""Simulation engine interface and the in-process reference engine."""

from .base import (
    ChannelHandle,
    DeviceGroup,
    DeviceHandle,
    DeviceRole,
    NodeHandle,
    SimulationEngine,
)
from .local import LocalEngine

__all__ = [
    "ChannelHandle",
    "DeviceGroup",
    "DeviceHandle",
    "DeviceRole",
    "LocalEngine",
    "NodeHandle",
    "SimulationEngine",
]
