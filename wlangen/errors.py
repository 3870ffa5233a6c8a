"""Exception taxonomy for scenario construction and runs."""

from __future__ import annotations


class WlangenError(Exception):
    """Base class for all wlangen errors."""


class ConfigurationError(WlangenError, ValueError):
    """Invalid scenario configuration.

    Raised for zero or negative counts, an overflowing address scheme and
    invalid lifecycle timing. Always detected before any engine resource is
    allocated; never retried.
    """


class EngineError(WlangenError, RuntimeError):
    """Failure surfaced by the simulation engine during build or run.

    Propagated verbatim by the driver; the run is aborted and any declared
    telemetry artifacts are discarded.
    """
