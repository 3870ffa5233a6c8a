"""Naming utilities for stable identifiers.

Provides a single source of truth for network names and artifact names so
that the topology, telemetry and CLI layers agree on every identifier.
"""

from __future__ import annotations

import re

NETWORK_NAME_PREFIX = "SSiD"


def network_name(cell_index: int) -> str:
    """Return the network name (SSID) binding stations to a cell's AP.

    Args:
        cell_index: Zero-based cell index.

    Returns:
        Deterministic name such as ``"SSiD-3"``.
    """
    return f"{NETWORK_NAME_PREFIX}-{int(cell_index)}"


def scenario_slug(name: str) -> str:
    """Return a filesystem-safe slug for a scenario name.

    Rules:
    - Strip surrounding whitespace.
    - Replace whitespace runs with a single underscore.
    - Remove any remaining characters except ``A-Za-z``, ``0-9``, ``_``, ``.``
      and ``-``.

    Args:
        name: Human-readable scenario name.

    Returns:
        Slug string; ``"scenario"`` if nothing survives normalization.
    """
    if not isinstance(name, str):
        name = str(name)
    collapsed = re.sub(r"\s+", "_", name.strip())
    cleaned = re.sub(r"[^A-Za-z0-9_.\-]", "", collapsed)
    return cleaned or "scenario"


def capture_name(scenario_name: str, cell_index: int) -> str:
    """Return the per-cell capture output name ``{scenario}_{cell}``."""
    return f"{scenario_slug(scenario_name)}_{int(cell_index)}"


def animation_name(scenario_name: str) -> str:
    """Return the global animation output name."""
    return f"{scenario_slug(scenario_name)}_animation"


def flow_summary_name(scenario_name: str) -> str:
    """Return the global flow-summary output name."""
    return f"{scenario_slug(scenario_name)}_flows"
