"""Flow-summary analysis helpers.

Loads the flow summary written after a run into a pandas DataFrame and derives
per-flow delivery ratio, mean delay and goodput plus a scenario-wide rollup.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

FLOW_COLUMNS = [
    "flow_id",
    "cell",
    "source_address",
    "source_port",
    "destination_address",
    "destination_port",
    "tx_packets",
    "rx_packets",
    "lost_packets",
    "tx_bytes",
    "rx_bytes",
    "time_first_tx",
    "time_last_rx",
    "delay_sum",
]


def load_flow_summary(path: Path) -> pd.DataFrame:
    """Load a flow-summary JSON file into a DataFrame with derived columns.

    Derived columns:
        - ``delivery_ratio``: rx_packets / tx_packets (NaN without tx).
        - ``mean_delay_ms``: delay_sum / rx_packets in milliseconds.
        - ``goodput_kbps``: rx_bytes over the first-tx to last-rx span.

    Args:
        path: Flow-summary JSON produced by a run.

    Returns:
        One row per flow ordered by ``flow_id``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file has no ``flows`` list.
    """
    if not path.exists():
        raise FileNotFoundError(f"Flow summary not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    flows = data.get("flows") if isinstance(data, dict) else None
    if not isinstance(flows, list):
        raise ValueError(f"Flow summary has no 'flows' list: {path}")

    df = pd.DataFrame(flows)
    if df.empty:
        return pd.DataFrame(
            columns=FLOW_COLUMNS + ["delivery_ratio", "mean_delay_ms", "goodput_kbps"]
        )
    for col in FLOW_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan

    tx = pd.to_numeric(df["tx_packets"], errors="coerce")
    rx = pd.to_numeric(df["rx_packets"], errors="coerce")
    delay_sum = pd.to_numeric(df["delay_sum"], errors="coerce")
    df["delivery_ratio"] = np.where(tx > 0, rx / tx.where(tx > 0), np.nan)
    df["mean_delay_ms"] = np.where(rx > 0, 1000.0 * delay_sum / rx.where(rx > 0), np.nan)

    first_tx = pd.to_numeric(df["time_first_tx"], errors="coerce")
    last_rx = pd.to_numeric(df["time_last_rx"], errors="coerce")
    span = last_rx - first_tx
    rx_bytes = pd.to_numeric(df["rx_bytes"], errors="coerce")
    df["goodput_kbps"] = np.where(
        span > 0, rx_bytes * 8.0 / span.where(span > 0) / 1000.0, np.nan
    )
    return df.sort_values("flow_id").reset_index(drop=True)


def summarize_flows(df: pd.DataFrame) -> dict[str, Any]:
    """Return scenario-wide totals and delay percentiles for ``df``."""
    if df.empty:
        return {"flows": 0}
    tx = int(pd.to_numeric(df["tx_packets"], errors="coerce").fillna(0).sum())
    rx = int(pd.to_numeric(df["rx_packets"], errors="coerce").fillna(0).sum())
    delays = np.asarray(
        pd.to_numeric(df["mean_delay_ms"], errors="coerce").values, dtype=float
    )
    finite = delays[np.isfinite(delays)]
    return {
        "flows": int(df.shape[0]),
        "cells": int(df["cell"].dropna().nunique()),
        "tx_packets": tx,
        "rx_packets": rx,
        "lost_packets": tx - rx,
        "delivery_ratio": (rx / tx) if tx else float("nan"),
        "mean_delay_ms_p50": float(np.median(finite)) if finite.size else float("nan"),
        "mean_delay_ms_max": float(np.max(finite)) if finite.size else float("nan"),
    }


def _fmt(value: Any, digits: int = 3) -> str:
    if value is None:
        return "–"
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        return f"{int(value):,}"
    if isinstance(value, (float, np.floating)):
        if math.isnan(float(value)):
            return "–"
        return f"{float(value):,.{digits}f}"
    return str(value)


def format_flow_table(df: pd.DataFrame) -> str:
    """Render a compact per-flow table for console output."""
    if df.empty:
        return "(no flows)"
    cols = [
        "flow_id",
        "cell",
        "source_address",
        "destination_address",
        "tx_packets",
        "rx_packets",
        "delivery_ratio",
        "mean_delay_ms",
        "goodput_kbps",
    ]
    view = df[cols].copy()
    for col in ("delivery_ratio", "mean_delay_ms", "goodput_kbps"):
        view[col] = [_fmt(v) for v in view[col]]
    view["cell"] = ["–" if pd.isna(v) else int(v) for v in view["cell"]]
    return view.to_string(index=False)


def format_rollup(summary: dict[str, Any]) -> str:
    return "\n".join(f"   {key}: {_fmt(value)}" for key, value in summary.items())
