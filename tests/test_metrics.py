"""Tests for flow-summary analysis."""

import json
import math

import pandas as pd
import pytest

from wlangen.metrics import (
    format_flow_table,
    format_rollup,
    load_flow_summary,
    summarize_flows,
)


def _flow(flow_id, cell, tx, rx, delay_sum, first_tx=2.0, last_rx=4.0):
    return {
        "flow_id": flow_id,
        "cell": cell,
        "source_address": f"10.1.{cell + 1}.2",
        "source_port": 49153,
        "destination_address": f"10.1.{cell + 1}.1",
        "destination_port": 9,
        "tx_packets": tx,
        "rx_packets": rx,
        "lost_packets": tx - rx,
        "tx_bytes": tx * 92,
        "rx_bytes": rx * 92,
        "time_first_tx": first_tx,
        "time_last_rx": last_rx,
        "delay_sum": delay_sum,
    }


@pytest.fixture
def flows_file(tmp_path):
    path = tmp_path / "exp_flows.json"
    flows = [
        _flow(2, 1, 3, 2, 0.004),
        _flow(1, 0, 3, 3, 0.003),
        _flow(3, 1, 3, 0, 0.0),
    ]
    path.write_text(json.dumps({"scenario": "exp", "horizon": 13.0, "flows": flows}))
    return path


def test_load_orders_by_flow_id_and_derives_columns(flows_file):
    df = load_flow_summary(flows_file)
    assert list(df["flow_id"]) == [1, 2, 3]
    assert df.loc[0, "delivery_ratio"] == 1.0
    assert df.loc[1, "delivery_ratio"] == pytest.approx(2 / 3)
    assert df.loc[0, "mean_delay_ms"] == pytest.approx(1.0)
    assert df.loc[1, "mean_delay_ms"] == pytest.approx(2.0)
    assert math.isnan(df.loc[2, "mean_delay_ms"])
    # 276 bytes over 2 s
    assert df.loc[0, "goodput_kbps"] == pytest.approx(276 * 8 / 2.0 / 1000.0)


def test_summarize_flows(flows_file):
    summary = summarize_flows(load_flow_summary(flows_file))
    assert summary["flows"] == 3
    assert summary["cells"] == 2
    assert summary["tx_packets"] == 9
    assert summary["rx_packets"] == 5
    assert summary["lost_packets"] == 4
    assert summary["delivery_ratio"] == pytest.approx(5 / 9)
    assert summary["mean_delay_ms_p50"] == pytest.approx(1.5)
    assert summary["mean_delay_ms_max"] == pytest.approx(2.0)


def test_empty_flow_list(tmp_path):
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"flows": []}))
    df = load_flow_summary(path)
    assert df.empty
    assert summarize_flows(df) == {"flows": 0}
    assert format_flow_table(df) == "(no flows)"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_flow_summary(tmp_path / "nope.json")


def test_missing_flows_list(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"scenario": "exp"}))
    with pytest.raises(ValueError, match="no 'flows' list"):
        load_flow_summary(path)


def test_formatting(flows_file):
    df = load_flow_summary(flows_file)
    table = format_flow_table(df)
    assert "10.1.2.2" in table
    assert "–" in table
    rollup = format_rollup(summarize_flows(df))
    assert "tx_packets: 9" in rollup
    assert "delivery_ratio: 0.556" in rollup


def test_unannotated_flows_have_no_cell(tmp_path):
    path = tmp_path / "flows.json"
    flow = _flow(1, 0, 1, 1, 0.001)
    flow["cell"] = None
    path.write_text(json.dumps({"flows": [flow]}))
    df = load_flow_summary(path)
    assert pd.isna(df.loc[0, "cell"])
    assert summarize_flows(df)["cells"] == 0
