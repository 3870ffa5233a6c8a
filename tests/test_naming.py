"""Tests for stable identifier generation."""

from wlangen.naming import (
    animation_name,
    capture_name,
    flow_summary_name,
    network_name,
    scenario_slug,
)


def test_network_name_is_deterministic_per_cell():
    assert network_name(0) == "SSiD-0"
    assert network_name(9) == "SSiD-9"
    assert len({network_name(i) for i in range(50)}) == 50


def test_scenario_slug_normalizes_names():
    assert scenario_slug("experiment_v6") == "experiment_v6"
    assert scenario_slug("  my  run/1 ") == "my_run1"
    assert scenario_slug("???") == "scenario"


def test_artifact_names_follow_scenario_and_cell():
    assert capture_name("experiment_v6", 3) == "experiment_v6_3"
    assert animation_name("experiment_v6") == "experiment_v6_animation"
    assert flow_summary_name("experiment_v6") == "experiment_v6_flows"
