"""Smoke tests for the cell layout map."""

import random

import pytest

from wlangen.addressing import AddressAllocator
from wlangen.topology import TopologyBuilder
from wlangen.visualization import export_layout_map


def test_export_layout_map_writes_jpeg(recording_engine, tmp_path):
    cells = TopologyBuilder(recording_engine, AddressAllocator(), random.Random(1)).build(3, 3)
    out = tmp_path / "maps" / "layout.jpg"
    export_layout_map(cells, out, figure_size=(4, 4), dpi=50)
    assert out.exists()
    assert out.read_bytes()[:2] == b"\xff\xd8"


def test_export_layout_map_requires_cells(tmp_path):
    with pytest.raises(ValueError, match="no cells"):
        export_layout_map([], tmp_path / "layout.jpg")
