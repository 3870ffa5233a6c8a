"""Visualization utilities for cell layouts."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle

from wlangen.log_config import get_logger
from wlangen.topology import Cell

logger = get_logger(__name__)


def export_layout_map(
    cells: Sequence[Cell],
    output_path: Path,
    *,
    figure_size: tuple[int, int] = (10, 10),
    dpi: int = 300,
) -> None:
    """Export a JPEG map of the cell layout.

    Draws each cell's station jitter box as a thin rectangle, the access point
    at the cell anchor and every station at its jittered position, with a
    line from each station to its access point.

    Args:
        cells: Cells to draw.
        output_path: Path to save the JPEG.
        figure_size: Matplotlib figure size in inches (width, height).
        dpi: Output image dots-per-inch when saving.

    Raises:
        ValueError: If there is nothing to draw.
        RuntimeError: If rendering or file output fails.
    """
    if not cells:
        raise ValueError("Cannot create layout map: no cells")

    logger.info(f"Exporting layout map to {output_path}")
    fig = None
    try:
        fig, ax = plt.subplots(figsize=figure_size)
        for cell in cells:
            (x0, x1) = cell.placement.x_bounds
            (y0, y1) = cell.placement.y_bounds
            ax.add_patch(
                Rectangle(
                    (x0, y0),
                    x1 - x0,
                    y1 - y0,
                    fill=False,
                    edgecolor="gray",
                    linewidth=0.6,
                    alpha=0.6,
                )
            )
            ax_x, ax_y = cell.anchor
            for sx, sy in cell.station_positions:
                ax.plot([ax_x, sx], [ax_y, sy], color="lightgray", linewidth=0.5, zorder=1)
            ax.scatter(
                [p[0] for p in cell.station_positions],
                [p[1] for p in cell.station_positions],
                s=14,
                color="tab:blue",
                zorder=2,
            )
            ax.scatter([ax_x], [ax_y], s=40, marker="^", color="tab:red", zorder=3)
            ax.text(ax_x, y1 + 1.0, cell.network_name, fontsize=7, ha="center")

        ax.set_aspect("equal", adjustable="datalim")
        ax.set_xlabel("x (m)")
        ax.set_ylabel("y (m)")
        ax.set_title(f"Cell layout ({len(cells)} cells)", fontsize=12)
        plt.tight_layout()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(output_path, dpi=int(dpi), format="jpeg", bbox_inches="tight")
    except Exception as e:
        if output_path.exists():
            output_path.unlink()
        raise RuntimeError(f"Failed to export layout map: {e}") from e
    finally:
        if fig is not None:
            plt.close(fig)

    size = output_path.stat().st_size
    logger.info(f"Saved layout map → {output_path} ({size / 1024:.1f} KB)")
