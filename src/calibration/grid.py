"""
3x3 placement grid over the ROI.

Zones are row-major: 0-2 top row, 3-5 middle, 6-8 bottom, left to right.
"""

from __future__ import annotations

from typing import List, Optional

import cv2
import numpy as np

from models.drill import ZONE_COUNT, Roi

GRID_SIZE = 3

# Colors (BGR)
COLOR_ROI = (0, 255, 255)
COLOR_GRID = (200, 200, 200)
COLOR_HIGHLIGHT = (0, 200, 0)


def zone_cells(roi: Roi) -> List[Roi]:
    """The nine cell rectangles; the last row/column absorb any remainder."""
    col_edges = [roi.x + (roi.width * i) // GRID_SIZE for i in range(GRID_SIZE)] + [roi.x2]
    row_edges = [roi.y + (roi.height * i) // GRID_SIZE for i in range(GRID_SIZE)] + [roi.y2]
    cells = []
    for row in range(GRID_SIZE):
        for col in range(GRID_SIZE):
            x1, x2 = col_edges[col], col_edges[col + 1]
            y1, y2 = row_edges[row], row_edges[row + 1]
            cells.append(Roi(x=x1, y=y1, width=max(1, x2 - x1), height=max(1, y2 - y1)))
    return cells


def zone_at(roi: Roi, x: float, y: float) -> Optional[int]:
    """Zone index containing the point, or None if it is outside the ROI."""
    if not (roi.x <= x < roi.x2 and roi.y <= y < roi.y2):
        return None
    col = min(GRID_SIZE - 1, int((x - roi.x) * GRID_SIZE // roi.width))
    row = min(GRID_SIZE - 1, int((y - roi.y) * GRID_SIZE // roi.height))
    return row * GRID_SIZE + col


def draw_zone_grid(
    frame: np.ndarray,
    roi: Roi,
    highlight: Optional[int] = None,
    show_grid: bool = True,
) -> np.ndarray:
    """Draw the ROI outline and, optionally, the 3x3 grid and a highlighted zone."""
    if highlight is not None and 0 <= highlight < ZONE_COUNT:
        cell = zone_cells(roi)[highlight]
        cv2.rectangle(frame, (cell.x, cell.y), (cell.x2 - 1, cell.y2 - 1), COLOR_HIGHLIGHT, -1)

    if show_grid:
        for i, cell in enumerate(zone_cells(roi)):
            cv2.rectangle(frame, (cell.x, cell.y), (cell.x2 - 1, cell.y2 - 1), COLOR_GRID, 1)
            cv2.putText(frame, str(i), (cell.x + 4, cell.y + 16),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, COLOR_GRID, 1)

    cv2.rectangle(frame, (roi.x, roi.y), (roi.x2 - 1, roi.y2 - 1), COLOR_ROI, 2)
    return frame
