"""
ROI calibration and the 3x3 placement grid.
"""

from .grid import draw_zone_grid, zone_at, zone_cells
from .roi import GoalQuad, RoiCalibrator, default_display_rect, PREVIEW_SIZE

__all__ = [
    "GoalQuad",
    "RoiCalibrator",
    "default_display_rect",
    "PREVIEW_SIZE",
    "draw_zone_grid",
    "zone_at",
    "zone_cells",
]
