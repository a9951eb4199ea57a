"""
Region of interest calibration.

The operator positions the ROI on the preview (display coordinates); the
detector works in native frame pixels. RoiCalibrator keeps the ROI in
display space and converts on demand, scaling by native/display size and
flooring to whole pixels.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from exceptions import ConfigurationError, SessionStateError
from models.drill import Roi

logger = logging.getLogger(__name__)

PREVIEW_SIZE = (480, 360)
MIN_ROI_SIZE = 10
CORNERS = ("tl", "tr", "bl", "br")


@dataclass(frozen=True)
class GoalQuad:
    """
    Four goal-mouth corners in display coordinates.

    Corners can be dragged independently, so the shape is any
    quadrilateral; motion detection uses its bounding box.
    """
    tl: Tuple[float, float]
    tr: Tuple[float, float]
    bl: Tuple[float, float]
    br: Tuple[float, float]

    @classmethod
    def default(cls) -> "GoalQuad":
        return cls(tl=(140, 100), tr=(340, 100), bl=(140, 260), br=(340, 260))

    @classmethod
    def from_rect(cls, x: float, y: float, width: float, height: float) -> "GoalQuad":
        return cls(tl=(x, y), tr=(x + width, y), bl=(x, y + height), br=(x + width, y + height))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GoalQuad":
        try:
            points = {k: (float(d[k]["x"]), float(d[k]["y"])) for k in CORNERS}
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Goal quad needs x/y for each of {CORNERS}: {e}", field="quad") from e
        return cls(**points)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {k: {"x": getattr(self, k)[0], "y": getattr(self, k)[1]} for k in CORNERS}

    def translate(self, dx: float, dy: float) -> "GoalQuad":
        return GoalQuad(**{k: (getattr(self, k)[0] + dx, getattr(self, k)[1] + dy) for k in CORNERS})

    def move_corner(self, corner: str, dx: float, dy: float) -> "GoalQuad":
        if corner not in CORNERS:
            raise ConfigurationError(f"Unknown corner: {corner}", field="corner")
        x, y = getattr(self, corner)
        points = {k: getattr(self, k) for k in CORNERS}
        points[corner] = (x + dx, y + dy)
        return GoalQuad(**points)

    def bounding_box(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) taken from the left/top/right/bottom edges' corners."""
        min_x = min(self.tl[0], self.bl[0])
        min_y = min(self.tl[1], self.tr[1])
        max_x = max(self.tr[0], self.br[0])
        max_y = max(self.bl[1], self.br[1])
        return min_x, min_y, max_x, max_y


def default_display_rect(roi_mode: str, box_size: Tuple[int, int], display_size: Tuple[int, int] = PREVIEW_SIZE) -> Tuple[float, float, float, float]:
    """
    Starting ROI for a drill profile as (x, y, width, height) in display space.

    "full" covers the whole preview; "boxed" centres a box of box_size.
    """
    dw, dh = display_size
    if roi_mode == "full":
        return 0.0, 0.0, float(dw), float(dh)
    if roi_mode == "boxed":
        bw, bh = min(box_size[0], dw), min(box_size[1], dh)
        return (dw - bw) / 2.0, (dh - bh) / 2.0, float(bw), float(bh)
    raise ConfigurationError(f"Unknown ROI mode: {roi_mode}", field="roi_mode")


class RoiCalibrator:
    """
    Editable ROI, locked while a session is running.

    Example:
        cal = RoiCalibrator(display_size=(480, 360))
        cal.set_rect(140, 100, 200, 160)
        cal.move(10, 0)
        roi = cal.native_roi((1280, 720))
    """

    def __init__(
        self,
        display_size: Tuple[int, int] = PREVIEW_SIZE,
        rect: Optional[Tuple[float, float, float, float]] = None,
    ):
        if display_size[0] <= 0 or display_size[1] <= 0:
            raise ConfigurationError("Display size must be positive", field="display_size")
        self.display_size = (int(display_size[0]), int(display_size[1]))
        self._rect = rect if rect is not None else (0.0, 0.0, float(display_size[0]), float(display_size[1]))
        self._quad: Optional[GoalQuad] = None
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    @property
    def rect(self) -> Tuple[float, float, float, float]:
        """(x, y, width, height) in display coordinates."""
        return self._rect

    @property
    def quad(self) -> Optional[GoalQuad]:
        return self._quad

    def _check_unlocked(self) -> None:
        if self._locked:
            raise SessionStateError("ROI cannot be changed while a session is running", state="running")

    def _store(self, x: float, y: float, w: float, h: float) -> None:
        dw, dh = self.display_size
        w = min(max(w, MIN_ROI_SIZE), dw)
        h = min(max(h, MIN_ROI_SIZE), dh)
        x = min(max(x, 0.0), dw - w)
        y = min(max(y, 0.0), dh - h)
        self._rect = (x, y, w, h)
        logger.debug(f"ROI set to x={x:.0f} y={y:.0f} w={w:.0f} h={h:.0f} (display)")

    def set_rect(self, x: float, y: float, width: float, height: float) -> None:
        self._check_unlocked()
        if width <= 0 or height <= 0:
            raise ConfigurationError("ROI must have a positive size", field="roi")
        self._quad = None
        self._store(x, y, width, height)

    def set_quad(self, quad: GoalQuad) -> None:
        """Use the bounding box of a goal quad as the ROI."""
        self._check_unlocked()
        min_x, min_y, max_x, max_y = quad.bounding_box()
        if max_x <= min_x or max_y <= min_y:
            raise ConfigurationError("Goal corners do not enclose an area", field="quad")
        self._quad = quad
        self._store(min_x, min_y, max_x - min_x, max_y - min_y)

    def move(self, dx: float, dy: float) -> None:
        self._check_unlocked()
        if self._quad is not None:
            self._quad = self._quad.translate(dx, dy)
        x, y, w, h = self._rect
        self._store(x + dx, y + dy, w, h)

    def resize(self, width: float, height: float) -> None:
        """Resize from the top-left anchor."""
        self._check_unlocked()
        self._quad = None
        x, y, _, _ = self._rect
        self._store(x, y, width, height)

    def scale_factors(self, native_size: Tuple[int, int]) -> Tuple[float, float]:
        return native_size[0] / self.display_size[0], native_size[1] / self.display_size[1]

    def display_to_native(self, x: float, y: float, native_size: Tuple[int, int]) -> Tuple[int, int]:
        sx, sy = self.scale_factors(native_size)
        return int(math.floor(x * sx)), int(math.floor(y * sy))

    def native_roi(self, native_size: Tuple[int, int]) -> Roi:
        """The ROI in native frame pixels, clamped to the frame."""
        sx, sy = self.scale_factors(native_size)
        x, y, w, h = self._rect
        roi = Roi(
            x=int(math.floor(x * sx)),
            y=int(math.floor(y * sy)),
            width=max(1, int(math.floor(w * sx))),
            height=max(1, int(math.floor(h * sy))),
        )
        return roi.clamp(native_size[0], native_size[1])
