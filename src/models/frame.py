"""
FrameData model for captured video frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

import cv2
import numpy as np

if TYPE_CHECKING:
    from models.drill import Roi


@dataclass
class FrameData:
    """
    A captured video frame and its capture metadata.

    Attributes:
        frame: Pixel data as a (H, W, 3) uint8 array in BGR order.
        width: Frame width in pixels.
        height: Frame height in pixels.
        timestamp: Monotonic capture time in seconds.
        frame_index: Sequential frame number since the source was opened.
        source: Identifier of the producing source.
    """
    frame: np.ndarray
    width: int
    height: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "FrameData":
        """Create FrameData from a numpy array."""
        h, w = frame.shape[:2]
        return cls(
            frame=frame,
            width=w,
            height=h,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
        )

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    def crop(self, roi: "Roi") -> np.ndarray:
        """Pixels inside roi (clipped to the frame). Returns a view, not a copy."""
        clipped = roi.clamp(self.width, self.height)
        rows, cols = clipped.as_slices()
        return self.frame[rows, cols]

    def to_jpeg(self, quality: int = 80) -> bytes:
        """Encode the frame as JPEG bytes."""
        ok, buf = cv2.imencode(".jpg", self.frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
        if not ok:
            raise RuntimeError("Failed to encode JPEG")
        return buf.tobytes()
