"""
Reference-frame motion trigger.

Arming grabs one frame and stores the ROI luminance as a reference. Every
later frame is reduced the same way and compared by mean absolute
difference; the first frame whose difference exceeds the sensitivity
threshold fires the trigger and yields the elapsed time since arming.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Optional

import numpy as np

from exceptions import VideoNotReadyError
from models.drill import Roi
from models.frame import FrameData
from observation.base import ObservationSource

logger = logging.getLogger(__name__)

# Rec. 601 luma weights, applied to B, G, R channel order
LUMA_WEIGHTS_BGR = np.array([0.114, 0.587, 0.299], dtype=np.float32)


def roi_luminance(frame_data: FrameData, roi: Roi) -> np.ndarray:
    """
    Luminance of the ROI pixels as a uint8 (H, W) buffer.

    Computes 0.299R + 0.587G + 0.114B per pixel, truncated to 8 bits.
    """
    pixels = frame_data.crop(roi)
    if pixels.ndim == 2:
        return pixels.astype(np.uint8, copy=True)
    luma = pixels[..., :3].astype(np.float32) @ LUMA_WEIGHTS_BGR
    return np.clip(luma, 0, 255).astype(np.uint8)


def mean_abs_difference(reference: np.ndarray, current: np.ndarray) -> float:
    """Mean absolute per-pixel difference between two equal-shape luminance buffers."""
    if reference.shape != current.shape:
        raise ValueError(f"Luminance buffers differ in shape: {reference.shape} vs {current.shape}")
    if reference.size == 0:
        return 0.0
    diff = np.abs(reference.astype(np.int16) - current.astype(np.int16))
    return float(diff.mean())


class MotionTriggerDetector:
    """
    Detects the athlete's first movement inside the ROI.

    One arm cycle fires at most once; after firing (or disarm()) process()
    ignores frames until arm() is called again.
    """

    def __init__(
        self,
        roi: Roi,
        threshold: float,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.roi = roi
        self.threshold = threshold
        self._clock = clock
        self._reference: Optional[np.ndarray] = None
        self._armed_at: Optional[float] = None
        self._armed = False
        self.last_score: float = 0.0
        self.trigger_frame: Optional[FrameData] = None

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self, source: ObservationSource) -> FrameData:
        """
        Capture the reference frame and start the clock.

        Raises:
            VideoNotReadyError: If the source is not ready or yields no frame.
        """
        if not source.is_ready:
            raise VideoNotReadyError()
        frame_data = source.read()
        if frame_data is None:
            raise VideoNotReadyError()

        self._reference = roi_luminance(frame_data, self.roi)
        self._armed_at = self._clock()
        self._armed = True
        self.last_score = 0.0
        self.trigger_frame = None
        logger.debug(
            f"Detector armed: roi={self.roi.to_dict()}, threshold={self.threshold}, "
            f"reference_px={self._reference.size}"
        )
        return frame_data

    def process(self, frame_data: FrameData) -> Optional[int]:
        """
        Compare one frame against the reference.

        Returns:
            Elapsed milliseconds since arming if this frame fires the trigger,
            otherwise None.
        """
        if not self._armed or self._reference is None:
            return None

        current = roi_luminance(frame_data, self.roi)
        if current.shape != self._reference.shape:
            logger.warning(
                f"Frame size changed while armed ({current.shape} vs {self._reference.shape}), skipping"
            )
            return None

        self.last_score = mean_abs_difference(self._reference, current)
        if self.last_score <= self.threshold:
            return None

        elapsed_ms = int(math.floor((self._clock() - self._armed_at) * 1000.0 + 0.5))
        self._armed = False
        self.trigger_frame = frame_data
        logger.debug(f"Motion trigger fired: score={self.last_score:.2f}, elapsed={elapsed_ms}ms")
        return elapsed_ms

    def disarm(self) -> None:
        self._armed = False
        self._reference = None
        self._armed_at = None
