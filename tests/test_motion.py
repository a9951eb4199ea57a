"""
Tests for the reference-frame motion trigger.
"""

import numpy as np
import pytest

from conftest import ScriptedSource, solid_frame
from detection.motion import MotionTriggerDetector, mean_abs_difference, roi_luminance
from exceptions import VideoNotReadyError
from models.drill import Roi
from models.frame import FrameData


class FakeClock:
    def __init__(self):
        self.t = 100.0

    def __call__(self):
        return self.t


def _frame(array):
    return FrameData.from_numpy(array, timestamp=0.0)


class TestLuminance:
    def test_weights_follow_bgr_order(self):
        frame = np.zeros((2, 2, 3), dtype=np.uint8)
        frame[..., 2] = 255  # pure red
        luma = roi_luminance(_frame(frame), Roi(0, 0, 2, 2))
        assert luma.dtype == np.uint8
        assert luma.shape == (2, 2)
        assert int(luma[0, 0]) == 76  # 0.299 * 255 truncated

    def test_crops_to_roi(self):
        luma = roi_luminance(_frame(solid_frame(10, 100, 80)), Roi(10, 20, 30, 40))
        assert luma.shape == (40, 30)

    def test_mean_abs_difference(self):
        a = np.full((4, 4), 10, dtype=np.uint8)
        b = np.full((4, 4), 30, dtype=np.uint8)
        assert mean_abs_difference(a, b) == 20.0
        assert mean_abs_difference(b, a) == 20.0

    def test_mean_abs_difference_shape_mismatch(self):
        with pytest.raises(ValueError):
            mean_abs_difference(np.zeros((2, 2), np.uint8), np.zeros((3, 3), np.uint8))


class TestMotionTriggerDetector:
    def _armed(self, threshold=4.0, roi=None):
        clock = FakeClock()
        source = ScriptedSource()
        source.open()
        detector = MotionTriggerDetector(roi or Roi(0, 0, 480, 360), threshold, clock=clock)
        detector.arm(source)
        return detector, clock

    def test_identical_frames_never_fire(self):
        detector, clock = self._armed()
        for _ in range(50):
            clock.t += 0.033
            assert detector.process(_frame(solid_frame(0))) is None
        assert detector.armed

    def test_fires_once_with_elapsed_ms(self):
        detector, clock = self._armed()
        clock.t += 0.25
        assert detector.process(_frame(solid_frame(50))) == 250
        assert not detector.armed
        assert detector.trigger_frame is not None
        clock.t += 0.1
        assert detector.process(_frame(solid_frame(200))) is None

    def test_difference_at_threshold_does_not_fire(self):
        detector, clock = self._armed(threshold=4.0)
        assert detector.process(_frame(solid_frame(4))) is None
        assert detector.armed
        assert detector.process(_frame(solid_frame(10))) == 0

    def test_motion_outside_roi_is_ignored(self):
        detector, clock = self._armed(roi=Roi(0, 0, 100, 100))
        frame = solid_frame(0)
        frame[200:, 200:] = 255
        assert detector.process(_frame(frame)) is None

    def test_disarm_stops_processing(self):
        detector, clock = self._armed()
        detector.disarm()
        assert detector.process(_frame(solid_frame(255))) is None

    def test_arm_requires_ready_source(self):
        detector = MotionTriggerDetector(Roi(0, 0, 10, 10), 4.0)
        with pytest.raises(VideoNotReadyError):
            detector.arm(ScriptedSource())

        source = ScriptedSource(metadata_ready=False)
        source.open()
        with pytest.raises(VideoNotReadyError, match="VIDEO STREAM FAILURE"):
            detector.arm(source)
