"""
Motion detection for the drill engine.

The trigger compares ROI luminance against a reference frame captured at
the whistle.
"""

from .motion import MotionTriggerDetector, mean_abs_difference, roi_luminance

__all__ = ['MotionTriggerDetector', 'mean_abs_difference', 'roi_luminance']
