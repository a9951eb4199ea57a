"""
Runtime plumbing: the timer thread that fires cues and the frame loop that
feeds the motion trigger.
"""

from .frame_loop import FrameLoop
from .timers import TimerHandle, TimerQueue

__all__ = ["FrameLoop", "TimerHandle", "TimerQueue"]
