"""
Per-frame polling loop used while the motion trigger is armed.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from models.frame import FrameData
from observation.base import ObservationSource

logger = logging.getLogger(__name__)


class FrameLoop:
    """
    Reads frames on a background thread and hands each one to on_frame.

    on_frame returns False to end the loop. A source that never yields a
    frame keeps the loop waiting; only stop() ends it.
    """

    def __init__(
        self,
        source: ObservationSource,
        on_frame: Callable[[FrameData], bool],
        idle_sleep: float = 0.005,
    ):
        self._source = source
        self._on_frame = on_frame
        self._idle_sleep = idle_sleep
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Frame loop already started")
        self._thread = threading.Thread(target=self._run, name="drill-frames", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            frame_data = self._source.read()
            if frame_data is None:
                self._stop_event.wait(self._idle_sleep)
                continue
            if self._stop_event.is_set():
                break
            try:
                keep_going = self._on_frame(frame_data)
            except Exception as e:
                logger.exception(f"Frame handler failed: {e}")
                break
            if not keep_going:
                break
        self._stop_event.set()

    def stop(self) -> None:
        """Stop the loop; joins the thread unless called from it."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
