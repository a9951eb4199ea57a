"""
Drill state machine.

One DrillOrchestrator runs the reps of a session: it acquires the camera and
audio device, schedules the cue sequence, arms the motion trigger at the
whistle, turns the trigger into a measurement, and hands each measurement to
a listener that decides whether another rep follows.

Cue timers and the frame loop run on their own threads. Every callback
carries the generation it was scheduled under and is dropped if the
generation has moved on, so nothing scheduled before an abort can touch
state afterwards.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional, Tuple

from audio.cues import CueScheduler, build_cue_plan, make_whistle_delay
from audio.output import AudioOutput
from classification.placement import PlacementClassifierChain
from detection.motion import MotionTriggerDetector
from exceptions import (
    AcquisitionError,
    ConfigurationError,
    DrillError,
    SessionStateError,
    VideoNotReadyError,
)
from models.drill import (
    ZONE_COUNT,
    AudioCueEvent,
    CueType,
    DrillConfiguration,
    DrillMode,
    DrillState,
    RepMeasurement,
)
from models.frame import FrameData
from observation.base import ObservationSource
from runtime.frame_loop import FrameLoop

from .profiles import DrillProfile, get_profile

logger = logging.getLogger(__name__)

_TRANSITIONS: Dict[DrillState, FrozenSet[DrillState]] = {
    DrillState.IDLE: frozenset({DrillState.STARTING}),
    DrillState.STARTING: frozenset({DrillState.COUNTDOWN}),
    DrillState.COUNTDOWN: frozenset({DrillState.SET}),
    DrillState.SET: frozenset({DrillState.MEASURING}),
    DrillState.MEASURING: frozenset({DrillState.RESULT, DrillState.LOG_SHOT}),
    DrillState.LOG_SHOT: frozenset({DrillState.RESULT}),
    DrillState.RESULT: frozenset({DrillState.STARTING, DrillState.IDLE}),
    DrillState.ERROR: frozenset(),
}

UNDETECTED_TEXT = "SHOT_UNDETECTED: PLEASE MARK MANUALLY"


@dataclass(frozen=True)
class DrillStatus:
    """Snapshot of the orchestrator for the operator surface."""
    state: DrillState
    status_text: str
    countdown: Optional[int]
    target_zone: Optional[int]
    last_measurement: Optional[int]
    rep_index: int
    error: Optional[str]

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "status_text": self.status_text,
            "countdown": self.countdown,
            "target_zone": self.target_zone,
            "last_measurement": self.last_measurement,
            "rep_index": self.rep_index,
            "error": self.error,
        }


class DrillOrchestrator:
    """
    Coordinates cue scheduling and motion detection for each rep.

    Listener hooks:
        on_result(measurement) -> bool: called outside the lock after every
            rep; return True to run another rep after the inter-rep delay.
        on_error(error): called outside the lock when a resource failure
            puts the drill into Error.
    """

    def __init__(
        self,
        source: ObservationSource,
        audio: AudioOutput,
        timers,
        classifier: Optional[PlacementClassifierChain] = None,
        clock: Callable[[], float] = time.perf_counter,
        frame_loop_factory: Callable[..., FrameLoop] = FrameLoop,
        rng: Optional[random.Random] = None,
    ):
        self._source = source
        self._timers = timers
        self._scheduler = CueScheduler(timers, audio)
        self._classifier = classifier or PlacementClassifierChain()
        self._clock = clock
        self._frame_loop_factory = frame_loop_factory
        self._rng = rng or random.Random()

        # Lock order: _lock before _resource_lock
        self._lock = threading.Lock()
        self._resource_lock = threading.Lock()
        self._generation = 0
        self._state = DrillState.IDLE
        self._config: Optional[DrillConfiguration] = None
        self._profile: Optional[DrillProfile] = None
        self._on_result: Optional[Callable[[RepMeasurement], bool]] = None
        self._on_error: Optional[Callable[[DrillError], None]] = None

        self._detector: Optional[MotionTriggerDetector] = None
        self._frame_loop: Optional[FrameLoop] = None
        self._inter_rep_handle = None
        self._release_pending: List[Optional[FrameLoop]] = []
        self._notify: List[Callable[[], None]] = []

        self._countdown: Optional[int] = None
        self._target_zone: Optional[int] = None
        self._target_zones: List[int] = []
        self._last_measurement: Optional[int] = None
        self._rep_index = 0
        self._analyzing = False
        self._auto_attempted = False
        self._error: Optional[str] = None
        self._preview_frame: Optional[FrameData] = None

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Hold the state lock; run deferred device releases and listener calls after it."""
        self._lock.acquire()
        try:
            yield
        finally:
            pending, self._release_pending = self._release_pending, []
            notify, self._notify = self._notify, []
            self._lock.release()
            for loop in pending:
                self._release(loop)
            for fn in notify:
                fn()

    def _transition(self, new_state: DrillState) -> None:
        if new_state not in _TRANSITIONS[self._state] and new_state not in (DrillState.ERROR, DrillState.IDLE):
            raise SessionStateError(
                f"Illegal drill transition {self._state.value} -> {new_state.value}",
                state=self._state.value,
            )
        logger.debug(f"Drill state {self._state.value} -> {new_state.value}")
        self._state = new_state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> DrillState:
        return self._state

    @property
    def config(self) -> Optional[DrillConfiguration]:
        return self._config

    @property
    def target_zones(self) -> List[int]:
        """Target zones called so far in this run (shooting only)."""
        return list(self._target_zones)

    def status(self) -> DrillStatus:
        with self._lock:
            return DrillStatus(
                state=self._state,
                status_text=self._status_text(),
                countdown=self._countdown,
                target_zone=self._target_zone,
                last_measurement=self._last_measurement,
                rep_index=self._rep_index,
                error=self._error,
            )

    def _status_text(self) -> str:
        state = self._state
        if state == DrillState.IDLE:
            return "DRILL_ENDED"
        if state == DrillState.STARTING:
            return "STARTING_CAMERA..."
        if state == DrillState.COUNTDOWN:
            return f"T-MINUS {self._countdown if self._countdown is not None else ''}".strip()
        if state == DrillState.SET:
            return "AWAIT WHISTLE TRIGGER"
        if state == DrillState.MEASURING:
            return "ANALYZING_SHOT..." if self._analyzing else "REACT!"
        if state == DrillState.LOG_SHOT:
            return UNDETECTED_TEXT if self._auto_attempted else "LOG SHOT PLACEMENT"
        if state == DrillState.RESULT:
            if self._config is not None and self._config.mode == DrillMode.PLACEMENT:
                return "IMPACT_LOGGED"
            return f"LATENCY: {self._last_measurement}ms"
        return self._error or ""

    def begin(
        self,
        config: DrillConfiguration,
        on_result: Callable[[RepMeasurement], bool],
        on_error: Optional[Callable[[DrillError], None]] = None,
    ) -> None:
        """
        Start the first rep of a run.

        Raises:
            SessionStateError: If a run is already active or the drill is in Error.
            ConfigurationError: If the drill/mode combination is invalid.
        """
        profile = get_profile(config.drill)
        profile.check_mode(config.mode)
        with self._guard():
            if self._state != DrillState.IDLE:
                raise SessionStateError(
                    f"Cannot start a drill while {self._state.value}; abort or reset first",
                    state=self._state.value,
                )
            self._generation += 1
            self._config = config
            self._profile = profile
            self._on_result = on_result
            self._on_error = on_error
            self._rep_index = 0
            self._target_zones = []
            self._last_measurement = None
            self._error = None
            logger.info(
                f"Drill started: {config.drill}/{config.mode.value}, "
                f"target={config.target.kind}:{config.target.value}, roi={config.roi.to_dict()}"
            )
            self._start_rep_locked()

    def acquire_camera(self) -> Tuple[int, int]:
        """
        Open the camera ahead of a run (calibration preview, ROI scaling).

        Returns:
            Native (width, height) of the camera.

        Raises:
            AcquisitionError, VideoNotReadyError: The drill enters Error.
            SessionStateError: If the drill is in Error.
        """
        with self._guard():
            if self._state == DrillState.ERROR:
                raise SessionStateError("Drill is in error state; start a new session", state=self._state.value)
            try:
                self._open_camera()
                size = self._source.native_resolution
                if size is None:
                    raise VideoNotReadyError()
            except DrillError as e:
                self._fail_locked(e)
                raise
            return size

    def latest_frame(self) -> Optional[FrameData]:
        """Current frame for the preview; while measuring, the last frame the loop saw."""
        loop = self._frame_loop
        if loop is not None and loop.running:
            return self._preview_frame
        if not self._source.is_open:
            return None
        return self._source.read()

    def abort(self) -> None:
        """
        Cancel all timers, stop the frame loop and release devices; state becomes Idle.

        Safe to call from any state and any number of times. Also clears Error.
        """
        with self._guard():
            loop = self._teardown_locked()
            if self._state != DrillState.IDLE:
                self._transition(DrillState.IDLE)
                logger.info("Drill aborted")
            self._error = None
        self._release(loop)

    reset = abort

    def log_zone(self, zone: int) -> RepMeasurement:
        """
        Record a manually marked zone for the current rep.

        Raises:
            SessionStateError: If no shot is waiting to be logged.
            ConfigurationError: If zone is not 0-8.
        """
        if not isinstance(zone, int) or not 0 <= zone < ZONE_COUNT:
            raise ConfigurationError(f"Zone must be 0-{ZONE_COUNT - 1}, got {zone!r}", field="zone")
        with self._guard():
            if self._state != DrillState.LOG_SHOT:
                raise SessionStateError(
                    f"No shot awaiting placement (state={self._state.value})",
                    state=self._state.value,
                )
            measurement = self._complete_rep_locked(zone)
        return measurement

    def finish(self) -> None:
        """End the run normally (session complete). Idempotent."""
        with self._guard():
            if self._state in (DrillState.IDLE, DrillState.ERROR):
                return
            self._finish_locked()

    # ------------------------------------------------------------------
    # Rep lifecycle (all *_locked methods run with self._lock held)
    # ------------------------------------------------------------------

    def _start_rep_locked(self) -> None:
        self._transition(DrillState.STARTING)
        self._countdown = None
        self._target_zone = None
        self._analyzing = False
        self._auto_attempted = False

        try:
            self._acquire_devices()
        except DrillError as e:
            self._fail_locked(e)
            return

        timing = self._config.timing
        plan = build_cue_plan(self._profile, timing, make_whistle_delay(timing, self._rng), self._rng)
        self._transition(DrillState.COUNTDOWN)
        gen = self._generation
        self._scheduler.schedule(plan, lambda cue, g=gen: self._on_cue(g, cue))
        logger.debug(f"Rep {self._rep_index + 1}: {len(plan)} cues, whistle at {plan[-1].offset_ms}ms")

    def _open_camera(self) -> None:
        with self._resource_lock:
            if self._source.is_open:
                return
            try:
                self._source.open()
            except RuntimeError as e:
                logger.error(f"Camera acquisition failed: {e}")
                raise AcquisitionError(str(e), device=self._source.source_id) from e

    def _acquire_devices(self) -> None:
        self._open_camera()
        with self._resource_lock:
            self._scheduler.prepare()

    def _on_cue(self, gen: int, cue: AudioCueEvent) -> None:
        with self._guard():
            if gen != self._generation or self._state in (DrillState.IDLE, DrillState.ERROR):
                return
            logger.debug(f"Cue {cue.type.value} at {cue.offset_ms}ms (value={cue.value})")

            if cue.type == CueType.COUNTDOWN:
                self._countdown = cue.value
            elif cue.type == CueType.DOWN:
                self._countdown = 0
            elif cue.type == CueType.SET:
                self._countdown = 0
                self._transition(DrillState.SET)
            elif cue.type == CueType.TARGET:
                self._target_zone = cue.value
                self._target_zones.append(cue.value)

            try:
                self._scheduler.play(cue)
            except DrillError as e:
                logger.error(f"Cue {cue.type.value} could not be played: {e}")
                self._fail_locked(e)
                return

            if cue.type == CueType.WHISTLE:
                self._arm_locked(gen)

    def _arm_locked(self, gen: int) -> None:
        config = self._config
        self._detector = MotionTriggerDetector(config.roi, config.sensitivity, clock=self._clock)
        try:
            self._detector.arm(self._source)
        except DrillError as e:
            logger.error(f"Could not arm motion trigger: {e}")
            self._fail_locked(e)
            return

        self._transition(DrillState.MEASURING)
        self._frame_loop = self._frame_loop_factory(self._source, lambda fd, g=gen: self._on_frame(g, fd))
        self._frame_loop.start()

    def _on_frame(self, gen: int, frame_data: FrameData) -> bool:
        with self._guard():
            if gen != self._generation or self._state != DrillState.MEASURING or self._detector is None:
                return False
            self._preview_frame = frame_data
            elapsed_ms = self._detector.process(frame_data)
            if elapsed_ms is None:
                return True

            if self._config.mode == DrillMode.RELEASE:
                self._complete_rep_locked(elapsed_ms)
                return False

            if not (self._config.auto_classify and self._classifier.automatic):
                self._transition(DrillState.LOG_SHOT)
                return False
            self._analyzing = True
            impact = self._detector.trigger_frame

        zone = self._classifier.resolve(impact)

        with self._guard():
            if gen != self._generation or self._state != DrillState.MEASURING:
                return False
            self._analyzing = False
            if zone is None:
                self._auto_attempted = True
                self._transition(DrillState.LOG_SHOT)
            else:
                self._complete_rep_locked(zone)
        return False

    def _complete_rep_locked(self, value: int) -> RepMeasurement:
        measurement = RepMeasurement(self._config.mode, value, rep_index=self._rep_index)
        self._rep_index += 1
        self._last_measurement = value
        if self._detector is not None:
            self._detector.disarm()
        self._transition(DrillState.RESULT)
        if self._config.mode == DrillMode.RELEASE:
            logger.info(f"Rep {measurement.rep_index + 1}: latency {value}ms")
        else:
            logger.info(f"Rep {measurement.rep_index + 1}: zone {value}")

        gen = self._generation
        self._notify.append(lambda: self._after_result(gen, measurement))
        return measurement

    def _after_result(self, gen: int, measurement: RepMeasurement) -> None:
        with self._lock:
            if gen != self._generation or self._state != DrillState.RESULT:
                logger.debug(f"Dropping result of rep {measurement.rep_index + 1}; run was torn down")
                return
            on_result = self._on_result
        keep_going = on_result(measurement) if on_result is not None else False
        with self._guard():
            if gen != self._generation or self._state != DrillState.RESULT:
                return
            if not keep_going:
                self._finish_locked()
                return
            # Frame loop has already ended; drop it so the next arm starts a fresh one
            self._frame_loop = None
            delay = self._config.timing.inter_rep_delay
            self._inter_rep_handle = self._timers.call_later(
                delay, lambda g=gen: self._next_rep(g), name="inter-rep"
            )
            logger.debug(f"Next rep in {delay}s")

    def _next_rep(self, gen: int) -> None:
        with self._guard():
            if gen != self._generation or self._state != DrillState.RESULT:
                return
            self._inter_rep_handle = None
            self._start_rep_locked()

    def _finish_locked(self) -> None:
        loop = self._teardown_locked()
        self._transition(DrillState.IDLE)
        self._release_pending.append(loop)
        logger.info(f"Drill finished after {self._rep_index} reps")

    def _fail_locked(self, error: DrillError) -> None:
        loop = self._teardown_locked()
        self._error = error.message
        self._transition(DrillState.ERROR)
        self._release_pending.append(loop)
        logger.error(f"Drill error: {error.message}")
        on_error = self._on_error
        if on_error is not None:
            self._notify.append(lambda: on_error(error))

    def _teardown_locked(self) -> Optional[FrameLoop]:
        """Invalidate outstanding callbacks and cancel timers; returns the frame loop to stop."""
        self._generation += 1
        self._scheduler.cancel_all()
        if self._inter_rep_handle is not None:
            self._inter_rep_handle.cancel()
            self._inter_rep_handle = None
        if self._detector is not None:
            self._detector.disarm()
        self._countdown = None
        self._target_zone = None
        self._analyzing = False
        loop, self._frame_loop = self._frame_loop, None
        return loop

    def _release(self, loop: Optional[FrameLoop]) -> None:
        """Stop the frame loop and release the camera and audio device."""
        with self._resource_lock:
            if loop is not None:
                loop.stop()
            if self._state not in (DrillState.IDLE, DrillState.ERROR):
                # A new run already started and owns the devices
                return
            self._source.close()
            self._scheduler.release()
            logger.debug("Camera and audio released")
