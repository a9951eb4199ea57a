"""
Session management across reps.

SessionManager owns the session configuration and the measurement list.
It starts the orchestrator, decides after every rep whether the session is
complete (fixed count, timed countdown with a guard band), and hands the
finished session to the persistence or assignment collaborator.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from calibration.grid import zone_at
from calibration.roi import GoalQuad, RoiCalibrator, default_display_rect
from exceptions import ConfigurationError, DrillError, SessionStateError
from models.config import SessionConfig, TimingConfig
from models.drill import (
    DrillConfiguration,
    DrillMode,
    DrillState,
    RepMeasurement,
    SessionRecord,
    SessionResult,
    SessionState,
    SessionTarget,
)

from .assignment import (
    STATUS_COMPLETED,
    AssignmentCollaborator,
    AssignmentContext,
    LoggingAssignmentCollaborator,
    LoggingResultSink,
    ResultSink,
    parse_target_reps,
)
from .orchestrator import DrillOrchestrator
from .profiles import get_profile

logger = logging.getLogger(__name__)

_EDITABLE = (SessionState.SETUP, SessionState.CALIBRATION)


@dataclass
class SessionStatus:
    """What the operator surface shows for the session."""
    session_state: SessionState
    drill: str
    mode: DrillMode
    session_type: Optional[str]
    session_value: Optional[int]
    remaining_seconds: Optional[int]
    rep_count: int
    measurements: List[int]
    result: Optional[SessionResult]
    assignment_id: Optional[str]
    error: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_state": self.session_state.value,
            "drill": self.drill,
            "mode": self.mode.value,
            "session_type": self.session_type,
            "session_value": self.session_value,
            "remaining_seconds": self.remaining_seconds,
            "rep_count": self.rep_count,
            "measurements": list(self.measurements),
            "result": self.result.to_dict() if self.result else None,
            "assignment_id": self.assignment_id,
            "error": self.error,
        }


class SessionManager:
    """
    Drives a DrillOrchestrator across the reps of one session.

    Example:
        manager = SessionManager(orchestrator, timers, RoiCalibrator())
        manager.select_drill("faceoff")
        manager.configure("count", 10)
        manager.start()
    """

    def __init__(
        self,
        orchestrator: DrillOrchestrator,
        timers,
        calibrator: RoiCalibrator,
        session_config: Optional[SessionConfig] = None,
        timing: Optional[Dict[str, TimingConfig]] = None,
        sink: Optional[ResultSink] = None,
        assignments: Optional[AssignmentCollaborator] = None,
    ):
        self._orchestrator = orchestrator
        self._timers = timers
        self._calibrator = calibrator
        self._session_config = session_config or SessionConfig()
        self._timing = dict(timing or {})
        self._sink = sink or LoggingResultSink()
        self._assignments = assignments or LoggingAssignmentCollaborator()

        self._lock = threading.RLock()
        self._state = SessionState.SETUP
        self._drill = "faceoff"
        self._mode = DrillMode.RELEASE
        self._sensitivity: Optional[float] = None
        self._auto_classify = False
        self._target: Optional[SessionTarget] = None
        self._assignment: Optional[AssignmentContext] = None
        self._config: Optional[DrillConfiguration] = None
        self._native_size: Optional[Tuple[int, int]] = None

        self._measurements: List[int] = []
        self._result: Optional[SessionResult] = None
        self._remaining: Optional[int] = None
        self._tick_handle = None
        self._generation = 0
        self._error: Optional[DrillError] = None

        self._reset_roi()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def measurements(self) -> List[int]:
        with self._lock:
            return list(self._measurements)

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result

    @property
    def remaining_seconds(self) -> Optional[int]:
        return self._remaining

    @property
    def calibrator(self) -> RoiCalibrator:
        return self._calibrator

    @property
    def orchestrator(self) -> DrillOrchestrator:
        return self._orchestrator

    @property
    def drill_config(self) -> Optional[DrillConfiguration]:
        return self._config

    def status(self) -> SessionStatus:
        with self._lock:
            return SessionStatus(
                session_state=self._state,
                drill=self._drill,
                mode=self._mode,
                session_type=self._target.kind if self._target else None,
                session_value=self._target.value if self._target else None,
                remaining_seconds=self._remaining,
                rep_count=len(self._measurements),
                measurements=list(self._measurements),
                result=self._result,
                assignment_id=self._assignment.assignment_id if self._assignment else None,
                error=self._error.message if self._error else None,
            )

    # ------------------------------------------------------------------
    # Setup / calibration
    # ------------------------------------------------------------------

    def _require_editable(self, action: str) -> None:
        if self._state not in _EDITABLE:
            raise SessionStateError(f"Cannot {action} while session is {self._state.value}", state=self._state.value)

    def _reset_roi(self) -> None:
        profile = get_profile(self._drill)
        x, y, w, h = default_display_rect(profile.roi_mode, profile.roi_box, self._calibrator.display_size)
        self._calibrator.set_rect(x, y, w, h)

    def select_drill(self, drill: str, mode: Optional[DrillMode] = None) -> None:
        """Choose the drill profile and mode; resets the ROI to the profile default."""
        with self._lock:
            self._require_editable("change drill")
            profile = get_profile(drill)
            mode = DrillMode(mode) if mode is not None else profile.modes[0]
            profile.check_mode(mode)
            changed = drill != self._drill
            self._drill = drill
            self._mode = mode
            if changed:
                self._reset_roi()
            logger.info(f"Drill selected: {drill}/{mode.value}")

    def configure(
        self,
        session_type: str,
        value: int,
        sensitivity: Optional[float] = None,
        auto_classify: Optional[bool] = None,
    ) -> SessionTarget:
        """
        Set the completion rule. Timed sessions take their value in minutes.

        Raises:
            ConfigurationError: Non-positive count/duration or unknown type;
                the session stays in Setup.
        """
        with self._lock:
            self._require_editable("configure session")
            if session_type == "timed":
                target = SessionTarget.minutes(value)
            else:
                target = SessionTarget(kind=session_type, value=value)
            if sensitivity is not None and sensitivity <= 0:
                raise ConfigurationError("Sensitivity threshold must be positive", field="sensitivity")
            self._target = target
            if sensitivity is not None:
                self._sensitivity = float(sensitivity)
            if auto_classify is not None:
                self._auto_classify = bool(auto_classify)
            logger.info(f"Session configured: {target.kind}={target.value}")
            return target

    def set_assignment(self, assignment: AssignmentContext) -> SessionTarget:
        """Run the session for an assignment: fixed count parsed from its notes."""
        with self._lock:
            self._require_editable("attach assignment")
            profile = get_profile(assignment.drill)
            reps = parse_target_reps(assignment.notes, self._session_config.default_reps)
            mode = DrillMode.PLACEMENT if DrillMode.PLACEMENT in profile.modes else DrillMode.RELEASE
            self.select_drill(assignment.drill, mode)
            self._assignment = assignment
            self._target = SessionTarget.reps(reps)
            logger.info(f"Assignment {assignment.assignment_id}: {reps} reps of {assignment.drill}")
            return self._target

    def enter_calibration(self) -> None:
        """Open the camera for the ROI preview."""
        with self._lock:
            self._require_editable("calibrate")
            self._orchestrator.acquire_camera()
            self._state = SessionState.CALIBRATION
            logger.debug("Session state -> calibration")

    def set_roi_rect(self, x: float, y: float, width: float, height: float) -> None:
        with self._lock:
            self._require_editable("edit ROI")
            self._calibrator.set_rect(x, y, width, height)

    def set_roi_quad(self, quad: GoalQuad) -> None:
        with self._lock:
            self._require_editable("edit ROI")
            self._calibrator.set_quad(quad)

    def move_roi(self, dx: float, dy: float) -> None:
        with self._lock:
            self._require_editable("edit ROI")
            self._calibrator.move(dx, dy)

    def resize_roi(self, width: float, height: float) -> None:
        with self._lock:
            self._require_editable("edit ROI")
            self._calibrator.resize(width, height)

    def move_goal_corner(self, corner: str, dx: float, dy: float) -> None:
        """Drag one goal corner; a plain rectangle ROI is first turned into a quad."""
        with self._lock:
            self._require_editable("edit ROI")
            quad = self._calibrator.quad or GoalQuad.from_rect(*self._calibrator.rect)
            self._calibrator.set_quad(quad.move_corner(corner, dx, dy))

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def start(self) -> DrillConfiguration:
        """
        Freeze the configuration and start the first rep.

        Raises:
            SessionStateError: Not in Setup/Calibration, or the drill is in Error.
            ConfigurationError: No completion rule configured.
            AcquisitionError, VideoNotReadyError: The camera could not be used.
        """
        with self._lock:
            self._require_editable("start")
            if self._target is None:
                raise ConfigurationError("Session target not configured", field="type")

            self._error = None
            try:
                native_size = self._orchestrator.acquire_camera()
            except DrillError as e:
                self._error = e
                raise
            self._native_size = native_size
            profile = get_profile(self._drill)
            timing = self._timing.get(self._drill) or TimingConfig()
            config = DrillConfiguration(
                drill=self._drill,
                mode=self._mode,
                target=self._target,
                sensitivity=self._sensitivity or profile.sensitivity,
                roi=self._calibrator.native_roi(native_size),
                timing=timing,
                auto_classify=self._auto_classify,
            )

            self._config = config
            self._measurements = []
            self._result = None
            self._generation += 1
            self._state = SessionState.RUNNING
            self._calibrator.lock()
            self._remaining = config.target.value if config.target.is_timed else None
            if config.target.is_timed:
                self._schedule_tick()
            logger.info(f"Session running: {config.drill}/{config.mode.value} {config.target.kind}={config.target.value}")

            gen = self._generation
            try:
                self._orchestrator.begin(
                    config,
                    lambda m, g=gen: self._on_rep_result(g, m),
                    self._on_drill_error,
                )
            except DrillError:
                self._cancel_run_locked(SessionState.SETUP)
                raise
            if self._error is not None:
                raise self._error
            return config

    def log_tap(self, x: float, y: float) -> RepMeasurement:
        """
        Log the placement cell the operator tapped on the preview.

        Raises:
            SessionStateError: No session running or no shot awaiting placement.
            ConfigurationError: The tap is outside the goal.
        """
        with self._lock:
            if self._state != SessionState.RUNNING or self._config is None:
                raise SessionStateError("No session running", state=self._state.value)
            px, py = self._calibrator.display_to_native(x, y, self._native_size)
            zone = zone_at(self._config.roi, px, py)
        if zone is None:
            raise ConfigurationError(f"Tap at ({x}, {y}) is outside the goal", field="zone")
        return self._orchestrator.log_zone(zone)

    def _schedule_tick(self) -> None:
        gen = self._generation
        self._tick_handle = self._timers.call_later(1.0, lambda g=gen: self._tick(g), name="session-tick")

    def _tick(self, gen: int) -> None:
        deliver = None
        with self._lock:
            if gen != self._generation or self._state != SessionState.RUNNING:
                return
            self._remaining -= 1
            if self._remaining > 0:
                self._schedule_tick()
                return
            self._remaining = 0
            logger.info("Session time expired")
            deliver = self._finalize_locked()
        self._orchestrator.finish()
        deliver()

    def _on_rep_result(self, gen: int, measurement: RepMeasurement) -> bool:
        """Record one rep; returns whether another rep should run."""
        deliver = None
        with self._lock:
            if gen != self._generation or self._state != SessionState.RUNNING:
                logger.debug(f"Ignoring rep result from a stopped run: {measurement.value}")
                return False
            target = self._config.target
            if not target.is_timed and len(self._measurements) >= target.value:
                return False

            self._measurements.append(measurement.value)
            logger.debug(f"Recorded rep {len(self._measurements)}: {measurement.value}")

            if not target.is_timed and len(self._measurements) >= target.value:
                deliver = self._finalize_locked()
            elif target.is_timed and self._remaining <= self._session_config.guard_band_seconds:
                logger.info(f"{self._remaining}s left, inside guard band; ending session")
                deliver = self._finalize_locked()

        if deliver is not None:
            deliver()
            return False
        return True

    def _cancel_run_locked(self, new_state: SessionState) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self._generation += 1
        self._state = new_state
        self._calibrator.unlock()

    def _on_drill_error(self, error: DrillError) -> None:
        with self._lock:
            self._error = error
            if self._state == SessionState.RUNNING:
                self._cancel_run_locked(SessionState.SETUP)
            logger.error(f"Session stopped by drill error: {error.message}")

    def _finalize_locked(self) -> Callable[[], None]:
        """Move to Finished and return the collaborator call to make after unlocking."""
        self._state = SessionState.FINISHED
        self._generation += 1
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self._calibrator.unlock()

        config = self._config
        measurements = list(self._measurements)
        self._result = SessionResult.from_measurements(config.mode, measurements)
        logger.info(f"Session finished: {self._result.to_dict()}")

        assignment = self._assignment
        if assignment is not None:
            key = "reactionTimes" if config.mode == DrillMode.RELEASE else "shotHistory"
            return lambda: self._assignments.complete(
                assignment.assignment_id, STATUS_COMPLETED, {key: measurements}
            )

        record = SessionRecord(
            drill=config.drill,
            mode=config.mode,
            session_type=config.target.kind,
            session_value=config.target.value,
            measurements=measurements,
            result=self._result,
            target_zones=self._orchestrator.target_zones,
        )
        return lambda: self._sink.save(record)

    def end(self) -> Optional[SessionResult]:
        """Finish early with the reps recorded so far and report them."""
        deliver = None
        with self._lock:
            if self._state != SessionState.RUNNING:
                raise SessionStateError("No session running", state=self._state.value)
            deliver = self._finalize_locked()
        self._orchestrator.finish()
        deliver()
        return self._result

    def abort(self) -> None:
        """Stop everything without reporting; the recorded reps stay until new_session()."""
        # Session first, so a rep result racing the teardown finds the run stopped
        with self._lock:
            if self._tick_handle is not None:
                self._tick_handle.cancel()
                self._tick_handle = None
            self._generation += 1
            if self._state == SessionState.RUNNING:
                self._state = SessionState.FINISHED
                self._result = SessionResult.from_measurements(self._config.mode, self._measurements)
                logger.info(f"Session aborted after {len(self._measurements)} reps")
            elif self._state == SessionState.CALIBRATION:
                self._state = SessionState.SETUP
            self._calibrator.unlock()
        self._orchestrator.abort()

    def new_session(self) -> None:
        """Clear measurements and results and return to Setup. Also resets a drill in Error."""
        with self._lock:
            if self._tick_handle is not None:
                self._tick_handle.cancel()
                self._tick_handle = None
            self._generation += 1
            self._state = SessionState.SETUP
            self._measurements = []
            self._result = None
            self._remaining = None
            self._config = None
            self._assignment = None
            self._error = None
            self._calibrator.unlock()
            logger.info("New session")
        self._orchestrator.reset()

    @property
    def drill_state(self) -> DrillState:
        return self._orchestrator.state
