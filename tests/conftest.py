"""
Pytest configuration and shared fixtures.
"""

import heapq
import itertools
import os
import random
import sys
import time

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from audio.output import AudioOutput  # noqa: E402
from calibration.roi import PREVIEW_SIZE, RoiCalibrator  # noqa: E402
from drill.assignment import AssignmentCollaborator, ResultSink  # noqa: E402
from drill.orchestrator import DrillOrchestrator  # noqa: E402
from drill.session import SessionManager  # noqa: E402
from exceptions import AcquisitionError  # noqa: E402
from models.config import FACEOFF_TIMING, SHOOTING_TIMING, SessionConfig  # noqa: E402
from models.frame import FrameData  # noqa: E402
from observation.base import ObservationConfig, ObservationSource  # noqa: E402
from runtime.timers import TimerHandle  # noqa: E402

FRAME_W, FRAME_H = PREVIEW_SIZE


def solid_frame(value, width=FRAME_W, height=FRAME_H):
    return np.full((height, width, 3), value, dtype=np.uint8)


class ManualTimerQueue:
    """TimerQueue stand-in driven by a virtual clock; callbacks run inside advance()."""

    def __init__(self):
        self._now = 0.0
        self._heap = []
        self._seq = itertools.count()

    def now(self):
        return self._now

    def call_later(self, delay, callback, name=""):
        handle = TimerHandle(self._now + max(0.0, delay), callback, name)
        heapq.heappush(self._heap, (handle.due, next(self._seq), handle))
        return handle

    def advance(self, seconds):
        target = self._now + seconds
        while self._heap and self._heap[0][0] <= target + 1e-9:
            due, _, handle = heapq.heappop(self._heap)
            self._now = max(self._now, due)
            handle.run()
        self._now = target

    def pending(self):
        return [h for _, _, h in self._heap if h.active]

    def shutdown(self):
        for _, _, handle in self._heap:
            handle.cancel()
        self._heap.clear()


class ScriptedSource(ObservationSource):
    """Camera stand-in that returns whatever frame the test last set."""

    def __init__(self, size=(FRAME_W, FRAME_H), fail_open=False, metadata_ready=True):
        super().__init__(ObservationConfig(source_id="test-cam"))
        self.size = size
        self.fail_open = fail_open
        self.metadata_ready = metadata_ready
        self.open_count = 0
        self.close_count = 0
        self._frame = solid_frame(0, *size)

    @property
    def native_resolution(self):
        if not self._is_open or not self.metadata_ready:
            return None
        return self.size

    def set_frame(self, frame):
        self._frame = frame

    def open(self):
        if self.fail_open:
            raise RuntimeError("COULD NOT ACCESS CAMERA STREAM")
        self._is_open = True
        self.open_count += 1

    def read(self):
        if not self._is_open:
            return None
        self._frame_index += 1
        return FrameData.from_numpy(self._frame, timestamp=time.perf_counter(),
                                    frame_index=self._frame_index, source=self.source_id)

    def close(self):
        if self._is_open:
            self.close_count += 1
        self._is_open = False


class RecordingAudioOutput(AudioOutput):
    """Records every cue played; optionally fails to open like a missing device."""

    def __init__(self, fail_open=False, clips=None, fail_resume_from=None):
        self.fail_open = fail_open
        self.fail_resume_from = fail_resume_from
        self.resume_count = 0
        self.clips = set(clips or ())
        self.played = []
        self.tones = []
        self.is_open = False
        self.open_count = 0
        self.close_count = 0

    def open(self):
        if self.fail_open:
            raise AcquisitionError("AUDIO ARCHITECTURE FAILURE.", device="audio")
        self.is_open = True
        self.open_count += 1

    def play_cue(self, name, tone_key=None):
        self.played.append(name)
        super().play_cue(name, tone_key=tone_key)

    def play_tone(self, spec):
        self.tones.append(spec)

    def play_clip(self, name):
        return name in self.clips

    def resume(self):
        self.resume_count += 1
        if self.fail_resume_from is not None and self.resume_count >= self.fail_resume_from:
            raise AcquisitionError("AUDIO ARCHITECTURE FAILURE.", device="audio")

    def close(self):
        if self.is_open:
            self.close_count += 1
        self.is_open = False


class SyncFrameLoop:
    """FrameLoop stand-in; the test pushes frames with feed()."""

    def __init__(self, source, on_frame):
        self._source = source
        self._on_frame = on_frame
        self.started = False
        self.stopped = False

    @property
    def running(self):
        return self.started and not self.stopped

    def start(self):
        self.started = True

    def feed(self, count=1):
        for _ in range(count):
            if not self.running:
                return
            frame_data = self._source.read()
            if frame_data is None:
                continue
            if not self._on_frame(frame_data):
                self.stopped = True

    def stop(self):
        self.stopped = True


class FrameLoopFactory:
    def __init__(self):
        self.loops = []

    def __call__(self, source, on_frame):
        loop = SyncFrameLoop(source, on_frame)
        self.loops.append(loop)
        return loop

    @property
    def latest(self):
        return self.loops[-1]


class RecordingSink(ResultSink):
    def __init__(self):
        self.saved = []

    def save(self, record):
        self.saved.append(record)


class RecordingAssignments(AssignmentCollaborator):
    def __init__(self):
        self.completed = []

    def complete(self, assignment_id, status, results):
        self.completed.append((assignment_id, status, results))


class DrillRig:
    """Orchestrator and session wired to the stand-ins above."""

    def __init__(self, source=None, audio=None, classifier=None, guard_band_seconds=5):
        self.timers = ManualTimerQueue()
        self.source = source or ScriptedSource()
        self.audio = audio or RecordingAudioOutput()
        self.loops = FrameLoopFactory()
        self.sink = RecordingSink()
        self.assignments = RecordingAssignments()
        self.orchestrator = DrillOrchestrator(
            self.source,
            self.audio,
            self.timers,
            classifier=classifier,
            clock=self.timers.now,
            frame_loop_factory=self.loops,
            rng=random.Random(7),
        )
        self.calibrator = RoiCalibrator(PREVIEW_SIZE)
        self.session = SessionManager(
            self.orchestrator,
            self.timers,
            self.calibrator,
            session_config=SessionConfig(guard_band_seconds=guard_band_seconds, default_reps=10),
            timing={"faceoff": FACEOFF_TIMING, "shooting": SHOOTING_TIMING},
            sink=self.sink,
            assignments=self.assignments,
        )

    def move(self, latency=0.2):
        """Change the scene latency seconds after arming and push one frame."""
        self.source.set_frame(solid_frame(200, *self.source.size))
        self.timers.advance(latency)
        self.loops.latest.feed()
        self.source.set_frame(solid_frame(0, *self.source.size))


@pytest.fixture
def timers():
    return ManualTimerQueue()


@pytest.fixture
def source():
    return ScriptedSource()


@pytest.fixture
def audio():
    return RecordingAudioOutput()


@pytest.fixture
def rig():
    return DrillRig()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30

audio:
  enabled: true
  volume: 0.8

timing:
  faceoff:
    pre_start_delay: 1.0
    command_delay: 0.75
    whistle_delay_type: "fixed"
    whistle_fixed_delay: 2.0
  shooting:
    command_delay: 1.0

session:
  guard_band_seconds: 5
  default_reps: 10

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
        },
        "audio": {
            "enabled": True,
            "volume": 1.0,
            "clips": {},
        },
        "timing": {
            "faceoff": {
                "pre_start_delay": 1.0,
                "command_delay": 0.75,
                "whistle_delay_type": "random",
                "whistle_candidates_ms": [1000, 1500, 2000, 3000, 3500],
            },
            "shooting": {
                "whistle_delay_type": "random_range",
                "whistle_range": [1.0, 3.5],
            },
        },
        "session": {
            "guard_band_seconds": 5,
            "default_reps": 10,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
