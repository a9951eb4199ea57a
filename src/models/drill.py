"""
Drill, session and measurement models.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from exceptions import ConfigurationError
from models.config import TimingConfig


ZONE_COUNT = 9
ZONE_LABELS = [
    "top_left", "top_center", "top_right",
    "mid_left", "mid_center", "mid_right",
    "bottom_left", "bottom_center", "bottom_right",
]


class DrillMode(str, Enum):
    RELEASE = "release"
    PLACEMENT = "placement"


class DrillState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    COUNTDOWN = "countdown"
    SET = "set"
    MEASURING = "measuring"
    LOG_SHOT = "log_shot"
    RESULT = "result"
    ERROR = "error"


class SessionState(str, Enum):
    SETUP = "setup"
    CALIBRATION = "calibration"
    RUNNING = "running"
    FINISHED = "finished"


class CueType(str, Enum):
    COUNTDOWN = "countdown"
    DOWN = "down"
    SET = "set"
    TARGET = "target"
    WHISTLE = "whistle"


@dataclass(frozen=True)
class Roi:
    """
    Rectangular region of interest in native frame pixels.

    Attributes:
        x: Left edge.
        y: Top edge.
        width: Width in pixels (> 0).
        height: Height in pixels (> 0).
    """
    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def clamp(self, frame_w: int, frame_h: int) -> "Roi":
        """Return a copy clipped to a frame of the given size (at least 1x1)."""
        x = min(max(self.x, 0), frame_w - 1)
        y = min(max(self.y, 0), frame_h - 1)
        x2 = min(max(self.x2, x + 1), frame_w)
        y2 = min(max(self.y2, y + 1), frame_h)
        return Roi(x=x, y=y, width=x2 - x, height=y2 - y)

    def as_slices(self) -> Tuple[slice, slice]:
        """Row/column slices for indexing a (H, W, C) frame."""
        return slice(self.y, self.y2), slice(self.x, self.x2)

    @classmethod
    def full_frame(cls, frame_w: int, frame_h: int) -> "Roi":
        return cls(x=0, y=0, width=frame_w, height=frame_h)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Roi":
        return cls(
            x=int(d.get("x", 0)),
            y=int(d.get("y", 0)),
            width=int(d["width"]),
            height=int(d["height"]),
        )

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class SessionTarget:
    """
    Session completion rule.

    kind is "count" (value = number of reps) or "timed" (value = seconds).
    """
    kind: str
    value: int

    def __post_init__(self):
        if self.kind not in ("count", "timed"):
            raise ConfigurationError(f"Unknown session type: {self.kind}", field="type")
        if not isinstance(self.value, int) or isinstance(self.value, bool) or self.value <= 0:
            field_name = "reps" if self.kind == "count" else "duration"
            raise ConfigurationError(
                f"Session {field_name} must be a positive integer, got {self.value!r}",
                field=field_name,
            )

    @property
    def is_timed(self) -> bool:
        return self.kind == "timed"

    @classmethod
    def reps(cls, count: int) -> "SessionTarget":
        return cls(kind="count", value=count)

    @classmethod
    def minutes(cls, minutes: int) -> "SessionTarget":
        if not isinstance(minutes, int) or minutes <= 0:
            raise ConfigurationError(
                f"Session duration must be a positive number of minutes, got {minutes!r}",
                field="duration",
            )
        return cls(kind="timed", value=minutes * 60)


@dataclass(frozen=True)
class DrillConfiguration:
    """
    Everything one session needs; frozen so it cannot change while Running.

    Attributes:
        drill: Profile name ("faceoff" or "shooting").
        mode: Release (latency) or Placement (zone).
        target: Fixed rep count or duration.
        sensitivity: Mean luminance difference that counts as motion.
        roi: Monitored region in native frame pixels.
        timing: Cue sequence delays.
        auto_classify: Try the automatic zone classifier before manual logging.
    """
    drill: str
    mode: DrillMode
    target: SessionTarget
    sensitivity: float
    roi: Roi
    timing: TimingConfig
    auto_classify: bool = False

    def __post_init__(self):
        if self.sensitivity <= 0:
            raise ConfigurationError("Sensitivity threshold must be positive", field="sensitivity")
        if self.roi.width <= 0 or self.roi.height <= 0:
            raise ConfigurationError("ROI must have a positive size", field="roi")


@dataclass(frozen=True)
class RepMeasurement:
    """One rep's outcome: latency in ms (Release) or zone 0-8 (Placement)."""
    mode: DrillMode
    value: int
    rep_index: int = 0

    def __post_init__(self):
        if self.mode == DrillMode.PLACEMENT and not (0 <= self.value < ZONE_COUNT):
            raise ValueError(f"Zone index out of range: {self.value}")
        if self.mode == DrillMode.RELEASE and self.value < 0:
            raise ValueError(f"Latency must be non-negative: {self.value}")

    @property
    def latency_ms(self) -> Optional[int]:
        return self.value if self.mode == DrillMode.RELEASE else None

    @property
    def zone(self) -> Optional[int]:
        return self.value if self.mode == DrillMode.PLACEMENT else None


@dataclass(frozen=True)
class SessionResult:
    """Aggregate over a session's measurements."""
    mode: DrillMode
    count: int
    best: Optional[int] = None
    worst: Optional[int] = None
    average: Optional[int] = None
    zone_histogram: Optional[Tuple[int, ...]] = None

    @classmethod
    def from_measurements(cls, mode: DrillMode, values: Sequence[int]) -> "SessionResult":
        values = list(values)
        if mode == DrillMode.PLACEMENT:
            histogram = [0] * ZONE_COUNT
            for zone in values:
                histogram[zone] += 1
            return cls(mode=mode, count=len(values), zone_histogram=tuple(histogram))

        if not values:
            return cls(mode=mode, count=0, best=0, worst=0, average=0)
        return cls(
            mode=mode,
            count=len(values),
            best=min(values),
            worst=max(values),
            average=int(math.floor(sum(values) / len(values) + 0.5)),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"mode": self.mode.value, "count": self.count}
        if self.mode == DrillMode.PLACEMENT:
            d["zone_histogram"] = list(self.zone_histogram or ())
        else:
            d.update({"best": self.best, "worst": self.worst, "average": self.average})
        return d


@dataclass(frozen=True)
class AudioCueEvent:
    """A cue at an offset (ms) from sequence start. value is the tick number or target zone."""
    type: CueType
    offset_ms: int
    value: Optional[int] = None


@dataclass
class SessionRecord:
    """Finished session handed to the persistence collaborator."""
    drill: str
    mode: DrillMode
    session_type: str
    session_value: int
    measurements: List[int]
    result: SessionResult
    target_zones: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        key = "reactionTimes" if self.mode == DrillMode.RELEASE else "shotHistory"
        return {
            "drill": self.drill,
            "drillMode": self.mode.value,
            "sessionType": self.session_type,
            "sessionValue": self.session_value,
            key: list(self.measurements),
            "result": self.result.to_dict(),
            "targetZones": list(self.target_zones),
        }
