"""
Typed models for the drill engine.

Configuration mirrors the YAML structure; drill models describe states,
measurements and session aggregates.
"""

from .frame import FrameData
from .config import (
    Config,
    CameraConfig,
    TimingConfig,
    AudioConfig,
    ClassifierConfig,
    SessionConfig,
    WebConfig,
)
from .drill import (
    ZONE_COUNT,
    ZONE_LABELS,
    AudioCueEvent,
    CueType,
    DrillConfiguration,
    DrillMode,
    DrillState,
    RepMeasurement,
    Roi,
    SessionRecord,
    SessionResult,
    SessionState,
    SessionTarget,
)

__all__ = [
    # Frame
    "FrameData",
    # Config
    "Config",
    "CameraConfig",
    "TimingConfig",
    "AudioConfig",
    "ClassifierConfig",
    "SessionConfig",
    "WebConfig",
    # Drill
    "ZONE_COUNT",
    "ZONE_LABELS",
    "AudioCueEvent",
    "CueType",
    "DrillConfiguration",
    "DrillMode",
    "DrillState",
    "RepMeasurement",
    "Roi",
    "SessionRecord",
    "SessionResult",
    "SessionState",
    "SessionTarget",
]
