"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


DEFAULT_WHISTLE_CANDIDATES_MS = [1000, 1500, 2000, 3000, 3500]


@dataclass
class CameraConfig:
    """Camera configuration."""
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [480, 360])
    fps: int = 30
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [480, 360]),
            fps=d.get("fps", 30),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0),
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass(frozen=True)
class TimingConfig:
    """
    Cue sequence timing for one drill, in seconds.

    Attributes:
        pre_start_delay: Silence between start and the first countdown tick.
        command_delay: Transition after the countdown ("down" -> "set" for
            face-offs, "set" -> target callout for shooting).
        whistle_delay_type: "fixed", "random" (discrete candidates) or
            "random_range" (continuous).
        whistle_fixed_delay: Delay before the whistle when fixed.
        whistle_candidates_ms: Candidate delays for "random".
        whistle_range: (min, max) seconds for "random_range".
        inter_rep_delay: Pause between a result and the next rep.
    """
    pre_start_delay: float = 1.0
    command_delay: float = 0.75
    whistle_delay_type: str = "fixed"
    whistle_fixed_delay: float = 2.0
    whistle_candidates_ms: Tuple[int, ...] = tuple(DEFAULT_WHISTLE_CANDIDATES_MS)
    whistle_range: Tuple[float, float] = (1.0, 3.5)
    inter_rep_delay: float = 5.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any], defaults: Optional["TimingConfig"] = None) -> "TimingConfig":
        base = defaults or cls()
        whistle_range = d.get("whistle_range", base.whistle_range)
        return cls(
            pre_start_delay=float(d.get("pre_start_delay", base.pre_start_delay)),
            command_delay=float(d.get("command_delay", base.command_delay)),
            whistle_delay_type=d.get("whistle_delay_type", base.whistle_delay_type),
            whistle_fixed_delay=float(d.get("whistle_fixed_delay", base.whistle_fixed_delay)),
            whistle_candidates_ms=tuple(int(v) for v in d.get("whistle_candidates_ms", base.whistle_candidates_ms)),
            whistle_range=(float(whistle_range[0]), float(whistle_range[1])),
            inter_rep_delay=float(d.get("inter_rep_delay", base.inter_rep_delay)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pre_start_delay": self.pre_start_delay,
            "command_delay": self.command_delay,
            "whistle_delay_type": self.whistle_delay_type,
            "whistle_fixed_delay": self.whistle_fixed_delay,
            "whistle_candidates_ms": list(self.whistle_candidates_ms),
            "whistle_range": list(self.whistle_range),
            "inter_rep_delay": self.inter_rep_delay,
        }


@dataclass
class AudioConfig:
    """Audio output configuration. clips maps cue names to file paths or data URLs."""
    enabled: bool = True
    sample_rate: int = 44100
    volume: float = 1.0
    clips: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AudioConfig":
        return cls(
            enabled=d.get("enabled", True),
            sample_rate=d.get("sample_rate", 44100),
            volume=d.get("volume", 1.0),
            clips=dict(d.get("clips") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "sample_rate": self.sample_rate,
            "volume": self.volume,
            "clips": dict(self.clips),
        }


@dataclass
class ClassifierConfig:
    """Automatic shot placement classifier."""
    enabled: bool = False
    model: str = "gemini-1.5-flash"
    api_key_env: str = "GOOGLE_API_KEY"
    jpeg_quality: int = 80

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ClassifierConfig":
        return cls(
            enabled=d.get("enabled", False),
            model=d.get("model", "gemini-1.5-flash"),
            api_key_env=d.get("api_key_env", "GOOGLE_API_KEY"),
            jpeg_quality=d.get("jpeg_quality", 80),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "model": self.model,
            "api_key_env": self.api_key_env,
            "jpeg_quality": self.jpeg_quality,
        }


@dataclass
class SessionConfig:
    """
    Session-level settings.

    Attributes:
        guard_band_seconds: A timed session ends when a rep result arrives
            with this much time or less remaining.
        default_reps: Rep target when an assignment's notes name none.
    """
    guard_band_seconds: int = 5
    default_reps: int = 10

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SessionConfig":
        return cls(
            guard_band_seconds=d.get("guard_band_seconds", 5),
            default_reps=d.get("default_reps", 10),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guard_band_seconds": self.guard_band_seconds,
            "default_reps": self.default_reps,
        }


@dataclass
class WebConfig:
    """Operator API server."""
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(host=d.get("host", "127.0.0.1"), port=d.get("port", 8000))

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


FACEOFF_TIMING = TimingConfig(command_delay=0.75, inter_rep_delay=5.0)
SHOOTING_TIMING = TimingConfig(command_delay=1.0, inter_rep_delay=3.0)


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    web: WebConfig = field(default_factory=WebConfig)
    timing: Dict[str, TimingConfig] = field(default_factory=lambda: {
        "faceoff": FACEOFF_TIMING,
        "shooting": SHOOTING_TIMING,
    })
    log_path: str = "logs/drill_engine.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        timing_dict = d.get("timing", {}) or {}
        timing = {
            "faceoff": TimingConfig.from_dict(timing_dict.get("faceoff", {}) or {}, FACEOFF_TIMING),
            "shooting": TimingConfig.from_dict(timing_dict.get("shooting", {}) or {}, SHOOTING_TIMING),
        }
        return cls(
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            audio=AudioConfig.from_dict(d.get("audio", {}) or {}),
            classifier=ClassifierConfig.from_dict(d.get("classifier", {}) or {}),
            session=SessionConfig.from_dict(d.get("session", {}) or {}),
            web=WebConfig.from_dict(d.get("web", {}) or {}),
            timing=timing,
            log_path=d.get("log_path", "logs/drill_engine.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "camera": self.camera.to_dict(),
            "audio": self.audio.to_dict(),
            "classifier": self.classifier.to_dict(),
            "session": self.session.to_dict(),
            "web": self.web.to_dict(),
            "timing": {name: t.to_dict() for name, t in self.timing.items()},
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
