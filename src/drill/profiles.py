"""
Per-drill parameters.

Face-off and shooting share one orchestrator; everything that differs
between them lives in this table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from exceptions import ConfigurationError
from models.drill import DrillMode


@dataclass(frozen=True)
class DrillProfile:
    """
    Attributes:
        name: Profile key.
        countdown_ticks: Number of 1 s countdown ticks.
        transition_cue: Play "down" at the end of the countdown and "set"
            after the command delay (face-off).
        target_callout: Call a random target zone after "set" (shooting).
        sensitivity: Default motion threshold.
        roi_mode: "full" frame or centred "boxed" ROI.
        roi_box: Box size on the 480x360 preview when boxed.
        modes: Allowed drill modes.
    """
    name: str
    countdown_ticks: int
    transition_cue: bool
    target_callout: bool
    sensitivity: float
    roi_mode: str
    roi_box: Tuple[int, int]
    modes: Tuple[DrillMode, ...]

    def check_mode(self, mode: DrillMode) -> None:
        if mode not in self.modes:
            raise ConfigurationError(f"{self.name} drill does not support {mode.value} mode", field="mode")


FACEOFF = DrillProfile(
    name="faceoff",
    countdown_ticks=5,
    transition_cue=True,
    target_callout=False,
    sensitivity=4.0,
    roi_mode="full",
    roi_box=(480, 360),
    modes=(DrillMode.RELEASE,),
)

SHOOTING = DrillProfile(
    name="shooting",
    countdown_ticks=3,
    transition_cue=False,
    target_callout=True,
    sensitivity=10.0,
    roi_mode="boxed",
    roi_box=(200, 160),
    modes=(DrillMode.RELEASE, DrillMode.PLACEMENT),
)

PROFILES: Dict[str, DrillProfile] = {p.name: p for p in (FACEOFF, SHOOTING)}


def get_profile(name: str) -> DrillProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown drill: {name} (expected one of {sorted(PROFILES)})", field="drill") from None
