"""
Cue sequence planning and scheduling.

A rep's audio is computed up front as an ordered list of AudioCueEvents
(offsets from the start command), then every cue is put on the timer queue
as its own cancellable callback.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from functools import partial
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from exceptions import ConfigurationError
from models.config import TimingConfig
from models.drill import ZONE_COUNT, ZONE_LABELS, AudioCueEvent, CueType
from runtime.timers import TimerHandle

from .output import AudioOutput

if TYPE_CHECKING:
    from drill.profiles import DrillProfile

logger = logging.getLogger(__name__)

TICK_SPACING_MS = 1000


class WhistleDelay(ABC):
    """Strategy for the pause between the last command and the whistle."""

    @abstractmethod
    def draw_ms(self) -> int:
        pass


class FixedDelay(WhistleDelay):
    def __init__(self, delay_ms: int):
        if delay_ms <= 0:
            raise ConfigurationError("Whistle delay must be positive", field="whistle_fixed_delay")
        self.delay_ms = int(delay_ms)

    def draw_ms(self) -> int:
        return self.delay_ms


class DiscreteRandomDelay(WhistleDelay):
    """Picks uniformly from a fixed candidate set, e.g. {1000, 1500, 2000, 3000, 3500} ms."""

    def __init__(self, candidates_ms: Sequence[int], rng: Optional[random.Random] = None):
        if not candidates_ms or any(c <= 0 for c in candidates_ms):
            raise ConfigurationError("Whistle candidates must be positive", field="whistle_candidates_ms")
        self.candidates_ms = [int(c) for c in candidates_ms]
        self._rng = rng or random.Random()

    def draw_ms(self) -> int:
        return self._rng.choice(self.candidates_ms)


class UniformRandomDelay(WhistleDelay):
    """Draws from a continuous range, rounded to whole milliseconds."""

    def __init__(self, min_ms: float, max_ms: float, rng: Optional[random.Random] = None):
        if min_ms <= 0 or max_ms < min_ms:
            raise ConfigurationError("Whistle range must be positive and ordered", field="whistle_range")
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._rng = rng or random.Random()

    def draw_ms(self) -> int:
        return int(round(self._rng.uniform(self.min_ms, self.max_ms)))


def make_whistle_delay(timing: TimingConfig, rng: Optional[random.Random] = None) -> WhistleDelay:
    """Build the whistle delay strategy named by timing.whistle_delay_type."""
    kind = timing.whistle_delay_type
    if kind == "fixed":
        return FixedDelay(int(round((timing.whistle_fixed_delay or 2) * 1000)))
    if kind == "random":
        return DiscreteRandomDelay(timing.whistle_candidates_ms, rng)
    if kind == "random_range":
        lo, hi = timing.whistle_range
        return UniformRandomDelay(lo * 1000.0, hi * 1000.0, rng)
    raise ConfigurationError(f"Unknown whistle delay type: {kind}", field="whistle_delay_type")


def build_cue_plan(
    profile: "DrillProfile",
    timing: TimingConfig,
    whistle_delay: WhistleDelay,
    rng: Optional[random.Random] = None,
) -> List[AudioCueEvent]:
    """
    Compute the chronological cue list for one rep.

    Face-off (transition cue): ticks N..1, "down" one tick later, "set"
    after the command delay, whistle after the whistle delay.
    Shooting (target callout): ticks N..1, "set" one tick later, target
    callout after the command delay, whistle after the whistle delay.
    """
    rng = rng or random.Random()
    plan: List[AudioCueEvent] = []
    t = int(round(timing.pre_start_delay * 1000))
    command_ms = int(round(timing.command_delay * 1000))

    for count in range(profile.countdown_ticks, 0, -1):
        plan.append(AudioCueEvent(CueType.COUNTDOWN, t, count))
        t += TICK_SPACING_MS

    if profile.transition_cue:
        plan.append(AudioCueEvent(CueType.DOWN, t, 0))
        t += command_ms
        plan.append(AudioCueEvent(CueType.SET, t, 0))
    else:
        plan.append(AudioCueEvent(CueType.SET, t, 0))
        if profile.target_callout:
            t += command_ms
            plan.append(AudioCueEvent(CueType.TARGET, t, rng.randrange(ZONE_COUNT)))

    t += whistle_delay.draw_ms()
    plan.append(AudioCueEvent(CueType.WHISTLE, t))
    return plan


def cue_sound_name(cue: AudioCueEvent) -> str:
    """Custom clip name for a cue (e.g. "whistle", "target_top_left")."""
    if cue.type == CueType.TARGET and cue.value is not None:
        return f"target_{ZONE_LABELS[cue.value]}"
    return cue.type.value


class CueScheduler:
    """
    Puts a cue plan on the timer queue and plays cues on request.

    The scheduler does not decide whether a cue still matters; on_cue is
    called for every cue that was not cancelled, and the caller plays it via
    play() once it has checked its own state.
    """

    def __init__(self, timers, audio: AudioOutput):
        self._timers = timers
        self._audio = audio
        self._handles: List[TimerHandle] = []

    @property
    def pending(self) -> bool:
        return any(h.active for h in self._handles)

    def prepare(self) -> None:
        """
        Acquire the audio device.

        Raises:
            AcquisitionError: If the device cannot be created.
        """
        self._audio.open()
        self._audio.resume()

    def schedule(self, plan: Sequence[AudioCueEvent], on_cue: Callable[[AudioCueEvent], None]) -> None:
        """Schedule every cue in plan relative to now."""
        if self.pending:
            raise RuntimeError("A cue sequence is still pending; cancel it first")
        self._handles = [
            self._timers.call_later(cue.offset_ms / 1000.0, partial(on_cue, cue), name=cue.type.value)
            for cue in plan
        ]
        logger.debug(f"Scheduled {len(plan)} cues, whistle at {plan[-1].offset_ms}ms" if plan else "Empty cue plan")

    def play(self, cue: AudioCueEvent) -> None:
        tone_key = "target" if cue.type == CueType.TARGET else cue.type.value
        self._audio.play_cue(cue_sound_name(cue), tone_key=tone_key)

    def cancel_all(self) -> int:
        """Cancel every pending cue. Returns how many were still pending."""
        cancelled = 0
        for handle in self._handles:
            if handle.active:
                handle.cancel()
                cancelled += 1
        self._handles = []
        return cancelled

    def release(self) -> None:
        """Cancel pending cues and close the audio device."""
        self.cancel_all()
        self._audio.close()
