"""
Audio cues: tone synthesis, clip playback and the timed cue scheduler.
"""

from .output import AudioOutput, PygameAudioOutput, SilentAudioOutput, ToneSpec, DEFAULT_TONES, synthesize_tone
from .cues import (
    CueScheduler,
    DiscreteRandomDelay,
    FixedDelay,
    UniformRandomDelay,
    WhistleDelay,
    build_cue_plan,
    make_whistle_delay,
)

__all__ = [
    "AudioOutput",
    "PygameAudioOutput",
    "SilentAudioOutput",
    "ToneSpec",
    "DEFAULT_TONES",
    "synthesize_tone",
    "CueScheduler",
    "DiscreteRandomDelay",
    "FixedDelay",
    "UniformRandomDelay",
    "WhistleDelay",
    "build_cue_plan",
    "make_whistle_delay",
]
