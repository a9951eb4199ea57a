"""
Audio output devices.

Cues are either a custom clip (file path or base64 data URL) or a
synthesised tone. A clip that cannot be decoded falls back to the tone for
the same cue.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from exceptions import AcquisitionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToneSpec:
    """
    A synthesised sine tone.

    Attributes:
        frequency: Start frequency in Hz.
        duration: Length in seconds.
        end_frequency: If set, frequency ramps linearly to this value over sweep_duration.
        sweep_duration: Ramp length in seconds (defaults to duration).
        decay: Exponential fade to near-silence over the tone.
        gain: Peak amplitude, 0..1.
    """
    frequency: float
    duration: float
    end_frequency: Optional[float] = None
    sweep_duration: Optional[float] = None
    decay: bool = False
    gain: float = 0.3


DEFAULT_TONES: Dict[str, ToneSpec] = {
    "countdown": ToneSpec(frequency=880.0, duration=0.1),
    "down": ToneSpec(frequency=440.0, duration=0.2),
    "set": ToneSpec(frequency=550.0, duration=0.2),
    "target": ToneSpec(frequency=660.0, duration=0.15),
    "whistle": ToneSpec(frequency=3000.0, duration=0.3, end_frequency=1500.0, sweep_duration=0.15, decay=True),
}


def synthesize_tone(spec: ToneSpec, sample_rate: int = 44100) -> np.ndarray:
    """Render a ToneSpec to mono int16 samples."""
    n = max(1, int(round(spec.duration * sample_rate)))
    t = np.arange(n, dtype=np.float64) / sample_rate

    if spec.end_frequency is None:
        phase = 2.0 * np.pi * spec.frequency * t
    else:
        sweep = spec.sweep_duration or spec.duration
        slope = (spec.end_frequency - spec.frequency) / sweep
        in_sweep = t < sweep
        # Integrated instantaneous frequency: ramp, then hold at end_frequency
        phase_sweep = 2.0 * np.pi * (spec.frequency * t + 0.5 * slope * t * t)
        phase_at_end = 2.0 * np.pi * (spec.frequency * sweep + 0.5 * slope * sweep * sweep)
        phase_hold = phase_at_end + 2.0 * np.pi * spec.end_frequency * (t - sweep)
        phase = np.where(in_sweep, phase_sweep, phase_hold)

    envelope = np.full(n, spec.gain, dtype=np.float64)
    if spec.decay:
        # 0.3 -> 0.001 over the tone, matching an exponential gain ramp
        envelope = spec.gain * np.power(0.001 / spec.gain, t / spec.duration)

    samples = np.sin(phase) * envelope
    return (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)


def decode_clip_source(source: str) -> bytes:
    """
    Load clip bytes from a data URL ("data:audio/wav;base64,...") or a file path.

    Raises:
        ValueError: If the source cannot be read or decoded.
    """
    if source.startswith("data:"):
        try:
            _, payload = source.split(",", 1)
            return base64.b64decode(payload, validate=True)
        except (ValueError, binascii.Error) as e:
            raise ValueError(f"Invalid base64 clip data: {e}") from e
    if not os.path.exists(source):
        raise ValueError(f"Clip file not found: {source}")
    with open(source, "rb") as f:
        return f.read()


class AudioOutput(ABC):
    """Audio device interface used by the cue scheduler."""

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the device.

        Raises:
            AcquisitionError: If no output device can be created.
        """

    @abstractmethod
    def play_tone(self, spec: ToneSpec) -> None:
        pass

    @abstractmethod
    def play_clip(self, name: str) -> bool:
        """Play the custom clip for name. Returns False if there is none or it failed."""

    @abstractmethod
    def resume(self) -> None:
        """Bring a suspended device back before playback."""

    @abstractmethod
    def close(self) -> None:
        pass

    def play_cue(self, name: str, tone_key: Optional[str] = None) -> None:
        """Play the custom clip for name, falling back to the default tone."""
        self.resume()
        if self.play_clip(name):
            return
        spec = DEFAULT_TONES.get(tone_key or name)
        if spec is not None:
            self.play_tone(spec)


class PygameAudioOutput(AudioOutput):
    """
    pygame.mixer based output.

    Example:
        audio = PygameAudioOutput(clips={"whistle": "sounds/whistle.wav"})
        audio.open()
        audio.play_cue("whistle")
    """

    def __init__(self, clips: Optional[Dict[str, str]] = None, sample_rate: int = 44100, volume: float = 1.0):
        self._clip_sources = dict(clips or {})
        self._sample_rate = sample_rate
        self._volume = volume
        self._clips = {}
        self._tone_cache = {}
        self._open = False
        self._pygame = None

    def open(self) -> None:
        if self._open:
            return
        import pygame  # type: ignore

        self._pygame = pygame

        try:
            pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1)
        except pygame.error as e:
            logger.error(f"Audio device unavailable: {e}")
            raise AcquisitionError("AUDIO ARCHITECTURE FAILURE.", device="audio") from e

        init = pygame.mixer.get_init()
        if init is not None:
            self._sample_rate = init[0]
        self._open = True
        self._load_clips()
        logger.info(f"Audio output opened: rate={self._sample_rate}, clips={sorted(self._clips)}")

    def _load_clips(self) -> None:
        pygame = self._pygame
        for name, source in self._clip_sources.items():
            try:
                data = decode_clip_source(source)
                sound = pygame.mixer.Sound(file=io.BytesIO(data))
                sound.set_volume(self._volume)
                self._clips[name] = sound
            except (ValueError, pygame.error) as e:
                logger.warning(f"Error decoding custom sound '{name}', falling back to tone: {e}")

    def _channels(self) -> int:
        init = self._pygame.mixer.get_init()
        return init[2] if init else 1

    def play_tone(self, spec: ToneSpec) -> None:
        if not self._open:
            return
        sound = self._tone_cache.get(spec)
        if sound is None:
            samples = synthesize_tone(spec, self._sample_rate)
            channels = self._channels()
            if channels > 1:
                samples = np.repeat(samples[:, None], channels, axis=1)
            sound = self._pygame.mixer.Sound(buffer=np.ascontiguousarray(samples).tobytes())
            sound.set_volume(self._volume)
            self._tone_cache[spec] = sound
        sound.play()

    def play_clip(self, name: str) -> bool:
        sound = self._clips.get(name)
        if sound is None or not self._open:
            return False
        sound.play()
        return True

    def resume(self) -> None:
        if not self._open:
            return
        if self._pygame.mixer.get_init() is None:
            logger.info("Audio mixer suspended, reinitialising")
            self._open = False
            self._clips.clear()
            self._tone_cache.clear()
            self.open()
            return
        self._pygame.mixer.unpause()

    def close(self) -> None:
        if not self._open:
            return
        self._clips.clear()
        self._tone_cache.clear()
        self._pygame.mixer.quit()
        self._open = False
        logger.info("Audio output closed")


class SilentAudioOutput(AudioOutput):
    """No-op output for headless runs (audio.enabled: false)."""

    def open(self) -> None:
        logger.info("Audio disabled; cues will be silent")

    def play_tone(self, spec: ToneSpec) -> None:
        pass

    def play_clip(self, name: str) -> bool:
        return False

    def resume(self) -> None:
        pass

    def close(self) -> None:
        pass
