"""
Tests for cue planning, whistle delays, scheduling and tone synthesis.
"""

import base64
import random

import numpy as np
import pytest

from audio.cues import (
    CueScheduler,
    DiscreteRandomDelay,
    FixedDelay,
    UniformRandomDelay,
    build_cue_plan,
    cue_sound_name,
    make_whistle_delay,
)
from audio.output import DEFAULT_TONES, ToneSpec, decode_clip_source, synthesize_tone
from drill.profiles import FACEOFF, SHOOTING
from exceptions import ConfigurationError
from models.config import FACEOFF_TIMING, SHOOTING_TIMING, TimingConfig
from models.drill import AudioCueEvent, CueType


class TestCuePlan:
    def test_faceoff_plan_with_defaults(self):
        plan = build_cue_plan(FACEOFF, FACEOFF_TIMING, FixedDelay(2000))

        assert [c.type for c in plan] == [CueType.COUNTDOWN] * 5 + [CueType.DOWN, CueType.SET, CueType.WHISTLE]
        assert [c.value for c in plan[:5]] == [5, 4, 3, 2, 1]
        assert [c.offset_ms for c in plan] == [1000, 2000, 3000, 4000, 5000, 6000, 6750, 8750]

    def test_shooting_plan_calls_a_target(self):
        plan = build_cue_plan(SHOOTING, SHOOTING_TIMING, FixedDelay(2000), random.Random(3))

        assert [c.type for c in plan] == [CueType.COUNTDOWN] * 3 + [CueType.SET, CueType.TARGET, CueType.WHISTLE]
        assert [c.offset_ms for c in plan] == [1000, 2000, 3000, 4000, 5000, 7000]
        assert 0 <= plan[4].value <= 8

    def test_offsets_are_non_decreasing(self):
        rng = random.Random(11)
        timing = TimingConfig(whistle_delay_type="random_range", whistle_range=(1.0, 3.5))
        for _ in range(20):
            plan = build_cue_plan(FACEOFF, timing, make_whistle_delay(timing, rng), rng)
            offsets = [c.offset_ms for c in plan]
            assert offsets == sorted(offsets)
            assert plan[-1].type == CueType.WHISTLE

    def test_pre_start_delay_shifts_everything(self):
        timing = TimingConfig(pre_start_delay=0.0, command_delay=0.5)
        plan = build_cue_plan(FACEOFF, timing, FixedDelay(1000))
        assert plan[0].offset_ms == 0
        assert plan[-1].offset_ms == 4000 + 1000 + 500 + 1000

    def test_sound_names(self):
        assert cue_sound_name(AudioCueEvent(CueType.WHISTLE, 0)) == "whistle"
        assert cue_sound_name(AudioCueEvent(CueType.TARGET, 0, 0)) == "target_top_left"
        assert cue_sound_name(AudioCueEvent(CueType.TARGET, 0, 8)) == "target_bottom_right"


class TestWhistleDelay:
    def test_fixed(self):
        assert FixedDelay(2000).draw_ms() == 2000
        with pytest.raises(ConfigurationError):
            FixedDelay(0)

    def test_discrete_draws_only_candidates(self):
        delay = DiscreteRandomDelay([1000, 1500, 2000, 3000, 3500], random.Random(1))
        draws = {delay.draw_ms() for _ in range(200)}
        assert draws <= {1000, 1500, 2000, 3000, 3500}
        assert len(draws) > 1

    def test_uniform_stays_in_range(self):
        delay = UniformRandomDelay(1000, 3500, random.Random(2))
        for _ in range(200):
            assert 1000 <= delay.draw_ms() <= 3500

    def test_invalid_ranges(self):
        with pytest.raises(ConfigurationError):
            DiscreteRandomDelay([])
        with pytest.raises(ConfigurationError):
            UniformRandomDelay(3000, 1000)

    def test_factory(self):
        assert isinstance(make_whistle_delay(TimingConfig()), FixedDelay)
        assert isinstance(make_whistle_delay(TimingConfig(whistle_delay_type="random")), DiscreteRandomDelay)
        assert isinstance(make_whistle_delay(TimingConfig(whistle_delay_type="random_range")), UniformRandomDelay)
        with pytest.raises(ConfigurationError):
            make_whistle_delay(TimingConfig(whistle_delay_type="sometimes"))


class TestCueScheduler:
    def _plan(self):
        return build_cue_plan(FACEOFF, FACEOFF_TIMING, FixedDelay(2000))

    def test_cues_fire_in_order(self, timers, audio):
        scheduler = CueScheduler(timers, audio)
        scheduler.prepare()
        fired = []

        def on_cue(cue):
            fired.append((timers.now(), cue.type))
            scheduler.play(cue)

        scheduler.schedule(self._plan(), on_cue)
        timers.advance(10.0)

        assert [t for t, _ in fired] == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 6.75, 8.75]
        assert audio.played == ["countdown"] * 5 + ["down", "set", "whistle"]
        assert audio.tones[-1] == DEFAULT_TONES["whistle"]
        assert not scheduler.pending

    def test_cancel_all_stops_pending_cues(self, timers, audio):
        scheduler = CueScheduler(timers, audio)
        fired = []
        scheduler.schedule(self._plan(), fired.append)
        timers.advance(2.5)

        assert scheduler.cancel_all() == 6
        timers.advance(30.0)
        assert len(fired) == 2
        assert not scheduler.pending

    def test_schedule_while_pending_raises(self, timers, audio):
        scheduler = CueScheduler(timers, audio)
        scheduler.schedule(self._plan(), lambda cue: None)
        with pytest.raises(RuntimeError):
            scheduler.schedule(self._plan(), lambda cue: None)

    def test_release_closes_audio(self, timers, audio):
        scheduler = CueScheduler(timers, audio)
        scheduler.prepare()
        scheduler.schedule(self._plan(), lambda cue: None)
        scheduler.release()
        assert not audio.is_open
        assert timers.pending() == []

    def test_custom_clip_replaces_tone(self, timers):
        from conftest import RecordingAudioOutput

        audio = RecordingAudioOutput(clips={"whistle"})
        scheduler = CueScheduler(timers, audio)
        scheduler.play(AudioCueEvent(CueType.WHISTLE, 0))
        assert audio.tones == []
        scheduler.play(AudioCueEvent(CueType.TARGET, 0, 4))
        assert audio.played[-1] == "target_mid_center"
        assert audio.tones == [DEFAULT_TONES["target"]]


class TestToneSynthesis:
    def test_plain_tone(self):
        samples = synthesize_tone(ToneSpec(frequency=440.0, duration=0.1), sample_rate=8000)
        assert samples.dtype == np.int16
        assert len(samples) == 800
        assert np.abs(samples).max() <= int(0.3 * 32767) + 1

    def test_whistle_decays(self):
        samples = synthesize_tone(DEFAULT_TONES["whistle"], sample_rate=44100).astype(np.float64)
        head = np.abs(samples[:2000]).max()
        tail = np.abs(samples[-2000:]).max()
        assert tail < head / 10


class TestClipSources:
    def test_data_url(self):
        payload = base64.b64encode(b"RIFFdata").decode()
        assert decode_clip_source(f"data:audio/wav;base64,{payload}") == b"RIFFdata"

    def test_bad_base64(self):
        with pytest.raises(ValueError):
            decode_clip_source("data:audio/wav;base64,@@@")

    def test_file(self, tmp_path):
        clip = tmp_path / "whistle.wav"
        clip.write_bytes(b"abc")
        assert decode_clip_source(str(clip)) == b"abc"

    def test_missing_file(self):
        with pytest.raises(ValueError, match="not found"):
            decode_clip_source("/nonexistent/whistle.wav")
