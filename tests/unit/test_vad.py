"""Unit tests for the voice activity gate."""

import numpy as np
import pytest

from meetscribe.audio.vad import VoiceActivityGate, frame_rms


@pytest.mark.unit
class TestFrameRms:

    def test_silence_is_zero(self):
        assert frame_rms(np.zeros(4096, dtype=np.float32)) == 0.0

    def test_constant_signal(self):
        assert frame_rms(np.full(100, 0.5, dtype=np.float32)) == pytest.approx(0.5)

    def test_sine_rms(self, make_frame):
        frame = make_frame(amplitude=0.1)
        assert frame_rms(frame.samples) == pytest.approx(0.1 / np.sqrt(2), rel=1e-2)

    def test_empty_frame(self):
        assert frame_rms(np.array([], dtype=np.float32)) == 0.0


@pytest.mark.unit
class TestVoiceActivityGate:

    def test_first_silent_frame_is_dropped(self, make_frame):
        gate = VoiceActivityGate()
        assert gate.admit(make_frame(amplitude=0.0).samples, timestamp=0.0) is False
        assert gate.frames_dropped == 1

    def test_loud_frame_is_admitted_and_marks_speech(self, make_frame):
        gate = VoiceActivityGate()
        assert gate.admit(make_frame(amplitude=0.1).samples, timestamp=10.0) is True
        assert gate.last_speech_time == 10.0

    def test_quiet_frame_within_hangover_is_admitted(self, make_frame):
        gate = VoiceActivityGate()
        gate.admit(make_frame(amplitude=0.1).samples, timestamp=10.0)

        assert gate.admit(make_frame(amplitude=0.001).samples, timestamp=10.5) is True
        # Quiet frames do not extend the window
        assert gate.last_speech_time == 10.0

    def test_quiet_frame_after_hangover_is_dropped(self, make_frame):
        gate = VoiceActivityGate()
        gate.admit(make_frame(amplitude=0.1).samples, timestamp=10.0)

        assert gate.admit(make_frame(amplitude=0.001).samples, timestamp=11.2) is False

    def test_threshold_is_exclusive(self):
        gate = VoiceActivityGate(rms_threshold=0.5)
        assert gate.admit(np.full(10, 0.5, dtype=np.float32), timestamp=0.0) is False
        assert gate.admit(np.full(10, 0.51, dtype=np.float32), timestamp=0.0) is True

    def test_configurable_constants(self, make_frame):
        gate = VoiceActivityGate(rms_threshold=0.2, hangover_ms=200)
        assert gate.admit(make_frame(amplitude=0.1).samples, timestamp=0.0) is False

        gate.admit(make_frame(amplitude=0.5).samples, timestamp=1.0)
        assert gate.admit(make_frame(amplitude=0.0).samples, timestamp=1.1) is True
        assert gate.admit(make_frame(amplitude=0.0).samples, timestamp=1.3) is False

    def test_reset(self, make_frame):
        gate = VoiceActivityGate()
        gate.admit(make_frame(amplitude=0.1).samples, timestamp=1.0)
        gate.reset()

        assert gate.last_speech_time is None
        assert gate.admit(make_frame(amplitude=0.0).samples, timestamp=1.1) is False
