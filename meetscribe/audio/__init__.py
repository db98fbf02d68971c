"""Audio capture and processing module."""

from .capture import AudioCapture, MicrophoneError
from .audio_pub import AudioPublisher, AUDIO_TOPIC
from .vad import VoiceActivityGate, frame_rms
from .encoder import encode_frame, decode_chunk
from .levels import AudioLevelMeter
from .pipeline import AudioPipeline

__all__ = [
    'AudioCapture',
    'MicrophoneError',
    'AudioPublisher',
    'AUDIO_TOPIC',
    'VoiceActivityGate',
    'frame_rms',
    'encode_frame',
    'decode_chunk',
    'AudioLevelMeter',
    'AudioPipeline',
]
