"""Streaming transcription: live backend, session control and transcript assembly."""

from .base import (
    AbstractStreamingConnection,
    AbstractStreamingTransport,
    LiveSessionSetup,
    TransportError,
)
from .buffer import TranscriptBuffer
from .controller import StreamingSessionController, GAP_MARKER
from .credentials import CredentialClient, CredentialError
from .hallucination import HallucinationFilter, is_hallucination, hallucination_reason
from .live_backend import GeminiLiveTransport
from .post_processing import PostProcessingClient
from .publisher import TranscriptPublisher, TRANSCRIPT_TOPIC

__all__ = [
    'AbstractStreamingConnection',
    'AbstractStreamingTransport',
    'LiveSessionSetup',
    'TransportError',
    'TranscriptBuffer',
    'StreamingSessionController',
    'GAP_MARKER',
    'CredentialClient',
    'CredentialError',
    'HallucinationFilter',
    'is_hallucination',
    'hallucination_reason',
    'GeminiLiveTransport',
    'PostProcessingClient',
    'TranscriptPublisher',
    'TRANSCRIPT_TOPIC',
]
