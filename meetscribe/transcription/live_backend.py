"""Gemini Live streaming transcription over an aiohttp websocket."""

import asyncio
import json
import logging
from typing import AsyncIterator, Optional

import aiohttp

from .base import (
    AbstractStreamingConnection,
    AbstractStreamingTransport,
    LiveSessionSetup,
    TransportError,
)
from ..models.audio import EncodedChunk
from ..models.transcription import ServerMessage

logger = logging.getLogger(__name__)

LIVE_API_URL = ("wss://generativelanguage.googleapis.com/ws/"
                "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent")


def build_setup_message(setup: LiveSessionSetup) -> dict:
    """Build the first frame of a live session."""
    model = setup.model if setup.model.startswith("models/") else f"models/{setup.model}"
    body = {
        "model": model,
        "generationConfig": {
            "responseModalities": list(setup.response_modalities),
        },
        "systemInstruction": {
            "parts": [{"text": setup.system_instruction}],
        },
        "contextWindowCompression": {
            "triggerTokens": setup.trigger_tokens,
            "slidingWindow": {"targetTokens": setup.target_tokens},
        },
        "sessionResumption": (
            {"handle": setup.resumption_handle} if setup.resumption_handle else {}
        ),
    }
    if setup.transcribe_input:
        body["inputAudioTranscription"] = {}
    return {"setup": body}


def build_audio_message(chunk: EncodedChunk) -> dict:
    return {
        "realtimeInput": {
            "audio": {"data": chunk.data, "mimeType": chunk.mime_type},
        }
    }


def parse_server_message(payload: dict) -> ServerMessage:
    """Pick out the parts of a server message the session controller cares about."""
    message = ServerMessage(raw=payload)

    if "setupComplete" in payload:
        message.setup_complete = True

    server_content = payload.get("serverContent") or {}
    input_transcription = server_content.get("inputTranscription") or {}
    if input_transcription.get("text"):
        message.transcript_text = input_transcription["text"]

    resumption = payload.get("sessionResumptionUpdate") or {}
    if resumption.get("newHandle") and resumption.get("resumable", True):
        message.resumption_handle = resumption["newHandle"]

    if "goAway" in payload:
        message.go_away = True
        message.time_left = (payload.get("goAway") or {}).get("timeLeft")

    return message


def decode_frame(msg: aiohttp.WSMessage) -> Optional[dict]:
    """JSON body of a text or binary websocket frame, None for other frames."""
    if msg.type == aiohttp.WSMsgType.TEXT:
        return json.loads(msg.data)
    if msg.type == aiohttp.WSMsgType.BINARY:
        return json.loads(msg.data.decode("utf-8"))
    return None


class LiveConnection(AbstractStreamingConnection):
    """One open websocket to the live API."""

    def __init__(self, http_session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse):
        self._http_session = http_session
        self._ws = ws
        self.close_code = None
        self.close_reason = ""

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send_audio(self, chunk: EncodedChunk) -> None:
        await self._ws.send_json(build_audio_message(chunk))

    async def messages(self) -> AsyncIterator[ServerMessage]:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"Live websocket error: {self._ws.exception()}")
                break
            payload = decode_frame(msg)
            if payload is None:
                continue
            yield parse_server_message(payload)
        self.close_code = self._ws.close_code
        self.close_reason = str(getattr(self._ws, "close_reason", "") or "")
        logger.info(f"Live websocket closed: code={self.close_code} {self.close_reason}")

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()
        if not self._http_session.closed:
            await self._http_session.close()


class GeminiLiveTransport(AbstractStreamingTransport):
    """Opens Gemini Live connections that transcribe the caller's audio."""

    def __init__(self, url: str = LIVE_API_URL, connect_timeout: float = 30.0):
        self.url = url
        self.connect_timeout = connect_timeout

    async def connect(self, api_key: str, setup: LiveSessionSetup) -> LiveConnection:
        http_session = aiohttp.ClientSession()
        try:
            ws = await http_session.ws_connect(
                self.url,
                params={"key": api_key},
                max_msg_size=0,
            )
            await ws.send_json(build_setup_message(setup))
            ack = await ws.receive(timeout=self.connect_timeout)
            payload = decode_frame(ack)
            if payload is None or not parse_server_message(payload).setup_complete:
                await ws.close()
                raise TransportError(f"Live setup was not acknowledged: {ack.type} {ack.data!r}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            await http_session.close()
            raise TransportError(f"Could not open live session: {e}") from e
        except TransportError:
            await http_session.close()
            raise

        resumed = "resumed" if setup.resumption_handle else "new"
        logger.info(f"Live session opened ({resumed}) with model {setup.model}")
        return LiveConnection(http_session, ws)
