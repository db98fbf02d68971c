"""Summary, insights and diarization requests made after a recording finishes."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..models.meeting import MeetingContext, PostProcessingResult

logger = logging.getLogger(__name__)


class PostProcessingClient:
    """Calls the backend's generation endpoints; every call has its own fallback."""

    def __init__(self, base_url: str, auth_token: str, timeout: float = 120.0):
        """Initialize post-processing client.

        Args:
            base_url: Application backend base URL
            auth_token: Bearer token of the signed-in user
            timeout: Total timeout per request in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _build_payload(self, meeting: MeetingContext, transcription_text: str) -> Dict[str, Any]:
        return {
            "meetingTitle": meeting.display_title,
            "meetingType": meeting.display_type,
            "attendeeNames": meeting.attendee_names,
            "transcriptionText": transcription_text,
        }

    async def _post(self, session: aiohttp.ClientSession, path: str,
                    payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """POST and return the JSON body, or None on any failure."""
        headers = {
            "Authorization": f"Bearer {self.auth_token}",
            "Content-Type": "application/json"
        }
        try:
            async with session.post(f"{self.base_url}{path}", headers=headers, json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Post-processing {path} failed: {response.status} - {error_text}")
                    return None
                result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Post-processing {path} failed: {e}")
            return None
        return result if isinstance(result, dict) else None

    async def summarize(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> str:
        result = await self._post(session, "/api/summary", payload)
        return str(result.get("summary") or "") if result else ""

    async def extract_insights(self, session: aiohttp.ClientSession,
                               payload: Dict[str, Any]) -> Dict[str, List[str]]:
        result = await self._post(session, "/api/insights", payload)
        insights = result.get("insights") if result else None
        if not isinstance(insights, dict):
            return {}
        return {str(category): [str(item) for item in items]
                for category, items in insights.items() if isinstance(items, list)}

    async def diarize(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> str:
        result = await self._post(session, "/api/diarize", payload)
        diarized = result.get("diarizedTranscription") if result else None
        return str(diarized) if diarized else payload["transcriptionText"]

    async def process(self, meeting: MeetingContext, transcription_text: str) -> PostProcessingResult:
        """Run all three requests concurrently."""
        payload = self._build_payload(meeting, transcription_text)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            summary, insights, diarized = await asyncio.gather(
                self.summarize(session, payload),
                self.extract_insights(session, payload),
                self.diarize(session, payload),
            )
        logger.info(f"Post-processing complete: summary={bool(summary)}, "
                    f"insight categories={len(insights)}")
        return PostProcessingResult(
            summary=summary,
            insights=insights,
            diarized_transcription=diarized,
        )
