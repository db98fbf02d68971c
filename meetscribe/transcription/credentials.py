"""Client for the short-lived transcription credential endpoint."""

import asyncio
import logging

import aiohttp

logger = logging.getLogger(__name__)


class CredentialError(RuntimeError):
    """The credential endpoint was unreachable, refused us, or answered nonsense."""


class CredentialClient:
    """Fetches the live transcription key on behalf of the signed-in user."""

    def __init__(self, base_url: str, auth_token: str, path: str = "/api/gemini-key",
                 timeout: float = 30.0):
        """Initialize credential client.

        Args:
            base_url: Application backend base URL
            auth_token: Bearer token of the signed-in user
            path: Credential endpoint path
            timeout: Total request timeout in seconds
        """
        self.url = f"{base_url.rstrip('/')}{path}"
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch_key(self) -> str:
        """GET the credential and return its `key`.

        Raises:
            CredentialError: On non-2xx, network failure or a missing key
        """
        headers = {"Authorization": f"Bearer {self.auth_token}"}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.url, headers=headers) as response:
                    if not 200 <= response.status < 300:
                        error_text = await response.text()
                        raise CredentialError(
                            f"Credential endpoint error: {response.status} - {error_text}")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CredentialError(f"Credential endpoint unreachable: {e}") from e

        key = result.get("key") if isinstance(result, dict) else None
        if not key:
            raise CredentialError("Credential endpoint returned no key")
        logger.info("Fetched live transcription credential")
        return key
