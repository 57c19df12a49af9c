"""
HTTP client for forwarding capture requests to a remote recognition backend.

Used when this service runs as a fronting gateway in front of the process
that owns the descriptor registry.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class UpstreamResponse:
    """Status code and decoded body relayed from the recognition backend."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class RecognitionClient:
    """Async client for the recognition backend's register/recognize endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Root URL of the recognition backend
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _post(self, path: str, payload: Dict[str, Any]) -> UpstreamResponse:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling recognition backend {self.base_url}{path}: {e}")
            raise UpstreamUnavailableError(
                f"Recognition backend timed out after {self.timeout}s",
                {"upstream": self.base_url}
            )
        except httpx.TransportError as e:
            logger.error(f"Recognition backend unreachable at {self.base_url}{path}: {e}")
            raise UpstreamUnavailableError(
                "Face recognition server is not running. Please start the server.",
                {"upstream": self.base_url}
            )

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text or response.reason_phrase}

        if response.status_code >= 400:
            logger.warning(f"Recognition backend returned {response.status_code} for {path}: {body}")
        return UpstreamResponse(response.status_code, body)

    async def register(self, payload: Dict[str, Any]) -> UpstreamResponse:
        return await self._post("/api/register", payload)

    async def recognize(self, payload: Dict[str, Any]) -> UpstreamResponse:
        return await self._post("/api/recognize", payload)
