"""
Outbound transport for signed requests.

The relay only needs "send a signed request, receive status and body", so the
HTTP client sits behind a small interface that tests can replace.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from azsigner.relay.exceptions import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class RelayResponse:
    """Status and body returned by the remote service."""

    status_code: int
    reason_phrase: str = ""
    body: bytes = b""

    @property
    def status(self) -> str:
        """Status line, e.g. "201 Created"."""
        return f"{self.status_code} {self.reason_phrase}".strip()

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(ABC):
    """Sends signed requests to the remote service."""

    @abstractmethod
    async def send(self, request: httpx.Request) -> RelayResponse:
        """
        Send a fully signed request.

        Raises:
            UpstreamError: If the request could not be executed
        """

    async def aclose(self) -> None:
        """Release any held connections."""


class HttpxTransport(Transport):
    """Transport backed by an httpx.AsyncClient."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, request: httpx.Request) -> RelayResponse:
        try:
            response = await self._client.send(request)
            body = await response.aread()
        except httpx.HTTPError as e:
            logger.error(f"Outbound {request.method} {request.url} failed: {e}")
            raise UpstreamError(f"Failed to execute outbound http request: {e}") from e

        logger.info(f"Outbound {request.method} {request.url.host} returned {response.status_code}")
        return RelayResponse(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            body=body,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
