"""HTTP transport.

The protocol layer only needs one capability::

    await transport.send(method, url, headers, body) -> TransportResponse

``HttpxTransport`` provides it with ``httpx.AsyncClient``.  Only
connection-establishment failures are retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

log = logging.getLogger(__name__)

RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


@dataclass(slots=True)
class TransportResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


class Transport(Protocol):
    async def send(
        self, method: str, url: str, headers: dict[str, str], body: bytes
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """``Transport`` backed by ``httpx.AsyncClient``.

    Parameters
    ----------
    timeout : float
        Socket timeout in seconds.
    max_retries : int
        Attempts for connection-level failures.
    client : httpx.AsyncClient, optional
        Pre-built client (tests pass one with ``httpx.ASGITransport``).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.max_retries = max_retries
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    # -- Lifecycle -----------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Internal retry helper -----------------------------------------

    def _get_retrier(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    # -- Send ----------------------------------------------------------

    async def send(
        self, method: str, url: str, headers: dict[str, str], body: bytes
    ) -> TransportResponse:
        async for attempt in self._get_retrier():
            with attempt:
                resp = await self._client.request(method, url, headers=headers, content=body)

        log.debug("http ← %s %s %d (%d bytes)", method, url, resp.status_code, len(resp.content))
        return TransportResponse(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            body=resp.content,
        )
