"""HTTP transport for the listen stream.

The stream only needs a status, headers, a chunk source and an idempotent
close. ``HttpxTransport`` provides those over ``httpx.AsyncClient.stream``;
tests and callers can substitute anything matching :class:`Transport`.
"""

from __future__ import annotations

import contextlib
from typing import AsyncIterator, Mapping, Optional, Protocol

import httpx

from sanity_listen.utils.errors import TransportError
from sanity_listen.utils.logging import LoggerFactory

logger = LoggerFactory.get_logger("listen.transport")

CONNECT_TIMEOUT = 10.0


class TransportResponse(Protocol):
    status_code: int
    headers: Mapping[str, str]

    def aiter_chunks(self) -> AsyncIterator[bytes]:
        ...

    async def aread_text(self) -> str:
        ...

    async def aclose(self) -> None:
        ...


class Transport(Protocol):
    async def open(
        self, url: str, headers: Mapping[str, str], *, timeout: float
    ) -> TransportResponse:
        ...


class HttpxResponse:
    """Adapts an open ``httpx.Response`` stream to :class:`TransportResponse`."""

    def __init__(
        self,
        url: str,
        response: httpx.Response,
        exit_stack: contextlib.AsyncExitStack,
    ) -> None:
        self.url = url
        self._response = response
        self._exit_stack = exit_stack
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> Mapping[str, str]:
        return self._response.headers

    async def aiter_chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as exc:
            raise TransportError(
                "timed out waiting for the next chunk", url=self.url, timeout=True
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"stream read failed: {exc}", url=self.url) from exc

    async def aread_text(self) -> str:
        """Read the rest of the body (error responses are small)."""
        try:
            await self._response.aread()
        except httpx.HTTPError:
            return ""
        return self._response.text

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._exit_stack.aclose()
        logger.debug("Closed listen connection", extra_context={"url": self.url})


class HttpxTransport:
    """Opens streaming GET requests with httpx.

    When ``client`` is given it is reused and left open; otherwise a client is
    created per request and closed together with the response.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    async def open(
        self, url: str, headers: Mapping[str, str], *, timeout: float
    ) -> HttpxResponse:
        exit_stack = contextlib.AsyncExitStack()
        client = self._client
        if client is None:
            client = await exit_stack.enter_async_context(httpx.AsyncClient())

        request_timeout = httpx.Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout))
        try:
            response = await exit_stack.enter_async_context(
                client.stream("GET", url, headers=dict(headers), timeout=request_timeout)
            )
        except httpx.TimeoutException as exc:
            await exit_stack.aclose()
            raise TransportError("timed out connecting", url=url, timeout=True) from exc
        except httpx.HTTPError as exc:
            await exit_stack.aclose()
            raise TransportError(f"connection failed: {exc}", url=url) from exc
        except BaseException:
            await exit_stack.aclose()
            raise

        return HttpxResponse(url, response, exit_stack)
