"""
Lazy, cancellable event stream over the listen endpoint.

``EventStream`` pulls one chunk at a time from its transport response, runs
it through :class:`FrameDecoder` and :func:`parse_frame`, and hands out events
in arrival order. Error events end the stream with :class:`ChannelEventError`.
The response is closed exactly once, on whichever exit path is reached first.

Usage:
    async with await open_event_stream("*[_type == 'post']", options) as events:
        async for event in events:
            ...
"""

from __future__ import annotations

from collections import deque
from typing import AsyncIterator, Deque, Optional

from sanity_listen.listen.options import ListenOptions
from sanity_listen.listen.protocol import Event, FrameDecoder, parse_frame
from sanity_listen.listen.transport import HttpxTransport, Transport, TransportResponse
from sanity_listen.utils.errors import ChannelEventError, TransportError
from sanity_listen.utils.logging import ContextKeys, LoggerFactory

logger = LoggerFactory.get_logger("listen.stream")

DEFAULT_TIMEOUT = 60.0


class EventStream:
    """Forward-only async iterator of :class:`Event` owned by a single consumer."""

    def __init__(self, response: TransportResponse, *, url: Optional[str] = None) -> None:
        self.url = url
        self.events_received = 0
        self._response = response
        self._chunks: AsyncIterator[bytes] = response.aiter_chunks().__aiter__()
        self._decoder = FrameDecoder()
        self._pending: Deque[str] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> Event:
        if self._closed:
            raise StopAsyncIteration
        try:
            event = await self._next_event()
        except BaseException:
            await self.aclose()
            raise
        if event is None:
            await self.aclose()
            raise StopAsyncIteration

        if event.is_error:
            await self.aclose()
            logger.warning(
                "Listen channel reported an error event",
                extra_context={ContextKeys.EVENT_KIND: event.kind, "data": event.data},
            )
            raise ChannelEventError(event, operation="listen")

        self.events_received += 1
        return event

    async def _next_event(self) -> Optional[Event]:
        while not self._pending:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                leftover = self._decoder.flush().strip()
                if leftover:
                    logger.debug(
                        "Stream ended with an unterminated frame; dropping it",
                        extra_context={"remainder": leftover[:200]},
                    )
                return None
            self._pending.extend(self._decoder.feed(chunk))
        return parse_frame(self._pending.popleft())

    async def aclose(self) -> None:
        """Close the underlying response; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        try:
            close_chunks = getattr(self._chunks, "aclose", None)
            if close_chunks is not None:
                await close_chunks()
        finally:
            await self._response.aclose()
        logger.debug(
            "Event stream closed",
            extra_context={
                ContextKeys.URL: self.url,
                "events_received": self.events_received,
                "heartbeats": self._decoder.heartbeats,
            },
        )

    async def __aenter__(self) -> "EventStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def open_event_stream(
    query: str,
    options: ListenOptions,
    *,
    transport: Optional[Transport] = None,
    timeout: float = DEFAULT_TIMEOUT,
    extra_params=(),
) -> EventStream:
    """Open a listen subscription for ``query``.

    Raises:
        TransportError: connection failure, timeout or non-2xx status
    """
    transport = transport or HttpxTransport()
    url = options.listen_url(query, extra_params=extra_params)

    logger.info(
        "Opening listen stream",
        extra_context={**options.redacted(), ContextKeys.URL: url.split("?", 1)[0]},
    )
    response = await transport.open(url, options.headers(), timeout=timeout)

    if not 200 <= response.status_code < 300:
        body = await response.aread_text()
        await response.aclose()
        logger.error(
            "Listen endpoint returned an error status",
            extra_context={ContextKeys.HTTP_STATUS: response.status_code, "body": body[:500]},
        )
        raise TransportError(
            f"response error status {response.status_code}",
            url=url,
            http_status=response.status_code,
            operation="open_stream",
        ).with_context(response_body=body[:500])

    return EventStream(response, url=url)
