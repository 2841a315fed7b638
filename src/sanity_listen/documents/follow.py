"""Follow one document: listen, fetch the starting point, then reconcile."""

from __future__ import annotations

from dataclasses import replace
from typing import AsyncIterable, AsyncIterator, List, Optional

from sanity_listen.documents.fetcher import DocumentFetcher
from sanity_listen.documents.reconciler import (
    Document,
    DocumentState,
    SnapshotGate,
    draft_id,
    published_id,
    reconcile,
)
from sanity_listen.listen.options import ListenOptions
from sanity_listen.listen.protocol import EVENT_WELCOME, Event
from sanity_listen.listen.stream import DEFAULT_TIMEOUT, open_event_stream
from sanity_listen.listen.transport import Transport
from sanity_listen.utils.logging import ContextKeys, LoggerFactory

logger = LoggerFactory.get_logger("documents.follow")

FOLLOW_QUERY = "*[_id in [$id, $draftId]]"
FOLLOW_PARAMS = (("includeResult", True), ("events", ["welcome", "mutation"]))


async def follow_document(
    document_id: str,
    options: ListenOptions,
    *,
    transport: Optional[Transport] = None,
    fetcher: Optional[DocumentFetcher] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> AsyncIterator[Optional[Document]]:
    """Yield the current document, then every change to it.

    The subscription is opened before the snapshot is fetched so no mutation
    can fall between the two; the first value is yielded once ``welcome``
    arrives, even when it is ``None``. Mutations received before the fetch
    completes are replayed through a :class:`SnapshotGate`, so ones the
    snapshot already contains never roll the view back. Wrap the generator in
    ``contextlib.aclosing`` to close the connection as soon as you stop.
    """
    doc_id = published_id(document_id)
    listen_options = replace(
        options,
        variables={**options.variables, "id": doc_id, "draftId": draft_id(doc_id)},
    )
    stream = await open_event_stream(
        FOLLOW_QUERY,
        listen_options,
        transport=transport,
        timeout=timeout,
        extra_params=FOLLOW_PARAMS,
    )
    async with stream:
        early: List[Event] = []
        async for event in stream:
            if event.kind == EVENT_WELCOME:
                break
            early.append(event)
        else:
            logger.warning(
                "Listen stream ended before welcome",
                extra_context={ContextKeys.DOCUMENT_ID: doc_id},
            )
            return

        fetcher = fetcher or DocumentFetcher(options)
        with logger.operation_context(
            "fetch_initial_document", **{ContextKeys.DOCUMENT_ID: doc_id}
        ) as op_logger:
            published, draft = await fetcher.fetch_pair(doc_id)
            initial = DocumentState(doc_id, published, draft).effective
            op_logger.info(
                "Following document",
                extra_context={"present": initial is not None, "buffered_events": len(early)},
            )
        yield initial

        gate = SnapshotGate(doc_id, published, draft)
        async for snapshot in reconcile(_replay(early, stream, gate), doc_id, published, draft):
            yield snapshot


async def _replay(
    first: List[Event], rest: AsyncIterable[Event], gate: SnapshotGate
) -> AsyncIterator[Event]:
    for event in first:
        if gate.admits(event):
            yield event
    async for event in rest:
        if gate.admits(event):
            yield event
