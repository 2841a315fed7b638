"""
Current-document reconciliation over mutation events.

A document ``D`` exists as two records: the published ``D`` and the working
copy ``drafts.D``. Users should see the draft when one exists, else the
published document, else nothing. ``reconcile`` folds mutation events into
that view and yields a new snapshot only when it actually changes.

Publishing deletes the draft and writes the published record as two separate
mutations in no guaranteed order, so a transient ``None`` between them is a
real emission, not noise.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, List, Optional

from sanity_listen.listen.protocol import EVENT_MUTATION, Event
from sanity_listen.utils.errors import ReconcileError
from sanity_listen.utils.logging import ContextKeys, LoggerFactory

logger = LoggerFactory.get_logger("documents.reconciler")

DRAFTS_PREFIX = "drafts."
LISTENER_PREFIX = "_.listeners."

Document = Dict[str, Any]


def draft_id(document_id: str) -> str:
    return document_id if is_draft_id(document_id) else f"{DRAFTS_PREFIX}{document_id}"


def published_id(document_id: str) -> str:
    return document_id[len(DRAFTS_PREFIX):] if is_draft_id(document_id) else document_id


def is_draft_id(document_id: str) -> bool:
    return document_id.startswith(DRAFTS_PREFIX)


@dataclass(frozen=True)
class DocumentState:
    """Published/draft pair for one document id."""

    document_id: str
    published: Optional[Document] = None
    draft: Optional[Document] = None

    @property
    def effective(self) -> Optional[Document]:
        return self.draft if self.draft is not None else self.published


def apply_event(state: DocumentState, event: Event) -> DocumentState:
    """Return the state after ``event``.

    Raises:
        ReconcileError: the mutation cannot be attributed to the document or its draft
    """
    if event.kind != EVENT_MUTATION:
        return state

    payload = event.data
    if not isinstance(payload, dict) or not isinstance(payload.get("documentId"), str):
        raise ReconcileError(
            "mutation event without a documentId", event=event, document_id=state.document_id
        )

    mutated_id = payload["documentId"]
    result = payload.get("result")
    doc_id = state.document_id
    drafts_id = draft_id(doc_id)

    if mutated_id.startswith(LISTENER_PREFIX):
        return state
    if mutated_id == doc_id and result is not None and _result_id(result) == doc_id:
        return replace(state, published=result)
    if mutated_id == doc_id and result is None:
        return replace(state, published=None)
    if mutated_id == drafts_id and result is not None and _result_id(result) == drafts_id:
        return replace(state, draft=result)
    if mutated_id == drafts_id and result is None:
        return replace(state, draft=None)

    raise ReconcileError(
        f"unexpected mutation for {mutated_id!r} (result id {_result_id(result)!r})",
        event=event,
        document_id=doc_id,
    ).with_context(mutated_id=mutated_id)


def _result_id(result: Any) -> Optional[str]:
    return result.get("_id") if isinstance(result, dict) else None


def _revision(document: Any) -> Optional[str]:
    return document.get("_rev") if isinstance(document, dict) else None


class SnapshotGate:
    """Drops mutations that a fetched snapshot already reflects.

    Mutations queued on the stream while the snapshot was being fetched may
    be older than it. For each record fetched with a ``_rev``, mutations are
    dropped until one produced that revision (``resultRev``) or was applied on
    top of it (``previousRev``); everything after passes. Records fetched
    without a revision, and mutations carrying no revision at all, pass
    unchanged.
    """

    def __init__(
        self,
        document_id: str,
        published: Optional[Document] = None,
        draft: Optional[Document] = None,
    ) -> None:
        doc_id = published_id(document_id)
        self.dropped = 0
        self._pending: Dict[str, str] = {
            record_id: rev
            for record_id, rev in (
                (doc_id, _revision(published)),
                (draft_id(doc_id), _revision(draft)),
            )
            if rev is not None
        }

    @property
    def synced(self) -> bool:
        return not self._pending

    def admits(self, event: Event) -> bool:
        """Return ``False`` if ``event`` is already part of the snapshot."""
        if self.synced or event.kind != EVENT_MUTATION or not isinstance(event.data, dict):
            return True
        record_id = event.data.get("documentId")
        if not isinstance(record_id, str) or record_id not in self._pending:
            return True

        snapshot_rev = self._pending[record_id]
        result_rev = event.data.get("resultRev") or _revision(event.data.get("result"))
        previous_rev = event.data.get("previousRev")

        if result_rev == snapshot_rev:
            del self._pending[record_id]
            admitted = False
        elif previous_rev == snapshot_rev or (result_rev is None and previous_rev is None):
            del self._pending[record_id]
            admitted = True
        else:
            admitted = False

        if not admitted:
            self.dropped += 1
            logger.debug(
                "Dropping mutation already reflected in snapshot",
                extra_context={
                    ContextKeys.DOCUMENT_ID: record_id,
                    ContextKeys.EVENT_ID: event.id,
                    "snapshot_rev": snapshot_rev,
                    "result_rev": result_rev,
                },
            )
        return admitted


async def reconcile(
    events: AsyncIterable[Event],
    document_id: str,
    initial_doc: Optional[Document] = None,
    initial_draft: Optional[Document] = None,
) -> AsyncIterator[Optional[Document]]:
    """Yield the effective document each time it changes.

    ``None`` is yielded (not skipped) when the document stops existing.
    """
    state = DocumentState(published_id(document_id), initial_doc, initial_draft)
    current = state.effective
    async for event in events:
        state = apply_event(state, event)
        effective = state.effective
        if effective != current:
            current = effective
            logger.debug(
                "Effective document changed",
                extra_context={
                    ContextKeys.DOCUMENT_ID: state.document_id,
                    ContextKeys.EVENT_ID: event.id,
                    "present": effective is not None,
                    "from_draft": state.draft is not None,
                },
            )
            yield effective


def reconcile_all(
    events: Iterable[Event],
    document_id: str,
    initial_doc: Optional[Document] = None,
    initial_draft: Optional[Document] = None,
) -> List[Optional[Document]]:
    """Synchronous form of :func:`reconcile` for events already in hand."""
    state = DocumentState(published_id(document_id), initial_doc, initial_draft)
    current = state.effective
    emitted: List[Optional[Document]] = []
    for event in events:
        state = apply_event(state, event)
        if state.effective != current:
            current = state.effective
            emitted.append(current)
    return emitted
