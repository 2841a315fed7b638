"""Current-document view built on top of the listen stream."""

from sanity_listen.documents.fetcher import DocumentFetcher
from sanity_listen.documents.follow import follow_document
from sanity_listen.documents.reconciler import (
    DocumentState,
    SnapshotGate,
    apply_event,
    draft_id,
    is_draft_id,
    published_id,
    reconcile,
    reconcile_all,
)

__all__ = [
    "DocumentFetcher",
    "DocumentState",
    "SnapshotGate",
    "apply_event",
    "draft_id",
    "follow_document",
    "is_draft_id",
    "published_id",
    "reconcile",
    "reconcile_all",
]
