"""Client for the Sanity listen API.

Decodes the server-push stream into typed events and, optionally, reduces
mutations into the current version of a document.
"""

from sanity_listen.config import resolve_listen_options
from sanity_listen.documents import (
    DocumentFetcher,
    DocumentState,
    follow_document,
    reconcile,
)
from sanity_listen.listen import (
    Event,
    EventStream,
    FrameDecoder,
    HttpxTransport,
    ListenOptions,
    open_event_stream,
    parse_frame,
)
from sanity_listen.utils.errors import (
    ChannelEventError,
    ConfigurationError,
    FrameParseError,
    ListenError,
    OptionsValidationError,
    ReconcileError,
    TransportError,
)

__all__ = [
    "ChannelEventError",
    "ConfigurationError",
    "DocumentFetcher",
    "DocumentState",
    "Event",
    "EventStream",
    "FrameDecoder",
    "FrameParseError",
    "HttpxTransport",
    "ListenError",
    "ListenOptions",
    "OptionsValidationError",
    "ReconcileError",
    "TransportError",
    "follow_document",
    "open_event_stream",
    "parse_frame",
    "reconcile",
    "resolve_listen_options",
]
