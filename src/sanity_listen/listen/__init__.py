"""Listen endpoint client: wire protocol, options, transport and event stream."""

from sanity_listen.listen.options import (
    DEFAULT_API_VERSION,
    ListenOptions,
    query_to_query_params,
)
from sanity_listen.listen.protocol import (
    EVENT_CHANNEL_ERROR,
    EVENT_DISCONNECT,
    EVENT_MUTATION,
    EVENT_WELCOME,
    Event,
    FrameDecoder,
    decode_frames,
    is_heartbeat,
    parse_frame,
)
from sanity_listen.listen.stream import EventStream, open_event_stream
from sanity_listen.listen.transport import HttpxTransport, Transport, TransportResponse

__all__ = [
    "DEFAULT_API_VERSION",
    "EVENT_CHANNEL_ERROR",
    "EVENT_DISCONNECT",
    "EVENT_MUTATION",
    "EVENT_WELCOME",
    "Event",
    "EventStream",
    "FrameDecoder",
    "HttpxTransport",
    "ListenOptions",
    "Transport",
    "TransportResponse",
    "decode_frames",
    "is_heartbeat",
    "open_event_stream",
    "parse_frame",
    "query_to_query_params",
]
