"""Listen endpoint wire protocol.

Frames are ``\\n\\n``-separated records of ``key: value`` lines (``event``,
``id``, ``data``). A frame whose body is a single ``:`` is a heartbeat and
carries no event. ``data`` values are JSON text.
"""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from sanity_listen.utils.errors import FrameParseError

FRAME_SEPARATOR = "\n\n"
HEARTBEAT = ":"
FIELD_SEPARATOR = ": "

EVENT_WELCOME = "welcome"
EVENT_MUTATION = "mutation"
EVENT_CHANNEL_ERROR = "channelError"
EVENT_DISCONNECT = "disconnect"
ERROR_EVENT_KINDS = frozenset({EVENT_CHANNEL_ERROR, EVENT_DISCONNECT})

Chunk = Union[str, bytes]


@dataclass(frozen=True)
class Event:
    """One message from the listen stream."""

    kind: Optional[str]
    id: Optional[str] = None
    data: Optional[Any] = None

    @property
    def is_error(self) -> bool:
        return self.kind in ERROR_EVENT_KINDS


def decode_frames(buffer: str, chunk: str) -> Tuple[List[str], str]:
    """Append ``chunk`` to ``buffer`` and split off every complete frame.

    Returns the complete frames in arrival order and the new remainder.
    """
    pieces = (buffer + chunk).split(FRAME_SEPARATOR)
    return pieces[:-1], pieces[-1]


def is_heartbeat(frame: str) -> bool:
    return frame.strip() == HEARTBEAT


class FrameDecoder:
    """Reassembles arbitrarily fragmented chunks into complete frames.

    Heartbeat and empty frames are dropped here so they never reach
    :func:`parse_frame`. Bytes that are not valid text in ``encoding`` raise
    :class:`FrameParseError`.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.remainder = ""
        self.heartbeats = 0
        self._text_decoder = codecs.getincrementaldecoder(encoding)(errors="strict")

    def feed(self, chunk: Chunk) -> List[str]:
        """Consume one chunk and return the frames it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decode(chunk)
        frames, self.remainder = decode_frames(self.remainder, chunk)
        return self._filter(frames)

    def flush(self) -> str:
        """Return and clear whatever is left once the source is exhausted."""
        pending = self.remainder + self._decode(b"", final=True)
        self.remainder = ""
        return pending

    def _decode(self, chunk: bytes, final: bool = False) -> str:
        try:
            return self._text_decoder.decode(chunk, final=final)
        except UnicodeDecodeError as exc:
            raw = chunk.decode("latin-1")
            raise FrameParseError(
                f"invalid {exc.encoding} in stream: {exc.reason}",
                frame=self.remainder + raw,
            ).with_context(raw_bytes=repr(chunk[:200])) from exc

    def _filter(self, frames: List[str]) -> List[str]:
        complete = []
        for frame in frames:
            frame = frame.strip()
            if not frame:
                continue
            if frame == HEARTBEAT:
                self.heartbeats += 1
                continue
            complete.append(frame)
        return complete


def parse_frame(frame: str) -> Event:
    """Parse one complete frame into an :class:`Event`.

    Raises:
        FrameParseError: a line has no ``": "`` separator, or ``data`` is not JSON
    """
    fields: Dict[str, str] = {}
    for line in frame.split("\n"):
        key, sep, value = line.partition(FIELD_SEPARATOR)
        if not sep:
            raise FrameParseError(f"line without '{FIELD_SEPARATOR}' separator: {line!r}", frame=frame)
        fields[key] = value

    data = None
    if "data" in fields:
        try:
            data = json.loads(fields["data"])
        except json.JSONDecodeError as exc:
            raise FrameParseError(f"invalid JSON in data field: {exc}", frame=frame) from exc

    return Event(kind=fields.get("event"), id=fields.get("id"), data=data)


__all__ = [
    "ERROR_EVENT_KINDS",
    "EVENT_CHANNEL_ERROR",
    "EVENT_DISCONNECT",
    "EVENT_MUTATION",
    "EVENT_WELCOME",
    "Event",
    "FrameDecoder",
    "decode_frames",
    "is_heartbeat",
    "parse_frame",
]
