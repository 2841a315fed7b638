"""Tests for frame reassembly and frame parsing."""

import pytest

from sanity_listen.listen.protocol import (
    Event,
    FrameDecoder,
    decode_frames,
    is_heartbeat,
    parse_frame,
)
from sanity_listen.utils.errors import FrameParseError

STREAM = (
    'event: welcome\ndata: {"listenerName":"abc"}\n\n'
    ":\n\n"
    'event: mutation\nid: 1#m\ndata: {"documentId":"D","result":{"_id":"D","title":"caf\u00e9"}}\n\n'
    ":\n\n"
    'event: mutation\nid: 2#m\ndata: {"documentId":"drafts.D"}\n\n'
).encode("utf-8")


def decode_all(chunks) -> list[Event]:
    decoder = FrameDecoder()
    return [parse_frame(frame) for chunk in chunks for frame in decoder.feed(chunk)]


def test_decode_frames_keeps_remainder():
    frames, remainder = decode_frames("event: wel", "come\n\nevent: mut")
    assert frames == ["event: welcome"]
    assert remainder == "event: mut"


def test_single_chunk_yields_all_events_in_order():
    events = decode_all([STREAM])
    assert [e.kind for e in events] == ["welcome", "mutation", "mutation"]
    assert events[0].data == {"listenerName": "abc"}
    assert events[1].id == "1#m"
    assert events[1].data["result"]["title"] == "caf\u00e9"
    assert events[2].data == {"documentId": "drafts.D"}


def test_every_two_way_split_matches_single_chunk():
    expected = decode_all([STREAM])
    for offset in range(len(STREAM) + 1):
        assert decode_all([STREAM[:offset], STREAM[offset:]]) == expected, offset


def test_three_way_splits_match_single_chunk():
    expected = decode_all([STREAM])
    for first in range(0, len(STREAM), 7):
        for second in range(first, len(STREAM), 11):
            chunks = [STREAM[:first], STREAM[first:second], STREAM[second:]]
            assert decode_all(chunks) == expected, (first, second)


def test_byte_at_a_time_matches_single_chunk():
    chunks = [STREAM[i : i + 1] for i in range(len(STREAM))]
    assert decode_all(chunks) == decode_all([STREAM])


def test_text_chunks_are_accepted():
    assert decode_all([STREAM.decode("utf-8")]) == decode_all([STREAM])


def test_scenario_two_chunks_versus_one():
    first = 'event: welcome\ndata: {}\n\n'
    second = 'event: mutation\nid: 1\ndata: {"documentId":"D"}\n\n'
    joined = first + second

    expected = [
        Event(kind="welcome", data={}),
        Event(kind="mutation", id="1", data={"documentId": "D"}),
    ]
    assert decode_all([first, second]) == expected
    assert decode_all([joined]) == expected
    assert decode_all([joined[:30], joined[30:]]) == expected


def test_heartbeat_frames_never_produce_events():
    decoder = FrameDecoder()
    assert decoder.feed(":\n\n:\n\n") == []
    assert decoder.heartbeats == 2
    assert is_heartbeat(":")
    assert not is_heartbeat("event: welcome")


def test_partial_frame_waits_for_separator():
    decoder = FrameDecoder()
    assert decoder.feed("event: welcome\n") == []
    assert decoder.remainder == "event: welcome\n"
    assert decoder.feed("\n") == ["event: welcome"]
    assert decoder.remainder == ""


def test_flush_returns_unterminated_frame():
    decoder = FrameDecoder()
    decoder.feed(b"event: mutation\ndata: {")
    assert decoder.flush() == "event: mutation\ndata: {"
    assert decoder.remainder == ""


def test_parse_frame_without_data():
    event = parse_frame("event: disconnect\nid: 9")
    assert event == Event(kind="disconnect", id="9", data=None)
    assert event.is_error


def test_parse_frame_splits_on_first_separator_only():
    event = parse_frame('event: mutation\ndata: {"note": "a: b"}')
    assert event.data == {"note": "a: b"}


def test_unknown_kinds_pass_through():
    event = parse_frame("event: reconnect\ndata: {}")
    assert event.kind == "reconnect"
    assert not event.is_error


def test_line_without_separator_is_a_parse_error():
    with pytest.raises(FrameParseError) as excinfo:
        parse_frame("event: mutation\ngarbage")
    assert excinfo.value.frame == "event: mutation\ngarbage"
    assert excinfo.value.error_code == "PRS001"


def test_invalid_json_data_is_a_parse_error():
    with pytest.raises(FrameParseError):
        parse_frame("event: mutation\ndata: {not json")


def test_invalid_utf8_is_a_parse_error():
    decoder = FrameDecoder()
    with pytest.raises(FrameParseError) as excinfo:
        decoder.feed(b'event: mutation\ndata: {"documentId":"D\xff"}\n\n')
    assert "invalid utf-8" in excinfo.value.message
    assert "D\xff" in excinfo.value.frame


def test_invalid_utf8_split_across_chunks_is_a_parse_error():
    decoder = FrameDecoder()
    assert decoder.feed(b'event: mutation\ndata: "caf\xc3') == []
    with pytest.raises(FrameParseError):
        decoder.feed(b'("\n\n')


def test_truncated_multibyte_sequence_fails_on_flush():
    decoder = FrameDecoder()
    decoder.feed(b'event: mutation\ndata: "caf\xc3')
    with pytest.raises(FrameParseError):
        decoder.flush()


def test_events_are_immutable():
    event = parse_frame("event: welcome\ndata: {}")
    with pytest.raises(AttributeError):
        event.kind = "mutation"  # type: ignore[misc]
