"""Tests for mcpfleet.mcp.transport: newline-delimited JSON framing."""

from __future__ import annotations

import io
import json

import pytest

from mcpfleet.mcp.protocol import DecodeError
from mcpfleet.mcp.transport import LineTransport, decode_line, encode_message


def _transport(raw: bytes):
    out = io.StringIO()
    return LineTransport(input_stream=io.BytesIO(raw), output_stream=out), out


class TestDecodeLine:
    def test_decodes_object(self):
        assert decode_line(b'{"kind": "enumerate-tools"}\n') == {"kind": "enumerate-tools"}

    def test_accepts_str(self):
        assert decode_line('{"a": 1}') == {"a": 1}

    def test_malformed_json_raises(self):
        with pytest.raises(DecodeError):
            decode_line(b"{not json")

    def test_non_object_raises(self):
        with pytest.raises(DecodeError, match="JSON object"):
            decode_line(b"[1, 2, 3]")

    def test_invalid_utf8_raises(self):
        with pytest.raises(DecodeError, match="UTF-8"):
            decode_line(b"\xff\xfe{}")


def test_encode_message_is_single_line():
    encoded = encode_message({"text": "line one\nline two"})
    assert "\n" not in encoded
    assert json.loads(encoded) == {"text": "line one\nline two"}


def test_malformed_line_is_skipped_and_reading_continues():
    transport, _ = _transport(
        b'{"kind": "enumerate-tools", "id": 1}\n'
        b"this is not json\n"
        b"\n"
        b"42\n"
        b'{"kind": "invoke-tool", "tool": "x", "id": 2}\n'
    )
    first = transport.read_message()
    second = transport.read_message()
    assert first == {"kind": "enumerate-tools", "id": 1}
    assert second == {"kind": "invoke-tool", "tool": "x", "id": 2}
    assert transport.read_message() is None


def test_eof_returns_none():
    transport, _ = _transport(b"")
    assert transport.read_message() is None


def test_send_writes_one_line_per_message():
    transport, out = _transport(b"")
    transport.send({"id": 1, "content": [{"type": "text", "text": "a\nb"}]})
    transport.send({"id": 2})
    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["content"][0]["text"] == "a\nb"
    assert json.loads(lines[1]) == {"id": 2}


def test_close_stops_reading_and_sending():
    transport, out = _transport(b'{"id": 1}\n')
    transport.send({"id": "before"})
    transport.close()
    assert transport.closed
    assert transport.read_message() is None
    transport.send({"id": "after"})
    lines = out.getvalue().splitlines()
    assert [json.loads(line)["id"] for line in lines] == ["before"]


def test_close_is_idempotent():
    transport, _ = _transport(b"")
    transport.close()
    transport.close()
    assert transport.closed


def test_broken_output_marks_transport_closed():
    class _BrokenOutput(io.StringIO):
        def write(self, s):
            raise BrokenPipeError("pipe closed")

    transport = LineTransport(input_stream=io.BytesIO(b""), output_stream=_BrokenOutput())
    transport.send({"id": 1})
    assert transport.closed
