"""Tests for frame building and inbound frame splitting."""

import pytest

from ezo_stamp_mcp.protocol.framing import (
    DELIMITER,
    FrameBuffer,
    build_frame,
)


def test_build_frame_serial():
    """Serial frames are the body plus a carriage return."""
    assert build_frame("R") == b"R\r"


def test_build_frame_no_newline():
    """Frames end in a bare \\r."""
    frame = build_frame("L,?")
    assert frame.endswith(DELIMITER)
    assert b"\n" not in frame


def test_build_frame_i2c_prefix():
    """An address prefixes the frame with '{address}:'."""
    assert build_frame("T,25.00", 99) == b"99:T,25.00\r"


def test_build_frame_negative_address_is_serial():
    """-1 means no I2C address."""
    assert build_frame("R", -1) == b"R\r"


def test_build_frame_rejects_line_breaks():
    """A body containing a delimiter would split into two commands."""
    with pytest.raises(ValueError):
        build_frame("NAME,a\rb")


def test_buffer_single_frame():
    buf = FrameBuffer()
    assert buf.feed(b"?L,1\r") == [b"?L,1"]
    assert len(buf) == 0


def test_buffer_back_to_back_frames():
    """Several responses in one chunk come out in order."""
    buf = FrameBuffer()
    assert buf.feed(b"OK\r?I,pH,1.0\r7.") == [b"OK", b"?I,pH,1.0"]
    assert buf.pending == b"7."


def test_buffer_split_frame():
    """A frame split across reads is reassembled."""
    buf = FrameBuffer()
    assert buf.feed(b"?T,25.0") == []
    assert buf.feed(b"0\r") == [b"?T,25.00"]


def test_buffer_byte_at_a_time():
    """Arbitrary chunk boundaries give the same frames."""
    buf = FrameBuffer()
    frames = []
    for b in b"*OK\r7.012\r":
        frames.extend(buf.feed(bytes([b])))
    assert frames == [b"*OK", b"7.012"]


def test_buffer_empty_frames():
    """Consecutive delimiters produce empty frames."""
    buf = FrameBuffer()
    assert buf.feed(b"\r\r") == [b"", b""]


def test_buffer_clear():
    """Clearing drops the partial frame."""
    buf = FrameBuffer()
    buf.feed(b"7.23")
    buf.clear()
    assert buf.pending == b""
    assert buf.feed(b"4\r") == [b"4"]
