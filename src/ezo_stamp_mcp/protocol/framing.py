"""ASCII frame builder and inbound frame splitter.

Frame layout::

    +-------------------+---------+-----------+
    | I2C prefix (opt.) | Body    | Delimiter |
    | "{address}:"      | ASCII   | "\\r"      |
    +-------------------+---------+-----------+

- I2C prefix: decimal address and a colon, only when the stamp is
  addressed through an I2C multiplexer (Tentacle shield)
- Body: case-sensitive EZO command text, e.g. ``L,?`` or ``T,25.00``
- Delimiter: a single carriage return (0x0D), never followed by ``\\n``

Responses use the same delimiter but carry no prefix. Several responses
may arrive in one read, and one response may be split across reads, so
inbound bytes go through a :class:`FrameBuffer`.
"""

from __future__ import annotations

DELIMITER = b"\r"
ADDRESS_SEPARATOR = b":"


def build_frame(body: str, address: int | None = None) -> bytes:
    """Build a single command frame.

    Args:
        body: Command text without delimiter, e.g. ``"T,25.00"``.
        address: I2C address to prefix, or ``None``/negative for serial mode.

    Returns:
        ASCII bytes terminated by ``\\r``.
    """
    if "\r" in body or "\n" in body:
        raise ValueError(f"Command body must not contain line breaks: {body!r}")
    frame = body.encode("ascii") + DELIMITER
    if address is not None and address >= 0:
        frame = str(address).encode("ascii") + ADDRESS_SEPARATOR + frame
    return frame


class FrameBuffer:
    """Accumulates inbound bytes and yields complete frames.

    Bytes after the last delimiter stay buffered until a later
    :meth:`feed` completes them.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> bytes:
        """Buffered bytes not yet terminated by a delimiter."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append a chunk and extract every complete frame, in order.

        Returned frames exclude the delimiter. Empty frames (consecutive
        delimiters) are returned as ``b""`` and left to the caller.
        """
        self._buffer.extend(chunk)
        frames: list[bytes] = []
        while True:
            pos = self._buffer.find(DELIMITER)
            if pos < 0:
                break
            frames.append(bytes(self._buffer[:pos]))
            del self._buffer[: pos + 1]
        return frames

    def clear(self) -> None:
        """Drop any partial frame."""
        self._buffer.clear()
