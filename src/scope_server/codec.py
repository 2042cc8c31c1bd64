"""Line framing for the SCPI control plane."""

from __future__ import annotations

import logging
import socket

_LOG = logging.getLogger(__name__)

LINE_TERMINATORS = (b"\n", b";")
REPLY_TERMINATOR = b"\n"


class CodecError(ConnectionError):
    """Raised when the peer closes the connection or the transport fails."""


class LineCodec:
    """Read newline/semicolon terminated commands and write newline terminated replies.

    Reads are performed one byte at a time so that nothing past the current
    terminator is consumed from the socket. There is no line length cap.
    """

    def __init__(self, sock: socket.socket, encoding: str = "ascii") -> None:
        self._sock = sock
        self._encoding = encoding

    def send(self, line: str) -> None:
        payload = line.encode(self._encoding, errors="replace") + REPLY_TERMINATOR
        try:
            self._sock.sendall(payload)
        except OSError as exc:
            raise CodecError(f"Failed to send reply: {exc}") from exc
        _LOG.debug("TX %r", line)

    def receive(self) -> str:
        buf = bytearray()
        while True:
            try:
                byte = self._sock.recv(1)
            except OSError as exc:
                raise CodecError(f"Failed to read command: {exc}") from exc
            if not byte:
                raise CodecError("Connection closed by peer")
            if byte in LINE_TERMINATORS:
                break
            buf += byte
        return buf.decode(self._encoding, errors="replace")
