# backend/integrations/multipart_stream.py
"""
Incremental reader for multipart/x-mixed-replace HTTP bodies.

MJPEG streams never end, so parts have to be split off as chunks arrive
instead of parsing the whole body at once.
"""

from email.message import Message
from typing import Dict, Iterable, Iterator

from errors import ProtocolDecodeError

CRLF = b"\r\n"


def multipart_boundary(content_type: str) -> str:
    """
    Return the boundary of a multipart Content-Type header.

    Raises:
        ProtocolDecodeError: not a multipart type, or no boundary
    """
    message = Message()
    message["Content-Type"] = content_type or ""
    media_type = message.get_content_type()
    if not media_type.startswith("multipart/"):
        raise ProtocolDecodeError(f"not a valid multipart message: {content_type!r}")

    boundary = message.get_param("boundary")
    if not boundary:
        raise ProtocolDecodeError(f"multipart message without boundary: {content_type!r}")

    boundary = str(boundary)
    # Some cameras put the leading dashes in the header value as well
    if boundary.startswith("--"):
        boundary = boundary[2:]
    return boundary


class MultipartStreamReader:
    """Splits a chunk iterator into multipart bodies, one part at a time"""

    def __init__(self, chunks: Iterable[bytes], boundary: str):
        self._chunks: Iterator[bytes] = iter(chunks)
        self._buffer = bytearray()
        self._delimiter = b"--" + boundary.encode("latin-1")
        self._at_delimiter = False

    def _fill(self) -> None:
        for chunk in self._chunks:
            if chunk:
                self._buffer.extend(chunk)
                return
        raise EOFError("multipart stream ended")

    def _read_until(self, marker: bytes) -> bytes:
        """Return bytes before ``marker`` and consume the marker"""
        start = 0
        while True:
            index = self._buffer.find(marker, start)
            if index >= 0:
                data = bytes(self._buffer[:index])
                del self._buffer[:index + len(marker)]
                return data
            start = max(0, len(self._buffer) - len(marker) + 1)
            self._fill()

    def _read_exact(self, size: int) -> bytes:
        while len(self._buffer) < size:
            self._fill()
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def _peek(self, size: int) -> bytes:
        while len(self._buffer) < size:
            self._fill()
        return bytes(self._buffer[:size])

    def next_part(self) -> bytes:
        """
        Read the body of the next part.

        Raises:
            EOFError: stream ended or closing delimiter reached
        """
        if not self._at_delimiter:
            self._read_until(self._delimiter)
        self._at_delimiter = False

        if self._peek(2) == b"--":
            raise EOFError("multipart stream closed by server")
        self._read_until(CRLF)

        headers = self._read_headers()
        length = headers.get("content-length")
        if length is not None and length.isdigit():
            return self._read_exact(int(length))

        body = self._read_until(CRLF + self._delimiter)
        self._at_delimiter = True
        return body

    def _read_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        while True:
            line = self._read_until(CRLF)
            if not line:
                return headers
            name, sep, value = line.decode("latin-1").partition(":")
            if sep:
                headers[name.strip().lower()] = value.strip()
