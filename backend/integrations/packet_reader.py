# backend/integrations/packet_reader.py
"""
Big-endian reader over binary camera payloads.

Offsets are absolute. Reads past the end of the buffer raise
PacketDecodeError instead of returning partial data.
"""

import struct

from errors import PacketDecodeError

_UINT16 = struct.Struct(">H")
_UINT32 = struct.Struct(">I")


class PacketReader:
    """Read-only cursor over a byte buffer"""

    def __init__(self, buffer: bytes):
        self.buffer = bytes(buffer)

    def __len__(self) -> int:
        return len(self.buffer)

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > len(self.buffer):
            raise PacketDecodeError(
                f"read of {size} bytes at offset {offset} exceeds packet length {len(self.buffer)}",
                offset=offset,
                length=len(self.buffer),
            )

    def byte(self, offset: int) -> int:
        self._check(offset, 1)
        return self.buffer[offset]

    def uint16(self, offset: int) -> int:
        self._check(offset, 2)
        return _UINT16.unpack_from(self.buffer, offset)[0]

    def uint32(self, offset: int) -> int:
        self._check(offset, 4)
        return _UINT32.unpack_from(self.buffer, offset)[0]

    def utf16_string(self, offset: int, size: int) -> str:
        """Decode ``size`` bytes of UTF-16BE starting at ``offset``"""
        self._check(offset, size)
        if size % 2:
            raise PacketDecodeError(
                f"UTF-16 string length {size} at offset {offset} is odd",
                offset=offset,
                length=len(self.buffer),
            )
        try:
            return self.buffer[offset:offset + size].decode("utf-16-be")
        except UnicodeDecodeError as e:
            raise PacketDecodeError(
                f"invalid UTF-16 string at offset {offset}: {e.reason}",
                offset=offset,
                length=len(self.buffer),
            )
