"""
Unit tests for the big-endian packet reader
"""

import pytest

from errors import PacketDecodeError
from integrations.packet_reader import PacketReader


class TestPacketReaderIntegers:
    """Tests for fixed-width reads"""

    def test_reads_big_endian_values(self):
        """Test byte, uint16 and uint32 use network byte order"""
        packet = PacketReader(bytes([0x01, 0x02, 0x03, 0x04, 0x05]))
        assert packet.byte(0) == 0x01
        assert packet.uint16(0) == 0x0102
        assert packet.uint32(1) == 0x02030405
        assert len(packet) == 5

    def test_read_past_end_raises(self):
        """Test a read that would run off the buffer is rejected"""
        packet = PacketReader(b"\x00\x01\x02")
        with pytest.raises(PacketDecodeError):
            packet.uint32(0)
        with pytest.raises(PacketDecodeError):
            packet.byte(3)

    def test_negative_offset_raises(self):
        """Test negative offsets are rejected instead of wrapping"""
        with pytest.raises(PacketDecodeError):
            PacketReader(b"\x00\x01").byte(-1)


class TestPacketReaderStrings:
    """Tests for UTF-16BE string decoding"""

    def test_utf16_string(self):
        """Test a UTF-16BE name decodes"""
        packet = PacketReader(b"\xff" + "Door".encode("utf-16-be"))
        assert packet.utf16_string(1, 8) == "Door"

    def test_odd_length_raises(self):
        """Test odd byte counts are not valid UTF-16"""
        packet = PacketReader("Door".encode("utf-16-be"))
        with pytest.raises(PacketDecodeError):
            packet.utf16_string(0, 3)

    def test_unpaired_surrogate_raises(self):
        """Test invalid UTF-16 is reported as a decode error"""
        packet = PacketReader(b"\xd8\x00\x00\x41")
        with pytest.raises(PacketDecodeError):
            packet.utf16_string(0, 4)
