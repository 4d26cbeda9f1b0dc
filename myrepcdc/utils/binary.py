"""
Little-endian reader over a binlog event body
"""

import struct

from ..exceptions import DecodeError


class BinaryReader:
    """Sequential reader raising DecodeError on truncated input"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, size: int) -> bytes:
        if size < 0 or self.offset + size > len(self.data):
            raise DecodeError(
                f"Truncated event body: need {size} bytes at offset {self.offset}, "
                f"have {self.remaining()}"
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_rest(self) -> bytes:
        return self.read(self.remaining())

    def skip(self, size: int) -> None:
        self.read(size)

    def read_uint(self, size: int) -> int:
        return int.from_bytes(self.read(size), 'little', signed=False)

    def read_uint8(self) -> int:
        return self.read_uint(1)

    def read_uint16(self) -> int:
        return struct.unpack('<H', self.read(2))[0]

    def read_uint32(self) -> int:
        return struct.unpack('<I', self.read(4))[0]

    def read_uint48(self) -> int:
        return self.read_uint(6)

    def read_uint64(self) -> int:
        return struct.unpack('<Q', self.read(8))[0]

    def read_length_coded_int(self) -> int:
        """
        Packed integer as used by table map and rows events

        0-250 is the value itself, 252/253/254 prefix 2/3/8 more bytes.
        """
        first = self.read_uint8()
        if first < 251:
            return first
        if first == 252:
            return self.read_uint(2)
        if first == 253:
            return self.read_uint(3)
        if first == 254:
            return self.read_uint(8)
        raise DecodeError(f"Invalid packed integer prefix 0x{first:02x} at offset {self.offset - 1}")

    def read_length_coded_bytes(self) -> bytes:
        return self.read(self.read_length_coded_int())

    def read_string(self, size: int) -> str:
        return self.read(size).decode('utf-8', errors='replace')


def bitmap_size(column_count: int) -> int:
    return (column_count + 7) // 8
