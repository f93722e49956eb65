"""
Sequential reader over an immutable byte buffer.

Every DWARF decoder in this package reads through a ByteCursor: fixed-width
integers in the target's byte order, LEB128 varints, NUL-terminated strings
and raw blocks.
"""

import struct
from typing import Union

from dwarfvar.dwarf.exceptions import MalformedEncodingError, TruncatedError


_UNSIGNED_FORMATS = {1: 'B', 2: 'H', 4: 'I', 8: 'Q'}
_SIGNED_FORMATS = {1: 'b', 2: 'h', 4: 'i', 8: 'q'}

_U64_LIMIT = 1 << 64
_I64_MIN = -(1 << 63)
_I64_MAX = (1 << 63) - 1


class ByteCursor:
    """Position-tracked view over a byte buffer.

    Args:
        data: Buffer to read from (not copied)
        offset: Initial position
        little_endian: Byte order for fixed-width integers
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview], offset: int = 0,
                 little_endian: bool = True):
        self.data = memoryview(data)
        self.offset = offset
        self.little_endian = little_endian
        prefix = '<' if little_endian else '>'
        self._unsigned = {size: struct.Struct(prefix + fmt) for size, fmt in _UNSIGNED_FORMATS.items()}
        self._signed = {size: struct.Struct(prefix + fmt) for size, fmt in _SIGNED_FORMATS.items()}

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return max(len(self.data) - self.offset, 0)

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def seek(self, offset: int):
        self.offset = offset

    def skip(self, size: int):
        self._require(size)
        self.offset += size

    def _require(self, size: int):
        if size < 0 or self.offset < 0 or self.offset + size > len(self.data):
            raise TruncatedError(self.offset, size, self.remaining)

    def read_uint(self, size: int) -> int:
        """Read an unsigned integer of 1, 2, 3, 4 or 8 bytes."""
        self._require(size)
        packer = self._unsigned.get(size)
        if packer is None:
            # Odd widths (DW_FORM_strx3, DW_FORM_addrx3)
            raw = self.data[self.offset:self.offset + size]
            value = int.from_bytes(raw, 'little' if self.little_endian else 'big')
        else:
            value = packer.unpack_from(self.data, self.offset)[0]
        self.offset += size
        return value

    def read_int(self, size: int) -> int:
        """Read a signed integer of 1, 2, 4 or 8 bytes."""
        self._require(size)
        value = self._signed[size].unpack_from(self.data, self.offset)[0]
        self.offset += size
        return value

    def u8(self) -> int:
        return self.read_uint(1)

    def u16(self) -> int:
        return self.read_uint(2)

    def u32(self) -> int:
        return self.read_uint(4)

    def u64(self) -> int:
        return self.read_uint(8)

    def i8(self) -> int:
        return self.read_int(1)

    def i16(self) -> int:
        return self.read_int(2)

    def i32(self) -> int:
        return self.read_int(4)

    def i64(self) -> int:
        return self.read_int(8)

    def peek_u8(self) -> int:
        self._require(1)
        return self.data[self.offset]

    def uleb128(self) -> int:
        """Read an unsigned LEB128 value.

        Raises:
            TruncatedError: If the stream ends before the final byte
            MalformedEncodingError: If the value does not fit in 64 bits
        """
        start = self.offset
        result = 0
        shift = 0
        while True:
            if self.offset >= len(self.data):
                raise TruncatedError(start, self.offset - start + 1, len(self.data) - start)
            byte = self.data[self.offset]
            self.offset += 1
            result |= (byte & 0x7f) << shift
            shift += 7
            if (byte & 0x80) == 0:
                break
            if shift >= 70:
                raise MalformedEncodingError(start, "more than 10 bytes")
        if result >= _U64_LIMIT:
            raise MalformedEncodingError(start, "value exceeds 64 bits")
        return result

    def sleb128(self) -> int:
        """Read a signed LEB128 value.

        Raises:
            TruncatedError: If the stream ends before the final byte
            MalformedEncodingError: If the value does not fit in 64 bits
        """
        start = self.offset
        result = 0
        shift = 0
        while True:
            if self.offset >= len(self.data):
                raise TruncatedError(start, self.offset - start + 1, len(self.data) - start)
            byte = self.data[self.offset]
            self.offset += 1
            result |= (byte & 0x7f) << shift
            shift += 7
            if (byte & 0x80) == 0:
                break
            if shift >= 70:
                raise MalformedEncodingError(start, "more than 10 bytes")
        # Sign extend
        if byte & 0x40:
            result -= 1 << shift
        if result < _I64_MIN or result > _I64_MAX:
            raise MalformedEncodingError(start, "value exceeds 64 bits")
        return result

    def cstring(self) -> bytes:
        """Read a NUL-terminated string, without the terminator."""
        end = self.offset
        data = self.data
        while end < len(data) and data[end] != 0:
            end += 1
        if end >= len(data):
            raise TruncatedError(self.offset, end - self.offset + 1, self.remaining)
        value = bytes(data[self.offset:end])
        self.offset = end + 1
        return value

    def read_bytes(self, size: int) -> bytes:
        self._require(size)
        value = bytes(self.data[self.offset:self.offset + size])
        self.offset += size
        return value

    def read_offset(self, offset_size: int) -> int:
        """Read a 4- or 8-byte section offset (32- or 64-bit DWARF)."""
        return self.read_uint(offset_size)
