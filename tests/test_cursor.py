"""
Tests for the byte cursor: fixed-width reads, LEB128 and bounds checks.
"""

import pytest

from hypothesis import given, strategies as st

from dwarf_builder import sleb, uleb
from dwarfvar.dwarf.cursor import ByteCursor
from dwarfvar.dwarf.exceptions import DecodeError, MalformedEncodingError, TruncatedError


@pytest.mark.decoding
@pytest.mark.parametrize("data,expected", [
    (b'\x00', 0),
    (b'\x7f', 127),
    (b'\x80\x01', 128),
    (b'\xe5\x8e\x26', 624485),
    (b'\xff\xff\xff\xff\xff\xff\xff\xff\xff\x01', (1 << 64) - 1),
])
def test_uleb128(data, expected):
    """Unsigned LEB128 decodes known encodings."""
    cursor = ByteCursor(data)
    assert cursor.uleb128() == expected
    assert cursor.at_end()


@pytest.mark.decoding
@pytest.mark.parametrize("data,expected", [
    (b'\x00', 0),
    (b'\x02', 2),
    (b'\x7e', -2),
    (b'\xff\x00', 127),
    (b'\x81\x7f', -127),
    (b'\x80\x7f', -128),
    (b'\xc0\xbb\x78', -123456),
    (b'\x80\x80\x80\x80\x80\x80\x80\x80\x80\x7f', -(1 << 63)),
])
def test_sleb128(data, expected):
    """Signed LEB128 decodes known encodings."""
    assert ByteCursor(data).sleb128() == expected


@pytest.mark.decoding
def test_uleb128_overflow_is_malformed():
    """A ULEB128 value above 64 bits is MalformedEncodingError."""
    with pytest.raises(MalformedEncodingError):
        ByteCursor(b'\xff\xff\xff\xff\xff\xff\xff\xff\xff\x02').uleb128()


@pytest.mark.decoding
def test_leb128_longer_than_ten_bytes_is_malformed():
    """Encodings longer than ten bytes are rejected."""
    with pytest.raises(MalformedEncodingError):
        ByteCursor(b'\x80' * 10 + b'\x00').uleb128()


@pytest.mark.decoding
def test_leb128_running_off_the_end_is_truncated():
    """A continuation bit on the last byte is TruncatedError."""
    with pytest.raises(TruncatedError):
        ByteCursor(b'\x80\x80').uleb128()
    with pytest.raises(TruncatedError):
        ByteCursor(b'\xff').sleb128()


@pytest.mark.decoding
def test_fixed_width_reads_respect_byte_order():
    """Fixed-width reads follow the cursor's byte order."""
    data = bytes([0x01, 0x02, 0x03, 0x04])
    assert ByteCursor(data).u32() == 0x04030201
    assert ByteCursor(data, little_endian=False).u32() == 0x01020304
    assert ByteCursor(b'\xff\xff').i16() == -1


@pytest.mark.decoding
def test_three_byte_read():
    """Odd-width unsigned reads assemble the right value."""
    cursor = ByteCursor(b'\x01\x02\x03\x04')
    assert cursor.read_uint(3) == 0x030201
    assert cursor.offset == 3
    assert cursor.remaining == 1


@pytest.mark.decoding
def test_read_past_end_reports_position():
    """TruncatedError carries the offset and sizes involved."""
    cursor = ByteCursor(b'\x01\x02', offset=1)
    with pytest.raises(TruncatedError) as exc_info:
        cursor.u32()
    assert exc_info.value.offset == 1
    assert exc_info.value.size == 4
    assert exc_info.value.available == 1
    # Failed read leaves the position untouched
    assert cursor.offset == 1


@pytest.mark.decoding
def test_cstring_and_bytes():
    """C strings stop at the NUL and raw blocks come back as bytes."""
    cursor = ByteCursor(b'abc\x00\x01\x02')
    assert cursor.cstring() == b'abc'
    assert cursor.peek_u8() == 1
    assert cursor.read_bytes(2) == b'\x01\x02'
    assert cursor.at_end()


@pytest.mark.decoding
def test_unterminated_cstring_is_truncated():
    """A string without a terminator is TruncatedError."""
    with pytest.raises(TruncatedError):
        ByteCursor(b'abc').cstring()


@pytest.mark.decoding
def test_decode_errors_share_a_base():
    """Truncation and bad encodings are both DecodeError."""
    assert issubclass(TruncatedError, DecodeError)
    assert issubclass(MalformedEncodingError, DecodeError)


U64_EDGES = [0, 1, 127, 128, (1 << 63) - 1, 1 << 63, (1 << 64) - 1]
I64_EDGES = [0, -1, 63, 64, -64, -65, (1 << 63) - 1, -(1 << 63)]


@pytest.mark.decoding
@pytest.mark.parametrize("value", U64_EDGES)
def test_uleb128_round_trip_edges(value):
    """Unsigned LEB128 decodes back to the encoded value at the 64-bit edges."""
    cursor = ByteCursor(uleb(value))
    assert cursor.uleb128() == value
    assert cursor.at_end()


@pytest.mark.decoding
@pytest.mark.parametrize("value", I64_EDGES)
def test_sleb128_round_trip_edges(value):
    """Signed LEB128 decodes back to the encoded value at the 64-bit edges."""
    cursor = ByteCursor(sleb(value))
    assert cursor.sleb128() == value
    assert cursor.at_end()


@pytest.mark.decoding
@given(st.integers(min_value=0, max_value=(1 << 64) - 1))
def test_uleb128_round_trip(value):
    """Unsigned LEB128 round-trips across the whole u64 range."""
    cursor = ByteCursor(uleb(value))
    assert cursor.uleb128() == value
    assert cursor.at_end()


@pytest.mark.decoding
@given(st.integers(min_value=-(1 << 63), max_value=(1 << 63) - 1))
def test_sleb128_round_trip(value):
    """Signed LEB128 round-trips across the whole i64 range."""
    cursor = ByteCursor(sleb(value))
    assert cursor.sleb128() == value
    assert cursor.at_end()
