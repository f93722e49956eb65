"""
Tests for reading mapped bytes and scalar conversions.
"""

import struct

import pytest

from conftest import BSS_ADDRESS, DATA, DATA_ADDRESS, UNMAPPED_ADDRESS
from dwarfvar.dwarf.exceptions import AddressNotMappedError, TypeMismatchError, UnsupportedTypeError
from dwarfvar.dwarf.type_info import TypeDescriptor, TypeKind
from dwarfvar.dwarf.value_reader import ValueReader
from dwarfvar.utils.memory import MemoryImage


def descriptor(kind, size, name='t'):
    return TypeDescriptor(kind=kind, byte_size=size, name=name, die_offset=0)


U8 = descriptor(TypeKind.UNSIGNED_INT, 1, 'unsigned char')
U32 = descriptor(TypeKind.UNSIGNED_INT, 4, 'unsigned int')
I32 = descriptor(TypeKind.SIGNED_INT, 4, 'int')
U64 = descriptor(TypeKind.UNSIGNED_INT, 8, 'unsigned long')
F32 = descriptor(TypeKind.FLOAT, 4, 'float')
F64 = descriptor(TypeKind.FLOAT, 8, 'double')
BOOL = descriptor(TypeKind.BOOL, 1, 'bool')
PTR = descriptor(TypeKind.POINTER, 8, 'int*')
STRUCT = descriptor(TypeKind.UNKNOWN, 8, 'struct Point')


@pytest.fixture
def reader(sample_provider):
    return ValueReader(sample_provider)


@pytest.mark.reading
def test_read_from_file_backed_range(reader):
    """Bytes inside a file-backed range come from the image."""
    assert reader.read(DATA_ADDRESS, 4) == b'\x2a\x00\x00\x00'


@pytest.mark.reading
def test_bss_reads_as_zero(reader):
    """File-backless ranges read as zero."""
    assert reader.read(BSS_ADDRESS + 0x10, 8) == bytes(8)


@pytest.mark.reading
def test_bss_unmapped_without_zero_fill(sample_provider):
    """With zero fill off, file-backless ranges are unmapped."""
    reader = ValueReader(sample_provider, zero_fill_bss=False)
    with pytest.raises(AddressNotMappedError):
        reader.read(BSS_ADDRESS, 4)


@pytest.mark.reading
def test_unmapped_address(reader):
    """An address in no range is AddressNotMappedError."""
    with pytest.raises(AddressNotMappedError) as exc_info:
        reader.read(UNMAPPED_ADDRESS, 4)
    assert exc_info.value.address == UNMAPPED_ADDRESS


@pytest.mark.reading
def test_read_running_off_mapping(reader):
    """A read that runs past its range is AddressNotMappedError."""
    with pytest.raises(AddressNotMappedError):
        reader.read(DATA_ADDRESS + len(DATA) - 2, 4)


@pytest.mark.reading
def test_integer_widening(reader):
    """Integers widen to larger requested sizes."""
    assert reader.to_unsigned(DATA_ADDRESS, U32, 4) == 42
    assert reader.to_unsigned(DATA_ADDRESS, U32, 8) == 42
    assert reader.to_signed(DATA_ADDRESS, U32, 8) == 42
    assert reader.to_signed(DATA_ADDRESS + 4, I32, 4) == -5


@pytest.mark.reading
def test_narrowing_is_a_mismatch(reader):
    """A request narrower than the stored size is TypeMismatchError."""
    with pytest.raises(TypeMismatchError):
        reader.to_unsigned(DATA_ADDRESS, U32, 1)
    with pytest.raises(TypeMismatchError):
        reader.to_signed(DATA_ADDRESS + 0x28, U64, 4)


@pytest.mark.reading
def test_unrepresentable_values_are_a_mismatch(reader):
    """Negative as unsigned and too-large as signed are TypeMismatchError."""
    # -5 has no unsigned representation
    with pytest.raises(TypeMismatchError):
        reader.to_unsigned(DATA_ADDRESS + 4, I32, 8)
    # 0xff does not fit in a signed byte
    with pytest.raises(TypeMismatchError):
        reader.to_signed(DATA_ADDRESS + 0x4c, U8, 1)
    assert reader.to_signed(DATA_ADDRESS + 0x4c, U8, 2) == 255


@pytest.mark.reading
def test_floats(reader):
    """Floats read at their size and widen from f32 to f64 only."""
    assert reader.to_float(DATA_ADDRESS + 0x08, F32, 4) == 1.5
    assert reader.to_float(DATA_ADDRESS + 0x08, F32, 8) == 1.5
    assert reader.to_float(DATA_ADDRESS + 0x10, F64, 8) == 2.25
    with pytest.raises(TypeMismatchError):
        reader.to_float(DATA_ADDRESS + 0x10, F64, 4)
    with pytest.raises(TypeMismatchError):
        reader.to_float(DATA_ADDRESS, U32, 8)
    with pytest.raises(TypeMismatchError):
        reader.to_unsigned(DATA_ADDRESS + 0x08, F32, 4)


@pytest.mark.reading
def test_bool_and_address(reader):
    """Bools test nonzero and pointers read as raw addresses."""
    assert reader.to_bool(DATA_ADDRESS + 0x18, BOOL) is True
    assert reader.to_bool(DATA_ADDRESS, U32) is True
    assert reader.to_bool(BSS_ADDRESS, I32) is False
    assert reader.to_address(DATA_ADDRESS + 0x20, PTR) == DATA_ADDRESS + 4
    with pytest.raises(TypeMismatchError):
        reader.to_address(DATA_ADDRESS, U32)
    with pytest.raises(TypeMismatchError):
        reader.to_bool(DATA_ADDRESS + 0x20, PTR)


@pytest.mark.reading
def test_unknown_types_only_give_bytes(reader):
    """Unknown types allow only raw byte reads."""
    assert reader.read_bytes(DATA_ADDRESS + 0x30, STRUCT) == bytes(range(1, 9))
    with pytest.raises(TypeMismatchError):
        reader.to_unsigned(DATA_ADDRESS + 0x30, STRUCT, 8)


@pytest.mark.reading
def test_odd_sizes_are_unsupported(reader):
    """Integer and float sizes outside the supported set are UnsupportedTypeError."""
    with pytest.raises(UnsupportedTypeError):
        reader.to_unsigned(DATA_ADDRESS, descriptor(TypeKind.UNSIGNED_INT, 3), 4)
    with pytest.raises(UnsupportedTypeError):
        reader.to_float(DATA_ADDRESS, descriptor(TypeKind.FLOAT, 2), 8)


@pytest.mark.reading
def test_memory_source_overrides_image(reader):
    """A memory source is read instead of the image."""
    memory = MemoryImage([(DATA_ADDRESS, struct.pack('<I', 1234))])
    assert reader.to_unsigned(DATA_ADDRESS, U32, 4, memory) == 1234
    with pytest.raises(AddressNotMappedError):
        reader.to_unsigned(DATA_ADDRESS + 4, U32, 4, memory)
