"""
Typed reads of variable values.

Reads the bytes at a variable's address out of the image's mapped ranges
(or a caller-supplied memory source) and converts them to Python scalars,
refusing any conversion that would lose information.
"""

import logging
import struct
from typing import Optional, Protocol

from dwarfvar.dwarf.exceptions import (
    AddressNotMappedError,
    TypeMismatchError,
    UnsupportedTypeError,
)
from dwarfvar.dwarf.parser import SectionProvider
from dwarfvar.dwarf.type_info import TypeDescriptor, TypeKind

logger = logging.getLogger(__name__)


INTEGER_SIZES = (1, 2, 4, 8)
FLOAT_FORMATS = {4: 'f', 8: 'd'}


class MemorySource(Protocol):
    """Anything that can return bytes for an address range (a dump, a live process)."""

    def read_memory(self, address: int, size: int) -> bytes:
        ...


class ValueReader:
    """Reads and converts variable values.

    Args:
        provider: Section provider owning the image
        zero_fill_bss: Read file-backless ranges (.bss) as zeros instead of
            treating them as unmapped
    """

    def __init__(self, provider: SectionProvider, zero_fill_bss: bool = True):
        self.provider = provider
        self.zero_fill_bss = zero_fill_bss
        self._byte_order = 'little' if provider.little_endian else 'big'

    def read(self, address: int, size: int, memory: Optional[MemorySource] = None) -> bytes:
        """Read exactly size bytes at address.

        Raises:
            AddressNotMappedError: If any byte of the range is not mapped
        """
        if memory is not None:
            data = memory.read_memory(address, size)
            if data is None or len(data) != size:
                raise AddressNotMappedError(address, size)
            return bytes(data)

        mapping = self.provider.mapping_for_address(address, size)
        if mapping is None or not mapping.contains(address, size):
            raise AddressNotMappedError(address, size)

        start = address - mapping.vaddr
        backed = max(0, min(size, mapping.file_size - start))
        data = self.provider.read(mapping.file_offset + start, backed) if backed else b''
        if backed < size:
            if not self.zero_fill_bss:
                raise AddressNotMappedError(address, size)
            logger.debug(f"0x{address:x}: {size - backed} bytes in file-backless part of {mapping.name}")
            data += bytes(size - backed)
        return data

    def read_bytes(self, address: int, descriptor: TypeDescriptor,
                   memory: Optional[MemorySource] = None) -> bytes:
        """Get the raw stored bytes of a value."""
        return self.read(address, descriptor.byte_size, memory)

    def _read_integer(self, address: int, descriptor: TypeDescriptor, requested: str,
                      memory: Optional[MemorySource]) -> int:
        if not descriptor.is_integer:
            raise TypeMismatchError(requested, descriptor.name,
                                    f"{descriptor.kind.value} is not an integer type")
        if descriptor.byte_size not in INTEGER_SIZES:
            raise UnsupportedTypeError(
                f"Integer type '{descriptor.name}' has size {descriptor.byte_size}",
                descriptor.die_offset,
            )
        raw = self.read(address, descriptor.byte_size, memory)
        signed = descriptor.kind is TypeKind.SIGNED_INT
        return int.from_bytes(raw, self._byte_order, signed=signed)

    def to_unsigned(self, address: int, descriptor: TypeDescriptor, size: int,
                    memory: Optional[MemorySource] = None) -> int:
        """Read an integer value as an unsigned integer of size bytes.

        Raises:
            TypeMismatchError: If the stored type is wider, not an integer, or
                holds a negative value
        """
        requested = f"u{size * 8}"
        if descriptor.is_integer and descriptor.byte_size > size:
            raise TypeMismatchError(requested, descriptor.name,
                                    f"stored size {descriptor.byte_size} exceeds {size} bytes")
        value = self._read_integer(address, descriptor, requested, memory)
        if value < 0:
            raise TypeMismatchError(requested, descriptor.name, f"value {value} is negative")
        return value

    def to_signed(self, address: int, descriptor: TypeDescriptor, size: int,
                  memory: Optional[MemorySource] = None) -> int:
        """Read an integer value as a signed integer of size bytes.

        Raises:
            TypeMismatchError: If the stored type is wider, not an integer, or
                holds a value above the signed maximum
        """
        requested = f"i{size * 8}"
        if descriptor.is_integer and descriptor.byte_size > size:
            raise TypeMismatchError(requested, descriptor.name,
                                    f"stored size {descriptor.byte_size} exceeds {size} bytes")
        value = self._read_integer(address, descriptor, requested, memory)
        limit = 1 << (size * 8 - 1)
        if value >= limit:
            raise TypeMismatchError(requested, descriptor.name,
                                    f"value {value} does not fit in {requested}")
        return value

    def to_float(self, address: int, descriptor: TypeDescriptor, size: int,
                 memory: Optional[MemorySource] = None) -> float:
        """Read a floating-point value, widening float to double when asked."""
        requested = f"f{size * 8}"
        if descriptor.kind is not TypeKind.FLOAT:
            raise TypeMismatchError(requested, descriptor.name,
                                    f"{descriptor.kind.value} is not a floating-point type")
        fmt = FLOAT_FORMATS.get(descriptor.byte_size)
        if fmt is None:
            raise UnsupportedTypeError(
                f"Float type '{descriptor.name}' has size {descriptor.byte_size}",
                descriptor.die_offset,
            )
        if descriptor.byte_size > size:
            raise TypeMismatchError(requested, descriptor.name,
                                    f"stored size {descriptor.byte_size} exceeds {size} bytes")
        raw = self.read(address, descriptor.byte_size, memory)
        prefix = '<' if self.provider.little_endian else '>'
        return struct.unpack(prefix + fmt, raw)[0]

    def to_bool(self, address: int, descriptor: TypeDescriptor,
                memory: Optional[MemorySource] = None) -> bool:
        """Read a bool or integer value as a truth value."""
        return self._read_integer(address, descriptor, 'bool', memory) != 0

    def to_address(self, address: int, descriptor: TypeDescriptor,
                   memory: Optional[MemorySource] = None) -> int:
        """Read a pointer value as a raw address."""
        if descriptor.kind is not TypeKind.POINTER:
            raise TypeMismatchError('address', descriptor.name,
                                    f"{descriptor.kind.value} is not a pointer type")
        raw = self.read(address, descriptor.byte_size, memory)
        return int.from_bytes(raw, self._byte_order, signed=False)
