"""
Memory utility helpers for reading and formatting memory.
"""

from typing import List, Tuple

from dwarfvar.dwarf.exceptions import AddressNotMappedError, LoadError


class MemoryImage:
    """Captured memory regions usable as a value reader memory source.

    Each region is a (base_address, bytes) pair, e.g. a raw dump of a
    process's data segment.
    """

    def __init__(self, regions: List[Tuple[int, bytes]] = None):
        self.regions: List[Tuple[int, bytes]] = list(regions or [])

    @classmethod
    def from_file(cls, path, base_address: int) -> 'MemoryImage':
        """Load a raw dump whose first byte sits at base_address.

        Raises:
            LoadError: If the file cannot be read
        """
        try:
            with open(path, 'rb') as f:
                return cls([(base_address, f.read())])
        except OSError as e:
            raise LoadError(f"Cannot read memory dump {path}: {e}") from e

    def add_region(self, base_address: int, data: bytes):
        self.regions.append((base_address, data))

    def read_memory(self, address: int, size: int) -> bytes:
        """Read bytes from whichever region holds the whole range.

        Raises:
            AddressNotMappedError: If no single region covers the range
        """
        for base, data in self.regions:
            if base <= address and address + size <= base + len(data):
                start = address - base
                return bytes(data[start:start + size])
        raise AddressNotMappedError(address, size)


def format_hex_dump(data: bytes, base_address: int = 0, bytes_per_line: int = 16) -> str:
    """Format binary data as a hex dump.

    Args:
        data: Binary data to format
        base_address: Base address for display
        bytes_per_line: Number of bytes per line

    Returns:
        Formatted hex dump string
    """
    lines = []
    for i in range(0, len(data), bytes_per_line):
        chunk = data[i:i + bytes_per_line]
        hex_part = ' '.join(f'{b:02x}' for b in chunk).ljust(bytes_per_line * 3 - 1)
        ascii_part = ''.join(chr(b) if 32 <= b < 127 else '.' for b in chunk)
        lines.append(f'{base_address + i:08x}  {hex_part}  {ascii_part}')

    return '\n'.join(lines)
