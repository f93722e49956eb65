"""
Section providers for ELF files and PE files with an appended ELF container.

Watcom compilers append a minimal ELF container with DWARF data to PE executables,
rather than using standard PE debug sections. Both layouts end up as the same
thing: a set of named debug sections plus the address ranges the image maps.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pefile
from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from dwarfvar.dwarf.exceptions import AmbiguousAddressError, LoadError, TruncatedError

logger = logging.getLogger(__name__)


ELF_MAGIC = b'\x7fELF'
PE_MAGIC = b'MZ'

SHF_ALLOC = 0x2
SHF_TLS = 0x400

# Sections the DIE parser reads
DEBUG_SECTIONS = (
    '.debug_info',
    '.debug_abbrev',
    '.debug_str',
    '.debug_line_str',
    '.debug_str_offsets',
    '.debug_addr',
)


@dataclass(frozen=True)
class MappedRange:
    """A virtual address range and the file bytes backing it.

    Bytes between file_size and mem_size have no file backing (.bss, or the
    tail of a segment whose p_memsz exceeds p_filesz).
    """

    vaddr: int
    file_offset: int
    file_size: int
    mem_size: int
    name: str

    @property
    def end(self) -> int:
        return self.vaddr + self.mem_size

    def contains(self, address: int, size: int = 1) -> bool:
        return self.vaddr <= address and address + size <= self.end


class SectionProvider:
    """Owns a binary image and answers section and address-mapping queries.

    Usable directly with pre-extracted sections; ElfSectionProvider builds one
    from an ELF or PE file.

    Args:
        sections: Section name -> contents
        mappings: Address ranges mapped by the image
        image: Bytes that MappedRange.file_offset indexes into
        little_endian: Target byte order
        address_size: Target pointer width in bytes
    """

    def __init__(self, sections: Dict[str, bytes], mappings: Iterable[MappedRange] = (),
                 image: bytes = b'', little_endian: bool = True, address_size: int = 8):
        self._sections = dict(sections)
        self.mappings: List[MappedRange] = sorted(mappings, key=lambda m: m.vaddr)
        self.image = image
        self.little_endian = little_endian
        self.address_size = address_size

    def section(self, name: str) -> Optional[bytes]:
        return self._sections.get(name)

    def section_names(self) -> List[str]:
        return list(self._sections)

    def debug_sections(self) -> Dict[str, bytes]:
        """Get the DWARF sections present in the image."""
        return {name: self._sections[name] for name in DEBUG_SECTIONS if name in self._sections}

    def mapping_for_address(self, address: int, size: int = 1) -> Optional[MappedRange]:
        """Find the mapped range containing an address, or None.

        Raises:
            AmbiguousAddressError: If several ranges contain the address
        """
        found = [mapping for mapping in self.mappings if mapping.contains(address)]
        if len(found) > 1:
            raise AmbiguousAddressError(address, size, [mapping.name for mapping in found])
        return found[0] if found else None

    def read(self, file_offset: int, size: int) -> bytes:
        """Read bytes from the image.

        Raises:
            TruncatedError: If the range extends past the end of the image
        """
        if file_offset < 0 or file_offset + size > len(self.image):
            raise TruncatedError(file_offset, size, max(len(self.image) - file_offset, 0))
        return bytes(self.image[file_offset:file_offset + size])


class ElfSectionProvider(SectionProvider):
    """Section provider for ELF files.

    Supports both:
    1. Plain ELF executables and objects
    2. Watcom format: PE executable with an appended ELF container
    """

    def __init__(self, sections: Dict[str, bytes], mappings: Iterable[MappedRange], image: bytes,
                 little_endian: bool, address_size: int, format_type: str):
        super().__init__(sections, mappings, image, little_endian, address_size)
        self.format_type = format_type  # 'elf' or 'watcom_elf'

    @classmethod
    def from_path(cls, path) -> 'ElfSectionProvider':
        """Load an ELF or PE file from disk.

        Raises:
            LoadError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise LoadError(f"Cannot read {path}: {e}") from e
        logger.info(f"Loading {path} ({len(data)} bytes)")
        return cls.from_bytes(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ElfSectionProvider':
        """Load an ELF or PE image from memory.

        Raises:
            LoadError: If the bytes are neither ELF nor a PE with an appended ELF
        """
        if data.startswith(ELF_MAGIC):
            elf = _open_elf(data)
            if elf['e_type'] == 'ET_REL':
                # Section addresses and DWARF values are only final after linking
                raise LoadError("Relocatable object files are not supported; load the linked binary")
            return cls(
                sections=_elf_sections(elf),
                mappings=_elf_mappings(elf),
                image=data,
                little_endian=elf.little_endian,
                address_size=elf.elfclass // 8,
                format_type='elf',
            )
        if data.startswith(PE_MAGIC):
            return cls._from_pe(data)
        raise LoadError("Not an ELF or PE file")

    @classmethod
    def _from_pe(cls, data: bytes) -> 'ElfSectionProvider':
        """Load a PE file carrying a Watcom appended ELF container.

        Watcom compilers append an ELF file with DWARF sections to the end of the PE file.
        The container normally starts at the PE overlay; otherwise we scan for the
        ELF magic bytes (0x7F 'E' 'L' 'F').
        """
        try:
            pe = pefile.PE(data=data, fast_load=True)
        except pefile.PEFormatError as e:
            raise LoadError(f"Invalid PE file: {e}") from e

        elf_offset = pe.get_overlay_data_start_offset()
        if elf_offset is None or data[elf_offset:elf_offset + 4] != ELF_MAGIC:
            elf_offset = data.find(ELF_MAGIC)
        if elf_offset == -1:
            raise LoadError("PE file has no appended ELF container with DWARF data")

        logger.debug(f"Found appended ELF container at file offset 0x{elf_offset:x}")
        elf = _open_elf(data[elf_offset:])
        return cls(
            sections=_elf_sections(elf),
            mappings=_pe_mappings(pe),
            image=data,
            little_endian=elf.little_endian,
            address_size=elf.elfclass // 8,
            format_type='watcom_elf',
        )


def _open_elf(data: bytes) -> ELFFile:
    try:
        return ELFFile(io.BytesIO(data))
    except ELFError as e:
        raise LoadError(f"Invalid ELF container: {e}") from e


def _elf_sections(elf: ELFFile) -> Dict[str, bytes]:
    sections = {}
    for section in elf.iter_sections():
        if section.name.startswith('.debug_') and section['sh_type'] != 'SHT_NOBITS':
            sections[section.name] = section.data()
    return sections


def _elf_mappings(elf: ELFFile) -> List[MappedRange]:
    """Address ranges from PT_LOAD segments, or allocated sections when there are none."""
    mappings = []
    for index, segment in enumerate(elf.iter_segments()):
        if segment['p_type'] == 'PT_LOAD':
            mappings.append(MappedRange(
                vaddr=segment['p_vaddr'],
                file_offset=segment['p_offset'],
                file_size=segment['p_filesz'],
                mem_size=segment['p_memsz'],
                name=f"PT_LOAD[{index}]",
            ))
    if mappings:
        return mappings

    for section in elf.iter_sections():
        if not section['sh_flags'] & SHF_ALLOC:
            continue
        nobits = section['sh_type'] == 'SHT_NOBITS'
        if nobits and section['sh_flags'] & SHF_TLS:
            # .tbss takes no address space of its own
            continue
        mappings.append(MappedRange(
            vaddr=section['sh_addr'],
            file_offset=section['sh_offset'],
            file_size=0 if nobits else section['sh_size'],
            mem_size=section['sh_size'],
            name=section.name,
        ))
    return mappings


def _pe_mappings(pe: pefile.PE) -> List[MappedRange]:
    """Address ranges of PE sections.

    Each section is mapped both at its RVA and at ImageBase + RVA, since Watcom
    DWARF may carry either form.
    """
    image_base = pe.OPTIONAL_HEADER.ImageBase
    mappings = []
    for section in pe.sections:
        name = section.Name.decode('utf-8', errors='ignore').rstrip('\x00')
        mem_size = section.Misc_VirtualSize or section.SizeOfRawData
        file_size = min(section.SizeOfRawData, mem_size)
        for base in sorted({0, image_base}):
            mappings.append(MappedRange(
                vaddr=base + section.VirtualAddress,
                file_offset=section.PointerToRawData,
                file_size=file_size,
                mem_size=mem_size,
                name=name,
            ))
    return mappings
