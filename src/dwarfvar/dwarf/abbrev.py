"""
Abbreviation table parser for .debug_abbrev.

Each compilation unit points at a sub-table mapping abbreviation codes to a
DIE shape: tag, has-children flag and ordered (attribute, form) pairs.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.cursor import ByteCursor
from dwarfvar.dwarf.exceptions import MalformedDwarfError

logger = logging.getLogger(__name__)


# Every form whose on-disk width the DIE decoder knows how to compute.
KNOWN_FORMS = frozenset(
    value for name, value in vars(dw).items()
    if name.startswith('DW_FORM_')
)


@dataclass(frozen=True)
class AttributeSpec:
    """One (attribute, form) pair of an abbreviation."""

    name: int
    form: int
    implicit_const: Optional[int] = None  # Only for DW_FORM_implicit_const


@dataclass(frozen=True)
class AbbreviationEntry:
    """Shape of a DIE: tag, children flag and attribute layout (no values)."""

    code: int
    tag: int
    has_children: bool
    attributes: tuple = field(default_factory=tuple)  # Tuple[AttributeSpec, ...]


class AbbreviationTable:
    """Mapping code -> AbbreviationEntry for one .debug_abbrev sub-table."""

    def __init__(self, offset: int, entries: Dict[int, AbbreviationEntry]):
        self.offset = offset
        self._entries = entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, code: int) -> bool:
        return code in self._entries

    def get(self, code: int) -> AbbreviationEntry:
        """Get the entry for an abbreviation code.

        Raises:
            MalformedDwarfError: If the code is not defined in this table
        """
        entry = self._entries.get(code)
        if entry is None:
            raise MalformedDwarfError(
                f"Abbreviation code {code} not defined in table at 0x{self.offset:x}"
            )
        return entry

    def entries(self) -> List[AbbreviationEntry]:
        return list(self._entries.values())


def parse_abbreviation_table(data: bytes, offset: int, little_endian: bool = True) -> AbbreviationTable:
    """Parse one abbreviation sub-table starting at offset.

    Args:
        data: Contents of .debug_abbrev
        offset: Offset of the sub-table (from the unit header)
        little_endian: Target byte order

    Returns:
        AbbreviationTable for the sub-table

    Raises:
        MalformedDwarfError: On structurally invalid records
        TruncatedError: If the table runs off the end of the section
    """
    if offset >= len(data):
        raise MalformedDwarfError(
            f"Abbreviation offset outside .debug_abbrev (size 0x{len(data):x})", offset
        )

    cursor = ByteCursor(data, offset, little_endian)
    entries: Dict[int, AbbreviationEntry] = {}

    while True:
        record_offset = cursor.offset
        code = cursor.uleb128()
        if code == 0:
            break

        tag = cursor.uleb128()
        if tag == 0:
            raise MalformedDwarfError(f"Abbreviation {code} has tag 0", record_offset)

        children = cursor.u8()
        if children not in (0, 1):
            raise MalformedDwarfError(
                f"Abbreviation {code} has invalid children flag {children}", record_offset
            )

        specs = []
        while True:
            name = cursor.uleb128()
            form = cursor.uleb128()
            if name == 0 and form == 0:
                break
            if name == 0 or form == 0:
                raise MalformedDwarfError(
                    f"Abbreviation {code} has invalid attribute pair ({name}, {form})",
                    record_offset,
                )
            if form not in KNOWN_FORMS:
                raise MalformedDwarfError(
                    f"Abbreviation {code} uses unknown form 0x{form:x} for "
                    f"{dw.attribute_name(name)}",
                    record_offset,
                )
            implicit = cursor.sleb128() if form == dw.DW_FORM_implicit_const else None
            specs.append(AttributeSpec(name, form, implicit))

        if code in entries:
            raise MalformedDwarfError(f"Duplicate abbreviation code {code}", record_offset)
        entries[code] = AbbreviationEntry(code, tag, bool(children), tuple(specs))

    logger.debug(f"Parsed {len(entries)} abbreviations at .debug_abbrev+0x{offset:x}")
    return AbbreviationTable(offset, entries)
