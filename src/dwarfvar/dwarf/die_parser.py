"""
DIE (Debug Information Entry) parser for DWARF debug information.

Decodes .debug_info with the unit's abbreviation table into an arena of DIEs
keyed by section offset. Parent and child links are offsets into the arena,
so the tree carries no ownership cycles and is immutable once built.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional

from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.abbrev import AbbreviationTable, AttributeSpec, parse_abbreviation_table
from dwarfvar.dwarf.cursor import ByteCursor
from dwarfvar.dwarf.exceptions import MalformedDwarfError, UnsupportedFormError

logger = logging.getLogger(__name__)


class ValueClass(Enum):
    """How an attribute's value should be interpreted."""

    ADDRESS = 'address'
    UNSIGNED = 'unsigned'
    SIGNED = 'signed'
    BLOCK = 'block'
    STRING = 'string'
    REFERENCE = 'reference'  # Absolute .debug_info offset
    FLAG = 'flag'
    EXPRLOC = 'exprloc'
    SEC_OFFSET = 'sec_offset'
    SIGNATURE = 'signature'  # DW_FORM_ref_sig8 type signature
    STR_INDEX = 'str_index'  # Unresolved until the unit's str_offsets_base is known
    ADDR_INDEX = 'addr_index'  # Unresolved until the unit's addr_base is known
    RAW = 'raw'  # Form recognized but not interpreted


_FIXED_UNSIGNED = {
    dw.DW_FORM_data1: 1,
    dw.DW_FORM_data2: 2,
    dw.DW_FORM_data4: 4,
    dw.DW_FORM_data8: 8,
}

_UNIT_REFERENCES = {
    dw.DW_FORM_ref1: 1,
    dw.DW_FORM_ref2: 2,
    dw.DW_FORM_ref4: 4,
    dw.DW_FORM_ref8: 8,
}

_BLOCK_LENGTHS = {
    dw.DW_FORM_block1: 1,
    dw.DW_FORM_block2: 2,
    dw.DW_FORM_block4: 4,
}

_STR_INDEX_WIDTHS = {
    dw.DW_FORM_strx1: 1,
    dw.DW_FORM_strx2: 2,
    dw.DW_FORM_strx3: 3,
    dw.DW_FORM_strx4: 4,
}

_ADDR_INDEX_WIDTHS = {
    dw.DW_FORM_addrx1: 1,
    dw.DW_FORM_addrx2: 2,
    dw.DW_FORM_addrx3: 3,
    dw.DW_FORM_addrx4: 4,
}

# Supplementary-file forms: the referenced data lives in another object file.
_OFFSET_SIZED_RAW = (dw.DW_FORM_strp_sup, dw.DW_FORM_GNU_strp_alt, dw.DW_FORM_GNU_ref_alt)


@dataclass(frozen=True)
class Attribute:
    """A decoded attribute value."""

    name: int
    form: int
    value_class: ValueClass
    value: object
    offset: int  # Position of the value in .debug_info

    def __repr__(self):
        return (f"Attribute({dw.attribute_name(self.name)}, {dw.form_name(self.form)}, "
                f"{self.value!r})")


@dataclass
class DIE:
    """One node of the DWARF information tree."""

    offset: int
    tag: int
    cu_offset: int
    attributes: Dict[int, Attribute]
    has_children: bool = False
    parent: Optional[int] = None  # Offset of the parent DIE (non-owning)
    children: List[int] = field(default_factory=list)

    def get(self, name: int) -> Optional[Attribute]:
        return self.attributes.get(name)

    def has(self, name: int) -> bool:
        return name in self.attributes

    def string(self, name: int) -> Optional[str]:
        """Get a string attribute, or None if absent.

        Raises:
            UnsupportedFormError: If the attribute is not stored as a string
        """
        attr = self.attributes.get(name)
        if attr is None:
            return None
        if attr.value_class is not ValueClass.STRING:
            raise UnsupportedFormError(dw.form_name(attr.form), attr.offset)
        return attr.value

    def constant(self, name: int) -> Optional[int]:
        """Get an integer constant attribute, or None if absent.

        Raises:
            UnsupportedFormError: If the attribute is not a constant
        """
        attr = self.attributes.get(name)
        if attr is None:
            return None
        if attr.value_class not in (ValueClass.UNSIGNED, ValueClass.SIGNED):
            raise UnsupportedFormError(dw.form_name(attr.form), attr.offset)
        return attr.value

    def flag(self, name: int) -> bool:
        attr = self.attributes.get(name)
        if attr is None:
            return False
        return bool(attr.value)

    @property
    def name(self) -> Optional[str]:
        attr = self.attributes.get(dw.DW_AT_name)
        if attr is None or attr.value_class is not ValueClass.STRING:
            return None
        return attr.value

    @property
    def is_declaration(self) -> bool:
        return self.flag(dw.DW_AT_declaration)

    def __repr__(self):
        return f"DIE(0x{self.offset:x}, {dw.tag_name(self.tag)}, name={self.name!r})"


@dataclass
class CompilationUnit:
    """A unit header from .debug_info and the DIEs it owns."""

    offset: int
    unit_length: int
    version: int
    unit_type: int
    address_size: int
    offset_size: int
    abbrev_offset: int
    end_offset: int
    type_signature: Optional[int] = None
    type_offset: Optional[int] = None  # Absolute offset of the type DIE (type units)
    str_offsets_base: Optional[int] = None
    addr_base: Optional[int] = None
    roots: List[int] = field(default_factory=list)  # Top-level DIE offsets
    die_offsets: List[int] = field(default_factory=list)

    @property
    def root(self) -> Optional[int]:
        return self.roots[0] if self.roots else None

    @property
    def is_type_unit(self) -> bool:
        return self.type_signature is not None


@dataclass
class SubprogramInfo:
    """Represents a function/subprogram with debug information."""

    name: str
    low_pc: Optional[int]  # Start address
    high_pc: Optional[int]  # End address (exclusive)
    die_offset: int

    def contains_address(self, address: int) -> bool:
        """Check if address is within this subprogram's range."""
        if self.low_pc is None or self.high_pc is None:
            return False
        return self.low_pc <= address < self.high_pc


class DIEParser:
    """Parser for the .debug_info DIE forest.

    Builds every compilation unit eagerly. After construction the arena is
    read-only and may be shared between threads.

    Args:
        sections: Section name -> contents. '.debug_info' and '.debug_abbrev'
            are required; '.debug_str', '.debug_line_str',
            '.debug_str_offsets' and '.debug_addr' are used when present.
        little_endian: Target byte order
    """

    def __init__(self, sections: Mapping[str, bytes], little_endian: bool = True):
        self.little_endian = little_endian
        self._info = sections['.debug_info']
        self._abbrev = sections['.debug_abbrev']
        self._str = sections.get('.debug_str')
        self._line_str = sections.get('.debug_line_str')
        self._str_offsets = sections.get('.debug_str_offsets')
        self._addr = sections.get('.debug_addr')

        self.units: List[CompilationUnit] = []
        self.dies: Dict[int, DIE] = {}
        self._units_by_offset: Dict[int, CompilationUnit] = {}
        self._abbrev_tables: Dict[int, AbbreviationTable] = {}
        self._type_signatures: Dict[int, int] = {}  # signature -> type DIE offset

        self._parse_units()

    def _parse_units(self):
        """Walk every unit header in .debug_info."""
        cursor = ByteCursor(self._info, 0, self.little_endian)
        while not cursor.at_end():
            start = cursor.offset
            if not any(self._info[start:start + 4]):
                # Zero padding between or after units
                logger.debug(f"Skipping padding at 0x{start:x}")
                cursor.seek(start + 4)
                continue
            unit = self._parse_unit_header(cursor)
            table = self._abbreviation_table(unit.abbrev_offset)
            self._parse_unit_dies(unit, table, cursor.offset)
            self._resolve_indexed_values(unit)

            self.units.append(unit)
            self._units_by_offset[unit.offset] = unit
            if unit.is_type_unit:
                self._type_signatures[unit.type_signature] = unit.type_offset
            cursor.seek(unit.end_offset)

        logger.info(
            f"Parsed {len(self.units)} units, {len(self.dies)} DIEs, "
            f"{len(self._abbrev_tables)} abbreviation tables"
        )

    def _parse_unit_header(self, cursor: ByteCursor) -> CompilationUnit:
        unit_offset = cursor.offset
        unit_length = cursor.u32()
        offset_size = 4
        if unit_length == 0xffffffff:
            # 64-bit DWARF
            unit_length = cursor.u64()
            offset_size = 8
        elif unit_length >= 0xfffffff0:
            raise MalformedDwarfError(f"Reserved unit length 0x{unit_length:x}", unit_offset)

        end_offset = cursor.offset + unit_length
        if end_offset > len(self._info):
            raise MalformedDwarfError(
                f"Unit length 0x{unit_length:x} runs past end of .debug_info", unit_offset
            )

        # Header fields must lie inside the declared unit
        outer = cursor
        cursor = ByteCursor(memoryview(self._info)[:end_offset], cursor.offset, self.little_endian)

        version = cursor.u16()
        if version < 2 or version > 5:
            raise MalformedDwarfError(f"Unsupported DWARF version {version}", unit_offset)

        type_signature = None
        type_offset = None
        if version >= 5:
            unit_type = cursor.u8()
            address_size = cursor.u8()
            abbrev_offset = cursor.read_offset(offset_size)
            if unit_type in (dw.DW_UT_type, dw.DW_UT_split_type):
                type_signature = cursor.u64()
                type_offset = unit_offset + cursor.read_offset(offset_size)
            elif unit_type in (dw.DW_UT_skeleton, dw.DW_UT_split_compile):
                cursor.skip(8)  # dwo_id
            elif unit_type not in (dw.DW_UT_compile, dw.DW_UT_partial):
                raise MalformedDwarfError(f"Unknown unit type 0x{unit_type:x}", unit_offset)
        else:
            unit_type = dw.DW_UT_compile
            abbrev_offset = cursor.read_offset(offset_size)
            address_size = cursor.u8()

        if address_size not in (1, 2, 4, 8):
            raise MalformedDwarfError(f"Invalid address size {address_size}", unit_offset)

        outer.seek(cursor.offset)
        return CompilationUnit(
            offset=unit_offset,
            unit_length=unit_length,
            version=version,
            unit_type=unit_type,
            address_size=address_size,
            offset_size=offset_size,
            abbrev_offset=abbrev_offset,
            end_offset=end_offset,
            type_signature=type_signature,
            type_offset=type_offset,
        )

    def _abbreviation_table(self, offset: int) -> AbbreviationTable:
        table = self._abbrev_tables.get(offset)
        if table is None:
            table = parse_abbreviation_table(self._abbrev, offset, self.little_endian)
            self._abbrev_tables[offset] = table
        return table

    def _parse_unit_dies(self, unit: CompilationUnit, table: AbbreviationTable, start: int):
        """Decode the DIEs of one unit, linking parents and children.

        The cursor is bounded by the unit's end so a DIE that overruns the
        declared unit length fails with TruncatedError.
        """
        cursor = ByteCursor(memoryview(self._info)[:unit.end_offset], start, self.little_endian)
        parents: List[Optional[int]] = []
        parent: Optional[int] = None

        while not cursor.at_end():
            die_offset = cursor.offset
            code = cursor.uleb128()
            if code == 0:
                # End of a sibling list; nulls at top level are padding
                if parents:
                    parent = parents.pop()
                continue

            abbrev = table.get(code)
            attributes: Dict[int, Attribute] = {}
            for spec in abbrev.attributes:
                attr = self._read_attribute(cursor, unit, spec)
                attributes.setdefault(spec.name, attr)

            die = DIE(
                offset=die_offset,
                tag=abbrev.tag,
                cu_offset=unit.offset,
                attributes=attributes,
                has_children=abbrev.has_children,
                parent=parent,
            )
            self.dies[die_offset] = die
            unit.die_offsets.append(die_offset)
            if parent is None:
                unit.roots.append(die_offset)
            else:
                self.dies[parent].children.append(die_offset)

            if abbrev.has_children:
                parents.append(parent)
                parent = die_offset

    def _read_attribute(self, cursor: ByteCursor, unit: CompilationUnit,
                        spec: AttributeSpec) -> Attribute:
        value_offset = cursor.offset
        form = spec.form
        if form == dw.DW_FORM_indirect:
            form = cursor.uleb128()
            while form == dw.DW_FORM_indirect:
                form = cursor.uleb128()
            if form == dw.DW_FORM_implicit_const:
                raise MalformedDwarfError("DW_FORM_implicit_const used through DW_FORM_indirect",
                                          value_offset)
        value_class, value = self._read_form(cursor, unit, form, spec)
        return Attribute(spec.name, form, value_class, value, value_offset)

    def _read_form(self, cursor: ByteCursor, unit: CompilationUnit, form: int,
                   spec: AttributeSpec):
        """Decode one value according to its form.

        Returns:
            Tuple of (ValueClass, value)

        Raises:
            MalformedDwarfError: If the form's width cannot be determined
        """
        if form == dw.DW_FORM_addr:
            return ValueClass.ADDRESS, cursor.read_uint(unit.address_size)

        if form in _FIXED_UNSIGNED:
            return ValueClass.UNSIGNED, cursor.read_uint(_FIXED_UNSIGNED[form])
        if form == dw.DW_FORM_udata:
            return ValueClass.UNSIGNED, cursor.uleb128()
        if form == dw.DW_FORM_sdata:
            return ValueClass.SIGNED, cursor.sleb128()
        if form == dw.DW_FORM_implicit_const:
            return ValueClass.SIGNED, spec.implicit_const
        if form == dw.DW_FORM_data16:
            return ValueClass.BLOCK, cursor.read_bytes(16)

        if form == dw.DW_FORM_string:
            return ValueClass.STRING, _decode(cursor.cstring())
        if form == dw.DW_FORM_strp:
            return ValueClass.STRING, self._string_at(self._str, '.debug_str',
                                                      cursor.read_offset(unit.offset_size))
        if form == dw.DW_FORM_line_strp:
            return ValueClass.STRING, self._string_at(self._line_str, '.debug_line_str',
                                                      cursor.read_offset(unit.offset_size))
        if form in (dw.DW_FORM_strx, dw.DW_FORM_GNU_str_index):
            return ValueClass.STR_INDEX, cursor.uleb128()
        if form in _STR_INDEX_WIDTHS:
            return ValueClass.STR_INDEX, cursor.read_uint(_STR_INDEX_WIDTHS[form])

        if form in (dw.DW_FORM_addrx, dw.DW_FORM_GNU_addr_index):
            return ValueClass.ADDR_INDEX, cursor.uleb128()
        if form in _ADDR_INDEX_WIDTHS:
            return ValueClass.ADDR_INDEX, cursor.read_uint(_ADDR_INDEX_WIDTHS[form])

        if form in _BLOCK_LENGTHS:
            length = cursor.read_uint(_BLOCK_LENGTHS[form])
            return ValueClass.BLOCK, cursor.read_bytes(length)
        if form == dw.DW_FORM_block:
            return ValueClass.BLOCK, cursor.read_bytes(cursor.uleb128())
        if form == dw.DW_FORM_exprloc:
            return ValueClass.EXPRLOC, cursor.read_bytes(cursor.uleb128())

        if form == dw.DW_FORM_flag:
            return ValueClass.FLAG, cursor.u8() != 0
        if form == dw.DW_FORM_flag_present:
            return ValueClass.FLAG, True

        if form in _UNIT_REFERENCES:
            return ValueClass.REFERENCE, unit.offset + cursor.read_uint(_UNIT_REFERENCES[form])
        if form == dw.DW_FORM_ref_udata:
            return ValueClass.REFERENCE, unit.offset + cursor.uleb128()
        if form == dw.DW_FORM_ref_addr:
            # DWARF 2 encodes ref_addr with the address size
            size = unit.address_size if unit.version == 2 else unit.offset_size
            return ValueClass.REFERENCE, cursor.read_uint(size)
        if form == dw.DW_FORM_ref_sig8:
            return ValueClass.SIGNATURE, cursor.u64()

        if form == dw.DW_FORM_sec_offset:
            return ValueClass.SEC_OFFSET, cursor.read_offset(unit.offset_size)
        if form in (dw.DW_FORM_loclistx, dw.DW_FORM_rnglistx):
            return ValueClass.SEC_OFFSET, cursor.uleb128()

        if form in _OFFSET_SIZED_RAW:
            return ValueClass.RAW, cursor.read_bytes(unit.offset_size)
        if form == dw.DW_FORM_ref_sup4:
            return ValueClass.RAW, cursor.read_bytes(4)
        if form == dw.DW_FORM_ref_sup8:
            return ValueClass.RAW, cursor.read_bytes(8)

        raise MalformedDwarfError(f"Cannot decode form 0x{form:x}", cursor.offset)

    def _string_at(self, section: Optional[bytes], section_name: str, offset: int) -> str:
        if section is None:
            raise MalformedDwarfError(f"String reference into missing section {section_name}")
        if offset >= len(section):
            raise MalformedDwarfError(
                f"String offset 0x{offset:x} outside {section_name} (size 0x{len(section):x})"
            )
        return _decode(ByteCursor(section, offset, self.little_endian).cstring())

    def _resolve_indexed_values(self, unit: CompilationUnit):
        """Replace string/address index forms once the unit's bases are known."""
        root = self.dies.get(unit.root) if unit.root is not None else None
        if root is not None:
            base = root.get(dw.DW_AT_str_offsets_base)
            if base is not None:
                unit.str_offsets_base = base.value
            base = root.get(dw.DW_AT_addr_base) or root.get(dw.DW_AT_GNU_addr_base)
            if base is not None:
                unit.addr_base = base.value

        for die_offset in unit.die_offsets:
            die = self.dies[die_offset]
            for name, attr in list(die.attributes.items()):
                if attr.value_class is ValueClass.STR_INDEX:
                    value = self.read_string_index(unit, attr.value)
                    die.attributes[name] = Attribute(name, attr.form, ValueClass.STRING,
                                                     value, attr.offset)
                elif attr.value_class is ValueClass.ADDR_INDEX:
                    value = self.read_address_index(unit, attr.value)
                    die.attributes[name] = Attribute(name, attr.form, ValueClass.ADDRESS,
                                                     value, attr.offset)

    def read_string_index(self, unit: CompilationUnit, index: int) -> str:
        """Resolve a DW_FORM_strx index through .debug_str_offsets."""
        if self._str_offsets is None:
            raise MalformedDwarfError("String index used without .debug_str_offsets", unit.offset)
        base = unit.str_offsets_base
        if base is None:
            # Skip the contribution header (unit_length, version, padding)
            base = 0 if unit.version < 5 else 2 * unit.offset_size
        position = base + index * unit.offset_size
        if position + unit.offset_size > len(self._str_offsets):
            raise MalformedDwarfError(f"String index {index} outside .debug_str_offsets",
                                      unit.offset)
        cursor = ByteCursor(self._str_offsets, position, self.little_endian)
        return self._string_at(self._str, '.debug_str', cursor.read_offset(unit.offset_size))

    def read_address_index(self, unit: CompilationUnit, index: int) -> int:
        """Resolve a DW_FORM_addrx / DW_OP_addrx index through .debug_addr."""
        if self._addr is None:
            raise MalformedDwarfError("Address index used without .debug_addr", unit.offset)
        base = unit.addr_base
        if base is None:
            # Skip the contribution header (unit_length, version, address_size, segment size)
            base = 0 if unit.version < 5 else unit.offset_size + 4
        position = base + index * unit.address_size
        if position + unit.address_size > len(self._addr):
            raise MalformedDwarfError(f"Address index {index} outside .debug_addr", unit.offset)
        return ByteCursor(self._addr, position, self.little_endian).read_uint(unit.address_size)

    def get_die(self, offset: int) -> DIE:
        """Get a DIE by its .debug_info offset.

        Raises:
            MalformedDwarfError: If no DIE starts at that offset
        """
        die = self.dies.get(offset)
        if die is None:
            raise MalformedDwarfError("Reference to offset with no DIE", offset)
        return die

    def unit_of(self, die: DIE) -> CompilationUnit:
        return self._units_by_offset[die.cu_offset]

    def parent_of(self, die: DIE) -> Optional[DIE]:
        return self.dies[die.parent] if die.parent is not None else None

    def children_of(self, die: DIE) -> Iterator[DIE]:
        for offset in die.children:
            yield self.dies[offset]

    def iter_dies(self) -> Iterator[DIE]:
        """Yield every DIE in unit order, then section order."""
        for unit in self.units:
            for offset in unit.die_offsets:
                yield self.dies[offset]

    def follow_reference(self, die: DIE, name: int) -> Optional[DIE]:
        """Follow a reference attribute to the DIE it names.

        Returns:
            The referenced DIE, or None if the attribute is absent

        Raises:
            MalformedDwarfError: If the reference is dangling or the signature unknown
            UnsupportedFormError: If the reference points into a supplementary file
        """
        attr = die.get(name)
        if attr is None:
            return None
        if attr.value_class is ValueClass.REFERENCE:
            target = self.dies.get(attr.value)
            if target is None:
                raise MalformedDwarfError(
                    f"{dw.attribute_name(name)} of DIE 0x{die.offset:x} points to "
                    f"0x{attr.value:x}, which is not a DIE",
                    attr.offset,
                )
            return target
        if attr.value_class is ValueClass.SIGNATURE:
            target_offset = self._type_signatures.get(attr.value)
            if target_offset is None:
                raise MalformedDwarfError(f"Unknown type signature 0x{attr.value:016x}",
                                          attr.offset)
            return self.get_die(target_offset)
        raise UnsupportedFormError(dw.form_name(attr.form), attr.offset)

    def parse_subprogram(self, die: DIE, name: str) -> SubprogramInfo:
        """Build a SubprogramInfo from a subprogram DIE.

        DW_AT_high_pc is an offset from low_pc when stored as a constant,
        an absolute address when stored with DW_FORM_addr.
        """
        low_attr = die.get(dw.DW_AT_low_pc)
        high_attr = die.get(dw.DW_AT_high_pc)
        low_pc = low_attr.value if low_attr is not None else None
        high_pc = None
        if low_pc is not None and high_attr is not None:
            if high_attr.value_class is ValueClass.ADDRESS:
                high_pc = high_attr.value
            else:
                high_pc = low_pc + high_attr.value

        return SubprogramInfo(name=name, low_pc=low_pc, high_pc=high_pc, die_offset=die.offset)

    def get_die_count(self) -> int:
        """Get the number of parsed DIEs."""
        return len(self.dies)


def _decode(raw: bytes) -> str:
    return raw.decode('utf-8', errors='replace')
