"""
Type system for DWARF debug information.

Follows a DIE's DW_AT_type chain through typedefs and qualifiers down to a
leaf the value reader can convert: a base type, a pointer, or an opaque
"unknown" type that only exposes its size.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.die_parser import DIE, DIEParser, ValueClass
from dwarfvar.dwarf.exceptions import MalformedDwarfError, UnsupportedTypeError

logger = logging.getLogger(__name__)


class TypeKind(Enum):
    SIGNED_INT = 'signed'
    UNSIGNED_INT = 'unsigned'
    FLOAT = 'float'
    BOOL = 'bool'
    POINTER = 'pointer'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class TypeDescriptor:
    """Resolved leaf type of a variable."""

    kind: TypeKind
    byte_size: int
    name: str
    die_offset: int  # Terminal type DIE
    encoding: Optional[int] = None  # DW_ATE_* for base types

    @property
    def is_integer(self) -> bool:
        return self.kind in (TypeKind.SIGNED_INT, TypeKind.UNSIGNED_INT, TypeKind.BOOL)


# Tags that only rename or qualify the type they point at
ALIAS_TAGS = frozenset((
    dw.DW_TAG_typedef,
    dw.DW_TAG_const_type,
    dw.DW_TAG_volatile_type,
    dw.DW_TAG_restrict_type,
    dw.DW_TAG_atomic_type,
    dw.DW_TAG_immutable_type,
))

POINTER_TAGS = frozenset((
    dw.DW_TAG_pointer_type,
    dw.DW_TAG_reference_type,
    dw.DW_TAG_rvalue_reference_type,
    dw.DW_TAG_ptr_to_member_type,
))

_ENCODING_KINDS = {
    dw.DW_ATE_signed: TypeKind.SIGNED_INT,
    dw.DW_ATE_signed_char: TypeKind.SIGNED_INT,
    dw.DW_ATE_unsigned: TypeKind.UNSIGNED_INT,
    dw.DW_ATE_unsigned_char: TypeKind.UNSIGNED_INT,
    dw.DW_ATE_UTF: TypeKind.UNSIGNED_INT,
    dw.DW_ATE_float: TypeKind.FLOAT,
    dw.DW_ATE_boolean: TypeKind.BOOL,
    dw.DW_ATE_address: TypeKind.POINTER,
}

_QUALIFIER_PREFIXES = {
    dw.DW_TAG_const_type: 'const',
    dw.DW_TAG_volatile_type: 'volatile',
    dw.DW_TAG_restrict_type: 'restrict',
    dw.DW_TAG_atomic_type: '_Atomic',
    dw.DW_TAG_immutable_type: 'immutable',
}

_POINTER_SUFFIXES = {
    dw.DW_TAG_pointer_type: '*',
    dw.DW_TAG_reference_type: '&',
    dw.DW_TAG_rvalue_reference_type: '&&',
    dw.DW_TAG_ptr_to_member_type: '::*',
}

_AGGREGATE_KEYWORDS = {
    dw.DW_TAG_structure_type: 'struct',
    dw.DW_TAG_class_type: 'class',
    dw.DW_TAG_union_type: 'union',
    dw.DW_TAG_enumeration_type: 'enum',
}


def _is_alias(die: DIE) -> bool:
    return die.tag in ALIAS_TAGS or (die.tag == dw.DW_TAG_enumeration_type and die.has(dw.DW_AT_type))


class TypeResolver:
    """Resolves type DIEs to TypeDescriptors.

    Descriptors are memoized per starting DIE offset; the cache is filled
    under a lock so concurrent lookups agree.
    """

    def __init__(self, die_parser: DIEParser):
        self.die_parser = die_parser
        self._type_cache: Dict[int, TypeDescriptor] = {}
        self._lock = threading.Lock()

    def type_of(self, die: DIE) -> TypeDescriptor:
        """Resolve the type of a variable DIE.

        A definition without DW_AT_type inherits it from the declaration
        named by DW_AT_specification or DW_AT_abstract_origin.

        Raises:
            MalformedDwarfError: If no DW_AT_type can be found
        """
        seen = set()
        current = die
        while current is not None and current.offset not in seen:
            if current.has(dw.DW_AT_type):
                return self.resolve_type(self.die_parser.follow_reference(current, dw.DW_AT_type).offset)
            seen.add(current.offset)
            current = (self.die_parser.follow_reference(current, dw.DW_AT_specification)
                       or self.die_parser.follow_reference(current, dw.DW_AT_abstract_origin))
        raise MalformedDwarfError(f"{dw.tag_name(die.tag)} has no DW_AT_type", die.offset)

    def resolve_type(self, type_offset: int) -> TypeDescriptor:
        """Resolve a type by its DIE offset.

        Args:
            type_offset: DIE offset of the type

        Returns:
            Leaf TypeDescriptor

        Raises:
            MalformedDwarfError: On a type cycle, dangling reference or missing attribute
            UnsupportedTypeError: On a base type encoding with no scalar mapping
        """
        descriptor = self._type_cache.get(type_offset)
        if descriptor is not None:
            return descriptor

        with self._lock:
            descriptor = self._type_cache.get(type_offset)
            if descriptor is None:
                descriptor = self._resolve(self.die_parser.get_die(type_offset))
                self._type_cache[type_offset] = descriptor
                logger.debug(f"Resolved type at 0x{type_offset:x}: {descriptor}")
        return descriptor

    def _resolve(self, start: DIE) -> TypeDescriptor:
        display_name = None
        seen = set()
        current = start

        while _is_alias(current):
            if current.offset in seen:
                raise MalformedDwarfError("Cycle in type chain", current.offset)
            seen.add(current.offset)
            if display_name is None and current.tag in (dw.DW_TAG_typedef, dw.DW_TAG_enumeration_type):
                display_name = current.name

            target = self.die_parser.follow_reference(current, dw.DW_AT_type)
            if target is None:
                raise MalformedDwarfError(f"{dw.tag_name(current.tag)} has no DW_AT_type",
                                          current.offset)
            current = target

        if current.tag in POINTER_TAGS:
            byte_size = current.constant(dw.DW_AT_byte_size)
            if byte_size is None:
                byte_size = self.die_parser.unit_of(current).address_size
            return TypeDescriptor(
                kind=TypeKind.POINTER,
                byte_size=byte_size,
                name=display_name or self.get_type_name(current.offset),
                die_offset=current.offset,
            )

        if current.tag == dw.DW_TAG_base_type:
            return self._resolve_base_type(current, display_name)

        byte_size = current.constant(dw.DW_AT_byte_size)
        return TypeDescriptor(
            kind=TypeKind.UNKNOWN,
            byte_size=byte_size or 0,
            name=display_name or self.get_type_name(current.offset),
            die_offset=current.offset,
        )

    def _resolve_base_type(self, die: DIE, display_name: Optional[str]) -> TypeDescriptor:
        """Resolve a base type DIE."""
        encoding = die.constant(dw.DW_AT_encoding)
        if encoding is None:
            raise MalformedDwarfError("Base type has no DW_AT_encoding", die.offset)
        byte_size = die.constant(dw.DW_AT_byte_size)
        if byte_size is None:
            raise MalformedDwarfError("Base type has no DW_AT_byte_size", die.offset)

        kind = _ENCODING_KINDS.get(encoding)
        if kind is None:
            raise UnsupportedTypeError(
                f"Base type '{die.name}' has unsupported encoding 0x{encoding:x}", die.offset
            )

        return TypeDescriptor(
            kind=kind,
            byte_size=byte_size,
            name=display_name or die.name or 'unknown',
            die_offset=die.offset,
            encoding=encoding,
        )

    def get_type_name(self, type_offset: Optional[int], max_depth: int = 8) -> str:
        """Get a human-readable name for a type.

        Args:
            type_offset: DIE offset of the type, None for void
            max_depth: Limit on nested pointers/qualifiers

        Returns:
            Type name string
        """
        if type_offset is None:
            return 'void'
        if max_depth <= 0:
            return '...'

        die = self.die_parser.dies.get(type_offset)
        if die is None:
            return 'unknown'

        pointee = die.get(dw.DW_AT_type)
        pointee_offset = None
        if pointee is not None and pointee.value_class is ValueClass.REFERENCE:
            pointee_offset = pointee.value

        if die.tag in _QUALIFIER_PREFIXES:
            inner = self.get_type_name(pointee_offset, max_depth - 1)
            return f"{_QUALIFIER_PREFIXES[die.tag]} {inner}"
        if die.tag in _POINTER_SUFFIXES:
            inner = self.get_type_name(pointee_offset, max_depth - 1)
            return f"{inner}{_POINTER_SUFFIXES[die.tag]}"
        if die.tag in _AGGREGATE_KEYWORDS:
            return f"{_AGGREGATE_KEYWORDS[die.tag]} {die.name or '<anonymous>'}"
        if die.tag == dw.DW_TAG_array_type:
            return f"{self.get_type_name(pointee_offset, max_depth - 1)}[]"
        if die.tag == dw.DW_TAG_subroutine_type:
            return 'function'
        return die.name or 'unknown'
