"""
Name index over variable and subprogram DIEs.

Maps the names a user would type (qualified C++ names and demangled linkage
names) to DIE offsets. A second, raw index keeps the plain DW_AT_name and the
mangled linkage name. The index is built on first lookup.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.die_parser import DIE, DIEParser, ValueClass
from dwarfvar.dwarf.exceptions import AmbiguousNameError, NotFoundError
from dwarfvar.utils.demangle import Demangler

logger = logging.getLogger(__name__)


VARIABLE = 'variable'
SUBPROGRAM = 'subprogram'

_INDEXED_TAGS = {
    dw.DW_TAG_variable: VARIABLE,
    dw.DW_TAG_subprogram: SUBPROGRAM,
}

_NAMED_SCOPES = (dw.DW_TAG_class_type, dw.DW_TAG_structure_type, dw.DW_TAG_union_type)
_UNIT_TAGS = (dw.DW_TAG_compile_unit, dw.DW_TAG_partial_unit, dw.DW_TAG_type_unit)
_ORIGIN_ATTRIBUTES = (dw.DW_AT_specification, dw.DW_AT_abstract_origin)
_LINKAGE_ATTRIBUTES = (dw.DW_AT_linkage_name, dw.DW_AT_MIPS_linkage_name)

ANONYMOUS_NAMESPACE = '(anonymous namespace)'

# kind -> name -> DIE offsets in encounter order
_Table = Dict[str, Dict[str, List[int]]]


class NameIndex:
    """Lookup table from names to variable/subprogram DIEs.

    Args:
        die_parser: Parsed DIE arena
        demangler: Used to turn linkage names into source-level names
        duplicate_names: 'first' resolves duplicates to the first DIE in
            unit order, 'error' raises AmbiguousNameError
    """

    def __init__(self, die_parser: DIEParser, demangler: Demangler, duplicate_names: str = 'first'):
        self.die_parser = die_parser
        self.demangler = demangler
        self.duplicate_names = duplicate_names

        self._lock = threading.Lock()
        self._built = False
        self._demangled: _Table = {VARIABLE: {}, SUBPROGRAM: {}}
        self._raw: _Table = {VARIABLE: {}, SUBPROGRAM: {}}
        self._qualified_cache: Dict[int, Optional[str]] = {}

    def _ensure_built(self):
        if self._built:
            return
        with self._lock:
            if not self._built:
                self._build()
                self._built = True

    def _build(self):
        entries = []
        for die in self.die_parser.iter_dies():
            kind = _INDEXED_TAGS.get(die.tag)
            if kind is None or die.is_declaration:
                continue

            named = self._named_origin(die)
            if named is None:
                continue
            entries.append((kind, die.offset, named, self._linkage_name(die)))

        # One demangler round trip for the whole binary
        demangled = self.demangler.demangle_many(
            linkage for _, _, _, linkage in entries if linkage is not None
        )

        for kind, offset, named, linkage in entries:
            qualified = self._qualified_name(named)
            if qualified is not None:
                _add(self._demangled[kind], qualified, offset)
            if named.name is not None:
                _add(self._raw[kind], named.name, offset)
            if linkage is not None:
                _add(self._raw[kind], linkage, offset)
                _add(self._demangled[kind], demangled[linkage], offset)

        logger.debug(
            f"Indexed {len(entries)} DIEs: {len(self._demangled[VARIABLE])} variable names, "
            f"{len(self._demangled[SUBPROGRAM])} subprogram names"
        )

    def _origin(self, die: DIE) -> Optional[DIE]:
        """Follow DW_AT_specification / DW_AT_abstract_origin one step."""
        for name in _ORIGIN_ATTRIBUTES:
            attr = die.get(name)
            # References into supplementary files cannot be followed
            if attr is not None and attr.value_class in (ValueClass.REFERENCE, ValueClass.SIGNATURE):
                return self.die_parser.follow_reference(die, name)
        return None

    def _named_origin(self, die: DIE) -> Optional[DIE]:
        """Find the DIE that supplies this DIE's name.

        Out-of-line definitions and inlined/concrete instances carry no name of
        their own; it lives on the declaration they point at.
        """
        seen = set()
        current = die
        while current is not None and current.offset not in seen:
            if current.name is not None:
                return current
            seen.add(current.offset)
            current = self._origin(current)
        return None

    def _linkage_name(self, die: DIE) -> Optional[str]:
        seen = set()
        current = die
        while current is not None and current.offset not in seen:
            for name in _LINKAGE_ATTRIBUTES:
                attr = current.get(name)
                if attr is not None and attr.value_class is ValueClass.STRING:
                    return attr.value
            seen.add(current.offset)
            current = self._origin(current)
        return None

    def _qualified_name(self, die: DIE) -> Optional[str]:
        """Join enclosing scope names with '::' as a demangler would print them."""
        if die.offset in self._qualified_cache:
            return self._qualified_cache[die.offset]
        # Guard against a scope chain that loops back through a subprogram
        self._qualified_cache[die.offset] = die.name

        parts = [die.name]
        parent = self.die_parser.parent_of(die)
        while parent is not None and parent.tag not in _UNIT_TAGS:
            if parent.tag == dw.DW_TAG_namespace:
                parts.append(parent.name or ANONYMOUS_NAMESPACE)
            elif parent.tag in _NAMED_SCOPES:
                if parent.name is not None:
                    parts.append(parent.name)
            elif parent.tag == dw.DW_TAG_subprogram:
                named = self._named_origin(parent)
                scope = self._qualified_name(named) if named is not None else None
                if scope is not None:
                    parts.append(scope)
                    break
            parent = self.die_parser.parent_of(parent)

        qualified = '::'.join(reversed(parts))
        self._qualified_cache[die.offset] = qualified
        return qualified

    def _select(self, table: _Table, name: str, kind: str) -> DIE:
        self._ensure_built()
        offsets = table[kind].get(name)
        if not offsets:
            raise NotFoundError(name, kind)
        if len(offsets) > 1:
            if self.duplicate_names == 'error':
                raise AmbiguousNameError(name, offsets)
            logger.debug(f"'{name}' matches {len(offsets)} DIEs, using 0x{offsets[0]:x}")
        return self.die_parser.get_die(offsets[0])

    def lookup(self, name: str, kind: str = VARIABLE) -> DIE:
        """Find a DIE by qualified or demangled name.

        Raises:
            NotFoundError: If no DIE has that name
            AmbiguousNameError: If several DIEs do and duplicates are errors
        """
        return self._select(self._demangled, name, kind)

    def lookup_raw(self, name: str, kind: str = VARIABLE) -> DIE:
        """Find a DIE by its plain DW_AT_name or mangled linkage name."""
        return self._select(self._raw, name, kind)

    def candidates(self, name: str, kind: str = VARIABLE, raw: bool = False) -> List[int]:
        """Get every DIE offset indexed under a name, in unit order."""
        self._ensure_built()
        table = self._raw if raw else self._demangled
        return list(table[kind].get(name, ()))

    def names(self, kind: str = VARIABLE) -> List[Tuple[str, int]]:
        """Get (name, first DIE offset) pairs in index order."""
        self._ensure_built()
        return [(name, offsets[0]) for name, offsets in self._demangled[kind].items()]


def _add(table: Dict[str, List[int]], name: str, offset: int):
    offsets = table.setdefault(name, [])
    if offset not in offsets:
        offsets.append(offset)
