"""
High-level variable inspection.

Orchestrates DIE parsing, name lookup, type resolution and location
evaluation to turn a symbol name into a typed, readable Variable.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple, Union

from dwarfvar.config import DebugInfoOptions
from dwarfvar.dwarf.die_parser import DIE, DIEParser, SubprogramInfo
from dwarfvar.dwarf.exceptions import DebugInfoError, LoadError, NotFoundError
from dwarfvar.dwarf.location_eval import LocationEvaluator, LocationResult
from dwarfvar.dwarf.name_index import SUBPROGRAM, VARIABLE, NameIndex
from dwarfvar.dwarf.parser import ElfSectionProvider, SectionProvider
from dwarfvar.dwarf.type_info import TypeDescriptor, TypeResolver
from dwarfvar.dwarf.value_reader import MemorySource, ValueReader
from dwarfvar.utils.demangle import CxxFiltDemangler, Demangler
from dwarfvar.utils.dump import format_die_tree

logger = logging.getLogger(__name__)


REQUIRED_SECTIONS = ('.debug_info', '.debug_abbrev')


@dataclass(frozen=True)
class Variable:
    """A resolved global or static variable.

    Every to_* conversion reads the value from the binary image, or from
    memory when a memory source is given.
    """

    name: str
    die_offset: int
    type: TypeDescriptor
    location: LocationResult
    reader: ValueReader = field(repr=False, compare=False)

    def base_type(self) -> TypeDescriptor:
        return self.type

    @property
    def address(self) -> int:
        """Static address of the variable.

        Raises:
            UnsupportedLocationError: (or the original location error) if the
                variable has no static address
        """
        return self.location.require()

    def read_bytes(self, memory: Optional[MemorySource] = None) -> bytes:
        return self.reader.read_bytes(self.address, self.type, memory)

    def to_u8(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_unsigned(self.address, self.type, 1, memory)

    def to_u16(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_unsigned(self.address, self.type, 2, memory)

    def to_u32(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_unsigned(self.address, self.type, 4, memory)

    def to_u64(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_unsigned(self.address, self.type, 8, memory)

    def to_i8(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_signed(self.address, self.type, 1, memory)

    def to_i16(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_signed(self.address, self.type, 2, memory)

    def to_i32(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_signed(self.address, self.type, 4, memory)

    def to_i64(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_signed(self.address, self.type, 8, memory)

    def to_f32(self, memory: Optional[MemorySource] = None) -> float:
        return self.reader.to_float(self.address, self.type, 4, memory)

    def to_f64(self, memory: Optional[MemorySource] = None) -> float:
        return self.reader.to_float(self.address, self.type, 8, memory)

    def to_bool(self, memory: Optional[MemorySource] = None) -> bool:
        return self.reader.to_bool(self.address, self.type, memory)

    def to_address(self, memory: Optional[MemorySource] = None) -> int:
        return self.reader.to_address(self.address, self.type, memory)


class DebugInfo:
    """Debug information of one binary.

    Parses every unit at construction. Name index, type descriptors and
    variables are built lazily and cached; lookups are safe from several
    threads.

    Args:
        provider: Section provider owning the image
        demangler: Linkage name demangler (c++filt by default)
        options: Resolution policies
    """

    def __init__(self, provider: SectionProvider, demangler: Optional[Demangler] = None,
                 options: Optional[DebugInfoOptions] = None):
        self.provider = provider
        self.options = options or DebugInfoOptions()
        self.demangler = demangler or CxxFiltDemangler()

        sections = provider.debug_sections()
        missing = [name for name in REQUIRED_SECTIONS if not sections.get(name)]
        if missing:
            raise LoadError(f"No DWARF debug information (missing {', '.join(missing)})")

        self.die_parser = DIEParser(sections, provider.little_endian)
        self.name_index = NameIndex(self.die_parser, self.demangler, self.options.duplicate_names)
        self.type_resolver = TypeResolver(self.die_parser)
        self.location_evaluator = LocationEvaluator(self.die_parser, self.options.allow_null_address)
        self.value_reader = ValueReader(provider, self.options.zero_fill_bss)

        self._variables: Dict[Tuple[str, bool], Variable] = {}
        self._lock = threading.Lock()

        logger.info(
            f"Loaded debug info: {len(self.die_parser.units)} units, "
            f"{self.die_parser.get_die_count()} DIEs"
        )

    @classmethod
    def load(cls, source: Union[str, Path, bytes, SectionProvider],
             demangler: Optional[Demangler] = None,
             options: Optional[DebugInfoOptions] = None) -> 'DebugInfo':
        """Load debug information from a path, raw bytes or a section provider.

        Raises:
            LoadError: If the container cannot be parsed or has no DWARF sections
        """
        if isinstance(source, SectionProvider):
            provider = source
        elif isinstance(source, (bytes, bytearray, memoryview)):
            provider = ElfSectionProvider.from_bytes(bytes(source))
        else:
            provider = ElfSectionProvider.from_path(source)
        return cls(provider, demangler, options)

    def _variable(self, name: str, raw: bool) -> Variable:
        key = (name, raw)
        variable = self._variables.get(key)
        if variable is not None:
            return variable

        with self._lock:
            variable = self._variables.get(key)
            if variable is None:
                if raw:
                    die = self.name_index.lookup_raw(name, VARIABLE)
                else:
                    die = self.name_index.lookup(name, VARIABLE)
                variable = self._make_variable(name, die)
                self._variables[key] = variable
        return variable

    def _make_variable(self, name: str, die: DIE) -> Variable:
        descriptor = self.type_resolver.type_of(die)
        location = self.location_evaluator.resolve(die)
        logger.debug(f"Resolved '{name}' at DIE 0x{die.offset:x}: {descriptor.name}")
        return Variable(
            name=name,
            die_offset=die.offset,
            type=descriptor,
            location=location,
            reader=self.value_reader,
        )

    def variable_from_demangled_name(self, name: str) -> Variable:
        """Find a variable by its qualified or demangled name.

        Raises:
            NotFoundError: If no variable has that name
            AmbiguousNameError: If several do and duplicates are configured as errors
            MalformedDwarfError: If the variable's type chain is broken
            UnsupportedTypeError: If its base type has no scalar mapping
        """
        return self._variable(name, raw=False)

    def variable_from_name(self, name: str) -> Variable:
        """Find a variable by its plain DW_AT_name or mangled linkage name."""
        return self._variable(name, raw=True)

    def find_variable(self, predicate: Callable[[Variable], bool]) -> Variable:
        """Get the first variable, in index order, satisfying predicate.

        Variables whose type cannot be resolved are not offered to the predicate.

        Raises:
            NotFoundError: If no variable matches
        """
        for name, offset in self.name_index.names(VARIABLE):
            try:
                variable = self._variable(name, raw=False)
            except DebugInfoError as e:
                logger.debug(f"Skipping '{name}' (DIE 0x{offset:x}): {e}")
                continue
            if predicate(variable):
                return variable
        raise NotFoundError('<predicate>')

    def iter_variables(self) -> Iterator[Tuple[str, int]]:
        """Yield (name, DIE offset) for every indexed variable name."""
        yield from self.name_index.names(VARIABLE)

    def subprogram_from_demangled_name(self, name: str) -> SubprogramInfo:
        """Find a function by its qualified or demangled name.

        Raises:
            NotFoundError: If no subprogram has that name
        """
        die = self.name_index.lookup(name, SUBPROGRAM)
        return self.die_parser.parse_subprogram(die, name)

    def dump(self, max_depth: Optional[int] = None) -> str:
        """Format every unit's DIE tree as text."""
        return format_die_tree(self.die_parser, max_depth)
