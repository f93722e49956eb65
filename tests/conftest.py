"""
Pytest fixtures for dwarfvar.
Provides a synthetic C/C++ program: its DWARF sections, the data the variables
live in, and factories for loading it through the facade.
"""

import struct

import pytest

from dwarf_builder import DwarfBuilder, Entry, Segment, addr_expr, build_elf
from dwarfvar.config import DebugInfoOptions
from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.parser import MappedRange, SectionProvider
from dwarfvar.dwarf.variable_info import DebugInfo
from dwarfvar.utils.demangle import IdentityDemangler


DATA_ADDRESS = 0x1000
BSS_ADDRESS = 0x2000
BSS_SIZE = 0x100
UNMAPPED_ADDRESS = 0x9000
MAIN_LOW_PC = 0x401000

# Data segment contents, by address
DATA = bytearray(0x50)
DATA[0x00:0x04] = struct.pack('<I', 42)  # X
DATA[0x04:0x08] = struct.pack('<i', -5)  # counter
DATA[0x08:0x0c] = struct.pack('<f', 1.5)  # ratio
DATA[0x10:0x18] = struct.pack('<d', 2.25)  # precise
DATA[0x18] = 1  # enabled
DATA[0x20:0x28] = struct.pack('<Q', DATA_ADDRESS + 4)  # counter_ptr
DATA[0x28:0x30] = struct.pack('<Q', 1 << 32)  # big
DATA[0x30:0x38] = bytes(range(1, 9))  # origin
DATA[0x38:0x3c] = struct.pack('<i', 7)  # ns::inner
DATA[0x3c:0x40] = struct.pack('<i', 3)  # (anonymous namespace)::hidden
DATA[0x40:0x42] = struct.pack('<H', 100)  # Config::limit
DATA[0x44:0x48] = struct.pack('<i', 12)  # main::calls
DATA[0x48:0x4c] = struct.pack('<i', 99)  # counter (second unit)
DATA[0x4c] = 0xff  # level


def var(name, type_label, address, *extra, label=None):
    attrs = [(dw.DW_AT_name, dw.DW_FORM_string, name)]
    if type_label is not None:
        attrs.append((dw.DW_AT_type, dw.DW_FORM_ref4, type_label))
    if address is not None:
        attrs.append((dw.DW_AT_location, dw.DW_FORM_exprloc, addr_expr(address)))
    attrs.extend(extra)
    return Entry(dw.DW_TAG_variable, attrs, label=label)


def base(name, size, encoding, label):
    return Entry(dw.DW_TAG_base_type, [
        (dw.DW_AT_name, dw.DW_FORM_strp, name),
        (dw.DW_AT_byte_size, dw.DW_FORM_data1, size),
        (dw.DW_AT_encoding, dw.DW_FORM_data1, encoding),
    ], label=label)


def build_sample(builder: DwarfBuilder = None) -> DwarfBuilder:
    """Two C++ compilation units exercising the supported constructs."""
    builder = builder or DwarfBuilder()
    types = [
        base('unsigned int', 4, dw.DW_ATE_unsigned, 'uint'),
        base('int', 4, dw.DW_ATE_signed, 'int'),
        base('float', 4, dw.DW_ATE_float, 'float'),
        base('double', 8, dw.DW_ATE_float, 'double'),
        base('bool', 1, dw.DW_ATE_boolean, 'bool'),
        base('unsigned long', 8, dw.DW_ATE_unsigned, 'ulong'),
        base('unsigned short', 2, dw.DW_ATE_unsigned, 'ushort'),
        base('unsigned char', 1, dw.DW_ATE_unsigned_char, 'uchar'),
        base('complex float', 8, dw.DW_ATE_complex_float, 'cfloat'),
        Entry(dw.DW_TAG_const_type, [(dw.DW_AT_type, dw.DW_FORM_ref4, 'uint')], label='const_uint'),
        Entry(dw.DW_TAG_typedef, [
            (dw.DW_AT_name, dw.DW_FORM_string, 'u32_t'),
            (dw.DW_AT_type, dw.DW_FORM_ref4, 'const_uint'),
        ], label='u32_t'),
        Entry(dw.DW_TAG_pointer_type, [(dw.DW_AT_type, dw.DW_FORM_ref4, 'int')], label='int_ptr'),
        Entry(dw.DW_TAG_structure_type, [
            (dw.DW_AT_name, dw.DW_FORM_string, 'Point'),
            (dw.DW_AT_byte_size, dw.DW_FORM_data1, 8),
        ], label='point'),
        Entry(dw.DW_TAG_enumeration_type, [
            (dw.DW_AT_name, dw.DW_FORM_string, 'Level'),
            (dw.DW_AT_type, dw.DW_FORM_ref4, 'uchar'),
            (dw.DW_AT_byte_size, dw.DW_FORM_data1, 1),
        ], label='level_enum'),
        Entry(dw.DW_TAG_volatile_type, [(dw.DW_AT_type, dw.DW_FORM_ref4, 'loop_b')], label='loop_a'),
        Entry(dw.DW_TAG_typedef, [
            (dw.DW_AT_name, dw.DW_FORM_string, 'loop_t'),
            (dw.DW_AT_type, dw.DW_FORM_ref4, 'loop_a'),
        ], label='loop_b'),
    ]

    variables = [
        var('X', 'u32_t', DATA_ADDRESS, (dw.DW_AT_external, dw.DW_FORM_flag_present, True)),
        var('counter', 'int', DATA_ADDRESS + 0x04),
        var('ratio', 'float', DATA_ADDRESS + 0x08),
        var('precise', 'double', DATA_ADDRESS + 0x10),
        var('enabled', 'bool', DATA_ADDRESS + 0x18),
        var('counter_ptr', 'int_ptr', DATA_ADDRESS + 0x20),
        var('big', 'ulong', DATA_ADDRESS + 0x28),
        var('origin', 'point', DATA_ADDRESS + 0x30),
        var('level', 'level_enum', DATA_ADDRESS + 0x4c),
        var('zeroed', 'int', BSS_ADDRESS + 0x10),
        var('unmapped', 'int', UNMAPPED_ADDRESS),
        var('optimized', 'int', 0),
        var('in_register', 'int', None, (dw.DW_AT_location, dw.DW_FORM_exprloc, bytes([0x50]))),
        var('listed', 'int', None, (dw.DW_AT_location, dw.DW_FORM_sec_offset, 0x40)),
        var('constant', 'int', None, (dw.DW_AT_const_value, dw.DW_FORM_data1, 5)),
        var('dangling', 0x7fff, DATA_ADDRESS),
        var('looped', 'loop_a', DATA_ADDRESS),
        var('untyped', None, DATA_ADDRESS),
        var('complex_value', 'cfloat', DATA_ADDRESS + 0x08),
        var('declared_only', 'int', None, (dw.DW_AT_declaration, dw.DW_FORM_flag_present, True)),
        Entry(dw.DW_TAG_namespace, [(dw.DW_AT_name, dw.DW_FORM_string, 'ns')], children=[
            var('inner', 'int', DATA_ADDRESS + 0x38,
                (dw.DW_AT_linkage_name, dw.DW_FORM_strp, '_ZN2ns5innerE')),
        ]),
        Entry(dw.DW_TAG_namespace, [], children=[
            var('hidden', 'int', DATA_ADDRESS + 0x3c),
        ]),
        Entry(dw.DW_TAG_structure_type, [
            (dw.DW_AT_name, dw.DW_FORM_string, 'Config'),
            (dw.DW_AT_byte_size, dw.DW_FORM_data1, 1),
        ], children=[
            var('limit', 'ushort', None, (dw.DW_AT_declaration, dw.DW_FORM_flag_present, True),
                label='limit_decl'),
        ]),
        Entry(dw.DW_TAG_variable, [
            (dw.DW_AT_specification, dw.DW_FORM_ref4, 'limit_decl'),
            (dw.DW_AT_location, dw.DW_FORM_exprloc, addr_expr(DATA_ADDRESS + 0x40)),
        ]),
        Entry(dw.DW_TAG_subprogram, [
            (dw.DW_AT_name, dw.DW_FORM_string, 'main'),
            (dw.DW_AT_low_pc, dw.DW_FORM_addr, MAIN_LOW_PC),
            (dw.DW_AT_high_pc, dw.DW_FORM_data4, 0x20),
            (dw.DW_AT_type, dw.DW_FORM_ref4, 'int'),
        ], children=[
            var('calls', 'int', DATA_ADDRESS + 0x44),
        ]),
    ]

    builder.add_unit(Entry(dw.DW_TAG_compile_unit, [
        (dw.DW_AT_producer, dw.DW_FORM_strp, 'GNU C++17 13.2.0'),
        (dw.DW_AT_name, dw.DW_FORM_strp, 'main.cpp'),
    ], children=types + variables))

    builder.add_unit(Entry(dw.DW_TAG_compile_unit, [
        (dw.DW_AT_name, dw.DW_FORM_strp, 'other.cpp'),
    ], children=[
        base('int', 4, dw.DW_ATE_signed, 'int2'),
        var('counter', 'int2', DATA_ADDRESS + 0x48),
    ]))
    return builder


def sample_mappings():
    return [
        MappedRange(DATA_ADDRESS, 0, len(DATA), len(DATA), '.data'),
        MappedRange(BSS_ADDRESS, len(DATA), 0, BSS_SIZE, '.bss'),
    ]


@pytest.fixture
def sample_sections():
    """DWARF sections of the sample program."""
    return build_sample().build()


@pytest.fixture
def sample_provider(sample_sections):
    return SectionProvider(sample_sections, sample_mappings(), bytes(DATA))


@pytest.fixture
def load_info(sample_sections):
    """Factory loading the sample program with given options."""

    def load(**options) -> DebugInfo:
        provider = SectionProvider(sample_sections, sample_mappings(), bytes(DATA))
        return DebugInfo.load(provider, demangler=IdentityDemangler(),
                              options=DebugInfoOptions(**options))

    return load


@pytest.fixture
def sample_info(load_info):
    return load_info()


@pytest.fixture
def sample_elf(sample_sections):
    """The sample program as an ELF64 executable."""
    return build_elf(sample_sections, segments=[
        Segment(DATA_ADDRESS, bytes(DATA)),
        Segment(BSS_ADDRESS, b'', BSS_SIZE),
    ])
