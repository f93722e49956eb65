"""
DWARF constants used by the decoder.

Numeric codes are spelled out here; human-readable names for diagnostics
and dumps come from pyelftools' enum tables.
"""

from elftools.dwarf.dwarf_expr import DW_OP_opcode2name
from elftools.dwarf.enums import ENUM_DW_AT, ENUM_DW_FORM, ENUM_DW_TAG


# Tags
DW_TAG_array_type = 0x01
DW_TAG_class_type = 0x02
DW_TAG_enumeration_type = 0x04
DW_TAG_formal_parameter = 0x05
DW_TAG_lexical_block = 0x0b
DW_TAG_member = 0x0d
DW_TAG_pointer_type = 0x0f
DW_TAG_reference_type = 0x10
DW_TAG_compile_unit = 0x11
DW_TAG_structure_type = 0x13
DW_TAG_subroutine_type = 0x15
DW_TAG_typedef = 0x16
DW_TAG_union_type = 0x17
DW_TAG_ptr_to_member_type = 0x1f
DW_TAG_base_type = 0x24
DW_TAG_const_type = 0x26
DW_TAG_subprogram = 0x2e
DW_TAG_variable = 0x34
DW_TAG_volatile_type = 0x35
DW_TAG_restrict_type = 0x37
DW_TAG_namespace = 0x39
DW_TAG_partial_unit = 0x3c
DW_TAG_rvalue_reference_type = 0x42
DW_TAG_type_unit = 0x41
DW_TAG_atomic_type = 0x47
DW_TAG_immutable_type = 0x4b

# Attributes
DW_AT_sibling = 0x01
DW_AT_location = 0x02
DW_AT_name = 0x03
DW_AT_byte_size = 0x0b
DW_AT_const_value = 0x1c
DW_AT_low_pc = 0x11
DW_AT_high_pc = 0x12
DW_AT_language = 0x13
DW_AT_producer = 0x25
DW_AT_abstract_origin = 0x31
DW_AT_declaration = 0x3c
DW_AT_encoding = 0x3e
DW_AT_external = 0x3f
DW_AT_specification = 0x47
DW_AT_type = 0x49
DW_AT_str_offsets_base = 0x72
DW_AT_addr_base = 0x73
DW_AT_linkage_name = 0x6e
DW_AT_MIPS_linkage_name = 0x2007
DW_AT_GNU_addr_base = 0x2133

# Attribute forms
DW_FORM_addr = 0x01
DW_FORM_block2 = 0x03
DW_FORM_block4 = 0x04
DW_FORM_data2 = 0x05
DW_FORM_data4 = 0x06
DW_FORM_data8 = 0x07
DW_FORM_string = 0x08
DW_FORM_block = 0x09
DW_FORM_block1 = 0x0a
DW_FORM_data1 = 0x0b
DW_FORM_flag = 0x0c
DW_FORM_sdata = 0x0d
DW_FORM_strp = 0x0e
DW_FORM_udata = 0x0f
DW_FORM_ref_addr = 0x10
DW_FORM_ref1 = 0x11
DW_FORM_ref2 = 0x12
DW_FORM_ref4 = 0x13
DW_FORM_ref8 = 0x14
DW_FORM_ref_udata = 0x15
DW_FORM_indirect = 0x16
DW_FORM_sec_offset = 0x17
DW_FORM_exprloc = 0x18
DW_FORM_flag_present = 0x19
DW_FORM_strx = 0x1a
DW_FORM_addrx = 0x1b
DW_FORM_ref_sup4 = 0x1c
DW_FORM_strp_sup = 0x1d
DW_FORM_data16 = 0x1e
DW_FORM_line_strp = 0x1f
DW_FORM_ref_sig8 = 0x20
DW_FORM_implicit_const = 0x21
DW_FORM_loclistx = 0x22
DW_FORM_rnglistx = 0x23
DW_FORM_ref_sup8 = 0x24
DW_FORM_strx1 = 0x25
DW_FORM_strx2 = 0x26
DW_FORM_strx3 = 0x27
DW_FORM_strx4 = 0x28
DW_FORM_addrx1 = 0x29
DW_FORM_addrx2 = 0x2a
DW_FORM_addrx3 = 0x2b
DW_FORM_addrx4 = 0x2c
DW_FORM_GNU_addr_index = 0x1f01
DW_FORM_GNU_str_index = 0x1f02
DW_FORM_GNU_ref_alt = 0x1f20
DW_FORM_GNU_strp_alt = 0x1f21

# DWARF 5 unit types
DW_UT_compile = 0x01
DW_UT_type = 0x02
DW_UT_partial = 0x03
DW_UT_skeleton = 0x04
DW_UT_split_compile = 0x05
DW_UT_split_type = 0x06

# Base type encodings
DW_ATE_address = 0x01
DW_ATE_boolean = 0x02
DW_ATE_complex_float = 0x03
DW_ATE_float = 0x04
DW_ATE_signed = 0x05
DW_ATE_signed_char = 0x06
DW_ATE_unsigned = 0x07
DW_ATE_unsigned_char = 0x08
DW_ATE_UTF = 0x10

# Location expression opcodes
DW_OP_addr = 0x03
DW_OP_const1u = 0x08
DW_OP_const2u = 0x0a
DW_OP_const4u = 0x0c
DW_OP_const8u = 0x0e
DW_OP_constu = 0x10
DW_OP_plus = 0x22
DW_OP_plus_uconst = 0x23
DW_OP_lit0 = 0x30
DW_OP_lit31 = 0x4f
DW_OP_nop = 0x96
DW_OP_addrx = 0xa1
DW_OP_GNU_addr_index = 0xfb


_TAG_NAMES = {v: k for k, v in ENUM_DW_TAG.items() if k.startswith('DW_')}
_AT_NAMES = {v: k for k, v in ENUM_DW_AT.items() if k.startswith('DW_')}
_FORM_NAMES = {v: k for k, v in ENUM_DW_FORM.items() if k.startswith('DW_')}


def tag_name(tag: int) -> str:
    return _TAG_NAMES.get(tag, f"DW_TAG_<0x{tag:x}>")


def attribute_name(name: int) -> str:
    return _AT_NAMES.get(name, f"DW_AT_<0x{name:x}>")


def form_name(form: int) -> str:
    return _FORM_NAMES.get(form, f"DW_FORM_<0x{form:x}>")


def op_name(opcode: int) -> str:
    return DW_OP_opcode2name.get(opcode, f"DW_OP_<0x{opcode:02x}>")
