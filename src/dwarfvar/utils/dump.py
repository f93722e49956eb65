"""
Text dump of the DIE forest, for inspecting what a compiler emitted.
"""

from typing import List, Optional

from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.die_parser import DIE, Attribute, DIEParser, ValueClass


def format_attribute_value(attr: Attribute) -> str:
    if attr.value_class in (ValueClass.REFERENCE, ValueClass.ADDRESS, ValueClass.SEC_OFFSET):
        return f"0x{attr.value:x}"
    if attr.value_class is ValueClass.SIGNATURE:
        return f"signature 0x{attr.value:016x}"
    if attr.value_class is ValueClass.STRING:
        return f'"{attr.value}"'
    if isinstance(attr.value, bytes):
        return ' '.join(f'{b:02x}' for b in attr.value) or '<empty>'
    return str(attr.value)


def _format_die(parser: DIEParser, die: DIE, depth: int, max_depth: Optional[int], lines: List[str]):
    indent = '  ' * depth
    lines.append(f"{indent}<0x{die.offset:x}> {dw.tag_name(die.tag)}")
    for attr in die.attributes.values():
        lines.append(f"{indent}    {dw.attribute_name(attr.name)} "
                     f"[{dw.form_name(attr.form)}] {format_attribute_value(attr)}")
    if max_depth is not None and depth >= max_depth:
        if die.children:
            lines.append(f"{indent}  ... {len(die.children)} children")
        return
    for child in parser.children_of(die):
        _format_die(parser, child, depth + 1, max_depth, lines)


def format_die_tree(parser: DIEParser, max_depth: Optional[int] = None) -> str:
    """Format every unit header and its DIEs as an indented listing.

    Args:
        parser: Parsed DIE arena
        max_depth: Stop descending below this depth (None for no limit)

    Returns:
        Multi-line dump string
    """
    lines = []
    for unit in parser.units:
        lines.append(
            f"Unit at 0x{unit.offset:x}: version {unit.version}, "
            f"address size {unit.address_size}, offset size {unit.offset_size}, "
            f"{len(unit.die_offsets)} DIEs"
        )
        for root in unit.roots:
            _format_die(parser, parser.dies[root], 1, max_depth, lines)
    return '\n'.join(lines)
