"""
DWARF location expression evaluator.

Evaluates DW_AT_location expressions of global and static variables to a
fixed address. Only the stack operations that can produce a static address
are implemented; anything needing registers, a frame base or target memory
is reported as unsupported.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from dwarfvar.dwarf import constants as dw
from dwarfvar.dwarf.cursor import ByteCursor
from dwarfvar.dwarf.die_parser import DIE, CompilationUnit, DIEParser, ValueClass
from dwarfvar.dwarf.exceptions import DebugInfoError, UnsupportedLocationError

logger = logging.getLogger(__name__)


_CONST_WIDTHS = {
    dw.DW_OP_const1u: 1,
    dw.DW_OP_const2u: 2,
    dw.DW_OP_const4u: 4,
    dw.DW_OP_const8u: 8,
}


@dataclass(frozen=True)
class LocationResult:
    """Outcome of resolving a variable's location.

    Either a static address, or the error explaining why there is none.
    """

    address: Optional[int] = None
    error: Optional[DebugInfoError] = None

    @property
    def is_static(self) -> bool:
        return self.error is None

    def require(self) -> int:
        """Get the address, re-raising the original error if there is none."""
        if self.error is not None:
            raise self.error
        return self.address


class LocationEvaluator:
    """Evaluates DWARF location expressions.

    Uses the stack-based evaluation model defined by the DWARF standard.

    Args:
        die_parser: Parsed DIE arena (for DW_OP_addrx and unit address sizes)
        allow_null_address: Accept an address of 0 instead of treating the
            variable as optimized out
    """

    def __init__(self, die_parser: DIEParser, allow_null_address: bool = False):
        self.die_parser = die_parser
        self.allow_null_address = allow_null_address

    def resolve(self, die: DIE) -> LocationResult:
        """Resolve a variable DIE's location without raising.

        Returns:
            LocationResult holding the address or the error
        """
        try:
            return LocationResult(address=self.address_of(die))
        except DebugInfoError as e:
            logger.debug(f"No static location for DIE 0x{die.offset:x}: {e}")
            return LocationResult(error=e)

    def address_of(self, die: DIE) -> int:
        """Compute the static address of a variable DIE.

        Raises:
            UnsupportedLocationError: If the location is absent, a location
                list, uses an unsupported opcode, or resolves to 0
            TruncatedError: If an opcode's operand is cut short
        """
        attr = self._location_attribute(die)
        if attr is None:
            if die.has(dw.DW_AT_const_value):
                raise UnsupportedLocationError("Variable is a compile-time constant", die.offset)
            raise UnsupportedLocationError("Variable has no DW_AT_location", die.offset)

        if attr.value_class in (ValueClass.UNSIGNED, ValueClass.SEC_OFFSET):
            raise UnsupportedLocationError("Location lists are not supported", die.offset)
        if attr.value_class not in (ValueClass.EXPRLOC, ValueClass.BLOCK):
            raise UnsupportedLocationError(
                f"DW_AT_location stored as {dw.form_name(attr.form)}", die.offset
            )

        unit = self.die_parser.unit_of(die)
        address = self.evaluate_location(attr.value, unit, die.offset)
        if address == 0 and not self.allow_null_address:
            raise UnsupportedLocationError("Variable was optimized out (address 0)", die.offset)
        return address

    def _location_attribute(self, die: DIE):
        """Find DW_AT_location on the DIE or the definition it completes."""
        seen = set()
        current = die
        while current is not None and current.offset not in seen:
            attr = current.get(dw.DW_AT_location)
            if attr is not None:
                return attr
            seen.add(current.offset)
            current = self.die_parser.follow_reference(current, dw.DW_AT_abstract_origin)
        return None

    def evaluate_location(self, expr: bytes, unit: CompilationUnit,
                          die_offset: Optional[int] = None) -> int:
        """Evaluate a location expression to get an address.

        Args:
            expr: Location expression bytes
            unit: Unit the expression belongs to (address size, addr_base)
            die_offset: Owning DIE, for error messages

        Returns:
            Computed address

        Raises:
            UnsupportedLocationError: If expression cannot be evaluated statically
        """
        if not expr:
            raise UnsupportedLocationError("Empty location expression", die_offset)

        address_mask = (1 << (8 * unit.address_size)) - 1
        cursor = ByteCursor(expr, 0, self.die_parser.little_endian)
        stack: List[int] = []

        while not cursor.at_end():
            opcode = cursor.u8()

            # Absolute address
            if opcode == dw.DW_OP_addr:
                stack.append(cursor.read_uint(unit.address_size))

            elif opcode in (dw.DW_OP_addrx, dw.DW_OP_GNU_addr_index):
                index = cursor.uleb128()
                stack.append(self.die_parser.read_address_index(unit, index))

            # Constants
            elif opcode in _CONST_WIDTHS:
                stack.append(cursor.read_uint(_CONST_WIDTHS[opcode]))

            elif opcode == dw.DW_OP_constu:
                stack.append(cursor.uleb128())

            elif dw.DW_OP_lit0 <= opcode <= dw.DW_OP_lit31:
                stack.append(opcode - dw.DW_OP_lit0)

            # Arithmetic operations
            elif opcode == dw.DW_OP_plus_uconst:
                if not stack:
                    raise UnsupportedLocationError("DW_OP_plus_uconst on empty stack", die_offset)
                stack[-1] = (stack[-1] + cursor.uleb128()) & address_mask

            elif opcode == dw.DW_OP_plus:
                if len(stack) < 2:
                    raise UnsupportedLocationError("DW_OP_plus requires 2 stack items", die_offset)
                b = stack.pop()
                a = stack.pop()
                stack.append((a + b) & address_mask)

            elif opcode == dw.DW_OP_nop:
                pass

            else:
                raise UnsupportedLocationError(
                    f"Unsupported opcode {dw.op_name(opcode)}", die_offset
                )

        # Result is top of stack
        if not stack:
            raise UnsupportedLocationError("Expression evaluation left empty stack", die_offset)

        return stack[-1]
