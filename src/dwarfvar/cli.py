"""
dwarfvar command line entry point.

Looks a global variable up by name in an ELF (or Watcom PE) binary and prints
its type, address and value.
"""

import argparse
import logging
import sys

from dwarfvar.config import DebugInfoOptions
from dwarfvar.dwarf.exceptions import DebugInfoError
from dwarfvar.dwarf.type_info import TypeKind
from dwarfvar.dwarf.variable_info import DebugInfo, Variable
from dwarfvar.models import TypeReport, VariableListing, VariableReport
from dwarfvar.utils.demangle import CxxFiltDemangler, IdentityDemangler
from dwarfvar.utils.memory import MemoryImage, format_hex_dump

logger = logging.getLogger(__name__)


CONVERSIONS = {
    'u8': Variable.to_u8,
    'u16': Variable.to_u16,
    'u32': Variable.to_u32,
    'u64': Variable.to_u64,
    'i8': Variable.to_i8,
    'i16': Variable.to_i16,
    'i32': Variable.to_i32,
    'i64': Variable.to_i64,
    'f32': Variable.to_f32,
    'f64': Variable.to_f64,
    'bool': Variable.to_bool,
    'address': Variable.to_address,
    'bytes': Variable.read_bytes,
}

DEFAULT_CONVERSIONS = {
    TypeKind.SIGNED_INT: 'i64',
    TypeKind.UNSIGNED_INT: 'u64',
    TypeKind.FLOAT: 'f64',
    TypeKind.BOOL: 'bool',
    TypeKind.POINTER: 'address',
    TypeKind.UNKNOWN: 'bytes',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dwarfvar",
        description="Read a global variable's value using the binary's DWARF debug information"
    )
    parser.add_argument("file", help="ELF file, or PE file with an appended Watcom ELF container")
    parser.add_argument("name", nargs="?", help="Variable name (qualified or demangled)")
    parser.add_argument(
        "--as",
        dest="conversion",
        choices=sorted(CONVERSIONS),
        help="Conversion to apply (default: chosen from the variable's type)"
    )
    parser.add_argument(
        "--raw-name",
        action="store_true",
        help="Look NAME up as a plain DW_AT_name or mangled linkage name"
    )
    parser.add_argument(
        "--no-demangle",
        action="store_true",
        help="Do not run linkage names through c++filt"
    )
    parser.add_argument(
        "--strict-duplicates",
        action="store_true",
        help="Fail when NAME matches more than one variable"
    )
    parser.add_argument(
        "--no-zero-fill",
        action="store_true",
        help="Treat .bss and other file-backless ranges as unmapped"
    )
    parser.add_argument(
        "--memory",
        metavar="DUMP",
        help="Read values from a raw memory dump instead of the file image"
    )
    parser.add_argument(
        "--memory-base",
        type=lambda s: int(s, 0),
        default=0,
        help="Address of the first byte of --memory (default: 0)"
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument("--list", action="store_true", help="List every indexed variable name")
    parser.add_argument("--dump", action="store_true", help="Print the DIE tree")
    parser.add_argument(
        "--dump-depth",
        type=int,
        default=None,
        help="Maximum DIE depth for --dump"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)"
    )
    return parser


def _format_value(value) -> str:
    if isinstance(value, bytes):
        return '\n' + format_hex_dump(value) if value else '<empty>'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def build_report(variable: Variable, conversion: str, memory=None) -> VariableReport:
    """Read a variable and describe it as a VariableReport."""
    descriptor = variable.base_type()
    value = CONVERSIONS[conversion](variable, memory)
    if isinstance(value, bytes):
        value = value.hex()
    return VariableReport(
        name=variable.name,
        die_offset=variable.die_offset,
        type=TypeReport(
            name=descriptor.name,
            kind=descriptor.kind.value,
            byte_size=descriptor.byte_size,
            die_offset=descriptor.die_offset,
        ),
        address=variable.address,
        value=value,
    )


def run(args: argparse.Namespace) -> int:
    options = DebugInfoOptions(
        duplicate_names="error" if args.strict_duplicates else "first",
        zero_fill_bss=not args.no_zero_fill,
    )
    demangler = IdentityDemangler() if args.no_demangle else CxxFiltDemangler()
    info = DebugInfo.load(args.file, demangler=demangler, options=options)

    if args.dump:
        print(info.dump(args.dump_depth))
        return 0

    if args.list:
        names = [name for name, _ in info.iter_variables()]
        if args.json:
            print(VariableListing(variables=names).model_dump_json(indent=2))
        else:
            for name in names:
                print(name)
        return 0

    if args.name is None:
        logger.error("NAME is required unless --list or --dump is given")
        return 2

    memory = MemoryImage.from_file(args.memory, args.memory_base) if args.memory else None
    if args.raw_name:
        variable = info.variable_from_name(args.name)
    else:
        variable = info.variable_from_demangled_name(args.name)

    conversion = args.conversion or DEFAULT_CONVERSIONS[variable.base_type().kind]
    report = build_report(variable, conversion, memory)

    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        raw_value = CONVERSIONS[conversion](variable, memory) if conversion == 'bytes' else report.value
        print(f"{report.name}: {report.type.name} ({report.type.kind}, {report.type.byte_size} bytes)")
        print(f"  address: 0x{report.address:x}")
        print(f"  value:   {_format_value(raw_value)}")
    return 0


def main(argv=None):
    """Main entry point for dwarfvar."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        sys.exit(run(args))
    except DebugInfoError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
