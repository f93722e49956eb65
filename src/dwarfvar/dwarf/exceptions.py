"""
Debug information exception classes.

Every failure raised while decoding or resolving DWARF data is a
DebugInfoError subclass, so callers can tell "the name is wrong" apart from
"the binary's debug info is corrupt or unsupported".
"""

from typing import Optional


class DebugInfoError(Exception):
    """Base exception for all debug information errors."""
    pass


class LoadError(DebugInfoError):
    """The container could not be loaded or carries no DWARF data."""
    pass


class DecodeError(DebugInfoError):
    """Low-level failure decoding a byte stream."""
    pass


class TruncatedError(DecodeError):
    """A read ran past the end of its buffer."""
    def __init__(self, offset: int, size: int, available: int):
        super().__init__(
            f"Truncated data: need {size} bytes at offset 0x{offset:x}, "
            f"only {available} available"
        )
        self.offset = offset
        self.size = size
        self.available = available


class MalformedEncodingError(DecodeError):
    """A variable-length integer overflowed 64 bits."""
    def __init__(self, offset: int, reason: str):
        super().__init__(f"Malformed LEB128 at offset 0x{offset:x}: {reason}")
        self.offset = offset


class MalformedDwarfError(DebugInfoError):
    """Structurally invalid DWARF: bad tag/form, dangling reference, missing attribute."""
    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at 0x{offset:x})"
        super().__init__(message)
        self.offset = offset


class UnsupportedFormError(DebugInfoError):
    """Attribute is stored in a form this engine does not interpret."""
    def __init__(self, form_name: str, offset: Optional[int] = None):
        where = f" at 0x{offset:x}" if offset is not None else ""
        super().__init__(f"Unsupported attribute form {form_name}{where}")
        self.form_name = form_name
        self.offset = offset


class UnsupportedTypeError(DebugInfoError):
    """Type is recognized but cannot be converted to a scalar."""
    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (type DIE 0x{offset:x})"
        super().__init__(message)
        self.offset = offset


class UnsupportedLocationError(DebugInfoError):
    """Location expression is not a static address."""
    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (DIE 0x{offset:x})"
        super().__init__(message)
        self.offset = offset


class NotFoundError(DebugInfoError):
    """No DIE carries the requested name."""
    def __init__(self, name: str, kind: str = "variable"):
        super().__init__(f"No {kind} named '{name}' found in debug information")
        self.name = name
        self.kind = kind


class AmbiguousNameError(DebugInfoError):
    """Name matches several DIEs and duplicate names are configured as errors."""
    def __init__(self, name: str, offsets: list[int]):
        where = ", ".join(f"0x{o:x}" for o in offsets)
        super().__init__(f"Name '{name}' is defined by several DIEs: {where}")
        self.name = name
        self.offsets = offsets


class AddressNotMappedError(DebugInfoError):
    """Address has no backing section or segment."""
    def __init__(self, address: int, size: int,
                 reason: str = "is not mapped by any loadable segment or section"):
        super().__init__(f"Address 0x{address:08x} (+{size} bytes) {reason}")
        self.address = address
        self.size = size


class AmbiguousAddressError(AddressNotMappedError):
    """Address lies in several mapped ranges, so its backing bytes are unknown."""
    def __init__(self, address: int, size: int, names: list[str]):
        super().__init__(address, size, f"lies in several mapped ranges: {', '.join(names)}")
        self.names = names


class TypeMismatchError(DebugInfoError):
    """Requested scalar conversion is lossy or the type is non-numeric."""
    def __init__(self, requested: str, type_name: str, reason: str):
        super().__init__(f"Cannot read '{type_name}' as {requested}: {reason}")
        self.requested = requested
        self.type_name = type_name
