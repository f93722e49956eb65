"""
Pydantic models for CLI JSON output.
"""

from typing import List, Optional, Union

from pydantic import BaseModel


class TypeReport(BaseModel):
    """Resolved type of a variable."""
    name: str
    kind: str
    byte_size: int
    die_offset: int


class VariableReport(BaseModel):
    """A variable with its type, address and current value."""
    name: str
    die_offset: int
    type: TypeReport
    address: Optional[int] = None
    value: Optional[Union[bool, int, float, str]] = None
    error: Optional[str] = None


class VariableListing(BaseModel):
    """Names of every indexed variable."""
    variables: List[str]
