"""
Options controlling how debug information is resolved.
"""

from typing import Literal

from pydantic import BaseModel, Field


class DebugInfoOptions(BaseModel):
    """Resolution policies for DebugInfo."""

    duplicate_names: Literal["first", "error"] = Field(
        default="first",
        description="'first' resolves a duplicated name to the first DIE in unit order, "
                    "'error' raises AmbiguousNameError",
    )
    zero_fill_bss: bool = Field(
        default=True,
        description="Read .bss and other file-backless ranges as zeros",
    )
    allow_null_address: bool = Field(
        default=False,
        description="Accept variables located at address 0 instead of treating them as optimized out",
    )
