"""
Objtree exception hierarchy.
"""

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Any


# Classes --------------------------------------------------------------------------------------------------------------

class SerializationError(Exception):
    """A value cannot be encoded into a node tree."""


class DeserializationError(Exception):
    """A node tree violates the wire format and cannot be decoded."""


class UnknownReferenceError(DeserializationError):
    """A back-reference names an id that was never registered in the current session."""

    def __init__(self, ref_id: str):
        self.ref_id = ref_id
        super().__init__(f"unknown reference id {ref_id!r}")


class InvalidImplicitSurrogateError(TypeError):
    """
    A type declares malformed or conflicting implicit surrogate methods.

    Raised on first metadata lookup of the offending type, never at class creation.
    """

    def __init__(self, typ: type, member: Any, reason: str):
        self.type = typ
        self.member = member
        self.reason = reason
        owner = getattr(typ, "__qualname__", repr(typ))
        super().__init__(f"invalid implicit surrogate {owner}.{member}: {reason}")
