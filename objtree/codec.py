"""
Objtree Text Codec

Canonical text forms for primitives and enums, and the condensed array format:
a single comma-separated run of tokens for arrays of primitives or strings.

Condensed string tokens are escaped so that splitting on ',' is always exact:

    None        -> ''        (empty token)
    ''          -> '\\_'
    '\\'        -> '\\\\'
    ','         -> '\\`'

Example:
    >>> join_condensed(["hello,", "homer", "", "!", None, "what?"], str)
    'hello\\\\`,homer,\\\\_,!,,what?'
"""

# Standard library -----------------------------------------------------------------------------------------------------
from enum import Enum, Flag
from functools import reduce
from operator import or_
from typing import Any, Iterable, Sequence

# Local ----------------------------------------------------------------------------------------------------------------
from .errors import DeserializationError
from .tools import fmt_type, fmt_value
from .utils import is_enum, is_primitive, is_string

EMPTY_STRING_TOKEN = "\\_"

_ESCAPES = {"\\": "\\", "`": ","}


# Primitives -----------------------------------------------------------------------------------------------------------

def encode_primitive(value: Any) -> str:
    """
    Return the canonical text of a bool, int, float or complex value.

    Floats and complex numbers use repr() so the text round-trips exactly.
    """
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, (float, complex)):
        return repr(value)
    raise TypeError(f"value must be a primitive, got {fmt_type(value)}")


def decode_primitive(text: str | None, tp: type) -> Any:
    """
    Parse canonical primitive text into tp.

    Raises:
        DeserializationError: If the text is not a valid literal for tp.
    """
    if not is_primitive(tp):
        raise TypeError(f"tp must be a primitive type, got {fmt_type(tp)}")
    s = (text or "").strip()
    if issubclass(tp, bool):
        lowered = s.lower()
        if lowered in ("true", "1"):
            return tp(True)
        if lowered in ("false", "0"):
            return tp(False)
        raise DeserializationError(f"invalid {tp.__name__} literal: {fmt_value(text)}")
    try:
        return tp(s)
    except ValueError as e:
        raise DeserializationError(f"invalid {tp.__name__} literal: {fmt_value(text)}") from e


# Enums ----------------------------------------------------------------------------------------------------------------

def encode_enum(value: Enum) -> str:
    """
    Return the member name of an enum value.

    Flag values render as the ', '-joined names of their set members, or '0' when empty.
    """
    if isinstance(value, Flag):
        names = [member.name for member in value]
        return ", ".join(names) if names else "0"
    if isinstance(value, Enum):
        return value.name
    raise TypeError(f"value must be an Enum member, got {fmt_type(value)}")


def decode_enum(text: str | None, tp: type) -> Enum:
    """
    Parse an enum member name (or a ', '-joined list of Flag names) into tp.

    Raises:
        DeserializationError: If a name is not a member of tp.
    """
    if not is_enum(tp):
        raise TypeError(f"tp must be an Enum type, got {fmt_type(tp)}")
    s = (text or "").strip()
    try:
        if issubclass(tp, Flag):
            if s.lstrip("-").isdigit():
                return tp(int(s))
            return reduce(or_, (tp[name.strip()] for name in s.split(",")), tp(0))
        return tp[s]
    except (KeyError, ValueError) as e:
        raise DeserializationError(f"{fmt_value(text)} is not a member of {fmt_type(tp)}") from e


# Condensed Strings ----------------------------------------------------------------------------------------------------

def protect_string(s: str | None) -> str:
    """Escape one string for use as a condensed-array token."""
    if s is None:
        return ""
    if s == "":
        return EMPTY_STRING_TOKEN
    return s.replace("\\", "\\\\").replace(",", "\\`")


def unprotect_string(token: str) -> str | None:
    """Invert protect_string for a single token."""
    if token == "":
        return None
    if token == EMPTY_STRING_TOKEN:
        return ""

    out = []
    i = 0
    while i < len(token):
        ch = token[i]
        if ch == "\\" and i + 1 < len(token) and token[i + 1] in _ESCAPES:
            out.append(_ESCAPES[token[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


# Condensed Arrays -----------------------------------------------------------------------------------------------------

def join_condensed(values: Iterable[Any], element_type: type) -> str:
    """
    Encode primitive or string values as one comma-separated text run.

    None becomes an empty token for every element type.
    """
    if is_string(element_type):
        return ",".join(protect_string(v) for v in values)
    if is_primitive(element_type):
        return ",".join("" if v is None else encode_primitive(v) for v in values)
    raise TypeError(f"condensed arrays hold primitives or strings, got {fmt_type(element_type)}")


def split_condensed(text: str | None, element_type: Any) -> list[Any]:
    """
    Decode a condensed text run into a list of element_type values.

    Empty text yields an empty list.

    Raises:
        DeserializationError: If element_type is neither primitive nor string.
    """
    tokens = text.split(",") if text else []
    return [decode_token(t, element_type) for t in tokens]


def decode_token(token: str, element_type: Any) -> Any:
    """Decode one condensed token; an empty token is None."""
    if is_string(element_type):
        return unprotect_string(token)
    if is_primitive(element_type):
        return None if token == "" else decode_primitive(token, element_type)
    raise DeserializationError(
        f"condensed array text found for non-primitive element type {fmt_type(element_type)}"
    )


# Index Lists ----------------------------------------------------------------------------------------------------------

def format_indices(values: Sequence[int]) -> str:
    """Join integers with commas, as used by the length, lower-bound and index attributes."""
    return ",".join(str(int(v)) for v in values)


def parse_indices(text: str | None) -> tuple[int, ...] | None:
    """
    Parse a comma-joined integer list; None or blank text yields None.

    Raises:
        DeserializationError: If any item is not an integer.
    """
    if text is None or not text.strip():
        return None
    try:
        return tuple(int(part) for part in text.split(","))
    except ValueError as e:
        raise DeserializationError(f"invalid index list: {fmt_value(text)}") from e
