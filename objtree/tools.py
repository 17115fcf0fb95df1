#
# Objtree Formatting Tools
#

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Any


# Methods --------------------------------------------------------------------------------------------------------------

def fmt_type(obj: Any, *, max_repr: int = 120, show_module: bool = False) -> str:
    """Format type information for exception messages.

    Accepts both type objects and instances; instances are formatted by their type.
    Generic aliases such as ``list[int]`` are shown as written.

    Examples:
        >>> fmt_type(42)
        '<type: int>'
        >>> fmt_type(int)
        '<type: int>'
        >>> fmt_type(None)
        '<type: NoneType>'
        >>> fmt_type(list[int])
        '<type: list[int]>'
    """
    if _is_alias(obj):
        return _fmt_format_pair("type", _fmt_truncate(repr(obj), max_repr))
    if isinstance(obj, type):
        target_type = obj
    else:
        target_type = type(obj)

    try:
        type_name = target_type.__qualname__
    except AttributeError:
        type_name = str(target_type)

    if show_module:
        module_name = getattr(target_type, "__module__", None)
        if module_name and module_name != 'builtins':
            type_name = f"{module_name}.{type_name}"

    return _fmt_format_pair("type", _fmt_truncate(type_name, max_repr))


def fmt_value(x: Any, *, max_repr: int = 120) -> str:
    """
    Format a single value as a type-value pair for exception messages.

    Broken ``__repr__`` methods are handled gracefully; inner ``>`` is escaped so the
    wrapper brackets stay unambiguous.

    Examples:
        >>> fmt_value(42)
        '<int: 42>'
        >>> fmt_value("hello world", max_repr=8)
        "<str: 'hell'...>"
    """
    t = type(x).__name__
    try:
        base_repr = repr(x)
    except Exception as e:
        base_repr = f"<{t} object (repr failed: {type(e).__name__})>"

    base_repr = base_repr.replace(">", "\\>")
    return _fmt_format_pair(t, _fmt_truncate(base_repr, max_repr))


# Private Methods ------------------------------------------------------------------------------------------------------

def _is_alias(obj: Any) -> bool:
    return hasattr(obj, "__origin__") and hasattr(obj, "__args__")


def _fmt_truncate(s: str, max_len: int, ellipsis: str = "...") -> str:
    """
    Truncate s to at most max_len visible characters before appending the ellipsis.

    Quoted reprs keep their quotes and get the ellipsis outside the closing quote.
    """
    if max_len <= 0:
        return ""
    if len(s) <= max_len:
        return s

    if len(s) >= 2 and s[0] in ("'", '"') and s[-1] == s[0]:
        inner_budget = max(1, max_len - 4)
        inner = s[1:1 + inner_budget]
        return f"{s[0]}{inner}{s[0]}{ellipsis}"

    return s[:max(1, max_len)] + ellipsis


def _fmt_format_pair(type_name: str, value_repr: str) -> str:
    return f"<{type_name}: {value_repr}>"
