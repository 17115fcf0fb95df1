"""
Objtree utilities shared across the package.

Contains type naming, type-name resolution and type classification helpers used by
both serialization directions, kept here to avoid circular imports.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import importlib
import sys
import types
from enum import Enum
from typing import Annotated, Any, Union, get_args, get_origin

# Local ----------------------------------------------------------------------------------------------------------------
from .tools import fmt_type

PRIMITIVE_TYPES = (bool, int, float, complex)


# Methods --------------------------------------------------------------------------------------------------------------

def class_name(
        obj: Any,
        fully_qualified: bool = False,
        fully_qualified_builtins: bool = False,
) -> str:
    """
    Get the class name of an object or a class.

    Returns class name whether given an instance or the class itself.
    For example, both `class_name(10)` and `class_name(int)` return 'int'.
    Fully qualified names use the qualified name so nested classes stay resolvable.

    Parameters:
        obj (Any): An object or a class.
        fully_qualified (bool): If true, returns the fully qualified name for user objects or classes.
        fully_qualified_builtins (bool): If true, returns the fully qualified name for builtin objects or classes.

    Returns:
        str: The class name.

    Examples:
        >>> class_name(10)
        'int'
        >>> class_name(10, fully_qualified_builtins=True)
        'builtins.int'
        >>> class Outer:
        ...     class Inner: ...
        >>> class_name(Outer.Inner, fully_qualified=True)
        '__main__.Outer.Inner'
    """
    cls = obj if isinstance(obj, type) else obj.__class__

    if cls.__module__ == "builtins":
        qualified = fully_qualified_builtins
    else:
        qualified = fully_qualified

    if qualified:
        return cls.__module__ + "." + cls.__qualname__
    return cls.__name__


def type_name(tp: Any) -> str:
    """
    Return the canonical type tag string for a class or a parametrized generic.

    Examples:
        >>> type_name(int)
        'builtins.int'
        >>> type_name(list[int])
        'builtins.list[builtins.int]'
        >>> type_name(tuple[str, ...])
        'builtins.tuple[builtins.str, ...]'
    """
    origin = get_origin(tp)
    if origin is not None and not isinstance(tp, type) and get_args(tp):
        args = ", ".join("..." if a is Ellipsis else type_name(a) for a in get_args(tp))
        return f"{type_name(origin)}[{args}]"
    if not isinstance(tp, type):
        raise TypeError(f"tp must be a type, got {fmt_type(tp)}")
    return class_name(tp, fully_qualified=True, fully_qualified_builtins=True)


def resolve_type_name(name: str) -> Any:
    """
    Resolve a type tag produced by `type_name` back to the type it names.

    Finds the longest importable module prefix of each dotted name and walks the
    remaining qualified name as attributes. Bracketed generic arguments are
    resolved recursively and applied by subscription.

    Returns:
        The resolved class or generic alias, or None when any part of the name
        cannot be resolved.
    """
    if not isinstance(name, str):
        raise TypeError(f"name must be a str, got {fmt_type(name)}")
    try:
        tp, pos = _parse_type_name(name.strip(), 0)
    except _UnresolvedName:
        return None
    if pos != len(name.strip()):
        return None
    return tp


def strip_optional(tp: Any) -> Any:
    """
    Reduce ``X | None`` to ``X``, unwrap ``Annotated`` and collapse other unions to `object`.

    Examples:
        >>> strip_optional(int | None)
        <class 'int'>
        >>> strip_optional(int | str)
        <class 'object'>
    """
    tp = unwrap_annotated(tp)
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return strip_optional(args[0])
        return object
    return tp


def unwrap_annotated(tp: Any) -> Any:
    """Return the underlying type of ``Annotated[T, ...]``, or tp unchanged."""
    while get_origin(tp) is Annotated:
        tp = get_args(tp)[0]
    return tp


def runtime_class(tp: Any) -> type | None:
    """Return the class behind a declared type: the origin of a generic alias, the type itself, or None."""
    # typing.Any is a class on 3.11+
    if tp is Any:
        return None
    if isinstance(tp, type):
        return tp
    origin = get_origin(tp)
    if isinstance(origin, type):
        return origin
    return None


def is_enum(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, Enum)


def is_primitive(tp: Any) -> bool:
    """True for bool, int, float and complex (and their subclasses), excluding enums."""
    return isinstance(tp, type) and issubclass(tp, PRIMITIVE_TYPES) and not issubclass(tp, Enum)


def is_string(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, str) and not issubclass(tp, Enum)


def is_simple(tp: Any) -> bool:
    """True for primitives and strings, the element types allowed in condensed arrays."""
    return is_primitive(tp) or is_string(tp)


def default_value(tp: Any) -> Any:
    """Return the default value for a type: zero for primitives, None otherwise."""
    if is_primitive(tp):
        return tp()
    return None


def is_any_type(tp: Any) -> bool:
    """True when a declared type carries no information: object, Any or an unset annotation."""
    return tp is None or tp is object or tp is Any


# Private Methods ------------------------------------------------------------------------------------------------------

class _UnresolvedName(Exception):
    pass


def _parse_type_name(text: str, pos: int) -> tuple[Any, int]:
    """Parse one (possibly generic) type name starting at pos; return (type, next position)."""
    end = pos
    while end < len(text) and text[end] not in "[],":
        end += 1
    dotted = text[pos:end].strip()
    if not dotted:
        raise _UnresolvedName(text)
    if dotted == "...":
        return Ellipsis, end

    base = _resolve_dotted(dotted)
    if end >= len(text) or text[end] != "[":
        return base, end

    args = []
    pos = end + 1
    while True:
        arg, pos = _parse_type_name(text, pos)
        args.append(arg)
        while pos < len(text) and text[pos] == " ":
            pos += 1
        if pos >= len(text):
            raise _UnresolvedName(text)
        if text[pos] == ",":
            pos += 1
            continue
        if text[pos] == "]":
            pos += 1
            break
        raise _UnresolvedName(text)

    try:
        return base[tuple(args) if len(args) > 1 else args[0]], pos
    except TypeError as e:
        raise _UnresolvedName(text) from e


def _resolve_dotted(dotted: str) -> Any:
    parts = dotted.split(".")
    for i in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:i])
        module = sys.modules.get(module_name)
        if module is None:
            try:
                module = importlib.import_module(module_name)
            except (ImportError, ValueError):
                continue
        obj = module
        try:
            for attr in parts[i:]:
                obj = getattr(obj, attr)
        except AttributeError:
            continue
        if isinstance(obj, type) or get_origin(obj) is not None:
            return obj
    raise _UnresolvedName(dotted)
