"""
Objtree Type Metadata

Per-type cache of serializable fields, the base-type chain and implicit surrogates.

Fields are discovered from class annotations. Markers are attached with `typing.Annotated`:

    >>> @dataclass
    ... class Person:
    ...     name: str
    ...     age: Annotated[int, SerializedName("Years")] = 0
    ...     cache: Annotated[dict, NotSerialized] = None
    ...     tags: Annotated[list[str], ElementName("Tag")] = None

Implicit surrogates are methods marked on the type itself:

    >>> class Point:
    ...     @implicit_serializer
    ...     def to_node(self, node, serializer):
    ...         node.text = f"{self.x};{self.y}"
    ...
    ...     @implicit_deserializer
    ...     @staticmethod
    ...     def from_node(working, node):
    ...         x, y = node.text.split(";")
    ...         working.set(Point(int(x), int(y)))

Markers are validated lazily: a malformed declaration raises InvalidImplicitSurrogateError on the
first `get_type_metadata` call for the type, not at class creation.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import dataclasses
import inspect
import re
import threading
import types
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, ClassVar, Iterator, Union, get_args, get_origin, get_type_hints

# Local ----------------------------------------------------------------------------------------------------------------
from .errors import InvalidImplicitSurrogateError
from .sentinels import MISSING
from .tools import fmt_type
from .utils import runtime_class, strip_optional

_OPTIONS_ATTR = "_objtree_options"
_IMPLICIT_ATTR = "_objtree_implicit"

_SERIALIZER = "serializer"
_DESERIALIZER = "deserializer"
_CONSTRUCTOR = "constructor"

_SERIALIZER_PARAMS = {"node": "node", "serializer": "serializer", "framework": "serializer"}
_DESERIALIZER_PARAMS = {"working": "working", "node": "node", "deserializer": "deserializer",
                        "framework": "deserializer"}

_MEMBER_PREFIX = re.compile(r"^(?:m_|_+)([a-z])(.*)$", re.DOTALL)

_FOREIGN_MODULES = frozenset({"builtins", "typing", "abc", "collections.abc"})


# Field Markers --------------------------------------------------------------------------------------------------------

class _FieldFlag:
    __slots__ = ('_name',)

    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name


NotSerialized = _FieldFlag("NotSerialized")
"""Annotated marker: the field is never serialized."""

ExplicitlySerialized = _FieldFlag("ExplicitlySerialized")
"""Annotated marker: the field is serialized even when its class is `explicit_only`."""


@dataclass(frozen=True)
class SerializedName:
    """Annotated marker: serialize the field under this exact name."""
    name: str


@dataclass(frozen=True)
class ElementName:
    """Annotated marker: name per-element child nodes of this array field."""
    name: str


@dataclass(frozen=True)
class TypeOptions:
    """Class-level options set by the `serializable` decorator."""
    explicit_only: bool = False
    field_renamer: Callable[[str, "FieldDescriptor"], str] | None = None
    skip: bool = False


def serializable(cls: type | None = None, *,
                 explicit_only: bool = False,
                 field_renamer: Callable[[str, "FieldDescriptor"], str] | None = None,
                 skip: bool = False):
    """
    Class decorator setting serialization options for one class level.

    Args:
        explicit_only: Serialize only fields marked `ExplicitlySerialized`.
        field_renamer: Renamer (name, field) -> str used for this class's fields instead of
            the context's renamer.
        skip: The class contributes no fields; base classes are still walked.

    Usable bare (`@serializable`) or with arguments (`@serializable(explicit_only=True)`).
    """
    if field_renamer is not None and not callable(field_renamer):
        raise TypeError(f"field_renamer must be callable, got {fmt_type(field_renamer)}")
    options = TypeOptions(explicit_only=explicit_only, field_renamer=field_renamer, skip=skip)

    def wrap(c: type) -> type:
        if not isinstance(c, type):
            raise TypeError(f"serializable must decorate a class, got {fmt_type(c)}")
        setattr(c, _OPTIONS_ATTR, options)
        return c

    return wrap if cls is None else wrap(cls)


# Implicit Surrogate Markers -------------------------------------------------------------------------------------------

def implicit_serializer(func):
    """
    Mark an instance method as the type's serializer.

    The method receives any of the keyword parameters `node` (required) and `serializer`
    (alias `framework`), and returns True/None when serialization is complete or False to let
    the default field walk continue.
    """
    return _mark(func, _SERIALIZER)


def implicit_deserializer(func):
    """
    Mark a staticmethod or classmethod as the type's deserializer.

    Parameters `working` and `node` are required, `deserializer` (alias `framework`) is optional.
    Returns True/None when deserialization is complete or False to continue with the field walk.
    """
    return _mark(func, _DESERIALIZER)


def implicit_constructor(func):
    """Mark a no-argument staticmethod or classmethod that creates the empty instance to decode into."""
    return _mark(func, _CONSTRUCTOR)


def _mark(func, kind: str):
    target = getattr(func, "__func__", func)
    if not callable(target):
        raise TypeError(f"implicit {kind} must decorate a function, got {fmt_type(func)}")
    setattr(target, _IMPLICIT_ATTR, kind)
    return func


# Field Names ----------------------------------------------------------------------------------------------------------

def fix_member_name(name: str) -> str:
    """
    Strip a leading member prefix ("m_" or underscores) and capitalize the remainder.

    Names that do not start with such a prefix followed by a lowercase letter are returned unchanged.

    Examples:
        >>> fix_member_name("m_name")
        'Name'
        >>> fix_member_name("_age")
        'Age'
        >>> fix_member_name("m_")
        'm_'
    """
    match = _MEMBER_PREFIX.match(name)
    if match is None:
        return name
    return match.group(1).upper() + match.group(2)


def protobuf_field_renamer(name: str, field: "FieldDescriptor | None" = None) -> str:
    """
    Renamer for protobuf-generated member names: drop trailing underscores, capitalize the first letter.

    Examples:
        >>> protobuf_field_renamer("name_")
        'Name'
    """
    stripped = name.rstrip("_") or name
    return stripped[:1].upper() + stripped[1:]


def field_name(fd: "FieldDescriptor", context: Any) -> str:
    """
    Effective node name of a field under a context.

    An explicit `SerializedName` wins outright. Otherwise the class renamer (or else the context's
    renamer) is applied, then `fix_member_name` when the context enables `fix_field_names`.
    Fields of dynamic (unannotated) classes keep their attribute names.
    """
    if fd.serialized_name is not None:
        return fd.serialized_name
    if fd.dynamic:
        return fd.name
    name = fd.name
    renamer = fd.renamer or context.field_renamer
    if renamer is not None:
        name = renamer(name, fd)
    if context.fix_field_names:
        name = fix_member_name(name)
    return name


# Classes --------------------------------------------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldDescriptor:
    """
    One serializable field of a class level.

    Attributes:
        owner: The class that declares the field.
        name: Declared name, with private-name mangling undone.
        attr: The real attribute name on instances.
        declared_type: Declared type with Optional and Annotated removed.
        serialized_name: Explicit node name from `SerializedName`, if any.
        element_name: Per-element node name from `ElementName`, if any.
        renamer: The owner's class-level renamer, if any.
        dynamic: True for attributes discovered on an instance of an unannotated class.
    """
    owner: type
    name: str
    attr: str
    declared_type: Any = object
    serialized_name: str | None = None
    element_name: str | None = None
    renamer: Callable[[str, "FieldDescriptor"], str] | None = field(default=None, compare=False)
    dynamic: bool = False

    def get(self, obj: Any) -> Any:
        """Return the field value of obj; an unassigned attribute reads as None."""
        value = getattr(obj, self.attr, MISSING)
        return None if value is MISSING else value

    def set(self, obj: Any, value: Any) -> None:
        """Assign the field on obj, bypassing frozen dataclasses and custom __setattr__."""
        object.__setattr__(obj, self.attr, value)

    def xml_name(self, context: Any) -> str:
        return field_name(self, context)


class ImplicitSurrogate:
    """
    The serializer and/or deserializer methods declared on one class.

    Parameters are bound by name, so a method declares only the arguments it needs.
    """

    def __init__(self, owner: type,
                 serializer: tuple[Callable, tuple[str, ...]] | None = None,
                 deserializer: tuple[Callable, tuple[str, ...]] | None = None):
        self.owner = owner
        self._serializer = serializer
        self._deserializer = deserializer

    @property
    def has_serializer(self) -> bool:
        return self._serializer is not None

    @property
    def has_deserializer(self) -> bool:
        return self._deserializer is not None

    def serialize(self, obj: Any, node: Any, serializer: Any) -> bool:
        if self._serializer is None:
            return False
        func, params = self._serializer
        values = {"node": node, "serializer": serializer}
        result = func(obj, **{p: values[_SERIALIZER_PARAMS[p]] for p in params})
        return True if result is None else bool(result)

    def deserialize(self, working: Any, node: Any, deserializer: Any) -> bool:
        if self._deserializer is None:
            return False
        func, params = self._deserializer
        values = {"working": working, "node": node, "deserializer": deserializer}
        result = func(**{p: values[_DESERIALIZER_PARAMS[p]] for p in params})
        return True if result is None else bool(result)

    def __repr__(self) -> str:
        return (f"ImplicitSurrogate({self.owner.__qualname__}, serializer={self.has_serializer}, "
                f"deserializer={self.has_deserializer})")


class TypeMetadata:
    """
    Cached serialization facts about one class.

    Attributes:
        type: The class described.
        base: Metadata of the next serializable class in the MRO, or None.
        options: Class-level TypeOptions.
        own_fields: Fields declared by this class itself, in declaration order.
        implicit_surrogate: ImplicitSurrogate declared by this class, or None.
        implicit_constructor: No-argument factory declared by this class, or None.
    """

    def __init__(self, cls: type):
        self.type = cls
        self.options: TypeOptions = vars(cls).get(_OPTIONS_ATTR) or TypeOptions()
        self.base: TypeMetadata | None = _base_metadata(cls)
        self._annotated = bool(_own_annotations(cls)) or _OPTIONS_ATTR in vars(cls)
        self.own_fields: tuple[FieldDescriptor, ...] = _collect_fields(cls, self.options)
        self.implicit_surrogate, self.implicit_constructor = _collect_implicit(cls)

    @property
    def fields(self) -> tuple[FieldDescriptor, ...]:
        """All fields: this class's own first, then each base level's in turn."""
        return tuple(fd for level in self.levels() for fd in level.own_fields)

    @property
    def dynamic(self) -> bool:
        """True when no class level declares annotations or options; instance attributes are walked instead."""
        return not any(level._annotated for level in self.levels())

    def levels(self) -> Iterator["TypeMetadata"]:
        """Yield this metadata and then each base level, most-derived first."""
        level = self
        while level is not None:
            yield level
            level = level.base

    def instance_fields(self, obj: Any) -> tuple[FieldDescriptor, ...]:
        """Fields to walk for obj: declared fields, or its instance attributes when dynamic."""
        if not self.dynamic:
            return self.fields
        attrs = getattr(obj, "__dict__", None) or {}
        return tuple(FieldDescriptor(self.type, name, name, object, dynamic=True) for name in attrs)

    def dynamic_field(self, name: str) -> FieldDescriptor:
        """Descriptor for an instance attribute of a dynamic class."""
        return FieldDescriptor(self.type, name, name, object, dynamic=True)

    def new_instance(self) -> Any:
        """
        Create an empty instance to decode into.

        Uses the implicit constructor when declared, else calls the class with no arguments when
        its signature allows it, else allocates without __init__ and applies dataclass defaults.
        """
        if self.implicit_constructor is not None:
            return self.implicit_constructor()

        cls = self.type
        if _callable_without_args(cls):
            return cls()

        obj = cls.__new__(cls)
        if dataclasses.is_dataclass(cls):
            for f in dataclasses.fields(cls):
                if f.default is not dataclasses.MISSING:
                    object.__setattr__(obj, f.name, f.default)
                elif f.default_factory is not dataclasses.MISSING:
                    object.__setattr__(obj, f.name, f.default_factory())
        return obj

    def __repr__(self) -> str:
        return f"TypeMetadata({self.type.__qualname__}, fields={[fd.name for fd in self.fields]})"


# Cache ----------------------------------------------------------------------------------------------------------------

_cache: dict[type, TypeMetadata] = {}
_cache_lock = threading.RLock()


def get_type_metadata(tp: Any) -> TypeMetadata:
    """
    Return the cached metadata of a class (or of the origin of a generic alias).

    Built on first use and kept for the process lifetime. Concurrent first use is safe; the lock is
    held only while one class and its bases are introspected.

    Raises:
        TypeError: If tp is not a type.
        InvalidImplicitSurrogateError: If the class declares malformed implicit surrogates.
    """
    cls = runtime_class(tp)
    if cls is None:
        raise TypeError(f"tp must be a type, got {fmt_type(tp)}")
    metadata = _cache.get(cls)
    if metadata is not None:
        return metadata
    with _cache_lock:
        metadata = _cache.get(cls)
        if metadata is None:
            metadata = TypeMetadata(cls)
            _cache[cls] = metadata
    return metadata


def is_cached(tp: Any) -> bool:
    cls = runtime_class(tp)
    return cls is not None and cls in _cache


# Private Methods ------------------------------------------------------------------------------------------------------

def _base_metadata(cls: type) -> TypeMetadata | None:
    for base in cls.__mro__[1:]:
        if base is object or base.__module__ in _FOREIGN_MODULES:
            continue
        return get_type_metadata(base)
    return None


def _own_annotations(cls: type) -> dict[str, Any]:
    try:
        return dict(inspect.get_annotations(cls))
    except (NameError, TypeError):
        return dict(vars(cls).get("__annotations__", {}))


def _collect_fields(cls: type, options: TypeOptions) -> tuple[FieldDescriptor, ...]:
    annotations = _own_annotations(cls)
    if options.skip or not annotations:
        return ()
    try:
        hints = get_type_hints(cls, include_extras=True)
    except (NameError, TypeError, AttributeError):
        hints = {}

    fields = []
    for attr, raw in annotations.items():
        hint = hints.get(attr, raw)
        if isinstance(hint, str):
            hint = object
        if _is_class_only(hint):
            continue
        markers = _markers(hint)
        if NotSerialized in markers:
            continue
        if options.explicit_only and ExplicitlySerialized not in markers:
            continue
        fields.append(FieldDescriptor(
            owner=cls,
            name=_demangle(cls, attr),
            attr=attr,
            declared_type=strip_optional(hint),
            serialized_name=next((m.name for m in markers if isinstance(m, SerializedName)), None),
            element_name=next((m.name for m in markers if isinstance(m, ElementName)), None),
            renamer=options.field_renamer,
        ))
    return tuple(fields)


def _is_class_only(hint: Any) -> bool:
    while get_origin(hint) is Annotated:
        hint = get_args(hint)[0]
    return (hint is ClassVar or get_origin(hint) is ClassVar
            or hint is dataclasses.InitVar or isinstance(hint, dataclasses.InitVar))


def _markers(hint: Any) -> list[Any]:
    """Collect Annotated metadata, looking through Optional and unions."""
    origin = get_origin(hint)
    if origin is Annotated:
        args = get_args(hint)
        return list(args[1:]) + _markers(args[0])
    if origin is Union or origin is types.UnionType:
        return [m for arg in get_args(hint) for m in _markers(arg)]
    return []


def _demangle(cls: type, attr: str) -> str:
    prefix = "_" + cls.__name__.lstrip("_") + "__"
    if attr.startswith(prefix) and len(attr) > len(prefix):
        return "__" + attr[len(prefix):]
    return attr


def _callable_without_args(cls: type) -> bool:
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return False
    optional_kinds = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    return all(p.default is not inspect.Parameter.empty or p.kind in optional_kinds
               for p in signature.parameters.values())


def _collect_implicit(cls: type) -> tuple[ImplicitSurrogate | None, Callable | None]:
    found: dict[str, tuple[str, Any]] = {}
    for name, member in vars(cls).items():
        func = getattr(member, "__func__", member)
        kind = getattr(func, _IMPLICIT_ATTR, None) if callable(func) else None
        if kind is None:
            continue
        if kind in found:
            raise InvalidImplicitSurrogateError(
                cls, name, f"implicit {kind} already declared as {found[kind][0]!r}"
            )
        found[kind] = (name, member)

    serializer = deserializer = constructor = None

    if _SERIALIZER in found:
        name, member = found[_SERIALIZER]
        if isinstance(member, (staticmethod, classmethod)):
            raise InvalidImplicitSurrogateError(cls, name, "implicit serializer must be an instance method")
        params = _bind_params(cls, name, member, skip_first=True,
                              allowed=_SERIALIZER_PARAMS, required=("node",))
        serializer = (member, params)

    if _DESERIALIZER in found:
        name, member = found[_DESERIALIZER]
        if not isinstance(member, (staticmethod, classmethod)):
            raise InvalidImplicitSurrogateError(cls, name, "implicit deserializer must be a staticmethod or classmethod")
        params = _bind_params(cls, name, member.__func__, skip_first=isinstance(member, classmethod),
                              allowed=_DESERIALIZER_PARAMS, required=("working", "node"))
        deserializer = (member.__get__(None, cls), params)

    if _CONSTRUCTOR in found:
        name, member = found[_CONSTRUCTOR]
        if not isinstance(member, (staticmethod, classmethod)):
            raise InvalidImplicitSurrogateError(cls, name, "implicit constructor must be a staticmethod or classmethod")
        _bind_params(cls, name, member.__func__, skip_first=isinstance(member, classmethod),
                     allowed={}, required=())
        constructor = member.__get__(None, cls)

    surrogate = None
    if serializer is not None or deserializer is not None:
        surrogate = ImplicitSurrogate(cls, serializer, deserializer)
    return surrogate, constructor


def _bind_params(cls: type, name: str, func: Callable, *, skip_first: bool,
                 allowed: dict[str, str], required: tuple[str, ...]) -> tuple[str, ...]:
    try:
        params = list(inspect.signature(func).parameters.values())
    except (TypeError, ValueError) as e:
        raise InvalidImplicitSurrogateError(cls, name, f"signature cannot be inspected: {e}") from e
    if skip_first:
        if not params:
            raise InvalidImplicitSurrogateError(cls, name, "missing self/cls parameter")
        params = params[1:]

    names = []
    for p in params:
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise InvalidImplicitSurrogateError(cls, name, f"variadic parameter {p.name!r} is not supported")
        if p.kind is inspect.Parameter.POSITIONAL_ONLY:
            raise InvalidImplicitSurrogateError(cls, name, f"positional-only parameter {p.name!r} is not supported")
        if p.name not in allowed:
            if p.default is not inspect.Parameter.empty:
                continue
            raise InvalidImplicitSurrogateError(
                cls, name, f"unexpected parameter {p.name!r}, expected some of {sorted(allowed)}"
            )
        names.append(p.name)

    missing = [r for r in required if r not in names]
    if missing:
        raise InvalidImplicitSurrogateError(cls, name, f"missing required parameter(s) {missing}")
    if len({allowed[n] for n in names}) != len(names):
        raise InvalidImplicitSurrogateError(cls, name, "the same argument is requested under two names")
    return tuple(names)
