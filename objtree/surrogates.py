"""
Objtree Surrogates

A surrogate takes over (de)serialization of a type, fully or partially, instead of the default
field walk. Resolution order for a runtime type is:

    1. External surrogate registered on the active context (exact type, walks parent contexts)
    2. Built-in surrogate for common library types (datetime, UUID, Decimal, dict, set, ...)
    3. The type's implicit surrogate (methods marked on the type itself)
    4. Default field walk

A surrogate returns True when it has completely handled the value; False lets the engine continue.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import collections
import datetime
import decimal
import pathlib
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Iterator, get_args
from xml.etree.ElementTree import Element

# Local ----------------------------------------------------------------------------------------------------------------
from .errors import SerializationError
from .tools import fmt_type
from .utils import runtime_class

KEY_ELEMENT_NAME = "key"
VALUE_ELEMENT_NAME = "value"
MAXLEN_ATTRIBUTE_NAME = "maxlen"


# Classes --------------------------------------------------------------------------------------------------------------

class ExternalSurrogate(ABC):
    """
    Handler registered on a SerializationContext for one exact type.

    Implementations may write any attributes, text or child nodes into the node, and may use
    `serializer.encode_child(...)` / `deserializer.decode_value(...)` for nested values.
    A surrogate that handles only some fields returns False and calls `ignore_field(name)` on the
    serializer or deserializer for each field it wrote, so the default walk skips them.
    """

    @abstractmethod
    def serialize(self, obj: Any, use_type: Any, node: Element, serializer: Any) -> bool:
        """
        Write obj into node.

        Args:
            obj: The non-null value being serialized.
            use_type: The type obj should be treated as (its runtime type or a matching generic alias).
            node: The node already created for obj.
            serializer: The calling Serializer.

        Returns:
            True if serialization of obj is complete.
        """

    @abstractmethod
    def deserialize(self, working: Any, node: Element, deserializer: Any) -> bool:
        """
        Populate or create the working object from node.

        Args:
            working: The WorkingObject for this node; either set a new value on it or fill
                its existing value in place.
            node: The node being decoded.
            deserializer: The calling Deserializer.

        Returns:
            True if deserialization of the node is complete.
        """


class SurrogateChain(ExternalSurrogate):
    """
    Ordered list of surrogates that all run on every call, in registration order.

    The chain reports completion when any member does (logical OR); every member runs
    regardless of earlier results.
    """

    def __init__(self, surrogates: Iterable[ExternalSurrogate] = ()):
        self._surrogates: list[ExternalSurrogate] = []
        for s in surrogates:
            self.append(s)

    def append(self, surrogate: "ExternalSurrogate | None") -> "SurrogateChain":
        """Append a surrogate, flattening nested chains; None is ignored."""
        if surrogate is None:
            return self
        if isinstance(surrogate, SurrogateChain):
            self._surrogates.extend(surrogate._surrogates)
        elif isinstance(surrogate, ExternalSurrogate):
            self._surrogates.append(surrogate)
        else:
            raise TypeError(f"surrogate must be an ExternalSurrogate, got {fmt_type(surrogate)}")
        return self

    def serialize(self, obj: Any, use_type: Any, node: Element, serializer: Any) -> bool:
        complete = False
        for surrogate in self._surrogates:
            complete = surrogate.serialize(obj, use_type, node, serializer) or complete
        return complete

    def deserialize(self, working: Any, node: Element, deserializer: Any) -> bool:
        complete = False
        for surrogate in self._surrogates:
            complete = surrogate.deserialize(working, node, deserializer) or complete
        return complete

    def __iter__(self) -> Iterator[ExternalSurrogate]:
        return iter(self._surrogates)

    def __len__(self) -> int:
        return len(self._surrogates)

    def __repr__(self) -> str:
        return f"SurrogateChain({self._surrogates!r})"


class TextSurrogate(ExternalSurrogate):
    """
    Surrogate for values with a lossless text form.

    Parameters:
        to_text: Callable producing the text of a value; defaults to str.
        from_text: Callable (cls, text) -> value; defaults to calling cls(text).
    """

    def __init__(self,
                 to_text: Callable[[Any], str] = str,
                 from_text: Callable[[type, str], Any] | None = None):
        self.to_text = to_text
        self.from_text = from_text or (lambda cls, text: cls(text))

    def serialize(self, obj: Any, use_type: Any, node: Element, serializer: Any) -> bool:
        node.text = self.to_text(obj)
        return True

    def deserialize(self, working: Any, node: Element, deserializer: Any) -> bool:
        working.set(self.from_text(working.working_class, node.text or ""))
        return True


class MappingSurrogate(ExternalSurrogate):
    """
    Surrogate for dict and its subclasses.

    Each item becomes an element named after the context's array element name holding
    a `key` and a `value` child. Declared key and value types come from a parametrized
    type such as dict[str, int]; bare dicts tag every key and value.
    """

    def serialize(self, obj: Any, use_type: Any, node: Element, serializer: Any) -> bool:
        key_type, value_type = _type_args(use_type, 2)
        entry_name = serializer.context.array_element_name
        for key, value in obj.items():
            entry = Element(entry_name)
            node.append(entry)
            serializer.encode_child(entry, KEY_ELEMENT_NAME, key, key_type)
            serializer.encode_child(entry, VALUE_ELEMENT_NAME, value, value_type)
        return True

    def deserialize(self, working: Any, node: Element, deserializer: Any) -> bool:
        key_type, value_type = _type_args(working.working_type, 2)
        mapping = working.get_existing_or_create_new()
        for entry in node:
            key_node = entry.find(KEY_ELEMENT_NAME)
            value_node = entry.find(VALUE_ELEMENT_NAME)
            key = deserializer.decode_value(key_node, key_type) if key_node is not None else None
            value = deserializer.decode_value(value_node, value_type) if value_node is not None else None
            mapping[key] = value
        return True


class SetSurrogate(ExternalSurrogate):
    """Surrogate for set and frozenset: one element node per member."""

    def serialize(self, obj: Any, use_type: Any, node: Element, serializer: Any) -> bool:
        (element_type,) = _type_args(use_type, 1)
        name = serializer.context.array_element_name
        for item in obj:
            serializer.encode_child(node, name, item, element_type)
        return True

    def deserialize(self, working: Any, node: Element, deserializer: Any) -> bool:
        (element_type,) = _type_args(working.working_type, 1)
        if issubclass(working.working_class, frozenset) and not working.is_set:
            working.set(working.working_class(deserializer.decode_value(child, element_type) for child in node))
            return True
        members = working.get_existing_or_create_new()
        for child in node:
            members.add(deserializer.decode_value(child, element_type))
        return True


class DequeSurrogate(ExternalSurrogate):
    """Surrogate for collections.deque; a bounded deque keeps its maxlen as an attribute."""

    def serialize(self, obj: Any, use_type: Any, node: Element, serializer: Any) -> bool:
        (element_type,) = _type_args(use_type, 1)
        if obj.maxlen is not None:
            node.set(MAXLEN_ATTRIBUTE_NAME, str(obj.maxlen))
        name = serializer.context.array_element_name
        for item in obj:
            serializer.encode_child(node, name, item, element_type)
        return True

    def deserialize(self, working: Any, node: Element, deserializer: Any) -> bool:
        (element_type,) = _type_args(working.working_type, 1)
        if working.is_set:
            queue = working.value
        else:
            maxlen = node.get(MAXLEN_ATTRIBUTE_NAME)
            queue = working.working_class((), None if maxlen is None else int(maxlen))
            working.set(queue)
        for child in node:
            queue.append(deserializer.decode_value(child, element_type))
        return True


# Methods --------------------------------------------------------------------------------------------------------------

def combine(first: ExternalSurrogate | None, second: ExternalSurrogate | None) -> ExternalSurrogate | None:
    """
    Combine two surrogates so that both run, first then second.

    Combining with None returns the other operand unchanged. Chains are extended rather than
    nested, so repeated combination yields one flat ordered list.
    """
    if first is None:
        return second
    if second is None:
        return first
    return SurrogateChain([first, second])


def find_builtin_surrogate(tp: Any) -> ExternalSurrogate | None:
    """Return the built-in surrogate for an exact class or the origin of a generic alias."""
    cls = runtime_class(tp)
    if cls is None:
        return None
    return _BUILTIN_SURROGATES.get(cls)


def builtin_surrogate_types() -> tuple[type, ...]:
    return tuple(_BUILTIN_SURROGATES)


# Private Methods ------------------------------------------------------------------------------------------------------

def _type_args(tp: Any, count: int) -> tuple[Any, ...]:
    args = get_args(tp)
    if not args:
        return (object,) * count
    if len(args) != count:
        raise SerializationError(f"expected {count} type arguments, got {fmt_type(tp)}")
    return args


def _from_iso(cls: type, text: str) -> Any:
    return cls.fromisoformat(text.strip())


def _from_hex(cls: type, text: str) -> Any:
    return cls.fromhex(text.strip())


_iso_surrogate = TextSurrogate(lambda v: v.isoformat(), _from_iso)
_hex_surrogate = TextSurrogate(lambda v: v.hex(), _from_hex)
_str_surrogate = TextSurrogate()
_deque_surrogate = DequeSurrogate()
_mapping_surrogate = MappingSurrogate()
_set_surrogate = SetSurrogate()

_BUILTIN_SURROGATES: dict[type, ExternalSurrogate] = {
    datetime.datetime: _iso_surrogate,
    datetime.date: _iso_surrogate,
    datetime.time: _iso_surrogate,
    datetime.timedelta: TextSurrogate(lambda v: repr(v.total_seconds()),
                                      lambda cls, text: cls(seconds=float(text))),
    uuid.UUID: _str_surrogate,
    decimal.Decimal: _str_surrogate,
    bytes: _hex_surrogate,
    bytearray: _hex_surrogate,
    pathlib.PurePath: _str_surrogate,
    pathlib.PurePosixPath: _str_surrogate,
    pathlib.PureWindowsPath: _str_surrogate,
    pathlib.Path: _str_surrogate,
    pathlib.PosixPath: _str_surrogate,
    pathlib.WindowsPath: _str_surrogate,
    dict: _mapping_surrogate,
    collections.OrderedDict: _mapping_surrogate,
    set: _set_surrogate,
    frozenset: _set_surrogate,
    collections.deque: _deque_surrogate,
}
