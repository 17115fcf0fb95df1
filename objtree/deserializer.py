"""
Objtree Deserializer

Decodes an `xml.etree.ElementTree.Element` tree produced by the Serializer back into objects.

Each node is decoded in this order:

    1. Null attribute       -> None
    2. Refer-to attribute   -> the object decoded earlier under that reference id
    3. Type                 -> type tag, else the expected type; an unresolvable tag yields None
    4. Surrogates           -> external, built-in, implicit; stop if one completes
    5. Default              -> primitive/str/enum text, arrays, or object fields by name

Child nodes and attributes that match no field are ignored.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import warnings
from typing import Any, TypeVar
from xml.etree.ElementTree import Element, ElementTree, iselement

# Local ----------------------------------------------------------------------------------------------------------------
from .arrays import ArrayBuilder, MultiArray, array_shape
from .codec import decode_enum, decode_primitive, decode_token, parse_indices
from .context import SerializationContext
from .errors import DeserializationError
from .metadata import FieldDescriptor, get_type_metadata
from .references import ReferenceTracker, WorkingObject
from .sentinels import UNSET
from .surrogates import find_builtin_surrogate
from .tools import fmt_type, fmt_value
from .utils import (default_value, is_any_type, is_enum, is_primitive, is_simple, is_string, resolve_type_name,
                    runtime_class, strip_optional)

_UNRESOLVED = object()


# Classes --------------------------------------------------------------------------------------------------------------

class Deserializer:
    """
    Node tree to object graph decoder.

    A Deserializer keeps per-call reference state and must not be shared across threads.

    Examples:
        >>> from objtree.serializer import serialize
        >>> Deserializer().deserialize(serialize(["a", None, ""], declared_type=list[str]), list[str])
        ['a', None, '']
    """

    def __init__(self, context: SerializationContext | None = None):
        if context is not None and not isinstance(context, SerializationContext):
            raise TypeError(f"context must be a SerializationContext or None, got {fmt_type(context)}")
        self.context = context or SerializationContext.global_context()
        self._tracker = ReferenceTracker()
        self._fields: list[FieldDescriptor] = []
        self._ignored: set[str] = set()

    def deserialize(self, node: Element | ElementTree, expected_type: Any = None) -> Any:
        """
        Decode a root node.

        Args:
            node: Root Element, or an ElementTree whose root is decoded.
            expected_type: Type to decode into when the root carries no type tag.

        Raises:
            DeserializationError: On format violations, including a missing type with no expected type.
            UnknownReferenceError: If a node refers to an id that was not defined earlier.
        """
        if isinstance(node, ElementTree):
            node = node.getroot()
        if not iselement(node):
            raise TypeError(f"node must be an Element or ElementTree, got {fmt_type(node)}")
        self._tracker = ReferenceTracker()
        self._fields = []
        self._ignored = set()
        return self.decode_value(node, expected_type)

    def decode_value(self, node: Element, expected_type: Any = None) -> Any:
        """Decode one node into a value of its tagged type, or of expected_type when untagged."""
        ctx = self.context
        if node.get(ctx.null_attribute_name) is not None:
            return None

        refer_to = node.get(ctx.refer_to_attribute_name)
        if refer_to is not None:
            return self._tracker.resolve(refer_to)

        use_type = self._resolve_type(node, expected_type)
        if use_type is _UNRESOLVED:
            return None

        working = WorkingObject(self._tracker, node.get(ctx.reference_id_attribute_name), use_type)
        self._ignored = set()
        if not self._apply_surrogates(node, use_type, working):
            self._decode_default(node, use_type, working)
        return working.value

    def expected_type(self, node: Element, default: Any = UNSET) -> Any:
        """
        Type a surrogate should decode node into.

        Returns the node's type tag when present, else default when given, else the declared type
        of the field currently being decoded (None at the root).
        """
        tag = node.get(self.context.type_attribute_name)
        if tag is not None:
            return resolve_type_name(tag)
        if default is not UNSET:
            return default
        return self._fields[-1].declared_type if self._fields else None

    def ignore_field(self, name: str) -> None:
        """
        Skip a field in the default walk of the node a surrogate is handling.

        For surrogates that decode part of an object and return False. Applies to fields declared
        by the class level the surrogate was called for, matched by their declared attribute name.
        """
        if not isinstance(name, str):
            raise TypeError(f"name must be a str, got {fmt_type(name)}")
        self._ignored.add(name)

    # Private Methods ----------------------------------

    def _resolve_type(self, node: Element, expected_type: Any) -> Any:
        expected = strip_optional(expected_type) if expected_type is not None else None
        tag = node.get(self.context.type_attribute_name)
        if tag is not None:
            tp = resolve_type_name(tag)
            if tp is None:
                warnings.warn(f"cannot resolve type {tag!r} of node <{node.tag}>, decoded as None",
                              RuntimeWarning, stacklevel=3)
                return _UNRESOLVED
            if isinstance(tp, type) and not isinstance(expected, type) and runtime_class(expected) is tp:
                return expected
            return tp

        if is_any_type(expected) or isinstance(expected, TypeVar) or runtime_class(expected) is None:
            raise DeserializationError(
                f"node <{node.tag}> has no {self.context.type_attribute_name!r} attribute "
                f"and no concrete expected type, got {fmt_type(expected)}"
            )
        return expected

    def _apply_surrogates(self, node: Element, use_type: Any, working: WorkingObject) -> bool:
        cls = runtime_class(use_type)
        surrogate = self.context.get_external_surrogate(cls)
        if surrogate is not None and surrogate.deserialize(working, node, self):
            return True

        builtin = find_builtin_surrogate(cls)
        if builtin is not None:
            return builtin.deserialize(working, node, self)

        if not (is_simple(cls) or is_enum(cls) or array_shape(use_type) is not None):
            implicit = get_type_metadata(cls).implicit_surrogate
            if implicit is not None and implicit.has_deserializer:
                return implicit.deserialize(working, node, self)
        return False

    def _decode_default(self, node: Element, use_type: Any, working: WorkingObject) -> None:
        cls = runtime_class(use_type)
        if is_enum(cls):
            if not working.is_set:
                working.set(decode_enum(node.text, cls))
        elif is_primitive(cls):
            if not working.is_set:
                working.set(decode_primitive(node.text, cls))
        elif is_string(cls):
            if not working.is_set:
                working.set(cls(node.text or ""))
        elif array_shape(use_type) is not None:
            self._decode_array(node, use_type, working)
        else:
            self._decode_object(node, cls, working)

    def _decode_array(self, node: Element, use_type: Any, working: WorkingObject) -> None:
        ctx = self.context
        container, element_type, position_types = array_shape(use_type)

        # Element-free content is the condensed comma-separated format
        tokens = None
        if len(node) == 0:
            tokens = node.text.split(",") if node.text else []

        if working.is_set:
            value = working.value
            if not isinstance(value, (list, MultiArray)):
                raise DeserializationError(f"cannot decode array elements into {fmt_type(value)}")
            builder = ArrayBuilder.over(value, element_type)
        else:
            lengths = parse_indices(node.get(ctx.array_attribute_name))
            if lengths is None:
                lengths = (len(tokens),) if tokens is not None else (self._infer_length(node),)
            lower_bounds = parse_indices(node.get(ctx.array_lower_bound_attribute)) or (0,) * len(lengths)
            if len(lower_bounds) != len(lengths):
                raise DeserializationError(
                    f"array lengths {fmt_value(lengths)} and lower bounds {fmt_value(lower_bounds)} differ in rank"
                )
            if container is not MultiArray and len(lengths) != 1:
                raise DeserializationError(
                    f"{fmt_type(use_type)} is one-dimensional, got lengths {fmt_value(lengths)}"
                )

            if container is list and not any(lower_bounds):
                # Registered before the elements are decoded, so elements may refer back to it
                items = [default_value(element_type)] * lengths[0]
                working.set(items)
                builder = ArrayBuilder.over(items, element_type)
            elif container is MultiArray:
                array = MultiArray(element_type, lengths, lower_bounds)
                working.set(array)
                builder = ArrayBuilder.over(array)
            else:
                builder = ArrayBuilder(container, element_type, lengths, lower_bounds,
                                       position_types=position_types)

        if tokens is not None:
            for token in tokens:
                builder.add(decode_token(token, builder.current_element_type))
        else:
            for child in node:
                indices = parse_indices(child.get(ctx.array_index_attribute_name))
                if indices is not None:
                    builder.set_indices(indices)
                builder.add(self.decode_value(child, builder.current_element_type))

        if not working.is_set:
            working.set(builder.result())

    def _infer_length(self, node: Element) -> int:
        """Length of a rank-1 array without a length attribute: one past the highest element position."""
        index_attribute = self.context.array_index_attribute_name
        position = highest = 0
        for child in node:
            indices = parse_indices(child.get(index_attribute))
            if indices is not None:
                if len(indices) != 1:
                    raise DeserializationError(
                        f"multi-dimensional array <{node.tag}> requires a "
                        f"{self.context.array_attribute_name!r} attribute"
                    )
                position = indices[0]
            position += 1
            highest = max(highest, position)
        return highest

    def _decode_object(self, node: Element, cls: type, working: WorkingObject) -> None:
        metadata = get_type_metadata(cls)
        if not working.is_set:
            working.set(metadata.new_instance())
        obj = working.value

        children: dict[str, Element] = {}
        for child in node:
            children.setdefault(child.tag, child)

        ignored = self._take_ignored()
        for level in metadata.levels():
            if level is not metadata:
                working.working_type = level.type
                self._ignored = set()
                completed = self._apply_surrogates(node, level.type, working)
                ignored = self._take_ignored()
                if completed:
                    return
            if metadata.dynamic:
                for name in children:
                    if name not in ignored:
                        self._decode_field(node, children, metadata.dynamic_field(name), obj)
                return
            for fd in level.own_fields:
                if fd.name not in ignored:
                    self._decode_field(node, children, fd, obj)

    def _decode_field(self, node: Element, children: dict[str, Element], fd: FieldDescriptor, obj: Any) -> None:
        name = fd.xml_name(self.context)
        child = children.get(name)
        if child is not None:
            self._fields.append(fd)
            try:
                value = self.decode_value(child, fd.declared_type)
            finally:
                self._fields.pop()
            fd.set(obj, value)
            return

        text = node.get(name)
        if text is None or name in self._reserved_attributes():
            return
        declared = fd.declared_type
        if is_enum(declared):
            fd.set(obj, decode_enum(text, declared))
        elif is_primitive(declared):
            fd.set(obj, decode_primitive(text, declared))
        elif is_string(declared):
            fd.set(obj, declared(text))

    def _take_ignored(self) -> set[str]:
        ignored, self._ignored = self._ignored, set()
        return ignored

    def _reserved_attributes(self) -> set[str]:
        ctx = self.context
        return {ctx.type_attribute_name, ctx.null_attribute_name, ctx.reference_id_attribute_name,
                ctx.refer_to_attribute_name, ctx.array_attribute_name, ctx.array_index_attribute_name,
                ctx.array_lower_bound_attribute}


# Methods --------------------------------------------------------------------------------------------------------------

def deserialize(node: Element | ElementTree, expected_type: Any = None,
                context: SerializationContext | None = None) -> Any:
    """Decode a root node with a fresh Deserializer."""
    return Deserializer(context).deserialize(node, expected_type)
