"""
Objtree Serializer

Encodes an object graph into an `xml.etree.ElementTree.Element` tree.

Each value is written into a node in this order:

    1. None                 -> null attribute
    2. Already seen object  -> refer-to attribute (the first node gets a reference id)
    3. Type tag             -> when verbose, or when the runtime type differs from the declared type
    4. Surrogates           -> external, built-in, implicit; stop if one completes
    5. Primitive/str/enum   -> node text
    6. list/tuple/MultiArray-> condensed text or one child node per element
    7. Object               -> one child node per field, most-derived class level first
"""

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Any
from xml.etree.ElementTree import Element, SubElement

# Local ----------------------------------------------------------------------------------------------------------------
from .arrays import MultiArray, array_shape
from .codec import encode_enum, encode_primitive, format_indices, join_condensed
from .context import SerializationContext, TypeTagMode
from .errors import SerializationError
from .metadata import get_type_metadata
from .references import ReferenceTracker
from .sentinels import UNSET, ifnotunset
from .surrogates import find_builtin_surrogate
from .tools import fmt_type
from .utils import is_enum, is_primitive, is_simple, is_string, runtime_class, strip_optional, type_name

# Decoded only once their contents are, so nothing inside may refer back to them
_BUILT_AFTER_CONTENTS = (tuple, frozenset)


# Classes --------------------------------------------------------------------------------------------------------------

class Serializer:
    """
    Object graph to node tree encoder.

    A Serializer keeps per-call reference state and must not be shared across threads;
    create one per thread (contexts may be shared).

    Examples:
        >>> node = Serializer().serialize([1, 2, 3], list[int])
        >>> node.text
        '1,2,3'
    """

    def __init__(self, context: SerializationContext | None = None):
        if context is not None and not isinstance(context, SerializationContext):
            raise TypeError(f"context must be a SerializationContext or None, got {fmt_type(context)}")
        self.context = context or SerializationContext.global_context()
        self._tracker = ReferenceTracker()
        self._ignored: set[str] = set()
        self._open: set[int] = set()

    def serialize(self, obj: Any, declared_type: Any = UNSET) -> Element:
        """
        Encode obj into a new root node named after the context's root element name.

        Args:
            obj: Root of the object graph.
            declared_type: Type the reader will expect; defaults to the runtime type of obj,
                so the root carries no type tag in concise mode. Pass `object` to force a tag.

        Returns:
            The root Element.
        """
        self._tracker = ReferenceTracker()
        self._ignored = set()
        self._open = set()
        root = Element(self.context.root_element_name)
        self.encode_value(obj, ifnotunset(declared_type, default=type(obj)), root)
        return root

    def encode_child(self, parent: Element, name: str, value: Any, declared_type: Any = object, *,
                     element_name: str | None = None) -> Element:
        """Append a child node named `name` to parent and encode value into it."""
        node = SubElement(parent, name)
        self.encode_value(value, declared_type, node, element_name=element_name)
        return node

    def ignore_field(self, name: str) -> None:
        """
        Skip a field in the default walk of the value a surrogate is handling.

        For surrogates that encode part of an object and return False. Applies to fields declared
        by the class level the surrogate was called for, matched by their declared attribute name.
        """
        if not isinstance(name, str):
            raise TypeError(f"name must be a str, got {fmt_type(name)}")
        self._ignored.add(name)

    def encode_value(self, value: Any, declared_type: Any, node: Element, *,
                     element_name: str | None = None) -> None:
        """
        Encode one value into an existing node.

        Args:
            value: The value to encode.
            declared_type: The statically expected type of the slot holding value.
            node: The node receiving the value.
            element_name: Per-element node name if value is an array.
        """
        ctx = self.context
        if value is None:
            node.set(ctx.null_attribute_name, ctx.null_attribute_value)
            return

        if self._handle_reference(value, node):
            return

        declared = strip_optional(declared_type)
        use_type = self._effective_type(value, declared)
        if ctx.type_tag_mode is TypeTagMode.VERBOSE or use_type != declared:
            node.set(ctx.type_attribute_name, type_name(use_type))

        if not isinstance(value, _BUILT_AFTER_CONTENTS):
            self._encode_content(value, use_type, node, element_name)
            return
        self._open.add(id(value))
        try:
            self._encode_content(value, use_type, node, element_name)
        finally:
            self._open.discard(id(value))

    # Private Methods ----------------------------------

    def _encode_content(self, value: Any, use_type: Any, node: Element, element_name: str | None) -> None:
        self._ignored = set()
        if self._apply_surrogates(value, use_type, node):
            return

        cls = type(value)
        if is_enum(cls):
            node.text = encode_enum(value)
        elif is_primitive(cls):
            node.text = encode_primitive(value)
        elif is_string(cls):
            node.text = str(value)
        elif array_shape(use_type) is not None:
            self._encode_array(value, use_type, node, element_name)
        else:
            self._encode_object(value, node)

    def _handle_reference(self, value: Any, node: Element) -> bool:
        cls = type(value)
        if is_primitive(cls) or is_enum(cls):
            return False
        if is_string(cls) and not self.context.duplicate_strings_can_be_referred_to:
            return False

        first = self._tracker.first_node(value)
        if first is None:
            self._tracker.remember(value, node)
            return False
        if first is node:
            return False
        if id(value) in self._open:
            raise SerializationError(
                f"cannot refer back to {fmt_type(value)} while its contents are being encoded; "
                f"it can only be rebuilt after them"
            )

        ref_id, is_new = self._tracker.ref_id_for(value)
        if is_new:
            first.set(self.context.reference_id_attribute_name, ref_id)
        node.set(self.context.refer_to_attribute_name, ref_id)
        return True

    @staticmethod
    def _effective_type(value: Any, declared: Any) -> Any:
        """The runtime type of value, or the declared generic alias when its origin is that type."""
        cls = type(value)
        if not isinstance(declared, type) and runtime_class(declared) is cls:
            return declared
        if isinstance(value, MultiArray):
            return MultiArray[value.element_type]
        return cls

    def _apply_surrogates(self, value: Any, use_type: Any, node: Element) -> bool:
        cls = runtime_class(use_type)
        surrogate = self.context.get_external_surrogate(cls)
        if surrogate is not None and surrogate.serialize(value, use_type, node, self):
            return True

        builtin = find_builtin_surrogate(cls)
        if builtin is not None:
            return builtin.serialize(value, use_type, node, self)

        if _has_implicit_surrogates(cls):
            implicit = get_type_metadata(cls).implicit_surrogate
            if implicit is not None:
                return implicit.serialize(value, node, self)
        return False

    def _encode_array(self, value: Any, use_type: Any, node: Element, element_name: str | None) -> None:
        ctx = self.context
        _, element_type, position_types = array_shape(use_type)

        if isinstance(value, MultiArray):
            lengths, lower_bounds = value.lengths, value.lower_bounds
            entries = list(zip(value.indices(), value))
        else:
            lengths, lower_bounds = (len(value),), (0,)
            entries = [((i,), item) for i, item in enumerate(value)]

        node.set(ctx.array_attribute_name, format_indices(lengths))
        if len(lengths) > 1 or any(lower_bounds):
            node.set(ctx.array_lower_bound_attribute, format_indices(lower_bounds))

        items = [item for _, item in entries]
        if self._can_condense(items, element_type):
            node.text = join_condensed(items, element_type)
            return

        name = element_name or ctx.array_element_name
        previous = -1
        for position, (index, item) in enumerate(entries):
            if item is None and ctx.remove_null_values_from_xml:
                continue
            item_type = element_type
            if position_types is not None and position < len(position_types):
                item_type = position_types[position]
            child = self.encode_child(node, name, item, item_type)
            if ctx.array_elements_include_indices or position != previous + 1:
                child.set(ctx.array_index_attribute_name, format_indices(index))
            previous = position

    def _can_condense(self, items: list, element_type: Any) -> bool:
        if self.context.all_arrays_have_explicit_elements or not is_simple(element_type):
            return False
        return all(item is None or type(item) is element_type for item in items)

    def _encode_object(self, value: Any, node: Element) -> None:
        ctx = self.context
        metadata = get_type_metadata(type(value))
        ignored = self._take_ignored()
        for level in metadata.levels():
            if level is not metadata:
                self._ignored = set()
                completed = self._apply_surrogates(value, level.type, node)
                ignored = self._take_ignored()
                if completed:
                    return
            fields = metadata.instance_fields(value) if metadata.dynamic else level.own_fields
            for fd in fields:
                if fd.name in ignored:
                    continue
                field_value = fd.get(value)
                if field_value is None and ctx.remove_null_values_from_xml:
                    continue
                self.encode_child(node, fd.xml_name(ctx), field_value, fd.declared_type,
                                  element_name=fd.element_name)
            if metadata.dynamic:
                return

    def _take_ignored(self) -> set[str]:
        """Hand the names ignored so far to the current level; nested values start a new set."""
        ignored, self._ignored = self._ignored, set()
        return ignored


# Methods --------------------------------------------------------------------------------------------------------------

def serialize(obj: Any, context: SerializationContext | None = None, *, declared_type: Any = UNSET) -> Element:
    """Encode obj into a root Element with a fresh Serializer."""
    return Serializer(context).serialize(obj, declared_type)


# Private Methods ------------------------------------------------------------------------------------------------------

def _has_implicit_surrogates(cls: type | None) -> bool:
    """True for classes whose metadata may declare implicit surrogates (not primitives, strings or arrays)."""
    if cls is None:
        return False
    return not (is_simple(cls) or is_enum(cls) or issubclass(cls, (list, tuple, MultiArray)))
