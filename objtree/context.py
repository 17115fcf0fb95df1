"""
Objtree Serialization Context

All configurable names, policy flags, the field renamer and the external surrogate table.
Contexts form a parent chain that ends at the process-wide global context: every setting that
is not overridden on a context is read live from its parent.

Contexts are configuration. Mutating a context while another thread serializes with it (or with
a context chained to it) is the caller's responsibility.
"""

# Standard library -----------------------------------------------------------------------------------------------------
from enum import Enum, unique
from typing import Any, Callable, ClassVar

# Local ----------------------------------------------------------------------------------------------------------------
from .sentinels import UNSET
from .surrogates import ExternalSurrogate, combine
from .tools import fmt_type, fmt_value
from .utils import runtime_class


# Classes --------------------------------------------------------------------------------------------------------------

@unique
class TypeTagMode(str, Enum):
    """
    Type attribute policy:
        - "concise": tag a node only when its runtime type differs from the declared type
        - "verbose": tag every non-null node
    """
    CONCISE = "concise"
    VERBOSE = "verbose"


class _Setting:
    """
    Descriptor for an inherited context setting.

    Reads return this context's override, else the parent's value, recursively, ending at
    the global context whose values come from `default`. Deleting the attribute clears this
    context's override; deleting on the global context is a no-op. Assigning None also clears
    the override, unless the setting is nullable, where None is stored like any other value.
    """

    def __init__(self, default: Any, validate: Callable[[str, Any], Any], *, nullable: bool = False):
        self.default = default
        self.validate = validate
        self.nullable = nullable
        self.name = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, ctx: "SerializationContext | None", owner: type | None = None) -> Any:
        if ctx is None:
            return self
        while ctx is not None:
            value = ctx._overrides.get(self.name, UNSET)
            if value is not UNSET:
                return value
            ctx = ctx._parent
        return self.default

    def __set__(self, ctx: "SerializationContext", value: Any) -> None:
        if value is None:
            if self.nullable:
                ctx._overrides[self.name] = None
            else:
                ctx._overrides.pop(self.name, None)
            return
        ctx._overrides[self.name] = self.validate(self.name, value)

    def __delete__(self, ctx: "SerializationContext") -> None:
        if ctx._is_global:
            return
        ctx._overrides.pop(self.name, None)


def _name_value(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {fmt_type(value)}")
    if not value:
        raise ValueError(f"{name} must be a non-empty str, got {fmt_value(value)}")
    return value


def _flag_value(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{name} must be a bool, got {fmt_type(value)}")
    return value


def _mode_value(name: str, value: Any) -> TypeTagMode:
    try:
        return TypeTagMode(value)
    except ValueError:
        raise ValueError(f"{name} must be one of {[m.value for m in TypeTagMode]}, got {fmt_value(value)}") from None


def _renamer_value(name: str, value: Any) -> Callable:
    if not callable(value):
        raise TypeError(f"{name} must be callable, got {fmt_type(value)}")
    return value


class SerializationContext:
    """
    Configuration for Serializer and Deserializer, inheriting unset values from a parent.

    Wire names:
        root_element_name: Name of the document root node (default "_Root")
        type_attribute_name: Attribute tagging a node's runtime type (default "_Type")
        null_attribute_name / null_attribute_value: Marks a null value (default "_Null" = "1")
        reference_id_attribute_name: Id of a node that is referred to again (default "_RefID")
        refer_to_attribute_name: Marks a node as an alias of an earlier id (default "_ReferTo")
        array_attribute_name: Comma-joined per-dimension array lengths (default "_Array")
        array_element_name: Name of per-element child nodes (default "_Element")
        array_index_attribute_name: Explicit element position (default "_Index")
        array_lower_bound_attribute: Comma-joined per-dimension lower bounds (default "_LowerBound")

    Policy flags (all default False):
        fix_field_names: Strip a leading "m_" or "_" member prefix and capitalize the remainder
        remove_null_values_from_xml: Omit nodes for null fields and null array elements
        all_arrays_have_explicit_elements: Never use the condensed comma-separated array text
        array_elements_include_indices: Put an index attribute on every explicit array element
        duplicate_strings_can_be_referred_to: Track str identity like any other reference type

    Other settings:
        type_tag_mode: TypeTagMode.CONCISE (default) or TypeTagMode.VERBOSE
        field_renamer: Callable (name, field) -> str applied to field names, or None;
            assigning None turns off an inherited renamer, `del` restores it

    Examples:
        >>> base = SerializationContext()
        >>> child = base.derive()
        >>> base.remove_null_values_from_xml = True
        >>> child.remove_null_values_from_xml
        True
        >>> ctx = SerializationContext().set_concise()
        >>> ctx.type_attribute_name
        '_T'
    """

    FULL_NAMES: ClassVar[dict[str, str]] = {
        "root_element_name": "_Root",
        "type_attribute_name": "_Type",
        "null_attribute_name": "_Null",
        "null_attribute_value": "1",
        "reference_id_attribute_name": "_RefID",
        "refer_to_attribute_name": "_ReferTo",
        "array_attribute_name": "_Array",
        "array_element_name": "_Element",
        "array_index_attribute_name": "_Index",
        "array_lower_bound_attribute": "_LowerBound",
    }

    SHORT_NAMES: ClassVar[dict[str, str]] = {
        "root_element_name": "_R",
        "type_attribute_name": "_T",
        "null_attribute_name": "_N",
        "null_attribute_value": "1",
        "reference_id_attribute_name": "_ID",
        "refer_to_attribute_name": "_RID",
        "array_attribute_name": "_A",
        "array_element_name": "_",
        "array_index_attribute_name": "_I",
        "array_lower_bound_attribute": "_L",
    }

    _global: ClassVar["SerializationContext | None"] = None

    root_element_name = _Setting(FULL_NAMES["root_element_name"], _name_value)
    type_attribute_name = _Setting(FULL_NAMES["type_attribute_name"], _name_value)
    null_attribute_name = _Setting(FULL_NAMES["null_attribute_name"], _name_value)
    null_attribute_value = _Setting(FULL_NAMES["null_attribute_value"], _name_value)
    reference_id_attribute_name = _Setting(FULL_NAMES["reference_id_attribute_name"], _name_value)
    refer_to_attribute_name = _Setting(FULL_NAMES["refer_to_attribute_name"], _name_value)
    array_attribute_name = _Setting(FULL_NAMES["array_attribute_name"], _name_value)
    array_element_name = _Setting(FULL_NAMES["array_element_name"], _name_value)
    array_index_attribute_name = _Setting(FULL_NAMES["array_index_attribute_name"], _name_value)
    array_lower_bound_attribute = _Setting(FULL_NAMES["array_lower_bound_attribute"], _name_value)

    fix_field_names = _Setting(False, _flag_value)
    remove_null_values_from_xml = _Setting(False, _flag_value)
    all_arrays_have_explicit_elements = _Setting(False, _flag_value)
    array_elements_include_indices = _Setting(False, _flag_value)
    duplicate_strings_can_be_referred_to = _Setting(False, _flag_value)

    type_tag_mode = _Setting(TypeTagMode.CONCISE, _mode_value)
    field_renamer = _Setting(None, _renamer_value, nullable=True)

    def __init__(self, parent: "SerializationContext | None" = None, *, _is_global: bool = False):
        if parent is not None and not isinstance(parent, SerializationContext):
            raise TypeError(f"parent must be a SerializationContext or None, got {fmt_type(parent)}")
        self._is_global = _is_global
        self._parent = None if _is_global else (parent or SerializationContext.global_context())
        self._overrides: dict[str, Any] = {}
        self._surrogates: dict[type, ExternalSurrogate] = {}

    # Class Methods ------------------------------------

    @classmethod
    def global_context(cls) -> "SerializationContext":
        """Return the process-wide default context that every parent chain ends at."""
        if SerializationContext._global is None:
            SerializationContext._global = SerializationContext(_is_global=True)
        return SerializationContext._global

    @classmethod
    def setting_names(cls) -> tuple[str, ...]:
        """Names of all inherited settings, in declaration order."""
        return tuple(name for name, value in vars(SerializationContext).items() if isinstance(value, _Setting))

    # Methods and Properties ---------------------------

    @property
    def parent(self) -> "SerializationContext | None":
        return self._parent

    @property
    def is_global(self) -> bool:
        return self._is_global

    def derive(self) -> "SerializationContext":
        """Return a new context that inherits every setting from this one."""
        return SerializationContext(self)

    def is_overridden(self, name: str) -> bool:
        """True when this context carries its own value for setting `name`."""
        if name not in self.setting_names():
            raise AttributeError(f"unknown setting {name!r}")
        return name in self._overrides

    def set_full_names(self) -> "SerializationContext":
        """Use the long wire names ("_Type", "_Null", ...) on this context."""
        for name, value in self.FULL_NAMES.items():
            setattr(self, name, value)
        return self

    def set_short_names(self) -> "SerializationContext":
        """Use the short wire names ("_T", "_N", ...) on this context."""
        for name, value in self.SHORT_NAMES.items():
            setattr(self, name, value)
        return self

    def set_concise(self) -> "SerializationContext":
        """Short names, nulls removed, condensed arrays, shared strings."""
        self.set_short_names()
        self.remove_null_values_from_xml = True
        self.fix_field_names = True
        self.array_elements_include_indices = False
        self.all_arrays_have_explicit_elements = False
        self.duplicate_strings_can_be_referred_to = True
        self.type_tag_mode = TypeTagMode.CONCISE
        return self

    def set_verbose(self) -> "SerializationContext":
        """Full names, explicit nulls, explicit indexed array elements, every node type-tagged."""
        self.set_full_names()
        self.remove_null_values_from_xml = False
        self.fix_field_names = True
        self.array_elements_include_indices = True
        self.all_arrays_have_explicit_elements = True
        self.duplicate_strings_can_be_referred_to = False
        self.type_tag_mode = TypeTagMode.VERBOSE
        return self

    def reset_to_defaults(self) -> "SerializationContext":
        """Clear every override and every external surrogate registered on this context."""
        self._overrides.clear()
        self._surrogates.clear()
        return self

    # External Surrogates ------------------------------

    def register_external_surrogate(self, typ: type, surrogate: ExternalSurrogate | None) -> "SerializationContext":
        """
        Register a surrogate for an exact type on this context.

        A surrogate already registered on this context for the same type is kept and combined
        with the new one, so both run, in registration order. Registering None is a no-op.

        Returns:
            Self, to allow chaining.

        Raises:
            TypeError: If typ is not a type or surrogate is not an ExternalSurrogate.
        """
        typ = self._check_type(typ)
        if surrogate is not None and not isinstance(surrogate, ExternalSurrogate):
            raise TypeError(f"surrogate must be an ExternalSurrogate, got {fmt_type(surrogate)}")

        combined = combine(self._surrogates.get(typ), surrogate)
        if combined is not None:
            self._surrogates[typ] = combined
        return self

    def get_external_surrogate(self, typ: type) -> ExternalSurrogate | None:
        """
        Return the surrogate registered for exactly typ, searching this context then its parents.

        Base classes of typ are never consulted.

        Raises:
            TypeError: If typ is not a type.
        """
        typ = self._check_type(typ)
        ctx = self
        while ctx is not None:
            surrogate = ctx._surrogates.get(typ)
            if surrogate is not None:
                return surrogate
            ctx = ctx._parent
        return None

    def remove_external_surrogate(self, typ: type) -> bool:
        """
        Remove the surrogate registered for typ on this context only.

        Returns:
            True if a surrogate was removed.

        Raises:
            TypeError: If typ is not a type.
        """
        typ = self._check_type(typ)
        return self._surrogates.pop(typ, None) is not None

    @staticmethod
    def _check_type(typ: Any) -> type:
        cls = runtime_class(typ)
        if cls is None:
            raise TypeError(f"typ must be a type, got {fmt_type(typ)}")
        return cls

    def __repr__(self) -> str:
        if self._is_global:
            return "SerializationContext(<global>)"
        return f"SerializationContext(overrides={self._overrides!r})"
