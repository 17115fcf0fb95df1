"""
Objtree reference tracking for cycles and shared references.

Both classes are scoped to a single serialize or deserialize call and must not be shared
across threads.
"""

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Any
from xml.etree.ElementTree import Element

# Local ----------------------------------------------------------------------------------------------------------------
from .errors import UnknownReferenceError
from .tools import fmt_type
from .utils import runtime_class


# Classes --------------------------------------------------------------------------------------------------------------

class ReferenceTracker:
    """
    Identity bookkeeping for one serialize or deserialize session.

    Serialize side: remembers the first node emitted for each object identity and hands
    out reference ids lazily, only once an object is met a second time.
    Deserialize side: maps reference ids to the objects decoded for them.
    """

    def __init__(self):
        # id(obj) -> (obj, node); obj is held to keep its id() stable for the session
        self._nodes: dict[int, tuple[Any, Element]] = {}
        self._ref_ids: dict[int, str] = {}
        self._next_id = 1
        self._objects: dict[str, Any] = {}

    # Serialize ----------------------------------------

    def first_node(self, obj: Any) -> Element | None:
        """Return the node first emitted for obj, or None if obj has not been seen."""
        entry = self._nodes.get(id(obj))
        return entry[1] if entry is not None else None

    def remember(self, obj: Any, node: Element) -> None:
        self._nodes[id(obj)] = (obj, node)

    def ref_id_for(self, obj: Any) -> tuple[str, bool]:
        """
        Return the reference id of a seen object, assigning the next id on first request.

        Returns:
            (ref_id, is_new) where is_new tells the caller to stamp the id on the first node.
        """
        key = id(obj)
        if key not in self._nodes:
            raise KeyError(f"object was never remembered: {fmt_type(obj)}")
        ref_id = self._ref_ids.get(key)
        if ref_id is not None:
            return ref_id, False
        ref_id = str(self._next_id)
        self._next_id += 1
        self._ref_ids[key] = ref_id
        return ref_id, True

    # Deserialize --------------------------------------

    def register(self, ref_id: str, obj: Any) -> None:
        self._objects[ref_id] = obj

    def resolve(self, ref_id: str) -> Any:
        """
        Return the object registered under ref_id.

        Raises:
            UnknownReferenceError: If ref_id was never registered in this session.
        """
        try:
            return self._objects[ref_id]
        except KeyError:
            raise UnknownReferenceError(ref_id) from None

    def __contains__(self, ref_id: str) -> bool:
        return ref_id in self._objects


class WorkingObject:
    """
    Placeholder for the value being decoded from one node.

    Created before the node's content is decoded and registered under the node's reference id
    as soon as a value is set, so that nodes nested inside it can refer back to it.

    Attributes:
        working_type: The resolved type of the node; may be a parametrized generic alias.
    """

    def __init__(self, tracker: ReferenceTracker | None = None, ref_id: str | None = None,
                 working_type: Any = None):
        self.working_type = working_type
        self._tracker = tracker
        self._ref_id = ref_id
        self._value = None
        self._is_set = False

    @property
    def value(self) -> Any:
        return self._value

    @property
    def is_set(self) -> bool:
        return self._is_set

    @property
    def working_class(self) -> type | None:
        """The class behind working_type (the origin of a generic alias)."""
        return runtime_class(self.working_type)

    def set(self, value: Any) -> None:
        """
        Set the decoded value; allowed once.

        Raises:
            RuntimeError: If a value was already set.
        """
        if self._is_set:
            raise RuntimeError("working object has already been set for this node")
        self._value = value
        self._is_set = True
        if self._tracker is not None and self._ref_id is not None:
            self._tracker.register(self._ref_id, value)

    def get_existing_or_create_new(self, tp: Any = None) -> Any:
        """Return the current value, or instantiate tp (default: working_class) with no arguments and set it."""
        if self._is_set:
            return self._value
        cls = runtime_class(tp) if tp is not None else self.working_class
        if cls is None:
            raise TypeError(f"cannot instantiate {fmt_type(tp if tp is not None else self.working_type)}")
        value = cls()
        self.set(value)
        return value

    def __repr__(self) -> str:
        state = repr(self._value) if self._is_set else "<unset>"
        return f"WorkingObject({state}, working_type={self.working_type!r})"
