"""
Objtree Arrays

`MultiArray` is a rectangular array with any number of dimensions and per-dimension lower bounds,
the counterpart of the multi-dimensional arrays the wire format can describe. `ArrayBuilder` is the
decode-side cursor that fills a list, tuple or MultiArray element by element, honouring explicit
(possibly multi-dimensional) index positions.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import itertools
import math
from typing import Any, Generic, Iterator, Sequence, TypeVar, get_args, get_origin

# Local ----------------------------------------------------------------------------------------------------------------
from .errors import DeserializationError
from .sentinels import UNSET
from .tools import fmt_type, fmt_value
from .utils import default_value

T = TypeVar('T')


# Classes --------------------------------------------------------------------------------------------------------------

class MultiArray(Generic[T]):
    """
    Rectangular array with per-dimension lengths and lower bounds.

    Elements are stored row-major (last dimension varies fastest). Indexing takes a tuple of
    absolute indices, i.e. including the lower bound of each dimension; rank-1 arrays also
    accept a plain int.

    Examples:
        >>> grid = MultiArray(int, (2, 3), lower_bounds=(1, 0))
        >>> grid[1, 2] = 7
        >>> grid[1, 2]
        7
        >>> list(grid.indices())[:2]
        [(1, 0), (1, 1)]
    """

    __slots__ = ('_element_type', '_lengths', '_lower_bounds', '_items')

    def __init__(self,
                 element_type: Any,
                 lengths: Sequence[int],
                 lower_bounds: Sequence[int] | None = None,
                 fill: Any = UNSET):
        lengths = tuple(int(n) for n in lengths)
        if not lengths:
            raise ValueError("lengths must contain at least one dimension")
        if any(n < 0 for n in lengths):
            raise ValueError(f"lengths must be non-negative, got {fmt_value(lengths)}")
        if lower_bounds is None:
            lower_bounds = (0,) * len(lengths)
        lower_bounds = tuple(int(b) for b in lower_bounds)
        if len(lower_bounds) != len(lengths):
            raise ValueError(f"lower_bounds must have {len(lengths)} items, got {fmt_value(lower_bounds)}")

        self._element_type = element_type
        self._lengths = lengths
        self._lower_bounds = lower_bounds
        value = default_value(element_type) if fill is UNSET else fill
        self._items = [value] * math.prod(lengths)

    @classmethod
    def from_nested(cls,
                    element_type: Any,
                    nested: Sequence,
                    lower_bounds: Sequence[int] | None = None) -> "MultiArray":
        """
        Build an array from nested sequences; the nesting depth of the first item sets the rank.

        Raises:
            ValueError: If the nested sequences are not rectangular.
        """
        lengths = []
        inner = nested
        while isinstance(inner, (list, tuple)):
            lengths.append(len(inner))
            if not inner:
                break
            inner = inner[0]

        array = cls(element_type, lengths, lower_bounds)
        rank = len(lengths)

        def walk(level: Sequence, depth: int, prefix: tuple[int, ...]) -> None:
            if not isinstance(level, (list, tuple)) or len(level) != lengths[depth]:
                raise ValueError(f"nested sequences must be rectangular, got {fmt_value(nested)}")
            for i, item in enumerate(level):
                if depth + 1 < rank:
                    walk(item, depth + 1, prefix + (i,))
                else:
                    array._items[array._offset_zero(prefix + (i,))] = item

        walk(nested, 0, ())
        return array

    @property
    def element_type(self) -> Any:
        return self._element_type

    @property
    def lengths(self) -> tuple[int, ...]:
        return self._lengths

    @property
    def lower_bounds(self) -> tuple[int, ...]:
        return self._lower_bounds

    @property
    def rank(self) -> int:
        return len(self._lengths)

    @property
    def size(self) -> int:
        return len(self._items)

    def indices(self) -> Iterator[tuple[int, ...]]:
        """Yield every absolute index tuple in row-major order."""
        ranges = [range(lb, lb + n) for lb, n in zip(self._lower_bounds, self._lengths)]
        return itertools.product(*ranges)

    def tolist(self) -> list:
        """Return the elements as nested lists."""
        def build(depth: int, offset: int) -> list:
            stride = math.prod(self._lengths[depth + 1:])
            if depth == self.rank - 1:
                return self._items[offset:offset + self._lengths[depth]]
            return [build(depth + 1, offset + i * stride) for i in range(self._lengths[depth])]

        return build(0, 0)

    def __getitem__(self, index: int | tuple[int, ...]) -> T:
        return self._items[self._offset(index)]

    def __setitem__(self, index: int | tuple[int, ...], value: T) -> None:
        self._items[self._offset(index)] = value

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, MultiArray):
            return NotImplemented
        return (self._lengths == other._lengths
                and self._lower_bounds == other._lower_bounds
                and self._items == other._items)

    __hash__ = None

    def __repr__(self) -> str:
        name = getattr(self._element_type, "__name__", repr(self._element_type))
        return f"MultiArray[{name}](lengths={self._lengths}, lower_bounds={self._lower_bounds})"

    # Private Methods ------------------------------

    def _offset(self, index: int | tuple[int, ...]) -> int:
        if isinstance(index, int):
            index = (index,)
        if not isinstance(index, tuple) or len(index) != self.rank:
            raise IndexError(f"index must be a tuple of {self.rank} ints, got {fmt_value(index)}")
        zero_based = []
        for i, lb, n in zip(index, self._lower_bounds, self._lengths):
            if not lb <= i < lb + n:
                raise IndexError(f"index {fmt_value(index)} out of bounds for {self!r}")
            zero_based.append(i - lb)
        return self._offset_zero(tuple(zero_based))

    def _offset_zero(self, index: tuple[int, ...]) -> int:
        offset = 0
        for i, n in zip(index, self._lengths):
            offset = offset * n + i
        return offset


class ArrayBuilder:
    """
    Decode-side cursor that places array elements at explicit or implied positions.

    The cursor starts at the lower bound of every dimension. `set_indices` moves it to an
    absolute position; `add` stores a value and advances row-major.

    Parameters:
        array_type: list, tuple or MultiArray; selects the container `result()` returns.
        element_type: Declared element type, used for default values and nested decoding.
        lengths: Per-dimension lengths. Rank-1 for list and tuple.
        lower_bounds: Per-dimension lower bounds, zero when omitted.
        position_types: Per-position element types for fixed-shape tuples.
    """

    def __init__(self,
                 array_type: type,
                 element_type: Any,
                 lengths: Sequence[int],
                 lower_bounds: Sequence[int] | None = None,
                 *,
                 position_types: Sequence[Any] | None = None,
                 existing: Any = None):
        if array_type not in (list, tuple, MultiArray):
            raise TypeError(f"array_type must be list, tuple or MultiArray, got {fmt_type(array_type)}")
        if array_type is not MultiArray and len(lengths) != 1:
            raise DeserializationError(
                f"{array_type.__name__} is one-dimensional, got lengths {fmt_value(tuple(lengths))}"
            )
        self.array_type = array_type
        self.element_type = element_type
        self.position_types = tuple(position_types) if position_types is not None else None

        if existing is not None:
            self._array = existing
        else:
            self._array = MultiArray(element_type, lengths, lower_bounds)
            if self.position_types is not None:
                for i, tp in zip(self._array.indices(), self.position_types):
                    self._array[i] = default_value(tp)
        self._cursor = list(self._array.lower_bounds)
        self._exhausted = self._array.size == 0

    @classmethod
    def over(cls, existing: Any, element_type: Any = object) -> "ArrayBuilder":
        """Build into an existing list or MultiArray instead of allocating a new array."""
        if isinstance(existing, MultiArray):
            return cls(MultiArray, existing.element_type, existing.lengths, existing.lower_bounds,
                       existing=existing)
        if isinstance(existing, list):
            view = _ListView(existing)
            builder = cls(list, element_type, (len(existing),), existing=view)
            return builder
        raise TypeError(f"existing must be a list or MultiArray, got {fmt_type(existing)}")

    @property
    def rank(self) -> int:
        return self._array.rank

    @property
    def current_element_type(self) -> Any:
        """Declared type of the element at the cursor."""
        if self.position_types is not None and not self._exhausted:
            position = self._cursor[0] - self._array.lower_bounds[0]
            if position < len(self.position_types):
                return self.position_types[position]
        return self.element_type

    def set_indices(self, indices: Sequence[int]) -> None:
        """
        Move the cursor to an absolute position.

        Raises:
            DeserializationError: If the rank differs or any index is out of bounds.
        """
        if len(indices) != self.rank:
            raise DeserializationError(
                f"index {fmt_value(tuple(indices))} does not match array rank {self.rank}"
            )
        for i, lb, n in zip(indices, self._array.lower_bounds, self._array.lengths):
            if not lb <= i < lb + n:
                raise DeserializationError(
                    f"index {fmt_value(tuple(indices))} out of bounds for lengths {self._array.lengths}"
                )
        self._cursor = list(indices)
        self._exhausted = False

    def add(self, value: Any) -> None:
        """
        Store value at the cursor and advance it row-major.

        Raises:
            DeserializationError: If the array is already full.
        """
        if self._exhausted:
            raise DeserializationError(f"too many elements for array lengths {self._array.lengths}")
        self._array[tuple(self._cursor)] = value
        self._increment()

    def result(self) -> Any:
        """Return the filled container of `array_type`."""
        array = self._array
        if isinstance(array, _ListView):
            return array.items
        if self.array_type is MultiArray:
            return array
        return self.array_type(array)

    def _increment(self) -> None:
        for dim in range(self.rank - 1, -1, -1):
            self._cursor[dim] += 1
            if self._cursor[dim] < self._array.lower_bounds[dim] + self._array.lengths[dim]:
                return
            self._cursor[dim] = self._array.lower_bounds[dim]
        self._exhausted = True


class _ListView:
    """Rank-1, zero-based MultiArray facade over an existing list."""

    def __init__(self, items: list):
        self.items = items
        self.lengths = (len(items),)
        self.lower_bounds = (0,)
        self.rank = 1
        self.size = len(items)

    def __setitem__(self, index: tuple[int], value: Any) -> None:
        self.items[index[0]] = value


# Methods --------------------------------------------------------------------------------------------------------------

def array_shape(tp: Any) -> tuple[type, Any, tuple | None] | None:
    """
    Describe an array declared type as (container, element type, per-position types).

    Returns None when tp is not list, tuple or MultiArray (bare or parametrized).
    Bare containers have element type `object`.

    Examples:
        >>> array_shape(list[int])
        (<class 'list'>, <class 'int'>, None)
        >>> array_shape(tuple[int, str])
        (<class 'tuple'>, <class 'object'>, (<class 'int'>, <class 'str'>))
    """
    origin = get_origin(tp) or tp
    if origin not in (list, tuple, MultiArray):
        return None
    args = get_args(tp)
    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple, args[0], None
        if args:
            if all(a is args[0] for a in args):
                return tuple, args[0], args
            return tuple, object, args
        return tuple, object, None
    return origin, (args[0] if args else object), None
