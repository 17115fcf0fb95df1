#
# Objtree - Deserializer Tests
#

# Standard library -----------------------------------------------------------------------------------------------------
from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from typing import Optional
from xml.etree import ElementTree as ET

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from objtree.arrays import MultiArray
from objtree.deserializer import Deserializer, deserialize
from objtree.errors import DeserializationError, UnknownReferenceError
from objtree.serializer import serialize


# Classes --------------------------------------------------------------------------------------------------------------

class Color(Enum):
    RED = 1
    GREEN = 2


class Perm(Flag):
    R = auto()
    W = auto()


@dataclass
class Person:
    name: Optional[str] = None
    age: int = 0


@dataclass
class Box:
    content: object = None


@dataclass
class Palette:
    primary: Color = Color.RED
    access: Perm = Perm.R
    scores: list[int] = field(default_factory=list)
    labels: list[Color] = field(default_factory=list)


@dataclass
class Inventory:
    counts: dict[str, int] = field(default_factory=dict)
    owners: tuple[str, ...] = ()


@dataclass
class Required:
    value: int


@dataclass(frozen=True)
class Frozen:
    x: int = 0


@dataclass(eq=False)
class LinkedNode:
    m_data: int = 0
    m_next: Optional["LinkedNode"] = None


class Plain:
    def __init__(self):
        self.a = 1
        self.b = "x"


# Methods --------------------------------------------------------------------------------------------------------------

def roundtrip(obj, declared_type, context=None):
    return deserialize(serialize(obj, context, declared_type=declared_type), declared_type, context)


# Tests ----------------------------------------------------------------------------------------------------------------

class TestObjects:
    @pytest.mark.parametrize(
        "obj",
        [
            pytest.param(Person("Ann", 30), id="person"),
            pytest.param(Person(None, 3), id="null-field"),
            pytest.param(Person("", 0), id="empty-string"),
            pytest.param(Palette(Color.GREEN, Perm.R | Perm.W, [1, 2], [Color.RED, Color.GREEN]), id="enums-arrays"),
            pytest.param(Inventory({"a": 1, "b": 2}, ("x", "y")), id="mapping-tuple"),
            pytest.param(Required(5), id="no-default-constructor"),
            pytest.param(Frozen(3), id="frozen"),
            pytest.param(Box(Person("Ann", 1)), id="tagged-object"),
            pytest.param(Box(2.5), id="tagged-float"),
        ],
    )
    @pytest.mark.parametrize("verbose", [False, True], ids=["concise", "verbose"])
    def test_roundtrip(self, ctx, obj, verbose):
        if verbose:
            ctx.set_verbose()
        assert roundtrip(obj, type(obj), ctx) == obj

    def test_dynamic_object(self):
        result = roundtrip(Plain(), Plain)
        assert isinstance(result, Plain)
        assert (result.a, result.b) == (1, "x")

    def test_unknown_children_ignored(self):
        node = ET.fromstring("<_Root><name>Ann</name><extra>1</extra></_Root>")
        assert deserialize(node, Person) == Person("Ann", 0)

    def test_attribute_fallback(self):
        """Simple fields may also be read from same-named attributes."""
        node = ET.fromstring('<_Root name="Ann" age="7" />')
        assert deserialize(node, Person) == Person("Ann", 7)

    def test_reserved_attribute_not_a_field(self, ctx):
        ctx.type_attribute_name = "name"
        node = ET.fromstring("<_Root />")
        node.set("name", f"{__name__}.Person")
        assert deserialize(node, None, ctx) == Person(None, 0)

    def test_tag_overrides_expected(self):
        node = ET.fromstring('<_Root><content _Type="builtins.bool">true</content></_Root>')
        assert deserialize(node, Box).content is True

    def test_element_tree_input(self):
        tree = ET.ElementTree(serialize(Person("Ann", 1)))
        assert Deserializer().deserialize(tree, Person) == Person("Ann", 1)

    def test_rejects_non_element(self):
        with pytest.raises(TypeError, match=r"(?i)node must be"):
            deserialize("<_Root />", Person)


class TestTypeResolution:
    def test_null_root(self):
        assert deserialize(ET.fromstring('<_Root _Null="1" />')) is None

    @pytest.mark.parametrize(
        "expected_type",
        [
            pytest.param(None, id="none"),
            pytest.param(object, id="object"),
        ],
    )
    def test_untagged_without_expected_type(self, expected_type):
        with pytest.raises(DeserializationError, match=r"(?i)no concrete expected type"):
            deserialize(ET.fromstring("<_Root>5</_Root>"), expected_type)

    def test_untagged_object_field(self):
        node = ET.fromstring("<_Root><content>5</content></_Root>")
        with pytest.raises(DeserializationError):
            deserialize(node, Box)

    def test_unresolvable_tag_warns(self):
        """An unknown type tag decodes as None with a warning instead of failing."""
        node = ET.fromstring('<_Root><content _Type="nowhere.Thing">5</content></_Root>')
        with pytest.warns(RuntimeWarning, match=r"(?i)cannot resolve type"):
            box = deserialize(node, Box)
        assert box == Box(None)

    def test_bare_tag_refined_by_expected_alias(self):
        node = ET.fromstring('<_Root _Type="builtins.list" _Array="2">1,2</_Root>')
        assert deserialize(node, list[int]) == [1, 2]

    def test_expected_type_helper(self):
        deserializer = Deserializer()
        tagged = ET.fromstring('<x _Type="builtins.list[builtins.int]" />')
        untagged = ET.fromstring("<x />")
        assert deserializer.expected_type(tagged) == list[int]
        assert deserializer.expected_type(untagged, str) is str
        assert deserializer.expected_type(untagged) is None

    @pytest.mark.parametrize(
        "text,tp,expected",
        [
            pytest.param("true", bool, True, id="bool-lower"),
            pytest.param("0", bool, False, id="bool-digit"),
            pytest.param("-3", int, -3, id="int"),
            pytest.param("GREEN", Color, Color.GREEN, id="enum"),
            pytest.param("", str, "", id="empty-str"),
        ],
    )
    def test_primitive_text(self, text, tp, expected):
        node = ET.Element("_Root")
        node.text = text
        assert deserialize(node, tp) == expected


class TestArrays:
    def test_condensed_strings(self):
        node = ET.fromstring('<_Root _Array="5">Hello,,to,\\_,all</_Root>')
        assert deserialize(node, list[str]) == ["Hello", None, "to", "", "all"]

    def test_condensed_without_length(self):
        node = ET.fromstring("<_Root>hello\\`,homer,\\_,!,,what?</_Root>")
        assert deserialize(node, list[str]) == ["hello,", "homer", "", "!", None, "what?"]

    @pytest.mark.parametrize(
        "tp,expected",
        [
            pytest.param(list[int], [0, 0], id="int-defaults"),
            pytest.param(list[str], [None, None], id="str-defaults"),
        ],
    )
    def test_empty_text_keeps_defaults(self, tp, expected):
        assert deserialize(ET.fromstring('<_Root _Array="2" />'), tp) == expected

    def test_empty_array(self):
        assert deserialize(ET.fromstring('<_Root _Array="0" />'), list[int]) == []

    def test_sparse_elements(self, short_ctx):
        """Elements without an index follow the previous element."""
        node = ET.fromstring('<_R><_ _I="1">11</_><_>22</_><_ _I="4">44</_></_R>')
        assert deserialize(node, list[int], short_ctx) == [0, 11, 22, 0, 44]

    def test_sparse_elements_with_length(self, short_ctx):
        node = ET.fromstring('<_R _A="6"><_ _I="1">11</_><_>22</_><_ _I="4">44</_></_R>')
        assert deserialize(node, list[int], short_ctx) == [0, 11, 22, 0, 44, 0]

    def test_sparse_roundtrip(self, ctx):
        ctx.remove_null_values_from_xml = True
        ctx.all_arrays_have_explicit_elements = True
        items = [None] * 100
        items[5], items[49], items[50], items[75] = "a", "b", "c", "d"
        assert roundtrip(items, list[str], ctx) == items

    @pytest.mark.parametrize(
        "obj,tp",
        [
            pytest.param((1, "x"), tuple[int, str], id="fixed-tuple"),
            pytest.param((1, 2, 3), tuple[int, ...], id="homogeneous-tuple"),
            pytest.param([1.5, None, -2.0], list[float], id="floats-with-null"),
            pytest.param([Color.RED, None], list[Color], id="enums"),
            pytest.param([[1, 2], [3]], list[list[int]], id="jagged"),
            pytest.param([1, "a", None, 2.5], list, id="untyped"),
        ],
    )
    @pytest.mark.parametrize("verbose", [False, True], ids=["concise", "verbose"])
    def test_roundtrip(self, ctx, obj, tp, verbose):
        if verbose:
            ctx.set_verbose()
        assert roundtrip(obj, tp, ctx) == obj

    @pytest.mark.parametrize("explicit", [False, True], ids=["condensed", "explicit"])
    def test_multi_array_roundtrip(self, ctx, explicit):
        ctx.all_arrays_have_explicit_elements = explicit
        grid = MultiArray.from_nested(int, [[1, 2, 3], [4, 5, 6]], lower_bounds=(1, -1))
        result = roundtrip(grid, MultiArray[int], ctx)
        assert result == grid
        assert result.lower_bounds == (1, -1)

    def test_multi_array_tagged_root(self):
        grid = MultiArray.from_nested(str, [["a"], ["b"]])
        assert deserialize(serialize(grid)) == grid

    def test_multi_array_sparse_indices(self):
        node = ET.fromstring('<_Root _Array="2,2"><_Element _Index="1,1">7</_Element></_Root>')
        assert deserialize(node, MultiArray[int]).tolist() == [[0, 0], [0, 7]]

    @pytest.mark.parametrize(
        "xml,tp,message",
        [
            pytest.param('<_Root _Array="1">1,2</_Root>', list[int], "too many", id="too-many"),
            pytest.param('<_Root _Array="2,2" />', list[int], "one-dimensional", id="rank-mismatch"),
            pytest.param('<_Root _Array="2" _LowerBound="0,0" />', MultiArray[int], "differ in rank",
                         id="bounds-rank"),
            pytest.param('<_Root><_Element _Index="0,0">1</_Element></_Root>', MultiArray[int], "requires",
                         id="multi-dim-no-length"),
            pytest.param('<_Root _Array="2"><_Element _Index="5">1</_Element></_Root>', list[int], "out of bounds",
                         id="index-out-of-bounds"),
            pytest.param('<_Root _Array="1">x</_Root>', list[Person], "condensed", id="condensed-objects"),
            pytest.param('<_Root _Array="x" />', list[int], "invalid index", id="bad-length"),
        ],
    )
    def test_malformed(self, xml, tp, message):
        with pytest.raises(DeserializationError, match=message):
            deserialize(ET.fromstring(xml), tp)


class TestReferences:
    def test_cycle_from_wire(self, short_ctx):
        short_ctx.root_element_name = "root"
        short_ctx.fix_field_names = True
        node = ET.fromstring('<root _ID="1"><Data>44</Data><Next><Data>55</Data><Next _RID="1" /></Next></root>')
        first = deserialize(node, LinkedNode, short_ctx)
        assert (first.m_data, first.m_next.m_data) == (44, 55)
        assert first.m_next.m_next is first

    def test_cycle_roundtrip(self):
        first, second = LinkedNode(1), LinkedNode(2)
        first.m_next, second.m_next = second, first
        result = roundtrip(first, LinkedNode)
        assert result.m_next.m_next is result
        assert result.m_next is not result

    def test_self_referencing_list(self):
        items = [1]
        items.append(items)
        result = roundtrip(items, list)
        assert result[0] == 1
        assert result[1] is result

    def test_shared_identity(self):
        person = Person("Ann", 1)
        result = roundtrip([person, person], list[Person])
        assert result[0] is result[1]

    def test_shared_tuple_identity(self):
        """A tuple is registered once built, so later references resolve to it."""
        pair = ("a", "b")
        result = roundtrip([pair, pair], list[tuple[str, ...]])
        assert result == [pair, pair]
        assert result[0] is result[1]

    def test_shared_strings(self, ctx):
        ctx.all_arrays_have_explicit_elements = True
        ctx.duplicate_strings_can_be_referred_to = True
        s = "".join(["sha", "red"])
        result = roundtrip([s, s], list[str], ctx)
        assert result == [s, s]
        assert result[0] is result[1]

    def test_unknown_reference(self):
        node = ET.fromstring('<_Root _Array="1"><_Element _ReferTo="4" /></_Root>')
        with pytest.raises(UnknownReferenceError, match="'4'"):
            deserialize(node, list[Person])

    def test_reference_ids_reset_per_call(self):
        deserializer = Deserializer()
        deserializer.deserialize(ET.fromstring('<_Root _RefID="1"><name>A</name></_Root>'), Person)
        with pytest.raises(UnknownReferenceError):
            deserializer.deserialize(ET.fromstring('<_Root _ReferTo="1" />'), Person)
