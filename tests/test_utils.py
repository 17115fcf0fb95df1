#
# Objtree - Utils Tests
#

# Standard library -----------------------------------------------------------------------------------------------------
import collections
import datetime
from enum import Enum
from typing import Annotated, Any, Optional

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from objtree.arrays import MultiArray
from objtree.utils import (class_name, default_value, is_any_type, is_enum, is_primitive, is_simple, is_string,
                           resolve_type_name, runtime_class, strip_optional, type_name, unwrap_annotated)


# Classes --------------------------------------------------------------------------------------------------------------

class Color(Enum):
    RED = 1
    GREEN = 2


class Outer:
    class Inner:
        pass


# Tests ----------------------------------------------------------------------------------------------------------------

class TestClassName:
    @pytest.mark.parametrize(
        "obj,kwargs,expected",
        [
            pytest.param(10, {}, "int", id="instance"),
            pytest.param(int, {}, "int", id="class"),
            pytest.param(10, {"fully_qualified_builtins": True}, "builtins.int", id="builtin-qualified"),
            pytest.param(Outer.Inner, {}, "Inner", id="nested-short"),
            pytest.param(Outer.Inner, {"fully_qualified": True}, f"{__name__}.Outer.Inner", id="nested-qualified"),
        ],
    )
    def test_names(self, obj, kwargs, expected):
        assert class_name(obj, **kwargs) == expected


class TestTypeName:
    @pytest.mark.parametrize(
        "tp,expected",
        [
            pytest.param(int, "builtins.int", id="int"),
            pytest.param(list[int], "builtins.list[builtins.int]", id="list"),
            pytest.param(dict[str, list[int]], "builtins.dict[builtins.str, builtins.list[builtins.int]]",
                         id="nested"),
            pytest.param(tuple[str, ...], "builtins.tuple[builtins.str, ...]", id="ellipsis"),
            pytest.param(collections.OrderedDict, "collections.OrderedDict", id="stdlib"),
            pytest.param(Outer.Inner, f"{__name__}.Outer.Inner", id="nested-class"),
        ],
    )
    def test_names(self, tp, expected):
        assert type_name(tp) == expected

    def test_rejects_non_type(self):
        with pytest.raises(TypeError, match=r"(?i)tp must be a type"):
            type_name(42)


class TestResolveTypeName:
    @pytest.mark.parametrize(
        "tp",
        [
            pytest.param(int, id="int"),
            pytest.param(list[int], id="list"),
            pytest.param(dict[str, list[int]], id="nested"),
            pytest.param(tuple[str, ...], id="ellipsis"),
            pytest.param(datetime.datetime, id="datetime"),
            pytest.param(Outer.Inner, id="nested-class"),
            pytest.param(Color, id="enum"),
            pytest.param(MultiArray[int], id="multiarray"),
        ],
    )
    def test_inverts_type_name(self, tp):
        assert resolve_type_name(type_name(tp)) == tp

    @pytest.mark.parametrize(
        "name",
        [
            pytest.param("no_such_module.Thing", id="unknown-module"),
            pytest.param("builtins.NoSuchType", id="unknown-attribute"),
            pytest.param("builtins.list[builtins.int", id="unbalanced"),
            pytest.param("builtins.len", id="not-a-type"),
            pytest.param("", id="empty"),
        ],
    )
    def test_unresolvable(self, name):
        assert resolve_type_name(name) is None

    def test_rejects_non_str(self):
        with pytest.raises(TypeError):
            resolve_type_name(int)


class TestTypeHelpers:
    @pytest.mark.parametrize(
        "tp,expected",
        [
            pytest.param(Optional[int], int, id="optional"),
            pytest.param(int | None, int, id="pipe-optional"),
            pytest.param(int | str, object, id="union"),
            pytest.param(Annotated[str, "x"], str, id="annotated"),
            pytest.param(Optional[Annotated[list[int], "x"]], list[int], id="optional-annotated"),
            pytest.param(float, float, id="plain"),
        ],
    )
    def test_strip_optional(self, tp, expected):
        assert strip_optional(tp) == expected

    def test_unwrap_annotated(self):
        assert unwrap_annotated(Annotated[Annotated[int, "a"], "b"]) is int

    @pytest.mark.parametrize(
        "tp,expected",
        [
            pytest.param(int, int, id="class"),
            pytest.param(list[int], list, id="alias"),
            pytest.param(MultiArray[str], MultiArray, id="generic-class"),
            pytest.param(Any, None, id="any"),
            pytest.param(42, None, id="instance"),
        ],
    )
    def test_runtime_class(self, tp, expected):
        assert runtime_class(tp) is expected

    @pytest.mark.parametrize(
        "tp,primitive,string,simple,enum",
        [
            pytest.param(int, True, False, True, False, id="int"),
            pytest.param(bool, True, False, True, False, id="bool"),
            pytest.param(complex, True, False, True, False, id="complex"),
            pytest.param(str, False, True, True, False, id="str"),
            pytest.param(Color, False, False, False, True, id="enum"),
            pytest.param(list, False, False, False, False, id="list"),
            pytest.param(list[int], False, False, False, False, id="alias"),
        ],
    )
    def test_classification(self, tp, primitive, string, simple, enum):
        assert is_primitive(tp) is primitive
        assert is_string(tp) is string
        assert is_simple(tp) is simple
        assert is_enum(tp) is enum

    @pytest.mark.parametrize(
        "tp,expected",
        [
            pytest.param(int, 0, id="int"),
            pytest.param(bool, False, id="bool"),
            pytest.param(float, 0.0, id="float"),
            pytest.param(str, None, id="str"),
            pytest.param(object, None, id="object"),
        ],
    )
    def test_default_value(self, tp, expected):
        assert default_value(tp) == expected

    @pytest.mark.parametrize(
        "tp,expected",
        [
            pytest.param(None, True, id="none"),
            pytest.param(object, True, id="object"),
            pytest.param(Any, True, id="any"),
            pytest.param(int, False, id="int"),
        ],
    )
    def test_is_any_type(self, tp, expected):
        assert is_any_type(tp) is expected
