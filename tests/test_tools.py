#
# Objtree - Tools Tests
#

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from objtree.tools import fmt_type, fmt_value


# Classes --------------------------------------------------------------------------------------------------------------

class AnyUserClass:
    """A simple class for testing user-defined types"""
    pass


class BrokenRepr:
    def __repr__(self):
        raise RuntimeError("boom")


# Tests ----------------------------------------------------------------------------------------------------------------

class TestFmtType:
    @pytest.mark.parametrize(
        "obj,expected",
        [
            pytest.param(42, "<type: int>", id="instance"),
            pytest.param(int, "<type: int>", id="class"),
            pytest.param(None, "<type: NoneType>", id="none"),
            pytest.param(list[int], "<type: list[int]>", id="generic-alias"),
            pytest.param(AnyUserClass(), "<type: AnyUserClass>", id="user-instance"),
        ],
    )
    def test_basic(self, obj, expected):
        assert fmt_type(obj) == expected

    def test_show_module(self):
        """User types get their module prefix, builtins do not."""
        assert fmt_type(AnyUserClass, show_module=True) == f"<type: {__name__}.AnyUserClass>"
        assert fmt_type(int, show_module=True) == "<type: int>"

    def test_truncation(self):
        assert fmt_type(AnyUserClass, max_repr=3) == "<type: Any...>"


class TestFmtValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            pytest.param(42, "<int: 42>", id="int"),
            pytest.param("hi", "<str: 'hi'>", id="str"),
            pytest.param(None, "<NoneType: None>", id="none"),
        ],
    )
    def test_basic(self, value, expected):
        assert fmt_value(value) == expected

    def test_truncates_quoted_repr(self):
        assert fmt_value("hello world", max_repr=8) == "<str: 'hell'...>"

    def test_escapes_closing_bracket(self):
        assert fmt_value(AnyUserClass()).count(">") == 2

    def test_broken_repr(self):
        """A failing __repr__ does not propagate."""
        assert "repr failed: RuntimeError" in fmt_value(BrokenRepr())
