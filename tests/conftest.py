#
# Pytest Fixtures
#

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from objtree.context import SerializationContext


# Fixtures -------------------------------------------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def global_context():
    """Yield the global context and restore its defaults after each test."""
    ctx = SerializationContext.global_context()
    yield ctx
    ctx.reset_to_defaults()


@pytest.fixture
def ctx() -> SerializationContext:
    """A fresh context derived from the global one."""
    return SerializationContext()


@pytest.fixture
def short_ctx() -> SerializationContext:
    """A fresh context using the short wire names."""
    return SerializationContext().set_short_names()
