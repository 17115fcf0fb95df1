"""
Sentinel objects for distinguishing between unset values, None, and other states.

All sentinels are singletons and must be compared by identity (using 'is').

Sentinels:
    UNSET: A setting or argument that was not provided (distinguishes from None)
    MISSING: An attribute that is absent from an instance

Helper Functions:
    ifnotunset: Return default if value is UNSET, otherwise return value
"""

from typing import Any, Final

__all__ = [
    'UNSET',
    'MISSING',
    'UnsetType',
    'MissingType',
    'ifnotunset',
]


# Base Sentinel --------------------------------------------------------------------------------------------------------

class _SentinelBase:
    """
    Base class for singleton sentinel objects.

    Subclasses get exactly one instance, a clean repr, identity equality,
    falsy truth value and pickling that returns the same singleton.
    """
    __slots__ = ('_name',)
    _instance = None
    _label = "SENTINEL"

    def __new__(cls):
        """Ensures singleton behavior."""
        if cls.__dict__.get('_instance') is None:
            instance = super().__new__(cls)
            instance._name = cls._label
            cls._instance = instance
        return cls._instance

    def __repr__(self) -> str:
        return f'<{self._name}>'

    def __eq__(self, other: Any) -> bool:
        return self is other

    def __hash__(self) -> int:
        return id(self)

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> tuple:
        """Ensure pickling returns the singleton instance."""
        return (self.__class__, ())


# Sentinel Types -------------------------------------------------------------------------------------------------------

class MissingType(_SentinelBase):
    """
    Sentinel type for MISSING.

    Marks an attribute that is not present on an instance, e.g. a declared
    field that was never assigned.
    """
    __slots__ = ()
    _label = "MISSING"


class UnsetType(_SentinelBase):
    """
    Sentinel type for UNSET.

    Used to distinguish between 'not provided' and 'explicitly set to None'.
    """
    __slots__ = ()
    _label = "UNSET"


# Sentinel Objects -----------------------------------------------------------------------------------------------------

MISSING: Final[MissingType] = MissingType()
"""Sentinel representing an attribute missing from an instance."""

UNSET: Final[UnsetType] = UnsetType()
"""
Sentinel representing an unprovided optional argument or a setting without override.

Use with identity check: `if arg is UNSET:`
"""


# Helper Functions -----------------------------------------------------------------------------------------------------

def ifnotunset(value: Any, *, default: Any = None) -> Any:
    """
    Return value if it's not UNSET, otherwise return default.

    Example:
        >>> ifnotunset(UNSET, default=30)
        30
        >>> ifnotunset(None, default=30) is None
        True
    """
    return default if value is UNSET else value
