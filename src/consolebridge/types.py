"""Transport value types, sentinels and marker strings.

A TransportValue is the closed set of JSON-like shapes the serializer may
produce: ``None``, ``UNDEFINED``, ``bool``, ``int``, finite ``float``,
``str``, and lists/dicts built from those. Special values are reported as
tagged records, which are plain dicts carrying a ``__type`` discriminator.
"""

from __future__ import annotations

from typing import Any, Final, TypeAlias

#: Default recursion limit below the root value.
DEFAULT_MAX_DEPTH: Final = 3

#: Maximum number of source characters kept for a Function record.
FUNCTION_SOURCE_LIMIT: Final = 200

TYPE_KEY: Final = "__type"

CIRCULAR_REFERENCE: Final = "[Circular Reference]"
MAX_DEPTH_EXCEEDED: Final = "[Max Depth Exceeded]"
UNKNOWN_TYPE: Final = "[Unknown Type]"
UNABLE_TO_SERIALIZE: Final = "[Unable to serialize]"
UNABLE_TO_ACCESS_PROPERTY: Final = "[Unable to access property]"

NAN: Final = "NaN"
INFINITY: Final = "Infinity"
NEGATIVE_INFINITY: Final = "-Infinity"


def unable_to_serialize(message: str) -> str:
    """Return the per-property fallback marker carrying a failure message."""
    return f"[Unable to serialize: {message}]"


def symbol_tag(description: str | None) -> str:
    """Return the descriptive string used in place of a symbol."""
    return f"[Symbol: {description or 'unknown'}]"


class Undefined:
    """Absence of a value, kept distinct from ``None``.

    There is exactly one instance, ``UNDEFINED``. It is falsy and encodes
    as JSON ``null`` on the wire.
    """

    _instance: Undefined | None = None

    def __new__(cls) -> Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Final = Undefined()


class Symbol:
    """A unique, opaque token with an optional description.

    Two symbols never compare equal unless they are the same object, which
    makes them suitable as sentinels and private keys.

    Example:
        >>> MISSING = Symbol("missing")
        >>> MISSING
        Symbol('missing')
    """

    __slots__ = ("_description",)

    def __init__(self, description: str | None = None) -> None:
        self._description = description

    @property
    def description(self) -> str | None:
        """Return the description given at creation, if any."""
        return self._description

    def __repr__(self) -> str:
        if self._description is None:
            return "Symbol()"
        return f"Symbol({self._description!r})"


TransportValue: TypeAlias = (
    None | Undefined | bool | int | float | str | list["TransportValue"] | dict[str, Any]
)
