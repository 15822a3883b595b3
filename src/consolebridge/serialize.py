"""Transport-safe serialization of arbitrary Python values.

``serialize`` converts any value (possibly cyclic, possibly holding
exceptions, futures, compiled patterns, DOM nodes or functions) into a
depth-bounded tree of plain dicts, lists and primitives that can cross a
process or frame boundary.

Values are matched against an ordered list of kinds, most specific first:

    error, number, symbol, primitive, (cycle check), promise, date,
    regexp, DOM node, function, sequence, generic object

Anything that matches none of them becomes ``"[Unknown Type]"``.

Failures never escape. A property that cannot be read or serialized is
replaced in place by a fallback marker, and a failure of the whole value
is reported as a ``SerializationError`` tagged record.

Example:
    >>> serialize({"n": float("nan"), "items": [3, 1, 2]})
    {'n': 'NaN', 'items': [3, 1, 2]}
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import datetime
import decimal
import functools
import inspect
import math
import numbers
import re
import traceback
from collections.abc import Mapping, Sequence, Set
from enum import Enum
from typing import Any

from consolebridge.nodes import describe_dom_node, is_dom_node
from consolebridge.types import (
    CIRCULAR_REFERENCE,
    DEFAULT_MAX_DEPTH,
    FUNCTION_SOURCE_LIMIT,
    INFINITY,
    MAX_DEPTH_EXCEEDED,
    NAN,
    NEGATIVE_INFINITY,
    TYPE_KEY,
    UNABLE_TO_ACCESS_PROPERTY,
    UNABLE_TO_SERIALIZE,
    UNDEFINED,
    UNKNOWN_TYPE,
    Symbol,
    TransportValue,
    symbol_tag,
    unable_to_serialize,
)

# Class names recognized as errors even when they don't derive from BaseException
ERROR_CLASS_NAMES = frozenset({"Error", "Exception"})

STANDARD_ERROR_FIELDS = frozenset({"name", "message", "stack"})

# OSError diagnostics live in C slots, not the instance __dict__
OS_ERROR_FIELDS = ("errno", "strerror", "filename", "filename2")

# Python inline flag letters, in the order re prints them
REGEX_FLAG_LETTERS = (
    ("a", re.ASCII),
    ("i", re.IGNORECASE),
    ("L", re.LOCALE),
    ("m", re.MULTILINE),
    ("s", re.DOTALL),
    ("u", re.UNICODE),
    ("x", re.VERBOSE),
)

_SLOT_INTERNALS = frozenset({"__dict__", "__weakref__"})


def serialize(
    value: Any,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    source_limit: int = FUNCTION_SOURCE_LIMIT,
) -> TransportValue:
    """Convert a value into a transport-safe tree.

    Args:
        value: Any Python value.
        max_depth: Levels below the root that are still descended into.
            Values deeper than this become ``"[Max Depth Exceeded]"``.
        source_limit: Maximum characters of function source to keep.

    Returns:
        A TransportValue. Never raises for ordinary exceptions.
    """
    try:
        return _Serializer(max_depth, source_limit).visit(value, 0)
    except Exception as exc:  # noqa: BLE001 - serialization must never raise
        return {
            TYPE_KEY: "SerializationError",
            "message": _coerce_str(exc),
            "value": _coerce_str(value),
        }


class _Serializer:
    """One top-level serialization pass.

    Holds the visited table for a single ``serialize`` call. A new instance
    is created per call, so nothing is remembered between calls.
    """

    def __init__(self, max_depth: int, source_limit: int) -> None:
        self._max_depth = max_depth
        self._source_limit = source_limit
        # id -> object; keeping the object alive keeps its id unique for the call
        self._seen: dict[int, Any] = {}

    def visit(self, value: Any, depth: int) -> TransportValue:
        if depth > self._max_depth:
            return MAX_DEPTH_EXCEEDED

        if value is None or value is UNDEFINED:
            return value

        if _is_error(value):
            return self._error(value, depth)

        if isinstance(value, (numbers.Real, decimal.Decimal)) and not isinstance(value, bool):
            return _number(value)

        if isinstance(value, (Symbol, Enum)):
            return symbol_tag(_symbol_description(value))

        if isinstance(value, (str, bool)):
            return value

        if id(value) in self._seen:
            return CIRCULAR_REFERENCE

        if _is_pending_computation(value):
            return {TYPE_KEY: "Promise", "state": "pending"}

        if isinstance(value, (datetime.date, datetime.time)):
            return {TYPE_KEY: "Date", "value": _iso_format(value)}

        if isinstance(value, re.Pattern):
            return {
                TYPE_KEY: "RegExp",
                "source": _pattern_source(value),
                "flags": _regex_flags(value),
            }

        if is_dom_node(value):
            return describe_dom_node(value)

        if _is_function(value):
            return self._function(value)

        if isinstance(value, (Sequence, Set)):
            self._remember(value)
            return self._sequence(value, depth)

        if isinstance(value, Mapping):
            self._remember(value)
            return self._mapping(value, depth)

        names = _own_attribute_names(value)
        if names is not None:
            self._remember(value)
            return self._attributes(value, names, depth)

        return UNKNOWN_TYPE

    def _remember(self, value: Any) -> None:
        self._seen[id(value)] = value

    def _error(self, error: Any, depth: int) -> TransportValue:
        if id(error) in self._seen:
            return CIRCULAR_REFERENCE
        self._remember(error)

        record: dict[str, Any] = {
            TYPE_KEY: "Error",
            "name": _error_name(error),
            "message": _error_message(error),
            "stack": _error_stack(error),
        }
        for key in _own_attribute_names(error) or ():
            if key in STANDARD_ERROR_FIELDS:
                continue
            try:
                record[key] = self.visit(getattr(error, key), depth + 1)
            except Exception:  # noqa: BLE001 - one bad field must not hide the error
                record[key] = UNABLE_TO_ACCESS_PROPERTY

        if isinstance(error, OSError):
            for key in OS_ERROR_FIELDS:
                value = getattr(error, key, None)
                if value is not None and key not in record:
                    record[key] = self.visit(value, depth + 1)

        cause = getattr(error, "__cause__", None) if isinstance(error, BaseException) else None
        if cause is not None and "cause" not in record:
            record["cause"] = self.visit(cause, depth + 1)
        return record

    def _function(self, func: Any) -> dict[str, Any]:
        target = func.func if isinstance(func, functools.partial) else func
        name = getattr(target, "__name__", None)
        if not isinstance(name, str) or not name or name == "<lambda>":
            name = "anonymous"

        try:
            source = inspect.getsource(func)
        except (OSError, TypeError):
            source = repr(func)
        if len(source) > self._source_limit:
            source = source[: self._source_limit] + "..."
        return {TYPE_KEY: "Function", "name": name, "source": source}

    def _sequence(self, items: Any, depth: int) -> list[TransportValue]:
        result: list[TransportValue] = []
        for item in items:
            try:
                result.append(self.visit(item, depth + 1))
            except Exception as exc:  # noqa: BLE001 - isolate element failures
                result.append(unable_to_serialize(_coerce_str(exc)))
        return result

    def _mapping(self, mapping: Mapping[Any, Any], depth: int) -> dict[str, TransportValue]:
        result: dict[str, TransportValue] = {}
        for key in mapping:
            if isinstance(key, Symbol):
                continue
            name = key if isinstance(key, str) else str(key)
            try:
                result[name] = self.visit(mapping[key], depth + 1)
            except Exception as exc:  # noqa: BLE001 - isolate property failures
                result[name] = unable_to_serialize(_coerce_str(exc))
        return result

    def _attributes(self, obj: Any, names: list[str], depth: int) -> dict[str, TransportValue]:
        result: dict[str, TransportValue] = {}
        for name in names:
            try:
                result[name] = self.visit(getattr(obj, name), depth + 1)
            except Exception as exc:  # noqa: BLE001 - isolate property failures
                result[name] = unable_to_serialize(_coerce_str(exc))
        return result


def _is_error(value: Any) -> bool:
    if isinstance(value, BaseException):
        return True
    return not isinstance(value, type) and type(value).__name__ in ERROR_CLASS_NAMES


def _error_name(error: Any) -> str:
    if isinstance(error, BaseException):
        return type(error).__name__
    name = getattr(error, "name", None)
    return name if isinstance(name, str) else type(error).__name__


def _error_message(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error)
    message = getattr(error, "message", "")
    return message if isinstance(message, str) else str(message)


def _error_stack(error: Any) -> str | None:
    """Return the formatted traceback of an error.

    Exceptions that were never raised have no traceback; they get the
    one-line ``Name: message`` summary instead.
    """
    if isinstance(error, BaseException):
        if error.__traceback__ is None:
            return "".join(traceback.format_exception_only(type(error), error))
        return "".join(traceback.format_exception(type(error), error, error.__traceback__))
    stack = getattr(error, "stack", None)
    return stack if isinstance(stack, str) else None


def _number(value: numbers.Real | decimal.Decimal) -> int | float | str:
    if isinstance(value, int):
        return value if type(value) is int else int(value)
    if isinstance(value, decimal.Decimal) and value.is_nan():
        # float() rejects signaling NaNs
        return NAN
    number = float(value)
    if math.isnan(number):
        return NAN
    if math.isinf(number):
        return INFINITY if number > 0 else NEGATIVE_INFINITY
    return value if type(value) is float else number


def _symbol_description(value: Symbol | Enum) -> str | None:
    if isinstance(value, Enum):
        return f"{type(value).__name__}.{value.name}"
    return value.description


def _is_pending_computation(value: Any) -> bool:
    if isinstance(value, (asyncio.Future, concurrent.futures.Future)):
        return True
    return inspect.isawaitable(value)


def _iso_format(value: datetime.date | datetime.time) -> str:
    if isinstance(value, datetime.datetime) and value.utcoffset() is not None:
        return value.astimezone(datetime.UTC).isoformat().replace("+00:00", "Z")
    return value.isoformat()


def _pattern_source(pattern: re.Pattern[Any]) -> str:
    source = pattern.pattern
    if isinstance(source, bytes):
        return source.decode("utf-8", errors="backslashreplace")
    return source


def _regex_flags(pattern: re.Pattern[Any]) -> str:
    flags = pattern.flags
    if isinstance(pattern.pattern, str):
        # text patterns always carry UNICODE implicitly
        flags &= ~re.UNICODE
    return "".join(letter for letter, flag in REGEX_FLAG_LETTERS if flags & flag)


def _is_function(value: Any) -> bool:
    return (
        inspect.isroutine(value)
        or inspect.isclass(value)
        or isinstance(value, functools.partial)
    )


def _own_attribute_names(obj: Any) -> list[str] | None:
    """List the instance-level attribute names of an object.

    Covers every key of the instance ``__dict__`` (underscore names
    included) plus assigned ``__slots__`` members. Returns None when the
    object has neither, meaning it has no own properties to enumerate.
    """
    try:
        instance_dict = object.__getattribute__(obj, "__dict__")
    except AttributeError:
        instance_dict = None

    names: list[str] = [n for n in instance_dict if isinstance(n, str)] if instance_dict else []
    has_slots = False
    for cls in type(obj).__mro__:
        slots = cls.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot in _SLOT_INTERNALS or (slot.startswith("__") and slot.endswith("__")):
                continue
            has_slots = True
            if slot.startswith("__"):
                slot = f"_{cls.__name__.lstrip('_')}{slot}"
            if slot not in names and hasattr(obj, slot):
                names.append(slot)

    if instance_dict is None and not has_slots:
        return None
    return names


def _coerce_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:  # noqa: BLE001 - last-resort coercion
        return UNABLE_TO_SERIALIZE
