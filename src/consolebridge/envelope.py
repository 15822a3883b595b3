"""Outbound envelopes relayed to the parent context.

An envelope wraps the serialized arguments of one console call (or one
unhandled error) together with the metadata the parent needs to display
it. Its wire form is a plain dict:

    {
        "type": "console",
        "level": "error",
        "timestamp": "2024-01-15T12:00:00.000Z",
        "args": [...],
        "callSite": "app.py:42 in handler",   # console calls only
        "url": "sandbox://worker-1",
    }
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from consolebridge.serialize import serialize
from consolebridge.types import (
    DEFAULT_MAX_DEPTH,
    FUNCTION_SOURCE_LIMIT,
    TYPE_KEY,
    TransportValue,
    Undefined,
)

#: Discriminator marking a message as a console-style event.
CONSOLE_MESSAGE_TYPE = "console"

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    """Return the current time in UTC."""
    return datetime.datetime.now(datetime.UTC)


def format_timestamp(moment: datetime.datetime) -> str:
    """Format a moment as an ISO-8601 UTC string with millisecond precision."""
    if moment.utcoffset() is None:
        moment = moment.replace(tzinfo=datetime.UTC)
    moment = moment.astimezone(datetime.UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Envelope:
    """One relayed console event.

    Attributes:
        level: Originating severity (e.g. "log", "warn", "error").
        timestamp: ISO-8601 UTC time the event was captured.
        args: Serialized arguments, one TransportValue per argument.
        url: Location of the sandboxed context that produced the event.
        call_site: Where the console call was made, if known.
    """

    level: str
    timestamp: str
    args: list[TransportValue] = field(default_factory=list)
    url: str | None = None
    call_site: str | None = None

    def to_message(self) -> dict[str, Any]:
        """Convert to the wire dict handed to a transport."""
        message: dict[str, Any] = {
            "type": CONSOLE_MESSAGE_TYPE,
            "level": self.level,
            "timestamp": self.timestamp,
            "args": self.args,
        }
        if self.call_site is not None:
            message["callSite"] = self.call_site
        message["url"] = self.url
        return message


def console_envelope(
    level: str,
    args: Sequence[Any],
    *,
    url: str | None = None,
    call_site: str | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    source_limit: int = FUNCTION_SOURCE_LIMIT,
    clock: Clock = utc_now,
) -> Envelope:
    """Build an envelope for an intercepted console call.

    Each argument is serialized on its own, so one argument's cycle
    tracking never affects another's.
    """
    return Envelope(
        level=level,
        timestamp=format_timestamp(clock()),
        args=[serialize(arg, max_depth=max_depth, source_limit=source_limit) for arg in args],
        url=url,
        call_site=call_site,
    )


def unhandled_error_envelope(
    error: Any,
    *,
    message: str | None = None,
    filename: str | None = None,
    lineno: int | None = None,
    colno: int | None = None,
    url: str | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    source_limit: int = FUNCTION_SOURCE_LIMIT,
    clock: Clock = utc_now,
) -> Envelope:
    """Build an envelope for an uncaught exception.

    Args:
        error: The uncaught exception.
        message: Human-readable summary; defaults to ``str(error)``.
        filename: Source file where the exception surfaced.
        lineno: Line number in ``filename``.
        colno: Column number, when known.
        url: Location of the sandboxed context.
        max_depth: Serialization depth limit.
        source_limit: Maximum characters of function source to keep.
        clock: Time source.
    """
    detail = {
        TYPE_KEY: "UnhandledError",
        "error": serialize(error, max_depth=max_depth, source_limit=source_limit),
        "message": message if message is not None else _summary(error),
        "filename": filename,
        "lineno": lineno,
        "colno": colno,
    }
    return Envelope(level="error", timestamp=format_timestamp(clock()), args=[detail], url=url)


def unhandled_rejection_envelope(
    reason: Any,
    *,
    url: str | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    source_limit: int = FUNCTION_SOURCE_LIMIT,
    clock: Clock = utc_now,
) -> Envelope:
    """Build an envelope for a future/task exception nobody retrieved."""
    detail = {
        TYPE_KEY: "UnhandledPromiseRejection",
        "reason": serialize(reason, max_depth=max_depth, source_limit=source_limit),
    }
    return Envelope(level="error", timestamp=format_timestamp(clock()), args=[detail], url=url)


def encode_envelope(message: dict[str, Any]) -> str:
    """Encode a wire dict as one line of JSON. ``UNDEFINED`` becomes null."""
    return json.dumps(message, default=_json_default, ensure_ascii=False)


def decode_envelope(text: str) -> dict[str, Any]:
    """Decode one line of JSON produced by ``encode_envelope``.

    Raises:
        ValueError: If the text is not JSON or is not a console message.
    """
    message = json.loads(text)
    if not isinstance(message, dict) or message.get("type") != CONSOLE_MESSAGE_TYPE:
        raise ValueError(f"Not a console envelope: {text[:80]!r}")
    return message


def _json_default(value: Any) -> Any:
    if isinstance(value, Undefined):
        return None
    return str(value)


def _summary(error: Any) -> str:
    try:
        return str(error)
    except Exception:  # noqa: BLE001 - summary is best-effort
        return type(error).__name__
