"""Relay of console events to the parent context.

``ConsoleRelay`` is the adapter between whatever intercepts console and
error events and the transport to the parent. It serializes arguments,
wraps them in an envelope with the originating level, time, call site
and location, and attempts delivery. Nothing it does can raise into the
code that logged.
"""

from __future__ import annotations

import contextvars
import inspect
import sys
import traceback
from collections.abc import Callable
from pathlib import Path
from typing import Any

from consolebridge.config import ConsoleBridgeSettings, get_settings
from consolebridge.envelope import (
    Clock,
    Envelope,
    console_envelope,
    unhandled_error_envelope,
    unhandled_rejection_envelope,
    utc_now,
)
from consolebridge.exceptions import DeliveryError, NoParentContextError
from consolebridge.logging import configure_logging, get_logger
from consolebridge.transport import DeliveryResult, Transport, deliver, resolve_parent
from consolebridge.types import DEFAULT_MAX_DEPTH, FUNCTION_SOURCE_LIMIT

LOG = get_logger(__name__)

# Modules whose frames are never reported as the call site
INTERNAL_MODULES = ("consolebridge", "structlog", "logging")

# Set while a relay is building or delivering an envelope on this thread/task
_relaying: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "consolebridge_relaying", default=False
)


def default_location() -> str | None:
    """Return a file URI for the running script, or None when unknown."""
    script = sys.argv[0] if sys.argv else ""
    if not script or script == "-c":
        return None
    return Path(script).resolve().as_uri()


def capture_call_site() -> str | None:
    """Describe the first stack frame outside the logging machinery.

    Returns:
        "path:line in function", or None if every frame is internal.
    """
    frame = inspect.currentframe()
    try:
        while frame is not None:
            module = frame.f_globals.get("__name__", "")
            if not _is_internal_module(module):
                code = frame.f_code
                return f"{code.co_filename}:{frame.f_lineno} in {code.co_name}"
            frame = frame.f_back
        return None
    finally:
        del frame


def error_location(error: Any) -> tuple[str | None, int | None, int | None]:
    """Return (filename, lineno, colno) of the frame that raised an error.

    The column is 1-based. All three are None for exceptions that were
    never raised, or whose traceback cannot be read.
    """
    try:
        tb = getattr(error, "__traceback__", None)
        frames = traceback.extract_tb(tb) if tb is not None else None
    except Exception:  # noqa: BLE001 - error-likes may carry anything here
        return None, None, None
    if not frames:
        return None, None, None
    innermost = frames[-1]
    colno = getattr(innermost, "colno", None)
    return innermost.filename, innermost.lineno, colno + 1 if colno is not None else None


def _is_internal_module(module: str) -> bool:
    return any(module == name or module.startswith(name + ".") for name in INTERNAL_MODULES)


class ConsoleRelay:
    """Serializes console and error events and delivers them to the parent.

    Args:
        transport: Channel to the parent context, or None when there is
            no parent (events are then dropped).
        url: Location reported in every envelope. Defaults to the running
            script's file URI.
        max_depth: Serialization depth limit for each argument.
        source_limit: Maximum characters of function source to keep.
        clock: Time source for envelope timestamps.

    Example:
        >>> relay = ConsoleRelay(CallableTransport(received.append), url="sandbox://demo")
        >>> relay.emit("log", "hello", {"n": 1})
        DeliveryResult(ok=True, error=None)
    """

    def __init__(
        self,
        transport: Transport | None,
        *,
        url: str | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        source_limit: int = FUNCTION_SOURCE_LIMIT,
        clock: Clock = utc_now,
    ) -> None:
        self._transport = transport
        self._url = url if url is not None else default_location()
        self._max_depth = max_depth
        self._source_limit = source_limit
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: ConsoleBridgeSettings | None = None) -> ConsoleRelay:
        """Build a relay from consolebridge settings."""
        settings = settings or get_settings()
        return cls(
            resolve_parent(settings.parent),
            url=settings.url,
            max_depth=settings.max_depth,
            source_limit=settings.function_source_limit,
        )

    @property
    def url(self) -> str | None:
        """Location reported as the origin of relayed envelopes."""
        return self._url

    @property
    def has_parent(self) -> bool:
        """Whether there is a parent context to deliver to."""
        return self._transport is not None

    def emit(self, level: str, *args: Any, call_site: str | None = None) -> DeliveryResult:
        """Relay one console call.

        Args:
            level: Console method name ("log", "warn", "error", ...).
            *args: The raw arguments of the call; each is serialized separately.
            call_site: Where the call was made. Captured from the stack when omitted.

        Returns:
            Outcome of the delivery attempt.
        """
        if call_site is None:
            call_site = capture_call_site()
        return self._relay(
            lambda: console_envelope(
                level,
                args,
                url=self._url,
                call_site=call_site,
                max_depth=self._max_depth,
                source_limit=self._source_limit,
                clock=self._clock,
            )
        )

    def report_unhandled_error(
        self,
        error: Any,
        *,
        message: str | None = None,
        filename: str | None = None,
        lineno: int | None = None,
        colno: int | None = None,
    ) -> DeliveryResult:
        """Relay an uncaught exception.

        The source location defaults to the innermost traceback frame.
        """
        if filename is None and lineno is None:
            filename, lineno, located_colno = error_location(error)
            colno = colno if colno is not None else located_colno
        return self._relay(
            lambda: unhandled_error_envelope(
                error,
                message=message,
                filename=filename,
                lineno=lineno,
                colno=colno,
                url=self._url,
                max_depth=self._max_depth,
                source_limit=self._source_limit,
                clock=self._clock,
            )
        )

    def report_unhandled_rejection(self, reason: Any) -> DeliveryResult:
        """Relay the exception of a future or task nobody retrieved."""
        return self._relay(
            lambda: unhandled_rejection_envelope(
                reason,
                url=self._url,
                max_depth=self._max_depth,
                source_limit=self._source_limit,
                clock=self._clock,
            )
        )

    def _relay(self, build: Callable[[], Envelope]) -> DeliveryResult:
        if _relaying.get():
            return DeliveryResult.failure(DeliveryError("Relay re-entered during delivery"))

        token = _relaying.set(True)
        try:
            try:
                message = build().to_message()
            except Exception as exc:  # noqa: BLE001 - relaying must never raise
                result = DeliveryResult.failure(
                    DeliveryError(f"Envelope construction failed: {exc}", cause=exc)
                )
            else:
                result = deliver(self._transport, message)

            # Logged while still guarded, so a relaying log config can't loop
            if result.error is not None and not isinstance(result.error, NoParentContextError):
                LOG.debug("relay_delivery_failed", error=str(result.error))
            return result
        finally:
            _relaying.reset(token)


def setup(settings: ConsoleBridgeSettings | None = None) -> ConsoleRelay:
    """Build a relay and configure logging from consolebridge settings.

    Log events are relayed too when the settings name a parent context.

    Args:
        settings: Settings to use. Defaults to ``get_settings()``.

    Returns:
        The relay, ready to pass to ``install`` or ``RelayHandler``.
    """
    settings = settings or get_settings()
    relay = ConsoleRelay.from_settings(settings)
    configure_logging(
        level=settings.log_level,
        json_output=settings.json_logs,
        relay=relay if relay.has_parent else None,
    )
    LOG.debug("consolebridge_configured", parent=settings.parent, url=relay.url)
    return relay
