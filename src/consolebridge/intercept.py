"""Interception of console calls, log events and uncaught errors.

Nothing here patches globals implicitly. Each interceptor wraps or hooks
an explicitly given target and forwards what it sees to a ConsoleRelay:

- ``RelayingConsole`` decorates a console-like object.
- ``relay_processor`` forwards structlog events.
- ``RelayHandler`` forwards stdlib ``logging`` records.
- ``ErrorHooks`` chains into ``sys.excepthook``, ``threading.excepthook``
  and asyncio loop exception handlers.

The wrapped behavior always runs first and unchanged; relaying happens
after it and can never raise into the caller.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

from structlog.typing import EventDict, WrappedLogger

from consolebridge.logging import get_logger
from consolebridge.relay import ConsoleRelay

LOG = get_logger(__name__)

CONSOLE_METHODS = ("log", "error", "warn", "info", "debug", "trace")

# structlog method names and stdlib level names -> console method names
_LEVEL_ALIASES = {
    "notset": "log",
    "msg": "log",
    "log": "log",
    "debug": "debug",
    "info": "info",
    "warn": "warn",
    "warning": "warn",
    "error": "error",
    "exception": "error",
    "critical": "error",
    "fatal": "error",
    "trace": "trace",
}

# Keys added by the logging pipeline itself, not by the caller
_STRUCTLOG_INTERNAL_KEYS = frozenset({"event", "level", "timestamp"})


def console_level(name: str) -> str:
    """Map a structlog method or stdlib level name to a console method name."""
    return _LEVEL_ALIASES.get(name.lower(), "log")


@runtime_checkable
class ConsoleLike(Protocol):
    """Protocol for objects exposing the six console methods."""

    def log(self, *args: Any) -> None: ...

    def error(self, *args: Any) -> None: ...

    def warn(self, *args: Any) -> None: ...

    def info(self, *args: Any) -> None: ...

    def debug(self, *args: Any) -> None: ...

    def trace(self, *args: Any) -> None: ...


class RelayingConsole:
    """Console decorator that relays every call to the parent context.

    The wrapped target is called first with the original arguments. Its
    output is never suppressed and its exceptions propagate exactly as
    they would without the wrapper; in that case nothing is relayed.
    """

    def __init__(self, target: ConsoleLike, relay: ConsoleRelay) -> None:
        self._target = target
        self._relay = relay

    @property
    def target(self) -> ConsoleLike:
        """The wrapped console."""
        return self._target

    def log(self, *args: Any) -> None:
        self._call("log", args)

    def error(self, *args: Any) -> None:
        self._call("error", args)

    def warn(self, *args: Any) -> None:
        self._call("warn", args)

    def info(self, *args: Any) -> None:
        self._call("info", args)

    def debug(self, *args: Any) -> None:
        self._call("debug", args)

    def trace(self, *args: Any) -> None:
        self._call("trace", args)

    def _call(self, level: str, args: tuple[Any, ...]) -> None:
        getattr(self._target, level)(*args)
        self._relay.emit(level, *args)


def relay_processor(
    relay: ConsoleRelay,
) -> Callable[[WrappedLogger, str, EventDict], EventDict]:
    """Build a structlog processor forwarding each event to the parent.

    The event text is relayed as the first argument and the remaining
    key/value pairs, if any, as a second one. The event dict is returned
    unchanged so local rendering still happens.
    """

    def _relay_event(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        fields = {k: v for k, v in event_dict.items() if k not in _STRUCTLOG_INTERNAL_KEYS}
        args: list[Any] = [event_dict.get("event")]
        if fields:
            args.append(fields)
        relay.emit(console_level(method_name), *args)
        return event_dict

    return _relay_event


class RelayHandler(logging.Handler):
    """stdlib logging handler forwarding records to the parent.

    The unformatted message and each of its ``%`` arguments are relayed as
    separate arguments, followed by the exception when the record has one.
    """

    def __init__(self, relay: ConsoleRelay, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._relay = relay

    def emit(self, record: logging.LogRecord) -> None:
        try:
            args: list[Any] = [record.msg]
            if isinstance(record.args, Mapping):
                args.append(record.args)
            elif record.args:
                args.extend(record.args)
            if record.exc_info and record.exc_info[1] is not None:
                args.append(record.exc_info[1])
            call_site = f"{record.pathname}:{record.lineno} in {record.funcName}"
            self._relay.emit(console_level(record.levelname), *args, call_site=call_site)
        except Exception:
            self.handleError(record)


class ErrorHooks:
    """Relays uncaught exceptions and unretrieved task/future exceptions.

    Previously installed hooks keep running after the relay. Use as a
    context manager, or call ``install``/``uninstall`` explicitly.

    Example:
        >>> with ErrorHooks(relay) as hooks:
        ...     hooks.watch_loop(asyncio.get_running_loop())
        ...     run_untrusted_code()
    """

    def __init__(self, relay: ConsoleRelay) -> None:
        self._relay = relay
        self._previous_excepthook: Callable[..., Any] | None = None
        self._previous_threading_excepthook: Callable[..., Any] | None = None
        self._watched_loops: list[tuple[asyncio.AbstractEventLoop, Any]] = []
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> ErrorHooks:
        """Chain into ``sys.excepthook`` and ``threading.excepthook``."""
        if self._installed:
            return self
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._previous_threading_excepthook = threading.excepthook
        threading.excepthook = self._threading_excepthook
        self._installed = True
        LOG.debug("error_hooks_installed")
        return self

    def watch_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Chain into an event loop's exception handler."""
        if any(watched is loop for watched, _ in self._watched_loops):
            return
        previous = loop.get_exception_handler()
        loop.set_exception_handler(self._loop_exception_handler)
        self._watched_loops.append((loop, previous))

    def uninstall(self) -> None:
        """Restore the hooks that were in place before ``install``.

        A hook replaced by someone else after ``install`` is left alone.
        """
        for loop, previous in reversed(self._watched_loops):
            if loop.is_closed():
                continue
            if loop.get_exception_handler() == self._loop_exception_handler:
                loop.set_exception_handler(previous)
        self._watched_loops.clear()

        if not self._installed:
            return
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._previous_excepthook
        if threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._previous_threading_excepthook
        self._installed = False
        LOG.debug("error_hooks_uninstalled")

    def __enter__(self) -> ErrorHooks:
        return self.install()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.uninstall()

    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self._relay.report_unhandled_error(exc)
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _threading_excepthook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is not None:
            thread_name = args.thread.name if args.thread is not None else "unknown"
            self._relay.report_unhandled_error(
                args.exc_value,
                message=f"Exception in thread {thread_name}: {args.exc_value}",
            )
        previous = self._previous_threading_excepthook or threading.__excepthook__
        previous(args)

    def _loop_exception_handler(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exception = context.get("exception")
        message = context.get("message")
        if "future" in context:
            # "Future/Task exception was never retrieved"
            self._relay.report_unhandled_rejection(exception if exception is not None else message)
        else:
            self._relay.report_unhandled_error(
                exception if exception is not None else message, message=message
            )

        previous = dict(self._watched_loops).get(loop)
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)


def install(
    target: ConsoleLike, relay: ConsoleRelay
) -> tuple[RelayingConsole, ErrorHooks]:
    """Wrap a console and install error hooks in one step.

    Args:
        target: Console whose calls should be relayed.
        relay: Relay delivering to the parent context.

    Returns:
        The relaying console and the installed ErrorHooks (call
        ``uninstall`` on it to restore the previous hooks).
    """
    return RelayingConsole(target, relay), ErrorHooks(relay).install()
