"""Tests for console, logging and error-hook interception."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Any
from unittest.mock import MagicMock

import pytest
import structlog

from consolebridge.intercept import (
    CONSOLE_METHODS,
    ConsoleLike,
    ErrorHooks,
    RelayHandler,
    RelayingConsole,
    console_level,
    install,
    relay_processor,
)
from consolebridge.logging import configure_logging
from consolebridge.relay import ConsoleRelay
from consolebridge.transport import CallableTransport


@pytest.fixture
def received() -> list[dict[str, Any]]:
    return []


@pytest.fixture
def relay(received: list[dict[str, Any]]) -> ConsoleRelay:
    return ConsoleRelay(CallableTransport(received.append), url="sandbox://test")


class RecordingConsole:
    """Console target recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def log(self, *args: Any) -> None:
        self.calls.append(("log", args))

    def error(self, *args: Any) -> None:
        self.calls.append(("error", args))

    def warn(self, *args: Any) -> None:
        self.calls.append(("warn", args))

    def info(self, *args: Any) -> None:
        self.calls.append(("info", args))

    def debug(self, *args: Any) -> None:
        self.calls.append(("debug", args))

    def trace(self, *args: Any) -> None:
        self.calls.append(("trace", args))


class TestConsoleLevel:
    """Tests for console_level."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("debug", "debug"),
            ("INFO", "info"),
            ("warning", "warn"),
            ("WARN", "warn"),
            ("exception", "error"),
            ("CRITICAL", "error"),
            ("msg", "log"),
            ("something-else", "log"),
        ],
    )
    def test_mapping(self, name: str, expected: str) -> None:
        assert console_level(name) == expected


class TestRelayingConsole:
    """Tests for RelayingConsole."""

    def test_target_satisfies_protocol(self) -> None:
        assert isinstance(RecordingConsole(), ConsoleLike)

    @pytest.mark.parametrize("method", CONSOLE_METHODS)
    def test_calls_target_then_relays(
        self, method: str, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        target = RecordingConsole()
        console = RelayingConsole(target, relay)
        getattr(console, method)("message", 1)
        assert target.calls == [(method, ("message", 1))]
        assert received[0]["level"] == method
        assert received[0]["args"] == ["message", 1]

    def test_call_site_points_at_caller(
        self, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        RelayingConsole(RecordingConsole(), relay).log("x")
        assert received[0]["callSite"].endswith("in test_call_site_points_at_caller")

    def test_output_kept_when_delivery_fails(self) -> None:
        def explode(message: dict[str, Any]) -> None:
            raise OSError("parent gone")

        target = RecordingConsole()
        console = RelayingConsole(target, ConsoleRelay(CallableTransport(explode), url="u"))
        console.error("still printed")
        assert target.calls == [("error", ("still printed",))]

    def test_output_kept_without_parent(self) -> None:
        target = RecordingConsole()
        RelayingConsole(target, ConsoleRelay(None, url="u")).warn("local only")
        assert target.calls == [("warn", ("local only",))]

    def test_target_errors_propagate(self, relay: ConsoleRelay, received: list[dict]) -> None:
        target = MagicMock()
        target.log.side_effect = ValueError("target broke")
        with pytest.raises(ValueError, match="target broke"):
            RelayingConsole(target, relay).log("x")
        assert received == []


class TestRelayProcessor:
    """Tests for relay_processor."""

    def test_relays_event_and_fields(
        self, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        processor = relay_processor(relay)
        event_dict = {"event": "user_created", "user_id": 7, "level": "info", "timestamp": "t"}
        assert processor(None, "info", event_dict) is event_dict
        assert received[0]["level"] == "info"
        assert received[0]["args"] == ["user_created", {"user_id": 7}]

    def test_event_without_fields(
        self, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        relay_processor(relay)(None, "warning", {"event": "disk_low"})
        assert received[0]["level"] == "warn"
        assert received[0]["args"] == ["disk_low"]

    def test_configured_pipeline_relays_and_renders(
        self,
        relay: ConsoleRelay,
        received: list[dict[str, Any]],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        configure_logging(level="INFO", json_output=True, relay=relay)
        structlog.get_logger("app").info("job_done", job_id=3)
        assert received[0]["args"] == ["job_done", {"job_id": 3}]
        assert '"job_done"' in capsys.readouterr().err

    def test_relay_failure_logging_does_not_loop(self) -> None:
        def explode(message: dict[str, Any]) -> None:
            raise OSError("parent gone")

        relay = ConsoleRelay(CallableTransport(explode), url="u")
        configure_logging(level="DEBUG", json_output=True, relay=relay)
        structlog.get_logger("app").info("will_fail_to_relay")


class TestRelayHandler:
    """Tests for RelayHandler."""

    @pytest.fixture
    def logger(self, relay: ConsoleRelay) -> Any:
        logger = logging.getLogger("consolebridge-test-handler")
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        handler = RelayHandler(relay)
        logger.addHandler(handler)
        yield logger
        logger.removeHandler(handler)

    def test_message_and_args_are_separate(
        self, logger: logging.Logger, received: list[dict[str, Any]]
    ) -> None:
        logger.warning("user %s has %d items", "ada", 3)
        assert received[0]["level"] == "warn"
        assert received[0]["args"] == ["user %s has %d items", "ada", 3]
        assert "test_intercept.py" in received[0]["callSite"]

    def test_mapping_args(self, logger: logging.Logger, received: list[dict[str, Any]]) -> None:
        logger.info("%(name)s", {"name": "ada"})
        assert received[0]["args"] == ["%(name)s", {"name": "ada"}]

    def test_exception_is_appended(
        self, logger: logging.Logger, received: list[dict[str, Any]]
    ) -> None:
        try:
            raise KeyError("missing")
        except KeyError:
            logger.exception("lookup failed")
        args = received[0]["args"]
        assert received[0]["level"] == "error"
        assert args[0] == "lookup failed"
        assert args[1]["__type"] == "Error"
        assert args[1]["name"] == "KeyError"


class TestErrorHooks:
    """Tests for ErrorHooks."""

    def test_install_and_uninstall_restore_hooks(self, relay: ConsoleRelay) -> None:
        original_sys, original_threading = sys.excepthook, threading.excepthook
        hooks = ErrorHooks(relay).install()
        assert hooks.installed
        assert sys.excepthook != original_sys
        assert threading.excepthook != original_threading
        hooks.uninstall()
        assert not hooks.installed
        assert sys.excepthook is original_sys
        assert threading.excepthook is original_threading

    def test_sys_excepthook_relays_and_chains(
        self,
        relay: ConsoleRelay,
        received: list[dict[str, Any]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        previous = MagicMock()
        monkeypatch.setattr(sys, "excepthook", previous)
        with ErrorHooks(relay):
            try:
                raise RuntimeError("uncaught")
            except RuntimeError as exc:
                sys.excepthook(type(exc), exc, exc.__traceback__)
        detail = received[0]["args"][0]
        assert detail["__type"] == "UnhandledError"
        assert detail["error"]["message"] == "uncaught"
        assert detail["filename"].endswith("test_intercept.py")
        previous.assert_called_once()
        assert sys.excepthook is previous

    def test_thread_exception_is_relayed(
        self,
        relay: ConsoleRelay,
        received: list[dict[str, Any]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        previous = MagicMock()
        monkeypatch.setattr(threading, "excepthook", previous)

        def work() -> None:
            raise ValueError("thread failure")

        with ErrorHooks(relay):
            thread = threading.Thread(target=work, name="worker-1")
            thread.start()
            thread.join()

        detail = received[0]["args"][0]
        assert detail["__type"] == "UnhandledError"
        assert detail["message"] == "Exception in thread worker-1: thread failure"
        previous.assert_called_once()

    def test_unretrieved_future_is_relayed_as_rejection(
        self, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        loop = asyncio.new_event_loop()
        previous = MagicMock()
        loop.set_exception_handler(previous)
        hooks = ErrorHooks(relay)
        try:
            hooks.watch_loop(loop)
            future = loop.create_future()
            loop.call_exception_handler(
                {
                    "message": "Future exception was never retrieved",
                    "exception": ConnectionError("refused"),
                    "future": future,
                }
            )
            hooks.uninstall()
            assert loop.get_exception_handler() is previous
        finally:
            loop.close()

        detail = received[0]["args"][0]
        assert detail["__type"] == "UnhandledPromiseRejection"
        assert detail["reason"]["name"] == "ConnectionError"
        previous.assert_called_once()

    def test_watching_loop_twice_relays_once(
        self, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        loop = asyncio.new_event_loop()
        previous = MagicMock()
        loop.set_exception_handler(previous)
        hooks = ErrorHooks(relay)
        try:
            hooks.watch_loop(loop)
            hooks.watch_loop(loop)
            loop.call_exception_handler(
                {"message": "boom", "exception": ValueError("x"), "future": loop.create_future()}
            )
            hooks.uninstall()
            assert loop.get_exception_handler() is previous
        finally:
            loop.close()

        assert len(received) == 1
        previous.assert_called_once()

    def test_loop_callback_error_is_relayed_as_error(
        self, relay: ConsoleRelay, received: list[dict[str, Any]]
    ) -> None:
        loop = asyncio.new_event_loop()
        hooks = ErrorHooks(relay)
        try:
            hooks.watch_loop(loop)
            loop.call_exception_handler(
                {"message": "Exception in callback", "exception": ZeroDivisionError("div")}
            )
        finally:
            hooks.uninstall()
            loop.close()

        detail = received[0]["args"][0]
        assert detail["__type"] == "UnhandledError"
        assert detail["message"] == "Exception in callback"
        assert detail["error"]["name"] == "ZeroDivisionError"

    def test_install_returns_console_and_hooks(self, relay: ConsoleRelay) -> None:
        console, hooks = install(RecordingConsole(), relay)
        try:
            assert isinstance(console, RelayingConsole)
            assert hooks.installed
        finally:
            hooks.uninstall()
