"""Transports carrying envelopes from the sandboxed context to its parent.

Delivery is fire-and-forget. ``deliver`` reports the outcome as a
``DeliveryResult`` instead of raising, and callers are free to drop it.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import IO, Any, Protocol, runtime_checkable

from consolebridge.envelope import decode_envelope, encode_envelope
from consolebridge.exceptions import ConfigurationError, DeliveryError, NoParentContextError
from consolebridge.logging import get_logger

LOG = get_logger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Protocol for channels to the parent context."""

    def post_message(self, message: dict[str, Any]) -> None:
        """Send one wire message to the parent context."""
        ...


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt.

    Attributes:
        ok: True if the transport accepted the message.
        error: Why delivery failed, or None on success.
    """

    ok: bool
    error: DeliveryError | None = None

    @classmethod
    def success(cls) -> DeliveryResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: DeliveryError) -> DeliveryResult:
        return cls(ok=False, error=error)


def deliver(transport: Transport | None, message: dict[str, Any]) -> DeliveryResult:
    """Attempt to hand a message to the parent context.

    Args:
        transport: Channel to the parent, or None when there is no parent.
        message: Wire dict to send.

    Returns:
        DeliveryResult; never raises.
    """
    if transport is None:
        return DeliveryResult.failure(NoParentContextError())
    try:
        transport.post_message(message)
    except Exception as exc:  # noqa: BLE001 - delivery is best-effort
        return DeliveryResult.failure(
            DeliveryError(f"{type(exc).__name__}: {exc}", cause=exc)
        )
    return DeliveryResult.success()


class CallableTransport:
    """Transport that hands each message to a callable."""

    def __init__(self, send: Callable[[dict[str, Any]], Any]) -> None:
        self._send = send

    def post_message(self, message: dict[str, Any]) -> None:
        self._send(message)


class QueueTransport:
    """Transport that puts each message on a queue shared with the parent.

    Works with ``queue.Queue`` for threads and ``multiprocessing`` queues
    for child processes. ``put_nowait`` is used so a full queue fails the
    delivery instead of blocking the logging call.
    """

    def __init__(self, queue: Any) -> None:
        self._queue = queue

    def post_message(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)


class StreamTransport:
    """Transport writing one JSON line per message to a text stream.

    Intended for a pipe inherited from the parent process, which reads the
    lines back with ``read_envelopes``.
    """

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream

    def post_message(self, message: dict[str, Any]) -> None:
        self._stream.write(encode_envelope(message) + "\n")
        self._stream.flush()


def read_envelopes(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Parse relayed messages on the parent side.

    Blank lines are ignored. Lines that are not console envelopes are
    skipped with a warning, so interleaved output from the child does not
    stop the reader.

    Args:
        lines: Text lines, e.g. a child process's stdout.

    Yields:
        Decoded wire dicts.
    """
    for line in lines:
        text = line.strip()
        if not text:
            continue
        try:
            yield decode_envelope(text)
        except ValueError as exc:
            LOG.warning("corrupt_envelope_line_skipped", error=str(exc))


def resolve_parent(parent: str) -> Transport | None:
    """Build the transport named by the ``parent`` setting.

    Args:
        parent: "stderr", "stdout", or "none".

    Returns:
        A StreamTransport over the named stream, or None when there is no
        parent context.

    Raises:
        ConfigurationError: If the name is not recognized.
    """
    if parent == "none":
        return None
    if parent == "stderr":
        return StreamTransport(sys.stderr)
    if parent == "stdout":
        return StreamTransport(sys.stdout)
    raise ConfigurationError(
        f"Unsupported parent channel: {parent!r}. Supported: stderr, stdout, none"
    )
