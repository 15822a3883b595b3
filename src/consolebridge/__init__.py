"""consolebridge - Relay console output out of sandboxed contexts.

Code running in a sandboxed context (a child process, a worker, an
embedded interpreter) cannot be inspected by the harness that launched
it. consolebridge intercepts its console calls, log events and uncaught
errors, serializes every argument into a transport-safe tree, and relays
a tagged envelope to the parent context.

This package provides:
- A cycle-safe, depth-bounded serializer for arbitrary Python values
- Envelope builders for console calls, uncaught errors and unretrieved
  task/future exceptions
- Pluggable transports to the parent (callable, queue, JSON-lines stream)
- Interceptors for console objects, structlog, stdlib logging and
  exception hooks

Example:
    >>> from consolebridge import ConsoleRelay, LocalConsole, QueueTransport, install
    >>> relay = ConsoleRelay(QueueTransport(parent_queue), url="sandbox://worker-1")
    >>> console, hooks = install(LocalConsole(), relay)
    >>> console.log("user", {"id": 7, "tags": {"a", "b"}})
"""

from consolebridge.config import ConsoleBridgeSettings, get_settings
from consolebridge.console import LocalConsole, render_envelope
from consolebridge.envelope import (
    Envelope,
    console_envelope,
    decode_envelope,
    encode_envelope,
    unhandled_error_envelope,
    unhandled_rejection_envelope,
)
from consolebridge.exceptions import (
    ConfigurationError,
    ConsoleBridgeError,
    DeliveryError,
    NoParentContextError,
)
from consolebridge.intercept import (
    ErrorHooks,
    RelayHandler,
    RelayingConsole,
    install,
    relay_processor,
)
from consolebridge.relay import ConsoleRelay, setup
from consolebridge.serialize import serialize
from consolebridge.transport import (
    CallableTransport,
    DeliveryResult,
    QueueTransport,
    StreamTransport,
    Transport,
    deliver,
    read_envelopes,
    resolve_parent,
)
from consolebridge.types import UNDEFINED, Symbol, TransportValue, Undefined

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Serialization
    "serialize",
    "TransportValue",
    "Symbol",
    "Undefined",
    "UNDEFINED",
    # Envelopes
    "Envelope",
    "console_envelope",
    "unhandled_error_envelope",
    "unhandled_rejection_envelope",
    "encode_envelope",
    "decode_envelope",
    # Transports
    "Transport",
    "CallableTransport",
    "QueueTransport",
    "StreamTransport",
    "DeliveryResult",
    "deliver",
    "read_envelopes",
    "resolve_parent",
    # Relay and interception
    "ConsoleRelay",
    "setup",
    "RelayingConsole",
    "RelayHandler",
    "ErrorHooks",
    "install",
    "relay_processor",
    # Terminal output
    "LocalConsole",
    "render_envelope",
    # Configuration
    "ConsoleBridgeSettings",
    "get_settings",
    # Exceptions
    "ConsoleBridgeError",
    "DeliveryError",
    "NoParentContextError",
    "ConfigurationError",
]
