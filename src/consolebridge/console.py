"""Terminal output for consolebridge.

``LocalConsole`` is the default console inside the sandboxed context: it
prints console calls locally, the way the wrapped console would have
without relaying. ``render_envelope`` prints relayed envelopes on the
parent side.

Key principle: stderr for warnings, errors and traces, stdout for the rest.
"""

from __future__ import annotations

import traceback
from typing import Any

from rich.console import Console
from rich.padding import Padding
from rich.pretty import Pretty
from rich.text import Text

# stderr console for warnings, errors and relayed envelopes
err_console = Console(stderr=True)

# stdout console for log/info/debug output
out_console = Console()

LEVEL_STYLES = {
    "log": "",
    "info": "cyan",
    "debug": "dim",
    "warn": "yellow",
    "error": "red",
    "trace": "magenta",
}


class LocalConsole:
    """Console printing each call locally with rich.

    Args:
        out: Console for log/info/debug output. Defaults to stdout.
        err: Console for warn/error/trace output. Defaults to stderr.
    """

    def __init__(self, out: Console | None = None, err: Console | None = None) -> None:
        self._out = out or out_console
        self._err = err or err_console

    def log(self, *args: Any) -> None:
        self._out.print(*args, markup=False)

    def info(self, *args: Any) -> None:
        self._out.print(*args, style=LEVEL_STYLES["info"], markup=False)

    def debug(self, *args: Any) -> None:
        self._out.print(*args, style=LEVEL_STYLES["debug"], markup=False)

    def warn(self, *args: Any) -> None:
        self._err.print("⚠", *args, style=LEVEL_STYLES["warn"], markup=False)

    def error(self, *args: Any) -> None:
        self._err.print("✗", *args, style=LEVEL_STYLES["error"], markup=False)

    def trace(self, *args: Any) -> None:
        """Print the arguments followed by the caller's stack."""
        self._err.print("Trace:", *args, style=LEVEL_STYLES["trace"], markup=False)
        stack = "".join(traceback.format_stack()[:-1])
        self._err.print(stack.rstrip(), style="dim", markup=False, highlight=False)


def render_envelope(message: dict[str, Any], *, console: Console | None = None) -> None:
    """Print one relayed envelope received from a sandboxed context.

    Args:
        message: Wire dict as produced by ``Envelope.to_message``.
        console: Target console. Defaults to stderr.
    """
    c = console or err_console
    level = str(message.get("level", "log"))
    header = Text.assemble(
        (f"{level.upper():<5}", LEVEL_STYLES.get(level, "") or "bold"),
        " ",
        (str(message.get("timestamp", "")), "dim"),
    )
    if message.get("url"):
        header.append(f" {message['url']}", style="dim")
    if message.get("callSite"):
        header.append(f" ({message['callSite']})", style="dim")
    c.print(header)

    for arg in message.get("args", []):
        renderable = Text(arg) if isinstance(arg, str) else Pretty(arg)
        c.print(Padding(renderable, (0, 0, 0, 2)))
