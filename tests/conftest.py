"""Pytest configuration for consolebridge tests."""

import sys
from pathlib import Path

import pytest
import structlog
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate each test from CONSOLEBRIDGE_ environment variables.

    Clears any CONSOLEBRIDGE_ variables inherited from the environment and
    resets the global settings instance before each test.
    """
    import os

    for key in list(os.environ):
        if key.startswith("CONSOLEBRIDGE_"):
            monkeypatch.delenv(key)

    from consolebridge.config import reset_settings

    reset_settings()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test.

    Tests that call configure_logging() leave processors (including relay
    processors) installed globally; reset them so later tests start clean.
    """
    yield
    structlog.reset_defaults()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)
