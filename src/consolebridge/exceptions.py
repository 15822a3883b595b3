"""Custom exceptions for consolebridge package."""


class ConsoleBridgeError(Exception):
    """Base exception class for all consolebridge errors."""


class DeliveryError(ConsoleBridgeError):
    """Raised when an envelope could not be handed to the parent context.

    Attributes:
        cause: The exception raised by the transport, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class NoParentContextError(DeliveryError):
    """Raised when there is no parent context to deliver to."""

    def __init__(self, message: str = "No parent context available") -> None:
        super().__init__(message)


class ConfigurationError(ConsoleBridgeError):
    """Raised when consolebridge settings name an unsupported option."""
