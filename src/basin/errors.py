"""Exception hierarchy for the basin engine."""


class BasinError(Exception):
    """Base class for all errors raised by basin."""


class ConfigurationError(BasinError):
    """Raised when engine options, channel names or patterns are invalid.

    Configuration errors are detected at construction time and are never
    recoverable.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize configuration error.

        Args:
            message: Error description.
            field: Name of the offending option or channel, if known.
        """
        super().__init__(message)
        self.field = field


class InvalidKeyError(BasinError):
    """Raised when a cache operation receives an empty store or key."""

    def __init__(self, message: str, store: object, key: object = None) -> None:
        """Initialize invalid key error.

        Args:
            message: Error description.
            store: Store argument that was passed.
            key: Key argument that was passed.
        """
        super().__init__(message)
        self.store = store
        self.key = key


class FileSystemError(BasinError):
    """Raised when a read, write or delete operation fails."""

    def __init__(self, message: str, path: str, code: str | None = None) -> None:
        """Initialize filesystem error.

        Args:
            message: Error description.
            path: Path that caused the error.
            code: Optional error code (e.g., ENOENT).
        """
        super().__init__(message)
        self.path = path
        self.code = code


class HandlerError(BasinError):
    """Raised when a user handler fails during an emit.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, message: str, event: object, handler: str) -> None:
        """Initialize handler error.

        Args:
            message: Error description.
            event: Name of the event being emitted.
            handler: Qualified name of the failing handler.
        """
        super().__init__(message)
        self.event = event
        self.handler = handler


class EngineStateError(BasinError):
    """Raised when an engine operation is invalid for its current state."""
