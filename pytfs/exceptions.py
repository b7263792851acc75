"""Custom exceptions for pytfs."""


class TfsError(Exception):
    """Base exception for all pytfs errors."""

    pass


class TfsConfigError(TfsError):
    """Raised when the configuration is missing or invalid."""

    pass


class TfsTransportError(TfsError):
    """Raised when an HTTP executor is used in an unsupported way.

    Network and HTTP failures never raise; they are reported through
    HttpResponse. This error only signals misuse, such as registering a
    second transaction on an executor that is still busy.
    """

    pass


class TfsFilesystemError(TfsError):
    """Raised when a local directory cannot be prepared for a clone."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot prepare directory '{path}': {reason}")
