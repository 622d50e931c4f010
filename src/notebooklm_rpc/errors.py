"""Exception hierarchy for the NotebookLM RPC client."""


class NotebookLMError(Exception):
    """Base class for every error raised by this package."""


class AuthenticationError(NotebookLMError):
    """Raised when the session is dead (HTTP 401/403, login redirect or RPC Error 16)."""


class RequestTimeoutError(NotebookLMError):
    """Raised when a call exceeds its deadline. Never retried automatically."""


class TransportError(NotebookLMError):
    """Network or HTTP-level failure that is not an authentication problem."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(NotebookLMError, ValueError):
    """A caller-supplied option is not part of a closed enumeration."""


class BrowserRecoveryError(NotebookLMError):
    """Browser-driven credential recovery could not produce a usable record."""
