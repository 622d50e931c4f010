"""NotebookLM RPC client with automatic session recovery."""

__version__ = "0.3.0"

from .errors import (
    AuthenticationError,
    BrowserRecoveryError,
    NotebookLMError,
    RequestTimeoutError,
    TransportError,
    ValidationError,
)

__all__ = [
    "__version__",
    "AuthenticationError",
    "BrowserRecoveryError",
    "NotebookLMError",
    "RequestTimeoutError",
    "TransportError",
    "ValidationError",
]
