"""Error definitions for lokit."""

from typing import Optional


class LokitError(Exception):
    """Base exception for all custom errors."""


class ResourceParseError(LokitError):
    """Raised when a resource file cannot be parsed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        if path:
            message = f"parsing {path}: {message}"
        super().__init__(message)


class ResourceIOError(LokitError):
    """Raised when a resource file cannot be read or written."""


class LedgerError(LokitError):
    """Base class for change ledger failures."""


class LedgerFormatError(LedgerError):
    """Raised when an existing ledger file is malformed.

    This is fatal: falling back to an empty ledger would mark every unit as
    changed and trigger a full re-translation.
    """


class LedgerIOError(LedgerError):
    """Raised when the ledger file cannot be read or written."""


class ConfigurationError(LokitError):
    """Raised when the project configuration is invalid."""
