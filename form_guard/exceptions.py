"""
Form Guard Exceptions
=====================
Exception hierarchy shared by the limiter, storage and access-list modules.
"""

from typing import Optional


class FormGuardError(Exception):
    """Base exception for all form guard errors."""
    pass


class ConfigurationError(FormGuardError):
    """Raised when limiter configuration is invalid (fatal, at construction)."""
    
    def __init__(self, message: str, option: Optional[str] = None):
        self.option = option
        super().__init__(f"{option}: {message}" if option else message)


class StorageUnavailable(FormGuardError):
    """Raised when the window storage backend cannot be reached."""
    
    def __init__(self, message: str, backend: str = "unknown", cause: Optional[Exception] = None):
        self.backend = backend
        self.cause = cause
        super().__init__(f"[{backend}] {message}")


class MalformedAccessListEntry(FormGuardError, ValueError):
    """Raised when an allow/deny list entry is not an IP, CIDR or wildcard."""
    
    def __init__(self, entry: str, reason: str = "not an IP address or network"):
        self.entry = entry
        self.reason = reason
        super().__init__(f"Malformed access list entry {entry!r}: {reason}")
