"""
Retry Exceptions
================
Exception classes for retry operations.
"""

from typing import Optional

from ..exceptions import FormGuardError


class RetryExhausted(FormGuardError):
    """Raised when all retry attempts have been exhausted."""
    
    def __init__(self, message: str, last_exception: Optional[Exception] = None):
        super().__init__(message)
        self.last_exception = last_exception
