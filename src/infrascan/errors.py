"""
Exceptions raised across infrascan.

ValidationError is surfaced synchronously to whoever submits a job. The other
errors are raised inside the background task or a store backend and end up
recorded on the job (or logged, for storage) rather than reaching the caller.
"""

from typing import Any, Dict, Optional


class InfrascanError(Exception):
    """Base exception for all infrascan errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(InfrascanError):
    """Credentials have the wrong shape (key lengths, region format)."""


class ExtractionError(InfrascanError):
    """No uploaded file yielded a usable credentials triple."""


class ExecutionError(InfrascanError):
    """The analysis process failed, timed out or could not be started."""


class StorageError(InfrascanError):
    """A job record could not be read or written."""
