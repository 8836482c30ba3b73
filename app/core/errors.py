"""
Error kinds returned by the record store and the validation helpers.

Callers should branch on ``exc.kind`` rather than on identity.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    RECORD_NOT_FOUND = "record_not_found"
    EDIT_CONFLICT = "edit_conflict"
    VALIDATION_FAILURE = "validation_failure"
    STORAGE_FAILURE = "storage_failure"


class MovieStoreError(Exception):
    """Base class for all movie store errors."""

    kind: ErrorKind
    default_message = "movie store error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class RecordNotFound(MovieStoreError):
    """The targeted record does not exist."""

    kind = ErrorKind.RECORD_NOT_FOUND
    default_message = "record not found"


class EditConflict(MovieStoreError):
    """The record was modified since the caller last read it."""

    kind = ErrorKind.EDIT_CONFLICT
    default_message = "unable to update the record due to an edit conflict, please try again"


class ValidationFailure(MovieStoreError):
    """
    Caller input violates a domain rule.

    Attributes:
        errors: Mapping of field name to the first failure message for it
    """

    kind = ErrorKind.VALIDATION_FAILURE
    default_message = "validation failed"

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        super().__init__(message)
        self.errors = dict(errors)

    def __str__(self) -> str:
        details = ", ".join(f"{key}: {msg}" for key, msg in self.errors.items())
        return f"{self.args[0]} ({details})" if details else self.args[0]


class StorageFailure(MovieStoreError):
    """Connectivity, timeout or any other backend error."""

    kind = ErrorKind.STORAGE_FAILURE
    default_message = "storage failure"
