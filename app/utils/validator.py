"""
Field-level validation accumulator.

A Validator collects one message per field without short-circuiting, so
every problem with a submission can be reported together.
"""

from typing import Dict, Hashable, Iterable


class Validator:
    """
    Accumulates validation failures keyed by field name.

    Create a fresh instance per validation pass; instances are not meant to be
    shared between concurrent validations of different inputs.
    """

    def __init__(self):
        self.errors: Dict[str, str] = {}

    def valid(self) -> bool:
        """Return True if no failures have been recorded."""
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        """
        Record a failure for a field.

        Only the first message per field is kept.
        """
        if key not in self.errors:
            self.errors[key] = message

    def check(self, ok: bool, key: str, message: str) -> None:
        """Record ``message`` under ``key`` if ``ok`` is False."""
        if not ok:
            self.add_error(key, message)

    @staticmethod
    def permitted_value(value, permitted: Iterable) -> bool:
        """Return True if value is one of the permitted values."""
        return value in set(permitted)

    @staticmethod
    def unique(values: Iterable[Hashable]) -> bool:
        """Return True if all values are pairwise distinct."""
        values = list(values)
        return len(set(values)) == len(values)
