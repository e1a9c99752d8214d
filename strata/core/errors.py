"""STRATA — Error Taxonomy.

Store-level errors never cross the Store boundary: they are logged and
turned into empty results. They exist so internal helpers can signal
precisely what went wrong before that conversion happens.
"""


class StrataError(Exception):
    """Base class for all STRATA errors."""


class StorageError(StrataError):
    """Raised when the underlying database cannot be read or written."""

    def __init__(self, message: str, operation: str = ""):
        self.operation = operation
        super().__init__(message)


class DecodeError(StrataError):
    """Raised when a stored skill payload cannot be decoded."""


class NotFound(StrataError):
    """Internal lookup miss. Public reads return empty results instead."""


class InvalidPolicyError(StrataError):
    """Raised when retention thresholds cannot produce ordered tier boundaries."""


class EncodeError(StrataError):
    """Raised when a skill map cannot be encoded (e.g. a non-integer level)."""
