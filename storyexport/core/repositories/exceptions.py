"""
Repository exceptions for data-access errors.
"""


class RepositoryError(Exception):
    """Base exception for all repository errors."""
    pass


class TaskRepositoryError(RepositoryError):
    """Exception raised by TaskRecordRepository operations."""
    pass


class ValidationError(RepositoryError):
    """Raised when input validation fails."""
    pass
