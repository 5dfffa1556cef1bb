"""
Unified exception hierarchy for the expense tracker.

This module defines the exception hierarchy with ExpenseTrackerError as the
base exception, allowing callers to handle validation problems, store
failures, and collaborator failures consistently.
"""

from typing import Optional


class ExpenseTrackerError(Exception):
    """
    Base exception class for all expense tracker errors.

    All custom exceptions in the application should inherit from this class
    to enable unified error handling and consistent error messages.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize ExpenseTrackerError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(ExpenseTrackerError):
    """Raised when configuration loading or validation fails."""
    pass


class DatabaseError(ExpenseTrackerError):
    """Raised when record store operations fail."""
    pass


class ValidationError(ExpenseTrackerError):
    """Raised when caller input is malformed, before any store mutation."""
    pass


class CollaboratorError(ExpenseTrackerError):
    """Base error for recoverable failures of external collaborators."""
    pass


class OCRError(CollaboratorError):
    """Raised when receipt recognition fails or returns an unusable draft."""
    pass


class AdviceError(CollaboratorError):
    """Raised when the advice service cannot be reached or answers with an error."""
    pass


class ReportError(ExpenseTrackerError):
    """Raised when report or export generation fails."""
    pass
