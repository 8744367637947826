"""Error types raised by the platform core."""

from __future__ import annotations


class QuizPlatformError(Exception):
    """Base class for platform errors."""


class NotFoundError(QuizPlatformError):
    """Raised when a requested faculty, subject, question, user or attempt does not exist."""


class StoreError(QuizPlatformError):
    """Transient failure talking to a backing store. Retriable by the user."""


class EmptyBankError(QuizPlatformError):
    """The subject has no questions. Not retriable."""

    def __init__(self, subject_id: int) -> None:
        super().__init__(f"Subject {subject_id} has no questions yet.")
        self.subject_id = subject_id


class PersistenceFailure(QuizPlatformError):
    """A computed result could not be saved."""


class UnauthenticatedError(QuizPlatformError):
    """No signed-in user."""


class UnentitledError(QuizPlatformError):
    """The user has no active subscription."""


class AdminRequiredError(QuizPlatformError):
    """The action is reserved for administrators."""


class QuestionImportError(QuizPlatformError):
    """Raised when an import file cannot be parsed."""


class ValidationError(QuizPlatformError, ValueError):
    """Invalid input for a catalog or subscription change."""
