"""Contracts for the collaborators the test engine and the API depend on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from quiz_platform.core.models import Question, TestResult, User


class QuestionStore(ABC):
    @abstractmethod
    def fetch_questions(self, subject_id: int) -> Sequence[Question]:
        """Return every question of a subject.

        Raises NotFoundError for an unknown subject and StoreError on I/O failure.
        """


class ResultStore(ABC):
    @abstractmethod
    def save_result(self, result: TestResult) -> TestResult:
        """Persist a result and return it with its store-assigned id and timestamp.

        Raises PersistenceFailure when the result cannot be stored.
        """

    @abstractmethod
    def list_results(self, user_id: str) -> list[TestResult]:
        """Results of one user, newest first, capped by the store."""


class IdentityProvider(ABC):
    @abstractmethod
    def current_user(self, session_token: str | None) -> User | None:
        """Resolve the signed-in user for a session token, or None."""
