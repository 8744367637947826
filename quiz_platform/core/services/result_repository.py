"""In-memory store for finished test results."""

from __future__ import annotations

from dataclasses import replace
from itertools import count

from quiz_platform.constants.quiz_constants import RESULTS_HISTORY_LIMIT
from quiz_platform.core.interfaces import ResultStore
from quiz_platform.core.models import TestResult, utc_now


class ResultRepository(ResultStore):
    """Append-only result log. Saved results are never mutated."""

    def __init__(self, history_limit: int = RESULTS_HISTORY_LIMIT) -> None:
        self._results: list[TestResult] = []
        self._ids = count(1)
        self._history_limit = history_limit

    def save_result(self, result: TestResult) -> TestResult:
        stored = replace(result, id=next(self._ids), created_at=utc_now())
        self._results.append(stored)
        return stored

    def list_results(self, user_id: str) -> list[TestResult]:
        return self.all_results(user_id)[: self._history_limit]

    def all_results(self, user_id: str | None = None) -> list[TestResult]:
        """Every stored result, newest first, optionally for one user."""
        results = [r for r in self._results if user_id is None or r.user_id == user_id]
        return sorted(results, key=lambda r: (r.created_at, r.id or 0), reverse=True)

    def delete_for_subject(self, subject_id: int) -> None:
        self._results = [r for r in self._results if r.subject_id != subject_id]
