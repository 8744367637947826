"""Shared fixtures for the platform tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from quiz_platform.config import Settings
from quiz_platform.constants.network_constants import SESSION_HEADER
from quiz_platform.core.errors import PersistenceFailure, StoreError
from quiz_platform.core.interfaces import ResultStore
from quiz_platform.core.models import SubscriptionPlan, TestResult, UserRole
from quiz_platform.core.platform_manager import QuizPlatform
from quiz_platform.core.services.catalog_repository import CatalogRepository
from quiz_platform.core.services.result_repository import ResultRepository
from quiz_platform.server.api_server import create_api_app

OPERATOR_EMAIL = "operator@example.com"


class FakeClock:
    """Manually advanced clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingResultStore(ResultStore):
    def __init__(self) -> None:
        self.saved: list[TestResult] = []
        self._inner = ResultRepository()

    def save_result(self, result: TestResult) -> TestResult:
        stored = self._inner.save_result(result)
        self.saved.append(stored)
        return stored

    def list_results(self, user_id: str) -> list[TestResult]:
        return self._inner.list_results(user_id)


class FailingResultStore(ResultStore):
    def __init__(self) -> None:
        self.calls = 0

    def save_result(self, result: TestResult) -> TestResult:
        self.calls += 1
        raise PersistenceFailure("results table unavailable")

    def list_results(self, user_id: str) -> list[TestResult]:
        return []


class UnavailableCatalog(CatalogRepository):
    """Catalog whose question reads fail as if the database were down."""

    def fetch_questions(self, subject_id: int) -> list:
        raise StoreError("question store timed out")


def add_questions(catalog: CatalogRepository, subject_id: int, count: int) -> list[int]:
    """Add ``count`` questions whose correct answer is ``correct-<n>``."""
    ids = []
    for n in range(1, count + 1):
        question = catalog.add_question(
            subject_id,
            f"Question {n}?",
            f"correct-{n}",
            [f"wrong-{n}-a", f"wrong-{n}-b", f"wrong-{n}-c"],
            explanation=f"Because {n}.",
        )
        ids.append(question.id)
    return ids


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> CatalogRepository:
    return CatalogRepository()


@pytest.fixture
def subject_id(catalog: CatalogRepository) -> int:
    faculty = catalog.add_faculty("Computer Science")
    return catalog.add_subject("Python", faculty.id).id


@pytest.fixture
def recording_store() -> RecordingResultStore:
    return RecordingResultStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        operator_emails=OPERATOR_EMAIL,
        run_countdown_threads=False,
        timed_limit_seconds=5,
    )


@pytest.fixture
def platform(settings: Settings, catalog: CatalogRepository, clock: FakeClock) -> QuizPlatform:
    manager = QuizPlatform(settings=settings, catalog=catalog, clock=clock)
    yield manager
    manager.shutdown()


@pytest.fixture
def client(platform: QuizPlatform) -> TestClient:
    with TestClient(create_api_app(platform)) as test_client:
        yield test_client


def auth_headers(platform: QuizPlatform, user_id: str) -> dict[str, str]:
    return {SESSION_HEADER: platform.open_session(user_id)}


@pytest.fixture
def student(platform: QuizPlatform):
    return platform.register_user("student@example.com", name="Student")


@pytest.fixture
def subscriber(platform: QuizPlatform, clock: FakeClock):
    user = platform.register_user("subscriber@example.com", name="Subscriber")
    return platform.grant_subscription(user.id, SubscriptionPlan.MONTHLY, clock() + timedelta(days=30))


@pytest.fixture
def admin(platform: QuizPlatform):
    return platform.register_user("admin@example.com", name="Admin", role=UserRole.ADMIN)
