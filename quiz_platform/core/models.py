"""Domain models for the testing platform."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"


class SubscriptionPlan(str, Enum):
    FREE = "FREE"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class AttemptMode(str, Enum):
    """TRAINING is the timed variant, EXAM uses the full bank without a clock."""

    TRAINING = "TRAINING"
    EXAM = "EXAM"

    @property
    def is_timed(self) -> bool:
        return self is AttemptMode.TRAINING


class AttemptState(str, Enum):
    IDLE = "IDLE"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


@dataclass(slots=True)
class Faculty:
    id: int
    name: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class Subject:
    id: int
    name: str
    faculty_id: int
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class Question:
    """Multiple-choice question with one correct and three wrong answers."""

    id: int
    subject_id: int
    question_text: str
    correct_answer: str
    wrong_answers: tuple[str, str, str]
    explanation: str | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class PreparedQuestion:
    """Question snapshot with its answers in per-attempt shuffled order."""

    id: int
    question_text: str
    answers: list[str]
    correct_index: int
    explanation: str | None = None


@dataclass(slots=True)
class TestResult:
    """Outcome of one finished attempt. ``id`` is assigned by the results store."""

    __test__ = False  # not a pytest test class

    user_id: str
    subject_id: int
    score: int
    total_questions: int
    correct_count: int
    elapsed_seconds: int
    mode: AttemptMode
    created_at: datetime = field(default_factory=utc_now)
    id: int | None = None


@dataclass(slots=True)
class User:
    id: str
    email: str
    name: str = ""
    role: UserRole = UserRole.STUDENT
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE
    subscription_expires_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class ImportedQuestionRow:
    """Row produced by the bulk importer; ``correct_index`` is 1-based."""

    question_text: str
    answers: tuple[str, str, str, str]
    correct_index: int
    explanation: str | None = None
