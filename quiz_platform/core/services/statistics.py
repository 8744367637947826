"""Aggregates over stored results and catalog counters."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from quiz_platform.constants.pricing_constants import PLAN_PRICES
from quiz_platform.core.models import Subject, SubscriptionPlan, TestResult


@dataclass(slots=True)
class SubjectStats:
    """Per-subject summary of one user's attempts."""

    subject_id: int
    subject_name: str
    attempts: int
    average_score: int
    best_score: int


@dataclass(slots=True)
class AdminStats:
    user_count: int
    faculty_count: int
    subject_count: int
    question_count: int
    monthly_subscribers: int
    yearly_subscribers: int
    estimated_income: int


@dataclass(slots=True)
class _StatsEntry:
    attempts: int = 0
    total_score: int = 0
    best_score: int = 0


def _round_half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def dashboard_stats(
    results: Iterable[TestResult],
    subjects: Mapping[int, Subject],
) -> list[SubjectStats]:
    """Group results by subject, keeping first-seen order of the input."""
    entries: dict[int, _StatsEntry] = {}
    for result in results:
        entry = entries.setdefault(result.subject_id, _StatsEntry())
        entry.attempts += 1
        entry.total_score += result.score
        entry.best_score = max(entry.best_score, result.score)

    rows = []
    for subject_id, entry in entries.items():
        subject = subjects.get(subject_id)
        rows.append(
            SubjectStats(
                subject_id=subject_id,
                subject_name=subject.name if subject else "",
                attempts=entry.attempts,
                average_score=_round_half_up(entry.total_score, entry.attempts),
                best_score=entry.best_score,
            )
        )
    return rows


def estimate_income(monthly_subscribers: int, yearly_subscribers: int) -> int:
    return (
        monthly_subscribers * PLAN_PRICES[SubscriptionPlan.MONTHLY]
        + yearly_subscribers * PLAN_PRICES[SubscriptionPlan.YEARLY]
    )


def admin_stats(
    *,
    user_count: int,
    faculty_count: int,
    subject_count: int,
    question_count: int,
    monthly_subscribers: int,
    yearly_subscribers: int,
) -> AdminStats:
    return AdminStats(
        user_count=user_count,
        faculty_count=faculty_count,
        subject_count=subject_count,
        question_count=question_count,
        monthly_subscribers=monthly_subscribers,
        yearly_subscribers=yearly_subscribers,
        estimated_income=estimate_income(monthly_subscribers, yearly_subscribers),
    )
