from __future__ import annotations

from datetime import timedelta

import pytest

from quiz_platform.config import Settings
from quiz_platform.core.errors import (
    AdminRequiredError,
    EmptyBankError,
    NotFoundError,
    StoreError,
    UnauthenticatedError,
    UnentitledError,
)
from quiz_platform.core.models import AttemptMode, AttemptState, SubscriptionPlan, UserRole
from quiz_platform.core.platform_manager import QuizPlatform

from conftest import OPERATOR_EMAIL, UnavailableCatalog, add_questions


def _answer_correctly(platform, user, attempt_id, view):
    correct = next(i for i, text in enumerate(view.current_question.answers) if text.startswith("correct-"))
    return platform.select_answer(user, attempt_id, view.current_question.id, correct)


def test_anonymous_user_cannot_start(platform, catalog, subject_id):
    add_questions(catalog, subject_id, 2)

    with pytest.raises(UnauthenticatedError):
        platform.start_attempt(None, subject_id, AttemptMode.EXAM)


def test_free_student_cannot_start(platform, catalog, subject_id, student):
    add_questions(catalog, subject_id, 2)

    with pytest.raises(UnentitledError):
        platform.start_attempt(student, subject_id, AttemptMode.EXAM)
    assert platform.active_attempt_count() == 0


def test_operator_email_bypasses_subscription(platform, catalog, subject_id):
    add_questions(catalog, subject_id, 2)
    operator = platform.register_user(OPERATOR_EMAIL.upper())

    view = platform.start_attempt(operator, subject_id, AttemptMode.EXAM)

    assert view.state is AttemptState.IN_PROGRESS
    assert platform.is_administrator(operator)


def test_empty_subject_cannot_start(platform, subject_id, subscriber):
    with pytest.raises(EmptyBankError):
        platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)


def test_timed_attempt_uses_capped_bank_and_clock(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 30)

    timed = platform.start_attempt(subscriber, subject_id, AttemptMode.TRAINING)
    untimed = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)

    assert timed.question_count == 25
    assert timed.time_limit_seconds == platform.settings.timed_limit_seconds
    assert timed.remaining_seconds == platform.settings.timed_limit_seconds
    assert untimed.question_count == 30
    assert untimed.time_limit_seconds is None


def test_full_attempt_records_result(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 4)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    attempt_id = view.attempt_id

    for _ in range(3):
        _answer_correctly(platform, subscriber, attempt_id, view)
        view = platform.advance(subscriber, attempt_id)
    wrong = next(i for i, text in enumerate(view.current_question.answers) if text.startswith("wrong-"))
    platform.select_answer(subscriber, attempt_id, view.current_question.id, wrong)
    view = platform.advance(subscriber, attempt_id)

    assert view.state is AttemptState.FINISHED
    assert view.result.score == 75
    assert view.saved is True
    assert len(view.review) == 4

    rows = platform.list_results(subscriber)
    assert [row.result.score for row in rows] == [75]
    assert rows[0].subject_name == "Python"

    stats = platform.dashboard_stats(subscriber)
    assert stats[0].average_score == 75
    assert stats[0].attempts == 1


def test_finish_twice_returns_same_result(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)

    first = platform.finish_attempt(subscriber, view.attempt_id)
    second = platform.finish_attempt(subscriber, view.attempt_id)

    assert first.result is second.result
    assert len(platform.list_results(subscriber)) == 1


def test_answer_after_finish_is_rejected(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    platform.finish_attempt(subscriber, view.attempt_id)

    with pytest.raises(RuntimeError):
        platform.select_answer(subscriber, view.attempt_id, view.current_question.id, 0)


def test_attempts_are_private_to_their_owner(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    other = platform.register_user(OPERATOR_EMAIL)

    with pytest.raises(NotFoundError):
        platform.get_attempt(other, view.attempt_id)


def test_expired_subscription_blocks_unfinished_attempt(platform, catalog, subject_id, subscriber, clock):
    add_questions(catalog, subject_id, 2)
    running = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    done = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    platform.finish_attempt(subscriber, done.attempt_id)

    clock.advance(timedelta(days=31).total_seconds())

    with pytest.raises(UnentitledError):
        platform.get_attempt(subscriber, running.attempt_id)
    assert platform.get_attempt(subscriber, done.attempt_id).state is AttemptState.FINISHED


def test_ticks_finish_timed_attempt(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 3)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.TRAINING)
    limit = platform.settings.timed_limit_seconds

    ticks = [platform.tick_attempt(view.attempt_id) for _ in range(limit)]

    assert ticks == [True] * (limit - 1) + [False]
    final = platform.get_attempt(subscriber, view.attempt_id)
    assert final.state is AttemptState.FINISHED
    assert final.result.mode is AttemptMode.TRAINING
    assert platform.tick_attempt(view.attempt_id) is False
    assert len(platform.list_results(subscriber)) == 1


def test_discard_removes_attempt(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)

    platform.discard_attempt(subscriber, view.attempt_id)

    with pytest.raises(NotFoundError):
        platform.get_attempt(subscriber, view.attempt_id)
    assert platform.list_results(subscriber) == []


def test_deleting_subject_removes_its_results(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 1)
    view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    platform.finish_attempt(subscriber, view.attempt_id)

    platform.delete_subject(subject_id)

    assert platform.list_results(subscriber) == []
    assert platform.admin_stats().question_count == 0


def test_admin_stats_estimate_income(platform, subscriber, clock):
    yearly = platform.register_user("yearly@example.com")
    platform.grant_subscription(yearly.id, SubscriptionPlan.YEARLY, clock() + timedelta(days=365))

    stats = platform.admin_stats()

    assert stats.user_count == 2
    assert stats.monthly_subscribers == 1
    assert stats.yearly_subscribers == 1
    assert stats.estimated_income == 75_000


def test_require_admin(platform, student, admin):
    assert platform.require_admin(admin) is admin
    with pytest.raises(AdminRequiredError):
        platform.require_admin(student)
    with pytest.raises(UnauthenticatedError):
        platform.require_admin(None)


def test_import_questions_adds_rows(platform, subject_id):
    content = b"Q: 2 + 2?\nA: 3\nB: 4\nC: 5\nD: 6\nCORRECT: B\n"

    created = platform.import_questions(subject_id, "bank.txt", content)

    assert len(created) == 1
    assert created[0].correct_answer == "4"
    assert platform.count_questions(subject_id) == 1


def test_shutdown_drops_attempts(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    platform.start_attempt(subscriber, subject_id, AttemptMode.TRAINING)

    platform.shutdown()

    assert platform.active_attempt_count() == 0


def test_store_failure_propagates_without_registering(settings, clock):
    catalog = UnavailableCatalog()
    subject = catalog.add_subject("Optics", catalog.add_faculty("Physics").id)
    platform = QuizPlatform(settings=settings, catalog=catalog, clock=clock)
    user = platform.register_user("reader@example.com")
    user = platform.grant_subscription(user.id, SubscriptionPlan.MONTHLY, clock() + timedelta(days=30))

    with pytest.raises(StoreError):
        platform.start_attempt(user, subject.id, AttemptMode.EXAM)
    assert platform.attempt_count() == 0


def test_finished_attempts_do_not_pile_up(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    attempt_ids = []
    for _ in range(20):
        view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
        platform.finish_attempt(subscriber, view.attempt_id)
        attempt_ids.append(view.attempt_id)

    assert platform.attempt_count() == platform.settings.attempts_per_user
    assert platform.get_attempt(subscriber, attempt_ids[-1]).state is AttemptState.FINISHED
    with pytest.raises(NotFoundError):
        platform.get_attempt(subscriber, attempt_ids[0])
    assert len(platform.list_results(subscriber)) == 20


def test_unfinished_attempt_outlives_finished_ones(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    running = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
    for _ in range(platform.settings.attempts_per_user + 2):
        view = platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)
        platform.finish_attempt(subscriber, view.attempt_id)

    assert platform.get_attempt(subscriber, running.attempt_id).state is AttemptState.IN_PROGRESS
    assert platform.attempt_count() == platform.settings.attempts_per_user


def test_attempt_cap_is_per_user(platform, catalog, subject_id, subscriber):
    add_questions(catalog, subject_id, 2)
    operator = platform.register_user(OPERATOR_EMAIL)
    kept = platform.start_attempt(operator, subject_id, AttemptMode.EXAM)
    for _ in range(platform.settings.attempts_per_user + 3):
        platform.start_attempt(subscriber, subject_id, AttemptMode.EXAM)

    assert platform.get_attempt(operator, kept.attempt_id).state is AttemptState.IN_PROGRESS


def test_seed_operator_accounts_binds_tokens(clock):
    settings = Settings(
        operator_emails="ops@example.com, Lead@Example.com",
        operator_tokens={"LEAD@example.com": "lead-token"},
        run_countdown_threads=False,
    )
    platform = QuizPlatform(settings=settings, clock=clock)

    seeded = platform.seed_operator_accounts()
    platform.seed_operator_accounts()

    assert sorted(user.email for user in seeded) == ["lead@example.com", "ops@example.com"]
    assert all(user.role is UserRole.ADMIN for user in seeded)
    assert platform.current_user("lead-token").email == "lead@example.com"
    assert len(platform.list_users()) == 2

    platform.close_session("lead-token")
    assert platform.current_user("lead-token") is None
