from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from quiz_platform.core.errors import NotFoundError, ValidationError
from quiz_platform.core.models import SubscriptionPlan
from quiz_platform.core.services.user_directory import UserDirectory


def test_emails_are_normalized_and_unique():
    directory = UserDirectory()
    user = directory.add_user("  Ana@Example.COM ", name=" Ana ")

    assert user.email == "ana@example.com"
    assert user.name == "Ana"
    with pytest.raises(ValidationError):
        directory.add_user("ana@example.com")
    with pytest.raises(ValidationError):
        directory.add_user("not-an-email")


def test_free_plan_clears_expiry():
    directory = UserDirectory()
    user = directory.add_user("a@example.com")
    directory.update_subscription(user.id, SubscriptionPlan.MONTHLY, datetime(2030, 1, 1, tzinfo=timezone.utc))

    updated = directory.update_subscription(user.id, SubscriptionPlan.FREE, datetime(2030, 1, 1, tzinfo=timezone.utc))

    assert updated.subscription_plan is SubscriptionPlan.FREE
    assert updated.subscription_expires_at is None


def test_paid_plan_needs_aware_expiry():
    directory = UserDirectory()
    user = directory.add_user("a@example.com")

    with pytest.raises(ValidationError):
        directory.update_subscription(user.id, SubscriptionPlan.YEARLY, None)
    with pytest.raises(ValidationError):
        directory.update_subscription(user.id, SubscriptionPlan.YEARLY, datetime(2030, 1, 1))


def test_count_by_plan():
    directory = UserDirectory()
    expiry = datetime.now(timezone.utc) + timedelta(days=30)
    for email in ("a@example.com", "b@example.com"):
        user = directory.add_user(email)
        directory.update_subscription(user.id, SubscriptionPlan.MONTHLY, expiry)
    directory.add_user("c@example.com")

    assert directory.count_by_plan(SubscriptionPlan.MONTHLY) == 2
    assert directory.count_by_plan(SubscriptionPlan.FREE) == 1
    assert directory.user_count() == 3


def test_sessions_resolve_to_users():
    directory = UserDirectory()
    user = directory.add_user("a@example.com")
    token = directory.open_session(user.id)

    assert directory.current_user(token) is user
    assert directory.current_user(None) is None
    assert directory.current_user("unknown") is None

    directory.close_session(token)
    assert directory.current_user(token) is None


def test_unknown_user():
    with pytest.raises(NotFoundError):
        UserDirectory().open_session("missing")


def test_fixed_session_token():
    directory = UserDirectory()
    first = directory.add_user("a@example.com")
    second = directory.add_user("b@example.com")

    assert directory.open_session(first.id, token="fixed") == "fixed"
    assert directory.open_session(first.id, token="fixed") == "fixed"
    assert directory.current_user("fixed") is first
    with pytest.raises(ValidationError):
        directory.open_session(second.id, token="fixed")


def test_find_by_email():
    directory = UserDirectory()
    user = directory.add_user("a@example.com")

    assert directory.find_by_email(" A@Example.com") is user
    assert directory.find_by_email("z@example.com") is None
