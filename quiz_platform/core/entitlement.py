"""Decides who may start an attempt or open protected content.

Only the subscription fields of the user record are consulted, and the answer
is recomputed on every call because expiry depends on the current time.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime

from quiz_platform.core.errors import UnauthenticatedError, UnentitledError
from quiz_platform.core.models import SubscriptionPlan, User, UserRole


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_administrator(user: User | None, operator_emails: Collection[str]) -> bool:
    if user is None:
        return False
    if user.role is UserRole.ADMIN:
        return True
    allowlist = {normalize_email(email) for email in operator_emails}
    return normalize_email(user.email) in allowlist


def has_active_subscription(user: User, now: datetime) -> bool:
    if user.subscription_plan is SubscriptionPlan.FREE:
        return False
    expires_at = user.subscription_expires_at
    return expires_at is not None and expires_at > now


def can_enter(user: User | None, now: datetime, operator_emails: Collection[str] = ()) -> bool:
    """Return True when ``user`` may start an attempt at ``now``."""
    if user is None:
        return False
    if is_administrator(user, operator_emails):
        return True
    return has_active_subscription(user, now)


def require_entry(user: User | None, now: datetime, operator_emails: Collection[str] = ()) -> User:
    """Like can_enter, but raise the matching denial error instead of returning False."""
    if user is None:
        raise UnauthenticatedError("Sign in to continue.")
    if not can_enter(user, now, operator_emails):
        raise UnentitledError("An active subscription is required.")
    return user
