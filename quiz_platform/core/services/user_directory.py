"""In-memory user records and session lookup.

Passwords belong to the hosted auth service. Session tokens are either
seeded for operators at startup or issued by an administrator, and this
directory maps each token to a user record.
"""

from __future__ import annotations

from datetime import datetime
import secrets
from uuid import uuid4

from quiz_platform.core.entitlement import normalize_email
from quiz_platform.core.errors import NotFoundError, ValidationError
from quiz_platform.core.interfaces import IdentityProvider
from quiz_platform.core.models import SubscriptionPlan, User, UserRole


class UserDirectory(IdentityProvider):
    """Keeps user records and the session tokens pointing at them."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._sessions: dict[str, str] = {}

    def add_user(
        self,
        email: str,
        name: str = "",
        role: UserRole = UserRole.STUDENT,
        user_id: str | None = None,
    ) -> User:
        cleaned_email = normalize_email(email)
        if not cleaned_email or "@" not in cleaned_email:
            raise ValidationError("A valid email address is required.")
        if self.find_by_email(cleaned_email) is not None:
            raise ValidationError(f"User with email {cleaned_email} already exists.")
        user = User(id=user_id or uuid4().hex, email=cleaned_email, name=name.strip(), role=role)
        self._users[user.id] = user
        return user

    def find_by_email(self, email: str) -> User | None:
        cleaned_email = normalize_email(email)
        return next((user for user in self._users.values() if user.email == cleaned_email), None)

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        return user

    def list_users(self) -> list[User]:
        return sorted(self._users.values(), key=lambda u: u.created_at, reverse=True)

    def user_count(self) -> int:
        return len(self._users)

    def count_by_plan(self, plan: SubscriptionPlan) -> int:
        return sum(1 for user in self._users.values() if user.subscription_plan is plan)

    def update_subscription(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        expires_at: datetime | None,
    ) -> User:
        user = self.get_user(user_id)
        if plan is SubscriptionPlan.FREE:
            expires_at = None
        elif expires_at is None:
            raise ValidationError("A paid plan needs an expiry date.")
        elif expires_at.tzinfo is None:
            raise ValidationError("Expiry date must include a timezone.")
        user.subscription_plan = plan
        user.subscription_expires_at = expires_at
        return user

    # --- Sessions ---

    def open_session(self, user_id: str, token: str | None = None) -> str:
        """Bind ``token`` (or a fresh random one) to the user and return it."""
        self.get_user(user_id)
        token = token or secrets.token_urlsafe(32)
        bound_to = self._sessions.get(token)
        if bound_to is not None and bound_to != user_id:
            raise ValidationError("Session token is already in use.")
        self._sessions[token] = user_id
        return token

    def close_session(self, token: str) -> None:
        self._sessions.pop(token, None)

    def current_user(self, session_token: str | None) -> User | None:
        if not session_token:
            return None
        user_id = self._sessions.get(session_token)
        if user_id is None:
            return None
        return self._users.get(user_id)
