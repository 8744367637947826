"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quiz_platform.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_platform.constants.quiz_constants import (
    ATTEMPTS_PER_USER,
    RESULTS_HISTORY_LIMIT,
    TICK_INTERVAL_SECONDS,
    TIMED_LIMIT_SECONDS,
    TIMED_QUESTION_CAP,
)


class Settings(BaseSettings):
    """Runtime configuration. Every field can be set with a ``QUIZ_`` prefixed variable."""

    model_config = SettingsConfigDict(
        env_prefix="QUIZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default=DEFAULT_HOST)
    port: int = Field(default=DEFAULT_PORT)
    log_level: str = Field(default="INFO")

    # Operators who bypass subscription checks and may use the admin endpoints.
    operator_emails: str | list[str] = Field(default_factory=list)
    # JSON object mapping an operator email to the session token it signs in with.
    operator_tokens: dict[str, str] = Field(default_factory=dict)

    timed_question_cap: int = Field(default=TIMED_QUESTION_CAP, gt=0)
    timed_limit_seconds: int = Field(default=TIMED_LIMIT_SECONDS, gt=0)
    tick_interval_seconds: float = Field(default=TICK_INTERVAL_SECONDS, gt=0)
    results_history_limit: int = Field(default=RESULTS_HISTORY_LIMIT, gt=0)
    # Attempts kept in memory per user; the oldest finished ones are dropped first.
    attempts_per_user: int = Field(default=ATTEMPTS_PER_USER, gt=0)
    run_countdown_threads: bool = Field(default=True)

    @field_validator("operator_emails", mode="before")
    @classmethod
    def parse_operator_emails(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item).strip() for item in value if str(item).strip()]

    @property
    def operator_allowlist(self) -> frozenset[str]:
        return frozenset(email.lower() for email in self.operator_emails)

    @property
    def operator_session_tokens(self) -> dict[str, str]:
        return {email.strip().lower(): token for email, token in self.operator_tokens.items() if token}
