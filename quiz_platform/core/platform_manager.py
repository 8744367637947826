"""Business logic shared by the HTTP API and the countdown threads."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
import logging
import random
from threading import Lock
from uuid import uuid4

from quiz_platform.config import Settings
from quiz_platform.core import entitlement
from quiz_platform.core.errors import (
    AdminRequiredError,
    NotFoundError,
    UnauthenticatedError,
    UnentitledError,
)
from quiz_platform.core.models import (
    AttemptMode,
    AttemptState,
    Faculty,
    PreparedQuestion,
    Question,
    Subject,
    SubscriptionPlan,
    TestResult,
    User,
    UserRole,
    utc_now,
)
from quiz_platform.core.question_importer import parse_upload
from quiz_platform.core.services.catalog_repository import CatalogRepository
from quiz_platform.core.services.countdown import CountdownTimer
from quiz_platform.core.services.result_repository import ResultRepository
from quiz_platform.core.services.statistics import AdminStats, SubjectStats, admin_stats, dashboard_stats
from quiz_platform.core.services.test_session import TestSession, load_bank
from quiz_platform.core.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AttemptView:
    """Snapshot of an attempt taken under the facade lock."""

    attempt_id: str
    subject_id: int
    mode: AttemptMode
    state: AttemptState
    position: int
    question_count: int
    answered_count: int
    current_question: PreparedQuestion
    selected_index: int | None
    time_limit_seconds: int | None
    remaining_seconds: int | None
    started_at: datetime | None
    result: TestResult | None
    saved: bool
    review: list[tuple[PreparedQuestion, int | None]] | None


@dataclass(slots=True)
class ResultRow:
    result: TestResult
    subject_name: str


class QuizPlatform:
    """Facade over the catalog, results, users and running attempts."""

    def __init__(
        self,
        settings: Settings | None = None,
        catalog: CatalogRepository | None = None,
        results: ResultRepository | None = None,
        users: UserDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
        rng_factory: Callable[[], random.Random] = random.Random,
    ) -> None:
        self._lock = Lock()
        self.settings = settings or Settings()

        # Services
        self._catalog = catalog or CatalogRepository()
        self._results = results or ResultRepository(self.settings.results_history_limit)
        self._users = users or UserDirectory()
        self._clock = clock
        self._rng_factory = rng_factory

        self._attempts: dict[str, TestSession] = {}

    # --- Identity & entitlement ---

    def current_user(self, session_token: str | None) -> User | None:
        with self._lock:
            return self._users.current_user(session_token)

    def now(self) -> datetime:
        return self._clock()

    def can_enter(self, user: User | None) -> bool:
        return entitlement.can_enter(user, self._clock(), self.settings.operator_allowlist)

    def is_administrator(self, user: User | None) -> bool:
        return entitlement.is_administrator(user, self.settings.operator_allowlist)

    def require_user(self, user: User | None) -> User:
        if user is None:
            raise UnauthenticatedError("Sign in to continue.")
        return user

    def require_entry(self, user: User | None) -> User:
        try:
            return entitlement.require_entry(user, self._clock(), self.settings.operator_allowlist)
        except (UnauthenticatedError, UnentitledError):
            logger.debug("Entry denied for %s", user.email if user else "anonymous")
            raise

    def require_admin(self, user: User | None) -> User:
        user = self.require_user(user)
        if not self.is_administrator(user):
            raise AdminRequiredError("Administrator access required.")
        return user

    # --- Users ---

    def register_user(self, email: str, name: str = "", role: UserRole = UserRole.STUDENT) -> User:
        with self._lock:
            return self._users.add_user(email, name=name, role=role)

    def open_session(self, user_id: str) -> str:
        with self._lock:
            return self._users.open_session(user_id)

    def seed_operator_accounts(self) -> list[User]:
        """Create an ADMIN account per configured operator and bind its configured token."""
        tokens = self.settings.operator_session_tokens
        seeded = []
        with self._lock:
            for email in sorted(self.settings.operator_allowlist.union(tokens)):
                user = self._users.find_by_email(email)
                if user is None:
                    user = self._users.add_user(email, role=UserRole.ADMIN)
                if email in tokens:
                    self._users.open_session(user.id, token=tokens[email])
                seeded.append(user)
        logger.info("Seeded %d operator account(s), %d with a session token", len(seeded), len(tokens))
        return seeded

    def close_session(self, session_token: str) -> None:
        with self._lock:
            self._users.close_session(session_token)

    def list_users(self) -> list[User]:
        with self._lock:
            return self._users.list_users()

    def grant_subscription(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        expires_at: datetime | None,
    ) -> User:
        with self._lock:
            user = self._users.update_subscription(user_id, plan, expires_at)
        logger.info("Subscription for %s set to %s until %s", user.email, plan.value, user.subscription_expires_at)
        return user

    # --- Catalog ---

    def list_faculties(self) -> list[Faculty]:
        with self._lock:
            return self._catalog.list_faculties()

    def add_faculty(self, name: str) -> Faculty:
        with self._lock:
            return self._catalog.add_faculty(name)

    def update_faculty(self, faculty_id: int, name: str) -> Faculty:
        with self._lock:
            return self._catalog.update_faculty(faculty_id, name)

    def delete_faculty(self, faculty_id: int) -> None:
        with self._lock:
            subject_ids = [s.id for s in self._catalog.list_subjects(faculty_id)]
            self._catalog.delete_faculty(faculty_id)
            for subject_id in subject_ids:
                self._results.delete_for_subject(subject_id)

    def get_faculty(self, faculty_id: int) -> Faculty:
        with self._lock:
            return self._catalog.get_faculty(faculty_id)

    def list_subjects(self, faculty_id: int | None = None) -> list[Subject]:
        with self._lock:
            return self._catalog.list_subjects(faculty_id)

    def get_subject(self, subject_id: int) -> Subject:
        with self._lock:
            return self._catalog.get_subject(subject_id)

    def add_subject(self, name: str, faculty_id: int) -> Subject:
        with self._lock:
            return self._catalog.add_subject(name, faculty_id)

    def update_subject(self, subject_id: int, name: str, faculty_id: int) -> Subject:
        with self._lock:
            return self._catalog.update_subject(subject_id, name, faculty_id)

    def delete_subject(self, subject_id: int) -> None:
        with self._lock:
            self._catalog.delete_subject(subject_id)
            self._results.delete_for_subject(subject_id)

    def count_questions(self, subject_id: int) -> int:
        with self._lock:
            return len(self._catalog.fetch_questions(subject_id))

    def list_questions(self, subject_id: int | None = None) -> list[Question]:
        with self._lock:
            return self._catalog.list_questions(subject_id)

    def get_question(self, question_id: int) -> Question:
        with self._lock:
            return self._catalog.get_question(question_id)

    def add_question(
        self,
        subject_id: int,
        question_text: str,
        correct_answer: str,
        wrong_answers: list[str],
        explanation: str | None = None,
    ) -> Question:
        with self._lock:
            return self._catalog.add_question(
                subject_id, question_text, correct_answer, wrong_answers, explanation
            )

    def update_question(
        self,
        question_id: int,
        subject_id: int,
        question_text: str,
        correct_answer: str,
        wrong_answers: list[str],
        explanation: str | None = None,
    ) -> Question:
        with self._lock:
            return self._catalog.update_question(
                question_id, subject_id, question_text, correct_answer, wrong_answers, explanation
            )

    def delete_question(self, question_id: int) -> None:
        with self._lock:
            self._catalog.delete_question(question_id)

    def import_questions(self, subject_id: int, filename: str, content: bytes) -> list[Question]:
        """Parse an upload and add every row to the subject, or nothing on error."""
        with self._lock:
            self._catalog.get_subject(subject_id)
        imported = parse_upload(filename, content)
        with self._lock:
            created = self._catalog.add_imported_rows(subject_id, imported.rows)
        logger.info("Imported %d question(s) into subject %d from %s", len(created), subject_id, filename)
        return created

    def subject_names(self) -> dict[int, str]:
        with self._lock:
            return {s.id: s.name for s in self._catalog.list_subjects()}

    # --- Attempts ---

    def start_attempt(self, user: User | None, subject_id: int, mode: AttemptMode) -> AttemptView:
        user = self.require_entry(user)
        with self._lock:
            bank = load_bank(
                self._catalog,
                subject_id,
                mode,
                rng=self._rng_factory(),
                question_cap=self.settings.timed_question_cap,
            )
            attempt_id = uuid4().hex
            session = TestSession(
                user_id=user.id,
                subject_id=subject_id,
                mode=mode,
                questions=bank,
                results=self._results,
                time_limit_seconds=self.settings.timed_limit_seconds,
                clock=self._clock,
            )
            session.start()
            self._attempts[attempt_id] = session
            self._evict_old_attempts(user.id)
            if mode.is_timed and self.settings.run_countdown_threads:
                countdown = CountdownTimer(
                    lambda: self.tick_attempt(attempt_id),
                    interval_seconds=self.settings.tick_interval_seconds,
                    name=f"AttemptCountdown-{attempt_id[:8]}",
                )
                session.attach_countdown(countdown)
                countdown.start()
            return self._view(attempt_id, session)

    def get_attempt(self, user: User | None, attempt_id: str) -> AttemptView:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            finished = session.is_finished()
        if not finished:
            self.require_entry(user)
        with self._lock:
            return self._view(attempt_id, self._owned_attempt(user, attempt_id))

    def select_answer(self, user: User | None, attempt_id: str, question_id: int, choice: int) -> AttemptView:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            if not session.select_answer(question_id, choice):
                raise RuntimeError("Attempt is not in progress.")
            return self._view(attempt_id, session)

    def advance(self, user: User | None, attempt_id: str) -> AttemptView:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            session.advance()
            return self._view(attempt_id, session)

    def previous(self, user: User | None, attempt_id: str) -> AttemptView:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            session.previous()
            return self._view(attempt_id, session)

    def move_to(self, user: User | None, attempt_id: str, index: int) -> AttemptView:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            session.move_to(index)
            return self._view(attempt_id, session)

    def finish_attempt(self, user: User | None, attempt_id: str) -> AttemptView:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            session.finish()
            return self._view(attempt_id, session)

    def discard_attempt(self, user: User | None, attempt_id: str) -> None:
        user = self.require_user(user)
        with self._lock:
            session = self._owned_attempt(user, attempt_id)
            session.dispose()
            del self._attempts[attempt_id]

    def tick_attempt(self, attempt_id: str) -> bool:
        """Advance the countdown of one attempt; returns False once it no longer needs ticks."""
        with self._lock:
            session = self._attempts.get(attempt_id)
            if session is None or session.is_disposed() or session.is_finished():
                return False
            session.tick()
            return not session.is_finished()

    def attempt_count(self) -> int:
        """Attempts held in memory, finished ones included."""
        with self._lock:
            return len(self._attempts)

    def active_attempt_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._attempts.values() if not s.is_finished())

    def shutdown(self) -> None:
        """Stop every countdown and drop all attempts."""
        with self._lock:
            for session in self._attempts.values():
                session.dispose()
            self._attempts.clear()

    # --- Results & statistics ---

    def list_results(self, user: User | None) -> list[ResultRow]:
        user = self.require_user(user)
        with self._lock:
            results = self._results.list_results(user.id)
            return [ResultRow(result=r, subject_name=self._subject_name(r.subject_id)) for r in results]

    def dashboard_stats(self, user: User | None) -> list[SubjectStats]:
        user = self.require_user(user)
        with self._lock:
            subjects = {s.id: s for s in self._catalog.list_subjects()}
            return dashboard_stats(self._results.all_results(user.id), subjects)

    def admin_stats(self) -> AdminStats:
        with self._lock:
            return admin_stats(
                user_count=self._users.user_count(),
                faculty_count=self._catalog.faculty_count(),
                subject_count=self._catalog.subject_count(),
                question_count=self._catalog.question_count(),
                monthly_subscribers=self._users.count_by_plan(SubscriptionPlan.MONTHLY),
                yearly_subscribers=self._users.count_by_plan(SubscriptionPlan.YEARLY),
            )

    # --- Helpers (call with the lock held) ---

    def _evict_old_attempts(self, user_id: str) -> None:
        owned = [attempt_id for attempt_id, s in self._attempts.items() if s.user_id == user_id]
        excess = len(owned) - self.settings.attempts_per_user
        if excess <= 0:
            return
        # Finished attempts go first; insertion order keeps the oldest in front.
        owned.sort(key=lambda attempt_id: not self._attempts[attempt_id].is_finished())
        for attempt_id in owned[:excess]:
            self._attempts.pop(attempt_id).dispose()
        logger.debug("Dropped %d old attempt(s) of user %s", excess, user_id)

    def _owned_attempt(self, user: User, attempt_id: str) -> TestSession:
        session = self._attempts.get(attempt_id)
        if session is None or session.user_id != user.id:
            raise NotFoundError(f"Attempt {attempt_id} not found.")
        return session

    def _subject_name(self, subject_id: int) -> str:
        subject = self._catalog.find_subject(subject_id)
        return subject.name if subject else ""

    @staticmethod
    def _view(attempt_id: str, session: TestSession) -> AttemptView:
        current = session.current_question
        review = None
        if session.is_finished():
            review = [(q, session.get_selection(q.id)) for q in session.questions]
        return AttemptView(
            attempt_id=attempt_id,
            subject_id=session.subject_id,
            mode=session.mode,
            state=session.state,
            position=session.position,
            question_count=session.question_count,
            answered_count=session.answered_count(),
            current_question=current,
            selected_index=session.get_selection(current.id),
            time_limit_seconds=session.time_limit_seconds,
            remaining_seconds=session.remaining_seconds,
            started_at=session.started_at,
            result=session.result,
            saved=session.saved,
            review=review,
        )
