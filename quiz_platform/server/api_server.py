"""FastAPI server exposing the student and administrator endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
import logging

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from quiz_platform.constants.about import APP_DESCRIPTION, APP_NAME, APP_VERSION
from quiz_platform.constants.network_constants import SESSION_COOKIE, SESSION_HEADER
from quiz_platform.constants.pricing_constants import CURRENCY, PLAN_DURATION_DAYS, PLAN_PRICES
from quiz_platform.core.errors import (
    AdminRequiredError,
    EmptyBankError,
    NotFoundError,
    QuestionImportError,
    QuizPlatformError,
    StoreError,
    UnauthenticatedError,
    UnentitledError,
    ValidationError,
)
from quiz_platform.core.markdown_math_renderer import MATHJAX_SCRIPT_URL, renderer
from quiz_platform.core.models import (
    AttemptMode,
    Faculty,
    PreparedQuestion,
    Question,
    Subject,
    SubscriptionPlan,
    TestResult,
    User,
    UserRole,
)
from quiz_platform.core.platform_manager import AttemptView, QuizPlatform

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[QuizPlatformError], int] = {
    UnauthenticatedError: 401,
    UnentitledError: 403,
    AdminRequiredError: 403,
    NotFoundError: 404,
    EmptyBankError: 404,
    QuestionImportError: 422,
    ValidationError: 422,
    StoreError: 503,
}

_ERROR_CODES: dict[type[QuizPlatformError], str] = {
    UnauthenticatedError: "unauthenticated",
    UnentitledError: "subscription_required",
    AdminRequiredError: "admin_required",
    NotFoundError: "not_found",
    EmptyBankError: "empty_bank",
    QuestionImportError: "invalid_import",
    ValidationError: "invalid_input",
    StoreError: "store_unavailable",
}


def _lookup(table: dict, exc: Exception, default):
    for cls in type(exc).__mro__:
        if cls in table:
            return table[cls]
    return default


# --- Payloads ---


class StartAttemptPayload(BaseModel):
    """Payload schema for starting an attempt."""

    mode: AttemptMode = AttemptMode.EXAM


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    question_id: int
    selected_index: int


class MovePayload(BaseModel):
    index: int


class FacultyPayload(BaseModel):
    name: str


class SubjectPayload(BaseModel):
    name: str
    faculty_id: int


class QuestionPayload(BaseModel):
    subject_id: int
    question_text: str
    correct_answer: str
    wrong_answers: list[str] = Field(min_length=3, max_length=3)
    explanation: str | None = None


class UserPayload(BaseModel):
    email: str
    name: str = ""
    role: UserRole = UserRole.STUDENT


class SubscriptionPayload(BaseModel):
    """Either an explicit expiry or a duration; a paid plan without both gets its default term."""

    plan: SubscriptionPlan
    expires_at: datetime | None = None
    duration_days: int | None = Field(default=None, gt=0)


# --- Serializers ---


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _user_payload(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "subscription_plan": user.subscription_plan.value,
        "subscription_expires_at": _iso(user.subscription_expires_at),
        "created_at": _iso(user.created_at),
    }


def _faculty_payload(faculty: Faculty) -> dict[str, object]:
    return {"id": faculty.id, "name": faculty.name, "created_at": _iso(faculty.created_at)}


def _subject_payload(subject: Subject, faculty: Faculty | None = None) -> dict[str, object]:
    return {
        "id": subject.id,
        "name": subject.name,
        "faculty_id": subject.faculty_id,
        "faculty": _faculty_payload(faculty) if faculty else None,
        "created_at": _iso(subject.created_at),
    }


def _question_payload(question: Question) -> dict[str, object]:
    return {
        "id": question.id,
        "subject_id": question.subject_id,
        "question_text": question.question_text,
        "correct_answer": question.correct_answer,
        "wrong_answers": list(question.wrong_answers),
        "explanation": question.explanation,
        "created_at": _iso(question.created_at),
    }


def _result_payload(result: TestResult, subject_name: str | None = None) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": result.id,
        "user_id": result.user_id,
        "subject_id": result.subject_id,
        "score": result.score,
        "total_questions": result.total_questions,
        "correct_count": result.correct_count,
        "elapsed_seconds": result.elapsed_seconds,
        "mode": result.mode.value,
        "created_at": _iso(result.created_at),
    }
    if subject_name is not None:
        payload["subject_name"] = subject_name
    return payload


def _prepared_payload(question: PreparedQuestion, reveal: bool) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": question.id,
        "question_text": question.question_text,
        "question_html": renderer.render_fragment(question.question_text),
        "answers": list(question.answers),
        "answers_html": [renderer.render_inline(answer) for answer in question.answers],
    }
    if reveal:
        payload["correct_index"] = question.correct_index
        payload["explanation_html"] = renderer.render_optional(question.explanation)
    return payload


def _attempt_payload(view: AttemptView) -> dict[str, object]:
    finished = view.result is not None
    payload: dict[str, object] = {
        "attempt_id": view.attempt_id,
        "subject_id": view.subject_id,
        "mode": view.mode.value,
        "state": view.state.value,
        "position": view.position,
        "question_count": view.question_count,
        "answered_count": view.answered_count,
        "question": _prepared_payload(view.current_question, reveal=finished),
        "selected_index": view.selected_index,
        "time_limit_seconds": view.time_limit_seconds,
        "remaining_seconds": view.remaining_seconds,
        "started_at": _iso(view.started_at),
        "result": _result_payload(view.result) if view.result else None,
        "saved": view.saved,
        "mathjax_url": MATHJAX_SCRIPT_URL,
    }
    if view.review is not None:
        payload["review"] = [
            {**_prepared_payload(question, reveal=True), "selected_index": selected}
            for question, selected in view.review
        ]
    return payload


def _session_token(request: Request) -> str | None:
    return request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE)


def _get_platform_dependency(platform: QuizPlatform):
    def dependency() -> QuizPlatform:
        return platform

    return dependency


def _resolve_expiry(payload: SubscriptionPayload, now: datetime) -> datetime | None:
    if payload.plan is SubscriptionPlan.FREE:
        return None
    if payload.expires_at is not None:
        expires_at = payload.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at
    days = payload.duration_days or PLAN_DURATION_DAYS[payload.plan]
    return now + timedelta(days=days)


def create_api_app(platform: QuizPlatform) -> FastAPI:
    """Create a FastAPI application wired to the provided platform facade."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        platform.shutdown()

    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION, description=APP_DESCRIPTION, lifespan=lifespan)
    platform_dep = _get_platform_dependency(platform)

    def current_user(request: Request, manager: QuizPlatform = Depends(platform_dep)) -> User | None:
        return manager.current_user(_session_token(request))

    def signed_in_user(
        user: User | None = Depends(current_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> User:
        return manager.require_user(user)

    def admin_user(
        user: User | None = Depends(current_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> User:
        return manager.require_admin(user)

    @app.exception_handler(QuizPlatformError)
    async def handle_platform_error(_: Request, exc: QuizPlatformError) -> JSONResponse:
        status_code = _lookup(_STATUS_BY_ERROR, exc, 500)
        if status_code >= 500:
            logger.warning("Request failed: %s", exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": _lookup(_ERROR_CODES, exc, "error")},
        )

    # --- Profile & catalog browsing ---

    @app.get("/me")
    def get_profile(
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return {
            **_user_payload(user),
            "entitled": manager.can_enter(user),
            "is_admin": manager.is_administrator(user),
        }

    @app.delete("/session", status_code=204)
    def sign_out(
        request: Request,
        _: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> None:
        manager.close_session(_session_token(request))

    @app.get("/pricing")
    def get_pricing() -> dict[str, object]:
        return {
            "currency": CURRENCY,
            "plans": [
                {"plan": plan.value, "price": price, "duration_days": PLAN_DURATION_DAYS[plan]}
                for plan, price in PLAN_PRICES.items()
            ],
        }

    @app.get("/faculties")
    def list_faculties(manager: QuizPlatform = Depends(platform_dep)) -> list[dict[str, object]]:
        return [_faculty_payload(f) for f in manager.list_faculties()]

    @app.get("/subjects")
    def list_subjects(
        faculty_id: int | None = None,
        manager: QuizPlatform = Depends(platform_dep),
    ) -> list[dict[str, object]]:
        faculties = {f.id: f for f in manager.list_faculties()}
        return [
            _subject_payload(s, faculties.get(s.faculty_id))
            for s in manager.list_subjects(faculty_id)
        ]

    @app.get("/subjects/{subject_id}")
    def get_subject(subject_id: int, manager: QuizPlatform = Depends(platform_dep)) -> dict[str, object]:
        subject = manager.get_subject(subject_id)
        payload = _subject_payload(subject, manager.get_faculty(subject.faculty_id))
        payload["question_count"] = manager.count_questions(subject_id)
        return payload

    # --- Attempts ---

    @app.post("/subjects/{subject_id}/attempts", status_code=201)
    def start_attempt(
        subject_id: int,
        payload: StartAttemptPayload,
        user: User | None = Depends(current_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _attempt_payload(manager.start_attempt(user, subject_id, payload.mode))

    @app.get("/attempts/{attempt_id}")
    def get_attempt(
        attempt_id: str,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _attempt_payload(manager.get_attempt(user, attempt_id))

    @app.post("/attempts/{attempt_id}/answers")
    def submit_answer(
        attempt_id: str,
        payload: AnswerPayload,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        try:
            view = manager.select_answer(user, attempt_id, payload.question_id, payload.selected_index)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _attempt_payload(view)

    @app.post("/attempts/{attempt_id}/advance")
    def advance(
        attempt_id: str,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _attempt_payload(manager.advance(user, attempt_id))

    @app.post("/attempts/{attempt_id}/previous")
    def previous(
        attempt_id: str,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _attempt_payload(manager.previous(user, attempt_id))

    @app.post("/attempts/{attempt_id}/move")
    def move(
        attempt_id: str,
        payload: MovePayload,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _attempt_payload(manager.move_to(user, attempt_id, payload.index))

    @app.post("/attempts/{attempt_id}/finish")
    def finish(
        attempt_id: str,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        try:
            view = manager.finish_attempt(user, attempt_id)
        except RuntimeError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _attempt_payload(view)

    @app.delete("/attempts/{attempt_id}", status_code=204)
    def discard(
        attempt_id: str,
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> None:
        manager.discard_attempt(user, attempt_id)

    # --- History & statistics ---

    @app.get("/results")
    def list_results(
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> list[dict[str, object]]:
        return [_result_payload(row.result, row.subject_name) for row in manager.list_results(user)]

    @app.get("/dashboard/stats")
    def dashboard(
        user: User = Depends(signed_in_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> list[dict[str, object]]:
        return [
            {
                "subject": {"id": s.subject_id, "name": s.subject_name},
                "attempts": s.attempts,
                "avg_score": s.average_score,
                "best_score": s.best_score,
            }
            for s in manager.dashboard_stats(user)
        ]

    # --- Administration ---

    @app.get("/admin/stats")
    def get_admin_stats(
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        stats = manager.admin_stats()
        return {
            "user_count": stats.user_count,
            "faculty_count": stats.faculty_count,
            "subject_count": stats.subject_count,
            "question_count": stats.question_count,
            "monthly_subscribers": stats.monthly_subscribers,
            "yearly_subscribers": stats.yearly_subscribers,
            "estimated_income": stats.estimated_income,
            "currency": CURRENCY,
        }

    @app.get("/admin/users")
    def list_users(
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> list[dict[str, object]]:
        return [_user_payload(u) for u in manager.list_users()]

    @app.post("/admin/users", status_code=201)
    def create_user(
        payload: UserPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _user_payload(manager.register_user(payload.email, name=payload.name, role=payload.role))

    @app.post("/admin/users/{user_id}/sessions", status_code=201)
    def issue_session(
        user_id: str,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        """Issue a session token the user signs in with."""
        return {"user_id": user_id, "token": manager.open_session(user_id)}

    @app.put("/admin/users/{user_id}/subscription")
    def grant_subscription(
        user_id: str,
        payload: SubscriptionPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        expires_at = _resolve_expiry(payload, manager.now())
        return _user_payload(manager.grant_subscription(user_id, payload.plan, expires_at))

    @app.post("/admin/faculties", status_code=201)
    def create_faculty(
        payload: FacultyPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _faculty_payload(manager.add_faculty(payload.name))

    @app.put("/admin/faculties/{faculty_id}")
    def update_faculty(
        faculty_id: int,
        payload: FacultyPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        return _faculty_payload(manager.update_faculty(faculty_id, payload.name))

    @app.delete("/admin/faculties/{faculty_id}", status_code=204)
    def delete_faculty(
        faculty_id: int,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> None:
        manager.delete_faculty(faculty_id)

    @app.post("/admin/subjects", status_code=201)
    def create_subject(
        payload: SubjectPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        subject = manager.add_subject(payload.name, payload.faculty_id)
        return _subject_payload(subject, manager.get_faculty(subject.faculty_id))

    @app.put("/admin/subjects/{subject_id}")
    def update_subject(
        subject_id: int,
        payload: SubjectPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        subject = manager.update_subject(subject_id, payload.name, payload.faculty_id)
        return _subject_payload(subject, manager.get_faculty(subject.faculty_id))

    @app.delete("/admin/subjects/{subject_id}", status_code=204)
    def delete_subject(
        subject_id: int,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> None:
        manager.delete_subject(subject_id)

    @app.get("/admin/questions")
    def list_questions(
        subject_id: int | None = None,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> list[dict[str, object]]:
        names = manager.subject_names()
        return [
            {**_question_payload(q), "subject_name": names.get(q.subject_id, "")}
            for q in manager.list_questions(subject_id)
        ]

    @app.post("/admin/questions", status_code=201)
    def create_question(
        payload: QuestionPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        question = manager.add_question(
            payload.subject_id,
            payload.question_text,
            payload.correct_answer,
            payload.wrong_answers,
            payload.explanation,
        )
        return _question_payload(question)

    @app.put("/admin/questions/{question_id}")
    def update_question(
        question_id: int,
        payload: QuestionPayload,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        question = manager.update_question(
            question_id,
            payload.subject_id,
            payload.question_text,
            payload.correct_answer,
            payload.wrong_answers,
            payload.explanation,
        )
        return _question_payload(question)

    @app.delete("/admin/questions/{question_id}", status_code=204)
    def delete_question(
        question_id: int,
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> None:
        manager.delete_question(question_id)

    @app.post("/admin/subjects/{subject_id}/questions/import", status_code=201)
    def import_questions(
        subject_id: int,
        file: UploadFile = File(...),
        _: User = Depends(admin_user),
        manager: QuizPlatform = Depends(platform_dep),
    ) -> dict[str, object]:
        content = file.file.read()
        created = manager.import_questions(subject_id, file.filename or "", content)
        return {
            "subject_id": subject_id,
            "imported": len(created),
            "question_ids": [q.id for q in created],
        }

    return app


def run_api_server(platform: QuizPlatform, host: str, port: int, log_level: str = "info") -> None:
    """Serve the API in the foreground until interrupted."""
    app = create_api_app(platform)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    server.run()
