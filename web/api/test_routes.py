"""Test builder API: tests, questions, publishing, attempts and auto-grading."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from teamy.models import (
    AttemptAnswer,
    Membership,
    Question,
    QuestionOption,
    Subteam,
    Test,
    TestAssignment,
    TestAttempt,
    User,
)
from teamy.models.assessment import QUESTION_TYPES, SCORE_RELEASE_MODES
from teamy.models.base import async_session_factory
from teamy.models.membership import ROLE_ADMIN
from teamy.services.activity_log import log_activity
from teamy.services.api_logger import client_ip
from teamy.services.grading import MCQ_TYPES, auto_grade_question, is_test_available
from teamy.services.rbac import require_admin, require_member
from teamy.utils import to_naive_utc, user_display_name, utcnow
from web.api.utils import iso
from web.auth import hash_password, require_user, verify_password

router = APIRouter(prefix="/api/tests", tags=["tests"])


# --- Pydantic schemas ---


class OptionIn(BaseModel):
    label: str = Field(..., min_length=1)
    is_correct: bool = False
    order: int = Field(0, ge=0)


class QuestionIn(BaseModel):
    type: str
    prompt: str = Field(..., min_length=1)
    explanation: Optional[str] = None
    points: float = Field(1.0, ge=0)
    order: Optional[int] = Field(None, ge=0)
    shuffle_options: bool = False
    numeric_answer: Optional[float] = None
    numeric_tolerance: Optional[float] = Field(None, ge=0)
    options: list[OptionIn] = []

    @field_validator("type")
    @classmethod
    def valid_type(cls, v):
        if v not in QUESTION_TYPES:
            raise ValueError(f"type must be one of {', '.join(QUESTION_TYPES)}")
        return v


class AssignmentIn(BaseModel):
    assigned_scope: str
    subteam_id: Optional[int] = None
    target_membership_id: Optional[int] = None

    @field_validator("assigned_scope")
    @classmethod
    def valid_scope(cls, v):
        if v not in ("TEAM", "SUBTEAM", "PERSONAL"):
            raise ValueError("assigned_scope must be TEAM, SUBTEAM or PERSONAL")
        return v


class TestCreate(BaseModel):
    team_id: int
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    duration_minutes: int = Field(..., ge=1, le=720)
    randomize_question_order: bool = False
    randomize_option_order: bool = False
    require_fullscreen: bool = True
    release_scores_at: Optional[datetime] = None
    max_attempts: Optional[int] = Field(None, ge=1)
    score_release_mode: str = "FULL_TEST"
    assignments: list[AssignmentIn] = []
    questions: list[QuestionIn] = []

    @field_validator("score_release_mode")
    @classmethod
    def valid_mode(cls, v):
        if v not in SCORE_RELEASE_MODES:
            raise ValueError(f"score_release_mode must be one of {', '.join(SCORE_RELEASE_MODES)}")
        return v

    @field_validator("release_scores_at")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)


class PublishRequest(BaseModel):
    start_at: datetime
    end_at: datetime
    allow_late_until: Optional[datetime] = None
    test_password: Optional[str] = Field(None, min_length=6)
    release_scores_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=1, le=720)
    max_attempts: Optional[int] = Field(None, ge=1)
    score_release_mode: Optional[str] = None
    require_fullscreen: Optional[bool] = None

    @field_validator("start_at", "end_at", "allow_late_until", "release_scores_at")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)

    @field_validator("score_release_mode")
    @classmethod
    def valid_mode(cls, v):
        if v is not None and v not in SCORE_RELEASE_MODES:
            raise ValueError(f"score_release_mode must be one of {', '.join(SCORE_RELEASE_MODES)}")
        return v


class AssignRequest(BaseModel):
    assignments: list[AssignmentIn]


class StartAttemptRequest(BaseModel):
    test_password: Optional[str] = None
    fingerprint: Optional[str] = Field(None, max_length=128)


class AnswerSave(BaseModel):
    question_id: int
    answer_text: Optional[str] = None
    selected_option_ids: Optional[list[int]] = None
    numeric_answer: Optional[float] = None
    marked_for_review: Optional[bool] = None


# --- Serializers ---


def test_summary(t: Test) -> dict:
    return {
        "id": t.id,
        "team_id": t.team_id,
        "name": t.name,
        "description": t.description,
        "instructions": t.instructions,
        "status": t.status,
        "duration_minutes": t.duration_minutes,
        "start_at": iso(t.start_at),
        "end_at": iso(t.end_at),
        "allow_late_until": iso(t.allow_late_until),
        "randomize_question_order": t.randomize_question_order,
        "randomize_option_order": t.randomize_option_order,
        "require_fullscreen": t.require_fullscreen,
        "release_scores_at": iso(t.release_scores_at),
        "max_attempts": t.max_attempts,
        "score_release_mode": t.score_release_mode,
        "has_password": bool(t.test_password_hash),
        "created_by_membership_id": t.created_by_membership_id,
        "created_at": iso(t.created_at),
    }


def question_dict(q: Question, reveal_answers: bool) -> dict:
    data = {
        "id": q.id,
        "type": q.type,
        "prompt": q.prompt,
        "points": q.points,
        "order": q.order,
        "shuffle_options": q.shuffle_options,
        "options": [
            {"id": o.id, "label": o.label, "order": o.order, **({"is_correct": o.is_correct} if reveal_answers else {})}
            for o in q.options
        ],
    }
    if reveal_answers:
        data["explanation"] = q.explanation
        data["numeric_answer"] = q.numeric_answer
        data["numeric_tolerance"] = q.numeric_tolerance
    return data


def assignment_dict(a: TestAssignment) -> dict:
    return {
        "id": a.id,
        "assigned_scope": a.assigned_scope,
        "subteam_id": a.subteam_id,
        "target_membership_id": a.target_membership_id,
    }


def attempt_dict(a: TestAttempt) -> dict:
    return {
        "id": a.id,
        "test_id": a.test_id,
        "membership_id": a.membership_id,
        "status": a.status,
        "started_at": iso(a.started_at),
        "submitted_at": iso(a.submitted_at),
        "grade_earned": a.grade_earned,
        "created_at": iso(a.created_at),
    }


def answer_dict(a: AttemptAnswer) -> dict:
    return {
        "id": a.id,
        "question_id": a.question_id,
        "answer_text": a.answer_text,
        "selected_option_ids": a.selected_option_ids,
        "numeric_answer": a.numeric_answer,
        "marked_for_review": a.marked_for_review,
        "points_awarded": a.points_awarded,
        "graded_at": iso(a.graded_at),
    }


# --- Helpers ---


def _check_question(q: QuestionIn) -> None:
    if q.type in MCQ_TYPES:
        if len(q.options) < 2:
            raise HTTPException(400, "Multiple choice questions need at least two options")
        correct = sum(1 for o in q.options if o.is_correct)
        if correct == 0:
            raise HTTPException(400, "Multiple choice questions need a correct option")
        if q.type == "MCQ_SINGLE" and correct > 1:
            raise HTTPException(400, "Single choice questions must have exactly one correct option")
    elif q.options:
        raise HTTPException(400, f"{q.type} questions do not take options")
    if q.type == "NUMERIC" and q.numeric_answer is None:
        raise HTTPException(400, "Numeric questions need numeric_answer")


def _build_question(q: QuestionIn, order: int) -> Question:
    question = Question(
        type=q.type,
        prompt=q.prompt,
        explanation=q.explanation,
        points=q.points,
        order=q.order if q.order is not None else order,
        shuffle_options=q.shuffle_options,
        numeric_answer=q.numeric_answer if q.type == "NUMERIC" else None,
        numeric_tolerance=q.numeric_tolerance if q.type == "NUMERIC" else None,
    )
    question.options = [
        QuestionOption(label=o.label, is_correct=o.is_correct, order=o.order or i) for i, o in enumerate(q.options)
    ]
    return question


async def _check_assignment_targets(session, team_id: int, assignments: list[AssignmentIn]) -> None:
    for a in assignments:
        if a.assigned_scope == "SUBTEAM":
            if a.subteam_id is None:
                raise HTTPException(400, "subteam_id is required when assigned_scope is SUBTEAM")
            subteam = await session.get(Subteam, a.subteam_id)
            if not subteam or subteam.team_id != team_id:
                raise HTTPException(400, "Subteam does not belong to this team")
        elif a.assigned_scope == "PERSONAL":
            if a.target_membership_id is None:
                raise HTTPException(400, "target_membership_id is required when assigned_scope is PERSONAL")
            target = await session.get(Membership, a.target_membership_id)
            if not target or target.team_id != team_id:
                raise HTTPException(400, "Membership does not belong to this team")


def _build_assignments(assignments: list[AssignmentIn]) -> list[TestAssignment]:
    return [
        TestAssignment(
            assigned_scope=a.assigned_scope,
            subteam_id=a.subteam_id if a.assigned_scope == "SUBTEAM" else None,
            target_membership_id=a.target_membership_id if a.assigned_scope == "PERSONAL" else None,
        )
        for a in assignments
    ]


def _is_assigned(test: Test, membership: Membership) -> bool:
    for a in test.assignments:
        if a.assigned_scope == "TEAM":
            return True
        if a.assigned_scope == "SUBTEAM" and a.subteam_id is not None and a.subteam_id == membership.subteam_id:
            return True
        if a.assigned_scope == "PERSONAL" and a.target_membership_id == membership.id:
            return True
    return False


async def _load_test(session, test_id: int) -> Test:
    result = await session.execute(
        select(Test)
        .where(Test.id == test_id)
        .options(
            selectinload(Test.questions).selectinload(Question.options),
            selectinload(Test.assignments),
        )
        .execution_options(populate_existing=True)
    )
    test = result.scalar_one_or_none()
    if not test:
        raise HTTPException(404, "Test not found")
    return test


async def _load_own_attempt(session, test_id: int, attempt_id: int, user: User) -> tuple[TestAttempt, Membership]:
    result = await session.execute(
        select(TestAttempt)
        .where(TestAttempt.id == attempt_id)
        .options(
            selectinload(TestAttempt.answers),
            selectinload(TestAttempt.test).selectinload(Test.questions).selectinload(Question.options),
        )
        .execution_options(populate_existing=True)
    )
    attempt = result.scalar_one_or_none()
    if not attempt or attempt.test_id != test_id:
        raise HTTPException(404, "Attempt not found")
    membership = await require_member(session, user.id, attempt.test.team_id)
    if membership.id != attempt.membership_id:
        raise HTTPException(403, "Not your attempt")
    return attempt, membership


# --- Tests ---


@router.get("")
async def list_tests(team_id: Optional[int] = None, user: User = Depends(require_user)):
    """Admins see every test; members see published tests assigned to them."""
    if team_id is None:
        raise HTTPException(400, "Team ID is required")
    async with async_session_factory() as session:
        membership = await require_member(session, user.id, team_id)
        result = await session.execute(
            select(Test)
            .where(Test.team_id == team_id)
            .options(selectinload(Test.assignments), selectinload(Test.questions))
            .order_by(Test.created_at.desc(), Test.id.desc())
        )
        tests = list(result.scalars().all())
        if membership.role != ROLE_ADMIN:
            tests = [t for t in tests if t.status == "PUBLISHED" and _is_assigned(t, membership)]
        return {
            "tests": [
                {**test_summary(t), "question_count": len(t.questions)} for t in tests
            ]
        }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_test(body: TestCreate, user: User = Depends(require_user)):
    """Create a DRAFT test, optionally with questions and assignments (admin only)."""
    for q in body.questions:
        _check_question(q)
    async with async_session_factory() as session:
        membership = await require_admin(session, user.id, body.team_id)
        await _check_assignment_targets(session, body.team_id, body.assignments)
        test = Test(
            team_id=body.team_id,
            name=body.name.strip(),
            description=body.description,
            instructions=body.instructions,
            status="DRAFT",
            duration_minutes=body.duration_minutes,
            randomize_question_order=body.randomize_question_order,
            randomize_option_order=body.randomize_option_order,
            require_fullscreen=body.require_fullscreen,
            release_scores_at=body.release_scores_at,
            max_attempts=body.max_attempts,
            score_release_mode=body.score_release_mode,
            created_by_membership_id=membership.id,
        )
        assignments = body.assignments or [AssignmentIn(assigned_scope="TEAM")]
        test.assignments = _build_assignments(assignments)
        test.questions = [_build_question(q, i) for i, q in enumerate(body.questions)]
        session.add(test)
        await session.commit()
        test = await _load_test(session, test.id)
        data = {
            **test_summary(test),
            "assignments": [assignment_dict(a) for a in test.assignments],
            "questions": [question_dict(q, True) for q in test.questions],
        }
    await log_activity(
        "TEST_CREATED",
        f'{user_display_name(user)} created test "{data["name"]}"',
        user_id=user.id,
        metadata={"test_id": data["id"], "team_id": body.team_id},
    )
    return {"test": data}


@router.get("/{test_id}")
async def get_test(test_id: int, user: User = Depends(require_user)):
    """Test detail. Correct answers are only included for team admins."""
    async with async_session_factory() as session:
        test = await _load_test(session, test_id)
        membership = await require_member(session, user.id, test.team_id)
        admin = membership.role == ROLE_ADMIN
        if not admin and (test.status != "PUBLISHED" or not _is_assigned(test, membership)):
            raise HTTPException(403, "Test not assigned to you")
        data = {**test_summary(test), "questions": [question_dict(q, admin) for q in test.questions]}
        if admin:
            data["assignments"] = [assignment_dict(a) for a in test.assignments]
        return {"test": data}


@router.post("/{test_id}/questions", status_code=status.HTTP_201_CREATED)
async def add_question(test_id: int, body: QuestionIn, user: User = Depends(require_user)):
    """Append a question to a draft test (admin only)."""
    _check_question(body)
    async with async_session_factory() as session:
        test = await _load_test(session, test_id)
        await require_admin(session, user.id, test.team_id)
        if test.status != "DRAFT":
            raise HTTPException(400, "Cannot edit a published test")
        next_order = max((q.order for q in test.questions), default=-1) + 1
        question = _build_question(body, next_order)
        question.test_id = test.id
        session.add(question)
        await session.commit()
        result = await session.execute(
            select(Question).where(Question.id == question.id).options(selectinload(Question.options))
            .execution_options(populate_existing=True)
        )
        return {"question": question_dict(result.scalar_one(), True)}


@router.post("/{test_id}/publish")
async def publish_test(test_id: int, body: PublishRequest, user: User = Depends(require_user)):
    """Schedule and publish a test (admin only)."""
    async with async_session_factory() as session:
        test = await _load_test(session, test_id)
        await require_admin(session, user.id, test.team_id)
        if not test.questions:
            raise HTTPException(400, "Cannot publish test without questions")
        if body.end_at <= body.start_at:
            raise HTTPException(400, "End time must be after start time")
        if body.allow_late_until and body.allow_late_until < body.end_at:
            raise HTTPException(400, "Late window must end after the test ends")
        test.status = "PUBLISHED"
        test.start_at = body.start_at
        test.end_at = body.end_at
        test.allow_late_until = body.allow_late_until
        if body.test_password:
            test.test_password_hash = hash_password(body.test_password)
        if body.release_scores_at is not None:
            test.release_scores_at = body.release_scores_at
        if body.duration_minutes is not None:
            test.duration_minutes = body.duration_minutes
        if "max_attempts" in body.model_fields_set:
            test.max_attempts = body.max_attempts
        if body.score_release_mode is not None:
            test.score_release_mode = body.score_release_mode
        if body.require_fullscreen is not None:
            test.require_fullscreen = body.require_fullscreen
        await session.commit()
        data = test_summary(test)
    await log_activity(
        "TEST_PUBLISHED",
        f'{user_display_name(user)} published test "{data["name"]}"',
        user_id=user.id,
        metadata={"test_id": test_id, "team_id": data["team_id"]},
    )
    return {"test": data}


@router.post("/{test_id}/assign")
async def assign_test(test_id: int, body: AssignRequest, user: User = Depends(require_user)):
    """Replace who a test is assigned to (admin only). An empty list unassigns it from everyone."""
    async with async_session_factory() as session:
        test = await _load_test(session, test_id)
        await require_admin(session, user.id, test.team_id)
        await _check_assignment_targets(session, test.team_id, body.assignments)
        test.assignments = _build_assignments(body.assignments)
        await session.commit()
        test = await _load_test(session, test_id)
        assignments = [assignment_dict(a) for a in test.assignments]
        name = test.name
    await log_activity(
        "TEST_ASSIGNED",
        f'{user_display_name(user)} updated assignments for test "{name}"',
        user_id=user.id,
        metadata={"test_id": test_id, "assignments": len(assignments)},
    )
    return {"assignments": assignments}


# --- Attempts ---


@router.post("/{test_id}/attempts/start")
async def start_attempt(
    test_id: int,
    request: Request,
    response: Response,
    body: Optional[StartAttemptRequest] = None,
    user: User = Depends(require_user),
):
    """Start or resume an attempt. 201 when a new attempt is created, 200 when resuming."""
    body = body or StartAttemptRequest()
    async with async_session_factory() as session:
        test = await _load_test(session, test_id)
        membership = await require_member(session, user.id, test.team_id)
        admin = membership.role == ROLE_ADMIN

        if not admin and test.test_password_hash:
            if not body.test_password:
                return JSONResponse(
                    status_code=401, content={"error": "NEED_TEST_PASSWORD", "message": "Test password required"}
                )
            if not verify_password(body.test_password, test.test_password_hash):
                return JSONResponse(
                    status_code=401, content={"error": "NEED_TEST_PASSWORD", "message": "Invalid test password"}
                )

        available, reason = is_test_available(test)
        if not available:
            raise HTTPException(403, reason)

        if not admin and not _is_assigned(test, membership):
            raise HTTPException(403, "Test not assigned to you")

        result = await session.execute(
            select(TestAttempt)
            .where(
                TestAttempt.test_id == test_id,
                TestAttempt.membership_id == membership.id,
                TestAttempt.status == "IN_PROGRESS",
            )
            .order_by(TestAttempt.created_at.desc(), TestAttempt.id.desc())
        )
        existing = result.scalars().first()
        if existing:
            return {"attempt": attempt_dict(existing)}

        if test.max_attempts is not None and not admin:
            completed = await session.scalar(
                select(func.count(TestAttempt.id)).where(
                    TestAttempt.test_id == test_id,
                    TestAttempt.membership_id == membership.id,
                    TestAttempt.status.in_(("SUBMITTED", "GRADED")),
                )
            )
            if (completed or 0) >= test.max_attempts:
                raise HTTPException(
                    403,
                    f"You have reached the maximum number of attempts ({test.max_attempts}) for this test",
                )

        attempt = TestAttempt(
            test_id=test_id,
            membership_id=membership.id,
            status="IN_PROGRESS",
            started_at=utcnow(),
            client_fingerprint_hash=body.fingerprint,
            ip_at_start=client_ip(request),
            user_agent_at_start=(request.headers.get("user-agent") or "")[:512] or None,
        )
        session.add(attempt)
        await session.commit()
        await session.refresh(attempt)
        response.status_code = status.HTTP_201_CREATED
        return {"attempt": attempt_dict(attempt)}


@router.post("/{test_id}/attempts/{attempt_id}/answers")
async def save_answer(test_id: int, attempt_id: int, body: AnswerSave, user: User = Depends(require_user)):
    """Upsert one answer on an in-progress attempt (owner only)."""
    async with async_session_factory() as session:
        attempt, _ = await _load_own_attempt(session, test_id, attempt_id, user)
        if attempt.status != "IN_PROGRESS":
            raise HTTPException(400, "Attempt is not in progress")
        question = next((q for q in attempt.test.questions if q.id == body.question_id), None)
        if question is None:
            raise HTTPException(400, "Question does not belong to this test")
        if body.selected_option_ids:
            valid_ids = {o.id for o in question.options}
            if not set(body.selected_option_ids) <= valid_ids:
                raise HTTPException(400, "Selected options do not belong to this question")

        answer = next((a for a in attempt.answers if a.question_id == body.question_id), None)
        if answer is None:
            answer = AttemptAnswer(attempt_id=attempt.id, question_id=question.id)
            session.add(answer)
        fields = body.model_fields_set
        if "answer_text" in fields:
            answer.answer_text = body.answer_text
        if "selected_option_ids" in fields:
            answer.selected_option_ids = body.selected_option_ids
        if "numeric_answer" in fields:
            answer.numeric_answer = body.numeric_answer
        if body.marked_for_review is not None:
            answer.marked_for_review = body.marked_for_review
        await session.commit()
        await session.refresh(answer)
        return {"answer": answer_dict(answer)}


@router.post("/{test_id}/attempts/{attempt_id}/submit")
async def submit_attempt(test_id: int, attempt_id: int, request: Request, user: User = Depends(require_user)):
    """Submit and auto-grade. Text answers leave the attempt SUBMITTED pending manual grading."""
    async with async_session_factory() as session:
        attempt, _ = await _load_own_attempt(session, test_id, attempt_id, user)
        if attempt.status != "IN_PROGRESS":
            raise HTTPException(400, "Attempt already submitted")

        answers = {a.question_id: a for a in attempt.answers}
        now = utcnow()
        earned = 0.0
        possible = 0.0
        needs_manual = False
        for question in attempt.test.questions:
            possible += float(question.points or 0)
            answer = answers.get(question.id)
            points, manual = auto_grade_question(question, answer)
            if answer is None:
                answer = AttemptAnswer(attempt_id=attempt.id, question_id=question.id)
                session.add(answer)
            answer.points_awarded = None if manual else points
            answer.graded_at = None if manual else now
            needs_manual = needs_manual or manual
            earned += points

        attempt.status = "SUBMITTED" if needs_manual else "GRADED"
        attempt.submitted_at = now
        attempt.grade_earned = earned
        attempt.ip_at_submit = client_ip(request)
        await session.commit()
        data = attempt_dict(attempt)
        test_name = attempt.test.name

    await log_activity(
        "TEST_SUBMITTED",
        f'{user_display_name(user)} submitted test "{test_name}"',
        user_id=user.id,
        metadata={"test_id": test_id, "attempt_id": attempt_id},
    )
    return {
        "attempt": data,
        "score_earned": earned,
        "possible_score": possible,
        "needs_manual_grading": needs_manual,
    }


@router.get("/{test_id}/attempts")
async def list_attempts(test_id: int, user: User = Depends(require_user)):
    """All attempts with the member's name (admin only)."""
    async with async_session_factory() as session:
        test = await session.get(Test, test_id)
        if not test:
            raise HTTPException(404, "Test not found")
        await require_admin(session, user.id, test.team_id)
        result = await session.execute(
            select(TestAttempt)
            .where(TestAttempt.test_id == test_id)
            .options(selectinload(TestAttempt.membership).selectinload(Membership.user))
            .order_by(TestAttempt.created_at.desc(), TestAttempt.id.desc())
        )
        return {
            "attempts": [
                {**attempt_dict(a), "member_name": user_display_name(a.membership.user)}
                for a in result.scalars().all()
            ]
        }
