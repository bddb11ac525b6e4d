"""Practice test models: tests, questions, assignments, attempts and answers."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.models.base import Base
from teamy.utils import utcnow

TEST_STATUSES = ("DRAFT", "PUBLISHED", "CLOSED")
QUESTION_TYPES = ("MCQ_SINGLE", "MCQ_MULTI", "SHORT_TEXT", "LONG_TEXT", "NUMERIC")
ASSIGNMENT_SCOPES = ("TEAM", "SUBTEAM", "PERSONAL")
SCORE_RELEASE_MODES = ("NONE", "SCORE_ONLY", "SCORE_WITH_WRONG", "FULL_TEST")
ATTEMPT_STATUSES = ("IN_PROGRESS", "SUBMITTED", "GRADED")


class Test(Base):
    """Timed test written by team admins."""

    __tablename__ = "tests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="DRAFT")
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    allow_late_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    randomize_question_order: Mapped[bool] = mapped_column(Boolean, default=False)
    randomize_option_order: Mapped[bool] = mapped_column(Boolean, default=False)
    require_fullscreen: Mapped[bool] = mapped_column(Boolean, default=True)
    release_scores_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    max_attempts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_release_mode: Mapped[str] = mapped_column(String(24), default="FULL_TEST")
    test_password_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_by_membership_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    team: Mapped["Team"] = relationship("Team", back_populates="tests")
    questions = relationship(
        "Question", back_populates="test", cascade="all, delete-orphan", order_by="Question.order"
    )
    assignments = relationship(
        "TestAssignment", back_populates="test", cascade="all, delete-orphan"
    )
    attempts = relationship(
        "TestAttempt", back_populates="test", cascade="all, delete-orphan"
    )


class TestAssignment(Base):
    """Who a test is for: whole team, one subteam, or one member."""

    __tablename__ = "test_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_scope: Mapped[str] = mapped_column(String(16), nullable=False)  # TEAM, SUBTEAM, PERSONAL
    subteam_id: Mapped[Optional[int]] = mapped_column(ForeignKey("subteams.id", ondelete="CASCADE"), nullable=True)
    target_membership_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("memberships.id", ondelete="CASCADE"), nullable=True
    )

    test: Mapped["Test"] = relationship("Test", back_populates="assignments")
    subteam: Mapped[Optional["Subteam"]] = relationship("Subteam", back_populates="test_assignments")


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    points: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shuffle_options: Mapped[bool] = mapped_column(Boolean, default=False)
    numeric_answer: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    numeric_tolerance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    test: Mapped["Test"] = relationship("Test", back_populates="questions")
    options = relationship(
        "QuestionOption", back_populates="question", cascade="all, delete-orphan", order_by="QuestionOption.order"
    )


class QuestionOption(Base):
    __tablename__ = "question_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    order: Mapped[int] = mapped_column(Integer, default=0)

    question: Mapped["Question"] = relationship("Question", back_populates="options")


class TestAttempt(Base):
    """One sitting of a test by a member."""

    __tablename__ = "test_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    membership_id: Mapped[int] = mapped_column(ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="IN_PROGRESS")
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    grade_earned: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    client_fingerprint_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    ip_at_start: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ip_at_submit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent_at_start: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    test: Mapped["Test"] = relationship("Test", back_populates="attempts")
    membership: Mapped["Membership"] = relationship("Membership", back_populates="test_attempts")
    answers = relationship(
        "AttemptAnswer", back_populates="attempt", cascade="all, delete-orphan"
    )


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_attempt_question"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attempt_id: Mapped[int] = mapped_column(ForeignKey("test_attempts.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    answer_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    selected_option_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    numeric_answer: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    marked_for_review: Mapped[bool] = mapped_column(Boolean, default=False)
    points_awarded: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    graded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    attempt: Mapped["TestAttempt"] = relationship("TestAttempt", back_populates="answers")
    question: Mapped["Question"] = relationship("Question")
