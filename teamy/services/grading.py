"""Test availability window and objective-question auto-grading."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from teamy.utils import utcnow

MANUAL_TYPES = ("SHORT_TEXT", "LONG_TEXT")
MCQ_TYPES = ("MCQ_SINGLE", "MCQ_MULTI")


def is_test_available(test, now: Optional[datetime] = None) -> tuple[bool, Optional[str]]:
    """Return (available, reason). Late window extends past end_at when allow_late_until is set."""
    now = now or utcnow()
    if test.status != "PUBLISHED":
        return False, "Test is not published"
    if test.start_at and now < test.start_at:
        return False, "Test has not started yet"
    if test.end_at and now > test.end_at:
        if not test.allow_late_until or now > test.allow_late_until:
            return False, "Test has ended"
    return True, None


def auto_grade_question(question, answer) -> tuple[float, bool]:
    """Return (points_awarded, needs_manual_grade) for one answer (None if unanswered).

    MCQ is all-or-nothing against the set of correct options. NUMERIC accepts
    |answer - expected| <= tolerance.
    """
    if question.type in MANUAL_TYPES:
        return 0.0, answer is not None
    if answer is None:
        return 0.0, False
    points = float(question.points or 0)

    if question.type in MCQ_TYPES:
        correct = {o.id for o in question.options if o.is_correct}
        selected = {int(i) for i in (answer.selected_option_ids or [])}
        if correct and selected == correct:
            return points, False
        return 0.0, False

    if question.type == "NUMERIC":
        if answer.numeric_answer is None or question.numeric_answer is None:
            return 0.0, False
        tolerance = abs(question.numeric_tolerance or 0.0)
        if abs(answer.numeric_answer - question.numeric_answer) <= tolerance:
            return points, False
        return 0.0, False

    return 0.0, False
