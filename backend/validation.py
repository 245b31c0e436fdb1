"""Form authoring and submission rules.

Both entry points raise `FormValidationError` before anything is persisted;
the API layer turns it into a 400.
"""
from __future__ import annotations
from typing import Iterable, Optional

from config import settings


class FormValidationError(Exception):
    """Rejected form definition or submission.

    Args:
        message (str): Summary suitable for the response body.
        errors (list[str]|None): Individual rule violations.
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or [message]


def validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise FormValidationError("Title is required")
    return title


def validate_questions(questions) -> list[dict]:
    """Check question count and per-question shape; return normalized dicts.

    Args:
        questions (list[QuestionIn]): Incoming question payloads.

    Returns:
        list[dict]: [{id, type, text, required, options}] in submitted order.

    Raises:
        FormValidationError: On any violated rule (all violations collected).
    """
    questions = list(questions or [])
    errors = []
    if not settings.MIN_QUESTIONS <= len(questions) <= settings.MAX_QUESTIONS:
        errors.append(
            f"Form must have between {settings.MIN_QUESTIONS} and {settings.MAX_QUESTIONS} questions"
        )

    out = []
    for idx, q in enumerate(questions, start=1):
        text = (q.text or "").strip()
        if not text:
            errors.append(f"Question {idx}: question text is required")
        if q.type not in settings.QUESTION_TYPES:
            errors.append(f"Question {idx}: type must be one of {', '.join(settings.QUESTION_TYPES)}")
            continue

        options = []
        if q.type == "multiple-choice":
            options = [o.strip() for o in (q.options or []) if o and o.strip()]
            if len(options) < settings.MIN_OPTIONS:
                errors.append(
                    f"Question {idx}: multiple-choice questions must have at least {settings.MIN_OPTIONS} options"
                )
        out.append({
            "id": q.id,
            "type": q.type,
            "text": text,
            "required": bool(q.required),
            "options": options,
        })

    if errors:
        raise FormValidationError(errors[0], errors)
    return out


def validate_answers(form, answers: Iterable) -> list[dict]:
    """Check a submission against the form it targets.

    Args:
        form (Form): Active form with its questions loaded.
        answers (list[AnswerIn]): Submitted answers.

    Returns:
        list[dict]: [{question_id, value}] in submitted order.

    Raises:
        FormValidationError: Empty submission, blank answer, unknown or repeated
            question, missing required answer, or an option that is not declared.
    """
    answers = list(answers or [])
    if not answers:
        raise FormValidationError("At least one answer is required")

    by_id = {q.id: q for q in form.questions}
    seen = set()
    out = []
    for a in answers:
        value = a.answer if a.answer is not None else ""
        if not value.strip():
            raise FormValidationError("Answers must not be empty")
        q = by_id.get(a.question_id)
        if q is None:
            raise FormValidationError("Invalid question ID in answers")
        if q.id in seen:
            raise FormValidationError("Each question can only be answered once")
        seen.add(q.id)
        if q.type == "multiple-choice" and value not in (q.options or []):
            raise FormValidationError(f"Answer for '{q.text}' must be one of the listed options")
        out.append({"question_id": q.id, "value": value})

    missing = [q for q in form.questions if q.required and q.id not in seen]
    if missing:
        raise FormValidationError(
            "All required questions must be answered",
            [f"'{q.text}' is required" for q in missing],
        )
    return out
