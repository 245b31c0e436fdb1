"""Form and response persistence helpers on top of a SQLAlchemy session."""
import logging
import uuid
from typing import Optional

from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session

from aggregation import build_pagination, serialize_response
from models import Form, Question, Response, Answer

logger = logging.getLogger(__name__)

# ------------------------
# Forms
# ------------------------
def _question_row(q: dict, position: int) -> Question:
    return Question(type=q["type"], text=q["text"], required=q["required"],
                    options=list(q["options"]), position=position)


def create_form(db: Session, owner_id: int, title: str, description: Optional[str], questions: list[dict]) -> Form:
    """Persist a validated form with a fresh public identifier."""
    form = Form(
        title=title,
        description=(description or "").strip() or None,
        owner_id=owner_id,
        public_id=str(uuid.uuid4()),
        is_active=True,
    )
    form.questions = [_question_row(q, i) for i, q in enumerate(questions)]
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("form %s created by user %s with %d questions", form.id, owner_id, len(questions))
    return form


def find_forms_by_owner(db: Session, owner_id: int) -> list[Form]:
    return db.execute(
        select(Form).where(Form.owner_id == owner_id).order_by(Form.created_at.desc(), Form.id.desc())
    ).scalars().all()


def find_form_for_owner(db: Session, form_id: int, owner_id: int) -> Optional[Form]:
    return db.execute(
        select(Form).where(Form.id == form_id, Form.owner_id == owner_id)
    ).scalar_one_or_none()


def find_active_form(db: Session, form_id: int) -> Optional[Form]:
    return db.execute(
        select(Form).where(Form.id == form_id, Form.is_active == True)
    ).scalar_one_or_none()


def find_active_form_by_public_id(db: Session, public_id: str) -> Optional[Form]:
    return db.execute(
        select(Form).where(Form.public_id == public_id, Form.is_active == True)
    ).scalar_one_or_none()


def _replace_questions(form: Form, questions: list[dict]) -> None:
    """Swap in a new question list, keeping rows whose id is resubmitted."""
    existing = {q.id: q for q in form.questions}
    rows = []
    for position, q in enumerate(questions):
        row = existing.pop(q["id"], None) if q.get("id") is not None else None
        if row is None:
            row = _question_row(q, position)
        else:
            row.type = q["type"]
            row.text = q["text"]
            row.required = q["required"]
            row.options = list(q["options"])
            row.position = position
        rows.append(row)
    # delete-orphan cascade removes whatever is left in `existing`
    form.questions = rows


def update_form(db: Session, form: Form, *, title: Optional[str] = None, description=None,
                questions: Optional[list[dict]] = None, is_active: Optional[bool] = None,
                description_set: bool = False) -> Form:
    """Apply owner edits. Only the supplied fields change.

    Args:
        description_set (bool): True when `description` was sent (even as null).
    """
    if title is not None:
        form.title = title
    if description_set:
        form.description = (description or "").strip() or None
    if questions is not None:
        _replace_questions(form, questions)
    if is_active is not None:
        form.is_active = is_active
    db.commit()
    db.refresh(form)
    logger.info("form %s updated", form.id)
    return form


def delete_form(db: Session, form: Form) -> None:
    """Delete a form together with every response it collected."""
    form_id = form.id
    removed = delete_responses_by_form(db, form_id, commit=False)
    db.delete(form)
    db.commit()
    logger.info("form %s deleted with %d responses", form_id, removed)


def response_counts(db: Session, form_ids: list[int]) -> dict[int, int]:
    """Number of responses per form id (missing ids count 0)."""
    if not form_ids:
        return {}
    rows = db.execute(
        select(Response.form_id, func.count(Response.id))
        .where(Response.form_id.in_(form_ids))
        .group_by(Response.form_id)
    ).all()
    counts = {fid: 0 for fid in form_ids}
    counts.update({fid: n for fid, n in rows})
    return counts

# ------------------------
# Responses
# ------------------------
def create_response(db: Session, form: Form, answers: list[dict],
                    ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Response:
    """Persist a validated submission; the timestamp is assigned here."""
    row = Response(form_id=form.id, ip_address=ip_address, user_agent=user_agent)
    row.answers = [
        Answer(question_id=a["question_id"], value=a["value"], position=i)
        for i, a in enumerate(answers)
    ]
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("response %s recorded for form %s", row.id, form.id)
    return row


def find_responses_by_form(db: Session, form_id: int, offset: int = 0, limit: Optional[int] = None) -> list[Response]:
    """Responses of a form, newest first; equal timestamps keep insertion order."""
    q = (
        select(Response)
        .where(Response.form_id == form_id)
        .order_by(Response.submitted_at.desc(), Response.id.asc())
        .offset(offset)
    )
    if limit is not None:
        q = q.limit(limit)
    return db.execute(q).scalars().all()


def count_responses_by_form(db: Session, form_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(Response).where(Response.form_id == form_id)
    ).scalar_one()


def delete_responses_by_form(db: Session, form_id: int, commit: bool = True) -> int:
    ids = select(Response.id).where(Response.form_id == form_id)
    db.execute(
        delete(Answer).where(Answer.response_id.in_(ids)).execution_options(synchronize_session=False)
    )
    result = db.execute(
        delete(Response).where(Response.form_id == form_id).execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()
    return result.rowcount or 0


def list_responses(db: Session, form_id: int, page: int = 1, page_size: int = 50) -> tuple[list[dict], dict]:
    """One page of responses plus pagination info.

    A page past the end yields no items, not an error.
    """
    total = count_responses_by_form(db, form_id)
    offset = (page - 1) * page_size
    # past the end: skip the query, huge offsets overflow SQLite INTEGER
    rows = find_responses_by_form(db, form_id, offset=offset, limit=page_size) if offset < total else []
    items = [serialize_response(r) for r in rows]
    return items, build_pagination(page, page_size, total, len(items))
