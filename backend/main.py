import logging
from fastapi import FastAPI, Depends, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from aggregation import compute_summary, export_csv, export_filename, iso_instant
from config import settings
from db import Base, engine, get_db
from logging_setup import configure_logging
from models import User, Form
from schemas import *
from security import hash_password, verify_password, create_access_token, get_current_user
from validation import FormValidationError, validate_title, validate_questions, validate_answers
import store

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

FORM_NOT_FOUND = "Form not found"
PUBLIC_FORM_NOT_FOUND = "Form not found or inactive"


@app.exception_handler(FormValidationError)
def _validation_error(request: Request, exc: FormValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(SQLAlchemyError)
def _database_error(request: Request, exc: SQLAlchemyError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})

# Serializers
def _user_out(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email}

def _form_out(form: Form, response_count: int | None = None, include_owner: bool = True) -> dict:
    """Plain view of a form and its ordered questions."""
    out = {
        "id": form.id,
        "title": form.title,
        "description": form.description,
        "public_id": form.public_id,
        "is_active": form.is_active,
        "created_at": iso_instant(form.created_at),
        "updated_at": iso_instant(form.updated_at),
        "questions": [{
            "id": q.id,
            "type": q.type,
            "text": q.text,
            "required": q.required,
            "options": list(q.options or []),
        } for q in form.questions],
    }
    if include_owner:
        out["owner"] = _user_out(form.owner)
    if response_count is not None:
        out["response_count"] = response_count
    return out

def _owned_form_or_404(db: Session, form_id: int, user: User) -> Form:
    # absent and not-owned are reported the same way
    form = store.find_form_for_owner(db, form_id, user.id)
    if not form:
        raise HTTPException(404, FORM_NOT_FOUND)
    return form


@app.get("/api/health")
def health():
    """Basic readiness probe.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Auth
# ------------------------
@app.post("/api/auth/register", status_code=201)
def register(payload: UserCreate, db: Session = Depends(get_db)):
    """Create an account and return a bearer token for it.

    Args:
        payload (UserCreate): {name, email, password}.
        db (Session): DB session.

    Returns:
        dict: {"token": str, "user": {id, name, email}}

    Raises:
        HTTPException: 400 if name/email is blank or the email is already registered.
    """
    name = (payload.name or "").strip()
    email = (payload.email or "").strip().lower()
    if not name or "@" not in email:
        raise HTTPException(400, "Name and a valid email are required")
    if db.execute(select(User).where(User.email == email)).scalar_one_or_none():
        raise HTTPException(400, "User already exists")

    user = User(name=name, email=email, password_hash=hash_password(payload.password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, "User already exists")
    logger.info("user %s registered", user.id)
    return {"token": create_access_token(user.id), "user": _user_out(user)}

@app.post("/api/auth/login")
def login(payload: UserLogin, db: Session = Depends(get_db)):
    """Exchange email/password for a bearer token.

    Raises:
        HTTPException: 401 on unknown email or wrong password (same message).
    """
    email = (payload.email or "").strip().lower()
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(401, "Invalid credentials")
    return {"token": create_access_token(user.id), "user": _user_out(user)}

@app.get("/api/auth/me")
def me(user: User = Depends(get_current_user)):
    return _user_out(user)

# ------------------------
# Forms (owner)
# ------------------------
@app.post("/api/forms", status_code=201)
def create_form(payload: FormCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Create a form with 3-5 questions and a fresh public link.

    Args:
        payload (FormCreate): {title, description?, questions[]}.
        db (Session): DB session.
        user (User): Authenticated owner.

    Returns:
        dict: The stored form.

    Raises:
        FormValidationError: 400 on a bad title or question list.
    """
    title = validate_title(payload.title)
    questions = validate_questions(payload.questions)
    form = store.create_form(db, user.id, title, payload.description, questions)
    return _form_out(form, response_count=0)

@app.get("/api/forms")
def list_forms(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """List the caller's forms, newest first, each with its response count."""
    forms = store.find_forms_by_owner(db, user.id)
    counts = store.response_counts(db, [f.id for f in forms])
    return [_form_out(f, response_count=counts.get(f.id, 0)) for f in forms]

@app.get("/api/forms/public/{public_id}")
def get_public_form(public_id: str, db: Session = Depends(get_db)):
    """Resolve a public link to an active form, without owner details.

    Raises:
        HTTPException: 404 if the link is unknown or the form is inactive.
    """
    form = store.find_active_form_by_public_id(db, public_id)
    if not form:
        raise HTTPException(404, PUBLIC_FORM_NOT_FOUND)
    return _form_out(form, include_owner=False)

@app.get("/api/forms/{form_id}")
def get_form(form_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    form = _owned_form_or_404(db, form_id, user)
    return _form_out(form, response_count=store.count_responses_by_form(db, form.id))

@app.put("/api/forms/{form_id}")
def update_form(form_id: int, payload: FormUpdate, db: Session = Depends(get_db),
                user: User = Depends(get_current_user)):
    """Edit title, description, questions or the active flag.

    Questions sent with their `id` keep it, so existing answers stay attached.

    Raises:
        HTTPException: 404 if absent or not owned.
        FormValidationError: 400 on a blank title or a bad question list.
    """
    form = _owned_form_or_404(db, form_id, user)
    sent = payload.model_fields_set
    title = validate_title(payload.title) if "title" in sent else None
    questions = validate_questions(payload.questions) if payload.questions is not None else None
    form = store.update_form(
        db, form,
        title=title,
        description=payload.description,
        description_set="description" in sent,
        questions=questions,
        is_active=payload.is_active,
    )
    return _form_out(form, response_count=store.count_responses_by_form(db, form.id))

@app.delete("/api/forms/{form_id}")
def delete_form(form_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Hard-delete a form and every response it collected."""
    form = _owned_form_or_404(db, form_id, user)
    store.delete_form(db, form)
    return {"ok": True, "message": "Form and associated responses deleted successfully"}

# ------------------------
# Public: submissions
# ------------------------
def _submit(db: Session, form: Form, answers, request: Request) -> dict:
    cleaned = validate_answers(form, answers)
    row = store.create_response(
        db, form, cleaned,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"message": "Response submitted successfully", "response_id": row.id}

@app.post("/api/responses", status_code=201)
def submit_response(payload: ResponseCreate, request: Request, db: Session = Depends(get_db)):
    """Record an anonymous submission against an active form id.

    Raises:
        HTTPException: 404 if the form is absent or inactive.
        FormValidationError: 400 if the answers do not fit the form.
    """
    form = store.find_active_form(db, payload.form_id)
    if not form:
        raise HTTPException(404, PUBLIC_FORM_NOT_FOUND)
    return _submit(db, form, payload.answers, request)

@app.post("/api/responses/public/{public_id}", status_code=201)
def submit_public_response(public_id: str, payload: PublicResponseCreate, request: Request,
                           db: Session = Depends(get_db)):
    """Record an anonymous submission through a public link."""
    form = store.find_active_form_by_public_id(db, public_id)
    if not form:
        raise HTTPException(404, PUBLIC_FORM_NOT_FOUND)
    return _submit(db, form, payload.answers, request)

# ------------------------
# Owner: view/export responses
# ------------------------
@app.get("/api/responses/form/{form_id}")
def form_responses(
    form_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """One page of responses, newest first.

    Args:
        form_id (int): Form PK.
        page (int): 1-based page number.
        limit (int): Page size.

    Returns:
        dict: {"responses": [...], "pagination": {...}, "form": {id, title, questions}}
    """
    form = _owned_form_or_404(db, form_id, user)
    items, pagination = store.list_responses(db, form.id, page=page, page_size=limit)
    full = _form_out(form, include_owner=False)
    return {
        "responses": items,
        "pagination": pagination,
        "form": {"id": form.id, "title": form.title, "questions": full["questions"]},
    }

@app.get("/api/responses/form/{form_id}/summary")
def form_summary(form_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Per-question statistics over every response of the form."""
    form = _owned_form_or_404(db, form_id, user)
    return compute_summary(form, store.find_responses_by_form(db, form.id))

@app.get("/api/responses/form/{form_id}/export")
def form_export(form_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Export every response as CSV.

    Returns:
        Response: text/csv attachment `form-responses-<title>.csv`.
    """
    form = _owned_form_or_404(db, form_id, user)
    responses = store.find_responses_by_form(db, form.id)
    csv_bytes = export_csv(form, responses)
    logger.info("form %s exported (%d responses)", form.id, len(responses))
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": f'attachment; filename="{export_filename(form)}"'})
