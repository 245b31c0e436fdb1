"""Derived views over a form's responses: summary, listing rows and CSV export.

Everything here is a pure transform over rows already fetched by the caller.
Responses are expected newest first, the order `store.find_responses_by_form`
returns them in.
"""
from __future__ import annotations
import csv
import math
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import pandas as pd

from config import settings

CSV_FIXED_COLUMNS = ["Response ID", "Submitted At"]


def iso_instant(dt: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as an ISO-8601 UTC instant, e.g. 2024-05-01T09:30:00.000Z.

    Naive datetimes (SQLite drops tzinfo) are taken to be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def response_rate(answered: int, total: int) -> str:
    """Percentage of form responses answering a question, one decimal place.

    Ties round up, on the exact value of the float (6.25 -> "6.3").
    A form without responses reports the bare string "0", not "0.0".
    """
    if total <= 0:
        return "0"
    rate = Decimal(answered / total * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return str(rate)


def _answer_index(response) -> dict:
    """Map question id -> first answer value for one response."""
    index = {}
    for a in response.answers:
        index.setdefault(a.question_id, a.value)
    return index


def _check_responses_belong_to(form, responses) -> None:
    for r in responses:
        if r.form_id != form.id:
            raise ValueError(f"Response {r.id} belongs to form {r.form_id}, not form {form.id}")


def compute_summary(form, responses) -> dict:
    """Per-question statistics for a form.

    Args:
        form (Form): Form with ordered questions.
        responses (list[Response]): Every response of the form, newest first.

    Returns:
        dict: {form, total_responses, question_summaries, response_timeframe}

    Raises:
        ValueError: If a response belongs to a different form.
    """
    responses = list(responses)
    _check_responses_belong_to(form, responses)
    total = len(responses)
    indexes = [_answer_index(r) for r in responses]

    summaries = []
    for q in form.questions:
        values = [idx[q.id] for idx in indexes if q.id in idx]
        item = {
            "question_id": q.id,
            "question": q.text,
            "type": q.type,
            "total_responses": len(values),
            "response_rate": response_rate(len(values), total),
        }
        if q.type == "multiple-choice":
            options = list(q.options or [])
            counts = {opt: 0 for opt in options}
            for v in values:
                if v in counts:
                    counts[v] += 1
            item["options"] = options
            item["option_counts"] = counts
        else:
            item["responses"] = values[:settings.TEXT_SUMMARY_LIMIT]
        summaries.append(item)

    return {
        "form": {"id": form.id, "title": form.title, "description": form.description},
        "total_responses": total,
        "question_summaries": summaries,
        "response_timeframe": {
            "earliest": iso_instant(responses[-1].submitted_at) if responses else None,
            "latest": iso_instant(responses[0].submitted_at) if responses else None,
        },
    }


def build_pagination(page: int, page_size: int, total: int, returned: int) -> dict:
    """Pagination block for a 1-indexed page of `returned` items out of `total`."""
    offset = (page - 1) * page_size
    return {
        "current_page": page,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
        "total_responses": total,
        "has_more": offset + returned < total,
    }


def serialize_response(response) -> dict:
    """Plain listing view of a response; request metadata stays out."""
    return {
        "id": response.id,
        "form_id": response.form_id,
        "submitted_at": iso_instant(response.submitted_at),
        "answers": [{"question_id": a.question_id, "answer": a.value} for a in response.answers],
    }


def _newest_first(responses) -> list:
    def key(r):
        ts = r.submitted_at
        if ts is not None and ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts
    # sorted() is stable, so equal timestamps keep their incoming order
    return sorted(responses, key=key, reverse=True)


def export_rows(form, responses) -> tuple[list[str], list[list[str]]]:
    """Header and data rows of the CSV export, as strings."""
    responses = list(responses)
    _check_responses_belong_to(form, responses)
    header = CSV_FIXED_COLUMNS + [q.text for q in form.questions]
    rows = []
    for r in _newest_first(responses):
        idx = _answer_index(r)
        rows.append(
            [str(r.id), iso_instant(r.submitted_at) or ""]
            + [idx.get(q.id, "") for q in form.questions]
        )
    return header, rows


def export_csv(form, responses) -> bytes:
    """Render all responses as CSV: every field quoted, quotes doubled, '\\n' rows.

    Args:
        form (Form): Form whose question texts become the column headers.
        responses (list[Response]): Every response of the form.

    Returns:
        bytes: UTF-8 CSV ending with a newline.
    """
    header, rows = export_rows(form, responses)
    # question texts may repeat, so build positionally and write our own header
    df = pd.DataFrame(rows, columns=range(len(header)), dtype=object)
    return df.to_csv(
        index=False,
        header=header,
        quoting=csv.QUOTE_ALL,
        doublequote=True,
        lineterminator="\n",
    ).encode("utf-8")


def export_filename(form) -> str:
    return "form-responses-" + re.sub(r"[^a-zA-Z0-9]", "-", form.title or "") + ".csv"
