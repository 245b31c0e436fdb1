import io, csv
from datetime import datetime, timedelta, timezone

import pytest

from aggregation import (
    build_pagination, compute_summary, export_csv, export_filename, iso_instant, response_rate,
)
from models import Form, Question, Response, Answer

T0 = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def make_form(form_id=1):
    return Form(id=form_id, title="Workshop feedback", description=None, questions=[
        Question(id=10, type="text", text="Comments", required=False, options=[], position=0),
        Question(id=11, type="multiple-choice", text="Rating", required=True, options=["Good", "Bad"], position=1),
    ])

def make_response(rid, answers, minutes=0, form_id=1):
    return Response(
        id=rid, form_id=form_id, submitted_at=T0 + timedelta(minutes=minutes),
        answers=[Answer(question_id=q, value=v, position=i) for i, (q, v) in enumerate(answers)],
    )

def scenario_responses():
    # newest first, as the store returns them
    return [
        make_response(3, [(11, "Good")], minutes=2),
        make_response(2, [(11, "Bad")], minutes=1),
        make_response(1, [(10, "Nice"), (11, "Good")], minutes=0),
    ]

def by_question(summary):
    return {s["question"]: s for s in summary["question_summaries"]}


def test_summary_of_three_responses():
    s = compute_summary(make_form(), scenario_responses())
    assert s["total_responses"] == 3
    qs = by_question(s)

    assert qs["Rating"]["option_counts"] == {"Good": 2, "Bad": 1}
    assert qs["Rating"]["options"] == ["Good", "Bad"]
    assert qs["Rating"]["total_responses"] == 3
    assert qs["Rating"]["response_rate"] == "100.0"

    assert qs["Comments"]["total_responses"] == 1
    assert qs["Comments"]["response_rate"] == "33.3"
    assert qs["Comments"]["responses"] == ["Nice"]

    assert [q["question_id"] for q in s["question_summaries"]] == [10, 11]
    assert s["response_timeframe"] == {
        "earliest": "2024-05-01T09:30:00.000Z",
        "latest": "2024-05-01T09:32:00.000Z",
    }

def test_summary_without_responses():
    s = compute_summary(make_form(), [])
    assert s["total_responses"] == 0
    for q in s["question_summaries"]:
        assert q["total_responses"] == 0
        assert q["response_rate"] == "0"
    assert by_question(s)["Rating"]["option_counts"] == {"Good": 0, "Bad": 0}
    assert by_question(s)["Comments"]["responses"] == []
    assert s["response_timeframe"] == {"earliest": None, "latest": None}

def test_undeclared_option_is_answered_but_not_counted():
    responses = [
        make_response(2, [(11, "good")], minutes=1),   # case differs
        make_response(1, [(11, "Good")]),
    ]
    rating = by_question(compute_summary(make_form(), responses))["Rating"]
    assert rating["total_responses"] == 2
    assert rating["option_counts"] == {"Good": 1, "Bad": 0}
    assert sum(rating["option_counts"].values()) <= rating["total_responses"]

def test_text_answers_capped_newest_first():
    responses = [make_response(i, [(10, f"comment {i}")], minutes=i) for i in range(25, 0, -1)]
    comments = by_question(compute_summary(make_form(), responses))["Comments"]
    assert comments["total_responses"] == 25
    assert len(comments["responses"]) == 20
    assert comments["responses"][0] == "comment 25"
    assert comments["responses"][-1] == "comment 6"

def test_answers_to_removed_questions_are_ignored():
    responses = [make_response(1, [(99, "orphan"), (11, "Bad")])]
    s = compute_summary(make_form(), responses)
    assert [q["question_id"] for q in s["question_summaries"]] == [10, 11]
    assert by_question(s)["Rating"]["option_counts"] == {"Good": 0, "Bad": 1}

def test_response_from_another_form_is_rejected():
    with pytest.raises(ValueError):
        compute_summary(make_form(), [make_response(1, [(11, "Good")], form_id=2)])
    with pytest.raises(ValueError):
        export_csv(make_form(), [make_response(1, [(11, "Good")], form_id=2)])

@pytest.mark.parametrize("k,n,expected", [
    (1, 3, "33.3"), (2, 3, "66.7"), (3, 3, "100.0"), (0, 4, "0.0"), (1, 8, "12.5"), (0, 0, "0"),
    (1, 16, "6.3"), (5, 16, "31.3"), (1, 32, "3.1"),
])
def test_response_rate(k, n, expected):
    assert response_rate(k, n) == expected

def test_pagination_past_last_page():
    assert build_pagination(page=3, page_size=50, total=120, returned=20) == {
        "current_page": 3, "total_pages": 3, "total_responses": 120, "has_more": False,
    }
    assert build_pagination(page=4, page_size=50, total=120, returned=0)["has_more"] is False
    assert build_pagination(page=1, page_size=50, total=120, returned=50)["has_more"] is True
    assert build_pagination(page=1, page_size=50, total=0, returned=0)["total_pages"] == 0

def test_iso_instant_treats_naive_as_utc():
    assert iso_instant(datetime(2024, 1, 2, 3, 4, 5, 678000)) == "2024-01-02T03:04:05.678Z"
    assert iso_instant(None) is None

def test_export_scenario():
    raw = export_csv(make_form(), list(reversed(scenario_responses()))).decode("utf-8")
    lines = raw.split("\n")
    assert lines[0] == '"Response ID","Submitted At","Comments","Rating"'
    # newest first regardless of input order
    assert lines[1] == '"3","2024-05-01T09:32:00.000Z","","Good"'
    assert lines[2] == '"2","2024-05-01T09:31:00.000Z","","Bad"'
    assert lines[3] == '"1","2024-05-01T09:30:00.000Z","Nice","Good"'
    assert raw.endswith("\n")

def test_export_round_trips_awkward_values():
    tricky = 'He said "hi", then\nleft, again'
    form = make_form()
    form.questions[0].text = 'Comments, "free" text'
    responses = [make_response(1, [(10, tricky), (11, "Bad")])]
    rows = list(csv.reader(io.StringIO(export_csv(form, responses).decode("utf-8"))))
    assert len(rows) == 2
    assert rows[0] == ["Response ID", "Submitted At", 'Comments, "free" text', "Rating"]
    assert rows[1] == ["1", "2024-05-01T09:30:00.000Z", tricky, "Bad"]

def test_export_without_responses_is_header_only():
    rows = list(csv.reader(io.StringIO(export_csv(make_form(), []).decode("utf-8"))))
    assert rows == [["Response ID", "Submitted At", "Comments", "Rating"]]

def test_export_handles_repeated_question_text():
    form = make_form()
    form.questions[1].text = "Comments"
    rows = list(csv.reader(io.StringIO(export_csv(form, scenario_responses()).decode("utf-8"))))
    assert rows[0] == ["Response ID", "Submitted At", "Comments", "Comments"]
    assert rows[3][2:] == ["Nice", "Good"]

def test_export_filename():
    assert export_filename(make_form()) == "form-responses-Workshop-feedback.csv"
