import pytest

from peertrack.models.manuscript import (
    Manuscript,
    ManuscriptStatus,
    normalize_keywords,
    normalize_status,
)
from peertrack.services.manuscript_workflow import next_status_after_review


def test_allowed_next_is_explicit():
    assert ManuscriptStatus.allowed_next("SUBMITTED") == {"UNDER_REVIEW"}
    assert ManuscriptStatus.allowed_next("under_review") == {"DECISION_READY"}
    assert ManuscriptStatus.allowed_next("DECISION_READY") == {"ACCEPTED", "REJECTED"}
    assert ManuscriptStatus.allowed_next("ACCEPTED") == set()
    assert ManuscriptStatus.allowed_next("REJECTED") == set()
    assert ManuscriptStatus.allowed_next("bogus") == set()


def test_terminal_and_assignable_are_disjoint():
    assert ManuscriptStatus.terminal().isdisjoint(ManuscriptStatus.assignable())
    assert ManuscriptStatus.terminal() | ManuscriptStatus.assignable() == {s.value for s in ManuscriptStatus}


def test_normalize_status():
    assert normalize_status(" decision_ready ") == "DECISION_READY"
    assert normalize_status(ManuscriptStatus.ACCEPTED) == "ACCEPTED"
    assert normalize_status("") is None
    assert normalize_status(None) is None
    assert normalize_status("pending") is None


def test_normalize_keywords_accepts_string_or_list():
    assert normalize_keywords("ml, nlp ,, ml") == ["ml", "nlp"]
    assert normalize_keywords([" a ", "b", "a"]) == ["a", "b"]
    assert normalize_keywords(None) == []


def test_manuscript_from_row_coerces_fields():
    m = Manuscript.from_row(
        {
            "id": 7,
            "title": "T",
            "abstract": "A",
            "keywords": "x,y",
            "authors": "Someone",
            "submitted_by": "u1",
            "assigned_reviewers": None,
            "status": "under_review",
            "file_name": "paper.pdf",
        }
    )
    assert m.id == "7"
    assert m.keywords == ["x", "y"]
    assert m.assigned_reviewers == []
    assert m.status is ManuscriptStatus.UNDER_REVIEW


@pytest.mark.parametrize(
    "current,reviews,assigned,expected",
    [
        ("SUBMITTED", 0, 2, "UNDER_REVIEW"),
        ("UNDER_REVIEW", 1, 2, "UNDER_REVIEW"),
        ("UNDER_REVIEW", 2, 2, "DECISION_READY"),
        # 重新分配后分子可能超过分母
        ("UNDER_REVIEW", 3, 1, "DECISION_READY"),
        ("SUBMITTED", 1, 1, "DECISION_READY"),
        ("DECISION_READY", 5, 2, "DECISION_READY"),
        ("ACCEPTED", 3, 2, "ACCEPTED"),
        ("REJECTED", 3, 2, "REJECTED"),
    ],
)
def test_next_status_after_review(current, reviews, assigned, expected):
    assert next_status_after_review(current, reviews, assigned) == expected
