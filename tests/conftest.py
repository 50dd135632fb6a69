"""
Shared pytest fixtures for the Reference Governance Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - spec_draft / brief_draft: factories for extraction payloads
    - spec_unit: SPEC document uploaded, extracted and locked into Unit U1
"""

import pytest

from app import create_app
from app.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Extraction payloads ──────────────────────────────────────────────────

# U1: LO1 P1 P2 M1 D1 · LO2 P3 P4 M2 D2 · LO3 P5 M3
UNIT_CRITERIA = {
    "LO1": [("P1", "PASS"), ("P2", "PASS"), ("M1", "MERIT"), ("D1", "DISTINCTION")],
    "LO2": [("P3", "PASS"), ("P4", "PASS"), ("M2", "MERIT"), ("D2", "DISTINCTION")],
    "LO3": [("P5", "PASS"), ("M3", "MERIT")],
}

BRIEF_TEXT = (
    "Assignment brief. Learners must explain the principles of the topic and "
    "evaluate their application in a workplace scenario. "
) * 6


def _spec_draft(unit_code="U1", unit_title="Engineering Principles", criteria=None):
    return {
        "kind": "SPEC",
        "parserVersion": "spec-1",
        "unit": {"unitCode": unit_code, "unitTitle": unit_title, "specIssue": "Issue 2"},
        "learningOutcomes": [
            {
                "loCode": lo_code,
                "description": f"Learning outcome {lo_code}",
                "criteria": [
                    {"acCode": code, "gradeBand": band, "description": f"{code} text"}
                    for code, band in rows
                ],
            }
            for lo_code, rows in (criteria or UNIT_CRITERIA).items()
        ],
    }


def _brief_draft(
    assignment_code="A1",
    title="Brief One",
    unit_code="U1",
    codes=("P1", "P2", "M1", "D1"),
    raw_text=BRIEF_TEXT,
    **extra,
):
    draft = {
        "kind": "BRIEF",
        "assignmentCode": assignment_code,
        "title": title,
        "unitCodeGuess": unit_code,
        "detectedCriterionCodes": list(codes),
        "criteriaCodes": list(codes),
        "rawText": raw_text,
        "tasks": [],
        "equations": [],
    }
    draft.update(extra)
    return draft


@pytest.fixture()
def spec_draft():
    return _spec_draft


@pytest.fixture()
def brief_draft():
    return _brief_draft


@pytest.fixture()
def spec_unit(client):
    """Upload, extract and lock a SPEC through the API; returns the Unit dict."""
    r = client.post("/api/v1/reference-documents", json={"kind": "SPEC", "title": "Spec U1"})
    assert r.status_code == 201, r.get_json()
    doc_id = r.get_json()["document"]["id"]
    r = client.post(f"/api/v1/reference-documents/{doc_id}/extract", json={"draft": _spec_draft()})
    assert r.status_code == 200, r.get_json()
    r = client.post(f"/api/v1/reference-documents/{doc_id}/lock", json={})
    assert r.status_code == 200, r.get_json()
    return r.get_json()["unit"]
