"""
Lock Conflict Resolver tests.

Covers:
  • Required identity (unit, assignment code)
  • Which briefs count as holders (locked, non-archived, other document)
  • Conflict payload and the echoed-id overwrite protocol
"""

from datetime import datetime, timedelta, timezone

from app.services.lock_conflict import BriefLockRecord, find_lock_conflict, try_lock
from app.utils.errors import E


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(brief_id="brief-a", *, unit_id="U1", code="A1", doc_id="doc-a",
            locked_at=T0, archived=False, title="Brief A"):
    return BriefLockRecord(
        brief_id=brief_id,
        unit_id=unit_id,
        assignment_code=code,
        brief_document_id=doc_id,
        title=title,
        locked_at=locked_at,
        archived=archived,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Preconditions
# ═══════════════════════════════════════════════════════════════════════════


class TestPreconditions:

    def test_unit_required(self):
        outcome = try_lock([], None, "A1", "doc-b")
        assert outcome.error == E.UNIT_REQUIRED

    def test_assignment_code_required(self):
        outcome = try_lock([], "U1", "  ", "doc-b")
        assert outcome.error == E.ASSIGNMENT_CODE_REQUIRED

    def test_no_holder(self):
        outcome = try_lock([], "U1", "A1", "doc-b")
        assert outcome.ok
        assert outcome.data == {"supersede_brief_ids": [], "overwrite": False}


class TestHolders:

    def test_same_document_is_not_a_conflict(self):
        assert try_lock([_record(doc_id="doc-b")], "U1", "A1", "doc-b").ok

    def test_archived_brief_ignored(self):
        assert try_lock([_record(archived=True)], "U1", "A1", "doc-b").ok

    def test_unlocked_brief_ignored(self):
        assert try_lock([_record(locked_at=None)], "U1", "A1", "doc-b").ok

    def test_other_unit_or_code_ignored(self):
        records = [_record(unit_id="U2"), _record("brief-c", code="A2")]
        assert try_lock(records, "U1", "A1", "doc-b").ok

    def test_assignment_code_case_insensitive(self):
        outcome = try_lock([_record(code="a1")], "U1", " A1 ", "doc-b")
        assert outcome.error == E.BRIEF_ALREADY_LOCKED

    def test_latest_holder_reported(self):
        records = [
            _record("brief-old", locked_at=T0 - timedelta(days=2)),
            _record("brief-new", doc_id="doc-c", locked_at=T0),
        ]
        assert find_lock_conflict(records, "U1", "A1", "doc-b").brief_id == "brief-new"


# ═══════════════════════════════════════════════════════════════════════════
# Conflict & overwrite protocol
# ═══════════════════════════════════════════════════════════════════════════


class TestConflictProtocol:

    def test_conflict_payload(self):
        outcome = try_lock([_record()], "U1", "A1", "doc-b")
        assert outcome.ok is False
        assert outcome.error == E.BRIEF_ALREADY_LOCKED
        assert outcome.details == {
            "existingBriefId": "brief-a",
            "existingTitle": "Brief A",
            "existingDocumentId": "doc-a",
            "unitId": "U1",
            "assignmentCode": "A1",
        }

    def test_overwrite_without_echoed_id_is_refused(self):
        outcome = try_lock([_record()], "U1", "A1", "doc-b", allow_overwrite=True)
        assert outcome.error == E.BRIEF_ALREADY_LOCKED

    def test_overwrite_with_stale_id_is_refused(self):
        outcome = try_lock(
            [_record()], "U1", "A1", "doc-b",
            allow_overwrite=True, expected_conflict_brief_id="brief-zzz",
        )
        assert outcome.error == E.BRIEF_ALREADY_LOCKED
        assert outcome.details["existingBriefId"] == "brief-a"

    def test_overwrite_accepted(self):
        outcome = try_lock(
            [_record()], "U1", "A1", "doc-b",
            allow_overwrite=True, expected_conflict_brief_id="brief-a",
        )
        assert outcome.ok
        assert outcome.data["overwrite"] is True
        assert outcome.data["supersede_brief_ids"] == ["brief-a"]
        assert outcome.data["previous_brief_id"] == "brief-a"

    def test_overwrite_supersedes_every_holder(self):
        records = [
            _record("brief-old", locked_at=T0 - timedelta(days=1)),
            _record("brief-new", doc_id="doc-c", locked_at=T0),
        ]
        outcome = try_lock(
            records, "U1", "A1", "doc-b",
            allow_overwrite=True, expected_conflict_brief_id="brief-new",
        )
        assert sorted(outcome.data["supersede_brief_ids"]) == ["brief-new", "brief-old"]
