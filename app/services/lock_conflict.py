"""
Lock Conflict Resolver

At most one non-archived AssignmentBrief may hold a lock for a given
(unit, assignment code) pair.  ``try_lock`` detects an existing holder and
returns a ``BRIEF_ALREADY_LOCKED`` conflict carrying its identity.  The
caller may retry with ``allow_overwrite=True``, but only by echoing the
conflicting brief id it was shown (``expected_conflict_brief_id``); a
different holder produces a fresh conflict instead of a silent overwrite.

On an accepted overwrite the outcome lists the brief ids to supersede in
``data["supersede_brief_ids"]``; the service layer archives them in the same
transaction as the new lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from app.core.outcomes import GovernanceOutcome
from app.utils.errors import E

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BriefLockRecord:
    brief_id: str
    unit_id: str
    assignment_code: str
    brief_document_id: str | None
    title: str = ""
    locked_at: datetime | None = None
    archived: bool = False

    @classmethod
    def from_model(cls, brief) -> BriefLockRecord:
        return cls(
            brief_id=brief.id,
            unit_id=brief.unit_id,
            assignment_code=brief.assignment_code,
            brief_document_id=brief.brief_document_id,
            title=brief.title or "",
            locked_at=brief.locked_at,
            archived=brief.archived,
        )


def _same_code(a: str | None, b: str | None) -> bool:
    return (a or "").strip().upper() == (b or "").strip().upper()


def find_lock_conflicts(
    records: Iterable[BriefLockRecord],
    unit_id: str,
    assignment_code: str,
    candidate_doc_id: str,
) -> list[BriefLockRecord]:
    """Locked, non-archived briefs for the pair that belong to another document."""
    return [
        r for r in records
        if r.unit_id == unit_id
        and _same_code(r.assignment_code, assignment_code)
        and r.locked_at is not None
        and not r.archived
        and r.brief_document_id != candidate_doc_id
    ]


def find_lock_conflict(records, unit_id, assignment_code, candidate_doc_id) -> BriefLockRecord | None:
    conflicts = find_lock_conflicts(records, unit_id, assignment_code, candidate_doc_id)
    if not conflicts:
        return None
    return sorted(conflicts, key=lambda r: r.locked_at)[-1]


def _conflict(existing: BriefLockRecord, unit_id: str, assignment_code: str) -> GovernanceOutcome:
    return GovernanceOutcome.failure(
        E.BRIEF_ALREADY_LOCKED,
        f"A locked brief already exists for {assignment_code} in this unit. "
        "Confirm overwrite to replace it.",
        details={
            "existingBriefId": existing.brief_id,
            "existingTitle": existing.title,
            "existingDocumentId": existing.brief_document_id,
            "unitId": unit_id,
            "assignmentCode": assignment_code,
        },
    )


def try_lock(
    records: Iterable[BriefLockRecord],
    unit_id: str | None,
    assignment_code: str | None,
    candidate_doc_id: str,
    *,
    allow_overwrite: bool = False,
    expected_conflict_brief_id: str | None = None,
) -> GovernanceOutcome:
    """Check the lock uniqueness rule for a candidate BRIEF document."""
    if not unit_id:
        return GovernanceOutcome.failure(
            E.UNIT_REQUIRED, "Select a unit before locking this brief.",
            details={"documentId": candidate_doc_id},
        )
    assignment_code = (assignment_code or "").strip().upper()
    if not assignment_code:
        return GovernanceOutcome.failure(
            E.ASSIGNMENT_CODE_REQUIRED, "Assignment code is required before locking this brief.",
            details={"documentId": candidate_doc_id},
        )

    conflicts = find_lock_conflicts(records, unit_id, assignment_code, candidate_doc_id)
    if not conflicts:
        return GovernanceOutcome.success(supersede_brief_ids=[], overwrite=False)

    existing = sorted(conflicts, key=lambda r: r.locked_at)[-1]
    if not allow_overwrite or expected_conflict_brief_id != existing.brief_id:
        logger.warning(
            "Lock conflict on unit=%s assignment=%s: held by brief %s",
            unit_id, assignment_code, existing.brief_id,
            extra={"unit_id": unit_id, "brief_id": existing.brief_id, "error_code": E.BRIEF_ALREADY_LOCKED},
        )
        return _conflict(existing, unit_id, assignment_code)

    return GovernanceOutcome.success(
        supersede_brief_ids=[r.brief_id for r in conflicts],
        overwrite=True,
        previous_brief_id=existing.brief_id,
    )
