"""
Reference Document Lifecycle Engine

Owns the ReferenceDocument status machine and the usage-based mutation
guards.  Pure state + guard logic over a single document instance: each
operation mutates the document in place when allowed and returns a
``GovernanceOutcome``; expected business refusals are never raised.
Persistence, usage lookup and audit forwarding belong to
``app.services.reference_service``.

    UPLOADED ──extract──▶ EXTRACTED ──lock──▶ LOCKED
        │                   │  ▲                 │
        └──fail──▶ FAILED ◀─┘  └─────unlock──────┘
                  EXTRACTED ──review──▶ REVIEWED ──lock──▶ LOCKED

A LOCKED document can be re-extracted only with ``force_reextract=True``
and a reason; the draft is replaced and the document stays LOCKED.

Usage:
    from app.services import document_lifecycle as lifecycle

    outcome = lifecycle.unlock(doc, usage)
    if not outcome.ok:
        return api_error(outcome.error, outcome.message, details=outcome.details)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.outcomes import GovernanceOutcome
from app.models.reference import ReferenceDocument
from app.services.drafts import BriefDraft, SpecDraft, merge_brief_by_task_numbers, parse_draft, summarize_draft
from app.utils.errors import E

logger = logging.getLogger(__name__)


DOCUMENT_TRANSITIONS = {
    "extract": {"from": ["UPLOADED", "EXTRACTED", "REVIEWED", "FAILED"], "to": "EXTRACTED"},
    "fail_extraction": {"from": ["UPLOADED", "EXTRACTED", "REVIEWED", "FAILED"], "to": "FAILED"},
    "review": {"from": ["EXTRACTED"], "to": "REVIEWED"},
    "lock": {"from": ["EXTRACTED", "REVIEWED"], "to": "LOCKED"},
    "unlock": {"from": ["LOCKED"], "to": "EXTRACTED"},
}

REEXTRACT_HISTORY_CAP = 25


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Usage view
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DocumentUsage:
    """Derived usage of a document, supplied by the usage oracle."""

    locked: bool
    submission_count: int = 0
    linked_brief_count: int = 0

    @classmethod
    def of(cls, locked, submission_count=0, linked_brief_count=0) -> DocumentUsage:
        def _count(value):
            try:
                return max(0, int(value or 0))
            except (TypeError, ValueError):
                return 0

        return cls(
            locked=bool(locked),
            submission_count=_count(submission_count),
            linked_brief_count=_count(linked_brief_count),
        )

    @property
    def in_use(self) -> bool:
        return self.submission_count > 0 or self.linked_brief_count > 0

    @property
    def can_unlock(self) -> bool:
        return self.locked and not self.in_use

    @property
    def can_delete(self) -> bool:
        return not self.locked and not self.in_use

    def to_dict(self) -> dict:
        return {
            "locked": self.locked,
            "inUse": self.in_use,
            "submissionCount": self.submission_count,
            "linkedBriefCount": self.linked_brief_count,
            "canUnlock": self.can_unlock,
            "canDelete": self.can_delete,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Transition validation
# ═════════════════════════════════════════════════════════════════════════════

def validate_document_transition(doc: ReferenceDocument, action: str) -> dict:
    """
    Validate whether an action is valid for the document's current status.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = DOCUMENT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": doc.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if doc.status not in rule["from"]:
        return {"valid": False, "from": doc.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{doc.status}'"}

    return {"valid": True, "from": doc.status, "to": rule["to"], "reason": None}


def get_available_actions(doc: ReferenceDocument) -> list[str]:
    """Actions whose ``from`` set contains the current status."""
    return [action for action, rule in DOCUMENT_TRANSITIONS.items() if doc.status in rule["from"]]


def _invalid(doc: ReferenceDocument, action: str, validation: dict) -> GovernanceOutcome:
    return GovernanceOutcome.failure(
        E.INVALID_TRANSITION,
        validation["reason"],
        details={"documentId": doc.id, "action": action, "status": doc.status},
    )


# ═════════════════════════════════════════════════════════════════════════════
# Operations
# ═════════════════════════════════════════════════════════════════════════════

def extract(
    doc: ReferenceDocument,
    raw_draft,
    warnings=None,
    *,
    force_reextract: bool = False,
    reason: str | None = None,
    task_numbers: list[int] | None = None,
    now: datetime | None = None,
    history_cap: int = REEXTRACT_HISTORY_CAP,
) -> GovernanceOutcome:
    """Store a fresh extraction result on the document.

    Non-locked documents move to EXTRACTED.  A LOCKED document is only
    overwritten with ``force_reextract`` and a non-empty ``reason``; it
    stays LOCKED and ``locked_at`` is untouched.  Forced runs append a
    ``{at, reason, previous, next}`` entry to ``reextractHistory``.
    """
    now = now or _utcnow()
    reason = (reason or "").strip()
    was_locked = doc.is_locked

    if was_locked:
        if not force_reextract:
            return GovernanceOutcome.failure(
                E.REFERENCE_LOCKED,
                "Reference document is locked. Use forceReextract=true to overwrite (audit logged).",
                details={"documentId": doc.id},
            )
        if not reason:
            return GovernanceOutcome.failure(
                E.REEXTRACT_REASON_REQUIRED,
                "A reason is required to re-extract a locked document.",
                details={"documentId": doc.id},
            )
    else:
        validation = validate_document_transition(doc, "extract")
        if not validation["valid"]:
            return _invalid(doc, "extract", validation)

    previous_draft = doc.extracted_draft
    next_draft = raw_draft
    partial = False
    if task_numbers and doc.kind == "BRIEF":
        if isinstance(parse_draft(previous_draft), BriefDraft) and isinstance(parse_draft(raw_draft), BriefDraft):
            next_draft = merge_brief_by_task_numbers(previous_draft, raw_draft, task_numbers)
            partial = True

    meta = doc.meta
    history = list(meta.get("reextractHistory") or [])
    previous_summary = summarize_draft(previous_draft)
    next_summary = summarize_draft(next_draft)
    if force_reextract:
        history.append({
            "at": now.isoformat(),
            "reason": reason or None,
            "previous": previous_summary,
            "next": next_summary,
        })
        history = history[-history_cap:]
    meta["reextractHistory"] = history

    parsed = parse_draft(next_draft)
    if isinstance(parsed, SpecDraft):
        meta["unitCode"] = parsed.unit_code or None
        meta["specIssue"] = parsed.spec_issue
    elif isinstance(parsed, BriefDraft):
        meta["unitCode"] = parsed.unit_code_guess or meta.get("unitCode")
        meta["assignmentCode"] = parsed.assignment_code or meta.get("assignmentCode")
    meta["parserVersion"] = getattr(parsed, "parser_version", None)

    previous_status = doc.status
    doc.extracted_draft = next_draft
    doc.extraction_warnings = [str(w) for w in (warnings or []) if w is not None]
    doc.source_meta = meta
    if not was_locked:
        doc.apply_status("EXTRACTED", now=now)

    return GovernanceOutcome.success(
        previous_status=previous_status,
        status=doc.status,
        forced=bool(force_reextract and was_locked),
        partial_task_numbers=sorted(task_numbers) if partial else [],
        diff={"draft": {"old": previous_summary, "new": next_summary}, "reason": reason or None},
    )


def fail_extraction(doc: ReferenceDocument, message: str, *, now: datetime | None = None) -> GovernanceOutcome:
    """Record an extraction failure.

    A LOCKED document keeps its status, lock and draft; the failure is only
    reported back.
    """
    if doc.is_locked:
        logger.warning("Extraction failed for locked document %s; keeping locked draft", doc.id)
        return GovernanceOutcome.success(previous_status=doc.status, status=doc.status, changed=False)

    validation = validate_document_transition(doc, "fail_extraction")
    if not validation["valid"]:
        return _invalid(doc, "fail_extraction", validation)

    previous_status = doc.status
    doc.extraction_warnings = [str(message or "Extraction failed")]
    doc.apply_status("FAILED", now=now)
    return GovernanceOutcome.success(previous_status=previous_status, status=doc.status, changed=True)


def review(doc: ReferenceDocument) -> GovernanceOutcome:
    validation = validate_document_transition(doc, "review")
    if not validation["valid"]:
        return _invalid(doc, "review", validation)
    previous_status = doc.status
    doc.apply_status("REVIEWED")
    return GovernanceOutcome.success(previous_status=previous_status, status=doc.status)


def lock(
    doc: ReferenceDocument,
    *,
    lock_check: GovernanceOutcome | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> GovernanceOutcome:
    """Transition EXTRACTED/REVIEWED → LOCKED.

    BRIEF documents must pass the lock conflict resolver first; its outcome
    is handed in as ``lock_check`` and a failed check is returned unchanged.
    """
    if doc.is_locked:
        return GovernanceOutcome.failure(
            E.INVALID_TRANSITION,
            "Reference document is already locked.",
            details={"documentId": doc.id, "lockedAt": doc.locked_at.isoformat() if doc.locked_at else None},
        )
    validation = validate_document_transition(doc, "lock")
    if not validation["valid"]:
        return _invalid(doc, "lock", validation)
    if doc.extracted_draft is None:
        return GovernanceOutcome.failure(
            E.NO_DRAFT, "No extracted draft found. Run Extract first.", details={"documentId": doc.id},
        )
    if doc.kind == "BRIEF":
        if lock_check is None:
            raise ValueError("BRIEF documents require a lock conflict check before locking")
        if not lock_check.ok:
            return lock_check

    previous_status = doc.status
    doc.apply_status("LOCKED", now=now or _utcnow(), actor=actor)
    return GovernanceOutcome.success(
        previous_status=previous_status,
        status=doc.status,
        locked_at=doc.locked_at.isoformat(),
    )


def unlock(doc: ReferenceDocument, usage: DocumentUsage) -> GovernanceOutcome:
    """Transition LOCKED → EXTRACTED unless the document is in use."""
    if not doc.is_locked:
        return GovernanceOutcome.failure(E.NOT_LOCKED, "Reference document is not locked.", details={"documentId": doc.id})
    if usage.in_use:
        return GovernanceOutcome.failure(
            E.BRIEF_IN_USE,
            f"Cannot unlock: {usage.submission_count} submission(s) and "
            f"{usage.linked_brief_count} linked brief(s) reference this document.",
            details={"documentId": doc.id, **usage.to_dict()},
        )
    previous_status = doc.status
    previous_locked_at = doc.locked_at
    doc.apply_status("EXTRACTED")
    return GovernanceOutcome.success(
        previous_status=previous_status,
        status=doc.status,
        diff={"locked_at": {"old": previous_locked_at.isoformat() if previous_locked_at else None, "new": None}},
    )


def delete(doc: ReferenceDocument, usage: DocumentUsage) -> GovernanceOutcome:
    """Guard for record removal; the caller performs the delete on success."""
    if doc.is_locked:
        return GovernanceOutcome.failure(
            E.REFERENCE_LOCKED,
            "Locked documents cannot be deleted. Unlock first.",
            details={"documentId": doc.id},
        )
    if usage.in_use:
        return GovernanceOutcome.failure(
            E.BRIEF_IN_USE,
            f"Cannot delete: {usage.submission_count} submission(s) and "
            f"{usage.linked_brief_count} linked brief(s) reference this document.",
            details={"documentId": doc.id, **usage.to_dict()},
        )
    return GovernanceOutcome.success(document_id=doc.id, status=doc.status)


def archive(doc: ReferenceDocument, *, now: datetime | None = None) -> GovernanceOutcome:
    """Hide from default listings. Idempotent; status is untouched."""
    meta = doc.meta
    already = bool(meta.get("archived"))
    if not already:
        meta["archived"] = True
        meta["archivedAt"] = (now or _utcnow()).isoformat()
        doc.source_meta = meta
    return GovernanceOutcome.success(archived=True, changed=not already, status=doc.status)


def unarchive(doc: ReferenceDocument) -> GovernanceOutcome:
    meta = doc.meta
    was_archived = bool(meta.get("archived"))
    if was_archived:
        meta["archived"] = False
        meta.pop("archivedAt", None)
        doc.source_meta = meta
    return GovernanceOutcome.success(archived=False, changed=was_archived, status=doc.status)
