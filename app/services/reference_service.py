"""
Reference Governance Service

Request-scoped orchestration over the pure governance engines:

    read records → ask the usage oracle → run the engine →
    conditional write (row_version) → forward an audit event

Every public function returns a ``GovernanceOutcome``; unknown ids raise
``NotFoundError``.  Concurrent writers are detected through the
``row_version`` column (SQLAlchemy ``version_id_col``): a lost race surfaces
as ``STALE_WRITE`` and the transaction is rolled back.  Callers may also
pass ``expected_row_version`` to make the write conditional on the version
they last read.

Usage:
    from app.services import reference_service as svc

    outcome = svc.lock_document(doc_id, actor="ops@example.com")
    if not outcome.ok:
        return api_error(outcome.error, outcome.message, details=outcome.details)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import NotFoundError, ValidationError
from app.core.outcomes import GovernanceOutcome
from app.models import db
from app.models.audit import write_audit
from app.models.reference import (
    DOCUMENT_KINDS,
    AssignmentBrief,
    AssignmentCriterionMap,
    Criterion,
    LearningOutcome,
    ReferenceDocument,
    Submission,
    Unit,
)
from app.services import document_lifecycle as lifecycle
from app.services.brief_warnings import (
    effective_task_confidence,
    effective_task_warnings,
    has_manual_latex_override,
    is_task_ai_corrected,
)
from app.services.criteria_codes import normalize_criteria_code_list, normalize_criterion_code
from app.services.criteria_matcher import (
    CriterionRow,
    diff_detected_codes,
    focused_view,
    full_view,
    group_by_learning_outcome,
    suggest_mapping_codes,
    unit_criteria_pool,
)
from app.services.document_lifecycle import DocumentUsage
from app.services.drafts import BriefDraft, SpecDraft, parse_draft
from app.services.governance_rules import GovernanceRules
from app.services.grading_scope import (
    EXCLUSIONS_KEY,
    apply_grading_scope_change,
    validate_grading_scope_change,
)
from app.services.lock_conflict import BriefLockRecord, try_lock
from app.utils.errors import E

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _utcnow():
    return datetime.now(timezone.utc)


def _setting(key: str, default):
    return current_app.config.get(key, default)


def _get_document(doc_id: str) -> ReferenceDocument:
    doc = db.session.get(ReferenceDocument, doc_id)
    if not doc:
        raise NotFoundError("ReferenceDocument", doc_id)
    return doc


def _get_brief(brief_id: str) -> AssignmentBrief:
    brief = db.session.get(AssignmentBrief, brief_id)
    if not brief:
        raise NotFoundError("AssignmentBrief", brief_id)
    return brief


def _audit(entity_type: str, entity_id: str, action: str, actor: str | None, diff: dict | None = None) -> None:
    try:
        write_audit(entity_type=entity_type, entity_id=entity_id, action=action, actor=actor, diff=diff)
    except StaleDataError:
        raise
    except Exception:
        logger.warning("Audit write failed for %s %s/%s", action, entity_type, entity_id, exc_info=True)


def _stale(entity: str, entity_id: str, expected=None, actual=None) -> GovernanceOutcome:
    return GovernanceOutcome.failure(
        E.STALE_WRITE,
        f"{entity} was modified by another request. Reload and try again.",
        details={"id": entity_id, "expectedRowVersion": expected, "rowVersion": actual},
    )


def _check_version(entity, expected_row_version) -> GovernanceOutcome | None:
    if expected_row_version is None:
        return None
    try:
        expected = int(expected_row_version)
    except (TypeError, ValueError):
        raise ValidationError("expected_row_version must be an integer")
    if expected != entity.row_version:
        return _stale(type(entity).__name__, entity.id, expected, entity.row_version)
    return None


def _commit(entity_name: str, entity_id: str) -> GovernanceOutcome | None:
    """Commit, mapping a lost optimistic-concurrency race to STALE_WRITE."""
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.warning(
            "Stale write on %s %s", entity_name, entity_id,
            extra={"error_code": E.STALE_WRITE},
        )
        return _stale(entity_name, entity_id)
    return None


def _refused(outcome: GovernanceOutcome, **log_extra) -> GovernanceOutcome:
    db.session.rollback()
    logger.warning(
        "Refused: %s %s", outcome.error, outcome.message,
        extra={"error_code": outcome.error, **log_extra},
    )
    return outcome


def _criteria_rows(unit_id: str | None) -> list[CriterionRow]:
    if not unit_id:
        return []
    stmt = (
        select(Criterion)
        .join(LearningOutcome, Criterion.learning_outcome_id == LearningOutcome.id)
        .where(LearningOutcome.unit_id == unit_id)
    )
    rows = [CriterionRow.from_model(c) for c in db.session.execute(stmt).scalars()]
    return unit_criteria_pool(rows, unit_id)


# ═════════════════════════════════════════════════════════════════════════════
# Usage oracle
# ═════════════════════════════════════════════════════════════════════════════

def get_document_usage(doc: ReferenceDocument) -> DocumentUsage:
    """Submission and dependent-brief counts for a document.

    SPEC: non-archived briefs bound to units committed from this spec, and
    their submissions.  BRIEF: submissions graded against the briefs that
    this document governs; the governing brief itself is not a dependant.
    """
    if doc.kind == "SPEC":
        unit_ids = [u.id for u in Unit.query.filter_by(spec_document_id=doc.id).all()]
        briefs = (
            AssignmentBrief.query.filter(AssignmentBrief.unit_id.in_(unit_ids)).all()
            if unit_ids else []
        )
        briefs = [b for b in briefs if not b.archived]
        linked = len(briefs)
    elif doc.kind == "BRIEF":
        briefs = AssignmentBrief.query.filter_by(brief_document_id=doc.id).all()
        linked = 0
    else:
        briefs, linked = [], 0

    brief_ids = [b.id for b in briefs]
    submissions = 0
    if brief_ids:
        submissions = db.session.execute(
            select(func.count(Submission.id)).where(Submission.assignment_brief_id.in_(brief_ids))
        ).scalar() or 0

    return DocumentUsage.of(doc.is_locked, submissions, linked)


def usage_for(doc_id: str) -> dict:
    return get_document_usage(_get_document(doc_id)).to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Create / list / read
# ═════════════════════════════════════════════════════════════════════════════

def create_document(
    kind: str,
    title: str,
    *,
    checksum: str | None = None,
    version: int = 1,
    source_meta: dict | None = None,
    actor: str | None = None,
) -> GovernanceOutcome:
    kind = (kind or "").strip().upper()
    if kind not in DOCUMENT_KINDS:
        return GovernanceOutcome.failure(
            E.UNSUPPORTED_TYPE, f"Unsupported document type: {kind or '(empty)'}",
            details={"allowed": sorted(DOCUMENT_KINDS)},
        )
    title = (title or "").strip()
    if not title:
        return GovernanceOutcome.failure(E.VALIDATION_REQUIRED, "title is required")
    try:
        version = int(version or 1)
    except (TypeError, ValueError):
        raise ValidationError("version must be a positive integer")
    if version < 1:
        raise ValidationError("version must be a positive integer")

    meta = dict(source_meta or {})
    meta.setdefault("archived", False)
    doc = ReferenceDocument(kind=kind, title=title, version=version, checksum=checksum, source_meta=meta)
    doc.apply_status("UPLOADED")
    db.session.add(doc)
    db.session.flush()
    _audit("reference_document", doc.id, "reference_document.upload", actor,
           {"kind": kind, "title": title, "version": version})
    db.session.commit()
    logger.info("Document %s uploaded", doc.id, extra={"document_id": doc.id})
    return GovernanceOutcome.success(document=doc.to_dict())


def list_documents(kind: str | None = None, status: str | None = None, include_archived: bool = False) -> list[dict]:
    """Newest first; archived documents are hidden unless asked for."""
    q = ReferenceDocument.query
    if kind:
        q = q.filter_by(kind=kind.upper())
    if status:
        q = q.filter_by(status=status.upper())
    docs = q.order_by(ReferenceDocument.uploaded_at.desc()).all()
    if not include_archived:
        docs = [d for d in docs if not d.archived]
    return [d.to_dict() for d in docs]


def get_document(doc_id: str, include_draft: bool = True) -> dict:
    doc = _get_document(doc_id)
    data = doc.to_dict(include_draft=include_draft)
    data["usage"] = get_document_usage(doc).to_dict()
    data["available_actions"] = lifecycle.get_available_actions(doc)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Extraction
# ═════════════════════════════════════════════════════════════════════════════

def record_extraction(
    doc_id: str,
    draft,
    warnings=None,
    *,
    force_reextract: bool = False,
    reason: str | None = None,
    task_numbers: list[int] | None = None,
    actor: str | None = None,
    expected_row_version=None,
) -> GovernanceOutcome:
    """Store the extraction producer's draft on a document."""
    doc = _get_document(doc_id)
    stale = _check_version(doc, expected_row_version)
    if stale:
        return stale

    was_locked = doc.is_locked
    outcome = lifecycle.extract(
        doc, draft, warnings,
        force_reextract=force_reextract,
        reason=reason,
        task_numbers=task_numbers,
        history_cap=_setting("REEXTRACT_HISTORY_CAP", lifecycle.REEXTRACT_HISTORY_CAP),
    )
    if not outcome.ok:
        return _refused(outcome, document_id=doc.id)

    action = "reference_document.reextract" if was_locked else "reference_document.extract"
    diff = dict(outcome.data["diff"])
    diff["status"] = {"old": outcome.data["previous_status"], "new": doc.status}
    if outcome.data["partial_task_numbers"]:
        diff["taskNumbers"] = outcome.data["partial_task_numbers"]
    _audit("reference_document", doc.id, action, actor, diff)

    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    logger.info("Document %s extracted (forced=%s)", doc.id, outcome.data["forced"], extra={"document_id": doc.id})
    return GovernanceOutcome.success(
        document=doc.to_dict(),
        forced=outcome.data["forced"],
        partialTaskNumbers=outcome.data["partial_task_numbers"],
    )


def record_extraction_failure(doc_id: str, message: str, *, actor: str | None = None) -> GovernanceOutcome:
    doc = _get_document(doc_id)
    outcome = lifecycle.fail_extraction(doc, message)
    if not outcome.ok:
        return _refused(outcome, document_id=doc.id)
    if outcome.data["changed"]:
        _audit("reference_document", doc.id, "reference_document.extract_failed", actor, {
            "status": {"old": outcome.data["previous_status"], "new": doc.status},
            "error": message,
        })
    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    return GovernanceOutcome.success(document=doc.to_dict(), changed=outcome.data["changed"])


def mark_reviewed(doc_id: str, *, actor: str | None = None, expected_row_version=None) -> GovernanceOutcome:
    doc = _get_document(doc_id)
    stale = _check_version(doc, expected_row_version)
    if stale:
        return stale
    outcome = lifecycle.review(doc)
    if not outcome.ok:
        return _refused(outcome, document_id=doc.id)
    _audit("reference_document", doc.id, "reference_document.review", actor,
           {"status": {"old": outcome.data["previous_status"], "new": doc.status}})
    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    return GovernanceOutcome.success(document=doc.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# Lock
# ═════════════════════════════════════════════════════════════════════════════

def _gate_failure(result) -> GovernanceOutcome:
    return GovernanceOutcome.failure(
        E.LOCK_QUALITY_BLOCKED,
        "Lock blocked by quality gate: " + " ".join(b["message"] for b in result.blocks),
        details=result.to_dict(),
    )


def _commit_spec(doc: ReferenceDocument, draft: SpecDraft, actor: str | None) -> Unit:
    """Materialise the locked spec as Unit → LearningOutcome → Criterion."""
    unit = Unit.query.filter_by(spec_document_id=doc.id).first()
    if unit is None:
        unit = Unit(spec_document_id=doc.id, unit_code=draft.unit_code)
        db.session.add(unit)
    else:
        unit.learning_outcomes = []
        db.session.flush()

    unit.unit_code = draft.unit_code
    unit.unit_title = draft.unit_title
    unit.spec_issue = draft.spec_issue
    unit.status = "LOCKED"
    unit.locked_at = doc.locked_at
    for lo in draft.learning_outcomes:
        lo_row = LearningOutcome(lo_code=lo.lo_code, description=lo.description, essential_content=lo.essential_content)
        lo_row.criteria = [
            Criterion(ac_code=c.ac_code, grade_band=c.grade_band, description=c.description)
            for c in lo.criteria
        ]
        unit.learning_outcomes.append(lo_row)
    db.session.flush()
    _audit("unit", unit.id, "unit.lock", actor, {
        "unit_code": unit.unit_code,
        "spec_document_id": doc.id,
        "learning_outcomes": len(draft.learning_outcomes),
        "criteria": draft.criteria_count,
    })
    return unit


def _resolve_unit(draft: BriefDraft, unit_id: str | None) -> Unit | None:
    if unit_id:
        unit = db.session.get(Unit, unit_id)
        if not unit:
            raise NotFoundError("Unit", unit_id)
        return unit
    if not draft.unit_code_guess:
        return None
    candidates = Unit.query.filter_by(unit_code=draft.unit_code_guess).order_by(Unit.created_at.desc()).all()
    locked = [u for u in candidates if u.status == "LOCKED"]
    return (locked or candidates or [None])[0]


def _lock_spec(doc: ReferenceDocument, actor: str | None) -> GovernanceOutcome:
    draft = parse_draft(doc.extracted_draft)
    if not isinstance(draft, SpecDraft):
        return GovernanceOutcome.failure(E.NO_DRAFT, "No spec draft found. Run Extract first.",
                                         details={"documentId": doc.id})
    gate = GovernanceRules.evaluate("spec_lock", {
        "unit_code": draft.unit_code,
        "unit_title": draft.unit_title,
        "learning_outcome_count": len(draft.learning_outcomes),
        "criteria_count": draft.criteria_count,
    })
    if not gate.allowed:
        return _gate_failure(gate)

    previous_status = doc.status
    outcome = lifecycle.lock(doc, actor=actor)
    if not outcome.ok:
        return outcome
    unit = _commit_spec(doc, draft, actor)
    _audit("reference_document", doc.id, "reference_document.lock", actor,
           {"status": {"old": previous_status, "new": doc.status}, "unit_id": unit.id})
    return GovernanceOutcome.success(document=doc.to_dict(), unit=unit.to_dict(), warnings=gate.warnings)


def _lock_brief(
    doc: ReferenceDocument,
    actor: str | None,
    *,
    unit_id: str | None,
    assignment_code: str | None,
    selected_codes: list[str] | None,
    allow_overwrite: bool,
    expected_conflict_brief_id: str | None,
) -> GovernanceOutcome:
    draft = parse_draft(doc.extracted_draft)
    if not isinstance(draft, BriefDraft):
        return GovernanceOutcome.failure(E.NO_DRAFT, "No brief draft found. Run Extract first.",
                                         details={"documentId": doc.id})

    unit = _resolve_unit(draft, unit_id)
    assignment_code = (assignment_code or draft.assignment_code or doc.meta.get("assignmentCode") or "").strip().upper()
    pool = _criteria_rows(unit.id if unit else None)
    if selected_codes is None:
        selected = suggest_mapping_codes(draft, pool)["selectedCodes"]
    else:
        selected = normalize_criteria_code_list(selected_codes)

    if _setting("BRIEF_LOCK_QUALITY_GATE", True):
        gate = GovernanceRules.evaluate("brief_lock", {
            "assignment_code": assignment_code,
            "title": draft.title or doc.title,
            "has_unit_signal": unit is not None,
            "selected_codes": selected,
            "raw_text": draft.raw_text,
            "unit_criteria": pool,
        })
        if not gate.allowed:
            return _gate_failure(gate)
        gate_warnings = gate.warnings
    else:
        gate_warnings = []

    # Uniqueness is re-checked against rows read inside this transaction.
    records = []
    if unit is not None:
        records = [BriefLockRecord.from_model(b) for b in AssignmentBrief.query.filter_by(unit_id=unit.id).all()]
    check = try_lock(
        records,
        unit.id if unit else None,
        assignment_code,
        doc.id,
        allow_overwrite=allow_overwrite,
        expected_conflict_brief_id=expected_conflict_brief_id,
    )
    if not check.ok and check.error == E.BRIEF_ALREADY_LOCKED:
        existing_id = check.details["existingBriefId"]
        db.session.rollback()
        _audit("assignment_brief", existing_id, "assignment_brief.lock_conflict", actor, {
            "candidate_document_id": doc.id,
            "unit_id": check.details["unitId"],
            "assignment_code": assignment_code,
            "allow_overwrite": bool(allow_overwrite),
        })
        db.session.commit()
        return check

    previous_status = doc.status
    outcome = lifecycle.lock(doc, lock_check=check, actor=actor)
    if not outcome.ok:
        return outcome

    now = doc.locked_at
    brief = next(
        (b for b in AssignmentBrief.query.filter_by(unit_id=unit.id, brief_document_id=doc.id).all()
         if not b.archived and b.assignment_code.upper() == assignment_code),
        None,
    )
    if brief is None:
        brief = AssignmentBrief(unit_id=unit.id, assignment_code=assignment_code,
                                brief_document_id=doc.id, source_meta={"archived": False})
        db.session.add(brief)
    brief.title = draft.title or doc.title
    brief.locked_at = now
    brief.locked_by = actor

    if brief.criteria_maps:
        brief.criteria_maps = []
        db.session.flush()
    by_code = {row.code: row for row in pool}
    source = "AUTO_FROM_BRIEF" if selected_codes is None else "MANUAL_OVERRIDE"
    brief.criteria_maps = [
        AssignmentCriterionMap(criterion_id=by_code[code].id, source=source)
        for code in selected if code in by_code
    ]
    db.session.flush()

    superseded = []
    for previous_id in check.data["supersede_brief_ids"]:
        previous = db.session.get(AssignmentBrief, previous_id)
        meta = previous.meta
        meta.update({"archived": True, "supersededBy": brief.id, "supersededAt": now.isoformat()})
        old_locked_at = previous.locked_at
        previous.source_meta = meta
        previous.locked_at = None
        previous.locked_by = None
        superseded.append(previous_id)
        _audit("assignment_brief", previous_id, "assignment_brief.lock_overwrite", actor, {
            "replaced_by": brief.id,
            "candidate_document_id": doc.id,
            "locked_at": {"old": old_locked_at.isoformat() if old_locked_at else None, "new": None},
            "archived": {"old": False, "new": True},
        })

    _audit("assignment_brief", brief.id, "assignment_brief.lock", actor, {
        "unit_id": unit.id,
        "assignment_code": assignment_code,
        "mapped_codes": selected,
        "superseded": superseded,
    })
    _audit("reference_document", doc.id, "reference_document.lock", actor,
           {"status": {"old": previous_status, "new": doc.status}, "brief_id": brief.id})
    return GovernanceOutcome.success(
        document=doc.to_dict(),
        brief=brief.to_dict(),
        superseded=superseded,
        warnings=gate_warnings,
    )


def lock_document(
    doc_id: str,
    *,
    actor: str | None = None,
    unit_id: str | None = None,
    assignment_code: str | None = None,
    selected_codes: list[str] | None = None,
    allow_overwrite: bool = False,
    expected_conflict_brief_id: str | None = None,
    expected_row_version=None,
) -> GovernanceOutcome:
    """Lock a document as the authoritative baseline.

    SPEC documents are committed into Unit/LO/Criterion rows.  BRIEF
    documents run the quality gate and the lock conflict protocol, then
    bind (or re-bind) an AssignmentBrief with its criteria mapping.
    """
    doc = _get_document(doc_id)
    stale = _check_version(doc, expected_row_version)
    if stale:
        return stale
    if doc.is_locked:
        return GovernanceOutcome.failure(
            E.INVALID_TRANSITION, "Reference document is already locked.",
            details={"documentId": doc.id, "lockedAt": doc.locked_at.isoformat() if doc.locked_at else None},
        )

    if doc.kind == "SPEC":
        outcome = _lock_spec(doc, actor)
    elif doc.kind == "BRIEF":
        outcome = _lock_brief(
            doc, actor,
            unit_id=unit_id,
            assignment_code=assignment_code,
            selected_codes=selected_codes,
            allow_overwrite=allow_overwrite,
            expected_conflict_brief_id=expected_conflict_brief_id,
        )
    else:
        previous_status = doc.status
        outcome = lifecycle.lock(doc, actor=actor)
        if outcome.ok:
            _audit("reference_document", doc.id, "reference_document.lock", actor,
                   {"status": {"old": previous_status, "new": doc.status}})
            outcome = GovernanceOutcome.success(document=doc.to_dict())

    if not outcome.ok:
        if outcome.error == E.BRIEF_ALREADY_LOCKED:
            return outcome
        return _refused(outcome, document_id=doc.id)

    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    logger.info("Document %s locked", doc.id, extra={"document_id": doc.id})
    data = dict(outcome.data)
    data["document"] = doc.to_dict()
    return GovernanceOutcome.success(**data)


# ═════════════════════════════════════════════════════════════════════════════
# Unlock / delete / archive
# ═════════════════════════════════════════════════════════════════════════════

def unlock_document(doc_id: str, *, actor: str | None = None, expected_row_version=None) -> GovernanceOutcome:
    doc = _get_document(doc_id)
    stale = _check_version(doc, expected_row_version)
    if stale:
        return stale
    usage = get_document_usage(doc)
    outcome = lifecycle.unlock(doc, usage)
    if not outcome.ok:
        return _refused(outcome, document_id=doc.id)

    if doc.kind == "BRIEF":
        for brief in AssignmentBrief.query.filter_by(brief_document_id=doc.id).all():
            if brief.locked_at is not None:
                brief.locked_at = None
                brief.locked_by = None
    elif doc.kind == "SPEC":
        for unit in Unit.query.filter_by(spec_document_id=doc.id).all():
            unit.status = "DRAFT"
            unit.locked_at = None

    diff = dict(outcome.data["diff"])
    diff["status"] = {"old": outcome.data["previous_status"], "new": doc.status}
    _audit("reference_document", doc.id, "reference_document.unlock", actor, diff)
    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    logger.info("Document %s unlocked", doc.id, extra={"document_id": doc.id})
    return GovernanceOutcome.success(document=doc.to_dict(), usage=get_document_usage(doc).to_dict())


def delete_document(doc_id: str, *, actor: str | None = None) -> GovernanceOutcome:
    doc = _get_document(doc_id)
    usage = get_document_usage(doc)
    outcome = lifecycle.delete(doc, usage)
    if not outcome.ok:
        return _refused(outcome, document_id=doc.id)

    snapshot = doc.to_dict()
    if doc.kind == "BRIEF":
        for brief in AssignmentBrief.query.filter_by(brief_document_id=doc.id).all():
            db.session.delete(brief)
    elif doc.kind == "SPEC":
        for unit in Unit.query.filter_by(spec_document_id=doc.id).all():
            unit.spec_document_id = None
    db.session.delete(doc)
    _audit("reference_document", doc_id, "reference_document.delete", actor, {"before": snapshot})
    failed = _commit("ReferenceDocument", doc_id)
    if failed:
        return failed
    logger.info("Document %s deleted", doc_id, extra={"document_id": doc_id})
    return GovernanceOutcome.success(deleted=doc_id)


def archive_document(doc_id: str, *, actor: str | None = None) -> GovernanceOutcome:
    doc = _get_document(doc_id)
    outcome = lifecycle.archive(doc)
    if outcome.data["changed"]:
        _audit("reference_document", doc.id, "reference_document.archive", actor,
               {"archived": {"old": False, "new": True}})
    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    return GovernanceOutcome.success(document=doc.to_dict(), changed=outcome.data["changed"])


def unarchive_document(doc_id: str, *, actor: str | None = None) -> GovernanceOutcome:
    doc = _get_document(doc_id)
    outcome = lifecycle.unarchive(doc)
    if outcome.data["changed"]:
        _audit("reference_document", doc.id, "reference_document.unarchive", actor,
               {"archived": {"old": True, "new": False}})
    failed = _commit("ReferenceDocument", doc.id)
    if failed:
        return failed
    return GovernanceOutcome.success(document=doc.to_dict(), changed=outcome.data["changed"])


# ═════════════════════════════════════════════════════════════════════════════
# Criteria view & task warnings
# ═════════════════════════════════════════════════════════════════════════════

def _governing_brief(doc: ReferenceDocument) -> AssignmentBrief | None:
    briefs = [b for b in AssignmentBrief.query.filter_by(brief_document_id=doc.id).all() if not b.archived]
    return briefs[0] if briefs else None


def _bound_unit_id(doc: ReferenceDocument, draft) -> str | None:
    if doc.kind == "SPEC":
        unit = Unit.query.filter_by(spec_document_id=doc.id).first()
        return unit.id if unit else None
    brief = _governing_brief(doc)
    if brief:
        return brief.unit_id
    if doc.meta.get("unitId"):
        return doc.meta["unitId"]
    if isinstance(draft, BriefDraft):
        unit = _resolve_unit(draft, None)
        return unit.id if unit else None
    return None


def get_criteria_view(
    doc_id: str,
    *,
    view: str = "focused",
    selected_codes: list[str] | None = None,
    hint_text: str | None = None,
    grouped: bool = False,
) -> dict:
    """Detected-vs-canonical criteria for a document's bound unit."""
    if view not in ("focused", "full"):
        raise ValidationError("view must be 'focused' or 'full'")
    doc = _get_document(doc_id)
    draft = parse_draft(doc.extracted_draft)
    unit_id = _bound_unit_id(doc, draft)
    pool = _criteria_rows(unit_id)

    detected = list(draft.detected_criterion_codes) if isinstance(draft, BriefDraft) else []
    if selected_codes is None:
        brief = _governing_brief(doc)
        selected_codes = brief.mapped_codes if brief else []
    if hint_text is None and isinstance(draft, BriefDraft):
        hint_text = draft.title

    rows = focused_view(pool, detected, selected_codes, hint_text) if view == "focused" else full_view(pool)
    result = {
        "documentId": doc.id,
        "unitId": unit_id,
        "view": view,
        "criteria": [r.to_dict() for r in rows],
        "diff": diff_detected_codes(detected, pool),
    }
    if grouped:
        result["groups"] = [
            {"loCode": g["loCode"], "criteria": [r.to_dict() for r in g["criteria"]]}
            for g in group_by_learning_outcome(rows)
        ]
    return result


def get_task_warnings(doc_id: str, task_latex_overrides: dict | None = None) -> dict:
    doc = _get_document(doc_id)
    draft = parse_draft(doc.extracted_draft)
    if not isinstance(draft, BriefDraft):
        return {"documentId": doc.id, "tasks": []}
    overrides = task_latex_overrides
    if overrides is None:
        overrides = doc.meta.get("taskLatexOverrides") if isinstance(doc.meta.get("taskLatexOverrides"), dict) else {}

    equations_by_id = draft.equations_by_id()
    tasks = []
    for task in draft.tasks:
        warnings = effective_task_warnings(task, equations_by_id, overrides)
        override_applied = has_manual_latex_override(task, overrides)
        tasks.append({
            "n": task.get("n"),
            "warnings": warnings,
            "aiCorrected": is_task_ai_corrected(task),
            "overrideApplied": override_applied,
            "confidence": effective_task_confidence(task, warnings, override_applied),
        })
    return {"documentId": doc.id, "tasks": tasks}


# ═════════════════════════════════════════════════════════════════════════════
# Assignment briefs & grading scope
# ═════════════════════════════════════════════════════════════════════════════

def _graded_submission_count(brief_id: str) -> int:
    return db.session.execute(
        select(func.count(Submission.id)).where(
            Submission.assignment_brief_id == brief_id,
            Submission.graded_at.isnot(None),
        )
    ).scalar() or 0


def get_brief(brief_id: str) -> dict:
    brief = _get_brief(brief_id)
    data = brief.to_dict()
    excluded = set(data["excluded_codes"])
    data["active_codes"] = [c for c in brief.mapped_codes if normalize_criterion_code(c) not in excluded]
    data["exclusion_log"] = list(brief.meta.get("gradingCriteriaExclusionLog") or [])
    return data


def change_grading_scope(
    brief_id: str,
    next_excluded,
    change: dict | None,
    *,
    actor: str | None = None,
    expected_row_version=None,
) -> GovernanceOutcome:
    """Exclude or re-include exactly one mapped criterion on a locked brief."""
    brief = _get_brief(brief_id)
    stale = _check_version(brief, expected_row_version)
    if stale:
        return stale
    if brief.locked_at is None:
        return GovernanceOutcome.failure(
            E.NOT_LOCKED, "Grading scope can only be changed on a locked brief.",
            details={"briefId": brief.id},
        )

    meta = brief.meta
    validation = validate_grading_scope_change(
        meta.get(EXCLUSIONS_KEY),
        next_excluded,
        change,
        min_reason_length=_setting("SCOPE_CHANGE_MIN_REASON_LENGTH", 6),
    )
    if not validation.ok:
        return _refused(validation, brief_id=brief.id)

    mapped = set(normalize_criteria_code_list(brief.mapped_codes))
    code = validation.data["criterionCode"]
    if code not in mapped:
        return GovernanceOutcome.failure(
            E.VALIDATION_INVALID, f"{code} is not mapped to this brief.",
            details={"criterionCode": code, "mappedCodes": sorted(mapped)},
        )

    usage = get_document_usage(brief.brief_document) if brief.brief_document else DocumentUsage.of(True)
    if (_setting("REQUIRE_LIVE_CHANGE_CONFIRMATION", True)
            and usage.in_use and not validation.data["confirmLiveChange"]):
        return GovernanceOutcome.failure(
            E.LIVE_CHANGE_CONFIRMATION_REQUIRED,
            "This brief is locked and already has submissions. Confirm the live change to continue.",
            details={"briefId": brief.id, **usage.to_dict()},
        )

    graded = _graded_submission_count(brief.id)
    updates = apply_grading_scope_change(
        meta,
        validation.data,
        actor=actor,
        graded_submission_count=graded,
        log_cap=_setting("EXCLUSION_LOG_CAP", 120),
    )
    meta.update(updates)
    brief.source_meta = meta

    _audit("assignment_brief", brief.id, "assignment_brief.grading_scope_change", actor, {
        "criterionCode": code,
        "excluded": validation.data["excluded"],
        "reason": validation.data["reason"],
        "confirmLiveChange": validation.data["confirmLiveChange"],
        EXCLUSIONS_KEY: {"old": validation.data["previousExcluded"], "new": updates[EXCLUSIONS_KEY]},
        "gradedSubmissionCount": graded,
    })
    failed = _commit("AssignmentBrief", brief.id)
    if failed:
        return failed
    logger.info(
        "Brief %s scope change: %s excluded=%s", brief.id, code, validation.data["excluded"],
        extra={"brief_id": brief.id},
    )
    return GovernanceOutcome.success(brief=get_brief(brief.id))
