"""Reference library governance blueprint.

REST API over the reference document lifecycle, the brief lock protocol and
grading-scope changes.

Endpoint groups:
  Documents           GET/POST /api/v1/reference-documents
                      GET/DELETE /api/v1/reference-documents/<id>
  Usage               GET  /api/v1/reference-documents/<id>/usage
  Extraction          POST /api/v1/reference-documents/<id>/extract
                      POST /api/v1/reference-documents/<id>/extract-failed
  Lifecycle           POST /api/v1/reference-documents/<id>/review|lock|unlock
  Visibility          POST /api/v1/reference-documents/<id>/archive|unarchive
  Criteria            GET  /api/v1/reference-documents/<id>/criteria
  Task warnings       GET  /api/v1/reference-documents/<id>/task-warnings
  Assignment briefs   GET  /api/v1/assignment-briefs/<id>
                      POST /api/v1/assignment-briefs/<id>/grading-scope

The acting user is read from the ``X-Actor`` header (or ``actor`` in the
JSON body).  Service layer owns all business logic and commits; refused
governance actions come back as ``{ok: false, error, message, details}``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.orm.exc import StaleDataError

import app.services.reference_service as svc
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.services.grading_scope import to_bool
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

reference_bp = Blueprint("reference", __name__, url_prefix="/api/v1")


# ── Request helpers ──────────────────────────────────────────────────────────


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _actor(data: dict | None = None) -> str:
    actor = request.headers.get("X-Actor") or (data or {}).get("actor")
    return str(actor).strip() if actor else "system"


def _respond(outcome, success_status: int = 200):
    if outcome.ok:
        return jsonify(outcome.to_dict()), success_status
    return api_error(outcome.error, outcome.message, details=outcome.details)


def _task_numbers(value) -> list[int] | None:
    if value in (None, "", []):
        return None
    if not isinstance(value, list):
        raise ValidationError("taskNumbers must be a list of integers")
    try:
        return sorted({int(n) for n in value if int(n) > 0})
    except (TypeError, ValueError):
        raise ValidationError("taskNumbers must be a list of integers")


# ── Error handlers ───────────────────────────────────────────────────────────


@reference_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@reference_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), status=422, details=error.details)


@reference_bp.errorhandler(StaleDataError)
def _handle_stale(error: StaleDataError):
    db.session.rollback()
    logger.warning("Stale write in %s", request.endpoint, extra={"error_code": E.STALE_WRITE})
    return api_error(E.STALE_WRITE, "Record was modified by another request. Reload and try again.")


# ═════════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════════


@reference_bp.route("/reference-documents", methods=["POST"])
def create_document():
    """Register an uploaded reference file (storage happens elsewhere)."""
    data = _body()
    outcome = svc.create_document(
        data.get("kind"),
        data.get("title"),
        checksum=data.get("checksum"),
        version=data.get("version", 1),
        source_meta=data.get("sourceMeta") if isinstance(data.get("sourceMeta"), dict) else None,
        actor=_actor(data),
    )
    return _respond(outcome, 201)


@reference_bp.route("/reference-documents", methods=["GET"])
def list_documents():
    items = svc.list_documents(
        kind=request.args.get("kind"),
        status=request.args.get("status"),
        include_archived=to_bool(request.args.get("includeArchived")),
    )
    return jsonify({"items": items, "total": len(items)})


@reference_bp.route("/reference-documents/<doc_id>", methods=["GET"])
def get_document(doc_id):
    return jsonify(svc.get_document(doc_id))


@reference_bp.route("/reference-documents/<doc_id>", methods=["DELETE"])
def delete_document(doc_id):
    return _respond(svc.delete_document(doc_id, actor=_actor()))


@reference_bp.route("/reference-documents/<doc_id>/usage", methods=["GET"])
def get_usage(doc_id):
    return jsonify(svc.usage_for(doc_id))


# ═════════════════════════════════════════════════════════════════════════
# Extraction
# ═════════════════════════════════════════════════════════════════════════


@reference_bp.route("/reference-documents/<doc_id>/extract", methods=["POST"])
def record_extraction(doc_id):
    """Store an extraction result.

    Body: ``{draft, warnings?, forceReextract?, reason?, taskNumbers?, expectedRowVersion?}``
    """
    data = _body()
    if "draft" not in data:
        raise ValidationError("draft is required", details={"draft": "missing"})
    warnings = data.get("warnings")
    if warnings is not None and not isinstance(warnings, list):
        raise ValidationError("warnings must be a list")
    outcome = svc.record_extraction(
        doc_id,
        data.get("draft"),
        warnings or [],
        force_reextract=to_bool(data.get("forceReextract")),
        reason=data.get("reason"),
        task_numbers=_task_numbers(data.get("taskNumbers")),
        actor=_actor(data),
        expected_row_version=data.get("expectedRowVersion"),
    )
    return _respond(outcome)


@reference_bp.route("/reference-documents/<doc_id>/extract-failed", methods=["POST"])
def record_extraction_failure(doc_id):
    data = _body()
    message = str(data.get("error") or "Extraction failed")
    return _respond(svc.record_extraction_failure(doc_id, message, actor=_actor(data)))


# ═════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════


@reference_bp.route("/reference-documents/<doc_id>/review", methods=["POST"])
def review_document(doc_id):
    data = _body()
    return _respond(svc.mark_reviewed(
        doc_id, actor=_actor(data), expected_row_version=data.get("expectedRowVersion"),
    ))


@reference_bp.route("/reference-documents/<doc_id>/lock", methods=["POST"])
def lock_document(doc_id):
    """Lock a document.

    BRIEF body: ``{unitId?, assignmentCode?, selectedCodes?, allowOverwrite?,
    expectedConflictBriefId?, expectedRowVersion?}``.  A conflicting locked
    brief comes back as 409 ``BRIEF_ALREADY_LOCKED``; retry with
    ``allowOverwrite=true`` and the ``existingBriefId`` from that response.
    """
    data = _body()
    selected = data.get("selectedCodes")
    if selected is not None and not isinstance(selected, list):
        raise ValidationError("selectedCodes must be a list")
    outcome = svc.lock_document(
        doc_id,
        actor=_actor(data),
        unit_id=data.get("unitId"),
        assignment_code=data.get("assignmentCode"),
        selected_codes=selected,
        allow_overwrite=to_bool(data.get("allowOverwrite")),
        expected_conflict_brief_id=data.get("expectedConflictBriefId"),
        expected_row_version=data.get("expectedRowVersion"),
    )
    return _respond(outcome)


@reference_bp.route("/reference-documents/<doc_id>/unlock", methods=["POST"])
def unlock_document(doc_id):
    data = _body()
    return _respond(svc.unlock_document(
        doc_id, actor=_actor(data), expected_row_version=data.get("expectedRowVersion"),
    ))


@reference_bp.route("/reference-documents/<doc_id>/archive", methods=["POST"])
def archive_document(doc_id):
    return _respond(svc.archive_document(doc_id, actor=_actor(_body())))


@reference_bp.route("/reference-documents/<doc_id>/unarchive", methods=["POST"])
def unarchive_document(doc_id):
    return _respond(svc.unarchive_document(doc_id, actor=_actor(_body())))


# ═════════════════════════════════════════════════════════════════════════
# Criteria & task warnings
# ═════════════════════════════════════════════════════════════════════════


@reference_bp.route("/reference-documents/<doc_id>/criteria", methods=["GET"])
def get_criteria(doc_id):
    """Query: ``view=focused|full``, ``selected=P1,M2``, ``hint=…``, ``grouped=true``."""
    selected = request.args.get("selected")
    return jsonify(svc.get_criteria_view(
        doc_id,
        view=request.args.get("view", "focused"),
        selected_codes=[c for c in selected.split(",") if c.strip()] if selected is not None else None,
        hint_text=request.args.get("hint"),
        grouped=to_bool(request.args.get("grouped")),
    ))


@reference_bp.route("/reference-documents/<doc_id>/task-warnings", methods=["GET"])
def get_task_warnings(doc_id):
    return jsonify(svc.get_task_warnings(doc_id))


# ═════════════════════════════════════════════════════════════════════════
# Assignment briefs
# ═════════════════════════════════════════════════════════════════════════


@reference_bp.route("/assignment-briefs/<brief_id>", methods=["GET"])
def get_brief(brief_id):
    return jsonify(svc.get_brief(brief_id))


@reference_bp.route("/assignment-briefs/<brief_id>/grading-scope", methods=["POST"])
def change_grading_scope(brief_id):
    """Body: ``{excludedCodes: [...], change: {criterionCode, excluded, reason, confirmLiveChange}}``."""
    data = _body()
    if not isinstance(data.get("excludedCodes"), list):
        raise ValidationError("excludedCodes must be a list", details={"excludedCodes": "required"})
    outcome = svc.change_grading_scope(
        brief_id,
        data.get("excludedCodes"),
        data.get("change"),
        actor=_actor(data),
        expected_row_version=data.get("expectedRowVersion"),
    )
    return _respond(outcome)
