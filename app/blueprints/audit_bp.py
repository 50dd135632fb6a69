"""
Reference Governance Platform
Audit trail blueprint.

Endpoints:
    GET  /api/v1/audit               — list / filter audit logs
    GET  /api/v1/audit/<int:log_id>  — single audit entry
    GET  /api/v1/assignment-briefs/<id>/scope-history — grading-scope log for a brief
"""

from flask import Blueprint, jsonify, request

from app.models import db
from app.models.audit import AuditLog
from app.models.reference import AssignmentBrief

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Return paginated audit logs with optional filters.

    Query params:
        entity_type  — reference_document | assignment_brief | unit
        entity_id    — filter by entity PK
        action       — filter by action string (prefix match)
        actor        — filter by actor
        page         — page number (default 1)
        per_page     — items per page (default 50, max 200)
    """
    q = AuditLog.query

    # ── Filters ──────────────────────────────────────────────────────────
    entity_type = request.args.get("entity_type")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    entity_id = request.args.get("entity_id")
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)

    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action.startswith(action))

    actor = request.args.get("actor")
    if actor:
        q = q.filter(AuditLog.actor == actor)

    # ── Ordering ─────────────────────────────────────────────────────────
    q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())

    # ── Pagination ───────────────────────────────────────────────────────
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "audit_logs": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    })


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    log = db.session.get(AuditLog, log_id)
    if not log:
        return jsonify({"error": "Audit log not found"}), 404
    return jsonify(log.to_dict())


# ── Grading-scope history ────────────────────────────────────────────────────

@audit_bp.route("/assignment-briefs/<brief_id>/scope-history", methods=["GET"])
def brief_scope_history(brief_id):
    """
    Capped exclusion log stored on the brief, newest last, next to the
    uncapped audit rows for the same brief.
    """
    brief = db.session.get(AssignmentBrief, brief_id)
    if not brief:
        return jsonify({"error": "Assignment brief not found"}), 404

    rows = (
        AuditLog.query
        .filter_by(entity_type="assignment_brief", entity_id=brief_id,
                   action="assignment_brief.grading_scope_change")
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
        .all()
    )
    return jsonify({
        "brief_id": brief_id,
        "exclusion_log": list(brief.meta.get("gradingCriteriaExclusionLog") or []),
        "audit_logs": [r.to_dict() for r in rows],
    })
