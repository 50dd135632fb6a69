"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, governance tables)
    GET /api/v1/health/metrics — request count / latency from the timing buffer
"""

import logging
import time

from flask import Blueprint, current_app, jsonify, request

from app.middleware.timing import get_recent_metrics
from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

_GOVERNANCE_TABLES = (
    "reference_documents", "units", "learning_outcomes", "assessment_criteria",
    "assignment_briefs", "assignment_criterion_maps", "submissions", "audit_logs",
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Governance tables ────────────────────────────────────────────
    tables = {}
    for tbl in _GOVERNANCE_TABLES:
        try:
            count = db.session.execute(db.text(f"SELECT COUNT(*) FROM {tbl}")).scalar()
            tables[tbl] = {"status": "ok", "count": count}
        except Exception as exc:
            db.session.rollback()
            tables[tbl] = {"status": "error", "detail": str(exc)}
            overall = False
    checks["tables"] = tables

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Reference Governance Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code


@health_bp.route("/metrics", methods=["GET"])
def request_metrics():
    """Request count, error count and p95 latency over the last N seconds."""
    seconds = max(1, request.args.get("seconds", 3600, type=int))
    entries = get_recent_metrics(seconds)
    durations = sorted(m["ms"] for m in entries)
    p95 = durations[int(len(durations) * 0.95) - 1] if durations else 0.0
    return jsonify({
        "window_seconds": seconds,
        "requests": len(entries),
        "errors": sum(1 for m in entries if m["status"] >= 500),
        "p95_ms": p95,
    }), 200
