"""
Reference Governance Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for governance events
      (document lifecycle transitions, lock conflicts and overwrites,
      grading-scope changes).
"""

import json
import logging
from datetime import UTC, datetime

from app.models import db

logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "reference_document", "assignment_brief", "unit",
}

AUDIT_ACTIONS = {
    # Document lifecycle
    "reference_document.upload",
    "reference_document.extract",
    "reference_document.reextract",
    "reference_document.extract_failed",
    "reference_document.review",
    "reference_document.lock",
    "reference_document.unlock",
    "reference_document.delete",
    "reference_document.archive",
    "reference_document.unarchive",
    # Lock conflict protocol
    "assignment_brief.lock_conflict",
    "assignment_brief.lock_overwrite",
    "assignment_brief.lock",
    # Grading scope
    "assignment_brief.grading_scope_change",
    # Spec commit
    "unit.lock",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every governance event.

    One row per action.  ``diff_json`` carries the before/after payload the
    engines computed for the change.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="reference_document | assignment_brief | unit",
    )
    entity_id = db.Column(db.String(36), nullable=False)

    action = db.Column(
        db.String(60), nullable=False,
        comment="reference_document.lock | assignment_brief.grading_scope_change | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")

    diff_json = db.Column(
        db.Text, default="{}",
        comment="JSON: {field: {old, new}} plus event-specific payload",
    )

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor: str | None = "system",
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    if action not in AUDIT_ACTIONS:
        logger.debug("Audit action %s is not in the registered set", action)

    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
