"""
Reference Governance Platform
Reference library domain models.

Models:
    - ReferenceDocument: an uploaded SPEC / BRIEF / RUBRIC file plus its
      extraction state and lock status.
    - Unit → LearningOutcome → Criterion: the canonical criteria universe
      committed from a locked SPEC.
    - AssignmentBrief + AssignmentCriterionMap: the governance record that
      binds a locked BRIEF document to a Unit and its grading scope.
    - Submission: minimal learner submission row, read by the usage oracle.
"""

import uuid
from datetime import datetime, timezone

from app.models import db


__all__ = [
    "ReferenceDocument",
    "Unit",
    "LearningOutcome",
    "Criterion",
    "AssignmentBrief",
    "AssignmentCriterionMap",
    "Submission",
    "DOCUMENT_KINDS",
    "DOCUMENT_STATUSES",
    "GRADE_BANDS",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _as_dict(value) -> dict:
    return dict(value) if isinstance(value, dict) else {}


# ── Constants ────────────────────────────────────────────────────────────────

DOCUMENT_KINDS = {"SPEC", "BRIEF", "RUBRIC"}

DOCUMENT_STATUSES = {"UPLOADED", "EXTRACTED", "REVIEWED", "LOCKED", "FAILED"}

UNIT_STATUSES = {"DRAFT", "LOCKED"}

GRADE_BANDS = {"PASS", "MERIT", "DISTINCTION"}

MAP_SOURCES = {"AUTO_FROM_BRIEF", "MANUAL_OVERRIDE"}


# ═════════════════════════════════════════════════════════════════════════════
# 1. ReferenceDocument
# ═════════════════════════════════════════════════════════════════════════════

class ReferenceDocument(db.Model):
    """
    One uploaded reference file and its extraction state.

    ``locked_at`` is only ever written through :meth:`apply_status`, which
    keeps it set exactly when ``status == "LOCKED"``.  ``source_meta`` is a
    free-form bag; ``archived`` lives there and only affects default
    listing.
    """

    __tablename__ = "reference_documents"
    __table_args__ = (
        db.Index("idx_refdoc_kind_status", "kind", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    kind = db.Column(db.String(10), nullable=False, comment="SPEC | BRIEF | RUBRIC")
    status = db.Column(db.String(12), nullable=False, default="UPLOADED")
    title = db.Column(db.String(300), nullable=False, default="")
    version = db.Column(db.Integer, nullable=False, default=1)
    checksum = db.Column(db.String(64), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by = db.Column(db.String(150), nullable=True)

    extracted_draft = db.Column(db.JSON, nullable=True)
    extraction_warnings = db.Column(db.JSON, nullable=False, default=list)
    source_meta = db.Column(db.JSON, nullable=False, default=dict)

    row_version = db.Column(
        db.Integer, nullable=False,
        comment="Optimistic concurrency counter; UPDATEs are conditional on it",
    )

    __mapper_args__ = {"version_id_col": row_version}

    # ── Invariant-enforcing setter ───────────────────────────────────────

    def apply_status(self, status: str, *, now: datetime | None = None, actor: str | None = None) -> None:
        """Set ``status`` and keep ``locked_at`` / ``locked_by`` consistent with it."""
        if status not in DOCUMENT_STATUSES:
            raise ValueError(f"Unknown document status: {status}")
        self.status = status
        if status == "LOCKED":
            self.locked_at = self.locked_at or now or _utcnow()
            self.locked_by = actor or self.locked_by
        else:
            self.locked_at = None
            self.locked_by = None

    @property
    def is_locked(self) -> bool:
        return self.status == "LOCKED"

    @property
    def archived(self) -> bool:
        return bool(_as_dict(self.source_meta).get("archived"))

    @property
    def meta(self) -> dict:
        """Shallow copy of ``source_meta``; reassign to persist changes."""
        return _as_dict(self.source_meta)

    def to_dict(self, include_draft: bool = False) -> dict:
        d = {
            "id": self.id,
            "kind": self.kind,
            "status": self.status,
            "title": self.title,
            "version": self.version,
            "checksum": self.checksum,
            "uploaded_at": _iso(self.uploaded_at),
            "locked_at": _iso(self.locked_at),
            "locked_by": self.locked_by,
            "archived": self.archived,
            "extraction_warnings": list(self.extraction_warnings or []),
            "source_meta": self.meta,
            "row_version": self.row_version,
        }
        if include_draft:
            d["extracted_draft"] = self.extracted_draft
        return d

    def __repr__(self):
        return f"<ReferenceDocument {self.id}: {self.kind} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Unit → LearningOutcome → Criterion
# ═════════════════════════════════════════════════════════════════════════════

class Unit(db.Model):
    """Canonical criteria container for one subject unit."""

    __tablename__ = "units"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    unit_code = db.Column(db.String(30), nullable=False, index=True)
    unit_title = db.Column(db.String(300), nullable=False, default="")
    status = db.Column(db.String(10), nullable=False, default="DRAFT")
    spec_issue = db.Column(db.String(100), nullable=True)
    spec_document_id = db.Column(
        db.String(36),
        db.ForeignKey("reference_documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    learning_outcomes = db.relationship(
        "LearningOutcome",
        backref="unit",
        order_by="LearningOutcome.lo_code",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_children: bool = False) -> dict:
        d = {
            "id": self.id,
            "unit_code": self.unit_code,
            "unit_title": self.unit_title,
            "status": self.status,
            "spec_issue": self.spec_issue,
            "spec_document_id": self.spec_document_id,
            "locked_at": _iso(self.locked_at),
        }
        if include_children:
            d["learning_outcomes"] = [lo.to_dict(include_children=True) for lo in self.learning_outcomes]
        return d


class LearningOutcome(db.Model):
    __tablename__ = "learning_outcomes"
    __table_args__ = (
        db.UniqueConstraint("unit_id", "lo_code", name="uq_lo_unit_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    unit_id = db.Column(db.String(36), db.ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True)
    lo_code = db.Column(db.String(10), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    essential_content = db.Column(db.Text, nullable=True)

    criteria = db.relationship(
        "Criterion",
        backref="learning_outcome",
        order_by="Criterion.ac_code",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_children: bool = False) -> dict:
        d = {
            "id": self.id,
            "unit_id": self.unit_id,
            "lo_code": self.lo_code,
            "description": self.description,
            "essential_content": self.essential_content,
        }
        if include_children:
            d["criteria"] = [c.to_dict() for c in self.criteria]
        return d


class Criterion(db.Model):
    __tablename__ = "assessment_criteria"
    __table_args__ = (
        db.UniqueConstraint("learning_outcome_id", "ac_code", name="uq_criterion_lo_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    learning_outcome_id = db.Column(
        db.String(36),
        db.ForeignKey("learning_outcomes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ac_code = db.Column(db.String(5), nullable=False, comment="P1 | M2 | D1 …")
    grade_band = db.Column(db.String(12), nullable=False, comment="PASS | MERIT | DISTINCTION")
    description = db.Column(db.Text, nullable=False, default="")

    def to_dict(self) -> dict:
        lo = self.learning_outcome
        return {
            "id": self.id,
            "learning_outcome_id": self.learning_outcome_id,
            "lo_code": lo.lo_code if lo else None,
            "unit_id": lo.unit_id if lo else None,
            "ac_code": self.ac_code,
            "grade_band": self.grade_band,
            "description": self.description,
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. AssignmentBrief — governance record for a locked BRIEF
# ═════════════════════════════════════════════════════════════════════════════

class AssignmentBrief(db.Model):
    """
    Binds a BRIEF document to a Unit for one assignment code.

    At most one non-archived brief per ``(unit_id, assignment_code)`` may
    have ``locked_at`` set; the lock conflict resolver enforces this before
    every write.  ``source_meta`` holds the grading-scope exclusion state:
    ``gradingCriteriaExclusions``, ``gradingCriteriaExclusionReasons`` and
    ``gradingCriteriaExclusionLog``.
    """

    __tablename__ = "assignment_briefs"
    __table_args__ = (
        db.Index("idx_brief_unit_assignment", "unit_id", "assignment_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    unit_id = db.Column(db.String(36), db.ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    assignment_code = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(300), nullable=False, default="")
    brief_document_id = db.Column(
        db.String(36),
        db.ForeignKey("reference_documents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by = db.Column(db.String(150), nullable=True)
    source_meta = db.Column(db.JSON, nullable=False, default=dict)
    row_version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __mapper_args__ = {"version_id_col": row_version}

    unit = db.relationship("Unit")
    brief_document = db.relationship("ReferenceDocument")
    criteria_maps = db.relationship(
        "AssignmentCriterionMap",
        backref="assignment_brief",
        cascade="all, delete-orphan",
    )

    @property
    def archived(self) -> bool:
        return bool(_as_dict(self.source_meta).get("archived"))

    @property
    def meta(self) -> dict:
        return _as_dict(self.source_meta)

    @property
    def mapped_codes(self) -> list[str]:
        return sorted({m.criterion.ac_code for m in self.criteria_maps if m.criterion})

    def to_dict(self) -> dict:
        meta = self.meta
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "assignment_code": self.assignment_code,
            "title": self.title,
            "brief_document_id": self.brief_document_id,
            "locked_at": _iso(self.locked_at),
            "locked_by": self.locked_by,
            "archived": self.archived,
            "mapped_codes": self.mapped_codes,
            "excluded_codes": list(meta.get("gradingCriteriaExclusions") or []),
            "exclusion_reasons": dict(meta.get("gradingCriteriaExclusionReasons") or {}),
            "exclusion_log_size": len(meta.get("gradingCriteriaExclusionLog") or []),
            "row_version": self.row_version,
        }

    def __repr__(self):
        return f"<AssignmentBrief {self.id}: {self.assignment_code} unit={self.unit_id}>"


class AssignmentCriterionMap(db.Model):
    __tablename__ = "assignment_criterion_maps"
    __table_args__ = (
        db.UniqueConstraint("assignment_brief_id", "criterion_id", name="uq_brief_criterion"),
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_brief_id = db.Column(
        db.String(36),
        db.ForeignKey("assignment_briefs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    criterion_id = db.Column(
        db.String(36),
        db.ForeignKey("assessment_criteria.id", ondelete="CASCADE"),
        nullable=False,
    )
    source = db.Column(db.String(20), nullable=False, default="AUTO_FROM_BRIEF")
    confidence = db.Column(db.Float, nullable=False, default=0.95)

    criterion = db.relationship("Criterion")


# ═════════════════════════════════════════════════════════════════════════════
# 4. Submission — read-only input for the usage oracle
# ═════════════════════════════════════════════════════════════════════════════

class Submission(db.Model):
    __tablename__ = "submissions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assignment_brief_id = db.Column(
        db.String(36),
        db.ForeignKey("assignment_briefs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="UPLOADED")
    graded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
