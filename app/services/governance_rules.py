"""
Governance Rules Registry

Lock quality gates, thresholds and block/warn conditions.  Does not touch
the lifecycle engine; the service layer evaluates a gate and refuses the
lock with ``LOCK_QUALITY_BLOCKED`` when it is not allowed.

Usage:
    from app.services.governance_rules import GovernanceRules
    result = GovernanceRules.evaluate("brief_lock", context)
    # -> result.allowed, result.blocks, result.warnings
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    BLOCK = "block"
    WARN = "warn"
    INFO = "info"


@dataclass
class GovernanceViolation:
    """Single governance rule violation."""
    rule_id: str
    severity: Severity
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class GovernanceResult:
    """Aggregate result of evaluating all governance rules for a gate."""
    gate: str
    allowed: bool
    violations: list[GovernanceViolation] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)

    @property
    def blocks(self) -> list[dict]:
        return [v.to_dict() for v in self.violations if v.severity == Severity.BLOCK]

    @property
    def warnings(self) -> list[dict]:
        return [v.to_dict() for v in self.violations if v.severity == Severity.WARN]

    def to_dict(self) -> dict:
        return {
            "gate": self.gate,
            "allowed": self.allowed,
            "blocks": self.blocks,
            "warnings": self.warnings,
            "metrics": self.metrics,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Threshold Configuration — managed from a single location
# ═════════════════════════════════════════════════════════════════════════════

THRESHOLDS: dict[str, Any] = {
    # Brief lock gate
    "brief_lock_min_text_len": 400,           # Shorter text is unreliable for mapping
    "brief_lock_min_selected_codes": 1,
    "brief_lock_require_pass": False,         # False = missing PASS only warns
    "brief_lock_require_distinction_with_merit": True,

    # Spec lock gate
    "spec_lock_min_learning_outcomes": 1,
}


def _code(value) -> str:
    return str(value or "").strip().upper()


def _row(c) -> dict:
    """Accept CriterionRow instances or plain dicts."""
    if isinstance(c, dict):
        return {
            "code": _code(c.get("ac_code") or c.get("acCode")),
            "band": c.get("grade_band") or c.get("gradeBand"),
            "lo": _code(c.get("lo_code") or c.get("loCode")),
        }
    return {"code": _code(c.ac_code), "band": c.grade_band, "lo": _code(c.lo_code)}


# ═════════════════════════════════════════════════════════════════════════════
# Rule Definitions — gate-specific rule functions
# ═════════════════════════════════════════════════════════════════════════════

def _rules_brief_lock(ctx: dict) -> tuple[list[GovernanceViolation], dict]:
    """Brief lock quality rules.

    Expected ctx keys:
        assignment_code: str
        title: str
        has_unit_signal: bool
        selected_codes: list[str]
        raw_text: str
        unit_criteria: list[CriterionRow | dict]
    """
    violations = []
    selected = list(dict.fromkeys(_code(c) for c in ctx.get("selected_codes") or [] if _code(c)))
    raw_text = str(ctx.get("raw_text") or "")
    unit_rows = [_row(c) for c in ctx.get("unit_criteria") or []]
    unit_by_code = {r["code"]: r for r in unit_rows if r["code"]}

    # RULE-BL-01: Identity fields
    if not _code(ctx.get("assignment_code")):
        violations.append(GovernanceViolation("RULE-BL-01", Severity.BLOCK, "Missing assignment code."))
    if not str(ctx.get("title") or "").strip():
        violations.append(GovernanceViolation("RULE-BL-01", Severity.BLOCK, "Missing assignment title."))
    if not ctx.get("has_unit_signal"):
        violations.append(GovernanceViolation(
            "RULE-BL-01", Severity.BLOCK, "Missing unit signal (unit guess or selected unit).",
        ))

    # RULE-BL-02: Something to map
    if len(selected) < THRESHOLDS["brief_lock_min_selected_codes"]:
        violations.append(GovernanceViolation(
            "RULE-BL-02", Severity.BLOCK, "No criteria codes extracted for this brief.",
        ))

    # RULE-BL-03: Extraction depth
    min_len = THRESHOLDS["brief_lock_min_text_len"]
    text_len = len(raw_text.strip())
    if text_len < min_len:
        violations.append(GovernanceViolation(
            "RULE-BL-03", Severity.BLOCK,
            "Brief text extraction is too short for reliable mapping.",
            details={"text_length": text_len, "min_required": min_len},
        ))

    # RULE-BL-04: Codes must exist in the unit
    unknown = [c for c in selected if c not in unit_by_code]
    if unknown:
        violations.append(GovernanceViolation(
            "RULE-BL-04", Severity.BLOCK,
            f"Criteria not found in selected unit: {', '.join(unknown)}.",
            details={"unknown": unknown},
        ))

    matched = [unit_by_code[c] for c in selected if c in unit_by_code]
    counts = {band: sum(1 for m in matched if m["band"] == band) for band in ("PASS", "MERIT", "DISTINCTION")}

    # RULE-BL-05: Band coverage
    if counts["PASS"] == 0:
        violations.append(GovernanceViolation(
            "RULE-BL-05",
            Severity.BLOCK if THRESHOLDS["brief_lock_require_pass"] else Severity.WARN,
            "No PASS criteria detected in mapping.",
        ))
    if THRESHOLDS["brief_lock_require_distinction_with_merit"]:
        if counts["MERIT"] > 0 and counts["DISTINCTION"] == 0:
            violations.append(GovernanceViolation(
                "RULE-BL-06", Severity.BLOCK,
                "MERIT criteria detected without any DISTINCTION criteria. Extraction may be incomplete.",
            ))

        # RULE-BL-07: Per-LO progression
        for lo_code in sorted({m["lo"] for m in matched if m["lo"]}):
            lo_bands = {m["band"] for m in matched if m["lo"] == lo_code}
            unit_has_dist = any(r["lo"] == lo_code and r["band"] == "DISTINCTION" for r in unit_rows)
            if unit_has_dist and "MERIT" in lo_bands and "DISTINCTION" not in lo_bands:
                violations.append(GovernanceViolation(
                    "RULE-BL-07", Severity.BLOCK,
                    f"Potential incomplete LO progression for {lo_code}: MERIT present without DISTINCTION.",
                    details={"lo_code": lo_code},
                ))

    metrics = {
        "selectedCount": len(selected),
        "matchedCount": len(matched),
        "passCount": counts["PASS"],
        "meritCount": counts["MERIT"],
        "distinctionCount": counts["DISTINCTION"],
    }
    return violations, metrics


def _rules_spec_lock(ctx: dict) -> tuple[list[GovernanceViolation], dict]:
    """Spec lock rules.

    Expected ctx keys:
        unit_code: str
        unit_title: str
        learning_outcome_count: int
        criteria_count: int
    """
    violations = []
    if not str(ctx.get("unit_code") or "").strip():
        violations.append(GovernanceViolation("RULE-SL-01", Severity.BLOCK, "Missing unit code."))
    if not str(ctx.get("unit_title") or "").strip():
        violations.append(GovernanceViolation("RULE-SL-01", Severity.BLOCK, "Missing unit title."))

    lo_count = ctx.get("learning_outcome_count", 0)
    min_los = THRESHOLDS["spec_lock_min_learning_outcomes"]
    if lo_count < min_los:
        violations.append(GovernanceViolation(
            "RULE-SL-02", Severity.BLOCK, "No learning outcomes extracted.",
            details={"learning_outcome_count": lo_count, "min_required": min_los},
        ))
    if lo_count and not ctx.get("criteria_count", 0):
        violations.append(GovernanceViolation(
            "RULE-SL-03", Severity.WARN, "Learning outcomes have no assessment criteria.",
        ))
    return violations, {"learningOutcomeCount": lo_count, "criteriaCount": ctx.get("criteria_count", 0)}


# ═════════════════════════════════════════════════════════════════════════════
# Gate Registry — maps gate names to rule functions
# ═════════════════════════════════════════════════════════════════════════════

_GATE_RULES: dict[str, callable] = {
    "brief_lock": _rules_brief_lock,
    "spec_lock": _rules_spec_lock,
}


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

class GovernanceRules:
    """Central governance rule evaluation engine."""

    @staticmethod
    def evaluate(gate: str, context: dict) -> GovernanceResult:
        """Run all rules for the specified gate.

        Args:
            gate: Gate name (brief_lock, spec_lock)
            context: Context dict expected by the rule functions

        Returns:
            GovernanceResult — allowed=True means the lock can proceed
        """
        rule_fn = _GATE_RULES.get(gate)
        if not rule_fn:
            return GovernanceResult(gate=gate, allowed=True)

        violations, metrics = rule_fn(context)
        has_blocks = any(v.severity == Severity.BLOCK for v in violations)
        if has_blocks:
            logger.info("Gate %s blocked: %s", gate, [v.rule_id for v in violations if v.severity == Severity.BLOCK])

        return GovernanceResult(
            gate=gate,
            allowed=not has_blocks,
            violations=violations,
            metrics=metrics,
        )

    @staticmethod
    def get_threshold(key: str, default=None):
        """Read a single threshold value."""
        return THRESHOLDS.get(key, default)

    @staticmethod
    def get_all_thresholds() -> dict:
        return dict(THRESHOLDS)

    @staticmethod
    def list_gates() -> list[str]:
        return list(_GATE_RULES.keys())
