"""
Governance Rules registry tests — lock quality gates.

Covers:
  • brief_lock gate: identity, mapping depth, unknown codes, band coverage,
    per-LO progression (RULE-BL-01..07)
  • spec_lock gate (RULE-SL-01..03)
  • Registry meta: unknown gate, thresholds, result serialisation
"""

from app.services.criteria_matcher import CriterionRow
from app.services.governance_rules import (
    THRESHOLDS,
    GovernanceResult,
    GovernanceRules,
    GovernanceViolation,
    Severity,
)


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

_UNIT = [
    CriterionRow("c1", "P1", "PASS", "LO1", "u1"),
    CriterionRow("c2", "M1", "MERIT", "LO1", "u1"),
    CriterionRow("c3", "D1", "DISTINCTION", "LO1", "u1"),
    CriterionRow("c4", "P2", "PASS", "LO2", "u1"),
    CriterionRow("c5", "M2", "MERIT", "LO2", "u1"),
    CriterionRow("c6", "D2", "DISTINCTION", "LO2", "u1"),
]


def _brief_ctx(**overrides):
    ctx = {
        "assignment_code": "A1",
        "title": "Brief One",
        "has_unit_signal": True,
        "selected_codes": ["P1", "M1", "D1"],
        "raw_text": "x" * 500,
        "unit_criteria": _UNIT,
    }
    ctx.update(overrides)
    return ctx


def _rule_ids(result, severity="block"):
    items = result.blocks if severity == "block" else result.warnings
    return [v["rule_id"] for v in items]


# ═══════════════════════════════════════════════════════════════════════════
# brief_lock
# ═══════════════════════════════════════════════════════════════════════════


class TestBriefLockGate:

    def test_clean_brief_allowed(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx())
        assert result.allowed is True
        assert result.violations == []
        assert result.metrics["matchedCount"] == 3

    def test_missing_identity_blocks(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(
            assignment_code="", title=" ", has_unit_signal=False,
        ))
        assert result.allowed is False
        assert _rule_ids(result).count("RULE-BL-01") == 3

    def test_no_codes_blocks(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(selected_codes=[]))
        assert "RULE-BL-02" in _rule_ids(result)

    def test_short_text_blocks(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(raw_text="short"))
        assert "RULE-BL-03" in _rule_ids(result)
        block = next(b for b in result.blocks if b["rule_id"] == "RULE-BL-03")
        assert block["details"]["min_required"] == THRESHOLDS["brief_lock_min_text_len"]

    def test_unknown_codes_block(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(selected_codes=["P1", "M1", "D1", "P9"]))
        block = next(b for b in result.blocks if b["rule_id"] == "RULE-BL-04")
        assert block["details"]["unknown"] == ["P9"]

    def test_missing_pass_only_warns(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(selected_codes=["M1", "D1"]))
        assert result.allowed is True
        assert _rule_ids(result, "warn") == ["RULE-BL-05"]

    def test_merit_without_distinction_blocks(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(selected_codes=["P1", "M1"]))
        ids = _rule_ids(result)
        assert "RULE-BL-06" in ids
        assert "RULE-BL-07" in ids

    def test_per_lo_progression(self):
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(
            selected_codes=["P1", "M1", "D1", "P2", "M2"],
        ))
        blocks = [b for b in result.blocks if b["rule_id"] == "RULE-BL-07"]
        assert [b["details"]["lo_code"] for b in blocks] == ["LO2"]
        assert "RULE-BL-06" not in _rule_ids(result)

    def test_accepts_dict_rows(self):
        rows = [{"acCode": "P1", "gradeBand": "PASS", "loCode": "LO1"}]
        result = GovernanceRules.evaluate("brief_lock", _brief_ctx(selected_codes=["p1"], unit_criteria=rows))
        assert result.allowed is True


# ═══════════════════════════════════════════════════════════════════════════
# spec_lock
# ═══════════════════════════════════════════════════════════════════════════


class TestSpecLockGate:

    def test_clean_spec(self):
        result = GovernanceRules.evaluate("spec_lock", {
            "unit_code": "U1", "unit_title": "Eng", "learning_outcome_count": 3, "criteria_count": 10,
        })
        assert result.allowed is True

    def test_missing_identity_and_los(self):
        result = GovernanceRules.evaluate("spec_lock", {"unit_code": "", "unit_title": ""})
        assert result.allowed is False
        assert _rule_ids(result) == ["RULE-SL-01", "RULE-SL-01", "RULE-SL-02"]

    def test_los_without_criteria_warns(self):
        result = GovernanceRules.evaluate("spec_lock", {
            "unit_code": "U1", "unit_title": "Eng", "learning_outcome_count": 2, "criteria_count": 0,
        })
        assert result.allowed is True
        assert _rule_ids(result, "warn") == ["RULE-SL-03"]


# ═══════════════════════════════════════════════════════════════════════════
# Registry meta
# ═══════════════════════════════════════════════════════════════════════════


class TestGovernanceMeta:

    def test_unknown_gate_allowed(self):
        result = GovernanceRules.evaluate("nonexistent", {})
        assert result.allowed is True
        assert result.violations == []

    def test_list_gates(self):
        assert GovernanceRules.list_gates() == ["brief_lock", "spec_lock"]

    def test_threshold_read(self):
        assert GovernanceRules.get_threshold("brief_lock_min_text_len") == 400
        assert GovernanceRules.get_threshold("unknown_key", 7) == 7

    def test_get_all_thresholds_is_copy(self):
        all_t = GovernanceRules.get_all_thresholds()
        all_t["brief_lock_min_text_len"] = 1
        assert THRESHOLDS["brief_lock_min_text_len"] == 400

    def test_result_to_dict(self):
        result = GovernanceResult(
            gate="brief_lock",
            allowed=False,
            violations=[
                GovernanceViolation("RULE-BL-02", Severity.BLOCK, "No codes"),
                GovernanceViolation("RULE-BL-05", Severity.WARN, "No PASS"),
            ],
        )
        d = result.to_dict()
        assert d["gate"] == "brief_lock"
        assert [b["rule_id"] for b in d["blocks"]] == ["RULE-BL-02"]
        assert [w["severity"] for w in d["warnings"]] == ["warn"]
        assert d["metrics"] == {}
