"""
Criteria Matcher tests.

Covers:
  • Sort contract: band rank, then normalised code as a string
  • Unit pool filtering (unbound document → empty pool)
  • Focused view: detected ∪ selected, LO hint narrowing
  • Full view and LO grouping
  • Detection diff (matched / unknown / undetected)
  • Mapping suggestion: marker artifacts, LO progression repair
"""

from app.services.criteria_matcher import (
    CriterionRow,
    band_rank,
    diff_detected_codes,
    extract_lo_hints,
    focused_view,
    full_view,
    group_by_learning_outcome,
    sort_criteria,
    suggest_mapping_codes,
    unit_criteria_pool,
)
from app.services.drafts import parse_draft


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

_U1 = {
    "LO1": [("P1", "PASS"), ("P2", "PASS"), ("M1", "MERIT"), ("D1", "DISTINCTION")],
    "LO2": [("P3", "PASS"), ("P4", "PASS"), ("M2", "MERIT"), ("D2", "DISTINCTION")],
    "LO3": [("P5", "PASS"), ("M3", "MERIT")],
}


def _pool(unit_id="u1"):
    return [
        CriterionRow(id=f"{unit_id}-{code}", ac_code=code, grade_band=band, lo_code=lo, unit_id=unit_id)
        for lo, criteria in _U1.items()
        for code, band in criteria
    ]


def _codes(rows):
    return [r.ac_code for r in rows]


def _brief(**fields):
    return parse_draft({"kind": "BRIEF", "assignmentCode": "A1", **fields})


# ═══════════════════════════════════════════════════════════════════════════
# Ordering
# ═══════════════════════════════════════════════════════════════════════════


class TestOrdering:

    def test_band_rank(self):
        assert band_rank("PASS") == 1
        assert band_rank("DISTINCTION", "P1") == 3
        assert band_rank("", "m3") == 2
        assert band_rank(None, "X1") == 9
        assert band_rank("OTHER", "P1") == 9

    def test_band_then_string_code(self):
        rows = [
            CriterionRow("1", "D1", "DISTINCTION", "LO1", "u1"),
            CriterionRow("2", "P2", "PASS", "LO1", "u1"),
            CriterionRow("3", "P10", "PASS", "LO4", "u1"),
            CriterionRow("4", "M1", "MERIT", "LO1", "u1"),
        ]
        assert _codes(sort_criteria(rows)) == ["P10", "P2", "M1", "D1"]

    def test_missing_band_uses_letter(self):
        rows = [
            CriterionRow("1", "M1", "", "LO1", "u1"),
            CriterionRow("2", "P1", "", "LO1", "u1"),
        ]
        assert _codes(sort_criteria(rows)) == ["P1", "M1"]

    def test_grouping(self):
        groups = group_by_learning_outcome(reversed(_pool()))
        assert [g["loCode"] for g in groups] == ["LO1", "LO2", "LO3"]
        assert _codes(groups[0]["criteria"]) == ["P1", "P2", "M1", "D1"]


# ═══════════════════════════════════════════════════════════════════════════
# Pool & views
# ═══════════════════════════════════════════════════════════════════════════


class TestViews:

    def test_unbound_pool_is_empty(self):
        assert unit_criteria_pool(_pool(), None) == []

    def test_pool_filters_other_units(self):
        pool = unit_criteria_pool(_pool("u1") + _pool("u2"), "u2")
        assert len(pool) == 10
        assert {r.unit_id for r in pool} == {"u2"}

    def test_full_view(self):
        assert _codes(full_view(_pool())) == ["P1", "P2", "P3", "P4", "P5", "M1", "M2", "M3", "D1", "D2"]

    def test_focused_detected_and_selected(self):
        rows = focused_view(_pool(), ["p1", "D 2"], ["M1"])
        assert _codes(rows) == ["P1", "M1", "D2"]

    def test_focused_ignores_codes_outside_unit(self):
        assert _codes(focused_view(_pool(), ["P9", "P1"])) == ["P1"]

    def test_lo_hints(self):
        assert extract_lo_hints("Covers LO1 and Learning Outcome 3") == {1, 3}
        assert extract_lo_hints(None) == set()

    def test_hint_narrows_detected_only(self):
        rows = focused_view(_pool(), ["P1", "P3"], ["M1"], hint_text="Task on LO2")
        assert _codes(rows) == ["P3", "M1"]

    def test_no_hint_keeps_all_detected(self):
        rows = focused_view(_pool(), ["P1", "P3"], hint_text="General brief")
        assert _codes(rows) == ["P1", "P3"]

    def test_criterion_row_to_dict(self):
        row = _pool()[0]
        assert row.to_dict()["acCode"] == "P1"
        assert row.to_dict()["loCode"] == "LO1"


class TestDetectionDiff:

    def test_diff(self):
        diff = diff_detected_codes(["P1", "p9", "m2"], _pool())
        assert diff["matched"] == ["P1", "M2"]
        assert diff["unknown"] == ["P9"]
        assert diff["undetected"] == ["P2", "P3", "P4", "P5", "M1", "M3", "D1", "D2"]

    def test_empty_pool(self):
        diff = diff_detected_codes(["P1"], [])
        assert diff == {"matched": [], "unknown": ["P1"], "undetected": []}


# ═══════════════════════════════════════════════════════════════════════════
# Mapping suggestion
# ═══════════════════════════════════════════════════════════════════════════


class TestSuggestMapping:

    def test_prefers_criteria_codes(self):
        brief = _brief(criteriaCodes=["P1", "M1", "D1"], detectedCriterionCodes=["P1", "P2", "M1", "D1"])
        result = suggest_mapping_codes(brief, _pool())
        assert result["selectedCodes"] == ["P1", "M1", "D1"]

    def test_falls_back_to_detected(self):
        brief = _brief(detectedCriterionCodes=["P2", "P1"])
        assert suggest_mapping_codes(brief)["baseCodes"] == ["P1", "P2"]

    def test_marker_artifact_dropped(self):
        brief = _brief(criteriaCodes=["P1", "P4"], rawText="Solve [[EQ:p4-eq1]] to meet P1.")
        assert suggest_mapping_codes(brief)["baseCodes"] == ["P1"]

    def test_marker_code_kept_when_also_in_text(self):
        brief = _brief(criteriaCodes=["P1", "P4"], rawText="Solve [[EQ:p4-eq1]] to meet P1 and P4.")
        assert suggest_mapping_codes(brief)["baseCodes"] == ["P1", "P4"]

    def test_merit_without_distinction_repaired(self):
        brief = _brief(criteriaCodes=["P1", "M1"])
        assert suggest_mapping_codes(brief, _pool())["selectedCodes"] == ["P1", "M1", "D1"]

    def test_stray_distinction_removed(self):
        brief = _brief(criteriaCodes=["P1", "M1", "D2"])
        result = suggest_mapping_codes(brief, _pool())
        assert result["baseCodes"] == ["P1", "M1", "D2"]
        assert result["selectedCodes"] == ["P1", "M1", "D1"]
