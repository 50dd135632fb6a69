"""
Extraction draft variant tests.

Covers:
  • parse_draft: SPEC / BRIEF / Unknown coercion of malformed payloads
  • summarize_draft: audit history summaries
  • merge_brief_by_task_numbers: partial re-extract of selected tasks
"""

from app.services.drafts import (
    BriefDraft,
    SpecDraft,
    UnknownDraft,
    collect_equation_ids,
    infer_band,
    merge_brief_by_task_numbers,
    parse_draft,
    summarize_draft,
)


# ═══════════════════════════════════════════════════════════════════════════
# parse_draft
# ═══════════════════════════════════════════════════════════════════════════


class TestParseDraft:

    def test_non_dict_is_unknown(self):
        assert isinstance(parse_draft(None), UnknownDraft)
        assert isinstance(parse_draft(["x"]), UnknownDraft)

    def test_unknown_kind(self):
        draft = parse_draft({"kind": "RUBRIC"})
        assert isinstance(draft, UnknownDraft)
        assert draft.raw == {"kind": "RUBRIC"}

    def test_spec_draft(self):
        draft = parse_draft({
            "kind": "spec",
            "parserVersion": "v2",
            "unit": {"unitCode": " 4017 ", "unitTitle": "Quality", "specIssue": "Issue 5"},
            "learningOutcomes": [
                {"loCode": "lo1", "description": "Explain", "criteria": [
                    {"acCode": "p 1", "gradeBand": "pass"},
                    {"acCode": "m1"},
                    {"acCode": ""},
                ]},
                {"description": "no code"},
                "garbage",
            ],
        })
        assert isinstance(draft, SpecDraft)
        assert draft.unit_code == "4017"
        assert draft.spec_issue == "Issue 5"
        assert draft.parser_version == "v2"
        assert len(draft.learning_outcomes) == 1
        lo = draft.learning_outcomes[0]
        assert lo.lo_code == "LO1"
        assert [(c.ac_code, c.grade_band) for c in lo.criteria] == [("P1", "PASS"), ("M1", "MERIT")]
        assert draft.criteria_count == 2

    def test_brief_draft_normalises_codes(self):
        draft = parse_draft({
            "kind": "BRIEF",
            "assignmentCode": " a1 ",
            "title": "Brief",
            "detectedCriterionCodes": ["p1", "P1", "m 2", "bogus"],
            "tasks": [{"n": 1}, "x"],
            "equations": "not-a-list",
            "rawText": 42,
        })
        assert isinstance(draft, BriefDraft)
        assert draft.assignment_code == "A1"
        assert draft.detected_criterion_codes == ("M2", "P1")
        assert draft.tasks == ({"n": 1},)
        assert draft.equations == ()
        assert draft.raw_text == ""

    def test_equations_by_id(self):
        draft = parse_draft({"kind": "BRIEF", "equations": [{"id": "e1", "latex": "x"}, {"latex": "y"}]})
        assert list(draft.equations_by_id()) == ["e1"]

    def test_infer_band(self):
        assert infer_band("p1") == "PASS"
        assert infer_band("M2") == "MERIT"
        assert infer_band("D3") == "DISTINCTION"


# ═══════════════════════════════════════════════════════════════════════════
# Summaries
# ═══════════════════════════════════════════════════════════════════════════


class TestSummarizeDraft:

    def test_none(self):
        assert summarize_draft(None) is None

    def test_spec_counts(self):
        summary = summarize_draft({
            "kind": "SPEC",
            "unit": {"unitCode": "U1"},
            "learningOutcomes": [{"loCode": "LO1", "criteria": [{"acCode": "P1"}, {"acCode": "M1"}]}],
        })
        assert summary["unitCode"] == "U1"
        assert summary["loCount"] == 1
        assert summary["criteriaCount"] == 2
        assert summary["detectedCount"] is None

    def test_brief_detected_count(self):
        summary = summarize_draft({"kind": "BRIEF", "detectedCriterionCodes": ["P1", "P2"]})
        assert summary["detectedCount"] == 2
        assert summary["loCount"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Partial re-extract
# ═══════════════════════════════════════════════════════════════════════════


def _prev():
    return {
        "kind": "BRIEF",
        "title": "Old",
        "tasks": [
            {"n": 1, "text": "Use [[EQ:e1]]"},
            {"n": 2, "text": "Old two [[EQ:e2]]"},
            {"n": 3, "text": "Three"},
        ],
        "scenarios": [
            {"appliesToTask": 1, "text": "s1"},
            {"appliesToTask": 2, "text": "old s2"},
        ],
        "equations": [{"id": "e1", "latex": "a"}, {"id": "e2", "latex": "b"}],
        "pageCount": 3,
    }


def _new():
    return {
        "kind": "BRIEF",
        "title": "New",
        "tasks": [
            {"n": 2, "text": "New two [[EQ:e3]]"},
            {"n": 4, "text": "Four"},
        ],
        "scenarios": [{"appliesToTask": 2, "text": "new s2"}],
        "equations": [{"id": "e3", "latex": "c"}],
        "pageCount": 4,
    }


class TestMergeBriefByTaskNumbers:

    def test_only_selected_task_replaced(self):
        merged = merge_brief_by_task_numbers(_prev(), _new(), [2])
        assert [t["n"] for t in merged["tasks"]] == [1, 2, 3]
        assert merged["tasks"][1]["text"].startswith("New two")
        assert merged["title"] == "Old"
        assert merged["pageCount"] == 4

    def test_new_task_appended_when_selected(self):
        merged = merge_brief_by_task_numbers(_prev(), _new(), [2, 4])
        assert [t["n"] for t in merged["tasks"]] == [1, 2, 3, 4]

    def test_scenarios_swapped_for_selected(self):
        merged = merge_brief_by_task_numbers(_prev(), _new(), [2])
        assert [s["text"] for s in merged["scenarios"]] == ["s1", "new s2"]

    def test_equations_recollected(self):
        merged = merge_brief_by_task_numbers(_prev(), _new(), [2])
        assert [e["id"] for e in merged["equations"]] == ["e1", "e3"]
        assert collect_equation_ids(merged) == {"e1", "e3"}
