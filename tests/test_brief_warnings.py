"""
Warning suppression tests for extracted brief tasks.

Covers:
  • Cleanup-applied note always hidden
  • Low-confidence equation warning hidden once the task is resolved by
    inline equations, referenced equation store ids, or a LaTeX override
  • AI-corrected indicator and effective confidence
"""

from app.services.brief_warnings import (
    effective_task_confidence,
    effective_task_warnings,
    has_manual_latex_override,
    is_resolved_equation,
    is_task_ai_corrected,
    referenced_equation_ids,
)


LOW_CONFIDENCE = "Equation quality: low-confidence parse on page 3"
CLEANUP = "OpenAI math cleanup applied"
RAW = [LOW_CONFIDENCE, CLEANUP]


def _task(**fields):
    return {"n": 2, "text": "Calculate the load.", "warnings": list(RAW), **fields}


# ═══════════════════════════════════════════════════════════════════════════
# effective_task_warnings
# ═══════════════════════════════════════════════════════════════════════════


class TestEffectiveWarnings:

    def test_override_resolves_task(self):
        warnings = effective_task_warnings(_task(), {}, {"2.a": "\\frac{1}{2}"})
        assert warnings == []

    def test_unresolved_keeps_low_confidence(self):
        assert effective_task_warnings(_task(), {}, {}) == [LOW_CONFIDENCE]

    def test_blank_override_does_not_resolve(self):
        assert effective_task_warnings(_task(), {}, {"2.a": "   "}) == [LOW_CONFIDENCE]

    def test_override_for_other_task_ignored(self):
        assert effective_task_warnings(_task(), {}, {"12.a": "x"}) == [LOW_CONFIDENCE]

    def test_inline_equations_resolve(self):
        task = _task(equations=[{"latex": "x^2", "needsReview": False}, {"latex": "y"}])
        assert effective_task_warnings(task) == []

    def test_inline_equation_needing_review(self):
        task = _task(equations=[{"latex": "x^2", "needsReview": True}])
        assert effective_task_warnings(task) == [LOW_CONFIDENCE]

    def test_referenced_equations_resolve(self):
        task = _task(text="Use [[EQ:e1]]", parts=[{"text": "then [[EQ:e2]]"}])
        store = {"e1": {"latex": "a"}, "e2": {"latex": "b", "needsReview": False}}
        assert effective_task_warnings(task, store) == []

    def test_unresolved_reference(self):
        task = _task(text="Use [[EQ:e1]] and [[EQ:e2]]")
        store = {"e1": {"latex": "a"}, "e2": {"latex": ""}}
        assert effective_task_warnings(task, store) == [LOW_CONFIDENCE]

    def test_other_warnings_kept(self):
        task = _task(warnings=["Table detected on page 2", CLEANUP])
        assert effective_task_warnings(task, {}, {"2.a": "x"}) == ["Table detected on page 2"]

    def test_malformed_task(self):
        assert effective_task_warnings(None) == []
        assert effective_task_warnings({"warnings": "nope"}) == []


# ═══════════════════════════════════════════════════════════════════════════
# Helpers, AI-corrected flag, confidence
# ═══════════════════════════════════════════════════════════════════════════


class TestHelpers:

    def test_referenced_ids_deduplicated(self):
        task = {"text": "[[EQ:a]] [[EQ:b]]", "prompt": "[[EQ:a]]"}
        assert referenced_equation_ids(task) == ["a", "b"]

    def test_is_resolved_equation(self):
        assert is_resolved_equation({"latex": "x"}) is True
        assert is_resolved_equation({"latex": "  "}) is False
        assert is_resolved_equation({"latex": "x", "needsReview": True}) is False
        assert is_resolved_equation(None) is False

    def test_override_requires_valid_task_number(self):
        assert has_manual_latex_override({"n": "abc"}, {"abc.a": "x"}) is False
        assert has_manual_latex_override({"n": 0}, {"0.a": "x"}) is False
        assert has_manual_latex_override({"n": "3"}, {"3.b": "x"}) is True


class TestAiCorrectedAndConfidence:

    def test_ai_corrected_from_warning(self):
        assert is_task_ai_corrected(_task()) is True

    def test_ai_corrected_flag(self):
        assert is_task_ai_corrected({"aiCorrected": True, "warnings": []}) is True
        assert is_task_ai_corrected({"warnings": [LOW_CONFIDENCE]}) is False

    def test_confidence_overridden(self):
        assert effective_task_confidence({"confidence": "HEURISTIC"}, [], override_applied=True) == "OVERRIDDEN"

    def test_heuristic_with_warnings(self):
        assert effective_task_confidence({"confidence": "HEURISTIC"}, [LOW_CONFIDENCE]) == "HEURISTIC"

    def test_heuristic_without_visible_warning_is_clean(self):
        assert effective_task_confidence({"confidence": "HEURISTIC"}, []) == "CLEAN"

    def test_default_clean(self):
        assert effective_task_confidence({}, [LOW_CONFIDENCE]) == "CLEAN"
