"""
Extraction draft variant.

The extraction producer hands over an untyped JSON payload.  ``parse_draft``
coerces it once into ``SpecDraft | BriefDraft | UnknownDraft`` so the
lifecycle engine and criteria matcher can branch on type instead of probing
fields.  Missing or wrongly-typed fields become empty defaults; nothing in
this module raises on malformed input.

The raw payload is still what gets stored on the document
(``ReferenceDocument.extracted_draft``); the variant is a read view.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Union

from app.services.criteria_codes import clean_code, normalize_criteria_code_list

_EQ_TOKEN_RE = re.compile(r"\[\[EQ:([^\]]+)\]\]")

_BAND_BY_LETTER = {"P": "PASS", "M": "MERIT", "D": "DISTINCTION"}


# ── Coercion helpers ─────────────────────────────────────────────────────────

def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def infer_band(ac_code: str) -> str:
    return _BAND_BY_LETTER.get(clean_code(ac_code)[:1], "DISTINCTION")


# ═════════════════════════════════════════════════════════════════════════════
# Variant types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DraftCriterion:
    ac_code: str
    grade_band: str
    description: str = ""


@dataclass(frozen=True)
class DraftLearningOutcome:
    lo_code: str
    description: str = ""
    essential_content: str | None = None
    criteria: tuple[DraftCriterion, ...] = ()


@dataclass(frozen=True)
class SpecDraft:
    unit_code: str
    unit_title: str
    spec_issue: str | None
    learning_outcomes: tuple[DraftLearningOutcome, ...]
    parser_version: str | None = None
    raw: dict = field(default_factory=dict, compare=False)

    kind = "SPEC"

    @property
    def criteria_count(self) -> int:
        return sum(len(lo.criteria) for lo in self.learning_outcomes)


@dataclass(frozen=True)
class BriefDraft:
    assignment_code: str
    title: str
    unit_code_guess: str
    detected_criterion_codes: tuple[str, ...]
    criteria_codes: tuple[str, ...] = ()
    criteria_refs: tuple[str, ...] = ()
    raw_text: str = ""
    tasks: tuple[dict, ...] = ()
    equations: tuple[dict, ...] = ()
    warnings: tuple[str, ...] = ()
    parser_version: str | None = None
    raw: dict = field(default_factory=dict, compare=False)

    kind = "BRIEF"

    def equations_by_id(self) -> dict[str, dict]:
        out = {}
        for eq in self.equations:
            eq_id = str(eq.get("id") or "")
            if eq_id:
                out[eq_id] = eq
        return out


@dataclass(frozen=True)
class UnknownDraft:
    raw: Any = None

    kind = "UNKNOWN"


Draft = Union[SpecDraft, BriefDraft, UnknownDraft]


# ═════════════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════════════

def _parse_spec(raw: dict) -> SpecDraft:
    unit = _dict(raw.get("unit"))
    los = []
    for lo in _list(raw.get("learningOutcomes")):
        lo = _dict(lo)
        lo_code = clean_code(lo.get("loCode"))
        if not lo_code:
            continue
        criteria = []
        for c in _list(lo.get("criteria")):
            c = _dict(c)
            ac_code = clean_code(c.get("acCode"))
            if not ac_code:
                continue
            band = _str(c.get("gradeBand")).upper() or infer_band(ac_code)
            criteria.append(DraftCriterion(ac_code=ac_code, grade_band=band, description=_str(c.get("description"))))
        los.append(DraftLearningOutcome(
            lo_code=lo_code,
            description=_str(lo.get("description")),
            essential_content=_str(lo.get("essentialContent")) or None,
            criteria=tuple(criteria),
        ))
    return SpecDraft(
        unit_code=_str(unit.get("unitCode")),
        unit_title=_str(unit.get("unitTitle")),
        spec_issue=_str(unit.get("specIssue")) or None,
        learning_outcomes=tuple(los),
        parser_version=_str(raw.get("parserVersion")) or None,
        raw=raw,
    )


def _parse_brief(raw: dict) -> BriefDraft:
    return BriefDraft(
        assignment_code=_str(raw.get("assignmentCode")).upper(),
        title=_str(raw.get("title")),
        unit_code_guess=_str(raw.get("unitCodeGuess")),
        detected_criterion_codes=tuple(normalize_criteria_code_list(raw.get("detectedCriterionCodes"))),
        criteria_codes=tuple(normalize_criteria_code_list(raw.get("criteriaCodes"))),
        criteria_refs=tuple(normalize_criteria_code_list(raw.get("criteriaRefs"))),
        raw_text=raw.get("rawText") if isinstance(raw.get("rawText"), str) else "",
        tasks=tuple(_dict(t) for t in _list(raw.get("tasks")) if isinstance(t, dict)),
        equations=tuple(_dict(e) for e in _list(raw.get("equations")) if isinstance(e, dict)),
        warnings=tuple(str(w) for w in _list(raw.get("warnings"))),
        parser_version=_str(raw.get("parserVersion")) or None,
        raw=raw,
    )


def parse_draft(raw: Any) -> Draft:
    """Coerce an extraction payload into its tagged variant."""
    if not isinstance(raw, dict):
        return UnknownDraft(raw=raw)
    kind = _str(raw.get("kind")).upper()
    if kind == "SPEC":
        return _parse_spec(raw)
    if kind == "BRIEF":
        return _parse_brief(raw)
    return UnknownDraft(raw=raw)


# ═════════════════════════════════════════════════════════════════════════════
# Summaries & partial re-extract merge
# ═════════════════════════════════════════════════════════════════════════════

def summarize_draft(raw: Any) -> dict | None:
    """Compact before/after description of a draft for audit history."""
    if not isinstance(raw, dict):
        return None
    draft = parse_draft(raw)
    unit = _dict(raw.get("unit"))
    summary = {
        "kind": raw.get("kind"),
        "parserVersion": raw.get("parserVersion"),
        "unitCode": unit.get("unitCode"),
        "specIssue": unit.get("specIssue"),
        "loCount": None,
        "criteriaCount": None,
        "detectedCount": None,
    }
    if isinstance(draft, SpecDraft):
        summary["loCount"] = len(draft.learning_outcomes)
        summary["criteriaCount"] = draft.criteria_count
    if isinstance(raw.get("detectedCriterionCodes"), list):
        summary["detectedCount"] = len(raw["detectedCriterionCodes"])
    return summary


def collect_equation_ids(raw: Any) -> set[str]:
    """Equation ids referenced by ``[[EQ:id]]`` tokens across tasks and scenarios."""
    ids: set[str] = set()
    src = _dict(raw)

    def collect(value: Any) -> None:
        ids.update(m for m in _EQ_TOKEN_RE.findall(str(value or "")) if m)

    for task in _list(src.get("tasks")):
        task = _dict(task)
        collect(task.get("text"))
        collect(task.get("prompt"))
        collect(task.get("scenarioText"))
        for part in _list(task.get("parts")):
            collect(_dict(part).get("text"))
    for scenario in _list(src.get("scenarios")):
        collect(_dict(scenario).get("text"))
    return ids


def _task_number(task: Any) -> int | None:
    try:
        n = _dict(task).get("n")
        if isinstance(n, bool):
            return None
        value = int(n)
        return value if str(value) == str(n).strip() else None
    except (TypeError, ValueError):
        return None


def merge_brief_by_task_numbers(prev: dict, new: dict, task_numbers: list[int]) -> dict:
    """Replace only the selected tasks of ``prev`` with their counterparts in ``new``.

    Scenarios that apply to a selected task are swapped too.  Equations are
    re-collected from both drafts, keeping only ids still referenced.
    """
    selected = set(task_numbers)
    new_by_n = {}
    for task in _list(_dict(new).get("tasks")):
        n = _task_number(task)
        if n is not None:
            new_by_n[n] = task

    merged_tasks = []
    seen = set()
    for old in _list(_dict(prev).get("tasks")):
        n = _task_number(old)
        if n is None:
            merged_tasks.append(old)
            continue
        seen.add(n)
        merged_tasks.append(new_by_n[n] if n in selected and n in new_by_n else old)
    for n in sorted(selected):
        if n not in seen and n in new_by_n:
            merged_tasks.append(new_by_n[n])
    merged_tasks.sort(key=lambda t: _task_number(t) or 0)

    def applies_to(scenario: Any) -> int | None:
        try:
            return int(_dict(scenario).get("appliesToTask"))
        except (TypeError, ValueError):
            return None

    carry = [s for s in _list(prev.get("scenarios")) if applies_to(s) not in selected]
    replace = [s for s in _list(new.get("scenarios")) if applies_to(s) in selected]

    merged = dict(prev)
    merged["tasks"] = merged_tasks
    merged["scenarios"] = carry + replace
    for key in ("pageCount", "hasFormFeedBreaks", "extractionWarnings", "preview", "charCount"):
        if new.get(key) is not None:
            merged[key] = new[key]

    eq_map = {}
    for eq in _list(prev.get("equations")) + _list(new.get("equations")):
        eq_id = str(_dict(eq).get("id") or "")
        if eq_id:
            eq_map[eq_id] = eq
    referenced = collect_equation_ids(merged)
    merged["equations"] = [eq_map[i] for i in sorted(referenced) if i in eq_map]
    return merged
