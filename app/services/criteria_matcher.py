"""
Criteria Matcher

Reconciles the codes an extraction run detected in a document against the
canonical criteria of the unit the document is bound to.

Views:
    focused_view  — detected-or-selected criteria, optionally narrowed by
                    learning-outcome hints found in free text
    full_view     — every criterion of the bound unit

Both views share one ordering (band rank, then normalised code as a string)
and can be grouped by learning outcome for display.  An unbound document
has an empty candidate pool; that is not an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from app.services.criteria_codes import (
    clean_code,
    code_number,
    extract_criteria_codes_from_text,
    marker_artifact_codes,
    normalize_criterion_code,
    sort_criteria_codes,
)
from app.services.drafts import BriefDraft

BAND_RANK = {"PASS": 1, "MERIT": 2, "DISTINCTION": 3}
_LETTER_RANK = {"P": 1, "M": 2, "D": 3}
_OTHER_RANK = 9

_LO_HINT_RES = (
    re.compile(r"\bLO\s*(\d+)", re.IGNORECASE),
    re.compile(r"learning outcome\s*(\d+)", re.IGNORECASE),
)


@dataclass(frozen=True)
class CriterionRow:
    """Flat, detached view of a unit criterion."""

    id: str
    ac_code: str
    grade_band: str
    lo_code: str
    unit_id: str
    description: str = ""

    @classmethod
    def from_model(cls, criterion) -> CriterionRow:
        lo = criterion.learning_outcome
        return cls(
            id=criterion.id,
            ac_code=criterion.ac_code,
            grade_band=criterion.grade_band,
            lo_code=lo.lo_code if lo else "",
            unit_id=lo.unit_id if lo else "",
            description=criterion.description or "",
        )

    @property
    def code(self) -> str:
        return normalize_criterion_code(self.ac_code) or clean_code(self.ac_code)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "acCode": self.ac_code,
            "gradeBand": self.grade_band,
            "loCode": self.lo_code,
            "unitId": self.unit_id,
            "description": self.description,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Ordering & grouping
# ═════════════════════════════════════════════════════════════════════════════

def band_rank(grade_band: str | None, ac_code: str | None = None) -> int:
    """Rank by exact band string, falling back to the code's leading letter."""
    if grade_band in BAND_RANK:
        return BAND_RANK[grade_band]
    if not grade_band:
        return _LETTER_RANK.get(clean_code(ac_code)[:1], _OTHER_RANK)
    return _OTHER_RANK


def criterion_sort_key(row: CriterionRow) -> tuple[int, str]:
    return band_rank(row.grade_band, row.ac_code), row.code


def sort_criteria(rows: Iterable[CriterionRow]) -> list[CriterionRow]:
    return sorted(rows, key=criterion_sort_key)


def group_by_learning_outcome(rows: Iterable[CriterionRow]) -> list[dict]:
    """``[{"loCode", "criteria": [...]}, …]`` with groups ordered by loCode."""
    groups: dict[str, list[CriterionRow]] = {}
    for row in rows:
        groups.setdefault(row.lo_code, []).append(row)
    return [
        {"loCode": lo_code, "criteria": sort_criteria(groups[lo_code])}
        for lo_code in sorted(groups)
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Pool & views
# ═════════════════════════════════════════════════════════════════════════════

def unit_criteria_pool(all_criteria: Iterable[CriterionRow], bound_unit_id: str | None) -> list[CriterionRow]:
    if not bound_unit_id:
        return []
    return [c for c in all_criteria if c.unit_id == bound_unit_id]


def extract_lo_hints(text: str | None) -> set[int]:
    """Learning-outcome numbers mentioned as ``LO2`` or ``learning outcome 2``."""
    hints = set()
    for pattern in _LO_HINT_RES:
        hints.update(int(n) for n in pattern.findall(str(text or "")))
    return hints


def _normalized_set(codes: Iterable[str] | None) -> set[str]:
    out = set()
    for code in codes or []:
        canonical = normalize_criterion_code(code)
        if canonical:
            out.add(canonical)
    return out


def focused_view(
    pool: Iterable[CriterionRow],
    detected_codes: Iterable[str] | None,
    selected_codes: Iterable[str] | None = None,
    hint_text: str | None = None,
) -> list[CriterionRow]:
    """Criteria detected in the document or already selected.

    When ``hint_text`` mentions learning outcomes, detected-only candidates
    outside those outcomes are dropped.  Selected criteria always stay.
    """
    detected = _normalized_set(detected_codes)
    selected = _normalized_set(selected_codes)
    hints = extract_lo_hints(hint_text)

    rows = []
    for row in pool:
        code = row.code
        if code in selected:
            rows.append(row)
        elif code in detected:
            if hints and code_number(row.lo_code) not in hints:
                continue
            rows.append(row)
    return sort_criteria(rows)


def full_view(pool: Iterable[CriterionRow]) -> list[CriterionRow]:
    return sort_criteria(pool)


# ═════════════════════════════════════════════════════════════════════════════
# Detection diff & mapping suggestion
# ═════════════════════════════════════════════════════════════════════════════

def diff_detected_codes(detected_codes: Iterable[str] | None, pool: Iterable[CriterionRow]) -> dict:
    """Compare detected codes with the unit's criteria.

    Returns ``{"matched", "unknown", "undetected"}`` in display order;
    ``unknown`` holds detected codes the unit does not define.
    """
    detected = _normalized_set(detected_codes)
    unit_codes = {row.code for row in pool}
    return {
        "matched": sort_criteria_codes(detected & unit_codes),
        "unknown": sort_criteria_codes(detected - unit_codes),
        "undetected": sort_criteria_codes(unit_codes - detected),
    }


def _preferred_codes(brief: BriefDraft) -> list[str]:
    for source in (brief.criteria_codes, brief.criteria_refs, brief.detected_criterion_codes):
        if source:
            return list(dict.fromkeys(clean_code(c) for c in source if clean_code(c)))
    return []


def _strip_marker_artifacts(codes: list[str], raw_text: str) -> list[str]:
    if not codes or not raw_text.strip():
        return codes
    outside = set(extract_criteria_codes_from_text(raw_text))
    artifacts = marker_artifact_codes(raw_text)
    return [c for c in codes if not (c in artifacts and c not in outside)]


def _repair_lo_progression(codes: list[str], pool: list[CriterionRow]) -> list[str]:
    by_code = {row.code: row for row in pool}
    selected = set(codes)
    rows = [by_code[c] for c in selected if c in by_code]
    active_los = {r.lo_code for r in rows if r.grade_band in ("PASS", "MERIT") and r.lo_code}

    gap = False
    for lo_code in {r.lo_code for r in rows if r.lo_code}:
        bands = {r.grade_band for r in rows if r.lo_code == lo_code}
        if "MERIT" not in bands or "DISTINCTION" in bands:
            continue
        gap = True
        candidates = sorted(
            (r for r in pool if r.lo_code == lo_code and r.grade_band == "DISTINCTION"),
            key=lambda r: code_number(r.ac_code),
        )
        if candidates:
            selected.add(candidates[0].code)

    # Stray distinctions from unrelated LOs are usually code artifacts.
    if gap and active_los:
        for code in list(selected):
            row = by_code.get(code)
            if row and row.grade_band == "DISTINCTION" and row.lo_code not in active_los:
                selected.discard(code)
    return sort_criteria_codes(selected)


def suggest_mapping_codes(brief: BriefDraft, pool: Iterable[CriterionRow] | None = None) -> dict:
    """Pick the criteria a brief should map to.

    Returns ``{"baseCodes", "selectedCodes"}``.  ``baseCodes`` are the
    preferred extracted codes minus marker artifacts; ``selectedCodes``
    additionally repairs learning-outcome progression against the pool.
    """
    base = _strip_marker_artifacts(_preferred_codes(brief), brief.raw_text)
    pool = list(pool or [])
    selected = _repair_lo_progression(base, pool) if pool else sort_criteria_codes(base)
    return {"baseCodes": sort_criteria_codes(base), "selectedCodes": selected}
