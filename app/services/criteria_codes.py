"""
Criterion code normalisation.

Canonical criterion codes are a band letter followed by the decimal value
without leading zeros: ``"p 03"`` → ``"P3"``, ``"M 12"`` → ``"M12"``.
Anything that does not match returns ``None`` rather than raising.

``normalize_criteria_code_list`` is the canonical serialisation used for
diffing exclusion sets: de-duplicated and sorted lexicographically.
``sort_criteria_codes`` is the display order (band, then number).
"""

from __future__ import annotations

import re
from typing import Any, Iterable

_CODE_RE = re.compile(r"^\s*([PMD])\s*(\d{1,2})\s*$", re.IGNORECASE)
_MARKER_RE = re.compile(r"\[\[[^\]]+\]\]")
_TEXT_CODE_RE = re.compile(r"\b([PMD])\s*(\d+)\b", re.IGNORECASE)

_BAND_ORDER = {"P": 0, "M": 1, "D": 2}


def normalize_criterion_code(value: Any) -> str | None:
    """Return the canonical form of a criterion code, or None."""
    if value is None:
        return None
    m = _CODE_RE.match(str(value))
    if not m:
        return None
    return f"{m.group(1).upper()}{int(m.group(2))}"


def normalize_criteria_code_list(values: Any) -> list[str]:
    """Normalise, drop invalid entries, de-duplicate and sort.

    Non-list input (None, a bare string, a dict) yields an empty list.
    """
    if not isinstance(values, (list, tuple, set, frozenset)):
        return []
    codes = {normalize_criterion_code(v) for v in values}
    codes.discard(None)
    return sorted(codes)


def clean_code(value: Any) -> str:
    """Strip all whitespace and upper-case; no pattern check."""
    return re.sub(r"\s+", "", str(value or "")).upper()


def code_number(code: str) -> int:
    m = re.search(r"\d+", code or "")
    return int(m.group(0)) if m else 999


def sort_criteria_codes(codes: Iterable[str]) -> list[str]:
    """Display order: PASS codes, then MERIT, then DISTINCTION, numeric within a band."""
    return sorted(
        codes,
        key=lambda c: (_BAND_ORDER.get((c or "")[:1].upper(), 9), code_number(c), c),
    )


def extract_criteria_codes_from_text(text: str | None) -> list[str]:
    """Find criterion codes in free text.

    Synthetic extraction markers such as ``[[EQ:p4-eq1]]`` are blanked out
    first so their contents are never read as codes.
    """
    if not text:
        return []
    scrubbed = _MARKER_RE.sub(" ", str(text))
    found = set()
    for letter, digits in _TEXT_CODE_RE.findall(scrubbed):
        code = normalize_criterion_code(f"{letter}{digits}")
        if code:
            found.add(code)
    return sort_criteria_codes(found)


def marker_artifact_codes(text: str | None) -> set[str]:
    """Codes that appear inside ``[[…]]`` markers."""
    out = set()
    for marker in _MARKER_RE.findall(str(text or "")):
        for letter, digits in _TEXT_CODE_RE.findall(marker):
            out.add(f"{letter.upper()}{int(digits)}")
    return out
