"""
Warning suppression for extracted brief tasks.

Raw extraction warnings describe the draft as it came out of the parser.
Once equations have been resolved (clean LaTeX, no review flag) or a
manual LaTeX override exists for the task, the low-confidence equation
warning is no longer true and is hidden.  The math-cleanup note is an
internal process marker and is never shown.
"""

from __future__ import annotations

import math
import re
from typing import Any

_CLEANUP_RE = re.compile(r"openai math cleanup applied", re.IGNORECASE)
_LOW_CONFIDENCE_RE = re.compile(r"equation quality: low-confidence", re.IGNORECASE)
_EQ_TOKEN_RE = re.compile(r"\[\[EQ:([^\]]+)\]\]")


def raw_warnings(task: dict) -> list[str]:
    warnings = task.get("warnings") if isinstance(task, dict) else None
    return [str(w) for w in warnings] if isinstance(warnings, list) else []


def referenced_equation_ids(task: dict) -> list[str]:
    ids: dict[str, None] = {}

    def collect(value: Any) -> None:
        for eq_id in _EQ_TOKEN_RE.findall(str(value or "")):
            if eq_id:
                ids[eq_id] = None

    collect(task.get("text"))
    collect(task.get("prompt"))
    parts = task.get("parts")
    if isinstance(parts, list):
        for part in parts:
            collect(part.get("text") if isinstance(part, dict) else None)
    return list(ids)


def is_resolved_equation(eq: Any) -> bool:
    if not isinstance(eq, dict):
        return False
    return bool(str(eq.get("latex") or "").strip()) and not eq.get("needsReview")


def _task_number(task: dict) -> float | None:
    try:
        n = float(task.get("n"))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n) or n <= 0:
        return None
    return n


def has_manual_latex_override(task: dict, task_latex_overrides: dict | None) -> bool:
    """True when an override keyed ``"{n}.{subpart}"`` has non-empty content."""
    n = _task_number(task)
    if n is None:
        return False
    prefix = f"{int(n) if n.is_integer() else n}."
    return any(
        str(key or "").startswith(prefix) and str(value or "").strip()
        for key, value in (task_latex_overrides or {}).items()
    )


def is_task_resolved(task: dict, equations_by_id: dict | None = None, task_latex_overrides: dict | None = None) -> bool:
    equations = task.get("equations")
    if isinstance(equations, list) and equations and all(is_resolved_equation(eq) for eq in equations):
        return True
    ids = referenced_equation_ids(task)
    if ids and all(is_resolved_equation((equations_by_id or {}).get(eq_id)) for eq_id in ids):
        return True
    return has_manual_latex_override(task, task_latex_overrides)


def effective_task_warnings(
    task: Any,
    equations_by_id: dict | None = None,
    task_latex_overrides: dict | None = None,
) -> list[str]:
    task = task if isinstance(task, dict) else {}
    resolved = is_task_resolved(task, equations_by_id, task_latex_overrides)
    return [
        w for w in raw_warnings(task)
        if not _CLEANUP_RE.search(w)
        and not (resolved and _LOW_CONFIDENCE_RE.search(w))
    ]


def is_task_ai_corrected(task: Any) -> bool:
    task = task if isinstance(task, dict) else {}
    return bool(task.get("aiCorrected")) or any(_CLEANUP_RE.search(w) for w in raw_warnings(task))


def effective_task_confidence(task: Any, warnings: list[str], override_applied: bool = False) -> str:
    """``OVERRIDDEN`` / ``HEURISTIC`` / ``CLEAN``; a heuristic task with no visible warning reads as clean."""
    task = task if isinstance(task, dict) else {}
    if override_applied:
        return "OVERRIDDEN"
    if task.get("confidence") == "HEURISTIC":
        return "HEURISTIC" if warnings else "CLEAN"
    return "CLEAN"
