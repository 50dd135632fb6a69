"""
Grading-scope changes on a locked assignment brief.

Two steps, both pure:

1. ``validate_grading_scope_change`` — exactly one criterion may enter or
   leave the exclusion set per request, the caller's declared change must
   equal the computed diff, and a reason is mandatory.
2. ``apply_grading_scope_change`` — produce the next ``source_meta`` keys:
   the exclusion set, the live reasons map and the capped change log.

The log is the history; the reasons map is the fold of the log over the
previous reasons (``fold_exclusion_reasons``), so both views always come
out of one reducer.  The previous map is the fold's starting state because
capped-away log entries may still hold live exclusions.

Validation order mirrors what the UI reports first:
    ONE_AT_A_TIME → REASON_REQUIRED (bad code) → MISMATCH → REASON_REQUIRED (short reason)
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Iterable

from app.core.outcomes import GovernanceOutcome
from app.services.criteria_codes import normalize_criteria_code_list, normalize_criterion_code
from app.utils.errors import E

EXCLUSION_LOG_CAP = 120
MIN_REASON_LENGTH = 6

EXCLUSIONS_KEY = "gradingCriteriaExclusions"
REASONS_KEY = "gradingCriteriaExclusionReasons"
LOG_KEY = "gradingCriteriaExclusionLog"


def to_bool(value: Any) -> bool:
    """``True``, ``"true"`` (any case) and ``"1"`` are true; everything else is false."""
    if value is True:
        return True
    if value is None or value is False:
        return False
    text = str(value)
    return text.lower() == "true" or text == "1"


def validate_grading_scope_change(
    previous_excluded: Any,
    next_excluded: Any,
    change: Any,
    *,
    min_reason_length: int = MIN_REASON_LENGTH,
) -> GovernanceOutcome:
    """Check a single-criterion scope change against the actual diff.

    On success ``data`` holds ``criterionCode, excluded, reason,
    confirmLiveChange, previousExcluded, nextExcluded``.
    """
    previous = normalize_criteria_code_list(previous_excluded)
    nxt = normalize_criteria_code_list(next_excluded)
    added = [c for c in nxt if c not in previous]
    removed = [c for c in previous if c not in nxt]

    if len(added) + len(removed) != 1:
        return GovernanceOutcome.failure(
            E.SCOPE_CHANGE_ONE_AT_A_TIME,
            "Change exactly one criterion per request.",
            details={"previousExcluded": previous, "nextExcluded": nxt, "added": added, "removed": removed},
        )

    inferred_code = added[0] if added else removed[0]
    inferred_excluded = bool(added)

    change = change if isinstance(change, dict) else {}
    criterion_code = normalize_criterion_code(change.get("criterionCode"))
    excluded = to_bool(change.get("excluded"))
    reason = str(change.get("reason") or "").strip()
    confirm_live_change = to_bool(change.get("confirmLiveChange"))

    if not criterion_code:
        return GovernanceOutcome.failure(
            E.SCOPE_CHANGE_REASON_REQUIRED,
            "Missing or invalid criterion code for grading scope change.",
            details={"inferredCriterionCode": inferred_code, "inferredExcluded": inferred_excluded},
        )
    if criterion_code != inferred_code or excluded != inferred_excluded:
        return GovernanceOutcome.failure(
            E.SCOPE_CHANGE_MISMATCH,
            "Requested scope change does not match the exclusions diff.",
            details={
                "inferredCriterionCode": inferred_code,
                "inferredExcluded": inferred_excluded,
                "requestedCriterionCode": criterion_code,
                "requestedExcluded": excluded,
            },
        )
    if len(reason) < min_reason_length:
        return GovernanceOutcome.failure(
            E.SCOPE_CHANGE_REASON_REQUIRED,
            f"A short reason (minimum {min_reason_length} characters) is required.",
            details={"criterionCode": criterion_code, "excluded": excluded},
        )

    return GovernanceOutcome.success(
        criterionCode=criterion_code,
        excluded=excluded,
        reason=reason,
        confirmLiveChange=confirm_live_change,
        previousExcluded=previous,
        nextExcluded=nxt,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Audit trail
# ═════════════════════════════════════════════════════════════════════════════

def fold_exclusion_reasons(entries: Iterable[dict], initial: dict | None = None) -> dict:
    """Replay log entries over a reasons map.

    An excluding entry upserts ``{reason, at, actor}``; a re-including entry
    removes the key.
    """
    reasons = {k: dict(v) for k, v in (initial or {}).items() if isinstance(v, dict)}
    for entry in entries:
        code = normalize_criterion_code(entry.get("criterionCode"))
        if not code:
            continue
        if entry.get("excluded"):
            reasons[code] = {
                "reason": entry.get("reason") or "",
                "at": entry.get("at"),
                "actor": entry.get("actor") or "system",
            }
        else:
            reasons.pop(code, None)
    return reasons


def clamp_count(value: Any) -> int:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return max(0, math.floor(number))


def apply_grading_scope_change(
    previous_meta: Any,
    change: dict,
    *,
    actor: str | None = None,
    now: datetime | None = None,
    graded_submission_count: Any = 0,
    log_cap: int = EXCLUSION_LOG_CAP,
) -> dict:
    """Return the updated exclusion keys for a brief's ``source_meta``.

    ``change`` is the validated payload (``criterionCode, excluded, reason``).
    Only the last ``log_cap`` log entries are kept.
    """
    meta = previous_meta if isinstance(previous_meta, dict) else {}
    at = (now or datetime.now(timezone.utc)).isoformat()
    code = change["criterionCode"]
    excluded = bool(change["excluded"])

    entry = {
        "criterionCode": code,
        "excluded": excluded,
        "reason": change.get("reason") or "",
        "at": at,
        "actor": actor or "system",
        "gradedSubmissionCount": clamp_count(graded_submission_count),
    }
    previous_log = meta.get(LOG_KEY) if isinstance(meta.get(LOG_KEY), list) else []
    log = (list(previous_log) + [entry])[-log_cap:]

    previous_reasons = meta.get(REASONS_KEY) if isinstance(meta.get(REASONS_KEY), dict) else {}
    reasons = fold_exclusion_reasons([entry], previous_reasons)

    exclusions = set(normalize_criteria_code_list(meta.get(EXCLUSIONS_KEY)))
    if excluded:
        exclusions.add(code)
    else:
        exclusions.discard(code)

    return {
        EXCLUSIONS_KEY: sorted(exclusions),
        REASONS_KEY: reasons,
        LOG_KEY: log,
    }
