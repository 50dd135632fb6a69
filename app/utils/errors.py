"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Reference document not found")
    return api_error(E.BRIEF_IN_USE, "Cannot unlock", details={"submissionCount": 3})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for request-level errors (malformed input, missing rows)
     • BRIEF_ / REFERENCE_ prefixes for governance outcomes
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"

    # Lock conflict protocol – HTTP 409
    BRIEF_ALREADY_LOCKED = "BRIEF_ALREADY_LOCKED"

    # Usage guards – HTTP 409
    BRIEF_IN_USE = "BRIEF_IN_USE"

    # Grading-scope change validation – HTTP 400
    SCOPE_CHANGE_ONE_AT_A_TIME = "BRIEF_CRITERIA_SCOPE_CHANGE_ONE_AT_A_TIME"
    SCOPE_CHANGE_REASON_REQUIRED = "BRIEF_CRITERIA_SCOPE_CHANGE_REASON_REQUIRED"
    SCOPE_CHANGE_MISMATCH = "BRIEF_CRITERIA_SCOPE_CHANGE_MISMATCH"
    LIVE_CHANGE_CONFIRMATION_REQUIRED = "BRIEF_CRITERIA_SCOPE_CHANGE_CONFIRMATION_REQUIRED"

    # Lifecycle guards
    REFERENCE_LOCKED = "REFERENCE_LOCKED"
    REEXTRACT_REASON_REQUIRED = "REEXTRACT_REASON_REQUIRED"
    NOT_LOCKED = "NOT_LOCKED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
    NO_DRAFT = "NO_DRAFT"
    UNIT_REQUIRED = "UNIT_REQUIRED"
    ASSIGNMENT_CODE_REQUIRED = "ASSIGNMENT_CODE_REQUIRED"
    LOCK_QUALITY_BLOCKED = "LOCK_QUALITY_BLOCKED"

    # Optimistic concurrency – HTTP 409
    STALE_WRITE = "STALE_WRITE"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.INTERNAL: 500,
    E.BRIEF_ALREADY_LOCKED: 409,
    E.BRIEF_IN_USE: 409,
    E.SCOPE_CHANGE_ONE_AT_A_TIME: 400,
    E.SCOPE_CHANGE_REASON_REQUIRED: 400,
    E.SCOPE_CHANGE_MISMATCH: 409,
    E.LIVE_CHANGE_CONFIRMATION_REQUIRED: 409,
    E.REFERENCE_LOCKED: 423,
    E.REEXTRACT_REASON_REQUIRED: 400,
    E.NOT_LOCKED: 409,
    E.INVALID_TRANSITION: 409,
    E.UNSUPPORTED_TYPE: 400,
    E.NO_DRAFT: 400,
    E.UNIT_REQUIRED: 400,
    E.ASSIGNMENT_CODE_REQUIRED: 400,
    E.LOCK_QUALITY_BLOCKED: 422,
    E.STALE_WRITE: 409,
}


def status_for(code: str) -> int:
    """HTTP status for an error code (400 when unmapped)."""
    return _DEFAULT_STATUS.get(code, 400)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation shown to the operator.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (conflicting brief, diff sets, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or status_for(code)

    body: dict = {
        "ok": False,
        "error": code,
        "message": message,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
