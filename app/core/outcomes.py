"""
Structured results for governance operations.

Every engine in ``app.services`` answers with a ``GovernanceOutcome``
instead of raising for expected business conditions.  Callers branch on
``outcome.error`` and show ``outcome.message`` to a human.

Usage:
    from app.core.outcomes import GovernanceOutcome

    return GovernanceOutcome.failure(E.BRIEF_IN_USE, "Cannot unlock", details={...})
    return GovernanceOutcome.success(status="EXTRACTED")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class GovernanceOutcome:
    ok: bool
    error: str | None = None
    message: str = ""
    details: dict = field(default_factory=dict)
    data: dict = field(default_factory=dict)

    @classmethod
    def success(cls, message: str = "", **data: Any) -> GovernanceOutcome:
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, error: str, message: str, details: dict | None = None) -> GovernanceOutcome:
        return cls(ok=False, error=error, message=message, details=details or {})

    def __bool__(self) -> bool:
        return self.ok

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True, **self.data}
        body = {"ok": False, "error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body
