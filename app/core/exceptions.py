"""
Platform-wide exception hierarchy.

Only request-level failures are exceptions here.  Expected governance
conditions (lock conflicts, usage guards, scope-change validation) are
returned as ``GovernanceOutcome`` values from ``app.core.outcomes``.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ReferenceDocument", resource_id=doc_id)
    raise ValidationError("criterionCode is required", details={"criterionCode": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "ReferenceDocument").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a request body is well-formed JSON but structurally unusable.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
