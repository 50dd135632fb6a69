"""
Reference Governance Platform
Blueprint registry.

    reference_bp — document lifecycle, brief locks, grading scope
    audit_bp     — audit trail queries
    health_bp    — readiness / liveness probes
"""
