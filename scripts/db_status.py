#!/usr/bin/env python3
"""Show record counts for the reference governance tables."""
import sys
sys.path.insert(0, ".")

from app import create_app
from app.models import db

TABLES = [
    "reference_documents", "units", "learning_outcomes",
    "assessment_criteria", "assignment_briefs", "assignment_criterion_maps",
    "submissions", "audit_logs",
]

app = create_app()
with app.app_context():
    total = 0
    for t in TABLES:
        c = db.session.execute(db.text(f"SELECT COUNT(*) FROM {t}")).scalar()
        total += c
        print(f"    {t:.<30} {c}")
    print(f"    {'TOTAL':.<30} {total}")
