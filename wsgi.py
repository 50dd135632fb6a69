"""
Reference Governance Platform — WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade       # apply migrations/versions
    flask --app wsgi run              # development server
"""

from app import create_app

app = create_app()
