"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-directory
    gunicorn wsgi:app
"""

from propman import create_app

app = create_app()
