"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask db upgrade
    flask orchestrate-commitment 42
"""

from fulfillment import create_app

app = create_app()
