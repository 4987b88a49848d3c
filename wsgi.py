"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi run
    gunicorn wsgi:app

Set TRAINING_MATRIX_LIVE_ENABLED=true to keep a polled matrix at
/api/v1/training-matrix/live (one host per worker process).
"""

from app import create_app

app = create_app()
