"""
WSGI entry point and Flask-Migrate / Alembic target.

Usage:
    gunicorn wsgi:app
    flask --app wsgi seed --admin-email admin@example.com --admin-password '...'
    flask --app wsgi db upgrade
"""

from app import create_app

app = create_app()
