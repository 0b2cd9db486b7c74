"""
Flask-Migrate / WSGI entry point.

Usage:
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from orderflow import create_app

app = create_app()
