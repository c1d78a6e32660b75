"""
WSGI entry point.

Usage:
    flask --app wsgi run
"""

from compliance import create_app

app = create_app()
