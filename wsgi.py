"""WSGI entrypoint for the Flask CLI and production servers.

Usage:
  flask --app wsgi run
  gunicorn wsgi:app
"""

from barangay_system.app import create_app

app = create_app()
