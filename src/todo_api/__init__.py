"""
Todo API package.

A FastAPI service storing todos and categories in SQLite, plus a client-side
state store (``todo_api.client``) that talks to it.
"""

from .main import create_app  # noqa: F401
