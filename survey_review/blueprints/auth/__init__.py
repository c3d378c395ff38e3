"""Login, logout and first-admin bootstrap (routes in routes.py)."""

from .routes import auth_bp  # noqa: F401
