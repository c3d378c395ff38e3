"""
survey_review/blueprints/surveys/__init__.py

Blueprint package export. Must expose surveys_bp for app factory registration.
"""

from __future__ import annotations

from .routes import surveys_bp  # noqa: F401
