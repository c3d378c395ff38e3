"""
API blueprint package.

Exposes the Blueprint object imported in survey_review.__init__.
"""

from .routes import api_bp  # noqa: F401
