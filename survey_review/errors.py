"""
survey_review/errors.py

Error taxonomy for the survey review workflow.

- ValidationError: a transition rejected by the workflow or by the repository
  (missing rejection comment, block not pending, missing permission).
- NotFound: the survey identifier does not resolve.
- ServiceError: anything else (database failure, malformed stored data).

Every error carries a user-visible message. Nothing here is retried
automatically; callers surface the message and keep their last known state.
"""

from __future__ import annotations


class SurveyReviewError(Exception):
    """Base class. `message` is safe to show to the user."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SurveyReviewError):
    status_code = 400


class AuthorizationError(ValidationError):
    status_code = 403


class NotFound(SurveyReviewError):
    status_code = 404


class ServiceError(SurveyReviewError):
    status_code = 500
