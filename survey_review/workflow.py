"""
survey_review/workflow.py

Review workflow for one survey: four independent block state machines.

Per block:
    pending --approve--> approved
    pending --reject(comment)--> rejected
Whole survey:
    approve all  -> every pending block becomes approved
    reopen       -> every block back to pending (comments kept for audit)

There is no direct approved <-> rejected transition; a reviewer who changes
their mind must reopen the survey.

The workflow never flips a status locally. It sends the command to the
repository and, on success, replaces its Survey with the one returned.
On failure the error propagates and the last known survey stays in place.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .budget import BudgetSummary, summarize_budget
from .domain import BlockName, BlockStatus, Decision, Survey
from .errors import AuthorizationError, ValidationError
from .repository import SurveyRepository
from .security import ReviewContext

logger = logging.getLogger(__name__)

APPROVE_ALL_KEY = "approve_all"
REOPEN_KEY = "reopen"


class SurveyReviewWorkflow:
    def __init__(self, repository: SurveyRepository, survey_id: int, context: ReviewContext):
        self.repository = repository
        self.survey_id = survey_id
        self.context = context
        self.survey: Optional[Survey] = None
        self._processing: set[str] = set()

    # -----------------------------
    # Loading / read-only views
    # -----------------------------
    def load(self) -> Survey:
        self.survey = self.repository.fetch_survey(self.survey_id)
        return self.survey

    def _current(self) -> Survey:
        if self.survey is None:
            return self.load()
        return self.survey

    @property
    def all_blocks_approved(self) -> bool:
        return self.survey is not None and self.survey.all_blocks_approved

    @property
    def any_block_pending(self) -> bool:
        # Nothing loaded yet counts as pending, the same way the page does.
        return self.survey is None or self.survey.any_block_pending

    @property
    def has_reviewed_blocks(self) -> bool:
        return self.survey is not None and self.survey.has_reviewed_blocks

    @property
    def rejected_blocks(self):
        return self.survey.rejected_blocks if self.survey is not None else []

    def budget_summary(self) -> BudgetSummary:
        return summarize_budget(self._current())

    def is_processing(self, key) -> bool:
        return str(getattr(key, "value", key)) in self._processing

    def can_review_block(self, block: BlockName) -> bool:
        return (
            self.context.can_approve
            and self.survey is not None
            and self.survey.status_of(block) is BlockStatus.PENDING
            and not self.is_processing(block)
        )

    @property
    def can_approve_all(self) -> bool:
        return (
            self.context.can_approve
            and not self.all_blocks_approved
            and self.any_block_pending
            and not self.is_processing(APPROVE_ALL_KEY)
        )

    @property
    def can_reopen(self) -> bool:
        return self.context.can_approve and self.has_reviewed_blocks and not self.is_processing(REOPEN_KEY)

    # -----------------------------
    # Commands
    # -----------------------------
    def _require_approver(self) -> None:
        if not self.context.can_approve:
            raise AuthorizationError("No tiene permisos para revisar levantamientos.")

    @contextmanager
    def _in_flight(self, key) -> Iterator[None]:
        name = str(getattr(key, "value", key))
        if name in self._processing:
            raise ValidationError("Ya hay una operación en curso para este bloque.")
        self._processing.add(name)
        try:
            yield
        finally:
            self._processing.discard(name)

    def _require_pending(self, survey: Survey, block: BlockName) -> None:
        if survey.status_of(block) is not BlockStatus.PENDING:
            raise ValidationError(f"El bloque {block.display_title} ya fue revisado.")

    def approve_block(self, block: BlockName) -> Survey:
        self._require_approver()
        survey = self._current()
        self._require_pending(survey, block)

        with self._in_flight(block):
            updated = self.repository.review_block(self.survey_id, block, Decision.APPROVED)

        self.survey = updated
        logger.info("Survey %s: block %s approved by %s", self.survey_id, block.value, self.context.username)
        return updated

    def reject_block(self, block: BlockName, comments: Optional[str]) -> Survey:
        self._require_approver()
        if not isinstance(comments, str) or not comments.strip():
            raise ValidationError("Ingrese el motivo del rechazo.")

        survey = self._current()
        self._require_pending(survey, block)

        with self._in_flight(block):
            updated = self.repository.review_block(self.survey_id, block, Decision.REJECTED, comments)

        self.survey = updated
        logger.info("Survey %s: block %s rejected by %s", self.survey_id, block.value, self.context.username)
        return updated

    def approve_all(self) -> Survey:
        self._require_approver()
        survey = self._current()
        if not survey.any_block_pending:
            return survey

        with self._in_flight(APPROVE_ALL_KEY):
            updated = self.repository.approve_all_blocks(self.survey_id)

        self.survey = updated
        logger.info("Survey %s: all pending blocks approved by %s", self.survey_id, self.context.username)
        return updated

    def reopen_for_editing(self, reason: Optional[str] = None) -> Survey:
        self._require_approver()
        survey = self._current()
        if not survey.has_reviewed_blocks:
            raise ValidationError("El levantamiento no tiene bloques revisados para reabrir.")

        if reason is not None and not isinstance(reason, str):
            raise ValidationError("El motivo de reapertura debe ser texto.")
        reason = (reason or "").strip() or None
        with self._in_flight(REOPEN_KEY):
            updated = self.repository.reopen_for_editing(self.survey_id, reason)

        self.survey = updated
        logger.info("Survey %s reopened for editing by %s", self.survey_id, self.context.username)
        return updated
