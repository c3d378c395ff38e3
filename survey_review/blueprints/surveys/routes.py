"""
survey_review/blueprints/surveys/routes.py

Survey review pages.

Includes:
- Review list (all / pending) with server-side filters
- Review page for one survey: header, rejection summary, four blocks
- Block actions: approve, reject (comment required), approve all, reopen

Every action goes through SurveyReviewWorkflow with an explicit
ReviewContext; the page is re-rendered from the aggregate the repository
returns, never from what the form posted.

IMPORTANT:
- UI is never trusted. Permissions are checked here and again in the workflow.
"""

from __future__ import annotations

import logging

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from flask_login import login_required

from ...domain import BLOCK_ORDER, BlockName
from ...errors import NotFound, SurveyReviewError
from ...models import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, Company
from ...repository import SqlSurveyRepository
from ...security import PERM_APPROVE, PERM_REVIEW, PERM_VIEW, permission_required, review_context
from ...serializers import list_filters_from_args
from ...workflow import SurveyReviewWorkflow

logger = logging.getLogger(__name__)

surveys_bp = Blueprint("surveys", __name__, url_prefix="/surveys")

STATE_FILTERS = {
    "": "Todos",
    STATUS_PENDING: "Con bloques pendientes",
    STATUS_REJECTED: "Con bloques rechazados",
    STATUS_APPROVED: "Aprobados",
}

STATUS_OPTIONS = {
    "": "Todos",
    STATUS_PENDING: "Pendiente",
    STATUS_APPROVED: "Aprobado",
    STATUS_REJECTED: "Rechazado",
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _workflow(survey_id: int) -> SurveyReviewWorkflow:
    """Workflow for one survey, acting as the logged-in user."""
    ctx = review_context()
    return SurveyReviewWorkflow(SqlSurveyRepository(actor=ctx), survey_id, ctx)


def _load(workflow: SurveyReviewWorkflow):
    """Load the survey; returns a redirect to the list when it cannot be shown."""
    try:
        workflow.load()
    except NotFound:
        abort(404)
    except SurveyReviewError as exc:
        logger.warning("Survey %s: load failed: %s", workflow.survey_id, exc.message)
        flash(exc.message, "danger")
        return redirect(url_for("surveys.review_list"))
    return None


def _block_or_404(raw: str) -> BlockName:
    block = BlockName.parse(raw)
    if block is None:
        abort(404)
    return block


def _back_to_review(survey_id: int):
    return redirect(url_for("surveys.review_survey", survey_id=survey_id))


def _run(survey_id: int, command, success_message: str):
    """
    Load the survey, run one workflow command and report the outcome.

    On failure the message from the workflow/repository is flashed; nothing
    else changes.
    """
    workflow = _workflow(survey_id)
    failed = _load(workflow)
    if failed is not None:
        return failed

    try:
        command(workflow)
    except SurveyReviewError as exc:
        logger.warning("Survey %s: command failed: %s", survey_id, exc.message)
        flash(exc.message, "danger")
    else:
        flash(success_message, "success")
    return _back_to_review(survey_id)


# ---------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------
def _render_list(page_title: str, page_subtitle: str, default_state: str = ""):
    state = (request.args.get("state") or default_state).strip()
    if state not in STATE_FILTERS:
        state = default_state
    search = (request.args.get("search") or "").strip()
    block_filters = {block.value: (request.args.get(f"{block.value}Status") or "").strip() for block in BLOCK_ORDER}
    company_id = (request.args.get("companyId") or "").strip()

    try:
        filters = list_filters_from_args(request.args)
        filters["state"] = state or None
        surveys = SqlSurveyRepository().list_for_review(**filters)
    except SurveyReviewError as exc:
        flash(exc.message, "danger")
        surveys = []

    return render_template(
        "surveys/list.html",
        surveys=surveys,
        blocks=BLOCK_ORDER,
        page_title=page_title,
        page_subtitle=page_subtitle,
        state=state,
        search=search,
        state_filters=STATE_FILTERS,
        block_filters=block_filters,
        status_options=STATUS_OPTIONS,
        company_id=company_id,
        companies=Company.query.order_by(Company.name).all(),
    )


@surveys_bp.route("/")
@login_required
@permission_required(PERM_VIEW, PERM_REVIEW)
def review_list():
    return _render_list("Revisar Levantamientos", "Levantamientos de obra y el estado de cada bloque.")


@surveys_bp.route("/pending")
@login_required
@permission_required(PERM_REVIEW, PERM_APPROVE)
def pending_list():
    return _render_list(
        "Pendientes de Revisión",
        "Levantamientos con al menos un bloque pendiente.",
        default_state=STATUS_PENDING,
    )


# ---------------------------------------------------------------------
# Review page
# ---------------------------------------------------------------------
@surveys_bp.route("/<int:survey_id>/review")
@login_required
@permission_required(PERM_REVIEW, PERM_APPROVE)
def review_survey(survey_id: int):
    workflow = _workflow(survey_id)
    failed = _load(workflow)
    if failed is not None:
        return failed

    return render_template(
        "surveys/review.html",
        workflow=workflow,
        survey=workflow.survey,
        blocks=BLOCK_ORDER,
        budget=workflow.budget_summary(),
    )


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------
@surveys_bp.route("/<int:survey_id>/blocks/<block_name>/approve", methods=["POST"])
@login_required
@permission_required(PERM_APPROVE)
def approve_block(survey_id: int, block_name: str):
    block = _block_or_404(block_name)
    return _run(
        survey_id,
        lambda wf: wf.approve_block(block),
        f"Bloque {block.display_title} aprobado.",
    )


@surveys_bp.route("/<int:survey_id>/blocks/<block_name>/reject", methods=["POST"])
@login_required
@permission_required(PERM_APPROVE)
def reject_block(survey_id: int, block_name: str):
    block = _block_or_404(block_name)
    comments = request.form.get("comments") or ""
    return _run(
        survey_id,
        lambda wf: wf.reject_block(block, comments),
        f"Bloque {block.display_title} rechazado.",
    )


@surveys_bp.route("/<int:survey_id>/approve-all", methods=["POST"])
@login_required
@permission_required(PERM_APPROVE)
def approve_all(survey_id: int):
    return _run(survey_id, lambda wf: wf.approve_all(), "Bloques pendientes aprobados.")


@surveys_bp.route("/<int:survey_id>/reopen", methods=["POST"])
@login_required
@permission_required(PERM_APPROVE)
def reopen_for_editing(survey_id: int):
    reason = request.form.get("reason")
    return _run(
        survey_id,
        lambda wf: wf.reopen_for_editing(reason),
        "Levantamiento reabierto para edición. Todos los bloques quedan pendientes.",
    )
