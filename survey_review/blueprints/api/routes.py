"""
survey_review/blueprints/api/routes.py

JSON API for survey review (the contract the review front-end consumes).

- GET   /api/surveys/for-review          list (filters: search, state, companyId,
                                         budgetStatus, investmentStatus,
                                         materialsStatus, travelExpensesStatus)
- GET   /api/surveys/<id>                full aggregate + derived values
- PATCH /api/surveys/<id>/review-block   {"block", "status", "comments"}
- PATCH /api/surveys/<id>/approve-all
- PATCH /api/surveys/<id>/reopen         {"reason"}

Errors are returned as {"message": ...} with the status code of the error
class (400 validation, 403 permission, 404 not found, 500 service).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...domain import BlockName, Decision
from ...errors import AuthorizationError, SurveyReviewError, ValidationError
from ...repository import SqlSurveyRepository
from ...security import PERM_APPROVE, PERM_REVIEW, PERM_VIEW, review_context
from ...serializers import list_filters_from_args, survey_list_item, survey_to_dict
from ...workflow import SurveyReviewWorkflow

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api/surveys")


@api_bp.errorhandler(SurveyReviewError)
def _handle_review_error(exc: SurveyReviewError):
    if exc.status_code >= 500:
        logger.error("API error: %s", exc.message)
    return jsonify({"message": exc.message}), exc.status_code


@api_bp.before_request
def _require_login():
    if not current_user.is_authenticated:
        return jsonify({"message": "Autenticación requerida."}), 401
    return None


def _require(*permissions: str) -> None:
    if not review_context().has_any_permission(permissions):
        raise AuthorizationError("No tiene permisos para esta operación.")


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text(data: dict, key: str):
    """Optional free-text field; anything but a string or null is refused."""
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"El campo '{key}' debe ser texto.")
    return value


def _workflow(survey_id: int) -> SurveyReviewWorkflow:
    ctx = review_context()
    workflow = SurveyReviewWorkflow(SqlSurveyRepository(actor=ctx), survey_id, ctx)
    workflow.load()
    return workflow


@api_bp.route("/for-review", methods=["GET"])
def list_for_review():
    _require(PERM_VIEW, PERM_REVIEW)
    surveys = SqlSurveyRepository().list_for_review(**list_filters_from_args(request.args))
    return jsonify({"data": [survey_list_item(s) for s in surveys], "total": len(surveys)})


@api_bp.route("/<int:survey_id>", methods=["GET"])
def get_survey(survey_id: int):
    _require(PERM_REVIEW, PERM_APPROVE)
    survey = SqlSurveyRepository().fetch_survey(survey_id)
    return jsonify(survey_to_dict(survey))


@api_bp.route("/<int:survey_id>/review-block", methods=["PATCH"])
def review_block(survey_id: int):
    _require(PERM_APPROVE)
    data = _payload()

    block = BlockName.parse(data.get("block"))
    if block is None:
        raise ValidationError(f"Bloque desconocido: {data.get('block')}")

    status = data.get("status")
    workflow = _workflow(survey_id)
    if status == Decision.APPROVED.value:
        survey = workflow.approve_block(block)
    elif status == Decision.REJECTED.value:
        survey = workflow.reject_block(block, _text(data, "comments"))
    else:
        raise ValidationError(f"Estado inválido: {status}")

    return jsonify(survey_to_dict(survey))


@api_bp.route("/<int:survey_id>/approve-all", methods=["PATCH"])
def approve_all(survey_id: int):
    _require(PERM_APPROVE)
    survey = _workflow(survey_id).approve_all()
    return jsonify(survey_to_dict(survey))


@api_bp.route("/<int:survey_id>/reopen", methods=["PATCH"])
def reopen_for_editing(survey_id: int):
    _require(PERM_APPROVE)
    reason = _text(_payload(), "reason")
    survey = _workflow(survey_id).reopen_for_editing(reason)
    return jsonify(survey_to_dict(survey))
