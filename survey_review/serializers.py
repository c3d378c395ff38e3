"""JSON shapes for the survey API (camelCase, as the front-end expects)."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from .budget import BudgetSummary, summarize_budget
from .domain import BLOCK_ORDER, Survey
from .errors import ValidationError


def _num(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def budget_summary_to_dict(summary: BudgetSummary) -> Dict[str, Any]:
    return {
        "subtotal": _num(summary.subtotal),
        "baseIpp": _num(summary.base_ipp),
        "previousMonthIpp": _num(summary.previous_month_ipp),
        "adjustmentFactor": _num(summary.factor),
        "adjustedTotal": _num(summary.adjusted_total),
        "entryAdjustedTotal": _num(summary.entry_adjusted_total),
    }


def survey_to_dict(survey: Survey) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "surveyId": survey.survey_id,
        "surveyNumber": survey.survey_number,
        "surveyDate": _iso(survey.survey_date),
        "requestDate": _iso(survey.request_date),
        "description": survey.description,
        "projectCode": survey.project_code,
        "previousMonthIpp": _num(survey.previous_month_ipp),
        "sketchUrl": survey.sketch_url,
        "mapUrl": survey.map_url,
        "requiresPhotometricStudies": survey.requires_photometric_studies,
        "requiresRetieCertification": survey.requires_retie_certification,
        "requiresRetilapCertification": survey.requires_retilap_certification,
        "requiresCivilWork": survey.requires_civil_work,
    }

    for review in survey.reviews:
        data[f"{review.block.value}Status"] = review.status.value
        data[f"{review.block.value}Comments"] = review.comments

    data["work"] = None
    if survey.work is not None:
        w = survey.work
        data["work"] = {
            "workId": w.work_id,
            "companyId": w.company_id,
            "workCode": w.work_code,
            "name": w.name,
            "company": w.company_name,
            "recordNumber": w.record_number,
            "address": w.address,
            "neighborhood": w.neighborhood,
            "userName": w.user_name,
            "requestingEntity": w.requesting_entity,
            "sectorVillage": w.sector_village,
            "zone": w.zone,
            "userAddress": w.user_address,
            "areaType": w.area_type,
            "requestType": w.request_type,
            "filingNumber": w.filing_number,
        }

    data["budgetItems"] = [
        {
            "itemNumber": item.item_number,
            "ucap": (
                {"ucapId": item.ucap.ucap_id, "code": item.ucap.code, "description": item.ucap.description}
                if item.ucap
                else None
            ),
            "unitValue": _num(item.unit_value),
            "quantity": _num(item.quantity),
            "initialIpp": _num(item.initial_ipp),
            "total": _num(item.line_total),
        }
        for item in survey.budget_items
    ]
    data["investmentItems"] = [
        {
            "orderNumber": item.order_number,
            "point": item.point,
            "description": item.description,
            "luminaireQuantity": item.luminaire_quantity,
            "relocatedLuminaireQuantity": item.relocated_luminaire_quantity,
            "poleQuantity": item.pole_quantity,
            "braidedNetwork": item.braided_network,
            "latitude": item.latitude,
            "longitude": item.longitude,
        }
        for item in survey.investment_items
    ]
    data["materialItems"] = [
        {
            "material": (
                {"materialId": item.material.material_id, "code": item.material.code,
                 "description": item.material.description}
                if item.material
                else None
            ),
            "unit": item.unit,
            "quantity": _num(item.quantity),
            "observations": item.observations,
        }
        for item in survey.material_items
    ]
    data["travelExpenses"] = [
        {
            "expenseType": item.expense_type,
            "label": item.label,
            "quantity": _num(item.quantity),
            "observations": item.observations,
        }
        for item in survey.travel_expenses
    ]

    data["allBlocksApproved"] = survey.all_blocks_approved
    data["anyBlockPending"] = survey.any_block_pending
    data["hasReviewedBlocks"] = survey.has_reviewed_blocks
    data["rejectedBlocks"] = [{"title": b.title, "comments": b.comments} for b in survey.rejected_blocks]
    data["budget"] = budget_summary_to_dict(summarize_budget(survey))
    return data


def survey_list_item(survey: Survey) -> Dict[str, Any]:
    return {
        "surveyId": survey.survey_id,
        "surveyNumber": survey.survey_number,
        "surveyDate": _iso(survey.survey_date),
        "workName": survey.work.name if survey.work else None,
        "companyId": survey.work.company_id if survey.work else None,
        "company": survey.work.company_name if survey.work else None,
        "statuses": {r.block.value: r.status.value for r in survey.reviews},
        "allBlocksApproved": survey.all_blocks_approved,
        "anyBlockPending": survey.any_block_pending,
    }


def list_filters_from_args(args) -> Dict[str, Any]:
    """
    Review-list filters from query args, as keyword arguments for
    SqlSurveyRepository.list_for_review.

    Accepted: search, state, companyId and one `<block>Status` per block
    (budgetStatus, investmentStatus, materialsStatus, travelExpensesStatus).
    Empty values are ignored.
    """
    filters: Dict[str, Any] = {
        "search": (args.get("search") or "").strip() or None,
        "state": (args.get("state") or "").strip() or None,
    }

    raw_company = (args.get("companyId") or "").strip()
    if raw_company:
        if not raw_company.isdigit():
            raise ValidationError(f"Empresa inválida: {raw_company}")
        filters["company_id"] = int(raw_company)

    block_statuses = {}
    for block in BLOCK_ORDER:
        raw_status = (args.get(f"{block.value}Status") or "").strip()
        if raw_status:
            block_statuses[block] = raw_status
    if block_statuses:
        filters["block_statuses"] = block_statuses
    return filters
