"""
survey_review/repository.py

SurveyRepository: the only way the review workflow reads or changes surveys.

Contract (every method returns the full, freshly loaded Survey aggregate):
- fetch_survey(survey_id)
- review_block(survey_id, block, decision, comments=None)
- approve_all_blocks(survey_id)
- reopen_for_editing(survey_id, reason=None)

SqlSurveyRepository implements it over the SQLAlchemy models. It is the
server-side truth: transitions are validated here again, whatever the caller
already checked, and every change is audited in the same transaction.
"""

from __future__ import annotations

import abc
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy.orm.exc import StaleDataError

from . import domain
from .audit import log_action, serialize_model
from .domain import BLOCK_ORDER, BlockName, BlockStatus, Decision
from .errors import NotFound, ServiceError, ValidationError
from .extensions import db
from .models import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Survey,
    SurveyBudgetItem,
    SurveyMaterialItem,
    Work,
)
from .security import ReviewContext

logger = logging.getLogger(__name__)


class SurveyRepository(abc.ABC):
    @abc.abstractmethod
    def fetch_survey(self, survey_id: int) -> domain.Survey:
        """Raises NotFound when the survey does not exist."""

    @abc.abstractmethod
    def review_block(
        self,
        survey_id: int,
        block: BlockName,
        decision: Decision,
        comments: Optional[str] = None,
    ) -> domain.Survey:
        """Raises ValidationError when the transition is not allowed."""

    @abc.abstractmethod
    def approve_all_blocks(self, survey_id: int) -> domain.Survey:
        ...

    @abc.abstractmethod
    def reopen_for_editing(self, survey_id: int, reason: Optional[str] = None) -> domain.Survey:
        ...


# ---------------------------------------------------------------------
# Row -> domain conversion
# ---------------------------------------------------------------------
def _dec(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _work_info(work: Work | None) -> domain.WorkInfo | None:
    if work is None:
        return None
    return domain.WorkInfo(
        work_id=work.id,
        company_id=work.company_id,
        work_code=work.work_code,
        name=work.name,
        company_name=work.company.name if work.company else None,
        record_number=work.record_number,
        address=work.address,
        neighborhood=work.neighborhood,
        user_name=work.user_name,
        requesting_entity=work.requesting_entity,
        sector_village=work.sector_village,
        zone=work.zone,
        user_address=work.user_address,
        area_type=work.area_type,
        request_type=work.request_type,
        filing_number=work.filing_number,
        ipp_initial_value=_dec(work.company.ipp_initial_value) if work.company else None,
    )


def _budget_item(line: SurveyBudgetItem) -> domain.BudgetItem:
    ucap = None
    initial_ipp = _dec(line.initial_ipp)
    if line.ucap is not None:
        ucap = domain.UcapRef(ucap_id=line.ucap.id, code=line.ucap.code, description=line.ucap.description)
        if initial_ipp is None:
            initial_ipp = _dec(line.ucap.initial_ipp)
    return domain.BudgetItem(
        item_number=line.item_number,
        ucap=ucap,
        unit_value=_dec(line.unit_value) or Decimal("0"),
        quantity=_dec(line.quantity) or Decimal("0"),
        initial_ipp=initial_ipp,
    )


def _material_item(line: SurveyMaterialItem) -> domain.MaterialItem:
    material = None
    if line.material is not None:
        material = domain.MaterialRef(
            material_id=line.material.id,
            code=line.material.code,
            description=line.material.description,
        )
    return domain.MaterialItem(
        material=material,
        unit=line.unit or (line.material.unit if line.material else None),
        quantity=_dec(line.quantity) or Decimal("0"),
        observations=line.observations,
    )


def survey_to_domain(row: Survey) -> domain.Survey:
    """Build the immutable aggregate from a loaded Survey row."""
    try:
        reviews = tuple(
            domain.BlockReview(
                block=block,
                status=BlockStatus.parse(getattr(row, block.status_field)),
                comments=getattr(row, block.comments_field),
            )
            for block in BLOCK_ORDER
        )

        return domain.Survey(
            survey_id=row.id,
            survey_number=row.survey_number,
            survey_date=row.survey_date,
            request_date=row.request_date or (row.work.request_date if row.work else None),
            description=row.description,
            previous_month_ipp=_dec(row.previous_month_ipp),
            reviews=reviews,
            budget_items=tuple(_budget_item(line) for line in row.budget_items),
            investment_items=tuple(
                domain.InvestmentItem(
                    order_number=line.order_number,
                    point=line.point,
                    description=line.description,
                    luminaire_quantity=line.luminaire_quantity,
                    relocated_luminaire_quantity=line.relocated_luminaire_quantity,
                    pole_quantity=line.pole_quantity,
                    braided_network=line.braided_network,
                    latitude=line.latitude,
                    longitude=line.longitude,
                )
                for line in row.investment_items
            ),
            material_items=tuple(_material_item(line) for line in row.material_items),
            travel_expenses=tuple(
                domain.TravelExpenseItem(
                    expense_type=line.expense_type,
                    quantity=_dec(line.quantity),
                    observations=line.observations,
                )
                for line in row.travel_expenses
            ),
            work=_work_info(row.work),
            project_code=row.project_code,
            sketch_url=row.sketch_url,
            map_url=row.map_url,
            requires_photometric_studies=bool(row.requires_photometric_studies),
            requires_retie_certification=bool(row.requires_retie_certification),
            requires_retilap_certification=bool(row.requires_retilap_certification),
            requires_civil_work=bool(row.requires_civil_work),
        )
    except (InvalidOperation, ValueError, TypeError) as exc:
        logger.exception("Survey %s has malformed data", row.id)
        raise ServiceError("El levantamiento tiene datos inválidos.") from exc


def _block_snapshot(row: Survey) -> dict:
    columns = [name for block in BLOCK_ORDER for name in (block.status_field, block.comments_field)]
    return serialize_model(row, columns)


def _coerce_block(block) -> BlockName:
    if isinstance(block, BlockName):
        return block
    parsed = BlockName.parse(block)
    if parsed is None:
        raise ValidationError(f"Bloque desconocido: {block}")
    return parsed


def _coerce_decision(decision) -> Decision:
    if isinstance(decision, Decision):
        return decision
    for candidate in Decision:
        if candidate.value == decision:
            return candidate
    raise ValidationError(f"Decisión inválida: {decision}")


def _coerce_status(status) -> str:
    value = getattr(status, "value", status)
    if value not in (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED):
        raise ValidationError(f"Estado de bloque inválido: {status}")
    return value


def _status_is(column, status: str):
    """SQL condition matching how stored statuses are read (unknown values count as pending)."""
    if status == STATUS_PENDING:
        return column.notin_([STATUS_APPROVED, STATUS_REJECTED])
    return column == status


# ---------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------
class SqlSurveyRepository(SurveyRepository):
    def __init__(self, actor: ReviewContext | None = None):
        self.actor = actor

    def _query(self):
        return Survey.query.options(
            joinedload(Survey.work).joinedload(Work.company),
            selectinload(Survey.budget_items).joinedload(SurveyBudgetItem.ucap),
            selectinload(Survey.investment_items),
            selectinload(Survey.material_items).joinedload(SurveyMaterialItem.material),
            selectinload(Survey.travel_expenses),
        )

    def _load_row(self, survey_id: int) -> Survey:
        try:
            row = self._query().filter(Survey.id == survey_id).first()
        except SQLAlchemyError as exc:
            logger.exception("Failed to load survey %s", survey_id)
            raise ServiceError("Error al cargar el levantamiento.") from exc
        if row is None:
            raise NotFound(f"Levantamiento {survey_id} no encontrado.")
        return row

    def _save(self, row: Survey, action: str, before: dict, extra: dict | None = None) -> None:
        """Stamp the reviewer, audit the change and commit (rollback on failure)."""
        survey_id = row.id
        row.reviewed_by_id = self.actor.user_id if self.actor else None
        row.reviewed_at = datetime.utcnow()

        after = _block_snapshot(row)
        if extra:
            after.update(extra)

        try:
            db.session.flush()
            log_action(row, action, actor=self.actor, before=before, after=after)
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            logger.warning("Survey %s changed concurrently; %s discarded", survey_id, action)
            raise ValidationError(
                "El levantamiento fue modificado por otro usuario. Recargue la página e intente de nuevo."
            ) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to save survey %s (%s)", survey_id, action)
            raise ServiceError("Error al guardar la revisión del levantamiento.") from exc

    def fetch_survey(self, survey_id: int) -> domain.Survey:
        return survey_to_domain(self._load_row(survey_id))

    def review_block(self, survey_id, block, decision, comments=None) -> domain.Survey:
        block = _coerce_block(block)
        decision = _coerce_decision(decision)

        if decision is Decision.REJECTED and not (comments or "").strip():
            raise ValidationError("El rechazo de un bloque requiere comentarios.")

        row = self._load_row(survey_id)
        current = BlockStatus.parse(getattr(row, block.status_field))
        if current is not BlockStatus.PENDING:
            raise ValidationError(
                f"El bloque {block.display_title} no está pendiente (estado actual: {current.value})."
            )

        before = _block_snapshot(row)
        setattr(row, block.status_field, decision.status.value)
        # Approving clears a comment left from an earlier rejection.
        setattr(row, block.comments_field, comments if decision is Decision.REJECTED else None)

        self._save(row, "REVIEW_BLOCK", before, extra={"block": block.value, "decision": decision.value})
        logger.info("Survey %s block %s -> %s", survey_id, block.value, decision.value)
        return self.fetch_survey(survey_id)

    def approve_all_blocks(self, survey_id: int) -> domain.Survey:
        row = self._load_row(survey_id)
        before = _block_snapshot(row)

        changed = []
        for block in BLOCK_ORDER:
            if BlockStatus.parse(getattr(row, block.status_field)) is BlockStatus.PENDING:
                setattr(row, block.status_field, STATUS_APPROVED)
                setattr(row, block.comments_field, None)
                changed.append(block.value)

        if not changed:
            return self.fetch_survey(survey_id)

        self._save(row, "APPROVE_ALL", before, extra={"blocks": changed})
        logger.info("Survey %s: approved blocks %s", survey_id, ", ".join(changed))
        return self.fetch_survey(survey_id)

    def reopen_for_editing(self, survey_id: int, reason: Optional[str] = None) -> domain.Survey:
        row = self._load_row(survey_id)
        before = _block_snapshot(row)

        # Comments are kept: they are the record of why the survey came back.
        for block in BLOCK_ORDER:
            setattr(row, block.status_field, STATUS_PENDING)

        self._save(row, "REOPEN", before, extra={"reason": reason})
        logger.info("Survey %s reopened for editing", survey_id)
        return self.fetch_survey(survey_id)

    # -----------------------------
    # Review list
    # -----------------------------
    def list_for_review(
        self,
        search: str | None = None,
        state: str | None = None,
        company_id: int | None = None,
        block_statuses: Dict | None = None,
    ) -> List[domain.Survey]:
        """
        Surveys for the review list, newest first.

        state:
        - "pending": at least one block pending
        - "rejected": at least one block rejected
        - "approved": all four blocks approved

        company_id restricts to works of one company. block_statuses maps a
        block (or its wire name) to the status that block must have; all
        entries must hold.
        """
        status_columns = [getattr(Survey, block.status_field) for block in BLOCK_ORDER]

        q = self._query().outerjoin(Work, Work.id == Survey.work_id)

        term = (search or "").strip()
        if term:
            like = f"%{term}%"
            q = q.filter(
                or_(
                    func.coalesce(Survey.survey_number, "").ilike(like),
                    func.coalesce(Survey.description, "").ilike(like),
                    func.coalesce(Work.name, "").ilike(like),
                    func.coalesce(Work.work_code, "").ilike(like),
                )
            )

        if company_id is not None:
            q = q.filter(Work.company_id == company_id)

        for raw_block, raw_status in (block_statuses or {}).items():
            block = _coerce_block(raw_block)
            q = q.filter(_status_is(getattr(Survey, block.status_field), _coerce_status(raw_status)))

        if state == STATUS_PENDING:
            q = q.filter(or_(*[_status_is(col, STATUS_PENDING) for col in status_columns]))
        elif state == STATUS_REJECTED:
            q = q.filter(or_(*[col == STATUS_REJECTED for col in status_columns]))
        elif state == STATUS_APPROVED:
            q = q.filter(and_(*[col == STATUS_APPROVED for col in status_columns]))

        try:
            rows = q.order_by(Survey.created_at.desc(), Survey.id.desc()).all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to list surveys for review")
            raise ServiceError("Error al cargar los levantamientos.") from exc

        return [survey_to_domain(row) for row in rows]

