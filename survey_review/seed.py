"""
survey_review/seed.py

Seed demo master data and one survey ready for review.

Rules:
- Safe to run multiple times (idempotent): rows are matched by code/number.
- Seeds a Company with its IPP configuration, a small UCAP catalog,
  Materials, and one Work with its Survey and line items.

NOTE:
- Users are not seeded here. Use `flask create-user` or /auth/seed-admin.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from .domain import EXPENSE_TYPES_ORDER
from .extensions import db
from .models import (
    Company,
    Material,
    Survey,
    SurveyBudgetItem,
    SurveyInvestmentItem,
    SurveyMaterialItem,
    SurveyTravelExpense,
    Ucap,
    User,
    Work,
)

logger = logging.getLogger(__name__)

DEMO_COMPANY = ("Canales Contactos", "CANALCO")

DEFAULT_UCAPS = [
    # code, description, value, initial_ipp
    ("UC-001", "Luminaria LED 60W instalada", Decimal("50000.00"), Decimal("100.00")),
    ("UC-002", "Poste de concreto 8m instalado", Decimal("30000.00"), Decimal("100.00")),
    ("UC-003", "Red trenzada 2x4 por metro", Decimal("12500.00"), Decimal("98.50")),
]

DEFAULT_MATERIALS = [
    # code, description, unit
    ("MAT-100", "Luminaria LED 60W", "UND"),
    ("MAT-200", "Brazo metálico 1.5m", "UND"),
    ("MAT-300", "Cable trenzado 2x4", "M"),
]

DEMO_SURVEY_NUMBER = "LEV-0001"


def seed_master_data() -> Company:
    company = Company.query.filter_by(name=DEMO_COMPANY[0]).first()
    if not company:
        company = Company(name=DEMO_COMPANY[0], abbreviation=DEMO_COMPANY[1])
        db.session.add(company)
        db.session.flush()

    for code, description, value, initial_ipp in DEFAULT_UCAPS:
        exists = Ucap.query.filter_by(company_id=company.id, code=code).first()
        if exists:
            # keep catalog values in sync
            exists.value = value
            exists.initial_ipp = initial_ipp
            continue
        db.session.add(
            Ucap(company_id=company.id, code=code, description=description, value=value, initial_ipp=initial_ipp)
        )

    for code, description, unit in DEFAULT_MATERIALS:
        if Material.query.filter_by(code=code).first():
            continue
        db.session.add(Material(code=code, description=description, unit=unit))

    db.session.flush()
    return company


def seed_demo_survey(company: Company) -> Survey:
    survey = Survey.query.filter_by(survey_number=DEMO_SURVEY_NUMBER).first()
    if survey:
        return survey

    work = Work(
        work_code="OBR-0001",
        company_id=company.id,
        name="Alumbrado público Barrio Centro",
        address="Calle 10 # 5-20",
        neighborhood="Centro",
        user_name="Alcaldía Municipal",
        requesting_entity="Secretaría de Infraestructura",
        record_number="ACT-2024-015",
        sector_village="Urbano",
        zone="Norte",
        area_type="Urbana",
        request_type="Expansión",
        request_date=date(2024, 3, 1),
    )
    db.session.add(work)
    db.session.flush()

    survey = Survey(
        survey_number=DEMO_SURVEY_NUMBER,
        work_id=work.id,
        project_code="PRY-001",
        survey_date=date(2024, 3, 15),
        request_date=work.request_date,
        description="Expansión de alumbrado en vía principal.",
        previous_month_ipp=Decimal("105.00"),
        requires_retilap_certification=True,
    )
    db.session.add(survey)
    db.session.flush()

    ucaps = {u.code: u for u in Ucap.query.filter_by(company_id=company.id).all()}
    budget = [("UC-001", Decimal("2")), ("UC-002", Decimal("1"))]
    for idx, (code, qty) in enumerate(budget, start=1):
        ucap = ucaps[code]
        db.session.add(
            SurveyBudgetItem(
                survey_id=survey.id,
                ucap_id=ucap.id,
                item_number=idx,
                unit_value=ucap.value,
                quantity=qty,
                initial_ipp=ucap.initial_ipp,
            )
        )

    db.session.add(
        SurveyInvestmentItem(
            survey_id=survey.id,
            order_number=1,
            point="P1",
            description="Instalación de luminarias sobre postes existentes",
            luminaire_quantity=2,
            relocated_luminaire_quantity=0,
            pole_quantity=1,
            braided_network="2x4",
            latitude="4.7110",
            longitude="-74.0721",
        )
    )

    materials = {m.code: m for m in Material.query.all()}
    for code, qty in (("MAT-100", Decimal("2")), ("MAT-300", Decimal("40"))):
        material = materials[code]
        db.session.add(
            SurveyMaterialItem(survey_id=survey.id, material_id=material.id, unit=material.unit, quantity=qty)
        )

    for idx, expense_type in enumerate(EXPENSE_TYPES_ORDER, start=1):
        db.session.add(SurveyTravelExpense(survey_id=survey.id, item_number=idx, expense_type=expense_type))

    db.session.flush()
    return survey


def seed_demo_data() -> Survey:
    """Seed master data and the demo survey, then commit."""
    company = seed_master_data()
    survey = seed_demo_survey(company)
    db.session.commit()
    logger.info("Demo data seeded (survey %s)", survey.survey_number)
    return survey


def create_user(username: str, password: str, *, permissions=(), is_admin: bool = False, full_name=None) -> User:
    """Create (or update the password/permissions of) a login user."""
    user = User.query.filter_by(username=username).first()
    if not user:
        user = User(username=username, is_active=True)
        db.session.add(user)

    user.full_name = full_name or user.full_name
    user.is_admin = is_admin
    user.set_password(password)
    user.set_permission_codes(permissions)
    db.session.commit()
    return user
