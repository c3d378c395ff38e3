"""
Survey Review – Domain Models

Persistence for work surveys ("levantamientos de obra") and their review:
- Users with granular permission codes
- Companies, Works (obras) and the one-to-one Survey of each Work
- UCAP unit-cost catalog and Materials master data
- Survey line items: budget, investment, materials, travel expenses
- Audit log

Review state lives in four independent status columns on Survey, one per
block, each with its own comments column. There is no overall survey status
column; it is always derived from the four blocks.

IMPORTANT:
- UI is never trusted. Transitions are validated in SqlSurveyRepository.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    full_name = db.Column(db.String(255), nullable=True)

    is_admin = db.Column(db.Boolean, default=False, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Comma separated codes, e.g. "levantamientos:ver,levantamientos:revisar"
    permissions = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def permission_codes(self) -> list[str]:
        return [p.strip() for p in (self.permissions or "").split(",") if p.strip()]

    def set_permission_codes(self, codes) -> None:
        self.permissions = ",".join(sorted({c.strip() for c in codes if c and c.strip()})) or None

    def has_permission(self, code: str) -> bool:
        return self.is_admin or code in self.permission_codes()

    def display_name(self) -> str:
        return self.full_name or self.username

    def __repr__(self):
        return f"<User {self.username}>"


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    abbreviation = db.Column(db.String(50), nullable=True)

    # Initial IPP used by the entry formula when no budget line carries one
    ipp_initial_value = db.Column(db.Numeric(12, 4), nullable=False, default=Decimal("100"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Company {self.abbreviation or self.name}>"


class Ucap(db.Model):
    """Unit-cost catalog entry (UCAP)."""

    __tablename__ = "ucaps"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    code = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=False)
    value = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    initial_ipp = db.Column(db.Numeric(12, 4), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    company = db.relationship("Company", backref=db.backref("ucaps", lazy=True))

    __table_args__ = (db.UniqueConstraint("company_id", "code", name="uq_ucap_company_code"),)


class Material(db.Model):
    __tablename__ = "materials"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    description = db.Column(db.String(500), nullable=False)
    unit = db.Column(db.String(30), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)


# ---------------------------------------------------------------------
# Works & surveys
# ---------------------------------------------------------------------
class Work(db.Model):
    """Construction / installation project (obra)."""

    __tablename__ = "works"

    id = db.Column(db.Integer, primary_key=True)

    work_code = db.Column(db.String(50), nullable=True, unique=True, index=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False, index=True)
    address = db.Column(db.String(255))
    neighborhood = db.Column(db.String(120))
    user_name = db.Column(db.String(255))
    requesting_entity = db.Column(db.String(255))
    record_number = db.Column(db.String(50), index=True)
    sector_village = db.Column(db.String(120))
    zone = db.Column(db.String(50))
    user_address = db.Column(db.String(255))
    area_type = db.Column(db.String(50))
    request_type = db.Column(db.String(80))
    filing_number = db.Column(db.String(50))
    request_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship("Company", backref=db.backref("works", lazy=True))

    survey = db.relationship("Survey", back_populates="work", uselist=False)

    def __repr__(self):
        return f"<Work {self.work_code or self.name}>"


class Survey(db.Model):
    __tablename__ = "surveys"

    id = db.Column(db.Integer, primary_key=True)

    survey_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    work_id = db.Column(
        db.Integer,
        db.ForeignKey("works.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    project_code = db.Column(db.String(50), nullable=True, index=True)
    survey_date = db.Column(db.Date, nullable=True)
    request_date = db.Column(db.Date, nullable=True)
    description = db.Column(db.Text, nullable=True)

    previous_month_ipp = db.Column(db.Numeric(12, 4), nullable=True)

    sketch_url = db.Column(db.String(500), nullable=True)
    map_url = db.Column(db.String(500), nullable=True)

    # Investment requirements
    requires_photometric_studies = db.Column(db.Boolean, default=False, nullable=False)
    requires_retie_certification = db.Column(db.Boolean, default=False, nullable=False)
    requires_retilap_certification = db.Column(db.Boolean, default=False, nullable=False)
    requires_civil_work = db.Column(db.Boolean, default=False, nullable=False)

    # Block review state
    budget_status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    budget_comments = db.Column(db.Text, nullable=True)
    investment_status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    investment_comments = db.Column(db.Text, nullable=True)
    materials_status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    materials_comments = db.Column(db.Text, nullable=True)
    travel_expenses_status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    travel_expenses_comments = db.Column(db.Text, nullable=True)

    received_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    reviewed_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    reviewed_at = db.Column(db.DateTime, nullable=True)

    # Every UPDATE checks and bumps this; a concurrent write makes the flush fail.
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    work = db.relationship("Work", back_populates="survey")
    received_by = db.relationship("User", foreign_keys=[received_by_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id])

    budget_items = db.relationship(
        "SurveyBudgetItem",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyBudgetItem.item_number",
    )
    investment_items = db.relationship(
        "SurveyInvestmentItem",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyInvestmentItem.order_number",
    )
    material_items = db.relationship(
        "SurveyMaterialItem",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyMaterialItem.id",
    )
    travel_expenses = db.relationship(
        "SurveyTravelExpense",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyTravelExpense.item_number",
    )

    def __repr__(self):
        return f"<Survey {self.survey_number}>"


class SurveyBudgetItem(db.Model):
    __tablename__ = "survey_budget_items"

    id = db.Column(db.Integer, primary_key=True)

    survey_id = db.Column(
        db.Integer,
        db.ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ucap_id = db.Column(
        db.Integer,
        db.ForeignKey("ucaps.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    item_number = db.Column(db.Integer, nullable=False)
    unit_value = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    initial_ipp = db.Column(db.Numeric(12, 4), nullable=True)

    survey = db.relationship("Survey", back_populates="budget_items")
    ucap = db.relationship("Ucap")


class SurveyInvestmentItem(db.Model):
    __tablename__ = "survey_investment_items"

    id = db.Column(db.Integer, primary_key=True)

    survey_id = db.Column(
        db.Integer,
        db.ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    order_number = db.Column(db.Integer, nullable=False)
    point = db.Column(db.String(50))
    description = db.Column(db.Text)
    luminaire_quantity = db.Column(db.Integer)
    relocated_luminaire_quantity = db.Column(db.Integer)
    pole_quantity = db.Column(db.Integer)
    braided_network = db.Column(db.String(120))
    latitude = db.Column(db.String(50))
    longitude = db.Column(db.String(50))

    survey = db.relationship("Survey", back_populates="investment_items")


class SurveyMaterialItem(db.Model):
    __tablename__ = "survey_material_items"

    id = db.Column(db.Integer, primary_key=True)

    survey_id = db.Column(
        db.Integer,
        db.ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    material_id = db.Column(
        db.Integer,
        db.ForeignKey("materials.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    unit = db.Column(db.String(30))
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    observations = db.Column(db.Text)

    survey = db.relationship("Survey", back_populates="material_items")
    material = db.relationship("Material")


class SurveyTravelExpense(db.Model):
    __tablename__ = "survey_travel_expenses"

    id = db.Column(db.Integer, primary_key=True)

    survey_id = db.Column(
        db.Integer,
        db.ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_number = db.Column(db.Integer, nullable=False, default=0)
    expense_type = db.Column(db.String(50), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=True)
    observations = db.Column(db.Text)

    survey = db.relationship("Survey", back_populates="travel_expenses")


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who did what to which survey, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
