"""
survey_review/domain.py

Immutable domain values for a work survey ("levantamiento") under review.

A Survey is reviewed in four independent blocks. There is no single survey
status: everything the UI shows about the review state is derived from the
four block statuses every time it is read.

Values are frozen dataclasses. Commands never patch a Survey in place; the
repository returns a new Survey that replaces the previous one.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple


class BlockName(str, enum.Enum):
    BUDGET = "budget"
    INVESTMENT = "investment"
    MATERIALS = "materials"
    TRAVEL_EXPENSES = "travelExpenses"

    @property
    def display_title(self) -> str:
        return BLOCK_TITLES[self]

    @property
    def status_field(self) -> str:
        return BLOCK_COLUMNS[self] + "_status"

    @property
    def comments_field(self) -> str:
        return BLOCK_COLUMNS[self] + "_comments"

    @classmethod
    def parse(cls, raw: str | None) -> "BlockName | None":
        """Return the block for its wire name, or None when unknown."""
        for block in cls:
            if block.value == raw:
                return block
        return None


class BlockStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, raw: str | None) -> "BlockStatus":
        """Stored values outside the vocabulary read as pending."""
        for status in cls:
            if status.value == raw:
                return status
        return cls.PENDING


class Decision(str, enum.Enum):
    """Decisions a reviewer may record for one block."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def status(self) -> BlockStatus:
        return BlockStatus(self.value)


# Block order is the display order of the review page.
BLOCK_ORDER: Tuple[BlockName, ...] = (
    BlockName.BUDGET,
    BlockName.INVESTMENT,
    BlockName.MATERIALS,
    BlockName.TRAVEL_EXPENSES,
)

BLOCK_TITLES = {
    BlockName.BUDGET: "I. PRESUPUESTO",
    BlockName.INVESTMENT: "II. DESCRIPCION DE INVERSION",
    BlockName.MATERIALS: "III. MATERIALES",
    BlockName.TRAVEL_EXPENSES: "IV. COSTOS DE VIAJE",
}

# Column prefix on the stored survey row.
BLOCK_COLUMNS = {
    BlockName.BUDGET: "budget",
    BlockName.INVESTMENT: "investment",
    BlockName.MATERIALS: "materials",
    BlockName.TRAVEL_EXPENSES: "travel_expenses",
}

STATUS_LABELS = {
    BlockStatus.PENDING: "Pendiente",
    BlockStatus.APPROVED: "Aprobado",
    BlockStatus.REJECTED: "Rechazado",
}


# ---------------------------------------------------------------------
# Travel expense vocabulary
# ---------------------------------------------------------------------
# Two naming schemes reach us (Spanish keys from older records, English keys
# from the current catalog). Both map to the same display label.
EXPENSE_TYPE_LABELS = {
    "peajes": "Peajes",
    "parqueaderos": "Parqueaderos",
    "hospedaje": "Hospedaje",
    "alimentacion": "Alimentación",
    "combustible": "Combustible",
    "cuadrilla_adicional": "Cuadrilla Adicional",
    "horas_diurnas": "Horas Diurnas",
    "horas_extras_festivas": "Horas Extras Festivas",
    "tolls": "Peajes",
    "parking": "Parqueaderos",
    "lodging": "Hospedaje",
    "food": "Alimentación",
    "fuel": "Combustible",
    "additional_crew": "Cuadrilla Adicional",
    "day_hours": "Horas Diurnas",
    "holiday_overtime": "Horas Extras Festivas",
}

EXPENSE_TYPES_ORDER = (
    "tolls",
    "parking",
    "lodging",
    "food",
    "fuel",
    "additional_crew",
    "day_hours",
    "holiday_overtime",
)


def expense_label(expense_type: str | None) -> str:
    """Display label for an expense tag; unknown tags are shown as-is."""
    if not expense_type:
        return "-"
    return EXPENSE_TYPE_LABELS.get(expense_type.strip().lower(), expense_type)


# ---------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class UcapRef:
    ucap_id: int
    code: str
    description: str


@dataclass(frozen=True)
class MaterialRef:
    material_id: int
    code: str
    description: str


@dataclass(frozen=True)
class BudgetItem:
    item_number: int
    ucap: Optional[UcapRef]
    unit_value: Decimal
    quantity: Decimal
    initial_ipp: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_value * self.quantity


@dataclass(frozen=True)
class InvestmentItem:
    order_number: int
    point: Optional[str] = None
    description: Optional[str] = None
    luminaire_quantity: Optional[int] = None
    relocated_luminaire_quantity: Optional[int] = None
    pole_quantity: Optional[int] = None
    braided_network: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None

    @property
    def coordinates(self) -> Optional[str]:
        if self.latitude and self.longitude:
            return f"{self.latitude}, {self.longitude}"
        return None


@dataclass(frozen=True)
class MaterialItem:
    material: Optional[MaterialRef]
    unit: Optional[str]
    quantity: Decimal
    observations: Optional[str] = None


@dataclass(frozen=True)
class TravelExpenseItem:
    expense_type: str
    quantity: Optional[Decimal] = None
    observations: Optional[str] = None

    @property
    def label(self) -> str:
        return expense_label(self.expense_type)


# ---------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BlockReview:
    block: BlockName
    status: BlockStatus = BlockStatus.PENDING
    comments: Optional[str] = None

    @property
    def title(self) -> str:
        return self.block.display_title


@dataclass(frozen=True)
class RejectedBlock:
    title: str
    comments: Optional[str]


@dataclass(frozen=True)
class WorkInfo:
    work_id: int
    company_id: Optional[int] = None
    work_code: Optional[str] = None
    name: Optional[str] = None
    company_name: Optional[str] = None
    record_number: Optional[str] = None
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    user_name: Optional[str] = None
    requesting_entity: Optional[str] = None
    sector_village: Optional[str] = None
    zone: Optional[str] = None
    user_address: Optional[str] = None
    area_type: Optional[str] = None
    request_type: Optional[str] = None
    filing_number: Optional[str] = None
    ipp_initial_value: Optional[Decimal] = None


def pending_reviews() -> Tuple[BlockReview, ...]:
    return tuple(BlockReview(block) for block in BLOCK_ORDER)


@dataclass(frozen=True)
class Survey:
    survey_id: int
    survey_number: str
    survey_date: Optional[date] = None
    request_date: Optional[date] = None
    description: Optional[str] = None
    previous_month_ipp: Optional[Decimal] = None
    reviews: Tuple[BlockReview, ...] = field(default_factory=pending_reviews)
    budget_items: Tuple[BudgetItem, ...] = ()
    investment_items: Tuple[InvestmentItem, ...] = ()
    material_items: Tuple[MaterialItem, ...] = ()
    travel_expenses: Tuple[TravelExpenseItem, ...] = ()

    work: Optional[WorkInfo] = None
    project_code: Optional[str] = None
    sketch_url: Optional[str] = None
    map_url: Optional[str] = None
    requires_photometric_studies: bool = False
    requires_retie_certification: bool = False
    requires_retilap_certification: bool = False
    requires_civil_work: bool = False

    def __post_init__(self):
        if tuple(r.block for r in self.reviews) != BLOCK_ORDER:
            raise ValueError("A survey carries exactly one review per block, in block order.")

    def review(self, block: BlockName) -> BlockReview:
        return self.reviews[BLOCK_ORDER.index(block)]

    def status_of(self, block: BlockName) -> BlockStatus:
        return self.review(block).status

    def comments_of(self, block: BlockName) -> Optional[str]:
        return self.review(block).comments

    @property
    def all_blocks_approved(self) -> bool:
        return all(r.status is BlockStatus.APPROVED for r in self.reviews)

    @property
    def any_block_pending(self) -> bool:
        return any(r.status is BlockStatus.PENDING for r in self.reviews)

    @property
    def has_reviewed_blocks(self) -> bool:
        return any(r.status is not BlockStatus.PENDING for r in self.reviews)

    @property
    def rejected_blocks(self) -> list[RejectedBlock]:
        return [
            RejectedBlock(title=r.title, comments=r.comments)
            for r in self.reviews
            if r.status is BlockStatus.REJECTED
        ]

    @property
    def pending_blocks(self) -> list[BlockName]:
        return [r.block for r in self.reviews if r.status is BlockStatus.PENDING]
