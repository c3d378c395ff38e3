"""
Utility functions shared by templates and routes. This includes:
- block_badge_class: CSS class for a block status badge.
- survey_row_class: CSS class for a row in the review list.
- format_cop: Colombian peso formatting (no decimals, dot thousands separator).
"""

from decimal import Decimal, ROUND_HALF_UP

from .domain import STATUS_LABELS, BlockStatus


def block_badge_class(status):
    """Badge colour for a block status; anything unknown renders as pending."""
    status = BlockStatus.parse(getattr(status, "value", status))
    if status is BlockStatus.APPROVED:
        return "badge-approved"
    if status is BlockStatus.REJECTED:
        return "badge-rejected"
    return "badge-pending"


def status_label(status):
    return STATUS_LABELS[BlockStatus.parse(getattr(status, "value", status))]


def survey_row_class(survey):
    """
    Row colour in the review list.

    Priority:
    1) any block rejected -> red
    2) all blocks approved -> green
    3) partially reviewed -> light yellow
    """
    if survey.rejected_blocks:
        return "row-rejected"
    if survey.all_blocks_approved:
        return "row-complete"
    if survey.has_reviewed_blocks:
        return "row-partial"
    return ""


def format_cop(value):
    """1234567.8 -> '$ 1.234.568'"""
    if value is None:
        return "-"
    amount = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    digits = f"{abs(amount):,}".replace(",", ".")
    return f"{sign}$ {digits}"
