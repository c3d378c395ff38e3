"""
survey_review/budget.py

Budget totals and IPP (producer price index) adjustment.

Two adjustment formulas exist and are kept apart on purpose:

- review_adjusted_total(): used on the review page.
    adjusted = subtotal * (previous_month_ipp / BASE_IPP)
- entry_adjusted_total(): used on the budget entry screen.
    adjusted = subtotal * (target_ipp / average initial IPP of selected items)

Whether they are two stages of one adjustment or a duplicated rule is an open
product question; do not merge them.

All functions are pure. Money is Decimal, quantized to cents (ROUND_HALF_UP).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .domain import BudgetItem, Survey

BASE_IPP = Decimal("100")


def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _present(ipp) -> bool:
    # A zero index means "not captured yet", same as a missing one.
    return ipp is not None and _to_decimal(ipp) != 0


def budget_subtotal(items: Iterable[BudgetItem]) -> Decimal:
    """Sum of unit value x quantity over every budget line."""
    total = Decimal("0")
    for item in items:
        total += _to_decimal(item.unit_value) * _to_decimal(item.quantity)
    return _money(total)


def review_adjustment_factor(previous_month_ipp, base_ipp=BASE_IPP) -> Optional[Decimal]:
    """previous_month_ipp / base_ipp, or None when the index is absent."""
    if not _present(previous_month_ipp):
        return None
    return _to_decimal(previous_month_ipp) / _to_decimal(base_ipp)


def review_adjusted_total(subtotal, previous_month_ipp, base_ipp=BASE_IPP) -> Decimal:
    """
    Adjusted total shown to reviewers.

    Without a previous-month IPP the subtotal is returned unchanged.
    """
    factor = review_adjustment_factor(previous_month_ipp, base_ipp)
    if factor is None:
        return _money(_to_decimal(subtotal))
    return _money(_to_decimal(subtotal) * factor)


def average_initial_ipp(items: Iterable[BudgetItem]) -> Optional[Decimal]:
    """
    Mean initial IPP of the lines that have a UCAP selected.

    Lines without a UCAP or without a positive initial IPP are ignored.
    """
    values = [
        _to_decimal(item.initial_ipp)
        for item in items
        if item.ucap is not None and item.initial_ipp is not None and _to_decimal(item.initial_ipp) > 0
    ]
    if not values:
        return None
    return sum(values, Decimal("0")) / Decimal(len(values))


def entry_adjusted_total(
    subtotal,
    target_ipp,
    items: Iterable[BudgetItem],
    configured_initial_ipp=BASE_IPP,
) -> Decimal:
    """
    Adjusted total as computed on the budget entry screen.

    (target_ipp / average initial IPP) * subtotal. When no line carries an
    initial IPP the configured initial value for the company is used.
    """
    base = _to_decimal(subtotal)
    if not _present(target_ipp):
        return _money(base)

    initial = average_initial_ipp(items)
    if initial is None:
        initial = _to_decimal(configured_initial_ipp)
    if initial == 0:
        return _money(base)

    return _money(_to_decimal(target_ipp) / initial * base)


@dataclass(frozen=True)
class BudgetSummary:
    subtotal: Decimal
    base_ipp: Decimal
    previous_month_ipp: Optional[Decimal]
    factor: Optional[Decimal]
    adjusted_total: Decimal
    entry_adjusted_total: Decimal

    @property
    def is_adjusted(self) -> bool:
        return self.factor is not None


def summarize_budget(survey: Survey, base_ipp=BASE_IPP) -> BudgetSummary:
    """Budget block figures for one survey, recomputed from its current items."""
    subtotal = budget_subtotal(survey.budget_items)
    factor = review_adjustment_factor(survey.previous_month_ipp, base_ipp)
    configured = survey.work.ipp_initial_value if survey.work and survey.work.ipp_initial_value else BASE_IPP
    return BudgetSummary(
        subtotal=subtotal,
        base_ipp=_to_decimal(base_ipp),
        previous_month_ipp=survey.previous_month_ipp,
        factor=factor.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP) if factor is not None else None,
        adjusted_total=review_adjusted_total(subtotal, survey.previous_month_ipp, base_ipp),
        entry_adjusted_total=entry_adjusted_total(
            subtotal, survey.previous_month_ipp, survey.budget_items, configured
        ),
    )
