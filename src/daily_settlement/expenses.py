"""Cash rules for the expense ledger."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from daily_settlement.config import get_settings
from daily_settlement.models import ZERO, Expense, ExpenseCategory


def is_cash_expense(expense: Expense, cash_markers: Sequence[str] | None = None) -> bool:
    """Cash when flagged as such, or when the description says so."""
    if (expense.payment_method or "").strip().lower() == "cash":
        return True
    markers = cash_markers if cash_markers is not None else get_settings().cash_markers
    return any(marker and marker in expense.description for marker in markers)


def expenses_on(expenses: Iterable[Expense], day: date) -> list[Expense]:
    """Entries dated on ``day``; undated entries are dropped."""
    return [e for e in expenses if e.date is not None and e.date.date() == day]


def delivery_cash_from_expenses(
    expenses: Iterable[Expense], day: date, cash_markers: Sequence[str] | None = None
) -> Decimal:
    return sum(
        (
            e.amount
            for e in expenses_on(expenses, day)
            if e.category is ExpenseCategory.TRANSPORT and is_cash_expense(e, cash_markers)
        ),
        ZERO,
    )


def other_cash_expenses(
    expenses: Iterable[Expense], day: date, cash_markers: Sequence[str] | None = None
) -> Decimal:
    return sum(
        (
            e.amount
            for e in expenses_on(expenses, day)
            if e.category is not ExpenseCategory.TRANSPORT and is_cash_expense(e, cash_markers)
        ),
        ZERO,
    )


@dataclass
class ExpenseSummary:
    """Purchase-side breakdown shown next to the vault figures."""

    total: Decimal = ZERO
    transport_count: int = 0
    transport_amount: Decimal = ZERO
    outsource_count: int = 0
    outsource_amount: Decimal = ZERO
    material_amount: Decimal = ZERO
    other_amount: Decimal = ZERO
    outsource_items: list[Expense] = field(default_factory=list)


def summarize_expenses(
    expenses: Iterable[Expense], day: date, outsource_marker: str | None = None
) -> ExpenseSummary:
    """Group a day's expenses into transport, outsourcing, material and other.

    Material entries whose description carries the outsource marker are
    outsourcing costs, not materials.
    """
    marker = outsource_marker if outsource_marker is not None else get_settings().outsource_marker
    summary = ExpenseSummary()
    for expense in expenses_on(expenses, day):
        summary.total += expense.amount
        if expense.category is ExpenseCategory.TRANSPORT:
            summary.transport_count += expense.quantity or 1
            summary.transport_amount += expense.amount
        elif expense.category is ExpenseCategory.MATERIAL:
            if marker and marker in expense.description:
                summary.outsource_count += 1
                summary.outsource_amount += expense.amount
                summary.outsource_items.append(expense)
            else:
                summary.material_amount += expense.amount
        else:
            summary.other_amount += expense.amount
    return summary
