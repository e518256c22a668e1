"""Contracts for the collaborators the engine reads from and writes to.

The engine never owns persistence. It talks to an order source, an expense
source and a settlement store through these protocols;
:class:`~daily_settlement.client.BackOfficeClient` implements them over HTTP
and :class:`InMemoryBackOffice` keeps everything in process.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Protocol

import structlog

from daily_settlement.models import Expense, Order, SettlementRecord

logger = structlog.get_logger(__name__)

DayOrRange = date | tuple[date, date]


def as_range(day_or_range: DayOrRange) -> tuple[date, date]:
    if isinstance(day_or_range, tuple):
        return day_or_range
    return day_or_range, day_or_range


class OrderSource(Protocol):
    async def fetch_orders(self, day_or_range: DayOrRange) -> list[Order]:
        """Orders whose order date or payment activity may fall in range."""
        ...


class ExpenseSource(Protocol):
    async def fetch_expenses(
        self, date_from: date, date_to: date, branch_id: str | None = None
    ) -> list[Expense]:
        ...


class SettlementStore(Protocol):
    async def get_settlement_record(self, branch_id: str, day: date) -> SettlementRecord | None:
        ...

    async def save_settlement_record(self, record: SettlementRecord) -> bool:
        """Upsert keyed by (branch, date). Last writer wins."""
        ...

    async def find_last_settlement_before(
        self, branch_id: str, day: date
    ) -> SettlementRecord | None:
        ...


class InMemoryBackOffice:
    """Order source, expense source and settlement store backed by lists."""

    def __init__(
        self,
        orders: Iterable[Order] = (),
        expenses: Iterable[Expense] = (),
        settlements: Iterable[SettlementRecord] = (),
    ):
        self.orders = list(orders)
        self.expenses = list(expenses)
        self._settlements: dict[tuple[str, date], SettlementRecord] = {
            (r.branch_id, r.date): r for r in settlements
        }
        self.order_fetches: list[tuple[date, date]] = []
        self.expense_fetches: list[tuple[date, date, str | None]] = []

    async def fetch_orders(self, day_or_range: DayOrRange) -> list[Order]:
        date_from, date_to = as_range(day_or_range)
        self.order_fetches.append((date_from, date_to))
        return [
            order
            for order in self.orders
            if any(date_from <= day <= date_to for day in order.activity_days)
        ]

    async def fetch_expenses(
        self, date_from: date, date_to: date, branch_id: str | None = None
    ) -> list[Expense]:
        self.expense_fetches.append((date_from, date_to, branch_id))
        return [
            expense
            for expense in self.expenses
            if expense.date is not None
            and date_from <= expense.date.date() <= date_to
            and (branch_id is None or expense.branch_id == branch_id)
        ]

    async def get_settlement_record(self, branch_id: str, day: date) -> SettlementRecord | None:
        return self._settlements.get((branch_id, day))

    async def save_settlement_record(self, record: SettlementRecord) -> bool:
        key = (record.branch_id, record.date)
        existing = self._settlements.get(key)
        if existing is not None and record.created_at is None:
            record = replace(record, created_at=existing.created_at)
        self._settlements[key] = replace(record.with_timestamps(datetime.now(UTC)), is_virtual=False)
        logger.debug("settlement_stored", branch_id=record.branch_id, date=str(record.date))
        return True

    async def find_last_settlement_before(
        self, branch_id: str, day: date
    ) -> SettlementRecord | None:
        earlier = [
            record
            for (record_branch, record_day), record in self._settlements.items()
            if record_branch == branch_id and record_day < day
        ]
        return max(earlier, key=lambda r: r.date, default=None)

    @property
    def settlements(self) -> list[SettlementRecord]:
        return sorted(self._settlements.values(), key=lambda r: (r.branch_id, r.date))
