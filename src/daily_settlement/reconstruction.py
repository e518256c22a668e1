"""Synthesize a missing settlement record by replaying daily cash flow.

When the record for a day is missing, the nearest earlier persisted record
(the anchor) is rolled forward one calendar day at a time. Orders and
expenses for the whole gap are fetched once and indexed by day before the
replay starts.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

import structlog

from daily_settlement.attribution import BranchRole, branch_role, settled_installments
from daily_settlement.dates import day_window, daterange
from daily_settlement.expenses import delivery_cash_from_expenses, other_cash_expenses
from daily_settlement.models import ZERO, Expense, Order, PaymentBucket, SettlementRecord
from daily_settlement.store import ExpenseSource, OrderSource, SettlementStore
from daily_settlement.vault import combine_delivery_cash, delivery_cash_from_orders

logger = structlog.get_logger(__name__)

# Gaps this long or longer need a manually entered balance.
MAX_GAP_DAYS = 60


@dataclass
class DayIndex:
    """Orders and expenses bucketed by calendar day."""

    orders_by_day: dict[date, list[Order]] = field(default_factory=dict)
    expenses_by_day: dict[date, list[Expense]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        orders: Iterable[Order],
        expenses: Iterable[Expense],
        start: date | None = None,
        end: date | None = None,
    ) -> DayIndex:
        orders_by_day: dict[date, list[Order]] = defaultdict(list)
        expenses_by_day: dict[date, list[Expense]] = defaultdict(list)

        def in_range(day: date) -> bool:
            return (start is None or day >= start) and (end is None or day <= end)

        seen: set[str | int] = set()
        for order in orders:
            if order.dedupe_key in seen or order.is_canceled:
                continue
            seen.add(order.dedupe_key)
            for day in order.activity_days:
                if in_range(day):
                    orders_by_day[day].append(order)

        for expense in expenses:
            if expense.date is None:
                continue
            day = expense.date.date()
            if in_range(day):
                expenses_by_day[day].append(expense)

        return cls(dict(orders_by_day), dict(expenses_by_day))

    def orders_on(self, day: date) -> list[Order]:
        return self.orders_by_day.get(day, [])

    def expenses_on(self, day: date) -> list[Expense]:
        return self.expenses_by_day.get(day, [])


@dataclass(frozen=True)
class DayCashFlow:
    day: date
    cash_sales: Decimal = ZERO
    delivery_cash: Decimal = ZERO
    other_cash: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.cash_sales - self.delivery_cash - self.other_cash


def day_cash_flow(
    index: DayIndex,
    branch_name: str,
    day: date,
    cash_markers: Sequence[str] | None = None,
) -> DayCashFlow:
    """Cash in and out of the drawer on ``day``, deposits excluded.

    The branch is treated as sole owner of its own history, so cash
    installments count in full without any transfer split.
    """
    window = day_window(day)
    orders = index.orders_on(day)
    expenses = index.expenses_on(day)

    cash_sales = ZERO
    for order in orders:
        if branch_role(order, branch_name) is BranchRole.NONE:
            continue
        for installment in settled_installments(order, window):
            if installment.bucket is PaymentBucket.CASH:
                cash_sales += installment.amount

    delivery = combine_delivery_cash(
        delivery_cash_from_orders(orders, branch_name, day),
        delivery_cash_from_expenses(expenses, day, cash_markers),
    )
    return DayCashFlow(
        day=day,
        cash_sales=cash_sales,
        delivery_cash=delivery,
        other_cash=other_cash_expenses(expenses, day, cash_markers),
    )


def gap_days(anchor: SettlementRecord, target_date: date) -> int:
    return (target_date - anchor.date).days


def replay_gap(
    anchor: SettlementRecord,
    target_date: date,
    index: DayIndex,
    branch_name: str,
    cash_markers: Sequence[str] | None = None,
) -> SettlementRecord | None:
    """Roll ``anchor`` forward to a virtual record for ``target_date``.

    Returns ``None`` when the anchor is not before the target or the gap is
    ``MAX_GAP_DAYS`` or longer.
    """
    gap = gap_days(anchor, target_date)
    if gap <= 0 or gap >= MAX_GAP_DAYS:
        return None

    running_balance = anchor.closing_balance
    for day in daterange(anchor.date + timedelta(days=1), target_date - timedelta(days=1)):
        running_balance += day_cash_flow(index, branch_name, day, cash_markers).net

    target_flow = day_cash_flow(index, branch_name, target_date, cash_markers)
    return SettlementRecord(
        branch_id=anchor.branch_id,
        branch_name=anchor.branch_name or branch_name,
        date=target_date,
        previous_vault_balance=running_balance,
        cash_sales_today=target_flow.cash_sales,
        vault_deposit=ZERO,
        delivery_cost_cash_today=target_flow.delivery_cash,
        cash_expense_today=target_flow.other_cash,
        is_virtual=True,
    )


class GapReconstructor:
    """Fill a missing settlement record from the nearest persisted anchor."""

    def __init__(
        self,
        orders: OrderSource,
        expenses: ExpenseSource,
        store: SettlementStore,
        cash_markers: Sequence[str] | None = None,
    ):
        self._orders = orders
        self._expenses = expenses
        self._store = store
        self._cash_markers = cash_markers
        self._logger = logger.bind(component="gap_reconstructor")

    async def reconstruct(
        self, branch_id: str, branch_name: str, target_date: date
    ) -> SettlementRecord | None:
        """Return the record for ``target_date``, persisted or synthesized.

        ``None`` means the balance cannot be derived (no anchor, or a gap of
        ``MAX_GAP_DAYS`` or more) and must be entered manually.
        """
        existing = await self._store.get_settlement_record(branch_id, target_date)
        if existing is not None:
            return existing

        anchor = await self._store.find_last_settlement_before(branch_id, target_date)
        if anchor is None:
            self._logger.info("no_anchor_record", branch_id=branch_id, date=str(target_date))
            return None

        gap = gap_days(anchor, target_date)
        if gap >= MAX_GAP_DAYS:
            self._logger.info(
                "gap_too_large",
                branch_id=branch_id,
                date=str(target_date),
                anchor_date=str(anchor.date),
                gap_days=gap,
            )
            return None

        start = anchor.date + timedelta(days=1)
        orders = await self._orders.fetch_orders((start, target_date))
        expenses = await self._expenses.fetch_expenses(start, target_date, branch_id=branch_id)
        index = DayIndex.build(orders, expenses, start, target_date)

        record = replay_gap(anchor, target_date, index, branch_name, self._cash_markers)
        if record is not None:
            self._logger.info(
                "gap_reconstructed",
                branch_id=branch_id,
                date=str(target_date),
                anchor_date=str(anchor.date),
                gap_days=gap,
                previous_vault_balance=str(record.previous_vault_balance),
            )
        return record
