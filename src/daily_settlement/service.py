"""Daily settlement view for a branch: sales, expenses and vault cash.

:func:`compute_settlement` is a pure function of its inputs.
:class:`SettlementService` does the I/O around it: loading the day's facts
from the collaborators, falling back to gap reconstruction for the previous
day, and saving the result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import structlog

from daily_settlement.buckets import DailySalesSummary, bucketize
from daily_settlement.config.branches import BranchDirectory, get_branch_directory
from daily_settlement.dates import day_window
from daily_settlement.expenses import (
    ExpenseSummary,
    delivery_cash_from_expenses,
    other_cash_expenses,
    summarize_expenses,
)
from daily_settlement.models import (
    ALL_BRANCHES,
    ZERO,
    Expense,
    Order,
    PaymentBucket,
    SettlementRecord,
)
from daily_settlement.reconstruction import GapReconstructor
from daily_settlement.store import ExpenseSource, OrderSource, SettlementStore
from daily_settlement.vault import (
    PreviousBalanceSource,
    VaultCash,
    calculate_vault_cash,
    delivery_cash_from_orders,
    resolve_previous_balance,
)

logger = structlog.get_logger(__name__)


class SettlementError(Exception):
    """Base exception for settlement errors."""


class UnknownBranchError(SettlementError):
    """Branch name could not be resolved to a branch id."""

    def __init__(self, branch_name: str):
        super().__init__(f"Unknown branch: {branch_name}")
        self.branch_name = branch_name


def _money(value: Decimal) -> int | str:
    return int(value) if value == value.to_integral_value() else str(value)


@dataclass(frozen=True)
class SettlementView:
    """Everything a caller needs to show or save one day's settlement."""

    branch_name: str
    branch_id: str | None
    report_date: date
    sales: DailySalesSummary
    expenses: ExpenseSummary
    vault: VaultCash | None = None
    record: SettlementRecord | None = None
    previous_record: SettlementRecord | None = None
    reconstruction_unavailable: bool = False

    @property
    def remaining(self) -> Decimal | None:
        return self.vault.remaining if self.vault else None

    def to_dict(self) -> dict[str, Any]:
        sales = self.sales
        payload: dict[str, Any] = {
            "branch": self.branch_name,
            "branch_id": self.branch_id,
            "date": self.report_date.isoformat(),
            "sales": {
                "buckets": {
                    bucket.value: {
                        "count": sales.bucket(bucket).count,
                        "amount": _money(sales.bucket(bucket).amount),
                    }
                    for bucket in PaymentBucket
                },
                "settled_total": _money(sales.settled_total),
                "today_orders_total": _money(sales.today_orders_total),
                "carried_forward_total": _money(sales.carried_forward_total),
                "pending_total": _money(sales.pending_total),
                "pending_order_ids": [o.id for o in sales.pending_orders],
                "total_payment": _money(sales.total_payment),
                "outgoing_settle": _money(sales.outgoing_settle),
                "incoming_settle": _money(sales.incoming_settle),
                "order_count": sales.order_count,
            },
            "expenses": {
                "total": _money(self.expenses.total),
                "transport": {
                    "count": self.expenses.transport_count,
                    "amount": _money(self.expenses.transport_amount),
                },
                "outsource": {
                    "count": self.expenses.outsource_count,
                    "amount": _money(self.expenses.outsource_amount),
                },
                "material": _money(self.expenses.material_amount),
                "other": _money(self.expenses.other_amount),
            },
            "vault": None,
            "reconstruction_unavailable": self.reconstruction_unavailable,
        }
        if self.vault:
            payload["vault"] = {
                "previous_balance": _money(self.vault.previous_balance),
                "previous_balance_source": self.vault.previous_balance_source.value,
                "cash_sales": _money(self.vault.cash_sales),
                "vault_deposit": _money(self.vault.vault_deposit),
                "delivery_cost_cash": _money(self.vault.delivery_cost_cash),
                "other_cash_expenses": _money(self.vault.other_cash_expenses),
                "remaining": _money(self.vault.remaining),
            }
        return payload


def compute_settlement(
    orders: Sequence[Order],
    expenses: Sequence[Expense],
    branch_name: str,
    report_date: date,
    *,
    branch_id: str | None = None,
    previous_record: SettlementRecord | None = None,
    reconstructed_record: SettlementRecord | None = None,
    vault_deposit: Decimal = ZERO,
    manual_previous_balance: Decimal | None = None,
    record: SettlementRecord | None = None,
    cash_markers: Sequence[str] | None = None,
    outsource_marker: str | None = None,
) -> SettlementView:
    """Compute the settlement view from already-loaded facts.

    The "all branches" view has sales figures only; vault cash is
    per-branch.
    """
    window = day_window(report_date)
    sales = bucketize(orders, branch_name, window)

    if branch_name == ALL_BRANCHES:
        return SettlementView(
            branch_name=branch_name,
            branch_id=None,
            report_date=report_date,
            sales=sales,
            expenses=ExpenseSummary(),
        )

    previous_balance, source = resolve_previous_balance(
        manual_previous_balance, previous_record, reconstructed_record
    )
    vault = calculate_vault_cash(
        cash_sales=sales.cash_sales,
        vault_deposit=vault_deposit,
        previous_balance=previous_balance,
        delivery_cash_orders=delivery_cash_from_orders(orders, branch_name, report_date),
        delivery_cash_expenses=delivery_cash_from_expenses(expenses, report_date, cash_markers),
        other_cash=other_cash_expenses(expenses, report_date, cash_markers),
        previous_balance_source=source,
    )
    return SettlementView(
        branch_name=branch_name,
        branch_id=branch_id,
        report_date=report_date,
        sales=sales,
        expenses=summarize_expenses(expenses, report_date, outsource_marker),
        vault=vault,
        record=record,
        previous_record=previous_record or reconstructed_record,
        reconstruction_unavailable=source is PreviousBalanceSource.NONE,
    )


class SettlementService:
    """Load, compute and save daily settlements through the collaborators."""

    def __init__(
        self,
        orders: OrderSource,
        expenses: ExpenseSource,
        store: SettlementStore,
        branches: BranchDirectory | None = None,
        reconstructor: GapReconstructor | None = None,
        cash_markers: Sequence[str] | None = None,
    ):
        self._orders = orders
        self._expenses = expenses
        self._store = store
        self._branches = branches if branches is not None else get_branch_directory()
        self._cash_markers = cash_markers
        self._reconstructor = reconstructor or GapReconstructor(
            orders, expenses, store, cash_markers=cash_markers
        )
        self._logger = logger.bind(component="settlement_service")

    def resolve_branch_id(self, branch_name: str) -> str:
        branch = self._branches.by_name(branch_name)
        if branch is None:
            raise UnknownBranchError(branch_name)
        return branch.id

    async def build_view(
        self,
        branch_name: str,
        report_date: date,
        *,
        branch_id: str | None = None,
        vault_deposit: Decimal | None = None,
        manual_previous_balance: Decimal | None = None,
    ) -> SettlementView:
        """Build the settlement view for ``branch_name`` on ``report_date``.

        Deposit and previous balance default to what was saved for the day.
        """
        if branch_name == ALL_BRANCHES:
            orders = await self._orders.fetch_orders(report_date)
            return compute_settlement(orders, [], branch_name, report_date)

        branch_id = branch_id or self.resolve_branch_id(branch_name)
        previous_date = report_date - timedelta(days=1)

        record, previous_record, expenses, orders = await asyncio.gather(
            self._store.get_settlement_record(branch_id, report_date),
            self._store.get_settlement_record(branch_id, previous_date),
            self._expenses.fetch_expenses(report_date, report_date, branch_id=branch_id),
            self._orders.fetch_orders(report_date),
        )

        if vault_deposit is None:
            vault_deposit = record.vault_deposit if record else ZERO
        if manual_previous_balance is None and record is not None:
            manual_previous_balance = record.previous_vault_balance

        reconstructed = None
        if previous_record is None and not manual_previous_balance:
            reconstructed = await self._reconstructor.reconstruct(
                branch_id, branch_name, previous_date
            )

        view = compute_settlement(
            orders,
            expenses,
            branch_name,
            report_date,
            branch_id=branch_id,
            previous_record=previous_record,
            reconstructed_record=reconstructed,
            vault_deposit=vault_deposit,
            manual_previous_balance=manual_previous_balance,
            record=record,
            cash_markers=self._cash_markers,
        )
        self._logger.info(
            "settlement_computed",
            branch=branch_name,
            date=str(report_date),
            orders=len(orders),
            expenses=len(expenses),
            remaining=str(view.remaining),
            previous_balance_source=view.vault.previous_balance_source.value if view.vault else None,
        )
        return view

    async def save(self, view: SettlementView, memo: str | None = None) -> bool:
        """Persist the view's vault figures. Concurrent saves: last writer wins."""
        if view.vault is None or view.branch_id is None:
            self._logger.warning("settlement_not_saveable", branch=view.branch_name)
            return False
        record = view.vault.to_record(
            view.branch_id,
            view.report_date,
            branch_name=view.branch_name,
            memo=memo,
            existing=view.record,
        )
        return await self._store.save_settlement_record(record)
