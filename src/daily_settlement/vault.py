"""Expected end-of-day cash in a branch's register (vault cash)."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from daily_settlement.attribution import BranchRole, branch_role
from daily_settlement.models import ZERO, Order, SettlementRecord


class PreviousBalanceSource(str, Enum):
    """Where the carried-in vault balance came from."""

    MANUAL = "manual"
    RECORD = "record"
    RECONSTRUCTED = "reconstructed"
    NONE = "none"


def resolve_previous_balance(
    manual_override: Decimal | None,
    previous_record: SettlementRecord | None,
    reconstructed_record: SettlementRecord | None = None,
) -> tuple[Decimal, PreviousBalanceSource]:
    """Pick the previous-day balance.

    A non-zero manual override wins, then the persisted record for the
    previous day, then a reconstructed one, then zero.
    """
    if manual_override:
        return manual_override, PreviousBalanceSource.MANUAL
    if previous_record is not None:
        return previous_record.closing_balance, PreviousBalanceSource.RECORD
    if reconstructed_record is not None:
        return reconstructed_record.closing_balance, PreviousBalanceSource.RECONSTRUCTED
    return ZERO, PreviousBalanceSource.NONE


def delivery_cash_from_orders(orders: Iterable[Order], target_branch: str, day: date) -> Decimal:
    """Cash paid to couriers for orders delivered or picked up on ``day``."""
    total = ZERO
    seen: set[str | int] = set()
    for order in orders:
        if order.dedupe_key in seen or not order.actual_delivery_cost_cash:
            continue
        if order.delivery_cost_day != day:
            continue
        if branch_role(order, target_branch) is BranchRole.NONE:
            continue
        seen.add(order.dedupe_key)
        total += order.actual_delivery_cost_cash
    return total


def combine_delivery_cash(from_orders: Decimal, from_expenses: Decimal) -> Decimal:
    # Either source may under-report; the larger figure is used.
    return max(from_orders, from_expenses)


@dataclass(frozen=True)
class VaultCash:
    previous_balance: Decimal
    previous_balance_source: PreviousBalanceSource
    cash_sales: Decimal
    vault_deposit: Decimal
    delivery_cost_cash: Decimal
    other_cash_expenses: Decimal

    @property
    def remaining(self) -> Decimal:
        return (
            self.previous_balance
            + self.cash_sales
            - self.vault_deposit
            - self.delivery_cost_cash
            - self.other_cash_expenses
        )

    def to_record(
        self,
        branch_id: str,
        day: date,
        branch_name: str | None = None,
        memo: str | None = None,
        existing: SettlementRecord | None = None,
    ) -> SettlementRecord:
        """Snapshot these figures as the settlement record for ``day``."""
        return SettlementRecord(
            branch_id=branch_id,
            branch_name=branch_name,
            date=day,
            previous_vault_balance=self.previous_balance,
            cash_sales_today=self.cash_sales,
            vault_deposit=self.vault_deposit,
            delivery_cost_cash_today=self.delivery_cost_cash,
            cash_expense_today=self.other_cash_expenses,
            manual_transport_count=existing.manual_transport_count if existing else None,
            manual_transport_amount=existing.manual_transport_amount if existing else None,
            memo=memo if memo is not None else (existing.memo if existing else None),
            created_at=existing.created_at if existing else None,
        )


def calculate_vault_cash(
    cash_sales: Decimal,
    vault_deposit: Decimal,
    previous_balance: Decimal,
    delivery_cash_orders: Decimal,
    delivery_cash_expenses: Decimal,
    other_cash: Decimal,
    previous_balance_source: PreviousBalanceSource = PreviousBalanceSource.NONE,
) -> VaultCash:
    """``remaining = previous + cash sales - deposit - delivery cash - other cash``."""
    return VaultCash(
        previous_balance=previous_balance,
        previous_balance_source=previous_balance_source,
        cash_sales=cash_sales,
        vault_deposit=vault_deposit,
        delivery_cost_cash=combine_delivery_cash(delivery_cash_orders, delivery_cash_expenses),
        other_cash_expenses=other_cash,
    )
