"""Aggregate attributed payments into per-method daily totals."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import cast

from daily_settlement.attribution import Attribution, BranchRole, attribute
from daily_settlement.dates import DayWindow
from daily_settlement.models import ZERO, Order, PaymentBucket


@dataclass
class BucketTotal:
    count: int = 0
    amount: Decimal = ZERO

    def add(self, amount: Decimal) -> None:
        self.count += 1
        self.amount += amount


@dataclass(frozen=True)
class OrderLine:
    """One order's contribution to the day."""

    order: Order
    attribution: Attribution
    is_today_order: bool

    @property
    def is_carried_forward(self) -> bool:
        return not self.is_today_order and self.attribution.amount > ZERO


@dataclass
class DailySalesSummary:
    """Per-method settlement totals for one branch and day."""

    buckets: dict[PaymentBucket, BucketTotal] = field(
        default_factory=lambda: {bucket: BucketTotal() for bucket in PaymentBucket}
    )
    settled_total: Decimal = ZERO
    today_orders_total: Decimal = ZERO
    carried_forward_total: Decimal = ZERO
    pending_total: Decimal = ZERO
    total_payment: Decimal = ZERO
    outgoing_settle: Decimal = ZERO
    incoming_settle: Decimal = ZERO
    today_orders: list[Order] = field(default_factory=list)
    paid_orders: list[Order] = field(default_factory=list)
    pending_orders: list[Order] = field(default_factory=list)
    carried_forward_orders: list[Order] = field(default_factory=list)
    lines: list[OrderLine] = field(default_factory=list)

    @property
    def net_sales(self) -> Decimal:
        return self.settled_total

    @property
    def order_count(self) -> int:
        return len(self.today_orders)

    def bucket(self, bucket: PaymentBucket) -> BucketTotal:
        return self.buckets[bucket]

    @property
    def cash_sales(self) -> Decimal:
        return self.buckets[PaymentBucket.CASH].amount


def _newest_first_key(order: Order) -> datetime:
    # undated orders are filtered out before sorting
    return cast(datetime, order.order_date)


def bucketize(orders: Iterable[Order], target_branch: str, window: DayWindow) -> DailySalesSummary:
    """Attribute every order touching ``window`` and total the results.

    Canceled orders and orders whose date could not be parsed are skipped.
    """
    summary = DailySalesSummary()
    candidates = sorted(
        (o for o in orders if not o.is_canceled and o.order_date is not None),
        key=_newest_first_key,
        reverse=True,
    )

    for order in candidates:
        result = attribute(order, target_branch, window)
        if not result.has_role:
            continue

        is_today = window.contains(order.order_date)
        if not is_today and result.amount == ZERO:
            continue

        for share in result.shares:
            summary.buckets[share.bucket].add(share.amount)

        summary.settled_total += result.amount
        if result.role is BranchRole.PROCESSING:
            summary.incoming_settle += result.amount
        else:
            summary.outgoing_settle += result.amount

        if is_today:
            summary.today_orders.append(order)
            summary.today_orders_total += result.amount
            if result.role is not BranchRole.PROCESSING:
                summary.total_payment += order.total
                if result.is_pending_for_window:
                    summary.pending_orders.append(order)
                    summary.pending_total += result.pending_amount
        else:
            summary.carried_forward_orders.append(order)
            summary.carried_forward_total += result.amount

        if result.amount > ZERO:
            summary.paid_orders.append(order)

        summary.lines.append(OrderLine(order, result, is_today))

    return summary
