"""Revenue attribution of a single order to a branch for one business day.

An order can be owned by its original branch, shared with a processing
branch after an accepted transfer, and paid in one or two installments on
different days. :func:`attribute` answers how much of the money collected
inside a day window belongs to a given branch, and whether the order is
still pending at the end of its own order day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from daily_settlement.config.branches import normalize_branch_name
from daily_settlement.dates import DayWindow
from daily_settlement.models import (
    ALL_BRANCHES,
    ZERO,
    NoTransfer,
    Order,
    PaymentBucket,
    SimplePayment,
    SplitPayment,
    Transfer,
    bucket_for,
    round_amount,
)

HUNDRED = Decimal("100")


class BranchRole(str, Enum):
    """How a branch relates to an order."""

    ALL = "all"
    ORIGINAL = "original"
    PROCESSING = "processing"
    NONE = "none"


@dataclass(frozen=True)
class Installment:
    """Money received for an order inside the window (before splitting)."""

    method: str
    amount: Decimal
    paid_at: datetime | None
    sequence: int = 1

    @property
    def bucket(self) -> PaymentBucket:
        return bucket_for(self.method)


@dataclass(frozen=True)
class InstallmentShare:
    """The target branch's share of one installment."""

    installment: Installment
    amount: Decimal

    @property
    def bucket(self) -> PaymentBucket:
        return self.installment.bucket


@dataclass(frozen=True)
class Attribution:
    order_id: str
    role: BranchRole
    ratio: Decimal
    settled_amount: Decimal
    amount: Decimal
    shares: tuple[InstallmentShare, ...] = ()
    is_pending_for_window: bool = False
    pending_amount: Decimal = ZERO

    @property
    def has_role(self) -> bool:
        return self.role is not BranchRole.NONE


def branch_role(order: Order, target_branch: str) -> BranchRole:
    if order.is_canceled:
        return BranchRole.NONE
    if target_branch == ALL_BRANCHES:
        return BranchRole.ALL

    target = normalize_branch_name(target_branch)
    if normalize_branch_name(order.branch_name) == target:
        return BranchRole.ORIGINAL

    transfer = order.transfer
    if (
        isinstance(transfer, Transfer)
        and transfer.is_valid
        and normalize_branch_name(transfer.process_branch_name) == target
    ):
        return BranchRole.PROCESSING
    return BranchRole.NONE


def share_ratio(order: Order, role: BranchRole) -> Decimal:
    if role is BranchRole.NONE:
        return ZERO
    transfer = order.transfer
    if isinstance(transfer, NoTransfer):
        return Decimal(1)
    if not isinstance(transfer, Transfer):
        raise TypeError(f"Unknown transfer state: {transfer!r}")
    if role is BranchRole.ALL or not transfer.is_valid:
        return Decimal(1)
    if role is BranchRole.ORIGINAL:
        return transfer.amount_split.order_branch_percent / HUNDRED
    return transfer.amount_split.process_branch_percent / HUNDRED


def _first_payment_date(order: Order, payment: SplitPayment) -> datetime | None:
    # The first installment is taken when the order is placed.
    return payment.first_date or order.order_date


def settled_installments(order: Order, window: DayWindow) -> list[Installment]:
    """Installments whose money arrived inside ``window``, ignoring ownership."""
    payment = order.payment
    if isinstance(payment, SimplePayment):
        if window.contains(payment.completed_at):
            return [Installment(payment.method, order.total, payment.completed_at)]
        return []
    if not isinstance(payment, SplitPayment):
        raise TypeError(f"Unknown payment mode: {payment!r}")

    installments: list[Installment] = []
    first_date = _first_payment_date(order, payment)
    if window.contains(first_date):
        installments.append(Installment(payment.first_method, payment.first_amount, first_date, 1))
    second_date = payment.effective_second_date
    if payment.is_paid and window.contains(second_date):
        installments.append(
            Installment(
                payment.second_method or payment.first_method,
                payment.second_amount_for(order.total),
                second_date,
                2,
            )
        )
    return installments


def paid_by(order: Order, cutoff: datetime) -> Decimal:
    """Amount collected for ``order`` at or before ``cutoff``."""
    payment = order.payment
    if isinstance(payment, SimplePayment):
        if not payment.is_paid:
            return ZERO
        if payment.completed_at is None or payment.completed_at <= cutoff:
            return order.total
        return ZERO
    if not isinstance(payment, SplitPayment):
        raise TypeError(f"Unknown payment mode: {payment!r}")

    collected = ZERO
    first_date = _first_payment_date(order, payment)
    if first_date is None or first_date <= cutoff:
        collected += payment.first_amount
    second_date = payment.effective_second_date
    if payment.is_paid and (second_date is None or second_date <= cutoff):
        collected += payment.second_amount_for(order.total)
    return collected


def _distribute(amount: Decimal, installments: list[Installment], ratio: Decimal) -> tuple[InstallmentShare, ...]:
    """Split ``amount`` across installments so the shares sum to it exactly."""
    shares: list[InstallmentShare] = []
    remaining = amount
    for idx, installment in enumerate(installments):
        if idx == len(installments) - 1:
            share = remaining
        else:
            share = round_amount(installment.amount * ratio)
            remaining -= share
        shares.append(InstallmentShare(installment, share))
    return tuple(shares)


def attribute(order: Order, target_branch: str, window: DayWindow) -> Attribution:
    """Attribute the money ``order`` brought in during ``window`` to a branch."""
    role = branch_role(order, target_branch)
    if role is BranchRole.NONE:
        return Attribution(order.id, role, ZERO, ZERO, ZERO)

    ratio = share_ratio(order, role)
    installments = settled_installments(order, window)
    settled = sum((i.amount for i in installments), ZERO)
    amount = round_amount(settled * ratio)

    is_pending = False
    pending_amount = ZERO
    if window.contains(order.order_date):
        outstanding = order.total - paid_by(order, window.end)
        if outstanding > ZERO:
            is_pending = True
            if role is not BranchRole.PROCESSING:
                pending_amount = round_amount(outstanding * ratio)

    return Attribution(
        order_id=order.id,
        role=role,
        ratio=ratio,
        settled_amount=settled,
        amount=amount,
        shares=_distribute(amount, installments, ratio),
        is_pending_for_window=is_pending,
        pending_amount=pending_amount,
    )
