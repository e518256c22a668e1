"""Domain types shared by every settlement component.

Orders, expenses and settlement records are immutable inputs. Payment and
transfer shapes are explicit tagged variants so callers match on type
instead of probing optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

ZERO = Decimal("0")
ALL_BRANCHES = "all"


def round_amount(value: Decimal) -> Decimal:
    """Round to whole currency units, halves away from zero."""
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


class PaymentBucket(str, Enum):
    """Settlement buckets that payment methods are grouped into."""

    CARD = "card"
    CASH = "cash"
    TRANSFER = "transfer"
    OTHER = "other"


def bucket_for(method: str | None) -> PaymentBucket:
    """Map a raw payment method to its bucket.

    mainpay, shopping_mall, epay, kakao, apple and anything unrecognized are
    still counted, under ``OTHER``.
    """
    if method:
        normalized = method.strip().lower()
        for bucket in (PaymentBucket.CARD, PaymentBucket.CASH, PaymentBucket.TRANSFER):
            if normalized == bucket.value:
                return bucket
    return PaymentBucket.OTHER


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    SPLIT_PAYMENT = "split_payment"

    @property
    def is_paid(self) -> bool:
        return self in (PaymentStatus.PAID, PaymentStatus.COMPLETED)


class OrderStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELED = "canceled"


class TransferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExpenseCategory(str, Enum):
    TRANSPORT = "transport"
    MATERIAL = "material"
    LABOR = "labor"
    RENT = "rent"
    UTILITY = "utility"
    FOOD = "food"
    OTHER = "other"


@dataclass(frozen=True)
class OrderItem:
    name: str
    quantity: int = 1
    price: Decimal = ZERO


@dataclass(frozen=True)
class OrderSummary:
    """Price breakdown of an order. ``total`` is the payable amount."""

    total: Decimal
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    points_used: Decimal = ZERO
    points_earned: Decimal = ZERO


@dataclass(frozen=True)
class SimplePayment:
    """Single payment settled in full at ``completed_at``."""

    method: str
    status: PaymentStatus = PaymentStatus.PENDING
    completed_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.status.is_paid


@dataclass(frozen=True)
class SplitPayment:
    """Order paid in two installments, possibly by different methods."""

    first_method: str
    first_amount: Decimal
    first_date: datetime | None = None
    second_method: str | None = None
    second_amount: Decimal | None = None
    second_date: datetime | None = None
    status: PaymentStatus = PaymentStatus.SPLIT_PAYMENT
    completed_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.status.is_paid

    @property
    def effective_second_date(self) -> datetime | None:
        return self.second_date or self.completed_at

    def second_amount_for(self, total: Decimal) -> Decimal:
        if self.second_amount is not None:
            return self.second_amount
        return total - self.first_amount


PaymentMode = SimplePayment | SplitPayment


@dataclass(frozen=True)
class AmountSplit:
    """Percentage revenue split between the ordering and processing branch."""

    order_branch_percent: Decimal = Decimal("100")
    process_branch_percent: Decimal = ZERO


@dataclass(frozen=True)
class NoTransfer:
    """Order fulfilled by the branch that took it."""


@dataclass(frozen=True)
class Transfer:
    """Order handed over to another branch for processing."""

    status: TransferStatus
    process_branch_name: str
    original_branch_name: str | None = None
    amount_split: AmountSplit = field(default_factory=AmountSplit)

    @property
    def is_valid(self) -> bool:
        """Only accepted or completed transfers split revenue."""
        return self.status in (TransferStatus.ACCEPTED, TransferStatus.COMPLETED)


TransferState = NoTransfer | Transfer


@dataclass(frozen=True)
class OutsourceInfo:
    partner_name: str
    partner_price: Decimal = ZERO
    profit: Decimal = ZERO
    status: str = "pending"


@dataclass(frozen=True)
class Order:
    id: str
    branch_name: str
    order_date: datetime | None
    summary: OrderSummary
    payment: PaymentMode
    status: OrderStatus = OrderStatus.PROCESSING
    transfer: TransferState = field(default_factory=NoTransfer)
    items: tuple[OrderItem, ...] = ()
    branch_id: str | None = None
    actual_delivery_cost_cash: Decimal = ZERO
    delivery_date: date | None = None
    pickup_date: date | None = None
    delivery_cost_updated_at: datetime | None = None
    outsource: OutsourceInfo | None = None

    @property
    def total(self) -> Decimal:
        return self.summary.total

    @property
    def is_canceled(self) -> bool:
        return self.status is OrderStatus.CANCELED

    @property
    def dedupe_key(self) -> str | int:
        """Order id, or object identity for orders stored without one."""
        return self.id or id(self)

    @property
    def activity_days(self) -> set[date]:
        """Every day this order placed, collected or charged money on."""
        instants: list[datetime | None] = [self.order_date, self.payment.completed_at]
        if isinstance(self.payment, SplitPayment):
            instants += [self.payment.first_date, self.payment.second_date]
        days = {instant.date() for instant in instants if instant is not None}
        if self.delivery_cost_day:
            days.add(self.delivery_cost_day)
        return days

    @property
    def delivery_cost_day(self) -> date | None:
        """Day a courier's cash delivery cost is charged to."""
        if self.delivery_date:
            return self.delivery_date
        if self.pickup_date:
            return self.pickup_date
        if self.delivery_cost_updated_at:
            return self.delivery_cost_updated_at.date()
        if self.order_date:
            return self.order_date.date()
        return None


@dataclass(frozen=True)
class Expense:
    id: str
    date: datetime | None
    amount: Decimal
    category: ExpenseCategory = ExpenseCategory.OTHER
    branch_id: str | None = None
    payment_method: str | None = None
    description: str = ""
    quantity: int = 1
    related_order_id: str | None = None
    supplier: str | None = None


@dataclass(frozen=True)
class SettlementRecord:
    """End-of-day vault snapshot for one branch and day."""

    branch_id: str
    date: date
    previous_vault_balance: Decimal = ZERO
    cash_sales_today: Decimal = ZERO
    vault_deposit: Decimal = ZERO
    delivery_cost_cash_today: Decimal = ZERO
    cash_expense_today: Decimal = ZERO
    branch_name: str | None = None
    manual_transport_count: int | None = None
    manual_transport_amount: Decimal | None = None
    memo: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_virtual: bool = False

    @property
    def record_id(self) -> str:
        key = f"{self.branch_id}_{self.date.isoformat()}"
        return f"virtual_{key}" if self.is_virtual else key

    @property
    def closing_balance(self) -> Decimal:
        return (
            self.previous_vault_balance
            + self.cash_sales_today
            - self.vault_deposit
            - self.delivery_cost_cash_today
            - self.cash_expense_today
        )

    def with_timestamps(self, now: datetime) -> SettlementRecord:
        """Copy stamped for an upsert; ``created_at`` survives overwrites."""
        return replace(self, created_at=self.created_at or now, updated_at=now)
