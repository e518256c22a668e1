"""Decode back-office payloads (camelCase dicts) into domain types.

This is the ingestion boundary: bad numbers become zero, bad dates become
``None`` and unknown enum values fall back to a default. Nothing here raises
on data-quality problems.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from daily_settlement import dates
from daily_settlement.models import (
    ZERO,
    AmountSplit,
    Expense,
    ExpenseCategory,
    NoTransfer,
    Order,
    OrderItem,
    OrderStatus,
    OrderSummary,
    OutsourceInfo,
    PaymentMode,
    PaymentStatus,
    SettlementRecord,
    SimplePayment,
    SplitPayment,
    Transfer,
    TransferState,
    TransferStatus,
    round_amount,
)

logger = structlog.get_logger(__name__)


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return default


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value)


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _enum_value(enum_cls: Any, value: Any, default: Any) -> Any:
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _whole(value: Decimal) -> int:
    return int(round_amount(value))


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def payment_from_dict(data: dict[str, Any]) -> PaymentMode:
    status = _enum_value(PaymentStatus, data.get("status"), PaymentStatus.PENDING)
    completed_at = dates.parse(data.get("completedAt"))
    method = str(data.get("method") or "")

    is_split = (
        data.get("isSplitPayment")
        or data.get("firstPaymentAmount") is not None
        or status is PaymentStatus.SPLIT_PAYMENT
    )
    if is_split:
        return SplitPayment(
            first_method=str(data.get("firstPaymentMethod") or method),
            first_amount=to_decimal(data.get("firstPaymentAmount")),
            first_date=dates.parse(data.get("firstPaymentDate")),
            second_method=data.get("secondPaymentMethod") or method or None,
            second_amount=_optional_decimal(data.get("secondPaymentAmount")),
            second_date=dates.parse(data.get("secondPaymentDate")),
            status=status,
            completed_at=completed_at,
        )
    return SimplePayment(method=method, status=status, completed_at=completed_at)


def transfer_from_dict(data: dict[str, Any] | None) -> TransferState:
    if not data or not data.get("isTransferred"):
        return NoTransfer()
    split = _mapping(data.get("amountSplit"))
    return Transfer(
        status=_enum_value(TransferStatus, data.get("status"), TransferStatus.PENDING),
        process_branch_name=str(data.get("processBranchName") or ""),
        original_branch_name=data.get("originalBranchName"),
        amount_split=AmountSplit(
            order_branch_percent=to_decimal(split.get("orderBranch"), Decimal("100")),
            process_branch_percent=to_decimal(split.get("processBranch"), ZERO),
        ),
    )


def _schedule_day(info: Any) -> date | None:
    if not isinstance(info, dict):
        return None
    return dates.parse_day(info.get("date"))


def order_from_dict(data: dict[str, Any]) -> Order:
    """Build an :class:`Order`; an unparsable order date is kept as ``None``."""
    summary = _mapping(data.get("summary"))
    outsource_raw = _mapping(data.get("outsourceInfo"))
    outsource = None
    if outsource_raw.get("isOutsourced"):
        outsource = OutsourceInfo(
            partner_name=str(outsource_raw.get("partnerName") or ""),
            partner_price=to_decimal(outsource_raw.get("partnerPrice")),
            profit=to_decimal(outsource_raw.get("profit")),
            status=str(outsource_raw.get("status") or "pending"),
        )

    order_date = dates.parse(data.get("orderDate"))
    if order_date is None:
        logger.debug("order_date_unparsable", order_id=data.get("id"))

    return Order(
        id=str(data.get("id") or ""),
        branch_name=str(data.get("branchName") or ""),
        branch_id=data.get("branchId"),
        order_date=order_date,
        status=_enum_value(OrderStatus, data.get("status"), OrderStatus.PROCESSING),
        summary=OrderSummary(
            total=to_decimal(summary.get("total")),
            subtotal=to_decimal(summary.get("subtotal")),
            discount_amount=to_decimal(summary.get("discountAmount")),
            delivery_fee=to_decimal(summary.get("deliveryFee")),
            points_used=to_decimal(summary.get("pointsUsed")),
            points_earned=to_decimal(summary.get("pointsEarned")),
        ),
        payment=payment_from_dict(_mapping(data.get("payment"))),
        transfer=transfer_from_dict(data.get("transferInfo")),
        items=tuple(
            OrderItem(
                name=str(item.get("name") or ""),
                quantity=_to_int(item.get("quantity"), 1),
                price=to_decimal(item.get("price")),
            )
            for item in data.get("items") or []
            if isinstance(item, dict)
        ),
        actual_delivery_cost_cash=to_decimal(data.get("actualDeliveryCostCash")),
        delivery_date=_schedule_day(data.get("deliveryInfo")),
        pickup_date=_schedule_day(data.get("pickupInfo")),
        delivery_cost_updated_at=dates.parse(data.get("deliveryCostUpdatedAt")),
        outsource=outsource,
    )


def expense_from_dict(data: dict[str, Any]) -> Expense:
    return Expense(
        id=str(data.get("id") or ""),
        date=dates.parse(data.get("date")),
        amount=to_decimal(data.get("amount")),
        category=_enum_value(ExpenseCategory, data.get("category"), ExpenseCategory.OTHER),
        branch_id=data.get("branchId"),
        payment_method=data.get("paymentMethod"),
        description=str(data.get("description") or ""),
        quantity=_to_int(data.get("quantity"), 1) or 1,
        related_order_id=data.get("relatedOrderId"),
        supplier=data.get("supplier"),
    )


def settlement_from_dict(data: dict[str, Any]) -> SettlementRecord | None:
    """Decode a stored record; returns ``None`` without a usable branch/date."""
    day = dates.parse_day(data.get("date"))
    branch_id = data.get("branchId")
    if day is None or not branch_id:
        logger.warning("settlement_record_malformed", record_id=data.get("id"))
        return None
    transport_count = data.get("manualTransportCount")
    return SettlementRecord(
        branch_id=str(branch_id),
        branch_name=data.get("branchName"),
        date=day,
        previous_vault_balance=to_decimal(data.get("previousVaultBalance")),
        cash_sales_today=to_decimal(data.get("cashSalesToday")),
        vault_deposit=to_decimal(data.get("vaultDeposit")),
        delivery_cost_cash_today=to_decimal(data.get("deliveryCostCashToday")),
        cash_expense_today=to_decimal(data.get("cashExpenseToday")),
        manual_transport_count=_to_int(transport_count) if transport_count is not None else None,
        manual_transport_amount=_optional_decimal(data.get("manualTransportAmount")),
        memo=data.get("memo"),
        created_at=dates.parse(data.get("createdAt")),
        updated_at=dates.parse(data.get("updatedAt")),
    )


def settlement_to_dict(record: SettlementRecord) -> dict[str, Any]:
    """Encode a record with the back office's field names."""
    payload: dict[str, Any] = {
        "id": record.record_id,
        "branchId": record.branch_id,
        "branchName": record.branch_name,
        "date": record.date.isoformat(),
        "previousVaultBalance": _whole(record.previous_vault_balance),
        "cashSalesToday": _whole(record.cash_sales_today),
        "vaultDeposit": _whole(record.vault_deposit),
        "deliveryCostCashToday": _whole(record.delivery_cost_cash_today),
        "cashExpenseToday": _whole(record.cash_expense_today),
    }
    if record.manual_transport_count is not None:
        payload["manualTransportCount"] = record.manual_transport_count
    if record.manual_transport_amount is not None:
        payload["manualTransportAmount"] = _whole(record.manual_transport_amount)
    if record.memo:
        payload["memo"] = record.memo
    if record.created_at:
        payload["createdAt"] = record.created_at.isoformat()
    if record.updated_at:
        payload["updatedAt"] = record.updated_at.isoformat()
    return payload
