"""Tests for back-office payload decoding."""

from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from daily_settlement.models import (
    ExpenseCategory,
    NoTransfer,
    OrderStatus,
    PaymentStatus,
    SettlementRecord,
    SimplePayment,
    SplitPayment,
    Transfer,
    TransferStatus,
)
from daily_settlement.parsing import (
    expense_from_dict,
    order_from_dict,
    payment_from_dict,
    settlement_from_dict,
    settlement_to_dict,
    to_decimal,
    transfer_from_dict,
)

KST = ZoneInfo("Asia/Seoul")


class TestOrderFromDict:
    """Tests for order_from_dict()."""

    def test_full_order(self, order_payload):
        order = order_from_dict(order_payload)

        assert order.id == "order-1"
        assert order.branch_name == "강남점"
        assert order.branch_id == "gangnam"
        assert order.order_date == datetime(2024, 1, 15, 9, 0, tzinfo=KST)
        assert order.status is OrderStatus.PROCESSING
        assert order.total == Decimal("53000")
        assert order.summary.delivery_fee == Decimal("3000")
        assert order.items[0].name == "꽃다발"
        assert order.actual_delivery_cost_cash == Decimal("8000")
        assert order.delivery_date == date(2024, 1, 15)
        assert order.pickup_date is None

    def test_payment_and_transfer(self, order_payload):
        order = order_from_dict(order_payload)

        assert isinstance(order.payment, SimplePayment)
        assert order.payment.status is PaymentStatus.PAID
        assert order.payment.completed_at == datetime(2024, 1, 15, 10, 0, tzinfo=KST)
        assert isinstance(order.transfer, Transfer)
        assert order.transfer.status is TransferStatus.ACCEPTED
        assert order.transfer.process_branch_name == "홍대점"
        assert order.transfer.amount_split.order_branch_percent == Decimal("70")
        assert order.transfer.amount_split.process_branch_percent == Decimal("30")

    def test_unparsable_order_date_is_kept_as_none(self, order_payload):
        order_payload["orderDate"] = "yesterday-ish"

        assert order_from_dict(order_payload).order_date is None

    def test_unknown_status_falls_back(self, order_payload):
        order_payload["status"] = "archived"

        assert order_from_dict(order_payload).status is OrderStatus.PROCESSING

    def test_outsource_info(self, order_payload):
        order_payload["outsourceInfo"] = {
            "isOutsourced": True,
            "partnerName": "꽃집A",
            "partnerPrice": "40,000",
            "profit": 13000,
        }

        outsource = order_from_dict(order_payload).outsource

        assert outsource is not None
        assert outsource.partner_name == "꽃집A"
        assert outsource.partner_price == Decimal("40000")

    def test_minimal_payload(self):
        order = order_from_dict({"id": "bare"})

        assert order.total == Decimal("0")
        assert order.order_date is None
        assert isinstance(order.transfer, NoTransfer)
        assert isinstance(order.payment, SimplePayment)
        assert order.payment.status is PaymentStatus.PENDING


class TestPaymentFromDict:
    """Tests for payment_from_dict()."""

    def test_split_payment_flag(self):
        payment = payment_from_dict(
            {
                "method": "card",
                "status": "split_payment",
                "isSplitPayment": True,
                "firstPaymentAmount": 30000,
                "firstPaymentMethod": "card",
                "firstPaymentDate": "2024-01-10T11:00:00+09:00",
                "secondPaymentMethod": "cash",
            }
        )

        assert isinstance(payment, SplitPayment)
        assert payment.first_amount == Decimal("30000")
        assert payment.first_date == datetime(2024, 1, 10, 11, 0, tzinfo=KST)
        assert payment.second_method == "cash"
        assert payment.second_amount is None
        assert payment.status is PaymentStatus.SPLIT_PAYMENT
        assert payment.second_amount_for(Decimal("100000")) == Decimal("70000")

    def test_first_amount_alone_means_split(self):
        payment = payment_from_dict({"method": "card", "firstPaymentAmount": "10000"})

        assert isinstance(payment, SplitPayment)
        assert payment.first_method == "card"

    def test_split_status_alone_means_split(self):
        payment = payment_from_dict({"method": "card", "status": "split_payment"})

        assert isinstance(payment, SplitPayment)
        assert payment.first_amount == Decimal("0")
        assert payment.status is PaymentStatus.SPLIT_PAYMENT


class TestTransferFromDict:
    def test_not_transferred(self):
        assert isinstance(transfer_from_dict(None), NoTransfer)
        assert isinstance(transfer_from_dict({"isTransferred": False}), NoTransfer)

    def test_missing_split_defaults_to_original_branch(self):
        transfer = transfer_from_dict({"isTransferred": True, "processBranchName": "홍대점"})

        assert isinstance(transfer, Transfer)
        assert transfer.status is TransferStatus.PENDING
        assert transfer.amount_split.order_branch_percent == Decimal("100")
        assert transfer.amount_split.process_branch_percent == Decimal("0")


def test_expense_from_dict():
    expense = expense_from_dict(
        {
            "id": "exp-1",
            "date": {"seconds": 1705287600},
            "amount": "12,000",
            "category": "TRANSPORT",
            "branchId": "gangnam",
            "paymentMethod": "cash",
            "description": "퀵 배송",
            "quantity": 2,
        }
    )

    assert expense.date == datetime(2024, 1, 15, 12, 0, tzinfo=KST)
    assert expense.amount == Decimal("12000")
    assert expense.category is ExpenseCategory.TRANSPORT
    assert expense.quantity == 2


def test_expense_unknown_category_is_other():
    assert expense_from_dict({"category": "gifts"}).category is ExpenseCategory.OTHER


def test_to_decimal_bad_input_is_zero():
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal(None) == Decimal("0")
    assert to_decimal(True) == Decimal("0")
    assert to_decimal("1,500") == Decimal("1500")


class TestSettlementRecords:
    """Tests for settlement record encoding and decoding."""

    def test_decode_record(self):
        record = settlement_from_dict(
            {
                "id": "gangnam_2024-01-15",
                "branchId": "gangnam",
                "branchName": "강남점",
                "date": "2024-01-15",
                "previousVaultBalance": 100000,
                "cashSalesToday": 50000,
                "vaultDeposit": 30000,
                "deliveryCostCashToday": 8000,
                "cashExpenseToday": 2000,
                "manualTransportCount": 3,
                "createdAt": "2024-01-15T21:00:00+09:00",
            }
        )

        assert record is not None
        assert record.date == date(2024, 1, 15)
        assert record.closing_balance == Decimal("110000")
        assert record.manual_transport_count == 3
        assert record.record_id == "gangnam_2024-01-15"

    def test_decode_without_branch_returns_none(self):
        assert settlement_from_dict({"date": "2024-01-15"}) is None
        assert settlement_from_dict({"branchId": "gangnam", "date": "??"}) is None

    def test_encode_uses_backoffice_field_names(self):
        record = SettlementRecord(
            branch_id="gangnam",
            branch_name="강남점",
            date=date(2024, 1, 15),
            previous_vault_balance=Decimal("100000"),
            cash_sales_today=Decimal("50000"),
            memo="점검 완료",
        )

        payload = settlement_to_dict(record)

        assert payload["id"] == "gangnam_2024-01-15"
        assert payload["date"] == "2024-01-15"
        assert payload["previousVaultBalance"] == 100000
        assert payload["cashSalesToday"] == 50000
        assert payload["vaultDeposit"] == 0
        assert payload["memo"] == "점검 완료"
        assert "createdAt" not in payload
        assert "manualTransportCount" not in payload

    def test_encode_rounds_fractional_amounts(self):
        record = SettlementRecord(
            branch_id="gangnam",
            date=date(2024, 1, 15),
            previous_vault_balance=Decimal("1000.5"),
            vault_deposit=Decimal("999.4"),
        )

        payload = settlement_to_dict(record)

        assert payload["previousVaultBalance"] == 1001
        assert payload["vaultDeposit"] == 999
