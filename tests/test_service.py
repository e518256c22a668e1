"""Tests for the settlement service."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from daily_settlement.models import ExpenseCategory, PaymentBucket
from daily_settlement.service import (
    SettlementService,
    UnknownBranchError,
    compute_settlement,
)
from daily_settlement.store import InMemoryBackOffice
from daily_settlement.vault import PreviousBalanceSource
from factories import GANGNAM, HONGDAE, make_expense, make_order, make_record

JAN_15 = date(2024, 1, 15)


def _day_orders():
    return [
        make_order("cash-1", total=53000, method="cash"),
        make_order("card-1", total=27000),
        make_order("hongdae-1", total=99000, branch=HONGDAE, method="cash"),
    ]


def _day_expenses():
    return [
        make_expense("courier", amount=8000),
        make_expense("lunch", amount=2000, category=ExpenseCategory.FOOD),
    ]


@pytest.fixture
def backend():
    return InMemoryBackOffice(
        _day_orders(),
        _day_expenses(),
        [make_record(date(2024, 1, 14), previous=100000)],
    )


@pytest.fixture
def service(backend, branches):
    return SettlementService(backend, backend, backend, branches=branches)


class TestComputeSettlement:
    """compute_settlement() is a pure function of its inputs."""

    def test_branch_view(self):
        view = compute_settlement(
            _day_orders(),
            _day_expenses(),
            GANGNAM,
            JAN_15,
            branch_id="gangnam",
            previous_record=make_record(date(2024, 1, 14), previous=100000),
            vault_deposit=Decimal("30000"),
        )

        assert view.sales.cash_sales == Decimal("53000")
        assert view.sales.settled_total == Decimal("80000")
        assert view.vault is not None
        assert view.vault.previous_balance_source is PreviousBalanceSource.RECORD
        assert view.remaining == Decimal("113000")
        assert view.reconstruction_unavailable is False

    def test_to_dict(self):
        view = compute_settlement(
            _day_orders(),
            _day_expenses(),
            GANGNAM,
            JAN_15,
            branch_id="gangnam",
            manual_previous_balance=Decimal("100000"),
        )

        data = view.to_dict()

        assert data["date"] == "2024-01-15"
        assert data["sales"]["buckets"]["cash"] == {"count": 1, "amount": 53000}
        assert data["sales"]["buckets"]["card"] == {"count": 1, "amount": 27000}
        assert data["expenses"]["transport"] == {"count": 1, "amount": 8000}
        assert data["vault"]["previous_balance_source"] == "manual"
        assert data["vault"]["remaining"] == 143000

    def test_all_branches_view_has_no_vault(self):
        view = compute_settlement(_day_orders(), [], "all", JAN_15)

        assert view.vault is None
        assert view.remaining is None
        assert view.sales.settled_total == Decimal("179000")
        assert view.to_dict()["vault"] is None

    def test_missing_previous_balance_is_flagged(self):
        view = compute_settlement([], [], GANGNAM, JAN_15, branch_id="gangnam")

        assert view.reconstruction_unavailable is True
        assert view.remaining == Decimal("0")


class TestSettlementService:
    """Tests for SettlementService.build_view() and save()."""

    @pytest.mark.asyncio
    async def test_build_view(self, service):
        view = await service.build_view(GANGNAM, JAN_15, vault_deposit=Decimal("30000"))

        assert view.branch_id == "gangnam"
        assert view.vault is not None
        assert view.vault.previous_balance == Decimal("100000")
        assert view.vault.delivery_cost_cash == Decimal("8000")
        assert view.vault.other_cash_expenses == Decimal("2000")
        assert view.remaining == Decimal("113000")

    @pytest.mark.asyncio
    async def test_unknown_branch(self, service):
        with pytest.raises(UnknownBranchError) as exc_info:
            await service.build_view("신촌점", JAN_15)

        assert exc_info.value.branch_name == "신촌점"

    def test_alias_resolves_branch(self, service):
        assert service.resolve_branch_id("강남") == "gangnam"

    @pytest.mark.asyncio
    async def test_all_branches(self, service):
        view = await service.build_view("all", JAN_15)

        assert view.vault is None
        assert view.sales.order_count == 3

    @pytest.mark.asyncio
    async def test_falls_back_to_reconstruction(self, branches):
        orders = [
            make_order(
                "cash-0112",
                total=20000,
                method="cash",
                order_date="2024-01-12T10:00",
                completed_at="2024-01-12T10:00",
            )
        ]
        backend = InMemoryBackOffice(orders, [], [make_record(date(2024, 1, 10), previous=100000)])
        service = SettlementService(backend, backend, backend, branches=branches)

        view = await service.build_view(GANGNAM, JAN_15)

        assert view.vault is not None
        assert view.vault.previous_balance_source is PreviousBalanceSource.RECONSTRUCTED
        assert view.remaining == Decimal("120000")
        assert view.previous_record is not None
        assert view.previous_record.is_virtual is True

    @pytest.mark.asyncio
    async def test_manual_balance_skips_reconstruction(self, branches):
        backend = InMemoryBackOffice([], [], [make_record(date(2024, 1, 10), previous=100000)])
        service = SettlementService(backend, backend, backend, branches=branches)

        view = await service.build_view(
            GANGNAM, JAN_15, manual_previous_balance=Decimal("70000")
        )

        assert view.remaining == Decimal("70000")
        assert backend.order_fetches == [(JAN_15, JAN_15)]

    @pytest.mark.asyncio
    async def test_no_history_needs_manual_entry(self, branches):
        backend = InMemoryBackOffice()
        service = SettlementService(backend, backend, backend, branches=branches)

        view = await service.build_view(GANGNAM, JAN_15)

        assert view.reconstruction_unavailable is True

    @pytest.mark.asyncio
    async def test_save_then_carry_into_next_day(self, service, backend):
        view = await service.build_view(GANGNAM, JAN_15, vault_deposit=Decimal("30000"))

        assert await service.save(view, memo="마감") is True

        saved = await backend.get_settlement_record("gangnam", JAN_15)
        assert saved is not None
        assert saved.closing_balance == Decimal("113000")
        assert saved.memo == "마감"
        assert saved.created_at is not None

        next_day = await service.build_view(GANGNAM, date(2024, 1, 16))
        assert next_day.vault is not None
        assert next_day.vault.previous_balance_source is PreviousBalanceSource.RECORD
        assert next_day.remaining == Decimal("113000")

    @pytest.mark.asyncio
    async def test_saved_deposit_is_reused(self, service):
        view = await service.build_view(GANGNAM, JAN_15, vault_deposit=Decimal("30000"))
        await service.save(view)

        again = await service.build_view(GANGNAM, JAN_15)

        assert again.vault is not None
        assert again.vault.vault_deposit == Decimal("30000")
        assert again.remaining == view.remaining

    @pytest.mark.asyncio
    async def test_all_branches_view_is_not_saved(self, service):
        view = await service.build_view("all", JAN_15)

        assert await service.save(view) is False


class TestInMemoryBackOffice:
    """The in-process store behaves like the back office."""

    @pytest.mark.asyncio
    async def test_overwrite_keeps_created_at(self):
        backend = InMemoryBackOffice()
        await backend.save_settlement_record(make_record(JAN_15, previous=1000))
        first = await backend.get_settlement_record("gangnam", JAN_15)

        await backend.save_settlement_record(make_record(JAN_15, previous=2000))
        second = await backend.get_settlement_record("gangnam", JAN_15)

        assert first is not None and second is not None
        assert second.previous_vault_balance == Decimal("2000")
        assert second.created_at == first.created_at
        assert len(backend.settlements) == 1

    @pytest.mark.asyncio
    async def test_fetch_orders_by_activity_day(self):
        late_payment = make_order(
            "late", order_date="2024-01-12T10:00", completed_at="2024-01-15T10:00"
        )
        later = make_order(
            "other", order_date="2024-01-20T10:00", completed_at="2024-01-20T10:00"
        )
        backend = InMemoryBackOffice([late_payment, later])

        orders = await backend.fetch_orders(JAN_15)

        assert [o.id for o in orders] == ["late"]

    @pytest.mark.asyncio
    async def test_fetch_expenses_by_branch(self):
        backend = InMemoryBackOffice(
            expenses=[make_expense("a"), make_expense("b", branch_id="hongdae")]
        )

        expenses = await backend.fetch_expenses(JAN_15, JAN_15, branch_id="hongdae")

        assert [e.id for e in expenses] == ["b"]


class TestScenarios:
    """End-to-end settlement scenarios."""

    @pytest.mark.asyncio
    async def test_card_order_leaves_vault_untouched(self, branches):
        backend = InMemoryBackOffice(
            [make_order()], [], [make_record(date(2024, 1, 14), previous=100000)]
        )
        service = SettlementService(backend, backend, backend, branches=branches)

        view = await service.build_view(GANGNAM, JAN_15)

        assert view.sales.bucket(PaymentBucket.CARD).amount == Decimal("53000")
        assert view.sales.bucket(PaymentBucket.CARD).count == 1
        assert view.sales.cash_sales == Decimal("0")
        assert view.vault is not None
        assert view.vault.cash_sales == Decimal("0")
        assert view.remaining == Decimal("100000")

    @pytest.mark.asyncio
    async def test_month_gap_is_bridged(self, branches):
        backend = InMemoryBackOffice([], [], [make_record(date(2024, 2, 1), previous=80000)])
        service = SettlementService(backend, backend, backend, branches=branches)

        view = await service.build_view(GANGNAM, date(2024, 3, 1))

        assert view.vault is not None
        assert view.vault.previous_balance_source is PreviousBalanceSource.RECONSTRUCTED
        assert view.remaining == Decimal("80000")

    @pytest.mark.asyncio
    async def test_anchor_too_old_needs_manual_entry(self, branches):
        anchor_day = date(2024, 3, 1) - timedelta(days=66)
        backend = InMemoryBackOffice([], [], [make_record(anchor_day, previous=80000)])
        service = SettlementService(backend, backend, backend, branches=branches)

        view = await service.build_view(GANGNAM, date(2024, 3, 1))

        assert view.reconstruction_unavailable is True
        assert view.remaining == Decimal("0")
