"""Command-line entry point: ``daily-settlement view --branch 강남점 --date 2024-01-15``."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import structlog

from daily_settlement.client import BackOfficeAPIError, BackOfficeClient
from daily_settlement.config import configure_logging, get_branch_directory, load_branch_directory
from daily_settlement.parsing import expense_from_dict, order_from_dict, settlement_from_dict
from daily_settlement.service import SettlementService, SettlementView, UnknownBranchError
from daily_settlement.store import InMemoryBackOffice

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_SAVE_FAILED = 1
EXIT_UNKNOWN_BRANCH = 2
EXIT_API_ERROR = 3


def load_data_file(path: Path) -> InMemoryBackOffice:
    """Load ``{"orders": [...], "expenses": [...], "settlements": [...]}``."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: top level must be an object")
    settlements = [settlement_from_dict(item) for item in data.get("settlements", [])]
    return InMemoryBackOffice(
        orders=[order_from_dict(item) for item in data.get("orders", [])],
        expenses=[expense_from_dict(item) for item in data.get("expenses", [])],
        settlements=[record for record in settlements if record is not None],
    )


def amount(value: str) -> Decimal:
    """argparse type for money amounts such as ``30000`` or ``30,000``."""
    try:
        parsed = Decimal(value.replace(",", "").strip())
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from None
    if not parsed.is_finite():
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daily-settlement",
        description="Daily cash settlement for a branch",
    )
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", choices=["json", "console"])
    parser.add_argument("--branches-file", type=Path, help="YAML branch directory")
    subparsers = parser.add_subparsers(dest="command", required=True)

    view = subparsers.add_parser("view", help="Show the settlement for a branch and day")
    view.add_argument("--branch", required=True, help='Branch name, or "all"')
    view.add_argument("--branch-id", help="Branch id (skips the directory lookup)")
    view.add_argument("--date", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    view.add_argument("--deposit", type=amount, help="Cash moved from the vault to the bank")
    view.add_argument("--previous-balance", type=amount, help="Manual previous-day balance")
    view.add_argument("--data-file", type=Path, help="JSON dataset instead of the API")
    view.add_argument("--save", action="store_true", help="Save the computed record")
    view.add_argument("--memo", help="Memo stored with --save")
    view.add_argument("--json", action="store_true", help="Print JSON")
    return parser


def _fmt(value: int | str) -> str:
    return f"{value:,}" if isinstance(value, int) else value


def format_view(view: SettlementView) -> str:
    data = view.to_dict()
    sales = data["sales"]
    lines = [f"{data['branch']} {data['date']}"]
    for bucket, totals in sales["buckets"].items():
        lines.append(f"  {bucket:<9} {totals['count']:>4}  {_fmt(totals['amount']):>12}")
    lines.append(f"  {'settled':<9} {'':>4}  {_fmt(sales['settled_total']):>12}")
    lines.append(f"  {'carried':<9} {'':>4}  {_fmt(sales['carried_forward_total']):>12}")
    lines.append(
        f"  {'pending':<9} {len(sales['pending_order_ids']):>4}  {_fmt(sales['pending_total']):>12}"
    )
    vault = data["vault"]
    if vault:
        lines.append("vault")
        lines.append(
            f"  previous  {_fmt(vault['previous_balance']):>12} ({vault['previous_balance_source']})"
        )
        lines.append(f"  + sales   {_fmt(vault['cash_sales']):>12}")
        lines.append(f"  - deposit {_fmt(vault['vault_deposit']):>12}")
        lines.append(f"  - courier {_fmt(vault['delivery_cost_cash']):>12}")
        lines.append(f"  - other   {_fmt(vault['other_cash_expenses']):>12}")
        lines.append(f"  = remaining {_fmt(vault['remaining']):>10}")
    if data["reconstruction_unavailable"]:
        lines.append("previous balance unavailable: manual entry required")
    return "\n".join(lines)


async def run_view(args: argparse.Namespace) -> int:
    branches = (
        load_branch_directory(args.branches_file) if args.branches_file else get_branch_directory()
    )
    if args.data_file:
        backend: Any = load_data_file(args.data_file)
        return await _view_with(backend, branches, args)

    async with BackOfficeClient() as client:
        return await _view_with(client, branches, args)


async def _view_with(backend: Any, branches: Any, args: argparse.Namespace) -> int:
    service = SettlementService(backend, backend, backend, branches=branches)
    try:
        view = await service.build_view(
            args.branch,
            args.date,
            branch_id=args.branch_id,
            vault_deposit=args.deposit,
            manual_previous_balance=args.previous_balance,
        )
    except UnknownBranchError as e:
        print(str(e), file=sys.stderr)
        return EXIT_UNKNOWN_BRANCH

    if args.json:
        print(json.dumps(view.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(format_view(view))

    if args.save and not await service.save(view, memo=args.memo):
        print("save failed", file=sys.stderr)
        return EXIT_SAVE_FAILED
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    try:
        return asyncio.run(run_view(args))
    except BackOfficeAPIError as e:
        logger.error("backoffice_unavailable", error=str(e), status_code=e.status_code)
        return EXIT_API_ERROR


if __name__ == "__main__":
    sys.exit(main())
