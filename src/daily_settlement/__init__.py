"""Daily Settlement - cash reconciliation engine for multi-branch retail."""

__version__ = "0.1.0"

from daily_settlement.attribution import Attribution, BranchRole, attribute
from daily_settlement.buckets import DailySalesSummary, bucketize
from daily_settlement.client import BackOfficeAPIError, BackOfficeClient
from daily_settlement.config import configure_logging, get_settings
from daily_settlement.dates import DayWindow, day_window, parse
from daily_settlement.models import (
    Expense,
    Order,
    PaymentBucket,
    SettlementRecord,
    SimplePayment,
    SplitPayment,
    Transfer,
)
from daily_settlement.reconstruction import MAX_GAP_DAYS, GapReconstructor, replay_gap
from daily_settlement.service import (
    SettlementService,
    SettlementView,
    UnknownBranchError,
    compute_settlement,
)
from daily_settlement.store import InMemoryBackOffice
from daily_settlement.vault import VaultCash, calculate_vault_cash

__all__ = [
    # Version
    "__version__",
    # Dates
    "parse",
    "day_window",
    "DayWindow",
    # Models
    "Order",
    "SimplePayment",
    "SplitPayment",
    "Transfer",
    "Expense",
    "SettlementRecord",
    "PaymentBucket",
    # Engine
    "attribute",
    "Attribution",
    "BranchRole",
    "bucketize",
    "DailySalesSummary",
    "calculate_vault_cash",
    "VaultCash",
    "GapReconstructor",
    "replay_gap",
    "MAX_GAP_DAYS",
    # Service
    "compute_settlement",
    "SettlementService",
    "SettlementView",
    "UnknownBranchError",
    # Collaborators
    "BackOfficeClient",
    "BackOfficeAPIError",
    "InMemoryBackOffice",
    # Config
    "get_settings",
    "configure_logging",
]
