"""Configuration module for the daily settlement engine."""

from daily_settlement.config.branches import (
    Branch,
    BranchDirectory,
    get_branch_directory,
    load_branch_directory,
)
from daily_settlement.config.logging import configure_logging, get_logger
from daily_settlement.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "Branch",
    "BranchDirectory",
    "get_branch_directory",
    "load_branch_directory",
]
