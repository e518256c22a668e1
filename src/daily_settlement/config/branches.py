"""Branch directory loaded from a YAML file.

The file maps branch ids to the display names orders carry::

    branches:
      - id: gangnam
        name: 강남점
        aliases: [강남]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml  # type: ignore[import-untyped]

from daily_settlement.config.settings import get_settings

logger = structlog.get_logger(__name__)


def normalize_branch_name(name: str | None) -> str:
    """Strip all whitespace so "강남 점" and "강남점" compare equal."""
    if not name:
        return ""
    return "".join(str(name).split())


@dataclass(frozen=True)
class Branch:
    """A single branch entry."""

    id: str
    name: str
    aliases: tuple[str, ...] = ()


@dataclass
class BranchDirectory:
    """Lookup of branches by id or (normalized) name."""

    branches: list[Branch] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._by_id = {b.id: b for b in self.branches}
        self._by_name: dict[str, Branch] = {}
        for branch in self.branches:
            for name in (branch.name, *branch.aliases):
                self._by_name[normalize_branch_name(name)] = branch

    def __len__(self) -> int:
        return len(self.branches)

    def by_id(self, branch_id: str) -> Branch | None:
        return self._by_id.get(branch_id)

    def by_name(self, name: str) -> Branch | None:
        return self._by_name.get(normalize_branch_name(name))


def _parse_branch(path_name: str, idx: int, item: Any) -> Branch:
    if not isinstance(item, dict):
        raise ValueError(f"{path_name}: branches[{idx}] must be a mapping")
    branch_id = item.get("id")
    name = item.get("name")
    if not branch_id or not name:
        raise ValueError(f"{path_name}: branches[{idx}] requires id and name")
    aliases = item.get("aliases") or []
    if not isinstance(aliases, list):
        raise ValueError(f"{path_name}: branches[{idx}].aliases must be a list")
    return Branch(id=str(branch_id), name=str(name), aliases=tuple(str(a) for a in aliases))


def load_branch_directory(path: Path | str | None = None) -> BranchDirectory:
    """Load the branch directory from ``path`` (or ``BRANCHES_FILE``).

    Returns an empty directory when no file is configured or it is missing.
    """
    if path is None:
        path = get_settings().branches_file
    if path is None:
        return BranchDirectory()

    path = Path(path)
    if not path.exists():
        logger.warning("branches_file_missing", path=str(path))
        return BranchDirectory()

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    raw = data.get("branches", [])
    if not isinstance(raw, list):
        raise ValueError(f"{path.name}: branches must be a list")

    branches = [_parse_branch(path.name, idx, item) for idx, item in enumerate(raw)]
    logger.debug("branches_loaded", path=str(path), count=len(branches))
    return BranchDirectory(branches)


@lru_cache
def get_branch_directory() -> BranchDirectory:
    """Cached directory for the configured ``BRANCHES_FILE``."""
    return load_branch_directory()
