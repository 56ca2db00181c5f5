from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from records.models import TrackedAccount
from records.utils import to_native_account_id

logger = logging.getLogger("dotakeeper.scouts")

WATCHLIST_PATH = Path("data/watchlist.json")


def _coerce_ids(raw_ids) -> list[str]:
    if raw_ids is None:
        return []
    if not isinstance(raw_ids, (list, tuple)):
        raw_ids = [raw_ids]
    ids = []
    for raw_id in raw_ids:
        account_id = to_native_account_id(raw_id)
        if account_id and account_id not in ids:
            ids.append(account_id)
    return ids


def parse_entries(raw) -> dict[str, list[str]]:
    """Accept a list of {"name", "ids"} entries, bare ids, or a {"Name": [ids]} mapping."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        raw = [{"name": name, "ids": ids} for name, ids in raw.items()]
    if not isinstance(raw, list):
        raise ValueError("Watchlist JSON must be a list of player entries or a name -> ids mapping.")

    by_name: dict[str, list[str]] = {}
    for item in raw:
        if isinstance(item, (int, str)):
            ids = _coerce_ids(item)
            name = ids[0] if ids else ""
        elif isinstance(item, dict):
            ids = _coerce_ids(item.get("ids", item.get("id")))
            name = str(item.get("name") or (ids[0] if ids else "")).strip()
        else:
            continue
        if not name or not ids:
            continue
        merged = by_name.setdefault(name, [])
        merged.extend(i for i in ids if i not in merged)
    return by_name


class Watchlist:
    """Tracked players loaded from watchlist.json plus any configured extras."""

    def __init__(self, watchlist_path: Path = WATCHLIST_PATH):
        self.watchlist_path = Path(watchlist_path)
        self._accounts: dict[str, TrackedAccount] = {}

    def create_empty(self) -> None:
        if self.watchlist_path.exists():
            return
        self.watchlist_path.parent.mkdir(parents=True, exist_ok=True)
        template = [{"name": "", "ids": []}]
        with open(self.watchlist_path, "w", encoding="utf-8") as f:
            json.dump(template, f, indent=2)
        logger.info("Created watchlist template at %s", self.watchlist_path)

    def load(self, extra: Optional[dict] = None, main_account: Optional[tuple[str, str]] = None):
        """Load the file, merge ``extra`` name -> ids entries and the main account."""
        if self.watchlist_path.exists():
            with open(self.watchlist_path, "r", encoding="utf-8") as f:
                by_name = parse_entries(json.load(f))
        else:
            self.create_empty()
            by_name = {}

        for name, ids in parse_entries(extra or {}).items():
            merged = by_name.setdefault(name, [])
            merged.extend(i for i in ids if i not in merged)

        if main_account:
            main_name, main_id = main_account
            main_id = to_native_account_id(main_id)
            already_tracked = any(main_id in ids for ids in by_name.values())
            if main_id and not already_tracked:
                by_name.setdefault(main_name, []).append(main_id)

        self._accounts = {
            name: TrackedAccount(display_name=name, account_ids=tuple(ids))
            for name, ids in by_name.items()
            if ids
        }
        logger.info("Loaded %s tracked player(s) from watchlist", len(self._accounts))
        return self.accounts

    @property
    def accounts(self) -> list[TrackedAccount]:
        return list(self._accounts.values())
