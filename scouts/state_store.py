"""Persistent dedup state: match watermarks, notified events, last stats snapshot.

Every mutation happens in memory; :meth:`DedupStateStore.save` is the only
write to disk and is called once per poll cycle (and on shutdown). A crash
between a mutation and the next save can therefore replay a match once.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections import OrderedDict
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from records.models import MatchRecord, PlayerStats, RankSnapshot

logger = logging.getLogger("dotakeeper.scouts")

STATE_VERSION = 2
NOTIFIED_EVENTS_CAP = 200
PENDING_CHECKS_CAP = 20
LIVE_EVENT_TYPE = "LIVE_MATCH"

EventKey = Tuple[int, str, str]


def _event_key(match_id, account_id, event_type) -> EventKey:
    return (int(match_id), str(account_id), str(getattr(event_type, "value", event_type)))


def _optional_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value) -> List[Any]:
    return value if isinstance(value, list) else []


@dataclass
class DedupState:
    version: int = STATE_VERSION
    last_match_id_global: Optional[int] = None
    last_match_id_by_account: Dict[str, int] = field(default_factory=dict)
    notified_live_match_id: Optional[int] = None
    notified_event_keys: "OrderedDict[EventKey, None]" = field(default_factory=OrderedDict)
    last_stats_snapshot: Optional[Dict[str, Any]] = None
    last_daily_summary_at: Optional[float] = None
    rank_by_account: Dict[str, Dict[str, Optional[int]]] = field(default_factory=dict)
    # New matches whose multi-kill check failed upstream; retried next cycle.
    pending_multi_kill_checks: Dict[str, List[int]] = field(default_factory=dict)
    last_checked: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DedupState":
        """Build a state from a stored record; missing or malformed keys default."""
        raw = _as_dict(raw)

        by_account = {}
        for account_id, match_id in _as_dict(raw.get("last_match_id_by_account")).items():
            match_id = _optional_int(match_id)
            if match_id is not None:
                by_account[str(account_id)] = match_id

        notified = OrderedDict()
        for item in _as_list(raw.get("notified_event_keys")):
            if isinstance(item, (list, tuple)) and len(item) == 3:
                try:
                    notified[_event_key(*item)] = None
                except (TypeError, ValueError):
                    continue

        ranks = {}
        for account_id, rank in _as_dict(raw.get("rank_by_account")).items():
            if isinstance(rank, dict):
                ranks[str(account_id)] = {
                    "rank_tier": _optional_int(rank.get("rank_tier")),
                    "leaderboard_rank": _optional_int(rank.get("leaderboard_rank")),
                }

        pending = {}
        for account_id, match_ids in _as_dict(raw.get("pending_multi_kill_checks")).items():
            ids = [i for i in (_optional_int(m) for m in _as_list(match_ids)) if i is not None]
            if ids:
                pending[str(account_id)] = ids

        snapshot = raw.get("last_stats_snapshot")
        last_global = raw.get("last_match_id_global", raw.get("lastMatchId"))
        return cls(
            version=STATE_VERSION,
            last_match_id_global=_optional_int(last_global),
            last_match_id_by_account=by_account,
            notified_live_match_id=_optional_int(raw.get("notified_live_match_id")),
            notified_event_keys=notified,
            last_stats_snapshot=snapshot if isinstance(snapshot, dict) else None,
            last_daily_summary_at=_optional_float(raw.get("last_daily_summary_at")),
            rank_by_account=ranks,
            pending_multi_kill_checks=pending,
            last_checked=_optional_float(raw.get("last_checked")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "last_match_id_global": self.last_match_id_global,
            "last_match_id_by_account": dict(self.last_match_id_by_account),
            "notified_live_match_id": self.notified_live_match_id,
            "notified_event_keys": [list(key) for key in self.notified_event_keys],
            "last_stats_snapshot": self.last_stats_snapshot,
            "last_daily_summary_at": self.last_daily_summary_at,
            "rank_by_account": dict(self.rank_by_account),
            "pending_multi_kill_checks": {k: list(v) for k, v in self.pending_multi_kill_checks.items()},
            "last_checked": self.last_checked,
        }


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: Any
    new: Any


@dataclass(frozen=True)
class StatComparison:
    changed: bool
    changes: Tuple[FieldChange, ...] = ()


class DedupStateStore:
    """Load, query, mutate and atomically persist a :class:`DedupState`."""

    def __init__(self, path, cap: int = NOTIFIED_EVENTS_CAP, clock=time.time):
        self.path = Path(path)
        self.cap = cap
        self.cap_pending = PENDING_CHECKS_CAP
        self.clock = clock
        self.state = DedupState()

    ## ---------------------------- Persistence ---------------------------- ##
    def load(self) -> DedupState:
        if not self.path.exists():
            logger.info("No state file at %s, starting fresh", self.path)
            self.state = DedupState()
            return self.state
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Failed to read state file %s, starting fresh: %s", self.path, exc)
            self.state = DedupState()
            return self.state

        self.state = DedupState.from_dict(raw)
        logger.info(
            "Loaded state from %s: %s account watermark(s), %s notified event(s)",
            self.path,
            len(self.state.last_match_id_by_account),
            len(self.state.notified_event_keys),
        )
        return self.state

    def save(self) -> None:
        """Write the state to a temp file in the same directory, then replace."""
        self.state.last_checked = self.clock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            with suppress(OSError):
                os.unlink(tmp_name)
            raise
        logger.debug("State saved to %s", self.path)

    ## ---------------------------- Matches ---------------------------- ##
    def diff_new_matches(self, account_id, candidates: Iterable[MatchRecord]) -> List[MatchRecord]:
        """Return candidates newer than the account's watermark, newest first.

        The first call for an account only records a baseline and returns
        nothing, so history is never reported as new.
        """
        account_id = str(account_id)
        candidates = sorted(candidates, key=lambda m: m.match_id, reverse=True)
        if not candidates:
            return []

        newest = candidates[0].match_id
        watermark = self.state.last_match_id_by_account.get(account_id)
        if watermark is None:
            logger.info("Baseline for account %s set to match %s", account_id, newest)
            self._advance_watermark(account_id, newest)
            return []

        new_matches = [m for m in candidates if m.match_id > watermark]
        if new_matches:
            self._advance_watermark(account_id, newest)
        return new_matches

    def _advance_watermark(self, account_id: str, match_id: int) -> None:
        current = self.state.last_match_id_by_account.get(account_id)
        if current is None or match_id > current:
            self.state.last_match_id_by_account[account_id] = match_id
        if self.state.last_match_id_global is None or match_id > self.state.last_match_id_global:
            self.state.last_match_id_global = match_id

    def watermark(self, account_id) -> Optional[int]:
        return self.state.last_match_id_by_account.get(str(account_id))

    def pending_multi_kill_checks(self, account_id) -> List[int]:
        return list(self.state.pending_multi_kill_checks.get(str(account_id), ()))

    def set_pending_multi_kill_checks(self, account_id, match_ids: Iterable[int]) -> None:
        """Replace the account's unchecked match ids, keeping the newest PENDING_CHECKS_CAP."""
        account_id = str(account_id)
        ids = sorted({int(m) for m in match_ids}, reverse=True)[: self.cap_pending]
        if ids:
            self.state.pending_multi_kill_checks[account_id] = ids
        else:
            self.state.pending_multi_kill_checks.pop(account_id, None)

    ## ---------------------------- Notified events ---------------------------- ##
    def is_event_notified(self, match_id, account_id, event_type) -> bool:
        return _event_key(match_id, account_id, event_type) in self.state.notified_event_keys

    def mark_event_notified(self, match_id, account_id, event_type) -> None:
        key = _event_key(match_id, account_id, event_type)
        events = self.state.notified_event_keys
        events[key] = None
        events.move_to_end(key)
        while len(events) > self.cap:
            events.popitem(last=False)

    ## ---------------------------- Stats and ranks ---------------------------- ##
    def compare_stats(self, new_stats: PlayerStats) -> StatComparison:
        """Diff the tracked fields against the last committed snapshot (read only)."""
        previous = self.state.last_stats_snapshot
        if previous is None:
            return StatComparison(changed=True)
        current = new_stats.to_dict()
        changes = tuple(
            FieldChange(name, previous.get(name), current[name])
            for name in PlayerStats.TRACKED_FIELDS
            if previous.get(name) != current[name]
        )
        return StatComparison(changed=bool(changes), changes=changes)

    def commit_stats(self, new_stats: PlayerStats) -> None:
        self.state.last_stats_snapshot = new_stats.to_dict()

    def update_rank(self, account_id, snapshot: RankSnapshot) -> Optional[RankSnapshot]:
        """Store the account's rank; return the previous one, or None the first time."""
        account_id = str(account_id)
        previous = self.state.rank_by_account.get(account_id)
        self.state.rank_by_account[account_id] = {
            "rank_tier": snapshot.rank_tier,
            "leaderboard_rank": snapshot.leaderboard_rank,
        }
        if previous is None:
            return None
        return RankSnapshot(
            account_id=account_id,
            name=snapshot.name,
            rank_tier=previous.get("rank_tier"),
            leaderboard_rank=previous.get("leaderboard_rank"),
        )

    ## ---------------------------- Live and daily ---------------------------- ##
    def should_notify_live(self, match_id, account_id=None) -> bool:
        """False when this live match was already announced (for ``account_id``, if given)."""
        if account_id is not None:
            return not self.is_event_notified(match_id, account_id, LIVE_EVENT_TYPE)
        return _optional_int(match_id) != self.state.notified_live_match_id

    def mark_live_notified(self, match_id, account_id=None) -> None:
        self.state.notified_live_match_id = _optional_int(match_id)
        if account_id is not None:
            self.mark_event_notified(match_id, account_id, LIVE_EVENT_TYPE)

    def set_last_daily_summary(self, timestamp: Optional[float] = None) -> None:
        self.state.last_daily_summary_at = self.clock() if timestamp is None else timestamp

