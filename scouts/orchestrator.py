"""Poll cycle and daily summary job.

Each cycle walks the tracked accounts one by one (the STRATZ client has a
single rate limiter, so there is nothing to gain from parallel requests),
diffs their recent matches against the dedup state, looks for multi-kills in
the new matches, checks stats, ranks and live games, queues notifications and
saves the state once at the end. A failing account is logged and skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time as dt_time, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional

from records.mapper import (
    find_player,
    map_feats,
    map_kill_event_times,
    map_live_match,
    map_matches,
    map_player_match_stats,
    map_player_stats,
    map_rank,
    summarize_day,
)
from records.models import FeatType, MatchRecord, MultiKillCounts, TrackedAccount
from records.multikill import count_multi_kill_feats, detect_multi_kills, multi_kill_feats
from records.utils import to_native_account_id
from scouts.notifications import (
    DailySummary,
    LiveMatchEntry,
    MultiKill,
    NewMatch,
    PlayerDaySummary,
    StatChange,
)
from scouts.state_store import FieldChange
from scouts.time_window import DayWindow, next_daily_run, previous_calendar_day
from stratz.errors import AuthError, StratzError

logger = logging.getLogger("dotakeeper.scouts")

defaults = {
    "recent_match_limit": 5,        # matches fetched per account per cycle
    "feats_take": 200,              # feats fetched when looking for multi-kills
    "matches_since_limit": 50,      # daily summary
}

SIGNIFICANT_STAT_FIELDS = ("skill_rating", "rank_tier")


class PollState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class CycleResult:
    state: PollState
    new_matches: int = 0
    notifications: int = 0
    failures: List[str] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PollOrchestrator:
    """Drive poll cycles and the daily summary for the tracked accounts."""

    def __init__(
        self,
        queries,
        store,
        queue,
        accounts: Iterable[TrackedAccount],
        *,
        main_account_id=None,
        main_account_name: str = "You",
        interval_minutes: int = 5,
        summary_timezone: str = "Europe/London",
        weekday_summary_time: dt_time = dt_time(3, 0),
        weekend_summary_time: dt_time = dt_time(22, 0),
        live_notifications: bool = True,
        new_match_notifications: bool = True,
        recent_match_limit: int = defaults["recent_match_limit"],
        feats_take: int = defaults["feats_take"],
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.queries = queries
        self.store = store
        self.queue = queue
        self.accounts = list(accounts)
        self.main_account_id = to_native_account_id(main_account_id) if main_account_id else None
        self.main_account_name = main_account_name
        self.interval_seconds = interval_minutes * 60
        self.summary_timezone = summary_timezone
        self.weekday_summary_time = weekday_summary_time
        self.weekend_summary_time = weekend_summary_time
        self.live_notifications = live_notifications
        self.new_match_notifications = new_match_notifications
        self.recent_match_limit = recent_match_limit
        self.feats_take = feats_take
        self.clock = clock

        self.state = PollState.IDLE
        self.last_result: Optional[CycleResult] = None
        self._stop_event = asyncio.Event()
        # Poll cycles and the daily job never run upstream calls at the same time.
        self._work_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config, queries, store, queue, accounts, **kwargs) -> "PollOrchestrator":
        return cls(
            queries,
            store,
            queue,
            accounts,
            main_account_id=config.main_account_id,
            main_account_name=config.main_account_name,
            interval_minutes=config.poll_interval_minutes,
            summary_timezone=config.summary_timezone,
            weekday_summary_time=config.weekday_summary_time,
            weekend_summary_time=config.weekend_summary_time,
            live_notifications=config.live_notifications,
            new_match_notifications=config.new_match_notifications,
            **kwargs,
        )

    def _notify(self, event) -> int:
        return 1 if self.queue.enqueue(event) else 0

    ## ---------------------------- Poll cycle ---------------------------- ##
    async def poll_once(self) -> CycleResult:
        async with self._work_lock:
            self.state = PollState.POLLING
            result = CycleResult(state=PollState.POLLING)
            logger.info("Poll cycle started for %s tracked player(s)", len(self.accounts))

            for account in self.accounts:
                for account_id in account.account_ids:
                    try:
                        new_count, sent, unchecked = await self._poll_account(account, account_id)
                        result.new_matches += new_count
                        result.notifications += sent
                        if unchecked:
                            logger.warning(
                                "Multi-kill check incomplete for %s (%s), will retry matches %s",
                                account.display_name,
                                account_id,
                                unchecked,
                            )
                            result.failures.append(f"multi_kill:{account_id}")
                    except AuthError as exc:
                        logger.error("Skipping %s (%s): %s", account.display_name, account_id, exc)
                        result.failures.append(account_id)
                    except Exception as exc:
                        logger.warning(
                            "Error checking matches for %s (%s): %s", account.display_name, account_id, exc
                        )
                        result.failures.append(account_id)

            for label, check in (("stats", self._check_stats), ("ranks", self._check_ranks), ("live", self._check_live)):
                try:
                    result.notifications += await check(result)
                except Exception as exc:
                    logger.error("Error during %s check: %s", label, exc)
                    result.failures.append(label)

            self.store.save()
            result.state = PollState.PARTIAL_FAILURE if result.failures else PollState.SUCCEEDED
            logger.info(
                "Poll cycle finished (%s): %s new match(es), %s notification(s), %s failure(s)",
                result.state.value,
                result.new_matches,
                result.notifications,
                len(result.failures),
            )
            self.last_result = result
            self.state = PollState.IDLE
            return result

    async def _poll_account(self, account: TrackedAccount, account_id: str) -> tuple[int, int, list[int]]:
        raw_matches = await self.queries.get_recent_matches(account_id, self.recent_match_limit)
        matches = map_matches(raw_matches, account_id)
        new_matches = self.store.diff_new_matches(account_id, matches)
        pending = self.store.pending_multi_kill_checks(account_id)
        if not new_matches and not pending:
            return 0, 0, []

        sent = 0
        if new_matches:
            logger.info("Found %s new match(es) for %s (%s)", len(new_matches), account.display_name, account_id)
            if self.new_match_notifications:
                for match in reversed(new_matches):
                    sent += self._notify(NewMatch(account.display_name, account_id, match))
        if pending:
            logger.info("Retrying multi-kill check for %s (%s): %s", account.display_name, account_id, pending)

        # The watermark has already moved past these matches; they stay pending
        # until a multi-kill check for them completes.
        new_ids = [m.match_id for m in new_matches]
        match_ids = new_ids + [i for i in pending if i not in new_ids]
        self.store.set_pending_multi_kill_checks(account_id, match_ids)
        multi_sent, unchecked = await self._check_multi_kills(account, account_id, matches, match_ids)
        self.store.set_pending_multi_kill_checks(account_id, unchecked)
        return len(new_matches), sent + multi_sent, unchecked

    ## ---------------------------- Multi-kills ---------------------------- ##
    async def _check_multi_kills(
        self, account: TrackedAccount, account_id: str, matches: List[MatchRecord], match_ids: List[int]
    ) -> tuple[int, list[int]]:
        """Feats first; per-match kill events when the feats query fails or has nothing.

        Returns the notifications sent and the match ids that could not be checked.
        """
        by_id = {m.match_id: m for m in matches}
        feats = []
        try:
            raw_feats = await self.queries.get_player_feats(account_id, take=self.feats_take)
            feats = multi_kill_feats(map_feats(raw_feats), match_ids)
        except AuthError:
            raise
        except StratzError as exc:
            logger.warning("Feats check failed for %s, using kill events: %s", account.display_name, exc)

        if feats:
            sent = 0
            counts = Counter((feat.match_id, feat.type) for feat in feats)
            heroes = {(feat.match_id, feat.type): feat.hero_id for feat in feats}
            for (match_id, feat_type), count in counts.items():
                match = by_id.get(match_id)
                sent += self._notify_multi_kill(
                    account,
                    account_id,
                    feat_type,
                    match_id,
                    hero_id=heroes[(match_id, feat_type)],
                    count=count,
                    kills=match.player.kills if match else None,
                    deaths=match.player.deaths if match else None,
                    assists=match.player.assists if match else None,
                    won=match.won if match else None,
                )
            return sent, []

        sent = 0
        unchecked = []
        for match_id in match_ids:
            found = await self._check_kill_events(account, account_id, match_id)
            if found is None:
                unchecked.append(match_id)
            else:
                sent += found
        return sent, unchecked

    async def _check_kill_events(self, account: TrackedAccount, account_id: str, match_id: int) -> Optional[int]:
        """Notifications sent from the match's kill events, or None when the query failed."""
        already = [t for t in (FeatType.RAMPAGE, FeatType.ULTRA_KILL, FeatType.TRIPLE_KILL)
                   if self.store.is_event_notified(match_id, account_id, t)]
        if already:
            return 0
        try:
            raw_match = await self.queries.get_match_with_kill_events(match_id)
        except AuthError:
            raise
        except StratzError as exc:
            logger.error("Error checking kill events for match %s: %s", match_id, exc)
            return None
        if not raw_match:
            return 0

        player = find_player(raw_match, account_id)
        if str(player.get("steamAccountId")) != str(account_id):
            return 0
        found = detect_multi_kills(map_kill_event_times(player))
        stats = map_player_match_stats(player, raw_match.get("didRadiantWin"))

        sent = 0
        for feat_type, count in found.by_type().items():
            if count:
                sent += self._notify_multi_kill(
                    account,
                    account_id,
                    feat_type,
                    match_id,
                    hero_id=stats.hero_id,
                    count=count,
                    kills=stats.kills,
                    deaths=stats.deaths,
                    assists=stats.assists,
                    won=stats.is_on_winning_side,
                )
        return sent

    def _notify_multi_kill(self, account: TrackedAccount, account_id: str, feat_type: FeatType, match_id, **details) -> int:
        if self.store.is_event_notified(match_id, account_id, feat_type):
            return 0
        self.store.mark_event_notified(match_id, account_id, feat_type)
        logger.info("%s detected for %s in match %s", feat_type.label, account.display_name, match_id)
        return self._notify(MultiKill(account.display_name, account_id, feat_type, int(match_id), **details))

    ## ---------------------------- Stats, ranks, live ---------------------------- ##
    async def _check_stats(self, result: CycleResult) -> int:
        if not self.main_account_id:
            return 0
        raw_player = await self.queries.get_player_totals(self.main_account_id)
        if raw_player is None:
            return 0
        stats = map_player_stats(raw_player)
        comparison = self.store.compare_stats(stats)
        sent = 0
        if comparison.changed and comparison.changes:
            logger.info("Detected stat changes: %s", ", ".join(f"{c.field} {c.old} -> {c.new}" for c in comparison.changes))
            significant = tuple(c for c in comparison.changes if c.field in SIGNIFICANT_STAT_FIELDS)
            if significant:
                sent = self._notify(StatChange(self.main_account_name, self.main_account_id, significant))
        self.store.commit_stats(stats)
        return sent

    async def _check_ranks(self, result: CycleResult) -> int:
        """Rank changes for tracked players other than the main account."""
        sent = 0
        for account in self.accounts:
            if self.main_account_id and self.main_account_id in account.account_ids:
                continue
            account_id = account.primary_id
            try:
                snapshot = map_rank(await self.queries.get_player_rank(account_id), account_id)
            except StratzError as exc:
                logger.warning("Error checking rank for %s: %s", account.display_name, exc)
                result.failures.append(f"rank:{account_id}")
                continue
            if snapshot is None or snapshot.rank_tier is None:
                continue

            previous = self.store.update_rank(account_id, snapshot)
            if previous is None or previous.rank_tier is None:
                continue
            changes = tuple(
                FieldChange(name, old, new)
                for name, old, new in (
                    ("rank_tier", previous.rank_tier, snapshot.rank_tier),
                    ("skill_rating", previous.leaderboard_rank, snapshot.leaderboard_rank),
                )
                if old != new
            )
            if changes:
                logger.info(
                    "Rank change detected for %s: %s -> %s",
                    account.display_name,
                    previous.rank_tier,
                    snapshot.rank_tier,
                )
                sent += self._notify(StatChange(account.display_name, account_id, changes))
        return sent

    async def _check_live(self, result: CycleResult) -> int:
        if not self.live_notifications:
            return 0
        tracked = {account_id: account for account in self.accounts for account_id in account.account_ids}
        sent = 0
        for raw_live in await self.queries.get_live_matches():
            live = map_live_match(raw_live)
            if live is None:
                continue
            for account_id, hero_id in live.hero_by_account.items():
                account = tracked.get(account_id)
                if account is None or not self.store.should_notify_live(live.match_id, account_id):
                    continue
                self.store.mark_live_notified(live.match_id, account_id)
                logger.info("%s is in live match %s", account.display_name, live.match_id)
                sent += self._notify(
                    LiveMatchEntry(
                        account.display_name,
                        account_id,
                        live.match_id,
                        hero_id=hero_id,
                        game_time=live.game_time,
                        average_rank=live.average_rank,
                    )
                )
        return sent

    ## ---------------------------- Daily summary ---------------------------- ##
    async def run_daily_summary(self, window: Optional[DayWindow] = None) -> DailySummary:
        """Summarize every tracked player's matches in ``window`` (default: yesterday)."""
        if window is None:
            window = previous_calendar_day(self.summary_timezone, now=self.clock())

        async with self._work_lock:
            logger.info("Generating daily summary for %s (%s to %s)", window.label, window.start, window.end)
            players = []
            rampages = []

            for account in self.accounts:
                try:
                    best_id, best_matches = await self._matches_in_window(account, window)
                    if not best_matches:
                        logger.debug("No matches found for %s on %s", account.display_name, window.label)
                        continue

                    match_ids = [m.match_id for m in best_matches]
                    multi_kills = MultiKillCounts()
                    try:
                        feats = map_feats(await self.queries.get_player_feats(best_id, take=self.feats_take))
                        multi_kills = count_multi_kill_feats(feats, match_ids)
                        by_id = {m.match_id: m for m in best_matches}
                        rampages.extend(
                            (account, best_id, feat, by_id.get(feat.match_id))
                            for feat in multi_kill_feats(feats, match_ids)
                            if feat.type is FeatType.RAMPAGE
                        )
                    except AuthError:
                        raise
                    except StratzError as exc:
                        logger.warning("Error fetching feats for %s: %s", account.display_name, exc)

                    players.append(
                        PlayerDaySummary(account.display_name, best_id, summarize_day(best_matches, multi_kills))
                    )
                    logger.info(
                        "%s: %s match(es) on %s, %s multi-kill(s)",
                        account.display_name,
                        len(best_matches),
                        window.label,
                        multi_kills.total,
                    )
                except Exception as exc:
                    logger.error("Error processing daily summary for %s: %s", account.display_name, exc)

            for account, account_id, feat, match in rampages:
                self._notify_multi_kill(
                    account,
                    account_id,
                    feat.type,
                    feat.match_id,
                    hero_id=feat.hero_id,
                    kills=match.player.kills if match else None,
                    deaths=match.player.deaths if match else None,
                    assists=match.player.assists if match else None,
                    won=match.won if match else None,
                )

            summary = DailySummary(window.label, tuple(players))
            self._notify(summary)
            self.store.set_last_daily_summary()
            self.store.save()
            return summary

    async def _matches_in_window(self, account: TrackedAccount, window: DayWindow):
        """Pick the account id with the most matches in the window (first wins ties)."""
        best_id, best_matches = account.primary_id, []
        last_error = None
        for account_id in account.account_ids:
            try:
                raw = await self.queries.get_matches_since(
                    account_id, window.start_timestamp, defaults["matches_since_limit"]
                )
            except AuthError:
                raise
            except StratzError as exc:
                logger.warning("Error checking account %s for %s: %s", account_id, account.display_name, exc)
                last_error = exc
                continue
            matches = [m for m in map_matches(raw, account_id) if window.contains(m.start_time)]
            if len(matches) > len(best_matches):
                best_id, best_matches = account_id, matches
        if last_error is not None and len(account.account_ids) == 1:
            raise last_error
        return best_id, best_matches

    ## ---------------------------- Scheduling ---------------------------- ##
    async def _sleep_or_stop(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when stop() was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            pass
        return self._stop_event.is_set()

    async def _poll_loop(self) -> None:
        logger.info("Skipping initial poll - first check will run in %s seconds", self.interval_seconds)
        while not await self._sleep_or_stop(self.interval_seconds):
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll cycle failed")

    async def _daily_loop(self) -> None:
        logger.info(
            "Daily summary scheduled: %s (Mon-Fri), %s (Sat-Sun) %s",
            self.weekday_summary_time.strftime("%H:%M"),
            self.weekend_summary_time.strftime("%H:%M"),
            self.summary_timezone,
        )
        while True:
            now = self.clock()
            run_at = next_daily_run(now, self.summary_timezone, self.weekday_summary_time, self.weekend_summary_time)
            logger.debug("Next daily summary at %s", run_at.isoformat())
            if await self._sleep_or_stop((run_at - now).total_seconds()):
                return
            try:
                await self.run_daily_summary()
            except Exception:
                logger.exception("Daily summary failed")

    async def run(self) -> None:
        """Run both schedules until stop(); the cycle in progress is allowed to finish."""
        self._stop_event.clear()
        logger.info("Polling service started (checking every %s minutes)", self.interval_seconds // 60)
        try:
            await asyncio.gather(self._poll_loop(), self._daily_loop())
        finally:
            self.store.save()
            logger.info("Polling service stopped")

    def stop(self) -> None:
        self._stop_event.set()
