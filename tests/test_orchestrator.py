import asyncio
from datetime import datetime, timezone

import pytest

from records.models import FeatType, TrackedAccount
from scouts.notifications import DailySummary, LiveMatchEntry, MultiKill, NewMatch, StatChange
from scouts.orchestrator import PollOrchestrator, PollState
from scouts.state_store import DedupStateStore
from scouts.time_window import parse_day_selector
from stratz.errors import AuthError, TransportError

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


class FakeQueries:
    """In-memory stand-in for StratzQueries."""

    def __init__(self, delay=None):
        self.matches = {}
        self.feats = {}
        self.kill_events = {}
        self.totals = None
        self.ranks = {}
        self.live = []
        self.errors = {}
        self.calls = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def _call(self, name, key=None):
        self.calls.append((name, key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay is not None:
                await asyncio.sleep(self.delay)
            error = self.errors.get((name, key)) or self.errors.get(name)
            if error is not None:
                raise error
        finally:
            self.in_flight -= 1

    async def get_recent_matches(self, account_id, limit=10):
        await self._call("recent_matches", account_id)
        return self.matches.get(account_id, [])[:limit]

    async def get_matches_since(self, account_id, since_timestamp, limit=50):
        await self._call("matches_since", account_id)
        return [m for m in self.matches.get(account_id, []) if m["startDateTime"] >= since_timestamp]

    async def get_player_feats(self, account_id, take=100):
        await self._call("feats", account_id)
        return self.feats.get(account_id, [])

    async def get_match_with_kill_events(self, match_id):
        await self._call("kill_events", match_id)
        return self.kill_events.get(match_id)

    async def get_player_totals(self, account_id):
        await self._call("totals", account_id)
        return self.totals

    async def get_player_rank(self, account_id):
        await self._call("rank", account_id)
        return self.ranks.get(account_id)

    async def get_live_matches(self):
        await self._call("live")
        return self.live


@pytest.fixture
def queries():
    return FakeQueries()


@pytest.fixture
def store(tmp_path):
    return DedupStateStore(tmp_path / "state.json")


def _orchestrator(queries, store, queue, accounts, **kwargs):
    kwargs.setdefault("main_account_id", None)
    return PollOrchestrator(queries, store, queue, accounts, clock=lambda: NOW, **kwargs)


def test_first_cycle_is_baseline_and_second_reports_new_matches(queries, store, recording_queue, raw_match):
    alice = TrackedAccount("Alice", ("101",))
    queries.matches["101"] = [raw_match(i, account_id=101) for i in (105, 104, 103)]
    orchestrator = _orchestrator(queries, store, recording_queue, [alice], live_notifications=False)

    first = asyncio.run(orchestrator.poll_once())
    assert first.state is PollState.SUCCEEDED
    assert recording_queue.events == []
    assert store.path.exists()

    queries.matches["101"] = [raw_match(i, account_id=101) for i in (107, 106, 105, 104)]
    second = asyncio.run(orchestrator.poll_once())
    assert second.new_matches == 2
    assert [e.match.match_id for e in recording_queue.of_type(NewMatch)] == [106, 107]
    assert orchestrator.state is PollState.IDLE


def test_multi_kills_from_feats_notify_once(queries, store, recording_queue, raw_match):
    alice = TrackedAccount("Alice", ("101",))
    queries.matches["101"] = [raw_match(200, account_id=101)]
    orchestrator = _orchestrator(queries, store, recording_queue, [alice], live_notifications=False)
    asyncio.run(orchestrator.poll_once())

    queries.matches["101"] = [raw_match(i, account_id=101) for i in (202, 201, 200)]
    queries.feats["101"] = [
        {"type": "RAMPAGE", "heroId": 8, "matchId": 202},
        {"type": 3, "heroId": 8, "matchId": 202},
        {"type": "TRIPLE_KILL", "heroId": 8, "matchId": 202},
        {"type": "RAMPAGE", "heroId": 8, "matchId": 150},
    ]
    asyncio.run(orchestrator.poll_once())

    multi = {(e.match_id, e.feat_type): e for e in recording_queue.of_type(MultiKill)}
    assert set(multi) == {(202, FeatType.RAMPAGE), (202, FeatType.TRIPLE_KILL)}
    assert multi[(202, FeatType.TRIPLE_KILL)].count == 2
    assert multi[(202, FeatType.RAMPAGE)].kills == 5
    assert store.is_event_notified(202, "101", FeatType.RAMPAGE)
    assert ("kill_events", 202) not in queries.calls


def test_kill_event_fallback_when_feats_fail(queries, store, recording_queue, raw_match):
    alice = TrackedAccount("Alice", ("101",))
    store.state.last_match_id_by_account["101"] = 299
    queries.matches["101"] = [raw_match(300, account_id=101)]
    queries.errors["feats"] = TransportError("feats down")
    queries.kill_events[300] = {
        "id": 300,
        "didRadiantWin": False,
        "players": [
            {"steamAccountId": 999, "isRadiant": True, "stats": {"killEvents": [{"time": t} for t in (0, 1, 2)]}},
            {
                "steamAccountId": 101,
                "heroId": 1,
                "isRadiant": False,
                "kills": 12,
                "deaths": 2,
                "assists": 3,
                "stats": {"killEvents": [{"time": t} for t in (100, 104, 108, 112, 300, 305)]},
            },
        ],
    }
    orchestrator = _orchestrator(queries, store, recording_queue, [alice], live_notifications=False)
    result = asyncio.run(orchestrator.poll_once())

    events = recording_queue.of_type(MultiKill)
    assert [(e.feat_type, e.count) for e in events] == [(FeatType.ULTRA_KILL, 1)]
    assert events[0].won is True
    assert events[0].kills == 12
    assert result.state is PollState.SUCCEEDED


def test_unchecked_multi_kills_are_retried_next_cycle(queries, store, recording_queue, raw_match):
    alice = TrackedAccount("Alice", ("101",))
    store.state.last_match_id_by_account["101"] = 10
    queries.matches["101"] = [raw_match(11, account_id=101)]
    queries.errors["feats"] = TransportError("feats down")
    queries.errors["kill_events"] = TransportError("match down")
    orchestrator = _orchestrator(queries, store, recording_queue, [alice], live_notifications=False)

    first = asyncio.run(orchestrator.poll_once())
    assert first.state is PollState.PARTIAL_FAILURE
    assert first.failures == ["multi_kill:101"]
    assert store.watermark("101") == 11
    assert store.pending_multi_kill_checks("101") == [11]
    assert len(recording_queue.of_type(NewMatch)) == 1

    del queries.errors["feats"]
    del queries.errors["kill_events"]
    queries.feats["101"] = [{"type": "RAMPAGE", "heroId": 8, "matchId": 11}]
    second = asyncio.run(orchestrator.poll_once())

    assert second.state is PollState.SUCCEEDED
    assert second.new_matches == 0
    events = recording_queue.of_type(MultiKill)
    assert [(e.match_id, e.feat_type) for e in events] == [(11, FeatType.RAMPAGE)]
    assert events[0].kills == 5
    assert store.pending_multi_kill_checks("101") == []


def test_poll_and_daily_summary_take_turns_upstream(store, recording_queue, raw_match):
    queries = FakeQueries(delay=0)
    accounts = [TrackedAccount("Alice", ("101",)), TrackedAccount("Bob", ("202",))]
    for account_id in ("101", "202"):
        queries.matches[account_id] = [raw_match(5, account_id=int(account_id))]
    orchestrator = _orchestrator(queries, store, recording_queue, accounts)
    window = parse_day_selector("15-Oct-2026", "Europe/London")

    async def scenario():
        await asyncio.gather(orchestrator.poll_once(), orchestrator.run_daily_summary(window))

    asyncio.run(scenario())
    assert queries.max_in_flight == 1
    jobs = ["daily" if name == "matches_since" else "poll" for name, _ in queries.calls]
    assert set(jobs) == {"daily", "poll"}
    assert sum(1 for a, b in zip(jobs, jobs[1:]) if a != b) == 1


def test_one_failing_account_does_not_abort_cycle(queries, store, recording_queue, raw_match):
    accounts = [TrackedAccount("Alice", ("101",)), TrackedAccount("Bob", ("202", "203"))]
    for account_id in ("101", "202", "203"):
        store.state.last_match_id_by_account[account_id] = 10
        queries.matches[account_id] = [raw_match(11, account_id=int(account_id))]
    queries.errors[("recent_matches", "101")] = AuthError("bad token")
    queries.errors[("recent_matches", "202")] = TransportError("timeout")
    orchestrator = _orchestrator(queries, store, recording_queue, accounts, live_notifications=False)

    result = asyncio.run(orchestrator.poll_once())
    assert result.state is PollState.PARTIAL_FAILURE
    assert result.failures == ["101", "202"]
    assert [(e.account_id, e.match.match_id) for e in recording_queue.of_type(NewMatch)] == [("203", 11)]
    assert store.watermark("101") == 10
    assert store.path.exists()


def test_stats_and_rank_changes(queries, store, recording_queue):
    accounts = [TrackedAccount("You", ("101",)), TrackedAccount("Bob", ("202",))]
    queries.totals = {"matchCount": 10, "winCount": 5, "steamAccount": {"seasonRank": 54}}
    queries.ranks["202"] = {"steamAccountId": 202, "steamAccount": {"name": "Bob", "seasonRank": 31}}
    orchestrator = _orchestrator(
        queries, store, recording_queue, accounts, main_account_id="101", live_notifications=False
    )
    asyncio.run(orchestrator.poll_once())
    assert recording_queue.of_type(StatChange) == []

    # Wins alone are not worth a notification.
    queries.totals = {"matchCount": 11, "winCount": 6, "steamAccount": {"seasonRank": 54}}
    asyncio.run(orchestrator.poll_once())
    assert recording_queue.of_type(StatChange) == []

    queries.totals = {"matchCount": 12, "winCount": 7, "steamAccount": {"seasonRank": 55}}
    queries.ranks["202"] = {"steamAccountId": 202, "steamAccount": {"name": "Bob", "seasonRank": 32}}
    asyncio.run(orchestrator.poll_once())

    changes = {e.display_name: e.changes for e in recording_queue.of_type(StatChange)}
    assert [(c.field, c.old, c.new) for c in changes["You"]] == [("rank_tier", 54, 55)]
    assert [(c.field, c.old, c.new) for c in changes["Bob"]] == [("rank_tier", 31, 32)]
    assert ("rank", "101") not in queries.calls


def test_live_match_notified_once(queries, store, recording_queue):
    alice = TrackedAccount("Alice", ("101",))
    queries.live = [
        {"matchId": 900, "gameTime": 300, "players": [{"steamAccountId": 101, "heroId": 1}, {"steamAccountId": 5}]},
        {"matchId": 901, "players": [{"steamAccountId": 7}]},
    ]
    orchestrator = _orchestrator(queries, store, recording_queue, [alice])
    asyncio.run(orchestrator.poll_once())
    asyncio.run(orchestrator.poll_once())

    live = recording_queue.of_type(LiveMatchEntry)
    assert [(e.account_id, e.match_id, e.hero_id) for e in live] == [("101", 900, 1)]
    assert not store.should_notify_live(900, "101")


def test_daily_summary_picks_busiest_account(queries, store, recording_queue, raw_match):
    window = parse_day_selector("15-Oct-2026", "Europe/London")
    inside = window.start_timestamp + 3600
    bob = TrackedAccount("Bob", ("202", "203"))
    carol = TrackedAccount("Carol", ("303",))
    queries.matches["202"] = [raw_match(1, account_id=202, start=inside)]
    queries.matches["203"] = [
        raw_match(2, account_id=203, start=inside, hero_id=8),
        raw_match(3, account_id=203, start=inside + 60, hero_id=8),
        raw_match(4, account_id=203, start=window.end_timestamp),
    ]
    queries.feats["203"] = [{"type": "RAMPAGE", "heroId": 8, "matchId": 3}, {"type": "RAMPAGE", "matchId": 4}]
    queries.errors[("matches_since", "303")] = TransportError("down")

    orchestrator = _orchestrator(queries, store, recording_queue, [bob, carol])
    summary = asyncio.run(orchestrator.run_daily_summary(window))

    assert summary.label == "15-Oct-2026"
    assert [(p.display_name, p.account_id) for p in summary.players] == [("Bob", "203")]
    bob_summary = summary.players[0].summary
    assert bob_summary.total_matches == 2
    assert bob_summary.most_played_hero == 8
    assert bob_summary.multi_kills.rampages == 1

    assert [type(e) for e in recording_queue.events] == [MultiKill, DailySummary]
    assert recording_queue.events[0].match_id == 3
    assert store.state.last_daily_summary_at is not None
    assert store.path.exists()


def test_daily_summary_defaults_to_yesterday(queries, store, recording_queue):
    orchestrator = _orchestrator(queries, store, recording_queue, [TrackedAccount("Alice", ("101",))])
    summary = asyncio.run(orchestrator.run_daily_summary())
    assert summary.label == "15-Oct-2026"
    assert summary.players == ()


def test_run_stops_and_saves(queries, store, recording_queue):
    orchestrator = _orchestrator(queries, store, recording_queue, [TrackedAccount("Alice", ("101",))])
    orchestrator.interval_seconds = 0.01

    async def scenario():
        task = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.05)
        orchestrator.stop()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())
    assert ("recent_matches", "101") in queries.calls
    assert store.path.exists()


def test_rank_is_read_from_the_first_listed_id(queries, store, recording_queue):
    bob = TrackedAccount("Bob", ("202", "203"))
    orchestrator = _orchestrator(queries, store, recording_queue, [bob], live_notifications=False)
    asyncio.run(orchestrator.poll_once())
    assert [key for name, key in queries.calls if name == "rank"] == ["202"]
