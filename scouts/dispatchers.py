"""Plain-text rendering of notification events, and where they get sent."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests

from records.heroes import EMPTY_HERO_TABLE
from scouts.notifications import DailySummary, LiveMatchEntry, MultiKill, NewMatch, StatChange

logger = logging.getLogger("dotakeeper.scouts")

RANK_NAMES = {
    1: "Herald",
    2: "Guardian",
    3: "Crusader",
    4: "Archon",
    5: "Legend",
    6: "Ancient",
    7: "Divine",
    8: "Immortal",
}

FIELD_LABELS = {
    "wins": "Wins",
    "losses": "Losses",
    "win_rate": "Win rate",
    "skill_rating": "Leaderboard rank",
    "rank_tier": "Rank",
}

WEBHOOK_TIMEOUT_SECONDS = 10
WEBHOOK_MAX_LENGTH = 2000


def format_duration(seconds) -> str:
    seconds = int(seconds or 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


def rank_text(rank_tier) -> str:
    if not rank_tier:
        return "Uncalibrated"
    medal = RANK_NAMES.get(int(rank_tier) // 10, "Unknown")
    stars = int(rank_tier) % 10
    return f"{medal} {stars}" if stars > 0 else medal


def _format_field(name: str, value) -> str:
    if value is None:
        return "-"
    if name == "rank_tier":
        return rank_text(value)
    if name == "win_rate":
        return f"{value}%"
    return str(value)


def render_text(event, heroes=EMPTY_HERO_TABLE) -> str:
    """Render one event as chat-ready plain text."""
    match event:
        case NewMatch(display_name=name, match=record):
            result = "Won" if record.won else "Lost"
            return (
                f"{name} finished a match ({result}) as {heroes.name(record.player.hero_id)}\n"
                f"KDA: {record.player.kda_line} | GPM/XPM: {record.player.gold_per_minute}/"
                f"{record.player.experience_per_minute} | Duration: {format_duration(record.duration_seconds)}\n"
                f"Match ID: {record.match_id}"
            )
        case MultiKill():
            lines = [
                f"{event.feat_type.label.upper()}! {event.display_name} on {heroes.name(event.hero_id)}"
                + (f" (x{event.count})" if event.count > 1 else "")
            ]
            if event.kills is not None:
                lines.append(f"KDA: {event.kills}/{event.deaths}/{event.assists}")
            if event.won is not None:
                lines.append("Result: " + ("Victory" if event.won else "Defeat"))
            lines.append(f"Match ID: {event.match_id}")
            return "\n".join(lines)
        case LiveMatchEntry():
            minutes = (event.game_time or 0) // 60
            return (
                f"{event.display_name} is in a live game as {heroes.name(event.hero_id)}\n"
                f"Game time: {minutes} min | Average rank: {rank_text(event.average_rank)}\n"
                f"Match ID: {event.match_id}"
            )
        case StatChange():
            lines = [f"Statistics updated for {event.display_name}"]
            for change in event.changes:
                label = FIELD_LABELS.get(change.field, change.field)
                lines.append(
                    f"{label}: {_format_field(change.field, change.old)} -> {_format_field(change.field, change.new)}"
                )
            return "\n".join(lines)
        case DailySummary():
            return _render_daily_summary(event, heroes)
    return str(event)


def _render_daily_summary(event: DailySummary, heroes) -> str:
    lines = [f"Daily Summary ({event.label})"]
    played = [p for p in event.players if p.summary.total_matches > 0]
    if not played:
        lines.append("No matches played.")
        return "\n".join(lines)

    for player in played:
        summary = player.summary
        lines.append("")
        lines.append(
            f"{player.display_name}: {summary.total_matches} match(es), "
            f"{summary.wins}W/{summary.losses}L ({summary.win_rate}%), avg KDA {summary.average_kda:.2f}"
        )
        if summary.most_played_hero is not None:
            lines.append(f"  Most played: {heroes.name(summary.most_played_hero)}")
        if summary.best_match is not None:
            best = summary.best_match
            lines.append(f"  Best: {heroes.name(best.player.hero_id)} {best.player.kda_line}")
        kills = summary.multi_kills
        if kills.total:
            lines.append(
                f"  Multi-kills: {kills.rampages} Rampage, {kills.ultra_kills} Ultra Kill, {kills.triple_kills} Triple Kill"
            )
    return "\n".join(lines)


## ---------------------------- Dispatchers ---------------------------- ##
class LogDispatcher:
    """Write each notification to the log."""

    def __init__(self, heroes=EMPTY_HERO_TABLE):
        self.heroes = heroes

    async def send(self, event) -> None:
        logger.info("New notification\n%s\n%s", "=" * 40, render_text(event, self.heroes))


class WebhookDispatcher:
    """POST the plain-text rendering to a chat webhook (Discord-compatible body)."""

    def __init__(self, url: str, heroes=EMPTY_HERO_TABLE, timeout: float = WEBHOOK_TIMEOUT_SECONDS, session=None):
        self.url = url
        self.heroes = heroes
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, text: str) -> None:
        response = self.session.post(
            self.url,
            json={"content": text[:WEBHOOK_MAX_LENGTH]},
            timeout=self.timeout,
        )
        response.raise_for_status()

    async def send(self, event) -> None:
        text = render_text(event, self.heroes)
        logger.info("Sending %s notification to webhook", type(event).__name__)
        await asyncio.to_thread(self._post, text)


def build_dispatcher(webhook_url: Optional[str], heroes=EMPTY_HERO_TABLE):
    if webhook_url:
        return WebhookDispatcher(webhook_url, heroes=heroes)
    logger.info("No WEBHOOK_URL configured; notifications will only be logged")
    return LogDispatcher(heroes=heroes)
