"""Normalize raw STRATZ payload fragments into :mod:`records.models` shapes.

All functions here are pure and tolerant of partial payloads: missing or
``None`` nested structures fall back to zero/``None`` instead of raising.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from records.feats import normalize_feat_type
from records.models import (
    DaySummary,
    FeatEvent,
    LiveMatch,
    MatchRecord,
    MultiKillCounts,
    PlayerMatchStats,
    PlayerProfile,
    PlayerStats,
    RankSnapshot,
    compute_kda,
)


def _safe_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _safe_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _same_account(player: Dict[str, Any], account_id) -> bool:
    return account_id is not None and _safe_int(player.get("steamAccountId"), None) == _safe_int(account_id, None)


def find_player(match: Dict[str, Any], account_id=None) -> Dict[str, Any]:
    """Return the player entry for ``account_id``.

    Match-list queries filter ``players`` down to the requested account, so
    without an id (or without a hit) the first entry is used.
    """
    players = [p for p in _as_list(_as_dict(match).get("players")) if isinstance(p, dict)]
    if account_id is not None:
        for player in players:
            if _same_account(player, account_id):
                return player
    return players[0] if players else {}


def _is_on_winning_side(player: Dict[str, Any], radiant_win) -> bool:
    is_radiant = player.get("isRadiant")
    if is_radiant is None or radiant_win is None:
        return False
    return bool(is_radiant) == bool(radiant_win)


def map_player_match_stats(player: Dict[str, Any], radiant_win) -> PlayerMatchStats:
    player = _as_dict(player)
    return PlayerMatchStats(
        hero_id=_safe_int(player.get("heroId"), None),
        kills=_safe_int(player.get("kills")),
        deaths=_safe_int(player.get("deaths")),
        assists=_safe_int(player.get("assists")),
        is_on_winning_side=_is_on_winning_side(player, radiant_win),
        gold_per_minute=_safe_int(player.get("goldPerMinute")),
        experience_per_minute=_safe_int(player.get("experiencePerMinute")),
        last_hits=_safe_int(player.get("numLastHits")),
        denies=_safe_int(player.get("numDenies")),
    )


def map_match(raw: Any, account_id=None) -> Optional[MatchRecord]:
    match = _as_dict(raw)
    match_id = _safe_int(match.get("id"), None)
    if match_id is None:
        return None
    radiant_win = match.get("didRadiantWin")
    player = find_player(match, account_id)
    game_mode = match.get("gameMode")
    lobby_type = match.get("lobbyType")
    return MatchRecord(
        match_id=match_id,
        start_time=_safe_int(match.get("startDateTime")),
        duration_seconds=_safe_int(match.get("durationSeconds")),
        did_winning_side_win=bool(radiant_win),
        player=map_player_match_stats(player, radiant_win),
        game_mode=None if game_mode is None else str(game_mode),
        lobby_type=None if lobby_type is None else str(lobby_type),
    )


def map_matches(raw_matches: Any, account_id=None) -> List[MatchRecord]:
    """Map a match list, newest (highest match id) first."""
    mapped = (map_match(raw, account_id) for raw in _as_list(raw_matches))
    return sorted((m for m in mapped if m is not None), key=lambda m: m.match_id, reverse=True)


def map_kill_event_times(player: Any) -> List[int]:
    events = _as_list(_as_dict(_as_dict(player).get("stats")).get("killEvents"))
    times = [_safe_int(_as_dict(event).get("time"), None) for event in events]
    return sorted(t for t in times if t is not None)


def map_player_profile(raw: Any) -> Optional[PlayerProfile]:
    player = _as_dict(raw)
    if not player:
        return None
    steam_account = _as_dict(player.get("steamAccount"))
    account_id = player.get("steamAccountId") or steam_account.get("id")
    return PlayerProfile(
        account_id=None if account_id is None else str(account_id),
        name=steam_account.get("name") or "Unknown",
        avatar=steam_account.get("avatar"),
        rank_tier=_safe_int(steam_account.get("seasonRank"), None),
        leaderboard_rank=_safe_int(steam_account.get("seasonLeaderboardRank"), None),
        match_count=_safe_int(player.get("matchCount")),
        win_count=_safe_int(player.get("winCount")),
        behavior_score=_safe_int(player.get("behaviorScore"), None),
    )


def map_player_stats(raw: Any) -> PlayerStats:
    """Build the tracked totals snapshot from a player payload."""
    player = _as_dict(raw)
    steam_account = _as_dict(player.get("steamAccount"))
    match_count = _safe_int(player.get("matchCount"))
    wins = _safe_int(player.get("winCount"))
    losses = max(match_count - wins, 0)
    total = wins + losses
    win_rate = round(wins / total * 100, 2) if total > 0 else 0.0
    return PlayerStats(
        wins=wins,
        losses=losses,
        win_rate=win_rate,
        skill_rating=_safe_int(steam_account.get("seasonLeaderboardRank"), None),
        rank_tier=_safe_int(steam_account.get("seasonRank"), None),
    )


def map_rank(raw: Any, account_id=None) -> Optional[RankSnapshot]:
    player = _as_dict(raw)
    steam_account = _as_dict(player.get("steamAccount"))
    if not steam_account:
        return None
    resolved_id = player.get("steamAccountId") or account_id
    return RankSnapshot(
        account_id=str(resolved_id) if resolved_id is not None else "",
        name=steam_account.get("name"),
        rank_tier=_safe_int(steam_account.get("seasonRank"), None),
        leaderboard_rank=_safe_int(steam_account.get("seasonLeaderboardRank"), None),
    )


def map_feat(raw: Any) -> FeatEvent:
    feat = _as_dict(raw)
    raw_type = feat.get("type")
    return FeatEvent(
        type=normalize_feat_type(raw_type),
        hero_id=_safe_int(feat.get("heroId"), None),
        match_id=_safe_int(feat.get("matchId"), None),
        raw_value=raw_type,
        value=_safe_int(feat.get("value"), None),
    )


def map_feats(raw_feats: Any) -> List[FeatEvent]:
    return [map_feat(raw) for raw in _as_list(raw_feats) if isinstance(raw, dict)]


def map_live_match(raw: Any) -> Optional[LiveMatch]:
    live = _as_dict(raw)
    match_id = _safe_int(live.get("matchId"), None)
    if match_id is None:
        return None
    hero_by_account = {}
    for player in _as_list(live.get("players")):
        player = _as_dict(player)
        account_id = _safe_int(player.get("steamAccountId"), None)
        if account_id is not None:
            hero_by_account[str(account_id)] = _safe_int(player.get("heroId"), None)
    return LiveMatch(
        match_id=match_id,
        created_at=_safe_int(live.get("createdDateTime"), None),
        game_time=_safe_int(live.get("gameTime"), None),
        average_rank=_safe_int(live.get("averageRank"), None),
        hero_by_account=hero_by_account,
    )


def map_heroes(raw_heroes: Any) -> Dict[int, str]:
    heroes = {}
    for hero in _as_list(raw_heroes):
        hero = _as_dict(hero)
        hero_id = _safe_int(hero.get("id"), None)
        name = hero.get("displayName") or hero.get("name")
        if hero_id is not None and name:
            heroes[hero_id] = str(name)
    return heroes


def summarize_day(matches: Iterable[MatchRecord], multi_kills: MultiKillCounts = MultiKillCounts()) -> DaySummary:
    """Aggregate one player's matches for a day."""
    matches = list(matches)
    if not matches:
        return DaySummary(multi_kills=multi_kills)

    wins = sum(1 for m in matches if m.won)
    total_kills = sum(m.player.kills for m in matches)
    total_deaths = sum(m.player.deaths for m in matches)
    total_assists = sum(m.player.assists for m in matches)

    # max/min keep the first of equal KDAs, in the order given.
    best_match = max(matches, key=lambda m: m.player.kda)
    worst_match = min(matches, key=lambda m: m.player.kda)

    hero_counts = Counter(m.player.hero_id for m in matches if m.player.hero_id)
    most_played_hero = hero_counts.most_common(1)[0][0] if hero_counts else None

    return DaySummary(
        total_matches=len(matches),
        wins=wins,
        losses=len(matches) - wins,
        win_rate=round(wins / len(matches) * 100, 2),
        best_match=best_match,
        worst_match=worst_match,
        most_played_hero=most_played_hero,
        average_kda=compute_kda(total_kills, total_deaths, total_assists),
        total_kills=total_kills,
        total_deaths=total_deaths,
        total_assists=total_assists,
        multi_kills=multi_kills,
    )
