"""Immutable record shapes produced by the mapper and consumed by the watcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class FeatType(str, Enum):
    FIRST_BLOOD = "FIRST_BLOOD"
    TRIPLE_KILL = "TRIPLE_KILL"
    ULTRA_KILL = "ULTRA_KILL"
    RAMPAGE = "RAMPAGE"
    GODLIKE = "GODLIKE"
    BEYOND_GODLIKE = "BEYOND_GODLIKE"
    COURIER_KILL = "COURIER_KILL"
    MEGA_CREEPS = "MEGA_CREEPS"
    DIVINE_RAPIER = "DIVINE_RAPIER"
    UNKNOWN = "UNKNOWN"

    @property
    def label(self) -> str:
        return FEAT_LABELS.get(self, self.value.replace("_", " ").title())


FEAT_LABELS = {
    FeatType.RAMPAGE: "Rampage",
    FeatType.ULTRA_KILL: "Ultra Kill",
    FeatType.TRIPLE_KILL: "Triple Kill",
    FeatType.GODLIKE: "Godlike Streak",
    FeatType.BEYOND_GODLIKE: "Beyond Godlike",
    FeatType.COURIER_KILL: "Courier Sniper",
    FeatType.MEGA_CREEPS: "Mega Creeps",
    FeatType.DIVINE_RAPIER: "Rapier Carrier",
    FeatType.FIRST_BLOOD: "First Blood",
    FeatType.UNKNOWN: "Unknown Feat",
}

MULTI_KILL_TYPES = frozenset({FeatType.TRIPLE_KILL, FeatType.ULTRA_KILL, FeatType.RAMPAGE})


@dataclass(frozen=True)
class TrackedAccount:
    """A watched player. One display name may own several account ids."""

    display_name: str
    account_ids: tuple[str, ...]

    @property
    def primary_id(self) -> str:
        return self.account_ids[0]


def compute_kda(kills: int, deaths: int, assists: int) -> float:
    if deaths == 0:
        return round(float(kills + assists), 2)
    return round((kills + assists) / deaths, 2)


@dataclass(frozen=True)
class PlayerMatchStats:
    hero_id: Optional[int] = None
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    is_on_winning_side: bool = False
    gold_per_minute: int = 0
    experience_per_minute: int = 0
    last_hits: int = 0
    denies: int = 0

    @property
    def kda(self) -> float:
        return compute_kda(self.kills, self.deaths, self.assists)

    @property
    def kda_line(self) -> str:
        return f"{self.kills}/{self.deaths}/{self.assists} ({self.kda:.2f})"


@dataclass(frozen=True)
class MatchRecord:
    match_id: int
    start_time: int
    duration_seconds: int
    did_winning_side_win: bool
    player: PlayerMatchStats
    game_mode: Optional[str] = None
    lobby_type: Optional[str] = None

    @property
    def won(self) -> bool:
        return self.player.is_on_winning_side


@dataclass(frozen=True)
class FeatEvent:
    type: FeatType
    hero_id: Optional[int]
    match_id: Optional[int]
    raw_value: Any = None
    value: Optional[int] = None


@dataclass(frozen=True)
class PlayerStats:
    """Tracked scalar fields compared between poll cycles."""

    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    skill_rating: Optional[int] = None
    rank_tier: Optional[int] = None

    TRACKED_FIELDS = ("wins", "losses", "win_rate", "skill_rating", "rank_tier")

    @property
    def total_matches(self) -> int:
        return self.wins + self.losses

    def to_dict(self) -> dict:
        return {key: getattr(self, key) for key in self.TRACKED_FIELDS}


@dataclass(frozen=True)
class PlayerProfile:
    account_id: Optional[str]
    name: str = "Unknown"
    avatar: Optional[str] = None
    rank_tier: Optional[int] = None
    leaderboard_rank: Optional[int] = None
    match_count: int = 0
    win_count: int = 0
    behavior_score: Optional[int] = None


@dataclass(frozen=True)
class RankSnapshot:
    account_id: str
    name: Optional[str] = None
    rank_tier: Optional[int] = None
    leaderboard_rank: Optional[int] = None


@dataclass(frozen=True)
class LiveMatch:
    match_id: int
    created_at: Optional[int] = None
    game_time: Optional[int] = None
    average_rank: Optional[int] = None
    hero_by_account: dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def account_ids(self) -> tuple[str, ...]:
        return tuple(self.hero_by_account)


@dataclass(frozen=True)
class MultiKillCounts:
    triple_kills: int = 0
    ultra_kills: int = 0
    rampages: int = 0

    @property
    def total(self) -> int:
        return self.triple_kills + self.ultra_kills + self.rampages

    def by_type(self) -> dict[FeatType, int]:
        return {
            FeatType.RAMPAGE: self.rampages,
            FeatType.ULTRA_KILL: self.ultra_kills,
            FeatType.TRIPLE_KILL: self.triple_kills,
        }


@dataclass(frozen=True)
class DaySummary:
    total_matches: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    best_match: Optional[MatchRecord] = None
    worst_match: Optional[MatchRecord] = None
    most_played_hero: Optional[int] = None
    average_kda: float = 0.0
    total_kills: int = 0
    total_deaths: int = 0
    total_assists: int = 0
    multi_kills: MultiKillCounts = MultiKillCounts()
