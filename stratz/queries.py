"""GraphQL documents and typed helpers over :class:`stratz.client.StratzClient`.

Helpers return raw payload fragments (or None / empty lists when STRATZ has
nothing); `records.mapper` turns them into canonical records.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from records.utils import to_native_account_id

logger = logging.getLogger("dotakeeper.stratz")

_MATCH_FIELDS = """
            id
            didRadiantWin
            durationSeconds
            startDateTime
            gameMode
            lobbyType
            players(steamAccountId: $steamAccountId) {
              steamAccountId
              heroId
              isRadiant
              kills
              deaths
              assists
              goldPerMinute
              experiencePerMinute
              numLastHits
              numDenies
              imp
              award
            }
"""

QUERIES = {
    "player": """
      query GetPlayer($steamAccountId: Long!) {
        player(steamAccountId: $steamAccountId) {
          steamAccountId
          steamAccount {
            id
            name
            avatar
            seasonRank
            seasonLeaderboardRank
          }
          matchCount
          winCount
          behaviorScore
        }
      }
    """,
    "recent_matches": """
      query GetRecentMatches($steamAccountId: Long!, $take: Int!) {
        player(steamAccountId: $steamAccountId) {
          matches(request: { take: $take }) {%s}
        }
      }
    """ % _MATCH_FIELDS,
    "player_totals": """
      query GetPlayerTotals($steamAccountId: Long!) {
        player(steamAccountId: $steamAccountId) {
          matchCount
          winCount
          steamAccount {
            seasonRank
            seasonLeaderboardRank
          }
        }
      }
    """,
    "player_rank": """
      query GetPlayerRank($steamAccountId: Long!) {
        player(steamAccountId: $steamAccountId) {
          steamAccountId
          steamAccount {
            name
            seasonRank
            seasonLeaderboardRank
          }
        }
      }
    """,
    "match_kill_events": """
      query GetMatchKillEvents($matchId: Long!) {
        match(id: $matchId) {
          id
          didRadiantWin
          durationSeconds
          startDateTime
          players {
            steamAccountId
            heroId
            isRadiant
            kills
            deaths
            assists
            stats {
              killEvents {
                time
                target
              }
            }
          }
        }
      }
    """,
    "live_matches": """
      query GetLiveMatches {
        live {
          matches {
            matchId
            createdDateTime
            gameTime
            averageRank
            players {
              steamAccountId
              heroId
              isRadiant
              name
            }
          }
        }
      }
    """,
    "feats": """
      query GetPlayerAchievements($steamAccountId: Long!, $take: Int!) {
        player(steamAccountId: $steamAccountId) {
          feats(take: $take) {
            type
            value
            heroId
            matchId
          }
        }
      }
    """,
    "heroes": """
      query GetHeroes {
        constants {
          heroes {
            id
            name
            displayName
            shortName
          }
        }
      }
    """,
}


def _account_variable(account_id) -> int:
    return int(to_native_account_id(account_id))


def _dig(data: Any, *keys) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class StratzQueries:
    """Typed STRATZ queries used by the watcher."""

    def __init__(self, client):
        self.client = client

    async def get_player(self, account_id) -> Optional[Dict[str, Any]]:
        data = await self.client.query(
            QUERIES["player"], {"steamAccountId": _account_variable(account_id)}, label=f"player({account_id})"
        )
        return _dig(data, "player")

    async def get_recent_matches(self, account_id, limit: int = 10) -> List[Dict[str, Any]]:
        data = await self.client.query(
            QUERIES["recent_matches"],
            {"steamAccountId": _account_variable(account_id), "take": limit},
            label=f"recent_matches({account_id})",
        )
        matches = _dig(data, "player", "matches") or []
        logger.debug("recent_matches(%s, limit=%s): %s match(es)", account_id, limit, len(matches))
        return matches

    async def get_matches_since(self, account_id, since_timestamp: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Matches started at or after ``since_timestamp``.

        STRATZ's own date filters have been unreliable, so a large batch is
        fetched and filtered here.
        """
        take = max(limit, 200)
        matches = await self.get_recent_matches(account_id, take)
        filtered = [m for m in matches if isinstance(m, dict) and (m.get("startDateTime") or 0) >= since_timestamp]
        logger.info(
            "matches_since(%s): %s returned, %s at or after %s",
            account_id,
            len(matches),
            len(filtered),
            since_timestamp,
        )
        return filtered

    async def get_player_totals(self, account_id) -> Optional[Dict[str, Any]]:
        data = await self.client.query(
            QUERIES["player_totals"],
            {"steamAccountId": _account_variable(account_id)},
            label=f"player_totals({account_id})",
        )
        return _dig(data, "player")

    async def get_player_rank(self, account_id) -> Optional[Dict[str, Any]]:
        data = await self.client.query(
            QUERIES["player_rank"],
            {"steamAccountId": _account_variable(account_id)},
            label=f"player_rank({account_id})",
        )
        return _dig(data, "player")

    async def get_match_with_kill_events(self, match_id) -> Optional[Dict[str, Any]]:
        data = await self.client.query(
            QUERIES["match_kill_events"], {"matchId": int(match_id)}, label=f"match_kill_events({match_id})"
        )
        return _dig(data, "match")

    async def get_live_matches(self) -> List[Dict[str, Any]]:
        data = await self.client.query(QUERIES["live_matches"], label="live_matches")
        return _dig(data, "live", "matches") or []

    async def get_player_feats(self, account_id, take: int = 100) -> List[Dict[str, Any]]:
        data = await self.client.query(
            QUERIES["feats"],
            {"steamAccountId": _account_variable(account_id), "take": take},
            label=f"feats({account_id})",
        )
        return _dig(data, "player", "feats") or []

    async def get_heroes(self) -> List[Dict[str, Any]]:
        data = await self.client.query(QUERIES["heroes"], label="heroes")
        return _dig(data, "constants", "heroes") or []

    async def test_connection(self) -> bool:
        try:
            return len(await self.get_heroes()) > 0
        except Exception as exc:
            logger.error("STRATZ connection test failed: %s", exc)
            return False
