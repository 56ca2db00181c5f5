"""Hero id -> display name lookup.

The table is built once at start-up and handed to every consumer. Callers that
ask for it while the first load is still running share the same in-flight
task rather than issuing their own request.
"""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Optional

from records.mapper import map_heroes

logger = logging.getLogger("dotakeeper.records")


class HeroTable:
    """Immutable hero id -> name mapping."""

    def __init__(self, names: Optional[Mapping[int, str]] = None):
        self._names = MappingProxyType(dict(names or {}))

    def __len__(self):
        return len(self._names)

    def __contains__(self, hero_id):
        return hero_id in self._names

    @property
    def names(self) -> Mapping[int, str]:
        return self._names

    def name(self, hero_id) -> str:
        if hero_id is None:
            return "Unknown Hero"
        try:
            key = int(hero_id)
        except (TypeError, ValueError):
            return f"Hero {hero_id}"
        return self._names.get(key, f"Hero {key}")

    @classmethod
    def from_payload(cls, raw_heroes) -> "HeroTable":
        return cls(map_heroes(raw_heroes))


EMPTY_HERO_TABLE = HeroTable()


class HeroTableLoader:
    """Load the hero table once, sharing one in-flight load between callers."""

    def __init__(self):
        self._table: Optional[HeroTable] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def table(self) -> Optional[HeroTable]:
        return self._table

    async def get(self, fetch_heroes: Callable[[], Awaitable[object]]) -> HeroTable:
        if self._table is not None:
            return self._table
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._load(fetch_heroes))
        return await asyncio.shield(self._task)

    async def _load(self, fetch_heroes) -> HeroTable:
        logger.info("Fetching hero list from STRATZ...")
        try:
            raw_heroes = await fetch_heroes()
        except Exception as exc:
            # Not cached, so the next get() tries again.
            logger.error("Failed to load heroes: %s", exc)
            logger.warning("Continuing with an empty hero table; hero names will show as ids")
            return EMPTY_HERO_TABLE

        table = HeroTable.from_payload(raw_heroes)
        if not len(table):
            logger.warning("Hero list was empty; hero names will show as ids")
            return table
        self._table = table
        logger.info("Loaded %s heroes", len(table))
        return table
