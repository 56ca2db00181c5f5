"""Notification events and the async queue that hands them to a dispatcher."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Optional

from records.models import DaySummary, FeatType, MatchRecord

logger = logging.getLogger("dotakeeper.scouts")


## ---------------------------- Events ---------------------------- ##
@dataclass(frozen=True)
class NewMatch:
    display_name: str
    account_id: str
    match: MatchRecord

    @property
    def key(self):
        return ("new_match", self.account_id, self.match.match_id)


@dataclass(frozen=True)
class MultiKill:
    """A Rampage, Ultra Kill or Triple Kill in one match."""

    display_name: str
    account_id: str
    feat_type: FeatType
    match_id: int
    hero_id: Optional[int] = None
    count: int = 1
    kills: Optional[int] = None
    deaths: Optional[int] = None
    assists: Optional[int] = None
    won: Optional[bool] = None

    @property
    def key(self):
        return ("multi_kill", self.account_id, self.match_id, self.feat_type.value)


@dataclass(frozen=True)
class LiveMatchEntry:
    display_name: str
    account_id: str
    match_id: int
    hero_id: Optional[int] = None
    game_time: Optional[int] = None
    average_rank: Optional[int] = None

    @property
    def key(self):
        return ("live", self.account_id, self.match_id)


@dataclass(frozen=True)
class StatChange:
    display_name: str
    account_id: str
    changes: tuple = ()

    @property
    def key(self):
        return ("stats", self.account_id, tuple((c.field, c.old, c.new) for c in self.changes))


@dataclass(frozen=True)
class PlayerDaySummary:
    display_name: str
    account_id: Optional[str]
    summary: DaySummary


@dataclass(frozen=True)
class DailySummary:
    label: str
    players: tuple = ()

    @property
    def key(self):
        return ("daily_summary", self.label)


## ---------------------------- Queue ---------------------------- ##
class NotificationQueue:
    """Queue events and deliver them one at a time through ``dispatcher.send``.

    Events with the same key are only queued once while pending or after they
    were sent; a failed delivery releases the key so a later cycle can retry.
    """

    def __init__(self, dispatcher):
        self.dispatcher = dispatcher
        self.queue = asyncio.Queue()
        self.status_by_key = {}
        self._worker_task = None

    def start(self):
        """Start the queue worker if it is not already running."""
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._worker())
        return self._worker_task

    async def stop(self) -> None:
        """Stop the queue worker."""
        if self._worker_task is None:
            return
        self._worker_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker_task
        self._worker_task = None

    async def drain(self) -> None:
        """Wait until every queued event has been handed to the dispatcher."""
        if self._worker_task is None and not self.queue.empty():
            self.start()
        await self.queue.join()

    def enqueue(self, event) -> bool:
        key = event.key
        if self.status_by_key.get(key) in ("queued", "sent"):
            logger.debug("Skipping duplicate notification %s", key)
            return False
        self.status_by_key[key] = "queued"
        self.queue.put_nowait(event)
        return True

    async def _worker(self) -> None:
        while True:
            event = await self.queue.get()
            key = event.key
            try:
                await self.dispatcher.send(event)
                self.status_by_key[key] = "sent"
            except Exception as exc:
                self.status_by_key.pop(key, None)
                logger.error("Failed to dispatch %s notification %s: %s", type(event).__name__, key, exc)
            finally:
                self.queue.task_done()
