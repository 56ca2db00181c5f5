"""Multi-kill detection from kill timestamps, and the feat/match join.

Clusters are greedy and non-overlapping, largest first: at each position a
Rampage (5 kills) is tried, then an Ultra Kill (4), then a Triple Kill (3),
each within the game's 18 second multi-kill timer. Six kills inside the
window count as one Rampage plus a leftover single kill.
"""

from __future__ import annotations

import logging
from typing import Iterable

from records.models import MULTI_KILL_TYPES, FeatEvent, FeatType, MultiKillCounts

logger = logging.getLogger("dotakeeper.records")

MULTI_KILL_WINDOW_SECONDS = 18
CLUSTER_SIZES = (
    (5, FeatType.RAMPAGE),
    (4, FeatType.ULTRA_KILL),
    (3, FeatType.TRIPLE_KILL),
)


def detect_multi_kills(kill_times: Iterable[float]) -> MultiKillCounts:
    """Count Rampages, Ultra Kills and Triple Kills in one player's kill times."""
    times = sorted(t for t in kill_times if t is not None)
    found = {FeatType.RAMPAGE: 0, FeatType.ULTRA_KILL: 0, FeatType.TRIPLE_KILL: 0}

    i = 0
    while i < len(times):
        for size, feat_type in CLUSTER_SIZES:
            last = i + size - 1
            if last < len(times) and times[last] - times[i] <= MULTI_KILL_WINDOW_SECONDS:
                found[feat_type] += 1
                i += size
                break
        else:
            i += 1

    return MultiKillCounts(
        triple_kills=found[FeatType.TRIPLE_KILL],
        ultra_kills=found[FeatType.ULTRA_KILL],
        rampages=found[FeatType.RAMPAGE],
    )


def _match_id_set(match_ids) -> set[int]:
    ids = set()
    for match_id in match_ids or ():
        try:
            ids.add(int(match_id))
        except (TypeError, ValueError):
            continue
    return ids


def multi_kill_feats(feats: Iterable[FeatEvent], match_ids) -> list[FeatEvent]:
    """Return the multi-kill feats whose match id is in ``match_ids``.

    Feats and matches come from two independent STRATZ queries, so the only
    link between them is the match id.
    """
    wanted = _match_id_set(match_ids)
    if not wanted:
        return []
    selected = [
        feat
        for feat in feats or ()
        if feat.type in MULTI_KILL_TYPES and feat.match_id in wanted
    ]
    logger.debug(
        "multi_kill_feats: %s feat(s) matched %s match id(s)", len(selected), len(wanted)
    )
    return selected


def count_multi_kill_feats(feats: Iterable[FeatEvent], match_ids) -> MultiKillCounts:
    selected = multi_kill_feats(feats, match_ids)
    return MultiKillCounts(
        triple_kills=sum(1 for f in selected if f.type is FeatType.TRIPLE_KILL),
        ultra_kills=sum(1 for f in selected if f.type is FeatType.ULTRA_KILL),
        rampages=sum(1 for f in selected if f.type is FeatType.RAMPAGE),
    )
