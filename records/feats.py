"""Feat-type normalization.

STRATZ reports a feat's type either as an enum name (with inconsistent casing
and spacing depending on the query) or as the numeric FeatType id. Everything
downstream works with :class:`FeatType`, so this conversion has to be total:
it never raises and unknown inputs land on ``FeatType.UNKNOWN``. The raw
value is kept on ``FeatEvent.raw_value`` for diagnostics.
"""

from __future__ import annotations

from records.models import FeatType

NUMERIC_FEAT_TYPES = {
    0: FeatType.FIRST_BLOOD,
    1: FeatType.RAMPAGE,
    2: FeatType.ULTRA_KILL,
    3: FeatType.TRIPLE_KILL,
    4: FeatType.GODLIKE,
    5: FeatType.COURIER_KILL,
    6: FeatType.MEGA_CREEPS,
    7: FeatType.BEYOND_GODLIKE,
    8: FeatType.DIVINE_RAPIER,
}

FEAT_TYPE_ALIASES = {
    "TRIPLEKILL": FeatType.TRIPLE_KILL,
    "TRIPLE": FeatType.TRIPLE_KILL,
    "ULTRAKILL": FeatType.ULTRA_KILL,
    "ULTRA": FeatType.ULTRA_KILL,
    "FIRSTBLOOD": FeatType.FIRST_BLOOD,
    "BEYONDGODLIKE": FeatType.BEYOND_GODLIKE,
    "COURIERKILL": FeatType.COURIER_KILL,
    "MEGACREEPS": FeatType.MEGA_CREEPS,
    "DIVINERAPIER": FeatType.DIVINE_RAPIER,
}

_KNOWN_NAMES = {member.value: member for member in FeatType if member is not FeatType.UNKNOWN}


def _normalize_name(text: str) -> str:
    collapsed = "_".join(text.replace("-", " ").replace("_", " ").split())
    return collapsed.upper()


def normalize_feat_type(value) -> FeatType:
    """Map a raw feat type (name, numeric id, or garbage) onto FeatType."""
    # bool is an int subclass; True must not become RAMPAGE.
    if value is None or isinstance(value, bool):
        return FeatType.UNKNOWN

    if isinstance(value, int):
        return NUMERIC_FEAT_TYPES.get(value, FeatType.UNKNOWN)

    if isinstance(value, float):
        if value.is_integer():
            return NUMERIC_FEAT_TYPES.get(int(value), FeatType.UNKNOWN)
        return FeatType.UNKNOWN

    if isinstance(value, str):
        name = _normalize_name(value)
        if not name:
            return FeatType.UNKNOWN
        if name in _KNOWN_NAMES:
            return _KNOWN_NAMES[name]
        squashed = name.replace("_", "")
        if squashed in FEAT_TYPE_ALIASES:
            return FEAT_TYPE_ALIASES[squashed]
        if value.strip().isdecimal():
            return NUMERIC_FEAT_TYPES.get(int(value.strip()), FeatType.UNKNOWN)
        return FeatType.UNKNOWN

    return FeatType.UNKNOWN
