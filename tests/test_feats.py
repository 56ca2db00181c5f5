import pytest

from records.feats import normalize_feat_type
from records.mapper import map_feat
from records.models import FeatType


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("RAMPAGE", FeatType.RAMPAGE),
        ("rampage", FeatType.RAMPAGE),
        ("  Triple Kill ", FeatType.TRIPLE_KILL),
        ("ultra-kill", FeatType.ULTRA_KILL),
        ("TripleKill", FeatType.TRIPLE_KILL),
        ("beyond_godlike", FeatType.BEYOND_GODLIKE),
        (1, FeatType.RAMPAGE),
        (3, FeatType.TRIPLE_KILL),
        (0, FeatType.FIRST_BLOOD),
        (8, FeatType.DIVINE_RAPIER),
        ("2", FeatType.ULTRA_KILL),
        (2.0, FeatType.ULTRA_KILL),
    ],
)
def test_known_values_normalize(raw, expected):
    assert normalize_feat_type(raw) is expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "not a feat", 9, -1, "-1", 2.5, True, False, [], {}, object(), b"RAMPAGE"],
)
def test_unrecognized_values_map_to_unknown(raw):
    assert normalize_feat_type(raw) is FeatType.UNKNOWN


def test_map_feat_keeps_raw_value_for_unknown_types():
    feat = map_feat({"type": "MYSTERY_FEAT", "heroId": 14, "matchId": 99, "value": 3})
    assert feat.type is FeatType.UNKNOWN
    assert feat.raw_value == "MYSTERY_FEAT"
    assert feat.hero_id == 14
    assert feat.match_id == 99


def test_labels_are_human_readable():
    assert FeatType.RAMPAGE.label == "Rampage"
    assert FeatType.TRIPLE_KILL.label == "Triple Kill"
    assert FeatType.UNKNOWN.label == "Unknown Feat"
