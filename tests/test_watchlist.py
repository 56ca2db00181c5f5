import json

import pytest

from scouts.watchlist import Watchlist, parse_entries


def test_missing_file_creates_template(tmp_path):
    path = tmp_path / "data" / "watchlist.json"
    watchlist = Watchlist(path)
    assert watchlist.load() == []
    assert json.loads(path.read_text(encoding="utf-8")) == [{"name": "", "ids": []}]


def test_load_merges_file_friends_and_main_account(tmp_path):
    path = tmp_path / "watchlist.json"
    path.write_text(
        json.dumps(
            [
                {"name": "Alice", "ids": ["76561197960265829", 102]},
                {"name": "Bob", "id": 200},
                {"name": "", "ids": []},
                300,
            ]
        ),
        encoding="utf-8",
    )
    watchlist = Watchlist(path)
    accounts = watchlist.load(extra={"Alice": ["103"], "Carol": [400]}, main_account=("You", "500"))

    by_name = {a.display_name: a.account_ids for a in accounts}
    assert by_name == {
        "Alice": ("101", "102", "103"),
        "Bob": ("200",),
        "300": ("300",),
        "Carol": ("400",),
        "You": ("500",),
    }


def test_main_account_not_duplicated_when_already_tracked(tmp_path):
    path = tmp_path / "watchlist.json"
    path.write_text(json.dumps({"Me": ["76561197960265829"]}), encoding="utf-8")
    accounts = Watchlist(path).load(main_account=("You", "101"))
    assert [(a.display_name, a.account_ids) for a in accounts] == [("Me", ("101",))]


def test_invalid_shape_raises():
    with pytest.raises(ValueError):
        parse_entries("not a list")
