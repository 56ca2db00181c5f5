import asyncio

import pytest

from records.heroes import HeroTable, HeroTableLoader


def test_hero_table_lookup_and_fallbacks():
    table = HeroTable({1: "Anti-Mage"})
    assert table.name(1) == "Anti-Mage"
    assert table.name("1") == "Anti-Mage"
    assert table.name(999) == "Hero 999"
    assert table.name(None) == "Unknown Hero"
    assert len(table) == 1
    with pytest.raises(TypeError):
        table.names[2] = "Axe"


def test_concurrent_callers_share_one_load():
    calls = []

    async def fetch_heroes():
        calls.append(1)
        await asyncio.sleep(0.01)
        return [{"id": 1, "displayName": "Anti-Mage"}, {"id": 2, "displayName": "Axe"}]

    async def scenario():
        loader = HeroTableLoader()
        tables = await asyncio.gather(*(loader.get(fetch_heroes) for _ in range(5)))
        again = await loader.get(fetch_heroes)
        return tables, again

    tables, again = asyncio.run(scenario())
    assert len(calls) == 1
    assert all(table is tables[0] for table in tables)
    assert again is tables[0]
    assert again.name(2) == "Axe"


def test_failed_load_is_not_cached():
    attempts = []

    async def flaky_fetch():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("STRATZ down")
        return [{"id": 7, "displayName": "Earthshaker"}]

    async def scenario():
        loader = HeroTableLoader()
        first = await loader.get(flaky_fetch)
        second = await loader.get(flaky_fetch)
        return first, second

    first, second = asyncio.run(scenario())
    assert len(first) == 0
    assert first.name(7) == "Hero 7"
    assert second.name(7) == "Earthshaker"
    assert len(attempts) == 2
