from __future__ import annotations

from typing import List

import pytest

from hll_observer.config import Config
from hll_observer.models import PlayerSession, ServerInfo
from hll_observer.services.query_cache import QueryResultCache
from hll_observer.services.query_client import FetchResult, ResilientQueryClient
from hll_observer.services import snapshot as snapshot_service
from hll_observer.services.snapshot import SnapshotBuilder
from tests.helpers.factories import make_info, make_players, make_server
from tests.helpers.stub_transport import StubTransport


def make_builder(transport, cache=None, **kwargs):
    cache = cache if cache is not None else QueryResultCache()
    client = ResilientQueryClient(transport, cache, timeout_ms=100, retry_delay_ms=0, max_retries=1)
    return SnapshotBuilder(client, cache, query_delay_ms=0, **kwargs), cache


def script(transport, server, info, players=None):
    transport.script_info(server.key, info)
    transport.script_players(server.key, players if players is not None else [])


@pytest.mark.asyncio
async def test_population_filter_and_stable_descending_sort():
    transport = StubTransport()
    servers = [make_server(i) for i in range(5)]
    for server, (name, count) in zip(
        servers, [("Empty", 0), ("Small", 5), ("Glitched", 41), ("FullA", 40), ("FullB", 40)]
    ):
        script(transport, server, make_info(name, count))
    builder, _ = make_builder(transport)

    snapshot = await builder.build(servers)

    assert [i.current_players for i in snapshot.items] == [40, 40, 5]
    assert [i.display_name for i in snapshot.items] == ["FullA", "FullB", "Small"]


@pytest.mark.asyncio
async def test_duplicate_display_names_keep_first_in_sorted_order():
    transport = StubTransport()
    a, b, c = make_server(1), make_server(2), make_server(3)
    script(transport, a, make_info("Rangers Clan", 10))
    script(transport, b, make_info("Rangers Clan!Twitch", 30))
    script(transport, c, make_info("Other", 20))
    builder, _ = make_builder(transport)

    snapshot = await builder.build([a, b, c])

    assert [(i.display_name, i.current_players) for i in snapshot.items] == [
        ("Rangers Clan", 30),
        ("Other", 20),
    ]
    assert snapshot.duplicates == ["Rangers Clan"]


@pytest.mark.asyncio
async def test_player_list_over_cap_uses_placeholder_regardless_of_population():
    transport = StubTransport()
    server = make_server(1)
    script(transport, server, make_info("Busy", 3), make_players(41))
    builder, _ = make_builder(transport)

    snapshot = await builder.build([server])

    assert snapshot.items[0].formatted_player_block == "Mehr als 40 Spieler - Liste deaktiviert."


@pytest.mark.asyncio
async def test_missing_fields_get_defaults():
    transport = StubTransport()
    server = make_server(1)
    script(transport, server, ServerInfo(name=None, current_players=4, max_players=None))
    builder, _ = make_builder(transport)

    snapshot = await builder.build([server])

    item = snapshot.items[0]
    assert item.display_name == "Unknown Server"
    assert item.max_players == 100


@pytest.mark.asyncio
async def test_unreachable_server_without_cache_is_filtered_out():
    transport = StubTransport()
    server = make_server(1)
    transport.script_info(server.key, OSError("down"))
    transport.script_players(server.key, OSError("down"))
    builder, cache = make_builder(transport)

    snapshot = await builder.build([server])

    assert snapshot.items == []
    assert cache.get(server.key) is None


@pytest.mark.asyncio
async def test_successful_pair_is_cached():
    transport = StubTransport()
    server = make_server(1)
    players = make_players(3)
    script(transport, server, make_info("Alpha", 3), players)
    builder, cache = make_builder(transport)

    await builder.build([server])

    entry = cache.get(server.key)
    assert entry.info == make_info("Alpha", 3)
    assert entry.players == players


@pytest.mark.asyncio
async def test_half_failed_query_keeps_previous_cache_pair():
    """A live info reply paired with cached players is displayed but never cached."""
    transport = StubTransport()
    server = make_server(1)
    cache = QueryResultCache()
    old_info = make_info("Alpha", 5)
    old_players = [PlayerSession(name="Old", duration=60)]
    cache.put(server.key, old_info, old_players)
    transport.script_info(server.key, make_info("Alpha", 9))
    transport.script_players(server.key, OSError("down"))
    builder, _ = make_builder(transport, cache)

    snapshot = await builder.build([server])

    assert snapshot.items[0].current_players == 9
    assert snapshot.items[0].formatted_player_block == "Old (0:01)"
    entry = cache.get(server.key)
    assert entry.info == old_info
    assert entry.players == old_players


class ExplodingClient:
    def __init__(self):
        self.info_calls = 0

    async def fetch_info(self, server):
        self.info_calls += 1
        return FetchResult(make_info("New", 12), True)

    async def fetch_players(self, server) -> List[PlayerSession]:
        raise RuntimeError("unexpected")


@pytest.mark.asyncio
async def test_failure_inside_server_task_leaves_cache_untouched():
    server = make_server(1)
    cache = QueryResultCache()
    old_info = make_info("Cached", 6)
    cache.put(server.key, old_info, [])
    builder = SnapshotBuilder(ExplodingClient(), cache, query_delay_ms=0)

    snapshot = await builder.build([server])

    assert cache.get(server.key).info == old_info
    assert [i.display_name for i in snapshot.items] == ["Cached"]


@pytest.mark.asyncio
async def test_custom_population_bounds():
    transport = StubTransport()
    servers = [make_server(i) for i in range(3)]
    for server, count in zip(servers, [2, 50, 60]):
        script(transport, server, make_info(f"S{count}", count))
    builder, _ = make_builder(transport, min_players=2, max_players=60)

    snapshot = await builder.build(servers)

    assert [i.current_players for i in snapshot.items] == [60, 50]


@pytest.mark.asyncio
async def test_create_reads_placeholder_label_from_config(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("OBSERVER_CHANNEL_IDS", raising=False)
    config = Config.from_dict(
        {"query": {"delay_ms": 0}, "display": {"labels": {"list_disabled": "Over {cap} players"}}}
    )
    transport = StubTransport()
    server = make_server(1)
    script(transport, server, make_info("Busy", 3), make_players(41))
    cache = QueryResultCache()
    client = ResilientQueryClient(transport, cache, timeout_ms=100, retry_delay_ms=0, max_retries=0)
    builder = snapshot_service.create(config, client, cache)

    snapshot = await builder.build([server])

    assert snapshot.items[0].formatted_player_block == "Over 40 players"
