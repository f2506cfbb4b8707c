from __future__ import annotations

import asyncio
from typing import List

import pytest

from hll_observer.models import ServerInfo
from hll_observer.services.query_cache import QueryResultCache
from hll_observer.services.query_client import ResilientQueryClient
from hll_observer.services.snapshot import SnapshotBuilder
from tests.helpers.factories import make_info, make_server
from tests.helpers.stub_transport import StubTransport


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> List[float]:
    recorded: List[float] = []

    async def fake_sleep(delay, *args, **kwargs):
        recorded.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


class GatedTransport(StubTransport):
    """Holds every info query open until `expected` of them are in flight at once."""

    def __init__(self, expected: int) -> None:
        super().__init__()
        self.expected = expected
        self.in_flight = 0
        self.peak = 0
        self.gate = asyncio.Event()

    async def info(self, address: str, port: int, timeout: float) -> ServerInfo:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.in_flight >= self.expected:
            self.gate.set()
        try:
            await asyncio.wait_for(self.gate.wait(), 1)
            return await super().info(address, port, timeout)
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_servers_are_queried_concurrently_with_one_delay_each(sleeps):
    servers = [make_server(i) for i in range(3)]
    transport = GatedTransport(expected=len(servers))
    for i, server in enumerate(servers):
        transport.script_info(server.key, make_info(f"S{i}", 10 + i))
        transport.script_players(server.key, [])
    cache = QueryResultCache()
    client = ResilientQueryClient(transport, cache, timeout_ms=100, retry_delay_ms=50, max_retries=0)
    builder = SnapshotBuilder(client, cache, query_delay_ms=50)

    snapshot = await builder.build(servers)

    assert transport.peak == 3
    assert [i.display_name for i in snapshot.items] == ["S2", "S1", "S0"]
    assert sleeps == [0.05, 0.05, 0.05]


@pytest.mark.asyncio
async def test_retry_delay_only_runs_before_retries(sleeps):
    server = make_server(1)
    transport = StubTransport()
    transport.script_info(server.key, OSError("lost"), OSError("lost"), make_info("Alpha", 4))
    client = ResilientQueryClient(transport, QueryResultCache(), timeout_ms=100, retry_delay_ms=50, max_retries=2)

    result = await client.fetch_info(server)

    assert result.fresh is True
    assert transport.count("info", server.key) == 3
    assert sleeps == [0.05, 0.05]


@pytest.mark.asyncio
async def test_first_try_success_does_not_sleep(sleeps):
    server = make_server(1)
    transport = StubTransport()
    transport.script_info(server.key, make_info("Alpha", 4))
    client = ResilientQueryClient(transport, QueryResultCache(), timeout_ms=100, retry_delay_ms=50, max_retries=2)

    await client.fetch_info(server)

    assert sleeps == []
