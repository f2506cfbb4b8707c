import asyncio
import logging
from typing import Any, Awaitable, Callable, NamedTuple

from hll_observer.config import Config
from hll_observer.models import ServerInfo, ServerRef
from hll_observer.services.query_cache import QueryResultCache
from hll_observer.services.query_transport import QueryTransport


logger = logging.getLogger(__name__)

class FetchResult(NamedTuple):
    value: Any
    # False when the value came from the cache or is an empty default.
    fresh: bool


def create(config: Config, transport: QueryTransport, cache: QueryResultCache) -> "ResilientQueryClient":
    query = config.section("query")
    return ResilientQueryClient(
        transport,
        cache,
        timeout_ms=int(query.get("timeout_ms", 100)),
        retry_delay_ms=int(query.get("delay_ms", 50)),
        max_retries=int(query.get("max_retries", 1)),
    )


class ResilientQueryClient:
    def __init__(
        self,
        transport: QueryTransport,
        cache: QueryResultCache,
        *,
        timeout_ms: int = 100,
        retry_delay_ms: int = 50,
        max_retries: int = 1,
    ):
        self.transport = transport
        self.cache = cache
        self.timeout = max(0, timeout_ms) / 1000
        self.retry_delay = max(0, retry_delay_ms) / 1000
        self.max_retries = max(0, int(max_retries))

    async def _attempt(self, label: str, server: ServerRef, call: Callable[[], Awaitable[Any]]) -> tuple[bool, Any]:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            if attempt > 0:
                logger.info("Retrying %s query for %s (%d/%d)", label, server.key, attempt, self.max_retries)
                await asyncio.sleep(self.retry_delay)
            try:
                return True, await call()
            except Exception as exc:
                logger.error("Error querying %s for %s: %s", label, server.key, exc)
        return False, None

    async def fetch_info(self, server: ServerRef) -> FetchResult:
        ok, info = await self._attempt(
            "info", server, lambda: self.transport.info(server.address, server.port, self.timeout)
        )
        if ok:
            logger.debug("Server info for %s: %s", server.key, info)
            return FetchResult(info or ServerInfo(), True)

        cached = self.cache.get(server.key)
        if cached is not None:
            logger.info("Using cached server info for %s", server.key)
            return FetchResult(cached.info, False)
        return FetchResult(ServerInfo(), False)

    async def fetch_players(self, server: ServerRef) -> FetchResult:
        ok, players = await self._attempt(
            "players", server, lambda: self.transport.players(server.address, server.port, self.timeout)
        )
        if ok:
            logger.debug("Player list for %s: %d entries", server.key, len(players or []))
            return FetchResult(list(players or []), True)

        cached = self.cache.get(server.key)
        if cached is not None:
            logger.info("Using cached player list for %s", server.key)
            return FetchResult(list(cached.players), False)
        return FetchResult([], False)
