import logging
from typing import List

import a2s

from hll_observer.config import Config
from hll_observer.models import PlayerSession, ServerInfo
from hll_observer.services.query_transport import QueryTransportError


logger = logging.getLogger(__name__)


def create(config: Config) -> "A2SQueryClient":
    return A2SQueryClient(encoding=config.section("query").get("encoding", "utf-8"))


class A2SQueryClient:
    """QueryTransport speaking the Steam A2S protocol through python-a2s."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def info(self, address: str, port: int, timeout: float) -> ServerInfo:
        try:
            reply = await a2s.ainfo((address, port), timeout=timeout, encoding=self.encoding)
        except Exception as exc:
            raise QueryTransportError(f"A2S_INFO {address}:{port} failed: {exc!r}") from exc
        return ServerInfo(
            name=reply.server_name,
            current_players=reply.player_count,
            max_players=reply.max_players,
        )

    async def players(self, address: str, port: int, timeout: float) -> List[PlayerSession]:
        try:
            reply = await a2s.aplayers((address, port), timeout=timeout, encoding=self.encoding)
        except Exception as exc:
            raise QueryTransportError(f"A2S_PLAYER {address}:{port} failed: {exc!r}") from exc
        return [PlayerSession(name=p.name, duration=p.duration) for p in reply]
