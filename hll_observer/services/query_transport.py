from typing import List, Protocol

from hll_observer.models import PlayerSession, ServerInfo


class QueryTransportError(RuntimeError):
    """Raised when a server cannot be queried or replies with garbage."""


class QueryTransport(Protocol):
    """Interface for querying a game server regardless of wire protocol."""

    async def info(self, address: str, port: int, timeout: float) -> ServerInfo:
        """Return the server's name and player counts."""

    async def players(self, address: str, port: int, timeout: float) -> List[PlayerSession]:
        """Return the sessions of everyone currently connected."""
