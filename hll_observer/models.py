from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class ServerRef:
    address: str
    port: int

    @property
    def key(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass
class ServerInfo:
    """Status reply for a single server. All fields are empty after a failed query."""

    name: Optional[str] = None
    current_players: Optional[int] = None
    max_players: Optional[int] = None


@dataclass
class PlayerSession:
    name: Optional[str] = None
    duration: Optional[float] = None


@dataclass
class CacheEntry:
    info: ServerInfo
    players: List[PlayerSession]


@dataclass
class RenderedItem:
    display_name: str
    current_players: int
    max_players: int
    formatted_player_block: str


@dataclass
class Snapshot:
    items: List[RenderedItem] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)


@dataclass
class ReconcileResult:
    slots: List[str] = field(default_factory=list)
    created: int = 0
    edited: int = 0
    deleted: int = 0
    failed: int = 0
