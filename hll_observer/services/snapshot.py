import asyncio
import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hll_observer.config import Config
from hll_observer.models import PlayerSession, RenderedItem, ServerInfo, ServerRef, Snapshot
from hll_observer.services.query_cache import QueryResultCache
from hll_observer.services.query_client import ResilientQueryClient


logger = logging.getLogger(__name__)

UNKNOWN_SERVER_NAME = "Unknown Server"
DEFAULT_MAX_PLAYERS = 100
ZERO_WIDTH_SPACE = "\u200b"
LIST_DISABLED_TEMPLATE = "Mehr als {cap} Spieler - Liste deaktiviert."

_WHITESPACE = re.compile(r"\s+")


def format_duration(seconds: Any) -> str:
    """Render a session length as ``H:MM``; garbage and negatives become ``0:00``."""
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        return "0:00"
    if math.isnan(value) or math.isinf(value) or value < 0:
        return "0:00"
    total_minutes = int(value // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}:{minutes:02d}"


def normalize_server_name(name: Optional[str]) -> str:
    if not name:
        return UNKNOWN_SERVER_NAME
    # A zero-width space after each period stops Discord from turning names into links.
    collapsed = _WHITESPACE.sub(" ", name).strip()
    if not collapsed:
        return UNKNOWN_SERVER_NAME
    return collapsed.replace(".", "." + ZERO_WIDTH_SPACE)


def rewrite_display_name(name: str, rewrites: Dict[str, str]) -> str:
    for old, new in rewrites.items():
        name = name.replace(old, new)
    return name


def player_list_disabled_text(cap: int, template: str = LIST_DISABLED_TEMPLATE) -> str:
    return template.format(cap=cap)


def render_player_block(
    players: Sequence[PlayerSession],
    cap: int = 40,
    disabled_template: str = LIST_DISABLED_TEMPLATE,
) -> str:
    # The cap applies to the raw list, not the advertised player count.
    if len(players) > cap:
        return player_list_disabled_text(cap, disabled_template)

    lines = []
    for player in players:
        name = player.name
        if not name or not name.strip():
            continue
        lines.append(f"{name} ({format_duration(player.duration or 0)})")
    return "\n".join(lines)


class ServerRow:
    __slots__ = ("server", "name", "current_players", "max_players", "players")

    def __init__(self, server: ServerRef, info: ServerInfo, players: List[PlayerSession]):
        self.server = server
        self.name = normalize_server_name(info.name)
        self.current_players = info.current_players or 0
        self.max_players = info.max_players or DEFAULT_MAX_PLAYERS
        self.players = players


def create(config: Config, client: ResilientQueryClient, cache: QueryResultCache) -> "SnapshotBuilder":
    display = config.section("display")
    return SnapshotBuilder(
        client,
        cache,
        query_delay_ms=int(config.section("query").get("delay_ms", 50)),
        min_players=int(display.get("min_players", 0)),
        max_players=int(display.get("max_players", 40)),
        player_list_cap=int(display.get("player_list_cap", 40)),
        name_rewrites=dict(display.get("name_rewrites") or {}),
        list_disabled_template=(display.get("labels") or {}).get("list_disabled", LIST_DISABLED_TEMPLATE),
    )


class SnapshotBuilder:
    """Runs one query pass over the server set and turns the replies into display items."""

    def __init__(
        self,
        client: ResilientQueryClient,
        cache: QueryResultCache,
        *,
        query_delay_ms: int = 50,
        min_players: int = 0,
        max_players: int = 40,
        player_list_cap: int = 40,
        name_rewrites: Optional[Dict[str, str]] = None,
        list_disabled_template: str = LIST_DISABLED_TEMPLATE,
    ):
        self.client = client
        self.cache = cache
        self.query_delay = max(0, query_delay_ms) / 1000
        self.min_players = min_players
        self.max_players = max_players
        self.player_list_cap = player_list_cap
        self.name_rewrites = name_rewrites if name_rewrites is not None else {"Clan!Twitch": "Clan"}
        self.list_disabled_template = list_disabled_template

    async def _query_server(self, server: ServerRef) -> Tuple[ServerInfo, List[PlayerSession]]:
        await asyncio.sleep(self.query_delay)
        try:
            info = await self.client.fetch_info(server)
            players = await self.client.fetch_players(server)
        except Exception as exc:
            logger.error("Error querying server %s: %s", server.key, exc)
            cached = self.cache.get(server.key)
            if cached is not None:
                logger.info("Using cached results for %s", server.key)
                return cached.info, list(cached.players)
            return ServerInfo(), []

        # Only a pair of live replies is cached, so an entry never mixes rounds.
        if info.fresh and players.fresh:
            self.cache.put(server.key, info.value, players.value)
        return info.value, players.value

    async def query_all(self, servers: Sequence[ServerRef]) -> List[ServerRow]:
        results = await asyncio.gather(*(self._query_server(s) for s in servers))
        return [ServerRow(server, info, players) for server, (info, players) in zip(servers, results)]

    def _visible(self, row: ServerRow) -> bool:
        return self.min_players < row.current_players <= self.max_players

    def assemble(self, rows: Sequence[ServerRow]) -> Snapshot:
        visible = [r for r in rows if self._visible(r)]
        ordered = sorted(visible, key=lambda r: r.current_players, reverse=True)

        snapshot = Snapshot()
        seen = set()
        for row in ordered:
            display_name = rewrite_display_name(row.name, self.name_rewrites)
            if display_name in seen:
                logger.warning("Duplicate server name detected: %s (%s)", display_name, row.server.key)
                snapshot.duplicates.append(display_name)
                continue
            seen.add(display_name)
            snapshot.items.append(
                RenderedItem(
                    display_name=display_name,
                    current_players=row.current_players,
                    max_players=row.max_players,
                    formatted_player_block=render_player_block(
                        row.players, self.player_list_cap, self.list_disabled_template
                    ),
                )
            )
        return snapshot

    async def build(self, servers: Sequence[ServerRef]) -> Snapshot:
        rows = await self.query_all(servers)
        snapshot = self.assemble(rows)
        logger.info(
            "Snapshot built: %d servers queried, %d displayed, %d duplicates",
            len(rows),
            len(snapshot.items),
            len(snapshot.duplicates),
        )
        return snapshot
