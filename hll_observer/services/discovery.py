import asyncio
import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import aiohttp

from hll_observer.config import Config, ConfigError
from hll_observer.models import ServerRef


logger = logging.getLogger(__name__)

STEAM_SERVER_LIST_URL = "https://api.steampowered.com/IGameServersService/GetServerList/v1/"


class DiscoveryError(RuntimeError):
    """Raised when a discovery source cannot produce a server list."""


class DiscoveryProvider(Protocol):
    async def discover(self) -> List[ServerRef]:
        """Return the current set of candidate servers."""


def parse_server_records(records: Any) -> List[ServerRef]:
    if not isinstance(records, list):
        raise DiscoveryError("server list must be a JSON array")
    servers: List[ServerRef] = []
    for entry in records:
        if not isinstance(entry, dict):
            raise DiscoveryError(f"invalid server entry: {entry!r}")
        address = str(entry.get("address") or "").strip()
        try:
            port = int(entry.get("port"))
        except (TypeError, ValueError) as exc:
            raise DiscoveryError(f"invalid port in server entry: {entry!r}") from exc
        if not address:
            raise DiscoveryError(f"missing address in server entry: {entry!r}")
        servers.append(ServerRef(address, port))
    return servers


def split_addr(addr: str) -> Optional[ServerRef]:
    host, sep, port = addr.rpartition(":")
    if not sep or not host:
        return None
    try:
        return ServerRef(host, int(port))
    except ValueError:
        return None


def name_matches(name: str, include: Iterable[str], exclude: Iterable[str]) -> bool:
    upper = (name or "").upper()
    if not any(k.upper() in upper for k in include):
        return False
    return not any(k.upper() in upper for k in exclude)


class StaticFileDiscovery:
    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    async def discover(self) -> List[ServerRef]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise DiscoveryError(f"Error reading or parsing {self.path}: {exc}") from exc
        servers = parse_server_records(records)
        logger.info("Loaded %d servers from %s", len(servers), self.path)
        return servers


class SteamDirectoryDiscovery:
    def __init__(
        self,
        api_key: str,
        app_id: int,
        include_keywords: Sequence[str],
        exclude_keywords: Sequence[str],
        *,
        url: str = STEAM_SERVER_LIST_URL,
    ):
        self.api_key = api_key
        self.app_id = app_id
        self.include_keywords = list(include_keywords)
        self.exclude_keywords = list(exclude_keywords)
        self.url = url

    async def _request(self) -> Dict[str, Any]:
        params = {"key": self.api_key, "filter": f"\\appid\\{self.app_id}"}
        timeout = aiohttp.ClientTimeout(total=15)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(self.url, params=params) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

    def filter_servers(self, rows: Iterable[Dict[str, Any]]) -> List[ServerRef]:
        servers: List[ServerRef] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            if not name_matches(str(row.get("name") or ""), self.include_keywords, self.exclude_keywords):
                continue
            ref = split_addr(str(row.get("addr") or ""))
            if ref is None:
                logger.warning("Skipping server with unparseable addr %r", row.get("addr"))
                continue
            servers.append(ref)
        return servers

    async def discover(self) -> List[ServerRef]:
        try:
            data = await self._request()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("Error fetching server list from Steam: %s", exc)
            return []

        rows = []
        if isinstance(data, dict):
            rows = (data.get("response") or {}).get("servers") or []
        servers = self.filter_servers(rows)
        logger.info("Fetched %d servers from Steam", len(servers))
        return servers


class AutoDiscovery:
    """Use the local server list when present and readable, otherwise ask Steam."""

    def __init__(self, static: StaticFileDiscovery, steam: SteamDirectoryDiscovery):
        self.static = static
        self.steam = steam

    async def discover(self) -> List[ServerRef]:
        if self.static.exists():
            try:
                return await self.static.discover()
            except DiscoveryError as exc:
                logger.error("%s", exc)
                logger.info("Falling back to fetching server list from Steam")
        else:
            logger.info("%s not found, fetching server list from Steam", self.static.path)
        return await self.steam.discover()


def create(config: Config) -> DiscoveryProvider:
    section = config.section("discovery")
    source = section.get("source", "auto")

    static = StaticFileDiscovery(section.get("file") or "servers.json")
    if source == "file":
        return static

    api_key = (os.getenv("STEAM_API_KEY") or section.get("steam_api_key") or "").strip()
    if not api_key and source == "steam":
        raise ConfigError("STEAM_API_KEY (or discovery.steam_api_key) is not configured")
    steam = SteamDirectoryDiscovery(
        api_key,
        int(section.get("app_id", 686810)),
        section.get("include_keywords") or [],
        section.get("exclude_keywords") or [],
    )
    if source == "steam":
        return steam
    return AutoDiscovery(static, steam)
