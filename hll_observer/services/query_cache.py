from typing import Dict, List, Optional

from hll_observer.models import CacheEntry, PlayerSession, ServerInfo


class QueryResultCache:
    """Last known good (info, players) pair per server key.

    Entries are only ever overwritten, never evicted. The key space is bounded
    by the discovery source, so the cache stays small.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: str, info: ServerInfo, players: List[PlayerSession]) -> None:
        self._entries[key] = CacheEntry(info=info, players=list(players))

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
