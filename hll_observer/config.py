import copy
import json
import os

DEFAULTS = {
    "query": {
        "timeout_ms": 100,
        "delay_ms": 50,
        "max_retries": 1,
    },
    "cycle": {
        "interval_ms": 15000,
    },
    "display": {
        "min_players": 0,
        "max_players": 40,
        "player_list_cap": 40,
        "name_rewrites": {"Clan!Twitch": "Clan"},
        "labels": {
            "players": "Spieler",
            "list_disabled": "Mehr als {cap} Spieler - Liste deaktiviert.",
            "updated": "Aktualisiert",
        },
    },
    "surfaces": [],
    "discovery": {
        "source": "auto",
        "file": "servers.json",
        "app_id": 686810,
        "include_keywords": ["GER", "GERMAN", "DEUTSCH"],
        "exclude_keywords": ["EVENT", "JAGER", "BADGERGROUNDS", "SWE"],
        "refresh_minutes": 0,
    },
    "logging": {
        "level": "INFO",
        "file": "hll-observer.log",
        "max_bytes": 10 * 1024 * 1024,
        "backup_count": 2,
    },
    "timezone": "UTC",
}

DISCOVERY_SOURCES = ("auto", "file", "steam")


class ConfigError(RuntimeError):
    """Raised when the configuration cannot be used to start the observer."""


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    def __init__(self, path: str | None = None, data: dict | None = None):
        self._data = None
        self._path = path
        if data is not None:
            self._load(data)
        else:
            self.reload()

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        return cls(data=data)

    def reload(self):
        raw = {}
        if self._path and os.path.exists(self._path):
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        self._load(raw)

    def _load(self, raw: dict):
        self._data = _merge(DEFAULTS, raw)
        env_channels = os.getenv("OBSERVER_CHANNEL_IDS")
        if env_channels:
            self._data["surfaces"] = [c.strip() for c in env_channels.split(",") if c.strip()]
        self._validate()

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def section(self, key: str) -> dict:
        value = self._data.get(key)
        return value if isinstance(value, dict) else {}

    @property
    def surface_ids(self) -> list[str]:
        return [str(s) for s in self._data.get("surfaces") or []]

    def _validate(self):
        source = self.section("discovery").get("source")
        if source not in DISCOVERY_SOURCES:
            raise ConfigError(f"discovery.source must be one of {DISCOVERY_SOURCES}, got {source!r}")

        try:
            interval = int(self.section("cycle").get("interval_ms"))
        except (TypeError, ValueError) as exc:
            raise ConfigError("cycle.interval_ms must be an integer") from exc
        if interval <= 0:
            raise ConfigError("cycle.interval_ms must be positive")

        query = self.section("query")
        for key in ("timeout_ms", "delay_ms", "max_retries"):
            try:
                value = int(query.get(key))
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"query.{key} must be an integer") from exc
            if value < 0:
                raise ConfigError(f"query.{key} must be >= 0")

        display = self.section("display")
        bounds = {}
        for key in ("min_players", "max_players", "player_list_cap"):
            try:
                bounds[key] = int(display.get(key))
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"display.{key} must be an integer") from exc
        if bounds["min_players"] > bounds["max_players"]:
            raise ConfigError("display.min_players must not exceed display.max_players")
        if not isinstance(display.get("name_rewrites"), dict):
            raise ConfigError("display.name_rewrites must be an object")
        labels = display.get("labels")
        if not isinstance(labels, dict) or not all(isinstance(v, str) for v in labels.values()):
            raise ConfigError("display.labels must map label names to strings")

        if not isinstance(self._data.get("surfaces"), list):
            raise ConfigError("surfaces must be a list of channel ids")

    def require_surfaces(self) -> list[str]:
        ids = self.surface_ids
        if not ids:
            raise ConfigError("No surfaces configured (set 'surfaces' or OBSERVER_CHANNEL_IDS)")
        return ids
