"""Static configuration for codecast.

All user-editable settings (games, sources, schedule, delivery, manual entry,
logging) live in a single JSON file for quick edits without touching Python.
Secrets stay in the environment (.env).
"""

import json
import os

from core.config import DEFAULT_USER_AGENT, DeliveryConfig, SchedulerConfig, SourceConfig
from core.destination_keys import normalize_destination_key
from core.games import Game

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite database.
DB_PATH = os.path.join(os.path.dirname(__file__), "codecast.db")

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

SOURCE_KINDS = {"api", "scrape"}


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _default_source_kind(game: Game) -> str:
    # Wuthering Waves is not covered by the codes API.
    return "scrape" if game is Game.WUTHERING_WAVES else "api"


def _normalize_games(raw_games: dict) -> dict[Game, str]:
    """Return enabled games mapped to their source kind, in catalogue order."""

    games: dict[Game, str] = {}
    for game in Game:
        entry = raw_games.get(game.value, {})
        if not entry.get("enabled", True):
            continue
        kind = entry.get("source", _default_source_kind(game))
        if kind not in SOURCE_KINDS:
            raise ValueError(f"games.{game.value}.source must be 'api' or 'scrape'")
        games[game] = kind
    unknown = set(raw_games) - {game.value for game in Game}
    if unknown:
        raise ValueError(f"Unknown games in config: {sorted(unknown)}")
    return games


def _game_map(raw: dict) -> dict[Game, str]:
    return {Game.parse(key): value for key, value in raw.items()}


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Enabled games and whether each is fetched from the API or scraped.
GAME_SOURCES = _normalize_games(_CONFIG.get("games", {}))
ENABLED_GAMES = list(GAME_SOURCES)

_sources = _CONFIG.get("sources", {})
_api = _sources.get("api", {})
_scrape = _sources.get("scrape", {})
SOURCE_CONFIG = SourceConfig(
    api_base_url=_api.get("base_url", SourceConfig.api_base_url),
    api_game_slugs=_game_map(_api.get("game_slugs", {})),
    scrape_urls=_game_map(_scrape.get("urls", {})),
    timeout_seconds=float(_sources.get("timeout_seconds", 20)),
    user_agent=_sources.get("user_agent", DEFAULT_USER_AGENT),
)

# Cycle cadence. Ticks are interval-based, not aligned to the wall clock.
_scheduler = _CONFIG.get("scheduler", {})
SCHEDULER_CONFIG = SchedulerConfig(
    interval_seconds=float(_scheduler.get("interval_minutes", 30)) * 60,
    initial_delay_seconds=float(_scheduler.get("initial_delay_seconds", 10)),
    fetch_timeout_seconds=float(_scheduler.get("fetch_timeout_seconds", 30)),
)

_delivery = _CONFIG.get("delivery", {})
DELIVERY_CONFIG = DeliveryConfig(max_attempts=int(_delivery.get("max_attempts", 3)))

# Notification method switches adapters without changing core logic.
# - "client": post from the logged-in Telegram account (Telethon)
# - "bot": post through the Bot API (requires BOT_API in the environment)
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("notification_method", "client")

# Manual entry: an operator posts "CODE1 reward,CODE2 reward" in an input chat
# mapped to a game. Only messages from OPERATOR are accepted.
_manual = _CONFIG.get("manual_entry", {})
MANUAL_ENTRY_ENABLED = bool(_manual.get("enabled", False))
MANUAL_ENTRY_OPERATOR = _manual.get("operator", "")
MANUAL_ENTRY_INPUT_CHATS = {
    normalize_destination_key(key): Game.parse(game)
    for key, game in _manual.get("input_chats", {}).items()
}
# Record manual codes as seen so the scheduler does not announce them again.
MANUAL_ENTRY_RECORD_SEEN = bool(_manual.get("record_seen", True))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
