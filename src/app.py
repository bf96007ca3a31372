"""Application entry point for the codecast watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.api_source import HoyoCodesApiSource
from adapters.notification_formatting import NotificationRenderer
from adapters.scraped_source import ScrapedHtmlSource
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_mapper import build_manual_entry
from adapters.telegram_notifier import TelegramClientNotifier
from client import build_client
from core.destination_keys import destination_peer
from core.dispatcher import DeliveryDispatcher
from core.errors import CodecastError
from core.games import Game
from core.manual_entry import ManualEntryHandler, ManualEntryStatus
from core.scheduler import DiscoveryScheduler
from core.sources import SourceRouter
from get_session import authorize, login

NAME = "CODECAST"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)

# Rejected manual entries are removed after the usage hint has been read.
REJECTED_ENTRY_TTL_SECONDS = 5


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["API_HASH", "BOT_API"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/codecast.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # httpx logs every request at INFO; keep cycles readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _build_sources() -> SourceRouter:
    """Route each enabled game to the API or the scraper, per config.json."""

    source_config = settings.SOURCE_CONFIG
    api = HoyoCodesApiSource(
        base_url=source_config.api_base_url,
        game_slugs=source_config.api_game_slugs or None,
        timeout=source_config.timeout_seconds,
        user_agent=source_config.user_agent,
    )
    scraper = ScrapedHtmlSource(
        urls=source_config.scrape_urls or None,
        timeout=source_config.timeout_seconds,
        user_agent=source_config.user_agent,
    )
    routes = {}
    for game, kind in settings.GAME_SOURCES.items():
        source = api if kind == "api" else scraper
        if not source.supports(game):
            raise RuntimeError(f"No {kind} source is configured for {game.value}")
        routes[game] = source
    return SourceRouter(routes)


def _build_notifier(client):
    # Each delivery channel needs its own body format.
    if settings.NOTIFICATION_METHOD == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when notification_method=bot")
        return TelegramBotNotifier(bot_token=bot_token), NotificationRenderer("html")
    if settings.NOTIFICATION_METHOD == "client":
        return TelegramClientNotifier(client), NotificationRenderer("markdown")
    raise RuntimeError("notification_method must be 'client' or 'bot'")


def _register_manual_entry(client, handler: ManualEntryHandler) -> None:
    chats = [destination_peer(key) for key in settings.MANUAL_ENTRY_INPUT_CHATS]

    @client.on(events.NewMessage(chats=chats))
    async def on_message(event) -> None:
        try:
            sender = await event.get_sender()
            result = await handler.handle(build_manual_entry(event.message, sender))
            if result.status is ManualEntryStatus.UNAUTHORIZED:
                await event.reply("You are not authorized to use this chat.")
                await event.delete()
            elif result.status is ManualEntryStatus.REJECTED:
                await event.reply(f"Error: {result.error.usage}")
                await asyncio.sleep(REJECTED_ENTRY_TTL_SECONDS)
                await event.delete()
            elif result.status is ManualEntryStatus.DELIVERED:
                LOGGER.info(
                    "Manual entry delivered %s %s code(s)",
                    len(result.codes),
                    result.game.value,
                )
        except Exception:
            LOGGER.exception("Error while processing manual entry")


async def _serve() -> None:
    load_dotenv()
    storage = _open_storage()
    sources = _build_sources()

    # The Telethon client is only needed to post as the user or to listen
    # for manual entries.
    client = None
    if settings.NOTIFICATION_METHOD == "client" or settings.MANUAL_ENTRY_ENABLED:
        client = build_client()
        await client.connect()
        await authorize(client)

    notifier, renderer = _build_notifier(client)
    LOGGER.info("Selected notification method - %s", settings.NOTIFICATION_METHOD)

    dispatcher = DeliveryDispatcher(renderer, notifier, settings.DELIVERY_CONFIG)
    scheduler = DiscoveryScheduler(
        games=sources.games,
        source=sources,
        store=storage,
        registry=storage,
        dispatcher=dispatcher,
        config=settings.SCHEDULER_CONFIG,
    )

    if client is not None and settings.MANUAL_ENTRY_ENABLED:
        handler = ManualEntryHandler(
            input_chats=settings.MANUAL_ENTRY_INPUT_CHATS,
            operator=settings.MANUAL_ENTRY_OPERATOR,
            dispatcher=dispatcher,
            registry=storage,
            store=storage if settings.MANUAL_ENTRY_RECORD_SEEN else None,
        )
        _register_manual_entry(client, handler)
        LOGGER.info("Listening for manual entries in %s chat(s)", len(settings.MANUAL_ENTRY_INPUT_CHATS))

    scheduler_task = asyncio.create_task(scheduler.run_forever())
    if client is None:
        await scheduler_task
        return

    try:
        LOGGER.info("Client connected. Watching for codes...")
        await client.run_until_disconnected()
    finally:
        scheduler_task.cancel()


def _run() -> None:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting codecast")
    asyncio.run(_serve())


def _parse_games(value: Optional[str]) -> list[Game]:
    if value:
        return [Game.parse(value)]
    return list(settings.ENABLED_GAMES)


async def _check(games: list[Game]) -> None:
    """Fetch once and report candidates without delivering or recording."""

    storage = _open_storage()
    sources = _build_sources()
    for game in games:
        result = await sources.fetch(game)
        if result.error:
            print(f"{game.value}: fetch failed ({result.error})")
            continue
        unseen = {candidate.code for candidate in storage.filter_unseen(game, result.candidates)}
        print(f"{game.value}: {len(result.candidates)} code(s)")
        for candidate in result.candidates:
            marker = "new " if candidate.code in unseen else "seen"
            print(f"  [{marker}] {candidate.code} - {candidate.rewards_text}")


def _destinations(args: argparse.Namespace) -> None:
    storage = _open_storage()
    game = Game.parse(args.game)
    if args.action == "list":
        for key in storage.list_destinations(game):
            print(key)
        return
    if not args.key:
        raise SystemExit(f"destinations {args.action} requires a destination key")
    if args.action == "add":
        added = storage.add_destination(game, args.key)
        print("Added" if added else "Already registered")
    else:
        removed = storage.remove_destination(game, args.key)
        print("Removed" if removed else "Not registered")


def _expire(args: argparse.Namespace) -> None:
    storage = _open_storage()
    changed = storage.mark_expired(Game.parse(args.game), args.codes)
    print(f"Marked {changed} code(s) as expired")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="codecast")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher")
    subparsers.add_parser("login", help="Authorize the Telegram session")

    check_parser = subparsers.add_parser("check", help="Fetch codes once without sending anything")
    check_parser.add_argument("--game", help="Only check one game (gi, hsr, zzz, wuwa)")

    dest_parser = subparsers.add_parser("destinations", help="Manage notification destinations")
    dest_parser.add_argument("action", choices=["list", "add", "remove"])
    dest_parser.add_argument("game")
    dest_parser.add_argument("key", nargs="?", help="@username or chat_id:<id>")

    expire_parser = subparsers.add_parser("expire", help="Mark codes as expired")
    expire_parser.add_argument("game")
    expire_parser.add_argument("codes", nargs="+")

    args = parser.parse_args(argv)
    if args.command in {None, "run"}:
        _run()
        return

    try:
        if args.command == "login":
            asyncio.run(login())
        elif args.command == "check":
            _configure_logging()
            asyncio.run(_check(_parse_games(args.game)))
        elif args.command == "destinations":
            _destinations(args)
        elif args.command == "expire":
            _expire(args)
    except (CodecastError, ValueError) as exc:
        raise SystemExit(f"codecast: {exc}") from exc


if __name__ == "__main__":
    main()
