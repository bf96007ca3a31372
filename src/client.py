"""Telegram client factory for codecast.

The client is used to listen for manual code entries and, with the "client"
notification method, to post notifications. Its lifecycle is managed
explicitly by app.py.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH come from the environment (or .env). The session name
    defaults to "codecast", which creates a local codecast.session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "codecast")

    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client (session=%s)", session_name)

    return TelegramClient(session_name, int(api_id), api_hash)
