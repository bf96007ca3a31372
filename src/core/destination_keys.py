"""Helpers for working with destination keys.

Destinations are stored as `@username` or `chat_id:<id>`, the same two forms
Telegram accepts for addressing a chat.
"""

from __future__ import annotations

from typing import Union

CHAT_ID_PREFIX = "chat_id:"


def normalize_destination_key(raw_key: str) -> str:
    """Return the canonical key for a destination.

    Accepts `@username`, `chat_id:<id>` or a bare numeric id. Usernames are
    lowercased because Telegram resolves them case-insensitively.
    """

    key = raw_key.strip()
    if key.startswith("@"):
        username = key[1:]
        if not username or any(ch.isspace() for ch in username):
            raise ValueError(f"Invalid destination username: {raw_key!r}")
        return f"@{username.lower()}"

    if key.startswith(CHAT_ID_PREFIX):
        key = key[len(CHAT_ID_PREFIX):]

    try:
        chat_id = int(key)
    except ValueError:
        raise ValueError(f"Invalid destination key: {raw_key!r}") from None
    return f"{CHAT_ID_PREFIX}{chat_id}"


def destination_peer(key: str) -> Union[str, int]:
    """Return the value Telegram clients accept for a normalized key."""

    if key.startswith(CHAT_ID_PREFIX):
        return int(key[len(CHAT_ID_PREFIX):])
    return key


def chat_key(chat_id: int, username: "str | None" = None) -> str:
    """Build the key for an incoming chat, preferring its public username."""

    if username:
        return f"@{username.lower()}"
    return f"{CHAT_ID_PREFIX}{chat_id}"
