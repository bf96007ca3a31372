"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the manual entry handler.
"""

from __future__ import annotations

from typing import Any, Optional

from telethon.tl.custom import Message

from core.destination_keys import chat_key
from core.manual_entry import ManualEntry


def chat_keys_from_message(message: Message) -> tuple[str, ...]:
    """Return every key the chat can be configured under, username first."""

    chat = getattr(message, "chat", None)
    username = getattr(chat, "username", None)
    keys = []
    if isinstance(username, str) and username:
        keys.append(chat_key(message.chat_id, username))
    keys.append(chat_key(message.chat_id))
    return tuple(keys)


def sender_username(sender: Any) -> Optional[str]:
    username = getattr(sender, "username", None)
    if isinstance(username, str) and username:
        return username
    return None


def build_manual_entry(message: Message, sender: Any) -> ManualEntry:
    """Build a core ManualEntry from a Telethon Message and its sender."""

    return ManualEntry(
        chat_keys=chat_keys_from_message(message),
        sender=sender_username(sender),
        text=message.raw_text or "",
    )
