"""Telegram client notification adapter.

Sends notifications from the logged-in Telethon account to each destination
chat or channel.
"""

from __future__ import annotations

from telethon import errors

from core.destination_keys import destination_peer
from core.errors import DeliveryError
from core.models import Notification


class TelegramClientNotifier:
    """Notifier adapter that posts through a Telethon client."""

    def __init__(self, client) -> None:
        self._client = client

    async def send(self, destination: str, notification: Notification) -> None:
        """Send the formatted body, then each code as its own message."""

        peer = destination_peer(destination)
        try:
            await self._client.send_message(peer, notification.body, parse_mode="md", link_preview=False)
            for code in notification.code_lines:
                await self._client.send_message(peer, code)
        except errors.RPCError as e:
            raise DeliveryError(destination, f"Telegram error: {e}") from e
        except ValueError as e:
            # Telethon raises ValueError when it cannot resolve the entity.
            raise DeliveryError(destination, str(e)) from e
