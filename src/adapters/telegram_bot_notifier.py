"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be posted by a bot that
is a member or admin of the destination chats.
"""

from __future__ import annotations

from typing import Optional

import httpx

from core.destination_keys import destination_peer
from core.errors import DeliveryError
from core.models import Notification


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._bot_token = bot_token
        self._timeout = timeout
        self._transport = transport

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    async def send(self, destination: str, notification: Notification) -> None:
        """Send the HTML body, then each code as a plain message."""

        chat_id = destination_peer(destination)
        payloads = [
            {
                "chat_id": chat_id,
                "text": notification.body,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            }
        ]
        payloads.extend({"chat_id": chat_id, "text": code} for code in notification.code_lines)

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for payload in payloads:
                try:
                    response = await client.post(self._endpoint(), json=payload)
                except httpx.HTTPError as e:
                    raise DeliveryError(destination, f"Bot API request failed: {type(e).__name__}") from e
                if response.status_code >= 400:
                    raise DeliveryError(destination, f"Bot API error {response.status_code}: {response.text}")
