"""Shared HTTP plumbing for source adapters."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from core.config import DEFAULT_USER_AGENT
from core.errors import SourceFetchError
from core.games import Game
from core.models import FetchResult

LOGGER = logging.getLogger(__name__)


class HttpSource:
    """Base class for sources that GET one URL per game.

    Subclasses implement `fetch` and use `_get` and `_failure`. The optional
    transport lets tests swap in `httpx.MockTransport`.
    """

    def __init__(
        self,
        timeout: float = 20,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport

    async def _get(self, url: str, params: Optional[dict[str, str]] = None) -> httpx.Response:
        headers = {"User-Agent": self._user_agent}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(url, params=params, headers=headers, follow_redirects=True)
            response.raise_for_status()
            return response

    def _failure(self, game: Game, message: str) -> FetchResult:
        error = SourceFetchError(game.value, message)
        LOGGER.warning("Source fetch failed: %s", error)
        return FetchResult(game=game, error=error)
