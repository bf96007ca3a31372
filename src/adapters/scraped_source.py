"""Scraped HTML source adapter.

Fetches a community code page and runs the ordered extraction strategies from
`adapters.extraction` over it.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import httpx

from adapters.extraction import EXTRACTION_STRATEGIES, ExtractionStrategy, extract_candidates, parse_document
from adapters.http_source import HttpSource
from core.config import DEFAULT_USER_AGENT
from core.games import Game
from core.models import FetchResult

LOGGER = logging.getLogger(__name__)

DEFAULT_SCRAPE_URLS: dict[Game, str] = {
    Game.WUTHERING_WAVES: "https://game8.co/games/Wuthering-Waves/archives/453149",
}


class ScrapedHtmlSource(HttpSource):
    """Source adapter that scrapes codes out of an HTML page."""

    def __init__(
        self,
        urls: Optional[dict[Game, str]] = None,
        strategies: Iterable[ExtractionStrategy] = EXTRACTION_STRATEGIES,
        timeout: float = 20,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, user_agent=user_agent, transport=transport)
        self._urls = dict(urls or DEFAULT_SCRAPE_URLS)
        self._strategies = tuple(strategies)

    def supports(self, game: Game) -> bool:
        return game in self._urls

    async def fetch(self, game: Game) -> FetchResult:
        url = self._urls.get(game)
        if url is None:
            return self._failure(game, "no scrape URL configured")

        try:
            response = await self._get(url)
        except httpx.HTTPStatusError as exc:
            return self._failure(game, f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            return self._failure(game, f"request failed: {exc!r}")

        try:
            document = parse_document(response.text)
            strategy, candidates = extract_candidates(document, game, self._strategies)
        except Exception as exc:
            return self._failure(game, f"parse failed: {exc!r}")
        if strategy is None:
            LOGGER.info("No %s codes found on %s", game.value, url)
        else:
            LOGGER.debug("Extracted %s %s code(s) via %s", len(candidates), game.value, strategy)
        return FetchResult(game=game, candidates=tuple(candidates))
