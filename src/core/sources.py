"""Per-game routing of source adapters."""

from __future__ import annotations

import logging

from core.errors import SourceFetchError
from core.games import Game
from core.models import FetchResult
from core.ports import SourcePort

LOGGER = logging.getLogger(__name__)


class SourceRouter:
    """SourcePort that delegates each game to the adapter registered for it."""

    def __init__(self, routes: dict[Game, SourcePort]) -> None:
        self._routes = dict(routes)

    @property
    def games(self) -> list[Game]:
        return list(self._routes)

    async def fetch(self, game: Game) -> FetchResult:
        source = self._routes.get(game)
        if source is None:
            error = SourceFetchError(game.value, "no source configured")
            LOGGER.warning("%s", error)
            return FetchResult(game=game, error=error)
        return await source.fetch(game)
