"""Structured API source adapter.

Reads codes from the hoyo-codes JSON API, one request per game:

    GET {base_url}?game=<slug>
    {"codes": [{"code": "...", "rewards": "...", "status": "OK"}, ...]}

Only entries with status "OK" are currently redeemable.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from adapters.http_source import HttpSource
from core.config import DEFAULT_USER_AGENT
from core.games import Game
from core.models import CandidateCode, FetchResult
from core.normalize import is_valid_code, normalize_code

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://hoyo-codes.seria.moe/codes"

DEFAULT_GAME_SLUGS: dict[Game, str] = {
    Game.GENSHIN: "genshin",
    Game.STAR_RAIL: "hkrpg",
    Game.ZENLESS: "nap",
}

VALID_STATUS = "OK"


def _rewards_text(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(item).strip() for item in value if str(item).strip())
    if value is None:
        return ""
    return str(value).strip()


def parse_codes_payload(game: Game, payload: Any) -> list[CandidateCode]:
    """Map an API payload to candidates, keeping only valid entries.

    Raises ValueError when the payload does not have the expected shape.
    """

    if not isinstance(payload, dict) or not isinstance(payload.get("codes"), list):
        raise ValueError("payload has no 'codes' list")

    candidates: list[CandidateCode] = []
    for entry in payload["codes"]:
        if not isinstance(entry, dict) or entry.get("status") != VALID_STATUS:
            continue
        code = entry.get("code")
        if not isinstance(code, str) or not is_valid_code(normalize_code(code)):
            continue
        candidates.append(
            CandidateCode(game=game, raw_code=code, rewards_text=_rewards_text(entry.get("rewards")))
        )
    return candidates


class HoyoCodesApiSource(HttpSource):
    """Source adapter backed by the hoyo-codes JSON API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        game_slugs: Optional[dict[Game, str]] = None,
        timeout: float = 20,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, user_agent=user_agent, transport=transport)
        self._base_url = base_url
        self._game_slugs = dict(game_slugs or DEFAULT_GAME_SLUGS)

    def supports(self, game: Game) -> bool:
        return game in self._game_slugs

    async def fetch(self, game: Game) -> FetchResult:
        slug = self._game_slugs.get(game)
        if slug is None:
            return self._failure(game, "no API slug configured")

        try:
            response = await self._get(self._base_url, params={"game": slug})
        except httpx.HTTPStatusError as exc:
            return self._failure(game, f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            return self._failure(game, f"request failed: {exc!r}")

        try:
            candidates = parse_codes_payload(game, response.json())
        except ValueError as exc:
            return self._failure(game, f"unexpected payload: {exc}")

        LOGGER.debug("API returned %s valid %s code(s)", len(candidates), game.value)
        return FetchResult(game=game, candidates=tuple(candidates))
