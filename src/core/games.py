"""Game catalogue (core domain).

Games are a closed enumeration. Every member must have an entry in GAME_INFO;
the check at import time keeps the lookup table exhaustive.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Game(str, Enum):
    GENSHIN = "gi"
    STAR_RAIL = "hsr"
    ZENLESS = "zzz"
    WUTHERING_WAVES = "wuwa"

    @classmethod
    def parse(cls, value: str) -> "Game":
        """Return the Game for an identifier such as "gi" or "HSR"."""

        try:
            return cls(value.strip().lower())
        except ValueError:
            known = ", ".join(game.value for game in cls)
            raise ValueError(f"Unknown game '{value}' (expected one of: {known})") from None

    @property
    def info(self) -> "GameInfo":
        return GAME_INFO[self]


@dataclass(frozen=True)
class GameInfo:
    """Static metadata for one game."""

    display_name: str
    currency_name: str
    redeem_url_template: Optional[str] = None

    def redeem_url(self, code: str) -> Optional[str]:
        if not self.redeem_url_template:
            return None
        return f"{self.redeem_url_template}{code}"


GAME_INFO: dict[Game, GameInfo] = {
    Game.GENSHIN: GameInfo(
        display_name="Genshin Impact",
        currency_name="Primogem",
        redeem_url_template="https://genshin.hoyoverse.com/en/gift?code=",
    ),
    Game.STAR_RAIL: GameInfo(
        display_name="Honkai Star Rail",
        currency_name="Stellar Jade",
        redeem_url_template="https://hsr.hoyoverse.com/gift?code=",
    ),
    Game.ZENLESS: GameInfo(
        display_name="Zenless Zone Zero",
        currency_name="Polychrome",
        redeem_url_template="https://zenless.hoyoverse.com/redemption?code=",
    ),
    # No web redemption for Wuthering Waves.
    Game.WUTHERING_WAVES: GameInfo(
        display_name="Wuthering Waves",
        currency_name="Astrite",
    ),
}

_missing = set(Game) - set(GAME_INFO)
if _missing:
    raise RuntimeError(f"GAME_INFO is missing entries for: {sorted(g.value for g in _missing)}")
