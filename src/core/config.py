"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.games import Game

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class SchedulerConfig:
    """Timing settings for the discovery scheduler."""

    interval_seconds: float = 30 * 60
    initial_delay_seconds: float = 10
    fetch_timeout_seconds: float = 30


@dataclass(frozen=True)
class DeliveryConfig:
    """Retry settings for the delivery dispatcher."""

    max_attempts: int = 3


@dataclass(frozen=True)
class SourceConfig:
    """HTTP settings shared by the source adapters."""

    api_base_url: str = "https://hoyo-codes.seria.moe/codes"
    api_game_slugs: dict[Game, str] = field(default_factory=dict)
    scrape_urls: dict[Game, str] = field(default_factory=dict)
    timeout_seconds: float = 20
    user_agent: str = DEFAULT_USER_AGENT
