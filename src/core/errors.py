"""Error taxonomy for the discovery pipeline."""

from __future__ import annotations

from typing import Optional

USAGE_MESSAGE = "Invalid format. Please use: code1 item1,code2 item2"


class CodecastError(Exception):
    """Base class for all pipeline errors."""


class SourceFetchError(CodecastError):
    """A source adapter could not fetch or parse candidates for a game."""

    def __init__(self, game: str, message: str) -> None:
        super().__init__(f"[{game}] {message}")
        self.game = game


class DeliveryError(CodecastError):
    """A notification channel failed to deliver to one destination."""

    def __init__(self, destination: str, message: str) -> None:
        super().__init__(f"{destination}: {message}")
        self.destination = destination


class PersistenceError(CodecastError):
    """The seen-code store or destination registry failed a read or write."""


class MalformedInputError(CodecastError):
    """A manual code entry could not be parsed."""

    def __init__(self, detail: Optional[str] = None, usage: str = USAGE_MESSAGE) -> None:
        super().__init__(detail or usage)
        self.detail = detail
        self.usage = usage
