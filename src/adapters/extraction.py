"""Code extraction strategies for scraped HTML pages.

Scraped pages change their markup without notice, so extraction is an ordered
list of strategies. Each one is a pure function `(document, game) ->
list[CandidateCode]` and the first that yields anything wins:

1) extract_active_rows: structural, rows tagged "active" with a code cell
   and a reward list
2) extract_list_items: list items shaped like "CODE - rewards" that mention
   the game's currency
3) extract_text_pattern: regex over the visible page text

Later strategies trade precision for resilience.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional

from bs4 import BeautifulSoup, Tag

from core.games import Game
from core.models import CandidateCode
from core.normalize import dedupe_candidates, normalize_code

ExtractionStrategy = Callable[[BeautifulSoup, Game], list[CandidateCode]]

_CODE_TOKEN = re.compile(r"^[A-Z0-9]{6,20}$")
_LIST_ITEM = re.compile(r"^([A-Za-z0-9]{6,20})\s*[-–]\s*(.+)$")

ACTIVE_ROW_SELECTOR = "tr.active, li.active, div.active, [data-status='active']"


def _text(element: Tag) -> str:
    return element.get_text(" ", strip=True)


def _currency_pattern(game: Game) -> re.Pattern:
    return re.compile(re.escape(game.info.currency_name), re.IGNORECASE)


def _row_code(row: Tag) -> Optional[str]:
    code_el = row.select_one(".code, code, [data-code]")
    if code_el is not None:
        return code_el.get("data-code") or _text(code_el)
    cells = row.find_all("td")
    if cells:
        return _text(cells[0])
    return None


def _row_rewards(row: Tag) -> str:
    items = row.select("ul li, ol li")
    if items:
        return ", ".join(_text(item) for item in items if _text(item))
    reward_el = row.select_one(".rewards, .reward")
    if reward_el is not None:
        return _text(reward_el)
    cells = row.find_all("td")
    if len(cells) > 1:
        return _text(cells[1])
    return ""


def extract_active_rows(document: BeautifulSoup, game: Game) -> list[CandidateCode]:
    """Read rows explicitly marked active, with a dedicated code cell."""

    candidates: list[CandidateCode] = []
    for row in document.select(ACTIVE_ROW_SELECTOR):
        raw_code = _row_code(row)
        if not raw_code or not _CODE_TOKEN.match(normalize_code(raw_code)):
            continue
        candidates.append(CandidateCode(game=game, raw_code=raw_code, rewards_text=_row_rewards(row)))
    return candidates


def extract_list_items(document: BeautifulSoup, game: Game) -> list[CandidateCode]:
    """Read `CODE - rewards` list items whose rewards mention the currency."""

    currency = _currency_pattern(game)
    candidates: list[CandidateCode] = []
    for item in document.select("ul li, ol li"):
        match = _LIST_ITEM.match(_text(item))
        if not match:
            continue
        raw_code, rewards = match.group(1), match.group(2).strip()
        # The currency check filters out navigation and table-of-contents items.
        if not currency.search(rewards):
            continue
        candidates.append(CandidateCode(game=game, raw_code=raw_code.upper(), rewards_text=rewards))
    return candidates


def extract_text_pattern(document: BeautifulSoup, game: Game) -> list[CandidateCode]:
    """Scan visible text for an uppercase token followed by a currency reward."""

    currency = re.escape(game.info.currency_name)
    pattern = re.compile(
        rf"\b([A-Z0-9]{{6,20}})\b\s*[-–:]\s*((?i:\d[\d,]*\s*{currency}s?)[^.\n]{{0,120}})"
    )
    root = document.body or document
    text = root.get_text(" ")
    return [
        CandidateCode(game=game, raw_code=match.group(1), rewards_text=match.group(2).strip())
        for match in pattern.finditer(text)
    ]


EXTRACTION_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    extract_active_rows,
    extract_list_items,
    extract_text_pattern,
)


def extract_candidates(
    document: BeautifulSoup,
    game: Game,
    strategies: Iterable[ExtractionStrategy] = EXTRACTION_STRATEGIES,
) -> tuple[Optional[str], list[CandidateCode]]:
    """Run strategies in order and return (strategy name, unique candidates)."""

    for strategy in strategies:
        candidates = dedupe_candidates(strategy(document, game))
        if candidates:
            return strategy.__name__, candidates
    return None, []


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")

