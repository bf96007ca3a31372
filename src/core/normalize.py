"""Code normalization helpers (core domain)."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from core.models import CandidateCode

_WHITESPACE = re.compile(r"\s+")


def normalize_code(raw_code: str) -> str:
    """Return the comparison key for a raw code: uppercased, no whitespace."""

    return _WHITESPACE.sub("", raw_code).upper()


def dedupe_candidates(candidates: Iterable["CandidateCode"]) -> List["CandidateCode"]:
    """Collapse candidates sharing a normalized code; first occurrence wins."""

    seen: set[str] = set()
    unique: List["CandidateCode"] = []
    for candidate in candidates:
        key = candidate.code
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


_CODE_TOKEN = re.compile(r"^[A-Z0-9]+$")


def is_valid_code(code: str) -> bool:
    """Redeem codes are alphanumeric once normalized."""

    return bool(_CODE_TOKEN.match(code))
