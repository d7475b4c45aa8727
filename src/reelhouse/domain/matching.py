"""Best-effort title matching for nominees that carry no external id.

Exact external ids are the only authoritative way to identify an entity. This
module is a fallback that is disabled by default; every match it produces is
stored with its confidence so it can be reviewed.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from rapidfuzz import fuzz

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reelhouse.domain.model import CatalogItem

TITLE_WEIGHT: Final[float] = 0.7
YEAR_WEIGHT: Final[float] = 0.3
DEFAULT_THRESHOLD: Final[float] = 0.7

_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")
_LEADING_ARTICLE = re.compile(r"^(the|a|an) ")
_INVERTED_ARTICLE = re.compile(r"^(.+?),\s*(the|a|an)$")


def normalize_title(title: str) -> str:
    decomposed = unicodedata.normalize("NFKD", title)
    ascii_only = "".join(char for char in decomposed if not unicodedata.combining(char))
    # "Godfather, The" sorts like "The Godfather"
    lowered = _INVERTED_ARTICLE.sub(r"\2 \1", ascii_only.lower().strip())
    cleaned = _SPACES.sub(" ", _NON_WORD.sub(" ", lowered)).strip()
    return _LEADING_ARTICLE.sub("", cleaned)


def title_similarity(left: str, right: str) -> float:
    """Token-sorted edit similarity of the normalized titles, between 0 and 1."""

    a, b = normalize_title(left), normalize_title(right)
    if not a or not b:
        return 0.0
    return fuzz.token_sort_ratio(a, b) / 100


def year_proximity(expected: int | None, candidate: int | None) -> float:
    if expected is None or candidate is None:
        return 0.5
    distance = abs(expected - candidate)
    if distance == 0:
        return 1.0
    if distance == 1:
        return 0.8
    if distance == 2:  # noqa: PLR2004
        return 0.5
    return 0.1


def match_score(title: str, year: int | None, candidate: CatalogItem) -> float:
    return TITLE_WEIGHT * title_similarity(title, candidate.title) + YEAR_WEIGHT * year_proximity(
        year, candidate.release_year
    )


@dataclass(frozen=True, slots=True)
class TitleMatch:
    item: CatalogItem
    score: float


def best_match(
    title: str,
    year: int | None,
    candidates: Iterable[CatalogItem],
    *,
    threshold: float = DEFAULT_THRESHOLD,
) -> TitleMatch | None:
    best: TitleMatch | None = None
    for candidate in candidates:
        score = match_score(title, year, candidate)
        if best is None or score > best.score:
            best = TitleMatch(candidate, score)
    if best is None or best.score < threshold:
        return None
    return best


def title_query(title: str, year: int | None) -> str:
    """Search key stored in place of an external id: ``"<normalized title>|<year>"``."""

    return f"{normalize_title(title)}|{year if year is not None else ''}"


def parse_title_query(value: str) -> tuple[str, int | None]:
    title, _, year = value.rpartition("|")
    if not title:
        return value, None
    return title, int(year) if year.isdigit() else None
