from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, NamedTuple, Protocol

from rapidfuzz.distance import Levenshtein

from ..config import MATCHING, MatchingConfig
from ..schema import CandidateName, MatchResult

# ----------------------------
# Name normalization
# ----------------------------

# "Counter-StrikeÂ® 2": UTF-8 symbols decoded as latin-1 upstream.
_MOJIBAKE_RE = re.compile(r"Â(?=[®©™\xa0])")
_SYMBOLS_RE = re.compile(r"[™®©]")
_BRACKETED_RE = re.compile(r"[\(\[\{][^\(\)\[\]\{\}]*[\)\]\}]")
_APOSTROPHES_RE = re.compile(r"[’'`ʼ]")
_PUNCT_RE = re.compile(r"[^\w\s-]|_")
_HYPHEN_RUN_RE = re.compile(r"-{2,}")
_LOOSE_HYPHEN_RE = re.compile(r"(?<!\w)-|-(?!\w)")


class NormalizedTitle(NamedTuple):
    cleaned: str
    tokens: frozenset[str]


def _fold(s: str) -> str:
    decomposed = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


@lru_cache(maxsize=262_144)
def _normalize(title: str, drop_articles: bool) -> NormalizedTitle:
    s = _MOJIBAKE_RE.sub("", title)
    s = _SYMBOLS_RE.sub("", s)
    # Case mapping can reintroduce combining marks (e.g. "İ"), so fold on both sides.
    s = _fold(_fold(s).casefold())

    prev = None
    while prev != s:
        prev = s
        s = _BRACKETED_RE.sub(" ", s)

    s = _APOSTROPHES_RE.sub("", s)
    s = _PUNCT_RE.sub(" ", s)
    s = _HYPHEN_RUN_RE.sub("-", s)
    s = _LOOSE_HYPHEN_RE.sub(" ", s)

    tokens = s.split()
    if drop_articles:
        while len(tokens) > 1 and tokens[0] in MATCHING.leading_articles:
            tokens.pop(0)
    return NormalizedTitle(" ".join(tokens), frozenset(tokens))


def normalize_title(title: str | None, *, drop_articles: bool = True) -> NormalizedTitle:
    """
    Normalize a game title for matching.

    - unicode fold (strip diacritics, trademark symbols)
    - lowercase
    - drop bracketed qualifiers: "(USA)", "[Rev 1]", "(2016)"
    - strip punctuation, keeping internal hyphens
    - collapse whitespace
    - drop leading articles ("the", "a", "an") unless drop_articles=False

    Idempotent: normalize_title(normalize_title(x).cleaned) == normalize_title(x).
    The display title is never modified; this value is for matching only.
    """
    return _normalize(str(title or ""), bool(drop_articles))


# ----------------------------
# Scoring
# ----------------------------


class Scorer(Protocol):
    def score(self, query: str, candidate: str) -> int: ...


@dataclass(frozen=True)
class LevenshteinScorer:
    """
    Edit-distance ratio over normalized titles; see MatchingConfig for the exact policy.
    """

    config: MatchingConfig = MATCHING

    def score(self, query: str, candidate: str) -> int:
        a = normalize_title(query).cleaned
        b = normalize_title(candidate).cleaned
        if not a or not b:
            return 0
        if a == b:
            return 100

        longest = max(len(a), len(b))
        shortest = min(len(a), len(b))
        distance = Levenshtein.distance(a, b)
        score = int(round(100.0 * (1.0 - distance / float(longest))))

        if a.startswith(b) or b.startswith(a):
            score += self.config.prefix_bonus
        if shortest / float(longest) < self.config.length_ratio_threshold:
            score -= self.config.length_penalty

        return max(0, min(self.config.max_inexact_score, score))


DEFAULT_SCORER = LevenshteinScorer()


def fuzzy_score(a: str, b: str) -> int:
    return DEFAULT_SCORER.score(a, b)


def rank_matches(
    query: str,
    candidates: Iterable[CandidateName],
    *,
    scorer: Scorer | None = None,
    limit: int | None = None,
) -> list[MatchResult]:
    """
    Score every candidate against the query and sort by score, descending.

    Ties keep the input candidate order (list.sort is stable), so the best match is
    reproducible across runs for the same dataset.
    """
    scorer = scorer or DEFAULT_SCORER
    q = normalize_title(query).cleaned
    scored: list[MatchResult] = []
    for c in candidates:
        normalized = normalize_title(c.name).cleaned
        scored.append(
            MatchResult(
                title_id=c.external_id,
                name=c.name,
                normalized_title=normalized,
                score=int(scorer.score(q, normalized)),
                provider_id=c.provider_id,
                region=c.region,
                product_code=c.product_code,
                query=query,
            )
        )
    scored.sort(key=lambda r: -r.score)
    if limit is not None:
        return scored[: max(0, int(limit))]
    return scored
