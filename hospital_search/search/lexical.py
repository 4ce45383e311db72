"""Lexical scoring, recall broadening and vector similarity helpers."""

import math
import re
from collections.abc import Sequence

from hospital_search.search.specialties import matched_concerns
from hospital_search.store.models import HospitalRecord

# Retried when a literal substring pass finds nothing.
DOMAIN_KEYWORDS = ("rehabilitation", "stroke", "neuro", "physical", "therapy")

NAME_MATCH_SCORE = 1.0
DESCRIPTION_MATCH_SCORE = 0.8
TOKEN_MATCH_WEIGHT = 0.6

MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    {
        "and",
        "are",
        "for",
        "from",
        "has",
        "have",
        "hospital",
        "hospitals",
        "into",
        "near",
        "that",
        "the",
        "this",
        "with",
        "within",
    }
)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> list[str]:
    """Distinct content tokens of ``text``, lower-cased, in order of appearance."""
    tokens: list[str] = []
    for token in _TOKEN_PATTERN.findall(text.lower()):
        if len(token) < MIN_TOKEN_LENGTH or token in STOPWORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens


def domain_keywords_in(query: str) -> list[str]:
    """Fixed-vocabulary keywords contained in the query."""
    lowered = query.lower()
    return [keyword for keyword in DOMAIN_KEYWORDS if keyword in lowered]


def broaden_query(query: str) -> list[str]:
    """Terms for the recall-broadening retry.

    Any single term matching a row is enough. The terms are the query's
    content tokens, the domain keywords it contains, and the health-concern
    keywords it mentions.
    """
    terms = tokenize(query)
    for keyword in [*domain_keywords_in(query), *matched_concerns(query)]:
        if keyword not in terms:
            terms.append(keyword)
    return terms


def text_score(query: str, record: HospitalRecord) -> float:
    """Normalised lexical relevance of a hospital to a query (0-1).

    The whole query in the name scores 1.0, in the description 0.8; otherwise
    the share of query tokens found in either field, scaled by 0.6.
    """
    needle = query.strip().lower()
    name = (record.name or "").lower()
    description = (record.description or "").lower()

    if needle and needle in name:
        return NAME_MATCH_SCORE
    if needle and needle in description:
        return DESCRIPTION_MATCH_SCORE

    tokens = tokenize(needle)
    if not tokens:
        return 0.0
    haystack = f"{name} {description}"
    covered = sum(1 for token in tokens if token in haystack)
    return TOKEN_MATCH_WEIGHT * covered / len(tokens)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity clamped to 0-1.

    Vectors of different lengths are not comparable and score 0.
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(0.0, min(1.0, dot / (norm_a * norm_b)))
