"""Relevance scoring and ranking for knowledge-base search."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from .models import KnowledgeEntry


@dataclass(frozen=True)
class SearchResult:
    """One ranked knowledge entry."""

    entry: KnowledgeEntry
    score: float


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Dot product over norms; 0 for missing, mismatched, or zero vectors."""
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(va @ vb / (norm_a * norm_b))


def keyword_score(query: str, text: str) -> float:
    """Fraction of query tokens found as substrings of the entry text."""
    tokens = query.lower().split()
    if not tokens:
        return 0.0
    haystack = text.lower()
    return sum(1 for token in tokens if token in haystack) / len(tokens)


def rank(results: Iterable[SearchResult]) -> list[SearchResult]:
    """Sort by descending score, keeping catalog order for ties."""
    return sorted(results, key=lambda item: -item.score)


def rank_by_embedding(
    query_vector: Sequence[float],
    entries: Iterable[tuple[KnowledgeEntry, Sequence[float]]],
) -> list[SearchResult]:
    return rank(SearchResult(entry, cosine_similarity(query_vector, vector)) for entry, vector in entries)


def rank_by_keywords(query: str, entries: Iterable[KnowledgeEntry]) -> list[SearchResult]:
    return rank(SearchResult(entry, keyword_score(query, entry.text)) for entry in entries)
