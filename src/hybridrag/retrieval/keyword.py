"""Lexical relevance scoring.

Term-overlap scoring, not BM25:

    score = sum over distinct query terms t present in the chunk of
            1 + log(tf(t))

Matching is case-insensitive on Unicode word tokens, so the score grows
with every extra occurrence of a query term and never decreases.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field

_TOKEN = re.compile(r"\w+", re.UNICODE)

# Very common English and Polish function words
STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "how",
    "in", "is", "it", "of", "on", "or", "that", "the", "to", "was", "what",
    "when", "where", "which", "who", "why", "with",
    "ale", "czy", "do", "i", "jak", "jest", "na", "nie", "o", "od",
    "po", "się", "są", "w", "z", "za", "że",
})


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens of ``text``."""
    return [t.casefold() for t in _TOKEN.findall(text)]


@dataclass
class KeywordMatch:
    """Keyword score of one chunk plus the query terms it contains."""

    score: float = 0.0
    matched_terms: list[str] = field(default_factory=list)


class KeywordScorer:
    """Scores chunk text against a query by term overlap and frequency."""

    def __init__(self, stopwords: frozenset[str] = STOPWORDS, min_term_length: int = 2):
        self.stopwords = stopwords
        self.min_term_length = min_term_length

    def query_terms(self, query: str) -> list[str]:
        """Distinct scoring terms of ``query``, in order of appearance."""
        terms: list[str] = []
        for token in tokenize(query):
            if len(token) < self.min_term_length or token in self.stopwords:
                continue
            if token not in terms:
                terms.append(token)
        # A query made only of stopwords still deserves a lexical match
        if not terms:
            terms = list(dict.fromkeys(t for t in tokenize(query) if t))
        return terms

    def score(self, query: str, text: str) -> KeywordMatch:
        return self.score_terms(self.query_terms(query), text)

    def score_terms(self, terms: list[str], text: str) -> KeywordMatch:
        """Score ``text`` against pre-extracted ``terms``."""
        if not terms or not text:
            return KeywordMatch()

        counts = Counter(tokenize(text))
        match = KeywordMatch()
        for term in terms:
            tf = counts.get(term, 0)
            if tf:
                match.score += 1.0 + math.log(tf)
                match.matched_terms.append(term)
        return match
