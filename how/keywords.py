"""Keyword extraction used to tag and look up remembered commands."""

from __future__ import annotations

from typing import List, Set

STOP_WORDS = frozenset(
    {
        "how", "do", "i", "to", "the",
        "a", "an", "in", "on", "for",
        "is", "it", "of", "and", "or",
        "with", "from", "by", "at", "as",
        "this", "that", "what", "which", "where",
        "when", "who", "why", "can", "will",
        "my", "me", "all", "if", "not",
        "but", "so", "up", "out", "about",
        "into", "just", "get", "make", "use",
    }
)

MIN_KEYWORD_LENGTH = 2


def _tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    current: List[str] = []
    for ch in text:
        # Letters and decimal digits only; "²" and "_" are separators.
        if ch.isalpha() or ch.isdecimal():
            current.append(ch)
        elif current:
            tokens.append("".join(current))
            current = []
    if current:
        tokens.append("".join(current))
    return tokens


def extract_keywords(question: str) -> List[str]:
    """
    Turn a free-text question into a sorted list of unique keywords.

    Tokens are split on anything that is not a letter or digit, lowercased,
    and filtered against STOP_WORDS and MIN_KEYWORD_LENGTH. Never raises;
    empty or all-stopword input gives an empty list.
    """
    seen: Set[str] = set()
    keywords: List[str] = []
    for word in _tokenize(question.lower()):
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
    keywords.sort()
    return keywords


__all__ = [
    "STOP_WORDS",
    "extract_keywords",
]
