"""Tokenization shared by the lexical and vector indexes."""
import re

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "can", "this", "that", "these", "those",
})

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> list[str]:
    """Lower-case, strip punctuation, drop short tokens and stop-words."""
    return [
        term
        for term in _NON_WORD.sub(" ", text.lower()).split()
        if len(term) > 2 and term not in STOP_WORDS
    ]
