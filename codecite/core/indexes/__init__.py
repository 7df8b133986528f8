"""Lexical and vector indexes over chunks."""
from .lexical import LexicalIndex
from .tokenizer import STOP_WORDS, tokenize
from .vector import VectorIndex, cosine_similarity, tfidf_vector

__all__ = [
    "LexicalIndex",
    "STOP_WORDS",
    "tokenize",
    "VectorIndex",
    "cosine_similarity",
    "tfidf_vector",
]
