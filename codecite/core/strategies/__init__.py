"""Scoring, fusion and selection strategies."""
from .diversify import MMRDiversifier
from .fusion import apply_filters, reciprocal_rank_fusion
from .scoring import DeduplicateStrategy, IntentBoostStrategy, ScoringStrategy

__all__ = [
    "MMRDiversifier",
    "apply_filters",
    "reciprocal_rank_fusion",
    "DeduplicateStrategy",
    "IntentBoostStrategy",
    "ScoringStrategy",
]
