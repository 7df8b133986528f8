from .heuristic import HeuristicReranker

__all__ = ["HeuristicReranker"]
