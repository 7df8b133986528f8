"""Core business services."""
from .chat_service import ChatService
from .intent_service import IntentClassifier
from .search_service import SearchService

__all__ = [
    "ChatService",
    "IntentClassifier",
    "SearchService",
]
