from .openai_backend import OpenAICompatibleBackend

__all__ = ["OpenAICompatibleBackend"]
