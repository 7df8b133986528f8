from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    llm_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "qwen2.5:7b"
    llm_api_key: str = "ollama"
    llm_max_tokens: int = 2000
    llm_temperature: float = 0.1

    # Embedding cache
    cache_enabled: bool = True
    cache_dir: str = "./.codecite/cache"
    cache_max_entries: int = 10000
    cache_ttl_seconds: float = 7 * 24 * 60 * 60
    cache_flush_every: int = 100
    cache_flush_interval: float = 300.0
    cache_cleanup_interval: float = 3600.0

    # Indexing
    index_batch_size: int = 50
    max_chunk_chars: int = 200_000

    # Reranking
    rerank_enabled: bool = True
    rerank_original_weight: float = 0.3
    rerank_weight: float = 0.7
    rerank_overfetch: int = 3
    rerank_max_candidates: int = 100

    # Answers
    answer_max_context: int = 6
    answer_per_query_limit: int = 8
    answer_sufficiency_threshold: float = 0.1
    answer_no_response_threshold: float = 0.3
    answer_history_turns: int = 3
    answer_intent_filters: bool = True

    intent_debug: bool = False

    class Config:
        env_file = ".env"
        env_prefix = "CODECITE_"
        extra = "ignore"
