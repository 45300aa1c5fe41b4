from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    assemblyai_api_key: str = ""

    # Supabase (job store + uploaded media)
    supabase_url: str = ""
    supabase_key: str = ""
    jobs_table: str = "ingestion_jobs"
    uploads_bucket: str = "uploads"

    # Qdrant
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str = ""
    collection_prefix: str = "recall_"

    # Models
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    llm_model: str = "claude-sonnet-4-20250514"
    scoring_model: str = "claude-3-5-haiku-latest"

    # Chunking
    min_chunk_tokens: int = 300
    max_chunk_tokens: int = 400

    # Ingestion batching
    index_batch_size: int = 10
    speaker_batch_size: int = 20
    speaker_context_size: int = 5

    # Retrieval
    keyword_weight: float = 0.3
    vector_weight: float = 0.7
    search_top_k: int = 20
    rerank_top_n: int = 7
    rerank_batch_size: int = 5
    rerank_passage_chars: int = 800
    # IANA zone for relative dates ("last month"); system offset when empty
    timezone: str = ""

    # Seconds before any single external call is abandoned
    external_call_timeout: float = 60.0

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]
