"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- API keys and model names
- The Postgres/pgvector data store and the vector backend selection
- Crawl limits for the plan scraper
- Query/generation knobs
- PDF export location
- Optional observability (Langfuse)

A light-weight local safety warning is printed if OPENAI_API_KEY is not set when not running in Docker.
"""
import os
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Required
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")

    # Models
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"  # 1536 dims

    # Data stores
    DATABASE_URL: str = "postgresql+psycopg2://rag_user:rag_pass@db:5432/rag_db"
    VECTOR_BACKEND: str = "pgvector"  # "pgvector" | "memory"

    # Scraping
    SCRAPE_MAX_PAGES: int = 50
    SCRAPE_TIMEOUT_SECONDS: int = 20
    SCRAPE_SAME_HOST_ONLY: bool = True

    # Query/Generation
    QUERY_TOP_K: int = 10
    MAX_OUTPUT_TOKENS: int = 2048
    GENERATION_TEMPERATURE: float = 0.2

    # PDF export
    PDF_EXPORT_DIR: str = "data/pdf"
    PDF_BASE_URL: str = "http://localhost:8000/files"

    # Observability (optional)
    LANGFUSE_HOST: str = ""
    LANGFUSE_PUBLIC_KEY: str = ""
    LANGFUSE_SECRET_KEY: str = ""
    OTEL_CONSOLE_EXPORT: bool = False

    LOG_LEVEL: str = "INFO"

    # Derived
    @property
    def EMBEDDING_DIM(self) -> int:
        """Embedding dimension for the configured embedding model.

        Returns:
            int: The vector dimension inferred from OPENAI_EMBEDDING_MODEL.
        """
        model = self.OPENAI_EMBEDDING_MODEL.lower()
        if "text-embedding-3-small" in model:
            return 1536
        if "text-embedding-3-large" in model:
            return 3072
        # Fallback
        return 1536

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

# Safety check for local dev (inside API container this must be set)
if os.environ.get("RUNNING_IN_DOCKER", "0") == "0":
    if not settings.OPENAI_API_KEY:
        # Avoid raising to allow local scaffolding before setting .env
        print("[WARN] OPENAI_API_KEY not set. Set it in .env before running /scrape or /query.")
