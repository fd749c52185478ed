from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_HOT_RELOAD: bool = False
    LOG_LEVEL: str = "INFO"

    # Chat/completion collaborator (OpenAI-compatible endpoint)
    UPSTREAM_OPENAI_BASE: str = "http://localhost:11434/v1"
    UPSTREAM_OPENAI_API_KEY: Optional[str] = None
    CHAT_MODEL_NAME: str = "gpt-4o-mini"
    CHAT_TEMPERATURE: float = 0.2
    CHAT_MAX_TOKENS: Optional[int] = None
    UPSTREAM_TIMEOUT_S: float = 60.0

    # Retrieval + memory
    QDRANT_URL: str = "http://localhost:6333"
    DOCUMENTS_COLLECTION: str = "rag_collection"
    MEMORY_COLLECTION: str = "agent_memory"
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-MiniLM-L6-v2"

    # External search
    GITHUB_API_BASE: str = "https://api.github.com"
    GITHUB_TOKEN: Optional[str] = None

    TOOLING_CONFIG_FILE: Optional[str] = None

    # Rough cost heuristic used in agent metrics
    COST_CHARS_PER_TOKEN: int = 4
    COST_PER_1K_TOKENS: float = 0.003
    COST_PER_TOOL_CALL: float = 0.001

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
