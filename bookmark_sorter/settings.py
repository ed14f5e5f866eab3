"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///data/app.db"
    INIT_RUN: bool = False
    LOG_LEVEL: str = "INFO"

    LLM_PROVIDER: str = "default"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = ""
    LLM_BASE_URL: str = ""
    OLLAMA_HOST: str = "http://localhost:11434"
    DEFAULT_PROXY_URL: str = "https://aibookmark.tenb68.workers.dev"

    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    PROVIDER_MAX_ATTEMPTS: int = 3
    PROVIDER_BACKOFF_SECONDS: float = 1.0
    PROVIDER_TEMPERATURE: float = 0.3

    EXTRACT_TIMEOUT_SECONDS: float = 5.0
    EXTRACT_BODY_CHARS: int = 500
    EXTRACT_USER_AGENT: str = "SmartBookmarkSorter/1.0"

    FOLDER_POLICY: str = "weak"
    SMART_RENAME: bool = False
    LANGUAGE: str = "zh_CN"

    ROOT_FOLDER_TITLE: str = "Bookmarks Bar"
    SELF_CREATED_TTL_SECONDS: float = 10.0
    HISTORY_LIMIT: int = 100

    class Config:
        env_file = ".env"


S = Settings()
