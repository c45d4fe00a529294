"""
Application configuration using Pydantic Settings
"""
import os
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_NAME = "au-jour-le-jour"
APP_VERSION = "1.1.0"
SCHEMA_VERSION = "2"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables

    Built once at start-up and handed to the components that need it
    (engine factory, advisor client) instead of reading os.environ ad hoc.
    """
    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 4567
    DEBUG: bool = False

    # Storage
    DATA_DIR: str = "data"
    DATABASE_URL: str = ""

    # Assistant / advisor (LLM)
    LLM_PROVIDER: str = "disabled"  # ollama, openai, disabled
    LLM_MODEL: str = "qwen2.5-coder:7b-instruct"
    LLM_BASE_URL: str = "http://127.0.0.1:11434"
    LLM_API_KEY: str = ""
    LLM_TIMEOUT_SECONDS: float = 15.0
    LLM_MAX_RETRIES: int = 1
    LLM_BACKOFF_SECONDS: float = 0.2
    LLM_MAX_TOKENS: int = 512
    LLM_TEMPERATURE: float = 0.2

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_sqlalchemy_url(self) -> str:
        """
        SQLAlchemy URL; defaults to a sqlite file inside DATA_DIR
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{os.path.join(self.DATA_DIR, 'au_jour_le_jour.sqlite')}"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
