from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "TalentSift"
    app_env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/talentsift.db"
    data_dir: Path = Path("./data")

    storage_backend: str = "local"
    storage_root: Path = Path("./data/storage")
    storage_max_retries: int = 2
    storage_retry_delay_sec: float = 1.0

    ats_base_url: str = "https://api.ceipal.com/v1"
    ats_email: str = ""
    ats_password: str = ""
    ats_api_key: str = ""
    ats_access_token: str = ""
    ats_timeout_sec: int = 30
    ats_page_limit: int = 20
    ats_max_pages: int = 100

    parser_api_key: str = ""
    parser_base_url: str = "https://api.cloud.llamaindex.ai/api/parsing"
    parser_timeout_sec: int = 60
    parser_poll_interval_sec: float = 5.0
    parser_max_poll_attempts: int = 60
    parser_max_retries: int = 2
    parser_retry_base_delay_sec: float = 2.0
    parser_cost_per_page: float = 0.003

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_timeout_sec: int = 60
    openai_model_extractor: str = "gpt-4o-mini"
    openai_model_extractor_fallback: str = "gpt-4o"
    openai_model_ranking: str = "gpt-4o"
    openai_model_ranking_fallback: str = "gpt-4o-mini"
    openai_temperature: float = 0.4
    openai_embedding_model: str = "text-embedding-3-small"

    embedding_dimensions: int = 1536
    embedding_max_chars: int = 8192 * 4

    ranking_default_concurrency: int = 5
    ranking_max_concurrency: int = 10
    ranking_default_score: int = 50

    processing_stale_after_min: int = 30
    processing_recent_log_limit: int = 20
    run_registry_ttl_sec: int = 3600

    cors_origins: str = "http://127.0.0.1:3000"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"local"}:
            raise ValueError("storage_backend must be 'local'")
        return normalized

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def extractor_models(self) -> list[str]:
        return _dedupe([self.openai_model_extractor, self.openai_model_extractor_fallback])

    @property
    def ranking_models(self) -> list[str]:
        return _dedupe([self.openai_model_ranking, self.openai_model_ranking_fallback])


def _dedupe(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
