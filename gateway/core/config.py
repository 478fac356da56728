from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Study Assistant Gateway"
    # Unknown values get the development allowlist.
    environment: str = "development"
    log_level: str = "INFO"

    # Data store (Supabase). The service role key doubles as the credential
    # for internal server-to-server calls such as the storage trigger.
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"

    huggingface_api_key: str = ""
    google_api_key: str = ""

    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_url_template: str = (
        "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"
    )
    chat_models: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "mistralai/Mistral-7B-Instruct-v0.3",
            "HuggingFaceH4/zephyr-7b-beta",
            "google/flan-t5-large",
        ]
    )
    chat_model_url_template: str = "https://router.huggingface.co/hf-inference/models/{model}"
    chat_model_status_url_template: str = "https://api-inference.huggingface.co/status/{model}"
    chat_max_new_tokens: int = 400
    chat_temperature: float = 0.7
    analysis_models: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["gemini-2.0-flash", "gemini-1.5-flash"]
    )
    gemini_url_template: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    )

    http_timeout_seconds: float = 60.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    model_loading_delay_seconds: float = 10.0

    match_count: int = 5
    multi_class_match_count: int = 3
    match_threshold: float = 0.5
    history_turns: int = 8

    chunk_size: int = 2000
    chunk_overlap: int = 200
    min_chunk_chars: int = 50
    max_text_chars: int = 1_000_000

    rate_limit_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_sweep_probability: float = 0.01

    @field_validator("chat_models", "analysis_models", mode="before")
    @classmethod
    def parse_model_list(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [model.strip() for model in value.split(",") if model.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
