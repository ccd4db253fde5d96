"""Application configuration models."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


REPO_ROOT = Path(__file__).resolve().parents[2]


class LLMSettings(BaseModel):
    """Settings for the hosted model endpoint and model selection."""

    base_url: str = Field(default="https://api.anthropic.com", description="Messages API base URL")
    api_key: Optional[str] = Field(default=None, description="API key sent as x-api-key")
    api_version: str = Field(default="2023-06-01", description="anthropic-version header")
    default_model: str = Field(default="claude-sonnet-4-5", description="Model used when a request names none")
    available_models: list[str] = Field(
        default_factory=lambda: ["claude-opus-4-20250514", "claude-sonnet-4-5", "claude-haiku-4-5"],
        description="Models a chat request may select",
    )
    max_tokens: int = Field(default=4096, ge=1)
    timeout: float = Field(default=120.0, gt=0)
    default_system_prompt: Optional[str] = Field(
        default=None,
        description="System prompt used when neither the request nor the conversation sets one",
    )


class AppSettings(BaseSettings):
    """Top-level settings entry point."""

    model_config = SettingsConfigDict(
        env_prefix="BRANCHCHAT_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        protected_namespaces=(),
    )

    LLM: LLMSettings = LLMSettings()
    conversation_db_path: Path = Field(default=REPO_ROOT / "backend" / "data" / "conversations.db")
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:5173",
            "http://localhost:8000",
            "http://127.0.0.1",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:8000",
        ]
    )


_settings_instance: AppSettings | None = None


def get_settings() -> AppSettings:
    """Singleton accessor for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = AppSettings()
    return _settings_instance


def patch_settings(data: dict) -> AppSettings:
    """Apply a partial update to application settings at runtime."""
    global _settings_instance
    merged = get_settings().model_dump()
    for key, value in data.items():
        if key == "LLM" and isinstance(value, dict):
            merged["LLM"] = {**merged["LLM"], **value}
        else:
            merged[key] = value
    new_settings = AppSettings.model_validate(merged)
    _settings_instance = new_settings
    return new_settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings_instance
    _settings_instance = None
