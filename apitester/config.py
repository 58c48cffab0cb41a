# apitester/config.py
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized, env-driven configuration for the engine.
    Override via APITESTER_* environment variables or a .env file at repo root.
    """
    base_url: str = Field(default="")
    timeout_s: float = Field(default=30.0, gt=0)  # per request
    retries: int = Field(default=0, ge=0)
    backoff_base_s: float = Field(default=0.5, ge=0)
    verify_ssl: bool = Field(default=True)
    follow_redirects: bool = Field(default=True)
    max_concurrency: int = Field(default=1, ge=1)  # 1 = tests run one after another
    default_headers: Dict[str, str] = Field(default_factory=dict)
    log_level: str = Field(default="INFO")

    # Pydantic v2 config: ignore unknown envs, load .env in UTF-8
    model_config = SettingsConfigDict(
        env_prefix="APITESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
