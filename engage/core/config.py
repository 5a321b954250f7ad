from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Circle Engage", alias="APP_NAME")
    app_env: Literal["dev", "staging", "prod"] = Field(default="dev", alias="APP_ENV")

    api_base_url: str = Field(
        default="http://localhost:5000/api/v1",
        alias="API_BASE_URL",
        validation_alias=AliasChoices("API_BASE_URL", "ENGAGE_API_URL"),
    )
    api_timeout_seconds: float = Field(default=10.0, alias="API_TIMEOUT_SECONDS")

    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    feed_channel_prefix: str = Field(default="post-updates", alias="FEED_CHANNEL_PREFIX")
    feed_poll_seconds: float = Field(default=1.0, alias="FEED_POLL_SECONDS")
    feed_restart_delay_seconds: float = Field(default=2.0, alias="FEED_RESTART_DELAY_SECONDS")

    xp_receive_like: int = Field(default=5, alias="XP_RECEIVE_LIKE")
    xp_receive_comment_like: int = Field(default=5, alias="XP_RECEIVE_COMMENT_LIKE")

    comment_max_length: int = Field(default=1000, alias="COMMENT_MAX_LENGTH")
    default_reaction: str = Field(default="👍", alias="DEFAULT_REACTION")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @property
    def api_root(self) -> str:
        return self.api_base_url.strip().rstrip("/")

    def feed_channel(self, post_id: str) -> str:
        return f"{self.feed_channel_prefix}:{post_id}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
