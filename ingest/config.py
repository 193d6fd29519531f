"""
Configuration settings for the message ingest pipeline.

Uses Pydantic Settings to load environment variables for the Postgres store,
the Redis Streams channel, consumer-group tuning, and logging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("message_ingest", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")
    db_statement_timeout_ms: int = Field(30_000, alias="DB_STATEMENT_TIMEOUT_MS")

    # Channel
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    message_topic: str = Field("messages", alias="MESSAGE_TOPIC")
    consumer_group: str = Field("ingest-group", alias="CONSUMER_GROUP")
    consumer_name: str = Field("ingest-consumer-1", alias="CONSUMER_NAME")
    consumer_block_ms: int = Field(1000, alias="CONSUMER_BLOCK_MS")
    consumer_batch_size: int = Field(10, alias="CONSUMER_BATCH_SIZE")

    # Storage
    store_backend: Literal["memory", "postgres"] = Field("memory", alias="STORE_BACKEND")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
