from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel


class RedisConfig(BaseModel):
    """Connection settings for the Redis active-workflow cache."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class CacheConfig(BaseModel):
    """Active-workflow cache settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    ttl_seconds: int = 900
    redis: RedisConfig = RedisConfig()


class EngineConfig(BaseModel):
    """Workflow engine behaviour."""

    execute_timeout: float = 30.0
    conflict_policy: Literal["route", "reject"] = "route"


class ConciergeConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    cache: CacheConfig = CacheConfig()
    engine: EngineConfig = EngineConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ConciergeConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to CONCIERGE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("CONCIERGE_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ConciergeConfig(**data)
    else:
        config = ConciergeConfig()

    env_db_url = os.getenv("CONCIERGE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
