"""Shared Redis connection settings for the persistence adapters."""

from dataclasses import dataclass
from importlib import import_module
from typing import Any


@dataclass
class RedisConfig:
    """Configuration for Redis connection."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None
    decode_responses: bool = True


def connect(cfg: RedisConfig) -> Any:
    """Build a redis-py client with lazy import. Raises whatever redis raises."""
    redis = import_module("redis")
    return redis.Redis(
        host=cfg.host,
        port=cfg.port,
        db=cfg.db,
        password=cfg.password,
        decode_responses=cfg.decode_responses,
    )


def iso(value: Any) -> str:
    return value.isoformat() if value is not None else ""
