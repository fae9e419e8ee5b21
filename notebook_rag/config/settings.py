"""Application settings with environment-driven configuration.

Why: Single place that reads env; numeric knobs are clamped to the ranges
     the answering pipeline is designed for.
"""

import os
from dataclasses import dataclass, field

from notebook_rag.domain.services.skills import DEFAULT_PLANNING_PATTERN


def _env(name: str, default: str = "") -> str:
    """Read an env var, stripping whitespace and surrounding quotes."""
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1].strip()
    return value or default


def _int(name: str, default: int, low: int | None = None, high: int | None = None) -> int:
    """Positive int from env; unparsable values fall back to default, then clamp."""
    try:
        value = int(_env(name, str(default)))
    except ValueError:
        value = default
    if value <= 0:
        value = default
    if low is not None:
        value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


def _int_or_zero(name: str) -> int:
    """Redis db index: 0 is valid, so the positive-int rule does not apply."""
    try:
        return int(_env(name, "0"))
    except ValueError:
        return 0


def _float(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))
    except ValueError:
        return default


def _bool(name: str, default: bool = False) -> bool:
    value = _env(name, "true" if default else "false").lower()
    return value in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    This is the ONLY place where environment variables are read.
    All other layers receive settings via dependency injection.
    """

    # ===== Answering Pipeline =====
    top_k: int = field(default_factory=lambda: _int("CHAT_TOP_K", 8))
    per_source_cap: int = field(default_factory=lambda: _int("CHAT_PER_SOURCE_CAP", 4))
    candidate_limit: int = field(default_factory=lambda: _int("CHAT_CANDIDATE_LIMIT", 240))
    history_turns: int = field(default_factory=lambda: _int("CHAT_HISTORY_TURNS", 10))

    # ===== Script Orchestration =====
    script_source_limit: int = field(
        default_factory=lambda: _int("CHAT_SCRIPT_SOURCE_LIMIT", 2, 1, 3)
    )
    script_poll_ms: int = field(
        default_factory=lambda: _int("CHAT_SCRIPT_POLL_MS", 350, 200, 1000)
    )
    script_wait_ms: int = field(
        default_factory=lambda: _int("CHAT_SCRIPT_WAIT_MS", 7000, 1500, 20_000)
    )
    script_timeout_ms: int = field(
        default_factory=lambda: _int("CHAT_SCRIPT_TIMEOUT_MS", 10_000, 10_000, 12_000)
    )
    script_memory_mb: int = field(
        default_factory=lambda: _int("CHAT_SCRIPT_MEMORY_MB", 256, 64, 1024)
    )

    # ===== Skills =====
    script_extractor_available: bool = field(
        default_factory=lambda: _bool("SKILL_LINK_EXTRACTOR", False)
    )
    skill_planning_pattern: str = field(
        default_factory=lambda: _env("SKILL_PLANNING_PATTERN", DEFAULT_PLANNING_PATTERN)
    )

    # ===== Vector Store (Qdrant) =====
    qdrant_url: str = field(default_factory=lambda: _env("QDRANT_URL", "http://localhost:6333"))
    qdrant_api_key: str = field(default_factory=lambda: _env("QDRANT_API_KEY", ""))
    qdrant_collection: str = field(
        default_factory=lambda: _env("QDRANT_COLLECTION", "notebook_chunks")
    )
    qdrant_timeout_s: int = field(default_factory=lambda: _int("QDRANT_TIMEOUT_S", 30))

    # ===== Redis (jobs, conversations, skill state, catalog) =====
    redis_host: str = field(default_factory=lambda: _env("REDIS_HOST", "localhost"))
    redis_port: int = field(default_factory=lambda: _int("REDIS_PORT", 6379))
    redis_db: int = field(default_factory=lambda: max(0, _int_or_zero("REDIS_DB")))
    redis_password: str = field(default_factory=lambda: _env("REDIS_PASSWORD", ""))

    # ===== Embedding Configuration =====
    embedding_model: str = field(
        default_factory=lambda: _env("EMBEDDING_MODEL", "intfloat/multilingual-e5-large-instruct")
    )
    embedding_device: str = field(default_factory=lambda: _env("EMBEDDING_DEVICE", "cpu"))
    # Supported: "cpu" | "cuda" | "mps"

    # ===== LLM Configuration =====
    llm_base_url: str = field(
        default_factory=lambda: _env("LLM_BASE_URL", "http://localhost:8000/v1")
    )
    llm_api_key: str = field(default_factory=lambda: _env("LLM_API_KEY", "EMPTY"))
    llm_model: str = field(
        default_factory=lambda: _env("LLM_MODEL", "meta-llama/Meta-Llama-3.1-8B-Instruct")
    )
    llm_temperature: float = field(default_factory=lambda: _float("LLM_TEMPERATURE", 0.2))
    llm_max_tokens: int = field(default_factory=lambda: _int("LLM_MAX_TOKENS", 1024))

    # ===== Logging =====
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())
    log_format: str = field(default_factory=lambda: _env("LOG_FORMAT", "json").lower())
    # Supported: "json" | "console"

    # ===== Telemetry Configuration =====
    telemetry_enabled: bool = field(default_factory=lambda: _bool("TELEMETRY_ENABLED", True))
    otlp_endpoint: str = field(default_factory=lambda: _env("OTLP_ENDPOINT", ""))
    # Empty string = no OTLP export

    telemetry_environment: str = field(
        default_factory=lambda: _env("TELEMETRY_ENVIRONMENT", "production")
    )
