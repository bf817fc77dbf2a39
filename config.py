"""Configuration management for the intelligence aggregation service.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Required:
        OPENAI_API_KEY: API key for the scoring oracle (OpenAI models)

    Models (PydanticAI format - provider:model):
        SCORER_MODEL: Model for per-item categorization and scoring
        ANALYST_MODEL: Model for deep strategic analysis of HIGH items
        LINKER_MODEL: Model for cross-item connections and trends
        MODEL_TEMPERATURE: Sampling temperature for all oracle calls

    Sources:
        FETCH_TIMEOUT: Per-request timeout for feed fetches (seconds)

    Scoring:
        SCORE_BATCH_SIZE: Items scored concurrently per group
        SCORE_BATCH_DELAY: Pause between groups (seconds)
        ORACLE_RATE_PER_MINUTE: Token-bucket limit for oracle calls (0 = off)

    Ranking & Linking:
        MAX_RANKED_ITEMS: Items kept in the published snapshot
        LINK_CANDIDATES: Top items sent to the cross-link pass

    Service:
        REFRESH_INTERVAL_SECONDS: Delay between scheduled refreshes
        API_HOST / API_PORT: Bind address for the HTTP API
        CORS_ORIGINS: Comma-separated allowed origins ('*' for any)

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

N = TypeVar("N", int, float)

DEFAULT_MODEL = "openai:gpt-4o-mini"

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _env(key: str, default: str = "") -> str:
    """String setting; empty string when unset and no default is given."""
    return os.environ.get(key, default)


def _env_number(key: str, default: N, cast: Callable[[str], N]) -> N:
    """Numeric setting parsed with `cast` (int or float).

    Raises:
        ValueError: If the variable is set but does not parse, naming the key
    """
    val = os.environ.get(key, "").strip()
    if not val:
        return default
    try:
        return cast(val)
    except ValueError:
        raise ValueError(f"Invalid {cast.__name__} value for {key}: '{val}'") from None


def _env_int(key: str, default: int) -> int:
    return _env_number(key, default, int)


def _env_float(key: str, default: float) -> float:
    return _env_number(key, default, float)


def _env_bool(key: str, default: bool = False) -> bool:
    """Boolean setting: 1/true/yes/on or 0/false/no/off, else `default`."""
    val = os.environ.get(key, "").strip().lower()
    if val in _TRUTHY:
        return True
    if val in _FALSY:
        return False
    return default


def _env_list(key: str, default: list[str]) -> list[str]:
    """Get comma-separated list environment variable with default."""
    val = os.environ.get(key)
    if not val:
        return list(default)
    return [part.strip() for part in val.split(",") if part.strip()]


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    All settings can be overridden via environment variables. Use Config.load()
    to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Required ===
    openai_api_key: str = ""  # OPENAI_API_KEY

    # === AI Models ===
    # PydanticAI format: provider:model, or openai:{model}@{base_url} for local servers
    scorer_model: str = DEFAULT_MODEL  # First-pass categorization
    analyst_model: str = DEFAULT_MODEL  # Deep-dive for HIGH items
    linker_model: str = DEFAULT_MODEL  # Connections and trends
    model_temperature: float = 0.3  # MODEL_TEMPERATURE

    # === Sources ===
    fetch_timeout: float = 10.0  # FETCH_TIMEOUT - Bounded wait per request

    # === Scoring ===
    score_batch_size: int = 5  # SCORE_BATCH_SIZE - Concurrent calls per group
    score_batch_delay: float = 2.0  # SCORE_BATCH_DELAY - Seconds between groups
    oracle_rate_per_minute: float = 0.0  # ORACLE_RATE_PER_MINUTE - 0 disables the bucket

    # === Ranking & Linking ===
    max_ranked_items: int = 20  # MAX_RANKED_ITEMS
    link_candidates: int = 10  # LINK_CANDIDATES

    # === Service ===
    refresh_interval_seconds: int = 7200  # REFRESH_INTERVAL_SECONDS - every 2 hours
    api_host: str = "0.0.0.0"  # API_HOST
    api_port: int = 3001  # API_PORT
    cors_origins: list[str] = field(default_factory=lambda: ["*"])  # CORS_ORIGINS

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR

    # === Logging Configuration ===
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            scorer_model=_env("SCORER_MODEL", DEFAULT_MODEL),
            analyst_model=_env("ANALYST_MODEL", DEFAULT_MODEL),
            linker_model=_env("LINKER_MODEL", DEFAULT_MODEL),
            model_temperature=_env_float("MODEL_TEMPERATURE", 0.3),
            fetch_timeout=_env_float("FETCH_TIMEOUT", 10.0),
            score_batch_size=_env_int("SCORE_BATCH_SIZE", 5),
            score_batch_delay=_env_float("SCORE_BATCH_DELAY", 2.0),
            oracle_rate_per_minute=_env_float("ORACLE_RATE_PER_MINUTE", 0.0),
            max_ranked_items=_env_int("MAX_RANKED_ITEMS", 20),
            link_candidates=_env_int("LINK_CANDIDATES", 10),
            refresh_interval_seconds=_env_int("REFRESH_INTERVAL_SECONDS", 7200),
            api_host=_env("API_HOST", "0.0.0.0"),
            api_port=_env_int("API_PORT", 3001),
            cors_origins=_env_list("CORS_ORIGINS", ["*"]),
            log_dir=Path(_env("LOG_DIR", "log")),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    def uses_openai(self) -> bool:
        """Whether any configured model talks to the hosted OpenAI API."""
        models = (self.scorer_model, self.analyst_model, self.linker_model)
        return any(m.startswith("openai:") and "@" not in m for m in models)

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if self.uses_openai() and not self.openai_api_key:
            return "OPENAI_API_KEY environment variable is required"
        if self.fetch_timeout <= 0:
            return "FETCH_TIMEOUT must be positive"
        if self.score_batch_size <= 0:
            return "SCORE_BATCH_SIZE must be positive"
        if self.score_batch_delay < 0:
            return "SCORE_BATCH_DELAY must be non-negative"
        if self.oracle_rate_per_minute < 0:
            return "ORACLE_RATE_PER_MINUTE must be non-negative"
        if self.max_ranked_items <= 0:
            return "MAX_RANKED_ITEMS must be positive"
        if self.link_candidates < 2:
            return "LINK_CANDIDATES must be at least 2"
        if self.refresh_interval_seconds <= 0:
            return "REFRESH_INTERVAL_SECONDS must be positive"
        if not 0 < self.api_port < 65536:
            return f"Invalid API_PORT '{self.api_port}'"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
