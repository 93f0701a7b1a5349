"""
Centralized configuration for the AI JSON client.

All settings are loaded from environment variables with sensible defaults.
Pydantic Settings provides validation and type coercion; per-call arguments
override these process-wide defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

logger = structlog.get_logger()

# Load .env then .env.local (so .env.local overrides). Shell variables win over both.
_repo_root = Path(__file__).resolve().parent.parent
load_dotenv(_repo_root / ".env")
_env_local = _repo_root / ".env.local"
if _env_local.exists():
    load_dotenv(_env_local, override=True)

# Built-in candidate lists, used when neither env nor models.yaml name any models.
DEFAULT_OPENAI_MODELS = ("gpt-4o", "gpt-4o-mini")
DEFAULT_GEMINI_MODELS = ("gemini-2.0-flash",)


class LLMConfig(BaseSettings):
    """Provider credentials and default model identifiers."""

    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("OPENAI_API_KEY", "OPEN_API_KEY"),
    )
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )

    # Empty means "not set in env"; default_models() then falls back to YAML / built-ins.
    openai_primary_model: str = Field(default="", alias="OPENAI_PRIMARY_MODEL")
    openai_fallback_model: str = Field(default="", alias="OPENAI_FALLBACK_MODEL")
    gemini_models: str = Field(
        default="",
        alias="GEMINI_MODELS",
        description="Comma-separated Gemini model ids, tried in order.",
    )

    # Shared generation params
    temperature: float = Field(default=0.2, alias="AI_TEMPERATURE")
    max_tokens: int = Field(default=4096, alias="AI_MAX_TOKENS")


class AIRequestConfig(BaseSettings):
    """Timeout, retry, JSON repair and model demotion tuning."""

    timeout_ms: int = Field(default=30000, alias="AI_REQUEST_TIMEOUT_MS")
    max_attempts: int = Field(default=3, alias="AI_REQUEST_MAX_ATTEMPTS")
    base_delay_ms: int = Field(default=500, alias="AI_RETRY_BASE_DELAY_MS")
    # Hard ceiling on how many trailing chars truncation repair may trim
    json_repair_max_trim_chars: int = Field(default=256, alias="AI_JSON_REPAIR_MAX_TRIM_CHARS")
    demotion_threshold: int = Field(default=3, alias="AI_MODEL_DEMOTION_THRESHOLD")
    demotion_window_ms: int = Field(default=300000, alias="AI_MODEL_DEMOTION_WINDOW_MS")


class ObservabilityConfig(BaseSettings):
    """Logging and Prometheus metrics."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    # Prometheus: client exposes /metrics on this port when enabled
    metrics_enabled: bool = Field(default=False, alias="PROMETHEUS_METRICS_ENABLED")
    metrics_port: int = Field(default=8000, alias="PROMETHEUS_METRICS_PORT")


class YAMLConfigLoader:
    """Loads YAML config files from a configurable directory."""

    def __init__(self, config_dir: str | Path = "config") -> None:
        self._dir = _repo_root / config_dir

    def load(self, filename: str) -> dict[str, Any]:
        """Load a YAML file; returns empty dict if the file is missing or unreadable."""
        path = self._dir / filename
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("config_yaml_unreadable", path=str(path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}


def _split_models(value: str) -> list[str]:
    return [m.strip() for m in value.split(",") if m.strip()]


def redact(value: str) -> str:
    """Mask a secret for display: keep the first and last three chars."""
    if not value:
        return "<empty>"
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-3:]}"


class Settings(BaseSettings):
    """Root settings container: access all config from one object."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    ai: AIRequestConfig = Field(default_factory=AIRequestConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    # YAML-loaded config (populated in get_settings)
    model_routing: dict[str, Any] = Field(default_factory=dict)

    def default_models(self, provider: str) -> list[str]:
        """Candidate models for a provider family: env > models.yaml > built-in defaults."""
        if provider == "openai":
            from_env = [m for m in (self.llm.openai_primary_model, self.llm.openai_fallback_model) if m.strip()]
            builtin = list(DEFAULT_OPENAI_MODELS)
        elif provider == "gemini":
            from_env = _split_models(self.llm.gemini_models)
            builtin = list(DEFAULT_GEMINI_MODELS)
        else:
            raise ValueError(f"Unknown provider family: {provider}")
        if from_env:
            return [m.strip() for m in from_env]
        routed = (self.model_routing.get("providers") or {}).get(provider) or {}
        models = routed.get("models") if isinstance(routed, dict) else None
        if isinstance(models, list) and models:
            return [str(m) for m in models]
        return builtin


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance. Cached after first call."""
    settings = Settings()
    settings.model_routing = YAMLConfigLoader().load("models.yaml")
    return settings
