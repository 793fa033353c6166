"""Repochat application configuration.

Loads settings from two YAML files:
  * repochat.settings.yaml  — non-secret configuration
  * repochat.secrets.yaml   — secrets (never committed)

Secrets missing from the YAML file fall back to the conventional provider
environment variables (``OPENAI_API_KEY``, ``AWS_ACCESS_KEY_ID``, ...).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("repochat.settings.yaml")
SECRETS_FILE  = Path("repochat.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class AwsSecrets(BaseModel):
    access_key_id:     Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token:     Optional[str] = None
    region:            Optional[str] = "us-east-1"


class OpenAISecrets(BaseModel):
    api_key:  Optional[str] = None
    base_url: Optional[str] = None


class AnthropicSecrets(BaseModel):
    api_key: Optional[str] = None


class Secrets(BaseModel):
    aws:       AwsSecrets       = Field(default_factory=AwsSecrets)
    openai:    OpenAISecrets    = Field(default_factory=OpenAISecrets)
    anthropic: AnthropicSecrets = Field(default_factory=AnthropicSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:      str = "0.0.0.0"
    port:      int = 8000
    log_level: str = "info"


class EmbeddingSettings(BaseModel):
    """Embedding backend.  ``dim`` is a deployment constant shared by every row."""
    provider:                Literal["openai", "bedrock"] = "openai"
    model:                   str   = "text-embedding-3-small"
    dim:                     int   = Field(default=1536, ge=1)
    request_timeout_seconds: float = 30.0


class LLMSettings(BaseModel):
    """Chat model used for answer generation and query translation."""
    provider:                Literal["openai", "anthropic", "aws_bedrock"] = "openai"
    model:                   str   = "gpt-4o"
    translation_model:       Optional[str] = None
    temperature:             float = 0.7
    translation_temperature: float = 0.3
    max_tokens:              int   = 2048
    request_timeout_seconds: float = 120.0


class RagSettings(BaseModel):
    enabled:             bool  = True
    data_dir:            Optional[str] = "./rag_data"
    chunk_size:          int   = 1000
    chunk_overlap:       int   = 200
    search_limit:        int   = Field(default=5, ge=1)
    # Scoped searches use the stricter threshold; searching everything draws
    # from a larger, noisier candidate pool.
    scoped_threshold:    float = 0.3
    global_threshold:    float = 0.1
    rollback_on_failure: bool  = True
    translation_enabled: bool  = True

    @field_validator("scoped_threshold", "global_threshold")
    @classmethod
    def _threshold_in_unit_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("similarity thresholds must lie in [0, 1]")
        return value

    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "RagSettings":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")
        return self


class AppConfig(BaseModel):
    server:    ServerSettings    = Field(default_factory=ServerSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    llm:       LLMSettings       = Field(default_factory=LLMSettings)
    rag:       RagSettings       = Field(default_factory=RagSettings)
    secrets:   Secrets           = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment variable fallback
# ---------------------------------------------------------------------------

_ENV_FALLBACKS = (
    ("openai", "api_key", "OPENAI_API_KEY"),
    ("openai", "base_url", "OPENAI_BASE_URL"),
    ("anthropic", "api_key", "ANTHROPIC_API_KEY"),
    ("aws", "access_key_id", "AWS_ACCESS_KEY_ID"),
    ("aws", "secret_access_key", "AWS_SECRET_ACCESS_KEY"),
    ("aws", "session_token", "AWS_SESSION_TOKEN"),
    ("aws", "region", "AWS_DEFAULT_REGION"),
)


def _apply_env_fallbacks(secrets_data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill secrets absent from the YAML file from environment variables."""
    for section, key, env_var in _ENV_FALLBACKS:
        value = os.environ.get(env_var)
        if not value:
            continue
        block = secrets_data.setdefault(section, {}) or {}
        secrets_data[section] = block
        if not block.get(key):
            block[key] = value
            logger.debug("Secret %s.%s taken from $%s", section, key, env_var)
    return secrets_data


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _apply_env_fallbacks(_load_yaml(secrets_file))

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, embedding=%s/%s, llm=%s/%s, rag.enabled=%s)",
        config.server.host,
        config.server.port,
        config.embedding.provider,
        config.embedding.model,
        config.llm.provider,
        config.llm.model,
        config.rag.enabled,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace (or clear) the process-wide configuration."""
    global _config
    _config = config
