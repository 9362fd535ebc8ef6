"""Configuration utilities for the assessment engine.

This module loads application configuration with the following rules:
- Primary source: `assessment_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator


CONFIG_DIR = Path("config")
ROOT_CONFIG = Path("assessment_config.json")
logger = logging.getLogger(__name__)


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


class DatabaseConfig(BaseModel):
    dsn: str

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class DraftsConfig(BaseModel):
    dsn: str = "sqlite+pysqlite:///drafts.db"
    author_debounce_seconds: float = Field(default=2.0, ge=0)
    response_debounce_seconds: float = Field(default=1.0, ge=0)
    retention_days: int = Field(default=7, gt=0)


class ReconciliationConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=0.5, gt=0)


class SimulationConfig(BaseModel):
    min_latency_ms: int = Field(default=0, ge=0)
    max_latency_ms: int = Field(default=0, ge=0)
    write_failure_rate: float = Field(default=0.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def latency_bounds_ordered(self) -> "SimulationConfig":
        if self.max_latency_ms < self.min_latency_ms:
            raise ValueError("simulation.max_latency_ms must be >= simulation.min_latency_ms")
        return self


class AppConfig(BaseModel):
    database: DatabaseConfig
    drafts: DraftsConfig = Field(default_factory=DraftsConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) assessment_config.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_CONFIG)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    def _pick(env_key: str, file_key: str, base_key: str, default: str) -> str:
        value = _env(env_key) or _read_config_file(file_key) or _base(base_key, default)
        return str(value).strip()

    # Canonical store
    dsn = _env("DATABASE_URL") or _read_config_file("database.url") or _base("database.dsn") or "sqlite+pysqlite:///:memory:"

    # Local drafts
    drafts_dsn = _pick("DRAFTS_DATABASE_URL", "drafts.url", "drafts.dsn", "sqlite+pysqlite:///drafts.db")
    author_debounce = _pick("DRAFTS_AUTHOR_DEBOUNCE_SECONDS", "drafts.author_debounce_seconds", "drafts.author_debounce_seconds", "2.0")
    response_debounce = _pick("DRAFTS_RESPONSE_DEBOUNCE_SECONDS", "drafts.response_debounce_seconds", "drafts.response_debounce_seconds", "1.0")
    retention_days = _pick("DRAFTS_RETENTION_DAYS", "drafts.retention_days", "drafts.retention_days", "7")

    # Reconciliation
    max_attempts = _pick("RECONCILIATION_MAX_ATTEMPTS", "reconciliation.max_attempts", "reconciliation.max_attempts", "3")
    backoff_base = _pick("RECONCILIATION_BACKOFF_BASE_SECONDS", "reconciliation.backoff_base_seconds", "reconciliation.backoff_base_seconds", "0.5")

    # Simulated remote behaviour
    min_latency = _pick("SIMULATION_MIN_LATENCY_MS", "simulation.min_latency_ms", "simulation.min_latency_ms", "0")
    max_latency = _pick("SIMULATION_MAX_LATENCY_MS", "simulation.max_latency_ms", "simulation.max_latency_ms", "0")
    failure_rate = _pick("SIMULATION_WRITE_FAILURE_RATE", "simulation.write_failure_rate", "simulation.write_failure_rate", "0")

    try:
        cfg = AppConfig(
            database=DatabaseConfig(dsn=dsn),
            drafts=DraftsConfig(
                dsn=drafts_dsn,
                author_debounce_seconds=author_debounce,
                response_debounce_seconds=response_debounce,
                retention_days=retention_days,
            ),
            reconciliation=ReconciliationConfig(
                max_attempts=max_attempts,
                backoff_base_seconds=backoff_base,
            ),
            simulation=SimulationConfig(
                min_latency_ms=min_latency,
                max_latency_ms=max_latency,
                write_failure_rate=failure_rate,
            ),
        )
        return cfg
    except PydanticValidationError as e:
        logger.error("Invalid application configuration: %s", e)
        raise


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "DraftsConfig",
    "ReconciliationConfig",
    "SimulationConfig",
    "load_config",
]
