from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from access_engine.engine.config import RuleEngineConfig
from access_engine.engine.types import Decision


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo).
    - Every field can be overridden with an ``ACCESS_`` environment variable,
      e.g. ``ACCESS_MAX_POLICY_EVALUATIONS=20``.
    """

    model_config = SettingsConfigDict(env_prefix="ACCESS_", extra="ignore")

    db_url: str | None = None
    catalog_path: str | None = None
    seed_organization_id: str | None = None
    log_level: str = "INFO"

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None

    cache_ttl_seconds: int = 300
    slow_query_threshold_ms: int = 100
    max_policy_evaluations: int = 50
    enable_audit_logging: bool = True
    enable_performance_monitoring: bool = True
    default_decision: Decision = Decision.DENY
    time_zone: str = "UTC"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "access_engine.db"
        return f"sqlite+aiosqlite:///{db_path}"

    def resolved_catalog_path(self) -> Path:
        if self.catalog_path:
            return Path(self.catalog_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "catalog.yaml"

    def engine_config(self) -> RuleEngineConfig:
        return RuleEngineConfig(
            cache_ttl_seconds=self.cache_ttl_seconds,
            slow_query_threshold_ms=self.slow_query_threshold_ms,
            max_policy_evaluations=self.max_policy_evaluations,
            enable_audit_logging=self.enable_audit_logging,
            enable_performance_monitoring=self.enable_performance_monitoring,
            default_decision=self.default_decision,
            time_zone=self.time_zone,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
