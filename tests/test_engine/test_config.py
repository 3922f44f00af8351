from __future__ import annotations

import logging

import pytest

from access_engine.engine import Decision, RuleEngineConfig
from access_engine.logging_config import configure_app_logging
from access_engine.settings import Settings


def test_defaults():
    config = RuleEngineConfig()
    assert config.cache_ttl_seconds == 300
    assert config.slow_query_threshold_ms == 100
    assert config.max_policy_evaluations == 50
    assert config.default_decision is Decision.DENY
    assert "super_admin" in config.global_role_codes


def test_config_is_immutable():
    config = RuleEngineConfig()
    with pytest.raises(AttributeError):
        config.max_policy_evaluations = 1


@pytest.mark.parametrize("field", ["max_policy_evaluations", "cache_ttl_seconds"])
def test_negative_budgets_are_rejected(field):
    with pytest.raises(ValueError):
        RuleEngineConfig(**{field: -1})


def test_default_decision_accepts_plain_string():
    assert RuleEngineConfig(default_decision="PERMIT").default_decision is Decision.PERMIT


def test_time_zone_defaults_to_utc_and_is_validated():
    assert RuleEngineConfig().zone.key == "UTC"
    assert RuleEngineConfig(time_zone="Europe/Berlin").zone.key == "Europe/Berlin"
    with pytest.raises(ValueError, match="unknown time_zone"):
        RuleEngineConfig(time_zone="Mars/Olympus_Mons")


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("ACCESS_MAX_POLICY_EVALUATIONS", "20")
    monkeypatch.setenv("ACCESS_DEFAULT_DECISION", "INDETERMINATE")
    monkeypatch.setenv("ACCESS_ENABLE_AUDIT_LOGGING", "false")
    monkeypatch.setenv("ACCESS_TIME_ZONE", "Europe/Berlin")

    config = Settings().engine_config()

    assert config.max_policy_evaluations == 20
    assert config.default_decision is Decision.INDETERMINATE
    assert config.enable_audit_logging is False
    assert config.time_zone == "Europe/Berlin"


def test_settings_default_paths():
    settings = Settings(db_url=None, catalog_path=None)
    assert settings.resolved_db_url().startswith("sqlite+aiosqlite:///")
    assert settings.resolved_catalog_path().name == "catalog.yaml"


@pytest.fixture
def package_logger():
    logger = logging.getLogger("access_engine")
    previous = logger.level
    yield logger
    logger.setLevel(previous)


def test_configure_app_logging_sets_package_level(package_logger):
    configure_app_logging("debug")

    assert package_logger.level == logging.DEBUG
    assert logging.getLogger("access_engine.engine.rbac").getEffectiveLevel() == logging.DEBUG


def test_configure_app_logging_rejects_unknown_level(package_logger):
    with pytest.raises(ValueError):
        configure_app_logging("loud")
