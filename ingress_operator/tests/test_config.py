from __future__ import annotations

import pytest

from ingress_operator.src.config import (
    ConfigError,
    OperatorConfig,
    env_int,
    load_config,
    parse_bool,
)


def test_load_config_defaults() -> None:
    assert load_config({}) == OperatorConfig()


def test_load_config_custom_values() -> None:
    config = load_config(
        {
            "OPERATOR_NAMESPACE": " ingress-operator ",
            "OPERAND_NAMESPACE": "ingress",
            "RECONCILE_INTERVAL_SECONDS": "15",
            "CACHE_SYNC_TIMEOUT_SECONDS": "5",
            "GATEWAY_API_ENABLED": "yes",
            "HEALTH_PORT": "9090",
        }
    )

    assert config.namespace == "ingress-operator"
    assert config.operand_namespace == "ingress"
    assert config.reconcile_interval_seconds == 15
    assert config.cache_sync_timeout_seconds == 5
    assert config.gateway_api_enabled is True
    assert config.use_cache is False
    assert config.health_port == 9090


def test_load_config_rejects_cached_reads() -> None:
    with pytest.raises(ConfigError, match="USE_CACHE=true is not supported"):
        load_config({"USE_CACHE": "true"})


def test_load_config_accepts_explicit_uncached_reads() -> None:
    assert load_config({"USE_CACHE": "false"}).use_cache is False


def test_load_config_rejects_empty_namespace() -> None:
    with pytest.raises(ConfigError, match="OPERATOR_NAMESPACE must be a non-empty string"):
        load_config({"OPERATOR_NAMESPACE": "  "})


def test_load_config_rejects_zero_interval() -> None:
    with pytest.raises(ConfigError, match="RECONCILE_INTERVAL_SECONDS must be >= 1, got: 0"):
        load_config({"RECONCILE_INTERVAL_SECONDS": "0"})


def test_load_config_rejects_cache_sync_timeout_longer_than_interval() -> None:
    with pytest.raises(
        ConfigError,
        match="CACHE_SYNC_TIMEOUT_SECONDS must be <= RECONCILE_INTERVAL_SECONDS, got: 30 > 10",
    ):
        load_config({"RECONCILE_INTERVAL_SECONDS": "10"})


def test_load_config_accepts_cache_sync_timeout_equal_to_interval() -> None:
    config = load_config(
        {"RECONCILE_INTERVAL_SECONDS": "10", "CACHE_SYNC_TIMEOUT_SECONDS": "10"}
    )

    assert config.cache_sync_timeout_seconds == config.reconcile_interval_seconds == 10


def test_load_config_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RECONCILE_INTERVAL_SECONDS", "30")

    assert load_config().reconcile_interval_seconds == 30


def test_env_int_returns_default_when_not_set() -> None:
    assert env_int({}, "TEST_INT", 42) == 42


def test_env_int_raises_on_non_numeric() -> None:
    with pytest.raises(ConfigError, match="TEST_INT must be an integer"):
        env_int({"TEST_INT": "abc"}, "TEST_INT", 42)


def test_env_int_raises_on_empty_string() -> None:
    with pytest.raises(ConfigError, match="TEST_INT must be an integer"):
        env_int({"TEST_INT": ""}, "TEST_INT", 42)


def test_env_int_enforces_bounds() -> None:
    with pytest.raises(ConfigError, match="TEST_INT must be >= 0, got: -1"):
        env_int({"TEST_INT": "-1"}, "TEST_INT", 42, minimum=0)
    with pytest.raises(ConfigError, match="TEST_INT must be <= 10, got: 11"):
        env_int({"TEST_INT": "11"}, "TEST_INT", 5, maximum=10)


@pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "on", "  true  "])
def test_parse_bool_truthy_values(value: str) -> None:
    assert parse_bool(value) is True


@pytest.mark.parametrize("value", ["false", "False", "0", "no", "off", ""])
def test_parse_bool_falsy_values(value: str) -> None:
    assert parse_bool(value) is False


def test_parse_bool_default_when_unset() -> None:
    assert parse_bool(None) is False
    assert parse_bool(None, default=True) is True
