from __future__ import annotations

import re

import pytest
from pydantic import ValidationError

from fetch_throttler.config import (
    DefaultThrottleConfig,
    PatternRule,
    PredicateRule,
    ResolvedPoolConfig,
    ThrottleConfig,
    UrlComponentRule,
    fill_defaults,
    parse_rule,
    resolve_default_config,
)
from fetch_throttler.exceptions import ThrottleConfigError
from fetch_throttler.settings import check_log_level, get_settings, reset_settings


def test_fill_defaults_for_empty_config() -> None:
    assert fill_defaults(ThrottleConfig()) == ResolvedPoolConfig(
        max_concurrency=0, interval=0, max_retry=1, capacity=0, should_retry=None
    )
    assert fill_defaults(None) == ResolvedPoolConfig()


def test_interval_without_concurrency_implies_one() -> None:
    assert fill_defaults(ThrottleConfig(interval=100)).max_concurrency == 1
    assert fill_defaults(ThrottleConfig(interval=100, max_concurrency=3)).max_concurrency == 3
    assert fill_defaults(ThrottleConfig(interval=0)).max_concurrency == 0
    # Explicit 0 stays unbounded; spacing is then disabled.
    assert fill_defaults(ThrottleConfig(interval=100, max_concurrency=0)).max_concurrency == 0


def test_fill_defaults_keeps_should_retry() -> None:
    def decide(outcome):
        return None

    assert fill_defaults(ThrottleConfig(should_retry=decide)).should_retry is decide


def test_negative_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        ThrottleConfig(max_retry=-1)
    with pytest.raises(ThrottleConfigError) as excinfo:
        resolve_default_config({"capacity": -5})
    assert excinfo.value.code == "invalid_config"
    assert excinfo.value.details["errors"][0]["loc"] == "capacity"


def test_resolve_default_config_variants() -> None:
    assert resolve_default_config(None).scope == "global"
    assert resolve_default_config({"scope": "path"}).scope == "path"

    partial = resolve_default_config(ThrottleConfig(max_retry=4))
    assert isinstance(partial, DefaultThrottleConfig)
    assert partial.max_retry == 4

    with pytest.raises(ThrottleConfigError):
        resolve_default_config({"scope": "everything"})
    with pytest.raises(ThrottleConfigError):
        resolve_default_config({"maxConcurrency": 2})
    with pytest.raises(ThrottleConfigError):
        resolve_default_config(["not", "a", "mapping"])


def test_rule_model_as_base_config_is_a_config_error() -> None:
    rule = UrlComponentRule(scope="domain", url="https://a.example")

    with pytest.raises(ThrottleConfigError) as excinfo:
        resolve_default_config(rule)
    assert excinfo.value.code == "invalid_config"
    assert "url" in [e["loc"] for e in excinfo.value.details["errors"]]


def test_parse_rule_kinds() -> None:
    url_rule = parse_rule({"scope": "domain", "url": "https://a.example"}, max_concurrency=2)
    assert isinstance(url_rule, UrlComponentRule)
    assert url_rule.url == ["https://a.example"]
    assert url_rule.max_concurrency == 2

    pattern_rule = parse_rule(regex=r"^https://img\.")
    assert isinstance(pattern_rule, PatternRule)
    assert isinstance(pattern_rule.regex, re.Pattern)
    assert pattern_rule.regex.search("https://img.example.com")

    predicate_rule = parse_rule(match=lambda url: True)
    assert isinstance(predicate_rule, PredicateRule)


def test_parse_rule_passes_models_through() -> None:
    rule = PatternRule(regex="x")

    assert parse_rule(rule) is rule
    with pytest.raises(ThrottleConfigError):
        parse_rule(rule, max_retry=2)


def test_parse_rule_requires_exactly_one_kind() -> None:
    with pytest.raises(ThrottleConfigError) as excinfo:
        parse_rule(max_concurrency=1)
    assert excinfo.value.details == {"given": []}

    with pytest.raises(ThrottleConfigError):
        parse_rule(regex="x", match=lambda url: True)


def test_config_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        parse_rule(scope="nowhere", url="https://a.example")


class TestSettings:
    def test_unset_environment_gives_defaults(self):
        settings = get_settings()

        assert settings.default_config() == DefaultThrottleConfig()
        assert settings.base_url is None

    def test_environment_values_are_read(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FETCH_THROTTLER_SCOPE", "path")
        monkeypatch.setenv("FETCH_THROTTLER_INTERVAL_MS", "250")
        monkeypatch.setenv("FETCH_THROTTLER_CAPACITY", "10")
        monkeypatch.setenv("FETCH_THROTTLER_BASE_URL", "https://example.com")
        reset_settings()

        settings = get_settings()
        config = settings.default_config()

        assert config.scope == "path"
        assert fill_defaults(config) == ResolvedPoolConfig(
            max_concurrency=1, interval=250, max_retry=1, capacity=10
        )
        assert settings.base_url == "https://example.com"

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()

    def test_bad_integer_raises_config_error(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FETCH_THROTTLER_MAX_RETRY", "many")
        reset_settings()

        with pytest.raises(ThrottleConfigError) as excinfo:
            get_settings()
        assert excinfo.value.details == {"variable": "FETCH_THROTTLER_MAX_RETRY"}

    def test_log_level_is_validated_on_use(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FETCH_THROTTLER_LOG_LEVEL", "chatty")
        reset_settings()

        # Reading settings still works for library users.
        settings = get_settings()
        assert check_log_level("debug") == "DEBUG"
        with pytest.raises(ThrottleConfigError) as excinfo:
            check_log_level(settings.log_level)
        assert excinfo.value.code == "invalid_env"
