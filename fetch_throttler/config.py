"""
Throttle configuration models and resolution.

Users hand in partial configuration (any subset of fields); pools are built
from a ResolvedPoolConfig where every field is filled in:

    max_concurrency  0 = unbounded. Unset + interval > 0 means 1.
    interval         Milliseconds between admission k and admission
                     k + max_concurrency. 0 disables spacing.
    max_retry        Re-attempts after the first attempt fails.
    capacity         0 = unbounded. Otherwise the most items a pool may hold
                     waiting or in flight.
    should_retry     Optional callable(outcome) -> True / False / None.

Rules passed to Throttler.configure() are one of:

    UrlComponentRule  scope="domain" | "path", url=..., subpath=False
    PatternRule       regex=... (searched in the full URL string)
    PredicateRule     match=callable(httpx.URL) -> bool
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Literal, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from fetch_throttler.exceptions import ThrottleConfigError

DEFAULT_MAX_CONCURRENCY = 0
DEFAULT_INTERVAL_MS = 0
DEFAULT_MAX_RETRY = 1
DEFAULT_CAPACITY = 0
DEFAULT_SCOPE = "global"

Scope = Literal["global", "domain", "path"]
RuleScope = Literal["domain", "path"]
ShouldRetry = Callable[[Any], Union[Optional[bool], Awaitable[Optional[bool]]]]
UrlMatcher = Callable[[httpx.URL], bool]


class ThrottleConfig(BaseModel):
    """
    Partial throttling parameters for one pool.

    Every field is optional; unset fields fall back to package defaults
    when the pool is created (see fill_defaults).
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    max_concurrency: Optional[int] = Field(
        default=None,
        ge=0,
        description="Max simultaneous requests, 0 for unbounded",
    )
    interval: Optional[int] = Field(
        default=None,
        ge=0,
        description="Minimum spacing in milliseconds between admission starts",
    )
    max_retry: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, ge=0)
    should_retry: Optional[ShouldRetry] = Field(
        default=None,
        description="callable(outcome) -> True (retry), False (stop), None (default policy)",
    )


class DefaultThrottleConfig(ThrottleConfig):
    """Base configuration of a Throttler: pool parameters plus the default scope."""

    scope: Scope = DEFAULT_SCOPE


class UrlComponentRule(ThrottleConfig):
    """Route requests for one or more hosts (scope="domain") or paths (scope="path")."""

    scope: RuleScope
    url: List[Union[str, httpx.URL]] = Field(min_length=1)
    subpath: bool = Field(
        default=False,
        description="Path rules only: also match every path below the configured one",
    )

    @field_validator("url", mode="before")
    @classmethod
    def _wrap_single_url(cls, value: Any) -> Any:
        if isinstance(value, (str, httpx.URL)):
            return [value]
        return value

    @model_validator(mode="after")
    def _subpath_needs_path_scope(self) -> "UrlComponentRule":
        if self.subpath and self.scope != "path":
            raise ValueError("subpath matching is only available for scope='path'")
        return self


class PatternRule(ThrottleConfig):
    """Route requests whose full URL string matches a regular expression."""

    regex: re.Pattern[str]


class PredicateRule(ThrottleConfig):
    """Route requests for which a callable over the parsed URL returns True."""

    match: UrlMatcher


ThrottleRule = Union[UrlComponentRule, PatternRule, PredicateRule]

_RULE_MODELS = {
    "scope": UrlComponentRule,
    "regex": PatternRule,
    "match": PredicateRule,
}


@dataclass(frozen=True)
class ResolvedPoolConfig:
    """Complete pool parameters. Built by fill_defaults()."""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    interval: int = DEFAULT_INTERVAL_MS
    max_retry: int = DEFAULT_MAX_RETRY
    capacity: int = DEFAULT_CAPACITY
    should_retry: Optional[ShouldRetry] = None


def fill_defaults(config: Optional[ThrottleConfig] = None) -> ResolvedPoolConfig:
    """
    Fill every unset field of a partial config.

    max_concurrency is derived rather than defaulted when only an interval
    is given: spacing needs a window size, so it becomes 1.
    """
    if config is None:
        return ResolvedPoolConfig()

    interval = config.interval if config.interval is not None else DEFAULT_INTERVAL_MS
    if config.max_concurrency is not None:
        max_concurrency = config.max_concurrency
    elif interval > 0:
        max_concurrency = 1
    else:
        max_concurrency = DEFAULT_MAX_CONCURRENCY

    return ResolvedPoolConfig(
        max_concurrency=max_concurrency,
        interval=interval,
        max_retry=config.max_retry if config.max_retry is not None else DEFAULT_MAX_RETRY,
        capacity=config.capacity if config.capacity is not None else DEFAULT_CAPACITY,
        should_retry=config.should_retry,
    )


def _config_error(exc: ValidationError, kind: str) -> ThrottleConfigError:
    errors = [
        {
            "loc": ".".join(str(part) for part in err.get("loc", ())),
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"loc": "", "msg": str(exc)}
    where = f"{first['loc']}: " if first["loc"] else ""
    return ThrottleConfigError(
        f"Invalid {kind}: {where}{first['msg']}",
        code="invalid_config",
        details={"errors": errors},
    )


def resolve_default_config(
    config: Union[DefaultThrottleConfig, ThrottleConfig, Mapping[str, Any], None],
) -> DefaultThrottleConfig:
    """Coerce a Throttler's base configuration into a DefaultThrottleConfig."""
    if config is None:
        return DefaultThrottleConfig()
    if isinstance(config, DefaultThrottleConfig):
        return config
    try:
        if isinstance(config, ThrottleConfig):
            return DefaultThrottleConfig(**config.model_dump(exclude_unset=True))
        if not isinstance(config, Mapping):
            raise ThrottleConfigError(f"Invalid config: {config!r}", code="invalid_config")
        return DefaultThrottleConfig.model_validate(dict(config))
    except ValidationError as exc:
        raise _config_error(exc, "config") from exc


def parse_rule(rule: Any = None, **fields: Any) -> ThrottleRule:
    """
    Validate a routing rule.

    Accepts a rule model, a mapping, or keyword fields. Exactly one of
    scope / regex / match selects the rule kind.

    Raises:
        ThrottleConfigError: Malformed rule or invalid field values.
    """
    if isinstance(rule, (UrlComponentRule, PatternRule, PredicateRule)):
        if fields:
            raise ThrottleConfigError(
                "Pass either a rule object or keyword fields, not both",
                code="invalid_rule",
            )
        return rule
    if rule is not None:
        if not isinstance(rule, Mapping):
            raise ThrottleConfigError(f"Invalid config: {rule!r}", code="invalid_rule")
        fields = {**rule, **fields}

    kinds = [name for name in _RULE_MODELS if name in fields]
    if len(kinds) != 1:
        raise ThrottleConfigError(
            "A rule needs exactly one of 'scope', 'regex' or 'match'",
            code="invalid_rule",
            details={"given": kinds},
        )
    model = _RULE_MODELS[kinds[0]]
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        raise _config_error(exc, "rule") from exc


__all__ = [
    "DEFAULT_CAPACITY",
    "DEFAULT_INTERVAL_MS",
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MAX_RETRY",
    "DEFAULT_SCOPE",
    "DefaultThrottleConfig",
    "PatternRule",
    "PredicateRule",
    "ResolvedPoolConfig",
    "ThrottleConfig",
    "ThrottleRule",
    "UrlComponentRule",
    "fill_defaults",
    "parse_rule",
    "resolve_default_config",
]
