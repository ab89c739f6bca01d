"""JSON smoke-test configuration loading and validation."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from redissmoke.errors import ConfigError
from redissmoke.retry.backoff import Backoff, BackoffKind, backoff_for

CONFIG_PATH_ENV = "CONFIG_PATH"
DEFAULT_APP_PATH = "assets/cf-redis-example-app"
DEFAULT_BASELINE_MILLISECONDS = 500
DEFAULT_MAX_ATTEMPTS = 10


class RetrySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    baseline_interval_milliseconds: int = Field(default=DEFAULT_BASELINE_MILLISECONDS, ge=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=0)
    backoff: str = BackoffKind.NONE.value

    @property
    def baseline_seconds(self) -> float:
        return self.baseline_interval_milliseconds / 1000.0

    def backoff_kind(self) -> BackoffKind:
        return BackoffKind.parse(self.backoff)

    def backoff_policy(self) -> Backoff:
        return backoff_for(self.backoff, self.baseline_seconds)

    def max_retries(self) -> int | None:
        # Zero keeps retrying until the deadline.
        return self.max_attempts or None


class SmokeTestConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    api: str
    apps_domain: str
    admin_user: str
    admin_password: str
    skip_ssl_validation: bool = False
    create_permissive_security_group: bool = False
    timeout_scale: float = 1.0
    service_name: str
    plan_names: list[str] = Field(default_factory=list)
    app_path: str = DEFAULT_APP_PATH
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("api", "apps_domain", "admin_user", "admin_password", "service_name")
    @classmethod
    def _require_value(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("timeout_scale")
    @classmethod
    def _clamp_timeout_scale(cls, value: float) -> float:
        return max(value, 1.0)

    @field_validator("plan_names")
    @classmethod
    def _normalize_plans(cls, value: list[str]) -> list[str]:
        plans: list[str] = []
        for name in value:
            plan = name.strip()
            if plan and plan not in plans:
                plans.append(plan)
        return plans

    def scaled_timeout(self, seconds: float) -> float:
        return seconds * self.timeout_scale


def config_path_from_env() -> Path | None:
    raw = os.getenv(CONFIG_PATH_ENV, "").strip()
    if not raw:
        return None
    return Path(raw).expanduser()


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "config"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(problems)


def parse_config(raw: object) -> SmokeTestConfig:
    if not isinstance(raw, dict):
        raise ConfigError(
            "Smoke test config must be a JSON object.",
            hint="Wrap the settings in a top-level {...} object.",
        )
    try:
        return SmokeTestConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(
            "Invalid smoke test config.",
            hint=_format_validation_error(exc),
        ) from exc


def load_config(path: str | Path | None = None) -> SmokeTestConfig:
    resolved = Path(path).expanduser() if path is not None else config_path_from_env()
    if resolved is None:
        raise ConfigError(
            "No smoke test config given.",
            hint=f"Pass --config or set {CONFIG_PATH_ENV}.",
        )
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except OSError as exc:
        raise ConfigError(
            f"Cannot read smoke test config: {resolved}",
            hint=exc.strerror or "Check the file path and permissions.",
            path=str(resolved),
        ) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"Smoke test config is not valid JSON: {resolved}",
            hint=f"line {exc.lineno} column {exc.colno}: {exc.msg}",
            path=str(resolved),
        ) from exc
    try:
        return parse_config(raw)
    except ConfigError as exc:
        exc.path = str(resolved)
        raise
