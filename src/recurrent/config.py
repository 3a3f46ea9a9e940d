"""TOML-backed retry settings that build RetryPolicy instances."""

from __future__ import annotations

import importlib
import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from recurrent.errors import ErrorCode, PolicyConfigError
from recurrent.logging import get_logger
from recurrent.policy import DEFAULT_DELAY_FACTOR, UNLIMITED_RETRIES, RetryPolicy, TimeUnit

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/recurrent/retry.toml").expanduser()
DEFAULT_SECTION = "retry"
MAX_RETRIES_ENV = "RECURRENT_MAX_RETRIES"


class _BackoffBounds(TypedDict):
    initial: float
    max: float


class BackoffSettings(_BackoffBounds, total=False):
    factor: float


class PolicySettings(BaseModel):
    """Declarative form of a :class:`RetryPolicy`.

    All durations share ``unit``. ``retry_on`` holds dotted exception class
    names; bare names resolve against ``builtins``.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    max_retries: int = Field(default=UNLIMITED_RETRIES, ge=UNLIMITED_RETRIES)
    max_duration: float | None = Field(default=None, ge=0)
    delay: float = Field(default=0.0, ge=0)
    unit: TimeUnit = TimeUnit.MILLISECONDS
    backoff: BackoffSettings | None = None
    retry_on: list[str] = Field(default_factory=list)

    @field_validator("unit", mode="before")
    @classmethod
    def _parse_unit(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return TimeUnit.parse(value)
            except PolicyConfigError as exc:
                raise ValueError(exc.message) from exc
        return value

    @field_validator("retry_on")
    @classmethod
    def _validate_retry_on(cls, value: list[str]) -> list[str]:
        names = [item.strip() for item in value]
        for name in names:
            if not name or name.endswith("."):
                raise ValueError(f"Invalid exception name: {name!r}")
        return names

    def to_policy(self) -> RetryPolicy:
        policy = RetryPolicy().with_max_retries(self.max_retries)
        if self.max_duration is not None:
            policy = policy.with_max_duration(self.max_duration, self.unit)
        if self.backoff is not None:
            policy = policy.with_backoff(
                self.backoff["initial"],
                self.backoff["max"],
                self.unit,
                self.backoff.get("factor", DEFAULT_DELAY_FACTOR),
            )
        elif self.delay:
            policy = policy.with_delay(self.delay, self.unit)
        if self.retry_on:
            policy = policy.retry_on(*(resolve_failure_type(name) for name in self.retry_on))
        return policy


def resolve_failure_type(name: str) -> type[BaseException]:
    module_name, _, attribute = name.rpartition(".")
    try:
        module = importlib.import_module(module_name or "builtins")
        resolved = getattr(module, attribute)
    except (ImportError, AttributeError) as exc:
        raise PolicyConfigError(
            f"Cannot resolve exception type: {name}",
            hint="Use a dotted path such as 'builtins.ConnectionError'.",
        ) from exc
    if not (isinstance(resolved, type) and issubclass(resolved, BaseException)):
        raise PolicyConfigError(f"{name} is not an exception type")
    return resolved


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _lookup_section(raw: dict[str, object], section: str) -> dict[str, object]:
    current: object = raw
    for key in section.split("."):
        if not isinstance(current, dict):
            break
        current = current.get(key, {})
    if not isinstance(current, dict):
        raise PolicyConfigError(
            f"Retry settings section [{section}] must be a table",
            code=ErrorCode.VALIDATION_ERROR,
        )
    return dict(current)


def _describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
        for error in exc.errors()
    )


def load_settings(
    path: str | Path | None = None, *, section: str = DEFAULT_SECTION
) -> PolicySettings:
    resolved = get_config_path(path)
    raw: dict[str, object] = {}
    if resolved.exists():
        try:
            with resolved.open("rb") as handle:
                raw = tomllib.load(handle)
        except (tomllib.TOMLDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable retry settings path=%s error=%s", resolved, exc)
            raw = {}
    else:
        logger.debug("Retry settings not found path=%s; using defaults", resolved)

    data = _lookup_section(raw, section)
    env_max_retries = os.getenv(MAX_RETRIES_ENV, "").strip()
    if env_max_retries:
        try:
            data["max_retries"] = int(env_max_retries)
        except ValueError as exc:
            raise PolicyConfigError(
                f"Invalid {MAX_RETRIES_ENV} value: {env_max_retries!r}",
                code=ErrorCode.VALIDATION_ERROR,
                hint="Use an integer >= -1.",
            ) from exc

    try:
        return PolicySettings.model_validate(data)
    except ValidationError as exc:
        raise PolicyConfigError(
            f"Invalid retry settings in {resolved}: {_describe_validation_error(exc)}",
            code=ErrorCode.VALIDATION_ERROR,
        ) from exc


def load_policy(path: str | Path | None = None, *, section: str = DEFAULT_SECTION) -> RetryPolicy:
    return load_settings(path, section=section).to_policy()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    if isinstance(value, list):
        return "[" + ", ".join(_toml_scalar(item) for item in value) + "]"
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def save_settings(
    settings: PolicySettings,
    path: str | Path | None = None,
    *,
    section: str = DEFAULT_SECTION,
) -> Path:
    """Write ``settings`` as the only table of the file at ``path``."""
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"[{section}]",
        f"max_retries = {_toml_scalar(settings.max_retries)}",
        f"delay = {_toml_scalar(settings.delay)}",
        f"unit = {_toml_scalar(settings.unit.value)}",
        f"retry_on = {_toml_scalar(list(settings.retry_on))}",
    ]
    if settings.max_duration is not None:
        lines.append(f"max_duration = {_toml_scalar(settings.max_duration)}")

    if settings.backoff is not None:
        lines.extend(
            [
                "",
                f"[{section}.backoff]",
                f"initial = {_toml_scalar(float(settings.backoff['initial']))}",
                f"max = {_toml_scalar(float(settings.backoff['max']))}",
                "factor = "
                + _toml_scalar(float(settings.backoff.get("factor", DEFAULT_DELAY_FACTOR))),
            ]
        )

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return resolved
