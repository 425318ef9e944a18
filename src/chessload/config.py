from __future__ import annotations

import math
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Self

import structlog
import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from chessload.errors import ConfigurationError

logger = structlog.get_logger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"
_CONFIG_PATH = _CONFIG_DIR / "settings.yaml"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """Convert a duration to seconds.

    Accepts plain numbers (already seconds) and k6-style strings such as
    ``"500ms"``, ``"10s"``, ``"2m"`` or ``"1m30s"``.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid duration: {value!r}")

    text = value.strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ConfigurationError(f"Invalid duration: {value!r}", details={"value": value})
    return total


def _load_yaml() -> dict[str, Any]:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


def _load_env_profile() -> dict[str, Any]:
    """Load the YAML profile named by ``CHESSLOAD_ENV`` (defaults to ``dev``).

    The profile is deep-merged on top of the base settings YAML so that
    per-environment overrides (e.g. a staging target) take precedence.
    """
    env = os.getenv("CHESSLOAD_ENV", "dev").lower()
    profile_path = _CONFIG_DIR / "environments" / f"{env}.yaml"
    if profile_path.exists():
        with open(profile_path) as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded environment profile: %s (%s)", env, profile_path)
        return data
    logger.debug("No environment profile found for '%s'", env)
    return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (mutates *base*)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_settings_yaml() -> dict[str, Any]:
    """Base settings YAML with the active environment profile merged on top."""
    return _deep_merge(_load_yaml(), _load_env_profile())


_yaml = load_settings_yaml()


# ---------------------------------------------------------------------------
# Immutable per-run configuration
# ---------------------------------------------------------------------------


def check_scenario_config(config: ScenarioConfig) -> None:
    """Raise ConfigurationError unless *config* can drive a run."""
    problems: dict[str, str] = {}
    if not isinstance(config.virtual_users, int) or config.virtual_users <= 0:
        problems["virtual_users"] = f"must be a positive integer, got {config.virtual_users!r}"
    if not math.isfinite(config.duration) or config.duration <= 0:
        problems["duration"] = f"must be a positive finite number of seconds, got {config.duration!r}"
    if not math.isfinite(config.pacing_delay) or config.pacing_delay < 0:
        problems["pacing_delay"] = f"must be finite and not negative, got {config.pacing_delay!r}"
    if not math.isfinite(config.request_timeout) or config.request_timeout <= 0:
        problems["request_timeout"] = f"must be a positive finite number of seconds, got {config.request_timeout!r}"
    if not config.base_url.startswith(("http://", "https://")):
        problems["base_url"] = f"must be an http(s) URL, got {config.base_url!r}"
    if problems:
        raise ConfigurationError("Invalid scenario configuration", details=problems)


class ScenarioConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str
    virtual_users: int
    duration: float
    pacing_delay: float = 1.0
    request_timeout: float = 10.0

    @field_validator("duration", "pacing_delay", "request_timeout", mode="before")
    @classmethod
    def _parse_durations(cls, v: Any) -> float:
        return parse_duration(v)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @model_validator(mode="after")
    def _validate(self) -> Self:
        check_scenario_config(self)
        return self


# ---------------------------------------------------------------------------
# Layered settings: defaults -> YAML -> env profile -> environment variables
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = {"env_prefix": "CHESSLOAD_", "extra": "ignore", "validate_default": True}

    base_url: str = Field(
        default_factory=lambda: _yaml.get("base_url", "http://localhost:8080"),
        validation_alias=AliasChoices("base_url", "CHESSLOAD_BASE_URL", "BASE_URL"),
    )
    virtual_users: int = Field(default_factory=lambda: _yaml.get("virtual_users", 5))
    duration: float = Field(default_factory=lambda: _yaml.get("duration", "10s"))
    pacing_delay: float = Field(default_factory=lambda: _yaml.get("pacing_delay", "1s"))
    request_timeout: float = Field(default_factory=lambda: _yaml.get("request_timeout", "10s"))
    pass_rate_threshold: float = Field(
        default_factory=lambda: _yaml.get("pass_rate_threshold", 0.0), ge=0.0, le=1.0
    )

    log_level: str = Field(default_factory=lambda: _yaml.get("logging", {}).get("level", "INFO"))
    log_json: bool = Field(default_factory=lambda: _yaml.get("logging", {}).get("json", False))

    @field_validator("duration", "pacing_delay", "request_timeout", mode="before")
    @classmethod
    def _parse_durations(cls, v: Any) -> float:
        return parse_duration(v)

    def scenario_config(self, **overrides: Any) -> ScenarioConfig:
        values = {
            "base_url": self.base_url,
            "virtual_users": self.virtual_users,
            "duration": self.duration,
            "pacing_delay": self.pacing_delay,
            "request_timeout": self.request_timeout,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return ScenarioConfig(**values)
        except ValidationError as exc:
            raise ConfigurationError(
                "Invalid scenario configuration",
                details={"errors": exc.errors(include_url=False)},
            ) from exc


@lru_cache
def get_settings() -> Settings:
    return Settings()
