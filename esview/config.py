"""Configuration management for esview."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

import tomli_w

from esview.exceptions import ConfigParseError, ConfigValidationError
from esview.search.timeframe import is_valid_timeframe


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".config" / "esview" / "config.toml"


@dataclass(frozen=True)
class BackendConfig:
    """Where and how to reach the cluster."""

    url: str = "http://localhost:9200"
    verify_tls: bool = True
    request_timeout: float = 30.0
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class PaginationConfig:
    default_page_size: int = 50
    max_page_size: int = 1000
    min_page_size: int = 10


@dataclass(frozen=True)
class SearchConfig:
    """Search defaults.

    Attributes:
        default_index: Index or pattern selected at startup.
        default_timeframe: Timeframe applied at startup; empty for none.
        valid_timeframes: Timeframes offered to the user.
        default_num_results: Hits requested per search.
        max_results: Upper bound for a user-requested hit count.
    """

    default_index: str = "*"
    default_timeframe: str = "12h"
    valid_timeframes: tuple[str, ...] = (
        "1h",
        "12h",
        "24h",
        "7d",
        "30d",
        "week",
        "month",
        "quarter",
        "year",
    )
    default_num_results: int = 1000
    max_results: int = 50000


@dataclass(frozen=True)
class UIConfig:
    show_row_numbers: bool = True
    field_list_visible: bool = False


@dataclass(frozen=True)
class TimeoutConfig:
    """Operation timeouts in seconds.

    Attributes:
        default: HTTP timeout for index listing.
        field_load: HTTP timeout for field capabilities.
        search_refresh: HTTP timeout for a search.
        slot_acquire: Wait for a free admission slot.
    """

    default: float = 30.0
    field_load: float = 20.0
    search_refresh: float = 45.0
    slot_acquire: float = 10.0


@dataclass(frozen=True)
class RateLimitConfig:
    """Admission and backoff parameters.

    Attributes:
        max_concurrent_ops: Backend calls allowed in flight at once.
        initial_retry_delay: Wait before the first retry, in seconds.
        max_retry_delay: Cap on any single wait, in seconds.
        retry_multiplier: Growth factor between waits; must exceed 1.
        max_retries: Retries after the first attempt.
    """

    max_concurrent_ops: int = 10
    initial_retry_delay: float = 1.0
    max_retry_delay: float = 30.0
    retry_multiplier: float = 2.0
    max_retries: int = 3


@dataclass(frozen=True)
class FieldsConfig:
    max_cached_fields: int = 1000
    default_field_order: tuple[str, ...] = (
        "@timestamp",
        "_id",
        "_index",
        "message",
        "level",
        "severity",
    )
    auto_select_fields: tuple[str, ...] = ("@timestamp", "message")


@dataclass(frozen=True)
class Config:
    """Application configuration.

    Instances are immutable; use :func:`dataclasses.replace` to derive a
    modified copy (the CLI does this for ``--url``).

    Attributes:
        config_path: Path where config was loaded from (None if defaults).
    """

    backend: BackendConfig = field(default_factory=BackendConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    fields: FieldsConfig = field(default_factory=FieldsConfig)
    config_path: Path | None = None

    def validate(self) -> list[str]:
        """Validate configuration values.

        Returns:
            List of warning messages for non-fatal issues.

        Raises:
            ConfigValidationError: If a value is out of range.
        """
        warnings: list[str] = []

        p = self.pagination
        for key, value in (
            ("pagination.default_page_size", p.default_page_size),
            ("pagination.max_page_size", p.max_page_size),
            ("pagination.min_page_size", p.min_page_size),
        ):
            if value < 1:
                raise ConfigValidationError(key, value, "must be >= 1")
        if p.max_page_size < p.default_page_size:
            raise ConfigValidationError(
                "pagination.max_page_size",
                p.max_page_size,
                f"pagination.max_page_size ({p.max_page_size}) must be >= "
                f"default_page_size ({p.default_page_size})",
            )
        if p.min_page_size > p.default_page_size:
            raise ConfigValidationError(
                "pagination.min_page_size",
                p.min_page_size,
                f"pagination.min_page_size ({p.min_page_size}) must be <= "
                f"default_page_size ({p.default_page_size})",
            )

        s = self.search
        if not s.default_index:
            raise ConfigValidationError("search.default_index", s.default_index, "cannot be empty")
        if s.default_num_results < 0:
            raise ConfigValidationError(
                "search.default_num_results", s.default_num_results, "must be >= 0"
            )
        if s.max_results < s.default_num_results:
            raise ConfigValidationError(
                "search.max_results",
                s.max_results,
                f"search.max_results ({s.max_results}) must be >= "
                f"default_num_results ({s.default_num_results})",
            )
        for token in s.valid_timeframes:
            if not is_valid_timeframe(token):
                raise ConfigValidationError(
                    "search.valid_timeframes", token, f"'{token}' is not a valid timeframe"
                )
        if s.default_timeframe:
            if not is_valid_timeframe(s.default_timeframe):
                raise ConfigValidationError(
                    "search.default_timeframe", s.default_timeframe, "is not a valid timeframe"
                )
            if s.default_timeframe not in s.valid_timeframes:
                warnings.append(
                    f"search.default_timeframe '{s.default_timeframe}' "
                    f"is not listed in search.valid_timeframes"
                )

        for key, seconds in asdict(self.timeouts).items():
            if seconds <= 0:
                raise ConfigValidationError(f"timeouts.{key}", seconds, "must be > 0")
        if self.backend.request_timeout <= 0:
            raise ConfigValidationError(
                "backend.request_timeout", self.backend.request_timeout, "must be > 0"
            )

        r = self.rate_limit
        if r.max_concurrent_ops < 1:
            raise ConfigValidationError(
                "rate_limit.max_concurrent_ops", r.max_concurrent_ops, "must be >= 1"
            )
        if r.initial_retry_delay < 0:
            raise ConfigValidationError(
                "rate_limit.initial_retry_delay", r.initial_retry_delay, "must be >= 0"
            )
        if r.max_retry_delay < r.initial_retry_delay:
            raise ConfigValidationError(
                "rate_limit.max_retry_delay",
                r.max_retry_delay,
                "must be >= rate_limit.initial_retry_delay",
            )
        if r.retry_multiplier <= 1.0:
            raise ConfigValidationError(
                "rate_limit.retry_multiplier", r.retry_multiplier, "must be > 1.0"
            )
        if r.max_retries < 0:
            raise ConfigValidationError("rate_limit.max_retries", r.max_retries, "must be >= 0")

        if self.fields.max_cached_fields < 1:
            raise ConfigValidationError(
                "fields.max_cached_fields", self.fields.max_cached_fields, "must be >= 1"
            )

        if self.backend.password and not self.backend.username:
            warnings.append("backend.password is set without backend.username; ignoring it")

        return warnings

    def page_size_in_range(self, size: int) -> int:
        """Clamp *size* into ``[min_page_size, max_page_size]``."""
        return max(self.pagination.min_page_size, min(size, self.pagination.max_page_size))

    def is_valid_timeframe(self, timeframe: str) -> bool:
        """Return whether *timeframe* is one of the configured choices."""
        return timeframe in self.search.valid_timeframes


def load_config(config_path: Path | None = None) -> tuple[Config, list[str]]:
    """Load configuration from file or use defaults.

    Args:
        config_path: Explicit config file path. If None, uses default location.

    Returns:
        Tuple of (Config object, list of warning messages).

    Raises:
        ConfigParseError: If config file exists but has invalid syntax.
        ConfigValidationError: If config values are invalid.
    """
    warnings: list[str] = []

    if config_path is None:
        config_path = get_default_config_path()

    config_path = config_path.expanduser().resolve()

    if not config_path.exists():
        config = Config()
        warnings.append(
            f"No config file found at {config_path}. Using defaults. "
            f"Create config with: esview init-config"
        )
        return config, warnings + config.validate()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(config_path, str(e)) from e

    config = _parse_config_dict(data, config_path)
    return config, warnings + config.validate()


# ---------------------------------------------------------------------------
# TOML parsing
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigValidationError(name, value, "must be a table")
    return value


def _check(section: str, key: str, value: Any, expected: str) -> Any:
    full_key = f"{section}.{key}"
    if expected == "bool":
        if not isinstance(value, bool):
            raise ConfigValidationError(full_key, value, "must be a boolean")
    elif expected == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigValidationError(full_key, value, "must be an integer")
    elif expected == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigValidationError(full_key, value, "must be a number")
        value = float(value)
    elif expected == "str":
        if not isinstance(value, str):
            raise ConfigValidationError(full_key, value, "must be a string")
    elif expected == "str?":
        if value is not None and not isinstance(value, str):
            raise ConfigValidationError(full_key, value, "must be a string or null")
    elif expected == "list[str]":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigValidationError(full_key, value, "must be a list of strings")
        value = tuple(value)
    return value


_SCHEMA: dict[str, tuple[type, dict[str, str]]] = {
    "backend": (
        BackendConfig,
        {
            "url": "str",
            "verify_tls": "bool",
            "request_timeout": "float",
            "username": "str?",
            "password": "str?",
        },
    ),
    "pagination": (
        PaginationConfig,
        {"default_page_size": "int", "max_page_size": "int", "min_page_size": "int"},
    ),
    "search": (
        SearchConfig,
        {
            "default_index": "str",
            "default_timeframe": "str",
            "valid_timeframes": "list[str]",
            "default_num_results": "int",
            "max_results": "int",
        },
    ),
    "ui": (UIConfig, {"show_row_numbers": "bool", "field_list_visible": "bool"}),
    "timeouts": (
        TimeoutConfig,
        {
            "default": "float",
            "field_load": "float",
            "search_refresh": "float",
            "slot_acquire": "float",
        },
    ),
    "rate_limit": (
        RateLimitConfig,
        {
            "max_concurrent_ops": "int",
            "initial_retry_delay": "float",
            "max_retry_delay": "float",
            "retry_multiplier": "float",
            "max_retries": "int",
        },
    ),
    "fields": (
        FieldsConfig,
        {
            "max_cached_fields": "int",
            "default_field_order": "list[str]",
            "auto_select_fields": "list[str]",
        },
    ),
}


def _parse_config_dict(data: dict[str, Any], config_path: Path) -> Config:
    """Parse configuration dictionary into Config object."""
    sections: dict[str, Any] = {}
    for name, (section_type, keys) in _SCHEMA.items():
        table = _section(data, name)
        values = {
            key: _check(name, key, table[key], expected)
            for key, expected in keys.items()
            if key in table
        }
        sections[name] = section_type(**values)
    return Config(config_path=config_path, **sections)


def config_to_dict(config: Config) -> dict[str, Any]:
    """Build the TOML structure for *config*; unset optional values are omitted."""
    data: dict[str, Any] = {}
    for name in _SCHEMA:
        table = asdict(getattr(config, name))
        data[name] = {
            key: list(value) if isinstance(value, tuple) else value
            for key, value in table.items()
            if value is not None
        }
    return data


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Path to save to. If None, uses config.config_path or default.

    Returns:
        The resolved path written.
    """
    if config_path is None:
        config_path = config.config_path or get_default_config_path()

    config_path = config_path.expanduser().resolve()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "wb") as f:
        tomli_w.dump(config_to_dict(config), f)
    return config_path


def with_backend_url(config: Config, url: str) -> Config:
    """Return a copy of *config* pointing at *url*."""
    return replace(config, backend=replace(config.backend, url=url))
