"""
Configuration Loader (``cashbox_config.loader``).

Responsibility
--------------
Reads YAML files, layers them (defaults, then an optional override file,
then environment variables) and converts the result into a validated
``CashboxConfig``.  Callers use ``cashbox_config.get_active_config()``;
this module is its implementation.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong type or out-of-range value  -> ``ConfigError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from cashbox_config.schema import CashboxConfig, ConfigError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# (section, key) in YAML -> CashboxConfig field
FIELD_PATHS: dict[tuple[str, str], str] = {
    ("lifecycle", "grace_period_seconds"): "grace_period_seconds",
    ("lifecycle", "debounce_seconds"): "debounce_seconds",
    ("lifecycle", "tick_seconds"): "tick_seconds",
    ("parser", "max_single_amount"): "max_single_amount",
    ("parser", "header_scan_rows"): "header_scan_rows",
    ("parser", "header_scan_columns"): "header_scan_columns",
    ("history", "closed_first_page_size"): "closed_first_page_size",
    ("history", "closed_page_size"): "closed_page_size",
    ("variance", "swap_tolerance"): "variance_swap_tolerance",
    ("storage", "database_url"): "database_url",
    ("security", "admin_code"): "admin_code",
}

ENV_VARS: dict[str, str] = {
    "CASHBOX_DATABASE_URL": "database_url",
    "CASHBOX_ADMIN_CODE": "admin_code",
    "CASHBOX_GRACE_SECONDS": "grace_period_seconds",
}

_SECONDS_FIELDS = ("grace_period_seconds", "debounce_seconds", "tick_seconds")
_COUNT_FIELDS = (
    "header_scan_rows",
    "header_scan_columns",
    "closed_first_page_size",
    "closed_page_size",
)
_DECIMAL_FIELDS = ("max_single_amount", "variance_swap_tolerance")
_STRING_FIELDS = ("database_url", "admin_code")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    return data


def flatten_sections(data: Mapping[str, Any], source: str) -> dict[str, Any]:
    """Map a sectioned YAML document onto CashboxConfig field names."""
    values: dict[str, Any] = {}
    for section, body in data.items():
        if body is None:
            continue
        if not isinstance(body, Mapping):
            raise ConfigError(f"{source}:{section}", "section must be a mapping")
        for key, value in body.items():
            field_name = FIELD_PATHS.get((section, key))
            if field_name is None:
                raise ConfigError(f"{section}.{key}", f"unknown setting in {source}")
            values[field_name] = value
    return values


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    return {
        field_name: environ[var]
        for var, field_name in ENV_VARS.items()
        if var in environ
    }


def _to_seconds(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(name, "expected a number of seconds")
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(name, "expected a number of seconds") from exc
    if seconds <= 0:
        raise ConfigError(name, "must be positive")
    return seconds


def _to_count(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(name, "expected a positive integer")
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(name, "expected a positive integer") from exc
    if count != value and str(count) != str(value).strip():
        raise ConfigError(name, "expected a positive integer")
    if count < 1:
        raise ConfigError(name, "must be at least 1")
    return count


def _to_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ConfigError(name, "expected a decimal amount")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigError(name, "expected a decimal amount") from exc
    if not amount.is_finite() or amount < 0:
        raise ConfigError(name, "must be a non-negative amount")
    return amount


def build_config(values: Mapping[str, Any]) -> CashboxConfig:
    """Validate raw values and build the frozen config."""
    kwargs: dict[str, Any] = {}
    for name, value in values.items():
        if name in _SECONDS_FIELDS:
            kwargs[name] = _to_seconds(name, value)
        elif name in _COUNT_FIELDS:
            kwargs[name] = _to_count(name, value)
        elif name in _DECIMAL_FIELDS:
            kwargs[name] = _to_decimal(name, value)
        elif name in _STRING_FIELDS:
            kwargs[name] = "" if value is None else str(value)
        else:
            raise ConfigError(name, "unknown setting")
    if not kwargs.get("database_url", "sqlite://"):
        raise ConfigError("database_url", "must not be empty")
    return CashboxConfig(**kwargs)


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> CashboxConfig:
    """Defaults, then ``config_path``, then environment variables."""
    values = flatten_sections(load_yaml_file(DEFAULTS_PATH), DEFAULTS_PATH.name)
    if config_path is not None:
        values.update(flatten_sections(load_yaml_file(Path(config_path)), str(config_path)))
    if environ is not None:
        values.update(env_overrides(environ))
    return build_config(values)
