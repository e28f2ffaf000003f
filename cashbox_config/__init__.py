"""
cashbox_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or ``CASHBOX_*`` environment variables directly.

Architecture position:
    Configuration.  Sits beside ``cashbox_kernel`` and is consumed by
    ``cashbox_services`` and ``scripts/``.  The kernel MUST NEVER import
    from ``cashbox_config``; services pass the values they need into kernel
    constructors.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ConfigError`` -- a value has the wrong type or is out of range.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from cashbox_config.loader import load_config
from cashbox_config.schema import CashboxConfig, ConfigError

_logger = logging.getLogger("cashbox.config")


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> CashboxConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file overriding ``defaults.yaml``.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        A frozen, validated CashboxConfig.
    """
    env = os.environ if environ is None else environ
    config = load_config(Path(config_path) if config_path else None, env)

    _logger.info(
        "CASHBOX_CONFIG_TRACE",
        extra={
            "trace_type": "CASHBOX_CONFIG_TRACE",
            "config_path": str(config_path) if config_path else None,
            "grace_period_seconds": config.grace_period_seconds,
            "debounce_seconds": config.debounce_seconds,
            "privileged_actions_enabled": config.privileged_actions_enabled,
        },
    )
    return config


__all__ = [
    "CashboxConfig",
    "ConfigError",
    "get_active_config",
]
