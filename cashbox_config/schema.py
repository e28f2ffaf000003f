"""
Runtime configuration schema.

CashboxConfig is the single frozen artifact get_active_config() returns.
Every field has a default in ``defaults.yaml``.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, fields
from decimal import Decimal


class ConfigError(ValueError):
    """A configuration value is missing, of the wrong type, or out of range."""

    code: str = "CONFIG_INVALID"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration value for {key!r}: {reason}")


@dataclass(frozen=True)
class CashboxConfig:
    """
    Tunables for the lifecycle controller, parser and history browser.

    ``admin_code`` gates destructive operations (row deletes, clearing the
    archive, removing carried expenses).  An empty code refuses them all.
    """

    grace_period_seconds: float = 10
    debounce_seconds: float = 0.4
    tick_seconds: float = 1
    max_single_amount: Decimal = Decimal("999999")
    header_scan_rows: int = 50
    header_scan_columns: int = 60
    closed_first_page_size: int = 4
    closed_page_size: int = 5
    variance_swap_tolerance: Decimal = Decimal("2")
    database_url: str = "sqlite:///cashbox.db"
    admin_code: str = ""

    def __repr__(self) -> str:
        # Never print the admin code.
        shown = ", ".join(
            f"{f.name}={'***' if f.name == 'admin_code' else repr(getattr(self, f.name))}"
            for f in fields(self)
        )
        return f"CashboxConfig({shown})"

    @property
    def privileged_actions_enabled(self) -> bool:
        return bool(self.admin_code)

    def verify_admin_code(self, code: str | None) -> bool:
        """Constant-time comparison; False when no code is configured."""
        if not self.admin_code or not code:
            return False
        return hmac.compare_digest(
            self.admin_code.encode("utf-8"), str(code).encode("utf-8")
        )
