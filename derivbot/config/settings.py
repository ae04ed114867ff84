"""Typed, immutable trader settings built from the config loader."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, field_validator, model_validator

from derivbot.config.loader import ConfigError, ValidationError

if TYPE_CHECKING:
    from derivbot.config.loader import ConfigLoader

DEFAULT_MARTINGALE: tuple[Decimal, ...] = tuple(
    Decimal(s) for s in ("0.35", "0.69", "1.39", "2.84", "5.8", "11.52", "23.51", "47.98")
)

DEFAULT_ALLOWED_SYMBOLS: tuple[str, ...] = (
    "1HZ10V", "R_10",
    "1HZ25V", "R_25",
    "1HZ50V", "R_50",
    "1HZ75V", "R_75",
    "1HZ100V", "R_100",
    "RDBEAR", "RDBULL",
)

# [section] key -> TraderSettings field
CONFIG_FIELDS: dict[str, dict[str, str]] = {
    "api": {"endpoint": "endpoint", "app_id": "app_id", "token": "token"},
    "trading": {
        "symbols": "symbols",
        "allowed_symbols": "allowed_symbols",
        "threshold": "threshold",
        "currency": "currency",
        "contract_duration": "contract_duration",
        "contract_duration_unit": "contract_duration_unit",
        "martingale": "martingale",
        "enabled": "trading_enabled",
    },
    "connection": {
        "request_timeout_seconds": "request_timeout",
        "max_reconnect_attempts": "max_reconnect_attempts",
        "backoff_base_seconds": "backoff_base",
        "backoff_cap_seconds": "backoff_cap",
        "handshake_timeout_seconds": "handshake_timeout",
    },
    "safety": {
        "max_consecutive_losses": "max_consecutive_losses",
        "max_daily_loss": "max_daily_loss",
    },
    "simulation": {
        "payout": "payout",
        "win_probability": "win_probability",
        "settle_delay_seconds": "settle_delay",
    },
    "logging": {"level": "log_level", "file_path": "log_file", "audit_path": "audit_path"},
}


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        msg = f"not a decimal amount: {value!r}"
        raise ValueError(msg) from exc


class TraderSettings(BaseModel):
    """Everything the orchestrator needs, as one explicit value object."""

    endpoint: str = "wss://ws.derivws.com/websockets/v3"
    app_id: int = 1089
    token: str = ""

    symbols: tuple[str, ...] = ("R_100",)
    allowed_symbols: tuple[str, ...] = DEFAULT_ALLOWED_SYMBOLS
    threshold: int = 3
    currency: str = "USD"
    contract_duration: int = 1
    contract_duration_unit: str = "t"
    martingale: tuple[Decimal, ...] = DEFAULT_MARTINGALE
    trading_enabled: bool = True

    request_timeout: float = 30.0
    max_reconnect_attempts: int = 5
    backoff_base: float = 1.0
    backoff_cap: float = 30.0
    handshake_timeout: float = 10.0

    max_consecutive_losses: int | None = None
    max_daily_loss: Decimal | None = None

    payout: Decimal = Decimal("0.95")
    win_probability: float = 0.5
    settle_delay: float = 2.0

    log_level: str = "INFO"
    log_file: str | None = None
    audit_path: str | None = "logs/trades.jsonl"

    model_config = {"frozen": True}

    @field_validator("token", mode="before")
    @classmethod
    def _token_as_str(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("symbols", "allowed_symbols", mode="before")
    @classmethod
    def _symbol_list(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        return tuple(str(s).strip().upper() for s in value if str(s).strip())

    @field_validator("martingale", mode="before")
    @classmethod
    def _stake_table(cls, value: Any) -> tuple[Decimal, ...]:
        if isinstance(value, int | float | str | Decimal):
            value = [value]
        return tuple(_to_decimal(v) for v in value)

    @field_validator("max_daily_loss", "payout", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal | None:
        if value is None:
            return None
        return _to_decimal(value)

    @field_validator("max_consecutive_losses", mode="before")
    @classmethod
    def _optional_limit(cls, value: Any) -> int | None:
        # 0 in config means "disabled"
        if value in (None, 0, "0", ""):
            return None
        return value

    @field_validator("log_file", "audit_path", mode="before")
    @classmethod
    def _optional_path(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        return str(value)

    @model_validator(mode="after")
    def _check_ranges(self) -> TraderSettings:
        errors: list[str] = []
        for name in ("request_timeout", "handshake_timeout", "backoff_base", "backoff_cap", "contract_duration"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be > 0, got {getattr(self, name)}")
        if self.max_reconnect_attempts < 0:
            errors.append(f"max_reconnect_attempts must be >= 0, got {self.max_reconnect_attempts}")
        if self.payout <= 0:
            errors.append(f"payout must be > 0, got {self.payout}")
        if not 0 <= self.win_probability <= 1:
            errors.append(f"win_probability must be in [0, 1], got {self.win_probability}")
        if self.settle_delay < 0:
            errors.append(f"settle_delay must be >= 0, got {self.settle_delay}")
        if self.max_consecutive_losses is not None and self.max_consecutive_losses < 0:
            errors.append(f"max_consecutive_losses must be >= 0, got {self.max_consecutive_losses}")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def daily_loss_floor(self) -> Decimal | None:
        """Cumulative profit at or below which the session stops (negative)."""
        if self.max_daily_loss is None or self.max_daily_loss == 0:
            return None
        return -abs(self.max_daily_loss)

    @property
    def ws_url(self) -> str:
        return f"{self.endpoint}?app_id={self.app_id}"

    @classmethod
    def from_loader(cls, loader: ConfigLoader) -> TraderSettings:
        """Build settings from the loader's sections.

        Raises:
            ConfigError: On an unknown key in a known section or an invalid value.
        """
        values: dict[str, Any] = {}
        unknown: list[str] = []
        for section, fields in CONFIG_FIELDS.items():
            for key, value in loader.section(section).items():
                if key not in fields:
                    unknown.append(f"{section}.{key}")
                elif value is not None:
                    values[fields[key]] = value
        if unknown:
            msg = f"Unknown config keys: {', '.join(sorted(unknown))}"
            raise ConfigError(msg)
        try:
            return cls(**values)
        except ValueError as exc:
            # pydantic's ValidationError is a ValueError subclass
            msg = f"Invalid settings: {exc}"
            raise ConfigError(msg) from exc

    def with_overrides(self, **overrides: Any) -> TraderSettings:
        """Return a copy with CLI-level overrides applied (None values ignored)."""
        update = {k: v for k, v in overrides.items() if v is not None}
        if not update:
            return self
        return type(self).model_validate({**self.model_dump(), **update})

    def validate_startup(self) -> None:
        """Check instruments and threshold before any connection attempt.

        Raises:
            ValidationError: On a disallowed instrument or a non-positive threshold.
        """
        errors: list[str] = []
        if not self.symbols:
            errors.append("at least one instrument must be configured")
        disallowed = [s for s in self.symbols if s not in self.allowed_symbols]
        if disallowed:
            errors.append(
                f"instrument(s) {', '.join(disallowed)} not allowed. "
                f"Valid symbols: {', '.join(self.allowed_symbols)}"
            )
        if len(set(self.symbols)) != len(self.symbols):
            errors.append("instruments must be unique")
        if isinstance(self.threshold, bool) or self.threshold <= 0:
            errors.append(f"threshold must be a positive integer, got {self.threshold}")
        if not self.martingale or any(s <= 0 for s in self.martingale):
            errors.append("martingale table must be a non-empty list of positive stakes")
        if errors:
            msg = "Startup validation failed:\n  " + "\n  ".join(errors)
            raise ValidationError(msg)


def mask_token(token: str) -> str:
    """Mask all but the last 4 characters of a token."""
    if len(token) <= 4:
        return "****"
    return "*" * (len(token) - 4) + token[-4:]
