"""Shared test fixtures."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path  # noqa: TCH003
from typing import Any

import pytest

from derivbot.config.loader import ConfigLoader
from derivbot.config.settings import TraderSettings
from derivbot.models.contract import BetType, Contract
from derivbot.models.market import Tick
from derivbot.risk.martingale import MartingaleTable

DEFAULT_TOML = """\
[api]
endpoint = "wss://ws.derivws.com/websockets/v3"
app_id = 1089
token = "test-token-abcd"

[trading]
symbols = ["R_100"]
allowed_symbols = ["R_10", "R_25", "R_50", "R_75", "R_100", "1HZ10V", "1HZ100V"]
threshold = 3
currency = "USD"
contract_duration = 1
contract_duration_unit = "t"
martingale = [0.35, 0.69, 1.39, 2.84, 5.8, 11.52, 23.51, 47.98]
enabled = true

[connection]
request_timeout_seconds = 30
max_reconnect_attempts = 5
backoff_base_seconds = 1
backoff_cap_seconds = 30
handshake_timeout_seconds = 10

[safety]
max_consecutive_losses = 0
max_daily_loss = 0

[simulation]
payout = 0.95
win_probability = 0.5
settle_delay_seconds = 2

[logging]
level = "INFO"
file_path = ""
audit_path = ""
"""

STAKES = [
    Decimal("0.35"), Decimal("0.69"), Decimal("1.39"), Decimal("2.84"),
    Decimal("5.8"), Decimal("11.52"), Decimal("23.51"), Decimal("47.98"),
]


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    """Create a temp config directory with default.toml."""
    config = tmp_path / "config"
    config.mkdir()
    (config / "default.toml").write_text(DEFAULT_TOML)
    return config


@pytest.fixture()
def config_loader(config_dir: Path) -> ConfigLoader:
    loader = ConfigLoader(config_dir=config_dir)
    loader.load()
    return loader


@pytest.fixture()
def settings() -> TraderSettings:
    return TraderSettings(
        token="test-token-abcd",
        symbols=("R_100",),
        threshold=3,
        audit_path=None,
    )


@pytest.fixture()
def martingale() -> MartingaleTable:
    return MartingaleTable(STAKES)


def _make_tick(digit: int, symbol: str = "R_100", pip_size: int = 2) -> Tick:
    """Tick whose quote ends in ``digit`` at ``pip_size`` places."""
    return Tick(symbol=symbol, quote=Decimal(f"1234.5{digit}"), pip_size=pip_size)


def _tick_message(quote: Any, symbol: str = "R_100", pip_size: int = 2) -> dict[str, Any]:
    return {
        "msg_type": "tick",
        "tick": {"symbol": symbol, "quote": quote, "pip_size": pip_size, "epoch": 1700000000},
        "subscription": {"id": f"tick-sub-{symbol}"},
    }


def _contract_message(
    contract_id: str,
    *,
    status: str = "open",
    profit: Any = None,
    balance_after: Any = None,
    ticks: list[str] | None = None,
    sub_id: str = "poc-sub-1",
) -> dict[str, Any]:
    payload: dict[str, Any] = {"contract_id": contract_id, "status": status}
    if status != "open":
        payload["is_sold"] = 1
    if profit is not None:
        payload["profit"] = profit
    if balance_after is not None:
        payload["balance_after"] = balance_after
    if ticks:
        payload["tick_stream"] = [{"tick_display_value": t, "epoch": 1700000000 + i} for i, t in enumerate(ticks)]
    return {
        "msg_type": "proposal_open_contract",
        "proposal_open_contract": payload,
        "subscription": {"id": sub_id},
    }


@pytest.fixture()
def sample_contract() -> Contract:
    return Contract(contract_id="1001", symbol="R_100", bet=BetType.ODD, stake=Decimal("0.35"))


@pytest.fixture()
def make_tick() -> Any:
    return _make_tick


@pytest.fixture()
def tick_message() -> Any:
    return _tick_message


@pytest.fixture()
def contract_message() -> Any:
    return _contract_message
