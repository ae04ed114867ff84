"""Typed events emitted by the trading core for presentation/audit sinks."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from derivbot.models.contract import BetType  # noqa: TCH001


class TraderEvent(BaseModel):
    """Base for all emitted events."""

    kind: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    model_config = {"frozen": True}


class TradeStarted(TraderEvent):
    kind: Literal["trade_started"] = "trade_started"
    symbol: str
    bet_type: BetType
    stake: Decimal
    contract_id: str
    simulated: bool = False


class TradeSettled(TraderEvent):
    kind: Literal["trade_settled"] = "trade_settled"
    symbol: str
    bet_type: BetType
    contract_id: str
    profit: Decimal
    balance_after: Decimal | None
    won: bool
    simulated: bool = False


class InstrumentSummary(BaseModel):
    """Per-instrument slice of the session statistics."""

    symbol: str
    trades: int = 0
    won: int = 0
    lost: int = 0
    profit: Decimal = Decimal("0")

    model_config = {"frozen": True}

    @property
    def win_rate(self) -> Decimal:
        if self.trades == 0:
            return Decimal("0")
        return (Decimal(self.won) / Decimal(self.trades) * 100).quantize(Decimal("0.01"))


class StatsSnapshot(TraderEvent):
    kind: Literal["stats_snapshot"] = "stats_snapshot"
    total_trades: int
    won: int
    lost: int
    win_rate: Decimal
    current_balance: Decimal
    profit: Decimal
    instruments: list[InstrumentSummary] = Field(default_factory=list)


class ShutdownSummary(TraderEvent):
    kind: Literal["shutdown_summary"] = "shutdown_summary"
    reason: str
    initial_balance: Decimal
    final_balance: Decimal
    total_profit: Decimal
    total_trades: int
    win_rate: Decimal
    currency: str = "USD"
    instruments: list[InstrumentSummary] = Field(default_factory=list)
