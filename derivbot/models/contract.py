"""Contract (order) models and venue contract updates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from derivbot.models.market import Parity, display_digit


class BetType(str, Enum):
    """Digit-parity contract types as named by the venue."""

    ODD = "DIGITODD"
    EVEN = "DIGITEVEN"

    @property
    def opposite(self) -> BetType:
        return BetType.EVEN if self is BetType.ODD else BetType.ODD

    @property
    def parity(self) -> Parity:
        return Parity.ODD if self is BetType.ODD else Parity.EVEN

    @classmethod
    def against(cls, streak: Parity) -> BetType:
        """Bet on the parity opposite to a completed streak."""
        return cls.ODD if streak is Parity.EVEN else cls.EVEN

    def wins_on(self, digit: int) -> bool:
        return Parity.of(digit) is self.parity


class ContractStatus(str, Enum):
    OPEN = "OPEN"
    SETTLED = "SETTLED"


class Outcome(str, Enum):
    WON = "WON"
    LOST = "LOST"


_SETTLED_STATUSES = frozenset({"sold", "won", "lost"})


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


class ContractUpdate(BaseModel):
    """A ``proposal_open_contract`` push for one contract."""

    contract_id: str
    status: str = "open"
    is_sold: bool = False
    profit: Decimal | None = None
    balance_after: Decimal | None = None
    buy_price: Decimal | None = None
    tick_stream: list[dict[str, Any]] = Field(default_factory=list)
    exit_tick_display_value: str | None = None
    subscription_id: str | None = None

    model_config = {"frozen": True}

    @field_validator("contract_id", "subscription_id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @field_validator("profit", "balance_after", "buy_price", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal | None:
        return _decimal_or_none(value)

    @field_validator("is_sold", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> str:
        return "open" if value is None else str(value)

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> ContractUpdate:
        """Build from a full venue message (payload plus subscription envelope)."""
        payload = dict(message.get("proposal_open_contract") or {})
        subscription = message.get("subscription") or {}
        if "subscription_id" not in payload:
            payload["subscription_id"] = subscription.get("id") or payload.get("id")
        return cls.model_validate(payload)

    @property
    def is_settled(self) -> bool:
        return self.is_sold or self.status.lower() in _SETTLED_STATUSES

    @property
    def has_tick_history(self) -> bool:
        return bool(self.tick_stream)

    def observed_digit(self) -> int | None:
        """Last digit of the exit tick, else of the newest streamed tick."""
        value = self.exit_tick_display_value
        if not value and self.tick_stream:
            value = self.tick_stream[-1].get("tick_display_value")
            if value is None and self.tick_stream[-1].get("tick") is not None:
                value = str(self.tick_stream[-1]["tick"])
        if not value:
            return None
        try:
            return display_digit(str(value))
        except ValueError:
            return None


@dataclass
class Contract:
    """A placed bet, tracked from purchase until settlement."""

    contract_id: str
    symbol: str
    bet: BetType
    stake: Decimal
    status: ContractStatus = ContractStatus.OPEN
    profit: Decimal | None = None
    balance_after: Decimal | None = None
    tick_history: list[dict[str, Any]] = field(default_factory=list)
    prediction: Outcome | None = None
    loss_counted: bool = False
    losses_before: int | None = None
    subscription_id: str | None = None
    opened_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    settled_at: datetime | None = None

    @property
    def is_settled(self) -> bool:
        return self.status is ContractStatus.SETTLED

    @property
    def outcome(self) -> Outcome | None:
        if self.profit is None or not self.is_settled:
            return None
        return Outcome.WON if self.profit >= 0 else Outcome.LOST
