"""Account models returned by the venue."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, field_validator


class AccountInfo(BaseModel):
    """Subset of the ``authorize`` response used by the trader."""

    loginid: str = ""
    balance: Decimal = Decimal("0")
    currency: str = "USD"
    is_virtual: bool = False

    model_config = {"frozen": True}

    @field_validator("balance", mode="before")
    @classmethod
    def _balance(cls, value: Any) -> Decimal:
        return value if isinstance(value, Decimal) else Decimal(str(value))

    @field_validator("is_virtual", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(value)
