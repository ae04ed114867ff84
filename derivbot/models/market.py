"""Market data models — ticks and digit parity."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator


class Parity(str, Enum):
    EVEN = "EVEN"
    ODD = "ODD"

    @classmethod
    def of(cls, digit: int) -> Parity:
        return cls.EVEN if digit % 2 == 0 else cls.ODD


def last_digit(quote: Decimal, pip_size: int) -> int:
    """Final decimal digit of ``quote`` rendered at ``pip_size`` places.

    The precision always comes from the feed; 1234.5 at pip_size 2 is
    "1234.50" and yields 0.
    """
    if pip_size < 0:
        msg = f"pip_size must be >= 0, got {pip_size}"
        raise ValueError(msg)
    exponent = Decimal(1).scaleb(-pip_size)
    rendered = format(quote.quantize(exponent, rounding=ROUND_HALF_UP), "f")
    return int(rendered[-1])


def display_digit(display_value: str) -> int:
    """Last digit of a venue-formatted display string such as "1234.57"."""
    text = display_value.strip()
    if not text or not text[-1].isdigit():
        msg = f"No trailing digit in display value {display_value!r}"
        raise ValueError(msg)
    return int(text[-1])


class Tick(BaseModel):
    """One price update for an instrument."""

    symbol: str
    quote: Decimal
    pip_size: int
    epoch: int = 0
    id: str = ""

    model_config = {"frozen": True}

    @field_validator("quote", mode="before")
    @classmethod
    def _quote_from_str(cls, value: Any) -> Decimal:
        # Go through str so float quotes keep their printed digits
        return value if isinstance(value, Decimal) else Decimal(str(value))

    @field_validator("pip_size", mode="before")
    @classmethod
    def _pip_size_int(cls, value: Any) -> int:
        # Deriv sends pip_size as a number (sometimes float, e.g. 2.0)
        as_float = float(value)
        if not as_float.is_integer():
            msg = f"pip_size must be integral, got {value}"
            raise ValueError(msg)
        return int(as_float)

    @property
    def last_digit(self) -> int:
        return last_digit(self.quote, self.pip_size)

    @property
    def parity(self) -> Parity:
        return Parity.of(self.last_digit)
