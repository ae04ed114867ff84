"""Martingale stake table — stake per consecutive-loss count."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class MartingaleTable:
    """Ordered stakes indexed by the number of consecutive losses.

    ``stake_for(k)`` is ``table[k]``; once ``k`` reaches the table length
    the table is exhausted and no stake is defined.
    """

    def __init__(self, stakes: Iterable[Decimal | str | float]) -> None:
        self._stakes: tuple[Decimal, ...] = tuple(
            s if isinstance(s, Decimal) else Decimal(str(s)) for s in stakes
        )
        if not self._stakes:
            msg = "Martingale table must contain at least one stake"
            raise ValueError(msg)
        if any(s <= 0 for s in self._stakes):
            msg = f"Martingale stakes must be positive, got {self._stakes}"
            raise ValueError(msg)

    def __len__(self) -> int:
        return len(self._stakes)

    def __iter__(self) -> Iterator[Decimal]:
        return iter(self._stakes)

    def __repr__(self) -> str:
        return f"MartingaleTable({[str(s) for s in self._stakes]})"

    def is_exhausted(self, loss_count: int) -> bool:
        return loss_count >= len(self._stakes)

    def stake_for(self, loss_count: int) -> Decimal | None:
        """Stake after ``loss_count`` consecutive losses, or None when exhausted."""
        if loss_count < 0:
            msg = f"loss_count must be >= 0, got {loss_count}"
            raise ValueError(msg)
        if self.is_exhausted(loss_count):
            return None
        return self._stakes[loss_count]
