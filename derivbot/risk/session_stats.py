"""Session statistics — trade counts, balance and profit per session."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from derivbot.core.logging import get_logger
from derivbot.models.events import InstrumentSummary, ShutdownSummary, StatsSnapshot

log = get_logger(__name__)

_ZERO = Decimal("0")


def _win_rate(won: int, total: int) -> Decimal:
    if total == 0:
        return _ZERO
    return (Decimal(won) / Decimal(total) * 100).quantize(Decimal("0.01"))


@dataclass
class _InstrumentTally:
    trades: int = 0
    won: int = 0
    lost: int = 0
    profit: Decimal = _ZERO


class SessionStats:
    """Aggregate statistics for one trading session.

    Updated only from authoritative events: placements and settlements.
    The current balance is always the venue-reported ``balance_after``;
    it is never derived from profit deltas.
    """

    def __init__(self, initial_balance: Decimal = _ZERO, symbols: tuple[str, ...] = ()) -> None:
        self._initial_balance = initial_balance
        self._current_balance = initial_balance
        self._profit = _ZERO
        self._total_trades = 0
        self._won = 0
        self._lost = 0
        self._instruments: dict[str, _InstrumentTally] = {s: _InstrumentTally() for s in symbols}

    @property
    def initial_balance(self) -> Decimal:
        return self._initial_balance

    @property
    def current_balance(self) -> Decimal:
        return self._current_balance

    @property
    def profit(self) -> Decimal:
        """Cumulative realized profit of settled contracts."""
        return self._profit

    @property
    def total_trades(self) -> int:
        return self._total_trades

    @property
    def won(self) -> int:
        return self._won

    @property
    def lost(self) -> int:
        return self._lost

    @property
    def win_rate(self) -> Decimal:
        return _win_rate(self._won, self._total_trades)

    def set_initial_balance(self, balance: Decimal) -> None:
        """Record the opening balance captured after authorization."""
        self._initial_balance = balance
        self._current_balance = balance

    def record_trade(self, symbol: str) -> None:
        """Count a successfully placed contract."""
        self._total_trades += 1
        self._tally(symbol).trades += 1

    def record_settlement(
        self,
        symbol: str,
        profit: Decimal,
        balance_after: Decimal | None,
        *,
        won: bool | None = None,
    ) -> bool:
        """Apply a settled contract. Returns True when it was a win.

        ``won`` overrides the sign of ``profit`` when the engine already
        decided the outcome.
        """
        if won is None:
            won = profit >= 0
        tally = self._tally(symbol)
        if won:
            self._won += 1
            tally.won += 1
        else:
            self._lost += 1
            tally.lost += 1
        self._profit += profit
        tally.profit += profit

        if balance_after is not None:
            self._current_balance = balance_after
        else:
            log.warning("settlement_without_balance", symbol=symbol, profit=str(profit))
        return won

    def instruments(self) -> list[InstrumentSummary]:
        return [
            InstrumentSummary(
                symbol=symbol,
                trades=t.trades,
                won=t.won,
                lost=t.lost,
                profit=t.profit,
            )
            for symbol, t in self._instruments.items()
        ]

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            total_trades=self._total_trades,
            won=self._won,
            lost=self._lost,
            win_rate=self.win_rate,
            current_balance=self._current_balance,
            profit=self._profit,
            instruments=self.instruments(),
        )

    def summary(self, final_balance: Decimal, reason: str, currency: str = "USD") -> ShutdownSummary:
        """Build the end-of-session summary against a final balance."""
        return ShutdownSummary(
            reason=reason,
            initial_balance=self._initial_balance,
            final_balance=final_balance,
            total_profit=final_balance - self._initial_balance,
            total_trades=self._total_trades,
            win_rate=self.win_rate,
            currency=currency,
            instruments=self.instruments(),
        )

    def _tally(self, symbol: str) -> _InstrumentTally:
        if symbol not in self._instruments:
            self._instruments[symbol] = _InstrumentTally()
        return self._instruments[symbol]
