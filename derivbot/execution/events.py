"""Logging event sink — renders trader events through structlog."""

from __future__ import annotations

from typing import TYPE_CHECKING

from derivbot.core.logging import get_logger
from derivbot.models.events import ShutdownSummary, StatsSnapshot, TradeSettled, TradeStarted

if TYPE_CHECKING:
    from derivbot.models.events import TraderEvent

logger = get_logger("derivbot.trades")


class LoggingEventSink:
    """Writes each event as one structured log line. Implements EventSink."""

    def __init__(self, currency: str = "USD") -> None:
        self._currency = currency

    def emit(self, event: TraderEvent) -> None:
        if isinstance(event, TradeStarted):
            logger.info(
                "trade.started",
                symbol=event.symbol,
                bet=event.bet_type.value,
                stake=str(event.stake),
                currency=self._currency,
                contract_id=event.contract_id,
                simulated=event.simulated,
            )
        elif isinstance(event, TradeSettled):
            log_fn = logger.info if event.won else logger.warning
            log_fn(
                "trade.won" if event.won else "trade.lost",
                symbol=event.symbol,
                bet=event.bet_type.value,
                profit=str(event.profit),
                balance=str(event.balance_after) if event.balance_after is not None else None,
                currency=self._currency,
                contract_id=event.contract_id,
                simulated=event.simulated,
            )
        elif isinstance(event, StatsSnapshot):
            logger.info(
                "stats.snapshot",
                total_trades=event.total_trades,
                won=event.won,
                lost=event.lost,
                win_rate=str(event.win_rate),
                balance=str(event.current_balance),
                profit=str(event.profit),
                currency=self._currency,
            )
        elif isinstance(event, ShutdownSummary):
            logger.info(
                "session.summary",
                reason=event.reason,
                initial_balance=str(event.initial_balance),
                final_balance=str(event.final_balance),
                total_profit=str(event.total_profit),
                total_trades=event.total_trades,
                win_rate=str(event.win_rate),
                currency=event.currency,
            )
            for inst in event.instruments:
                logger.info(
                    "session.instrument",
                    symbol=inst.symbol,
                    trades=inst.trades,
                    won=inst.won,
                    lost=inst.lost,
                    win_rate=str(inst.win_rate),
                    profit=str(inst.profit),
                )
        else:
            logger.debug("event", kind=event.kind)
