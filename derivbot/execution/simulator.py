"""Simulated executor — deferred random outcomes instead of real contracts."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import random
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from derivbot.core.logging import get_logger, log_contract_event
from derivbot.models.contract import Contract

if TYPE_CHECKING:
    from collections.abc import Callable

    from derivbot.strategies.digit_parity import TradeIntent

logger = get_logger(__name__)


class SimulatedExecutor:
    """Simulated contract execution for dry runs.

    Implements the TradeExecutor protocol with mode='simulation'. No
    request ever reaches the venue: each watched contract is settled
    after ``settle_delay`` seconds by a pseudo-random draw and the result
    is delivered to ``on_update`` as a regular ``proposal_open_contract``
    message, so it travels the same path as a live settlement.
    """

    def __init__(
        self,
        initial_balance: Decimal = Decimal("10000"),
        payout: Decimal = Decimal("0.95"),
        win_probability: float = 0.5,
        settle_delay: float = 2.0,
        on_update: Callable[[dict[str, Any]], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._balance = initial_balance
        self._initial_balance = initial_balance
        self._payout = payout
        self._win_probability = win_probability
        self._settle_delay = settle_delay
        self._on_update = on_update
        self._rng = rng or random.Random()
        self._ids = itertools.count(1)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def mode(self) -> str:
        return "simulation"

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def pnl(self) -> Decimal:
        return self._balance - self._initial_balance

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def fund(self, balance: Decimal) -> None:
        """Start the simulated account from a known balance."""
        self._balance = balance
        self._initial_balance = balance

    def bind(self, on_update: Callable[[dict[str, Any]], None]) -> None:
        self._on_update = on_update

    async def submit(self, intent: TradeIntent) -> Contract:
        contract = Contract(
            contract_id=f"SIM-{next(self._ids)}",
            symbol=intent.symbol,
            bet=intent.bet,
            stake=intent.stake,
        )
        log_contract_event(
            "sim_buy",
            contract.contract_id,
            symbol=intent.symbol,
            bet=intent.bet.value,
            stake=str(intent.stake),
        )
        return contract

    async def watch(self, contract: Contract) -> str | None:
        task = asyncio.create_task(self._settle_later(contract))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return None

    async def close(self) -> None:
        """Cancel every draw that has not fired yet."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    def draw(self, contract: Contract) -> dict[str, Any]:
        """Decide one contract's outcome and build its settlement message."""
        won = self._rng.random() < self._win_probability
        if won:
            profit = contract.stake * self._payout
        else:
            profit = -contract.stake
        self._balance += profit

        log_contract_event(
            "sim_settle",
            contract.contract_id,
            symbol=contract.symbol,
            won=won,
            profit=str(profit),
            balance=str(self._balance),
        )
        return {
            "msg_type": "proposal_open_contract",
            "proposal_open_contract": {
                "contract_id": contract.contract_id,
                "contract_type": contract.bet.value,
                "underlying": contract.symbol,
                "buy_price": str(contract.stake),
                "status": "won" if won else "lost",
                "is_sold": 1,
                "profit": str(profit),
                "balance_after": str(self._balance),
            },
        }

    async def _settle_later(self, contract: Contract) -> None:
        if self._settle_delay > 0:
            await asyncio.sleep(self._settle_delay)
        message = self.draw(contract)
        if self._on_update is None:
            logger.warning("sim_update_dropped", contract_id=contract.contract_id)
            return
        self._on_update(message)
