"""Protocol interfaces for derivbot components.

The orchestrator codes against these contracts so live and simulated
execution, and any number of event sinks, are interchangeable.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

    from derivbot.models.account import AccountInfo
    from derivbot.models.contract import BetType, Contract
    from derivbot.models.events import TraderEvent
    from derivbot.strategies.digit_parity import TradeIntent


@runtime_checkable
class TradingClient(Protocol):
    """Protocol for the venue connection (Deriv WebSocket API)."""

    def bind(
        self,
        on_push: Callable[[dict[str, Any]], None] | None = None,
        on_reconnect: Callable[[], Any] | None = None,
        on_fatal: Callable[[str], Any] | None = None,
    ) -> None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def authorize(self, token: str) -> AccountInfo: ...

    async def subscribe_ticks(self, symbol: str) -> str: ...

    async def buy_contract(
        self,
        bet: BetType,
        stake: Decimal,
        duration: int,
        duration_unit: str,
        currency: str,
        symbol: str,
    ) -> dict[str, Any]: ...

    async def subscribe_contract(self, contract_id: str) -> str | None: ...

    async def forget(self, subscription_id: str) -> bool: ...

    async def get_balance(self, account: str = "current") -> Decimal: ...

    @property
    def is_connected(self) -> bool: ...

    @property
    def is_authorized(self) -> bool: ...


@runtime_checkable
class TradeExecutor(Protocol):
    """Protocol for contract execution (live or simulated)."""

    async def submit(self, intent: TradeIntent) -> Contract: ...

    async def watch(self, contract: Contract) -> str | None: ...

    async def close(self) -> None: ...

    @property
    def mode(self) -> str: ...


@runtime_checkable
class EventSink(Protocol):
    """Protocol for consumers of typed trader events."""

    def emit(self, event: TraderEvent) -> None: ...
