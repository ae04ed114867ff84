"""Live executor — buys contracts and subscribes to their updates."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from derivbot.core.logging import get_logger, log_contract_event
from derivbot.models.contract import Contract

if TYPE_CHECKING:
    from derivbot.interfaces import TradingClient
    from derivbot.strategies.digit_parity import TradeIntent

logger = get_logger(__name__)


class LiveExecutor:
    """Places real contracts through a TradingClient.

    Implements the TradeExecutor protocol with mode='live'.
    """

    def __init__(
        self,
        client: TradingClient,
        currency: str = "USD",
        duration: int = 1,
        duration_unit: str = "t",
    ) -> None:
        self._client = client
        self._currency = currency
        self._duration = duration
        self._duration_unit = duration_unit

    @property
    def mode(self) -> str:
        return "live"

    async def submit(self, intent: TradeIntent) -> Contract:
        logger.info(
            "live_submit",
            symbol=intent.symbol,
            bet=intent.bet.value,
            stake=str(intent.stake),
            recovery=intent.recovery,
        )
        receipt = await self._client.buy_contract(
            bet=intent.bet,
            stake=intent.stake,
            duration=self._duration,
            duration_unit=self._duration_unit,
            currency=self._currency,
            symbol=intent.symbol,
        )
        buy_price = receipt.get("buy_price")
        contract = Contract(
            contract_id=str(receipt["contract_id"]),
            symbol=intent.symbol,
            bet=intent.bet,
            stake=Decimal(str(buy_price)) if buy_price is not None else intent.stake,
        )
        log_contract_event(
            "buy",
            contract.contract_id,
            symbol=intent.symbol,
            bet=intent.bet.value,
            stake=str(contract.stake),
            balance_after=str(receipt.get("balance_after", "")),
        )
        return contract

    async def watch(self, contract: Contract) -> str | None:
        subscription_id = await self._client.subscribe_contract(contract.contract_id)
        if subscription_id:
            contract.subscription_id = subscription_id
        return subscription_id

    async def close(self) -> None:
        """Nothing to release; open contracts settle at the venue."""
