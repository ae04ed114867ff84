"""Tests for LiveExecutor."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from derivbot.core.errors import RemoteError
from derivbot.execution.live import LiveExecutor
from derivbot.models.contract import BetType
from derivbot.strategies.digit_parity import TradeIntent


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.buy_contract = AsyncMock(return_value={"contract_id": 4242, "buy_price": 0.69, "balance_after": 999.31})
    client.subscribe_contract = AsyncMock(return_value="poc-sub-9")
    return client


@pytest.fixture
def executor(client: MagicMock) -> LiveExecutor:
    return LiveExecutor(client, currency="USD", duration=1, duration_unit="t")


def _intent() -> TradeIntent:
    return TradeIntent(symbol="R_10", bet=BetType.EVEN, stake=Decimal("0.69"), loss_count=1)


@pytest.mark.asyncio
async def test_mode(executor: LiveExecutor) -> None:
    assert executor.mode == "live"


@pytest.mark.asyncio
async def test_submit_buys_contract(executor: LiveExecutor, client: MagicMock) -> None:
    contract = await executor.submit(_intent())
    client.buy_contract.assert_awaited_once_with(
        bet=BetType.EVEN,
        stake=Decimal("0.69"),
        duration=1,
        duration_unit="t",
        currency="USD",
        symbol="R_10",
    )
    assert contract.contract_id == "4242"
    assert contract.stake == Decimal("0.69")
    assert contract.symbol == "R_10"


@pytest.mark.asyncio
async def test_submit_propagates_rejection(executor: LiveExecutor, client: MagicMock) -> None:
    client.buy_contract.side_effect = RemoteError("InvalidSymbol", "market closed", "buy")
    with pytest.raises(RemoteError):
        await executor.submit(_intent())


@pytest.mark.asyncio
async def test_watch_subscribes(executor: LiveExecutor, client: MagicMock) -> None:
    contract = await executor.submit(_intent())
    assert await executor.watch(contract) == "poc-sub-9"
    client.subscribe_contract.assert_awaited_once_with("4242")
    assert contract.subscription_id == "poc-sub-9"
