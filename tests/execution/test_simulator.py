"""Tests for SimulatedExecutor: deferred draws, payout, balance."""

from __future__ import annotations

import asyncio
import random
from decimal import Decimal
from typing import Any

import pytest

from derivbot.execution.simulator import SimulatedExecutor
from derivbot.models.contract import BetType, Contract, ContractUpdate
from derivbot.strategies.digit_parity import TradeIntent


def _intent(stake: str = "1.39") -> TradeIntent:
    return TradeIntent(symbol="R_100", bet=BetType.ODD, stake=Decimal(stake), loss_count=2)


def _contract(stake: str = "1.39") -> Contract:
    return Contract(contract_id="SIM-1", symbol="R_100", bet=BetType.ODD, stake=Decimal(stake))


@pytest.fixture
def updates() -> list[dict[str, Any]]:
    return []


@pytest.fixture
def sim(updates: list[dict[str, Any]]) -> SimulatedExecutor:
    return SimulatedExecutor(
        initial_balance=Decimal("1000"),
        settle_delay=0,
        on_update=updates.append,
        rng=random.Random(7),
    )


@pytest.mark.asyncio
async def test_mode(sim: SimulatedExecutor) -> None:
    assert sim.mode == "simulation"


@pytest.mark.asyncio
async def test_submit_assigns_sim_ids(sim: SimulatedExecutor) -> None:
    first = await sim.submit(_intent())
    second = await sim.submit(_intent())
    assert first.contract_id == "SIM-1"
    assert second.contract_id == "SIM-2"
    assert first.stake == Decimal("1.39")


def test_win_pays_stake_times_payout() -> None:
    sim = SimulatedExecutor(initial_balance=Decimal("1000"), win_probability=1.0)
    message = sim.draw(_contract())
    update = ContractUpdate.from_message(message)
    assert update.is_settled
    assert update.profit == Decimal("1.39") * Decimal("0.95")
    assert update.balance_after == Decimal("1000") + Decimal("1.3205")
    assert sim.balance == update.balance_after


def test_loss_costs_stake() -> None:
    sim = SimulatedExecutor(initial_balance=Decimal("1000"), win_probability=0.0)
    update = ContractUpdate.from_message(sim.draw(_contract()))
    assert update.status == "lost"
    assert update.profit == Decimal("-1.39")
    assert update.balance_after == Decimal("998.61")
    assert sim.pnl == Decimal("-1.39")


def test_fund_resets_balance() -> None:
    sim = SimulatedExecutor()
    sim.fund(Decimal("250"))
    assert sim.balance == Decimal("250")
    assert sim.pnl == Decimal("0")


@pytest.mark.asyncio
async def test_watch_delivers_settlement(sim: SimulatedExecutor, updates: list[dict[str, Any]]) -> None:
    contract = await sim.submit(_intent())
    assert await sim.watch(contract) is None
    for _ in range(50):
        if updates:
            break
        await asyncio.sleep(0)
    assert len(updates) == 1
    assert updates[0]["msg_type"] == "proposal_open_contract"
    assert updates[0]["proposal_open_contract"]["contract_id"] == contract.contract_id


@pytest.mark.asyncio
async def test_close_cancels_pending_draws(updates: list[dict[str, Any]]) -> None:
    sim = SimulatedExecutor(settle_delay=10, on_update=updates.append)
    contract = await sim.submit(_intent())
    await sim.watch(contract)
    assert sim.pending == 1
    await sim.close()
    assert sim.pending == 0
    assert updates == []
