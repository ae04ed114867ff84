"""Tests for contract models."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from derivbot.models.contract import BetType, Contract, ContractStatus, ContractUpdate, Outcome
from derivbot.models.market import Parity


class TestBetType:
    def test_opposite(self) -> None:
        assert BetType.ODD.opposite is BetType.EVEN
        assert BetType.EVEN.opposite is BetType.ODD

    def test_against_streak(self) -> None:
        assert BetType.against(Parity.EVEN) is BetType.ODD
        assert BetType.against(Parity.ODD) is BetType.EVEN

    def test_wins_on(self) -> None:
        assert BetType.ODD.wins_on(3)
        assert not BetType.ODD.wins_on(4)
        assert BetType.EVEN.wins_on(0)

    def test_venue_values(self) -> None:
        assert BetType.ODD.value == "DIGITODD"
        assert BetType.EVEN.value == "DIGITEVEN"


class TestContractUpdate:
    def test_from_message(self, contract_message: Any) -> None:
        update = ContractUpdate.from_message(
            contract_message("123", status="lost", profit="-0.35", balance_after="999.65"),
        )
        assert update.contract_id == "123"
        assert update.is_settled
        assert update.profit == Decimal("-0.35")
        assert update.balance_after == Decimal("999.65")
        assert update.subscription_id == "poc-sub-1"

    def test_numeric_contract_id(self) -> None:
        update = ContractUpdate.model_validate({"contract_id": 987654321})
        assert update.contract_id == "987654321"
        assert update.status == "open"
        assert not update.is_settled

    def test_sold_flag_settles(self) -> None:
        update = ContractUpdate.model_validate({"contract_id": "1", "status": "open", "is_sold": 1})
        assert update.is_settled

    def test_sold_status_settles(self) -> None:
        assert ContractUpdate.model_validate({"contract_id": "1", "status": "sold"}).is_settled

    def test_observed_digit_prefers_exit_tick(self) -> None:
        update = ContractUpdate.model_validate({
            "contract_id": "1",
            "exit_tick_display_value": "1234.58",
            "tick_stream": [{"tick_display_value": "1234.51"}],
        })
        assert update.observed_digit() == 8

    def test_observed_digit_from_last_stream_tick(self, contract_message: Any) -> None:
        update = ContractUpdate.from_message(contract_message("1", ticks=["100.12", "100.17"]))
        assert update.has_tick_history
        assert update.observed_digit() == 7

    def test_observed_digit_none_without_ticks(self) -> None:
        assert ContractUpdate.model_validate({"contract_id": "1"}).observed_digit() is None


class TestContract:
    def test_outcome_requires_settlement(self, sample_contract: Contract) -> None:
        sample_contract.profit = Decimal("0.33")
        assert sample_contract.outcome is None
        sample_contract.status = ContractStatus.SETTLED
        assert sample_contract.outcome is Outcome.WON

    def test_zero_profit_counts_as_win(self, sample_contract: Contract) -> None:
        sample_contract.status = ContractStatus.SETTLED
        sample_contract.profit = Decimal("0")
        assert sample_contract.outcome is Outcome.WON
