"""Digit-parity reversal strategy — one engine per traded instrument.

The engine counts consecutive ticks whose last digit shares a parity.
When a streak reaches the threshold it asks for a contract on the
opposite parity, staked from the Martingale table by the current loss
count. While a contract is outstanding the streak counters are frozen.

An early prediction from the contract's intermediate tick history may
pre-arm the follow-up bet; the per-contract ``loss_counted`` flag makes
sure a loss moves ``loss_count`` exactly once whether it was seen first
by prediction or by settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from derivbot.core.logging import get_logger, log_contract_event
from derivbot.models.contract import BetType, Contract, ContractStatus, Outcome
from derivbot.models.market import Parity

if TYPE_CHECKING:
    from derivbot.models.contract import ContractUpdate
    from derivbot.models.market import Tick
    from derivbot.risk.martingale import MartingaleTable

log = get_logger(__name__)


class Phase(str, Enum):
    COUNTING = "COUNTING"
    AWAITING_FILL = "AWAITING_FILL"
    OPEN = "OPEN"


class ResultKind(str, Enum):
    PREDICTION = "PREDICTION"
    SETTLEMENT = "SETTLEMENT"


@dataclass
class InstrumentState:
    """Mutable per-instrument strategy state. Reset, never destroyed."""

    symbol: str
    even_streak: int = 0
    odd_streak: int = 0
    loss_count: int = 0
    active_contract_id: str | None = None
    current_bet: BetType | None = None
    pending_bet: BetType | None = None
    pending_from: str | None = None
    phase: Phase = Phase.COUNTING
    last_digit: int | None = None
    last_tick_at: datetime | None = None
    last_trade_at: datetime | None = None

    def streak(self, parity: Parity) -> int:
        return self.even_streak if parity is Parity.EVEN else self.odd_streak


@dataclass(frozen=True)
class TradeIntent:
    """Request to place a contract, produced by the engine."""

    symbol: str
    bet: BetType
    stake: Decimal
    loss_count: int
    recovery: bool = False


@dataclass(frozen=True)
class ContractResult:
    """Outcome of a prediction or settlement for one contract."""

    kind: ResultKind
    contract: Contract
    outcome: Outcome
    loss_count: int

    @property
    def is_settlement(self) -> bool:
        return self.kind is ResultKind.SETTLEMENT


class DigitParityEngine:
    """Strategy state machine for a single instrument.

    Phases: COUNTING -> AWAITING_FILL -> OPEN -> COUNTING.

    All methods are synchronous; the orchestrator performs the awaits
    (placement, subscription) and reports back through ``on_order_placed``
    and ``on_placement_failed``.
    """

    def __init__(self, symbol: str, threshold: int, martingale: MartingaleTable) -> None:
        if threshold <= 0:
            msg = f"threshold must be positive, got {threshold}"
            raise ValueError(msg)
        self._threshold = threshold
        self._martingale = martingale
        self._state = InstrumentState(symbol=symbol)
        self._contracts: dict[str, Contract] = {}

    @property
    def symbol(self) -> str:
        return self._state.symbol

    @property
    def state(self) -> InstrumentState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def open_contracts(self) -> list[Contract]:
        """Contracts placed by this engine and not yet settled."""
        return list(self._contracts.values())

    def owns(self, contract_id: str) -> bool:
        return contract_id in self._contracts

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def on_tick(self, tick: Tick) -> TradeIntent | None:
        """Consume one tick; returns a trade intent when one should be placed."""
        st = self._state
        digit = tick.last_digit
        st.last_digit = digit
        st.last_tick_at = datetime.now(tz=UTC)

        if st.phase is not Phase.COUNTING:
            return None

        if st.pending_bet is not None:
            bet = st.pending_bet
            st.pending_bet = None
            st.pending_from = None
            log.info("engine.recovery_trade", symbol=st.symbol, bet=bet.value, loss_count=st.loss_count)
            return self._request_trade(bet, recovery=True)

        parity = Parity.of(digit)
        if parity is Parity.EVEN:
            st.even_streak += 1
            st.odd_streak = 0
        else:
            st.odd_streak += 1
            st.even_streak = 0

        streak = st.streak(parity)
        log.debug(
            "engine.tick",
            symbol=st.symbol,
            quote=str(tick.quote),
            digit=digit,
            parity=parity.value,
            streak=streak,
            threshold=self._threshold,
        )

        if streak == self._threshold:
            return self._request_trade(BetType.against(parity))
        return None

    def _request_trade(self, bet: BetType, *, recovery: bool = False) -> TradeIntent | None:
        st = self._state
        stake = self._martingale.stake_for(st.loss_count)
        if stake is None:
            log.warning(
                "engine.martingale_exhausted",
                symbol=st.symbol,
                loss_count=st.loss_count,
                table_size=len(self._martingale),
            )
            self.reset(clear_losses=True)
            return None

        st.phase = Phase.AWAITING_FILL
        st.current_bet = bet
        return TradeIntent(
            symbol=st.symbol,
            bet=bet,
            stake=stake,
            loss_count=st.loss_count,
            recovery=recovery,
        )

    # ------------------------------------------------------------------
    # Placement feedback
    # ------------------------------------------------------------------

    def on_order_placed(self, contract: Contract) -> None:
        """Record a successfully placed contract and enter OPEN."""
        st = self._state
        self._contracts[contract.contract_id] = contract
        st.active_contract_id = contract.contract_id
        st.current_bet = contract.bet
        st.last_trade_at = contract.opened_at
        st.phase = Phase.OPEN
        log_contract_event(
            "open",
            contract.contract_id,
            symbol=st.symbol,
            bet=contract.bet.value,
            stake=str(contract.stake),
            loss_count=st.loss_count,
        )

    def on_placement_failed(self, contract_id: str | None = None) -> None:
        """Abandon a trade that could not be placed or watched.

        ``loss_count`` is left untouched; a failed placement is not a loss.
        """
        if contract_id is not None:
            self._contracts.pop(contract_id, None)
        log.warning("engine.placement_failed", symbol=self.symbol, contract_id=contract_id)
        self.reset(clear_losses=False)

    def cancel_intent(self) -> None:
        """Drop an intent that was refused before placement."""
        if self._state.phase is Phase.AWAITING_FILL:
            self.reset(clear_losses=False)

    # ------------------------------------------------------------------
    # Contract updates
    # ------------------------------------------------------------------

    def on_contract_update(self, update: ContractUpdate) -> ContractResult | None:
        """Apply a contract update; returns a prediction or settlement result."""
        contract = self._contracts.get(update.contract_id)
        if contract is None or contract.is_settled:
            return None

        if update.subscription_id and contract.subscription_id is None:
            contract.subscription_id = update.subscription_id
        if update.tick_stream:
            contract.tick_history = list(update.tick_stream)

        if update.is_settled:
            return self._settle(contract, update)

        if (
            contract.prediction is None
            and update.has_tick_history
            and self._state.active_contract_id == contract.contract_id
            and self._state.phase is Phase.OPEN
        ):
            return self._predict(contract, update)
        return None

    def _predict(self, contract: Contract, update: ContractUpdate) -> ContractResult | None:
        digit = update.observed_digit()
        if digit is None:
            log.debug("engine.no_prediction_digit", symbol=self.symbol, contract_id=contract.contract_id)
            return None

        st = self._state
        outcome = Outcome.WON if contract.bet.wins_on(digit) else Outcome.LOST
        contract.prediction = outcome
        log_contract_event("predict", contract.contract_id, symbol=st.symbol, digit=digit, outcome=outcome.value)

        if outcome is Outcome.LOST:
            st.loss_count += 1
            contract.loss_counted = True
            self._enter_counting()
            self._arm(contract)
            log.warning(
                "engine.predicted_loss",
                symbol=st.symbol,
                contract_id=contract.contract_id,
                loss_count=st.loss_count,
                next_bet=st.pending_bet.value if st.pending_bet else None,
            )
        else:
            # settlement restores this count if the contract turns out lost
            contract.losses_before = st.loss_count
            log.info("engine.predicted_win", symbol=st.symbol, contract_id=contract.contract_id)
            self.reset(clear_losses=True)

        return ContractResult(
            kind=ResultKind.PREDICTION,
            contract=contract,
            outcome=outcome,
            loss_count=st.loss_count,
        )

    def _settle(self, contract: Contract, update: ContractUpdate) -> ContractResult:
        st = self._state
        if update.profit is not None:
            profit = update.profit
            outcome = Outcome.WON if profit >= 0 else Outcome.LOST
        else:
            outcome = self._outcome_from_status(contract, update.status)
            # a lost digit contract forfeits exactly its stake
            profit = -contract.stake if outcome is Outcome.LOST else Decimal("0")
            log.warning(
                "engine.settlement_without_profit",
                symbol=st.symbol,
                contract_id=contract.contract_id,
                status=update.status,
                outcome=outcome.value,
            )
        contract.status = ContractStatus.SETTLED
        contract.profit = profit
        contract.balance_after = update.balance_after
        contract.settled_at = datetime.now(tz=UTC)
        self._contracts.pop(contract.contract_id, None)

        is_active = st.active_contract_id == contract.contract_id
        idle = st.phase is Phase.COUNTING or (is_active and st.phase is Phase.OPEN)

        if outcome is Outcome.WON:
            st.loss_count = 0
            if st.pending_from == contract.contract_id:
                st.pending_bet = None
                st.pending_from = None
            if is_active and st.phase is Phase.OPEN:
                self.reset(clear_losses=True)
        else:
            if not contract.loss_counted:
                if contract.losses_before is not None:
                    st.loss_count = contract.losses_before + 1
                    log.warning(
                        "engine.prediction_contradicted",
                        symbol=st.symbol,
                        contract_id=contract.contract_id,
                        loss_count=st.loss_count,
                    )
                else:
                    st.loss_count += 1
                contract.loss_counted = True
                if idle:
                    self._enter_counting()
                    self._arm(contract)
            elif is_active and st.phase is Phase.OPEN:
                self._enter_counting()

        if is_active:
            st.active_contract_id = None

        log_contract_event(
            "settle",
            contract.contract_id,
            symbol=st.symbol,
            outcome=outcome.value,
            profit=str(profit),
            balance_after=str(update.balance_after) if update.balance_after is not None else None,
            predicted=contract.prediction.value if contract.prediction else None,
            loss_count=st.loss_count,
        )
        return ContractResult(
            kind=ResultKind.SETTLEMENT,
            contract=contract,
            outcome=outcome,
            loss_count=st.loss_count,
        )

    @staticmethod
    def _outcome_from_status(contract: Contract, status: str) -> Outcome:
        """Outcome of a settlement that carried no profit figure."""
        status = status.lower()
        if status == "won":
            return Outcome.WON
        if status == "lost":
            return Outcome.LOST
        return contract.prediction or Outcome.LOST

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _arm(self, contract: Contract) -> None:
        st = self._state
        st.pending_bet = contract.bet.opposite
        st.pending_from = contract.contract_id

    def _enter_counting(self) -> None:
        st = self._state
        st.even_streak = 0
        st.odd_streak = 0
        st.current_bet = None
        st.phase = Phase.COUNTING

    def reset(self, *, clear_losses: bool) -> None:
        """Return to COUNTING with fresh streaks.

        ``clear_losses`` is set on a win or on Martingale exhaustion only.
        """
        st = self._state
        self._enter_counting()
        st.pending_bet = None
        st.pending_from = None
        st.active_contract_id = None
        if clear_losses:
            st.loss_count = 0
        log.info("engine.reset", symbol=st.symbol, loss_count=st.loss_count, cleared=clear_losses)
