"""Push dispatcher — routes stream messages to instrument engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from derivbot.core.logging import get_logger
from derivbot.models.contract import ContractUpdate
from derivbot.models.market import Tick

if TYPE_CHECKING:
    from derivbot.strategies.digit_parity import ContractResult, DigitParityEngine, TradeIntent

log = get_logger(__name__)


@dataclass(frozen=True)
class RouteResult:
    """What an engine produced for one routed push."""

    msg_type: str
    symbol: str
    intent: TradeIntent | None = None
    result: ContractResult | None = None


class PushDispatcher:
    """Classifies pushes by ``msg_type`` and hands them to the owning engine.

    Ticks are keyed by symbol; contract updates by contract id, matched
    against each engine's open contracts. Pushes for untracked symbols or
    contracts are dropped; late updates for settled contracts are normal.
    """

    def __init__(self, engines: list[DigitParityEngine] | None = None) -> None:
        self._engines: dict[str, DigitParityEngine] = {}
        for engine in engines or []:
            self.register(engine)

    @property
    def engines(self) -> dict[str, DigitParityEngine]:
        return dict(self._engines)

    def register(self, engine: DigitParityEngine) -> None:
        if engine.symbol in self._engines:
            msg = f"Engine already registered for {engine.symbol}"
            raise ValueError(msg)
        self._engines[engine.symbol] = engine

    def owner_of(self, contract_id: str) -> DigitParityEngine | None:
        for engine in self._engines.values():
            if engine.owns(contract_id):
                return engine
        return None

    def dispatch(self, message: dict[str, Any]) -> RouteResult | None:
        msg_type = message.get("msg_type")
        if msg_type == "tick":
            return self._route_tick(message)
        if msg_type == "proposal_open_contract":
            return self._route_contract(message)
        log.debug("dispatcher.unhandled_type", msg_type=msg_type)
        return None

    def _route_tick(self, message: dict[str, Any]) -> RouteResult | None:
        payload = message.get("tick")
        if not isinstance(payload, dict):
            log.warning("dispatcher.malformed_tick", message=str(message)[:200])
            return None
        try:
            tick = Tick.model_validate(payload)
        except ValidationError as exc:
            log.warning("dispatcher.malformed_tick", error=str(exc), payload=str(payload)[:200])
            return None

        engine = self._engines.get(tick.symbol)
        if engine is None:
            log.debug("dispatcher.untracked_symbol", symbol=tick.symbol)
            return None
        return RouteResult(msg_type="tick", symbol=tick.symbol, intent=engine.on_tick(tick))

    def _route_contract(self, message: dict[str, Any]) -> RouteResult | None:
        if not isinstance(message.get("proposal_open_contract"), dict):
            log.warning("dispatcher.malformed_contract", message=str(message)[:200])
            return None
        try:
            update = ContractUpdate.from_message(message)
        except ValidationError as exc:
            log.warning("dispatcher.malformed_contract", error=str(exc))
            return None

        engine = self.owner_of(update.contract_id)
        if engine is None:
            log.debug("dispatcher.untracked_contract", contract_id=update.contract_id)
            return None
        return RouteResult(
            msg_type="proposal_open_contract",
            symbol=engine.symbol,
            result=engine.on_contract_update(update),
        )
