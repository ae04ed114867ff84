"""Audit logger — append-only JSONL trail for all trader events."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from derivbot.core.logging import get_logger, log_contract_event
from derivbot.models.events import TradeSettled, TradeStarted

if TYPE_CHECKING:
    from derivbot.models.events import TraderEvent

logger = get_logger(__name__)

_DEFAULT_LOG_PATH = "logs/trades.jsonl"


class AuditLogger:
    """Append-only audit trail for all trader events.

    Implements the EventSink protocol. Every event becomes one JSON line
    in ``log_path``; trade events are mirrored to the structlog audit
    logger as well.
    """

    def __init__(self, log_path: str = _DEFAULT_LOG_PATH) -> None:
        self._log_path = Path(log_path)
        self._log_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._log_path

    def emit(self, event: TraderEvent) -> None:
        entry = event.model_dump(mode="json")
        if isinstance(event, TradeStarted):
            log_contract_event(
                "started", event.contract_id,
                symbol=event.symbol, bet=event.bet_type.value, stake=str(event.stake),
            )
        elif isinstance(event, TradeSettled):
            log_contract_event(
                "settled", event.contract_id,
                symbol=event.symbol, won=event.won, profit=str(event.profit),
            )
        try:
            self._write_file(entry)
        except OSError as exc:
            logger.warning("audit_write_failed", path=str(self._log_path), error=str(exc))

    def _write_file(self, entry: dict[str, Any]) -> None:
        with open(self._log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
