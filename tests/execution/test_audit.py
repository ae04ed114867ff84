"""Tests for AuditLogger and LoggingEventSink."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path  # noqa: TCH003

import pytest

from derivbot.execution.audit import AuditLogger
from derivbot.execution.events import LoggingEventSink
from derivbot.models.contract import BetType
from derivbot.models.events import InstrumentSummary, ShutdownSummary, StatsSnapshot, TradeSettled, TradeStarted


@pytest.fixture
def tmp_log(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "trades.jsonl"


@pytest.fixture
def audit(tmp_log: Path) -> AuditLogger:
    return AuditLogger(log_path=str(tmp_log))


def _started() -> TradeStarted:
    return TradeStarted(symbol="R_100", bet_type=BetType.ODD, stake=Decimal("0.35"), contract_id="777")


def _settled() -> TradeSettled:
    return TradeSettled(
        symbol="R_100",
        bet_type=BetType.ODD,
        contract_id="777",
        profit=Decimal("-0.35"),
        balance_after=Decimal("999.65"),
        won=False,
    )


def test_creates_parent_directory(audit: AuditLogger, tmp_log: Path) -> None:
    assert tmp_log.parent.is_dir()
    assert audit.path == tmp_log


def test_writes_one_line_per_event(audit: AuditLogger, tmp_log: Path) -> None:
    audit.emit(_started())
    audit.emit(_settled())
    lines = tmp_log.read_text().strip().splitlines()
    assert len(lines) == 2

    started = json.loads(lines[0])
    assert started["kind"] == "trade_started"
    assert started["bet_type"] == "DIGITODD"
    assert started["stake"] == "0.35"
    assert "timestamp" in started

    settled = json.loads(lines[1])
    assert settled["kind"] == "trade_settled"
    assert settled["won"] is False
    assert settled["balance_after"] == "999.65"


def test_appends_across_instances(tmp_log: Path) -> None:
    AuditLogger(str(tmp_log)).emit(_started())
    AuditLogger(str(tmp_log)).emit(_started())
    assert len(tmp_log.read_text().strip().splitlines()) == 2


def test_summary_event(audit: AuditLogger, tmp_log: Path) -> None:
    audit.emit(
        ShutdownSummary(
            reason="signal SIGTERM",
            initial_balance=Decimal("1000"),
            final_balance=Decimal("1001"),
            total_profit=Decimal("1"),
            total_trades=3,
            win_rate=Decimal("66.67"),
            instruments=[InstrumentSummary(symbol="R_100", trades=3, won=2, lost=1, profit=Decimal("1"))],
        ),
    )
    record = json.loads(tmp_log.read_text())
    assert record["kind"] == "shutdown_summary"
    assert record["instruments"][0]["symbol"] == "R_100"


def test_logging_sink_handles_every_event() -> None:
    sink = LoggingEventSink()
    sink.emit(_started())
    sink.emit(_settled())
    sink.emit(
        StatsSnapshot(
            total_trades=1, won=0, lost=1, win_rate=Decimal("0"),
            current_balance=Decimal("999.65"), profit=Decimal("-0.35"),
        ),
    )
    sink.emit(
        ShutdownSummary(
            reason="done", initial_balance=Decimal("1000"), final_balance=Decimal("999.65"),
            total_profit=Decimal("-0.35"), total_trades=1, win_rate=Decimal("0"),
        ),
    )
