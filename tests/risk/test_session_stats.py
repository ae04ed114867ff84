"""Tests for SessionStats."""

from __future__ import annotations

from decimal import Decimal

from derivbot.risk.session_stats import SessionStats


class TestSessionStats:
    def test_initial_state(self) -> None:
        stats = SessionStats(Decimal("1000"), symbols=("R_100",))
        assert stats.total_trades == 0
        assert stats.win_rate == Decimal("0")
        assert stats.current_balance == Decimal("1000")
        assert [i.symbol for i in stats.instruments()] == ["R_100"]

    def test_settlement_balance_adopted_verbatim(self) -> None:
        stats = SessionStats(Decimal("1000"))
        stats.record_trade("R_100")
        stats.record_settlement("R_100", Decimal("0.33"), Decimal("987.65"))
        # Not 1000 + 0.33: the venue figure wins
        assert stats.current_balance == Decimal("987.65")
        assert stats.profit == Decimal("0.33")

    def test_missing_balance_keeps_current(self) -> None:
        stats = SessionStats(Decimal("1000"))
        stats.record_settlement("R_100", Decimal("-0.35"), None)
        assert stats.current_balance == Decimal("1000")
        assert stats.profit == Decimal("-0.35")

    def test_win_loss_counts(self) -> None:
        stats = SessionStats(Decimal("100"))
        for _ in range(3):
            stats.record_trade("R_100")
        stats.record_trade("R_10")
        assert stats.record_settlement("R_100", Decimal("0.33"), Decimal("100.33"))
        assert not stats.record_settlement("R_100", Decimal("-0.69"), Decimal("99.64"))
        assert stats.record_settlement("R_10", Decimal("0"), Decimal("99.64"))
        assert stats.won == 2
        assert stats.lost == 1
        assert stats.win_rate == Decimal("50.00")

        by_symbol = {i.symbol: i for i in stats.instruments()}
        assert by_symbol["R_100"].trades == 3
        assert by_symbol["R_100"].profit == Decimal("-0.36")
        assert by_symbol["R_10"].won == 1

    def test_explicit_outcome_overrides_profit_sign(self) -> None:
        stats = SessionStats(Decimal("100"))
        stats.record_trade("R_100")
        assert not stats.record_settlement("R_100", Decimal("0"), None, won=False)
        assert stats.won == 0
        assert stats.lost == 1

    def test_snapshot(self) -> None:
        stats = SessionStats(Decimal("100"))
        stats.record_trade("R_100")
        stats.record_settlement("R_100", Decimal("-1"), Decimal("99"))
        snap = stats.snapshot()
        assert snap.kind == "stats_snapshot"
        assert snap.total_trades == 1
        assert snap.lost == 1
        assert snap.current_balance == Decimal("99")

    def test_summary(self) -> None:
        stats = SessionStats()
        stats.set_initial_balance(Decimal("1000"))
        stats.record_trade("R_100")
        summary = stats.summary(Decimal("1010.5"), reason="signal SIGINT", currency="USD")
        assert summary.total_profit == Decimal("10.5")
        assert summary.initial_balance == Decimal("1000")
        assert summary.total_trades == 1
        assert summary.reason == "signal SIGINT"
