"""Risk and safety module for derivbot.

Provides the Martingale stake table, the kill switch for session-wide
safety limits, and session statistics tracking.
"""

from __future__ import annotations

from derivbot.risk.kill_switch import KillSwitch
from derivbot.risk.martingale import MartingaleTable
from derivbot.risk.session_stats import SessionStats

__all__ = [
    "KillSwitch",
    "MartingaleTable",
    "SessionStats",
]
