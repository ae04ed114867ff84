from derivbot.models.account import AccountInfo
from derivbot.models.contract import BetType, Contract, ContractStatus, ContractUpdate, Outcome
from derivbot.models.events import (
    InstrumentSummary,
    ShutdownSummary,
    StatsSnapshot,
    TradeSettled,
    TradeStarted,
    TraderEvent,
)
from derivbot.models.market import Parity, Tick

__all__ = [
    "AccountInfo",
    "BetType",
    "Contract",
    "ContractStatus",
    "ContractUpdate",
    "InstrumentSummary",
    "Outcome",
    "Parity",
    "ShutdownSummary",
    "StatsSnapshot",
    "Tick",
    "TradeSettled",
    "TradeStarted",
    "TraderEvent",
]
