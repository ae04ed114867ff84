"""Data pipeline — Deriv connectivity and push routing."""

from __future__ import annotations

from derivbot.data.deriv_client import DerivAPIClient
from derivbot.data.dispatcher import PushDispatcher, RouteResult

__all__ = [
    "DerivAPIClient",
    "PushDispatcher",
    "RouteResult",
]
