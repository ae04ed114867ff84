"""Kill switch — session-wide safety limits."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from derivbot.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

log = get_logger(__name__)


class KillSwitch:
    """Circuit breaker that halts all trading when a safety limit is hit.

    Two limits are checked, either of which may be disabled with None:

    - ``max_consecutive_losses``: any instrument's loss count reaching it.
    - ``daily_loss_floor``: cumulative session profit at or below it
      (a negative amount, e.g. ``Decimal("-50")``).

    Once active the switch stays active for the rest of the session.
    """

    def __init__(
        self,
        max_consecutive_losses: int | None = None,
        daily_loss_floor: Decimal | None = None,
    ) -> None:
        if daily_loss_floor is not None and daily_loss_floor > 0:
            daily_loss_floor = -daily_loss_floor
        self._max_consecutive_losses = max_consecutive_losses or None
        self._daily_loss_floor = daily_loss_floor or None
        self._state: dict[str, Any] = {
            "active": False,
            "reason": "",
            "triggered_at": None,
        }

    @property
    def is_active(self) -> bool:
        """Whether the kill switch is currently active."""
        return bool(self._state["active"])

    @property
    def reason(self) -> str:
        return str(self._state["reason"])

    @property
    def triggered_at(self) -> str | None:
        return self._state["triggered_at"]

    def check(self, loss_counts: Mapping[str, int], cumulative_profit: Decimal) -> bool:
        """Check every limit against the current session state.

        Args:
            loss_counts: Consecutive loss count per instrument symbol.
            cumulative_profit: Session profit so far (negative = loss).

        Returns:
            True if the kill switch was triggered (or already active).
        """
        if self.is_active:
            return True

        if self._max_consecutive_losses is not None:
            for symbol, count in loss_counts.items():
                if count >= self._max_consecutive_losses:
                    self.trigger(
                        f"{symbol}: consecutive losses {count} >= limit "
                        f"{self._max_consecutive_losses}"
                    )
                    return True

        if self._daily_loss_floor is not None and cumulative_profit <= self._daily_loss_floor:
            self.trigger(
                f"cumulative profit {cumulative_profit} <= daily loss limit "
                f"{self._daily_loss_floor}"
            )
            return True

        return False

    def trigger(self, reason: str) -> None:
        """Manually trigger the kill switch.

        Args:
            reason: Human-readable reason for triggering.
        """
        if self.is_active:
            return
        self._state = {
            "active": True,
            "reason": reason,
            "triggered_at": datetime.now(tz=UTC).isoformat(),
        }
        log.critical(
            "kill_switch_triggered",
            reason=reason,
            triggered_at=self._state["triggered_at"],
        )
