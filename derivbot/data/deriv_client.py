"""Deriv WebSocket API client.

One persistent connection carries every request. Each outgoing request
gets a monotonically increasing ``req_id``; the venue echoes it back and
the matching pending future is resolved, failed with the venue's error,
or expired by its own timer, whichever happens first. Unsolicited stream
messages (ticks, contract updates) are handed to ``on_push``.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import websockets

from derivbot.core.errors import (
    APIConnectionError,
    NotAuthorizedError,
    RemoteError,
    RequestTimeoutError,
)
from derivbot.core.logging import get_logger
from derivbot.models.account import AccountInfo

if TYPE_CHECKING:
    from collections.abc import Callable

    from derivbot.models.contract import BetType

log = get_logger(__name__)

PUSH_TYPES = frozenset({"tick", "proposal_open_contract"})


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """Reconnect delay for a 1-based attempt: min(cap, 2**attempt * base)."""
    return min(cap, (2**attempt) * base)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _request_type(request: dict[str, Any]) -> str:
    """First key of a request names its type (authorize, ticks, buy, ...)."""
    return next(iter(request), "")


@dataclass
class PendingRequest:
    """A request awaiting its correlated response."""

    req_id: int
    future: asyncio.Future[dict[str, Any]]
    deadline: float
    timer: asyncio.TimerHandle
    msg_type: str = ""


class DerivAPIClient:
    """Request/response multiplexer over a single Deriv WebSocket.

    Callbacks:
        on_push: called synchronously with every tick/contract stream message.
        on_reconnect: called (sync or async) after reconnect + re-authorize.
        on_fatal: called (sync or async) with a reason once reconnecting gives up.
    """

    def __init__(
        self,
        ws_url: str = "wss://ws.derivws.com/websockets/v3?app_id=1089",
        request_timeout: float = 30.0,
        max_reconnect_attempts: int = 5,
        backoff_base: float = 1.0,
        backoff_cap: float = 30.0,
        handshake_timeout: float = 10.0,
        on_push: Callable[[dict[str, Any]], None] | None = None,
        on_reconnect: Callable[[], Any] | None = None,
        on_fatal: Callable[[str], Any] | None = None,
    ) -> None:
        self._ws_url = ws_url
        self._request_timeout = request_timeout
        self._max_reconnect_attempts = max_reconnect_attempts
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._handshake_timeout = handshake_timeout
        self._on_push = on_push
        self._on_reconnect = on_reconnect
        self._on_fatal = on_fatal

        self._ws: Any = None
        self._connected = False
        self._authorized = False
        self._closing = False
        self._token: str | None = None
        self._account: AccountInfo | None = None
        self._pending: dict[int, PendingRequest] = {}
        self._req_ids = itertools.count(1)
        self._recv_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_attempts = 0

    def bind(
        self,
        on_push: Callable[[dict[str, Any]], None] | None = None,
        on_reconnect: Callable[[], Any] | None = None,
        on_fatal: Callable[[str], Any] | None = None,
    ) -> None:
        """Install callbacks after construction."""
        if on_push is not None:
            self._on_push = on_push
        if on_reconnect is not None:
            self._on_reconnect = on_reconnect
        if on_fatal is not None:
            self._on_fatal = on_fatal

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_authorized(self) -> bool:
        return self._authorized

    @property
    def account(self) -> AccountInfo | None:
        return self._account

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the WebSocket and start the receive loop.

        Raises:
            APIConnectionError: If the handshake does not complete.
        """
        self._closing = False
        try:
            ws = await websockets.connect(
                self._ws_url,
                open_timeout=self._handshake_timeout,
                ping_interval=20,
                ping_timeout=20,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("deriv_ws.connect_failed", url=self._ws_url, error=str(exc))
            msg = f"Failed to connect to Deriv API: {exc}"
            raise APIConnectionError(msg) from exc

        self._ws = ws
        self._connected = True
        self._reconnect_attempts = 0
        self._recv_task = asyncio.create_task(self._receive_loop(ws))
        log.info("deriv_ws.connected", url=self._ws_url)

    async def disconnect(self) -> None:
        """Cancel any pending reconnect and close the socket. Idempotent."""
        self._closing = True

        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        was_open = self._ws is not None
        await self._drop_socket()
        self._fail_pending(APIConnectionError("Disconnected from Deriv API"))
        if was_open:
            log.info("deriv_ws.disconnected")

    async def _drop_socket(self) -> None:
        """Close the current socket without triggering a reconnect."""
        ws = self._ws
        self._ws = None
        self._connected = False
        self._authorized = False

        recv_task = self._recv_task
        self._recv_task = None
        if recv_task is not None and recv_task is not asyncio.current_task():
            recv_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await recv_task

        if ws is not None:
            try:
                await ws.close()
            except Exception:
                log.warning("deriv_ws.close_failed", exc_info=True)

    async def _receive_loop(self, ws: Any) -> None:
        reason = "closed by remote"
        try:
            async for raw_msg in ws:
                try:
                    self._handle_message(raw_msg)
                except Exception:
                    log.error("deriv_ws.handle_error", raw=str(raw_msg)[:200], exc_info=True)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
        self._on_connection_lost(ws, reason)

    def _on_connection_lost(self, ws: Any, reason: str) -> None:
        if ws is not self._ws:
            # A socket we already replaced or dropped deliberately
            return
        self._ws = None
        self._recv_task = None
        self._connected = False
        self._authorized = False
        self._fail_pending(APIConnectionError(f"Connection lost: {reason}"))

        if self._closing:
            return
        log.warning("deriv_ws.connection_lost", reason=reason)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """Retry with exponential backoff; re-authorize before signalling readiness."""
        while not self._closing:
            if self._reconnect_attempts >= self._max_reconnect_attempts:
                reason = f"gave up reconnecting after {self._reconnect_attempts} attempts"
                log.critical(
                    "deriv_ws.reconnect_exhausted",
                    attempts=self._reconnect_attempts,
                    max_attempts=self._max_reconnect_attempts,
                )
                await self._notify(self._on_fatal, reason)
                return

            self._reconnect_attempts += 1
            attempt = self._reconnect_attempts
            delay = backoff_delay(attempt, self._backoff_base, self._backoff_cap)
            log.warning(
                "deriv_ws.reconnecting",
                attempt=attempt,
                max_attempts=self._max_reconnect_attempts,
                delay_s=delay,
            )
            await asyncio.sleep(delay)
            if self._closing:
                return

            try:
                await self.connect()
                if self._token is not None:
                    await self.authorize(self._token)
            except (APIConnectionError, RequestTimeoutError, RemoteError) as exc:
                log.error("deriv_ws.reconnect_failed", attempt=attempt, error=str(exc))
                # connect() may have zeroed the counter before authorize failed
                self._reconnect_attempts = max(self._reconnect_attempts, attempt)
                await self._drop_socket()
                continue

            log.info("deriv_ws.reconnected", attempt=attempt)
            await self._notify(self._on_reconnect)
            if self._connected or self._closing:
                return
            # dropped again while on_reconnect ran; its loss handler deferred to us
            log.warning("deriv_ws.lost_during_resubscribe", attempt=attempt)

    @staticmethod
    async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.error("deriv_ws.callback_failed", exc_info=True)

    # ------------------------------------------------------------------
    # Request correlation
    # ------------------------------------------------------------------

    async def send(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send a request and wait for its correlated response.

        Raises:
            APIConnectionError: Not connected, send failed, or connection lost.
            RequestTimeoutError: No response before the request timeout.
            RemoteError: The venue returned an error for this request.
        """
        if not self._connected or self._ws is None:
            msg = "Not connected to Deriv API"
            raise APIConnectionError(msg)

        req_id = next(self._req_ids)
        payload = {**request, "req_id": req_id}
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        timer = loop.call_later(self._request_timeout, self._expire, req_id)
        self._pending[req_id] = PendingRequest(
            req_id=req_id,
            future=future,
            deadline=loop.time() + self._request_timeout,
            timer=timer,
            msg_type=_request_type(request),
        )

        try:
            await self._ws.send(json.dumps(payload, default=_json_default))
        except asyncio.CancelledError:
            self._discard(req_id)
            raise
        except Exception as exc:
            self._discard(req_id)
            msg = f"Failed to send request {req_id}: {exc}"
            raise APIConnectionError(msg) from exc

        try:
            return await future
        finally:
            # No-op unless the caller was cancelled while waiting
            self._discard(req_id)

    def _expire(self, req_id: int) -> None:
        entry = self._pending.pop(req_id, None)
        if entry is None:
            return
        if not entry.future.done():
            entry.future.set_exception(RequestTimeoutError(req_id, self._request_timeout))
        log.warning("deriv_ws.request_timeout", req_id=req_id, msg_type=entry.msg_type)

    def _discard(self, req_id: int) -> None:
        entry = self._pending.pop(req_id, None)
        if entry is None:
            return
        entry.timer.cancel()
        if not entry.future.done():
            entry.future.cancel()

    def _fail_pending(self, exc: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(exc)
        if pending:
            log.warning("deriv_ws.pending_failed", count=len(pending), error=str(exc))

    def _handle_message(self, raw_msg: str | bytes) -> None:
        """Resolve the correlated request, then forward stream messages."""
        try:
            data = json.loads(raw_msg)
        except (json.JSONDecodeError, TypeError):
            log.warning("deriv_ws.invalid_json", raw=str(raw_msg)[:200])
            return
        if not isinstance(data, dict):
            log.warning("deriv_ws.unexpected_payload", raw=str(raw_msg)[:200])
            return

        msg_type = data.get("msg_type", "")
        error = data.get("error")
        req_id = data.get("req_id")

        entry = self._pending.pop(req_id, None) if isinstance(req_id, int) else None
        if entry is not None:
            entry.timer.cancel()
            if not entry.future.done():
                if error:
                    entry.future.set_exception(
                        RemoteError(
                            str(error.get("code", "")),
                            str(error.get("message", "Unknown API error")),
                            msg_type,
                        )
                    )
                else:
                    entry.future.set_result(data)
        elif error:
            log.error(
                "deriv_ws.api_error",
                req_id=req_id,
                msg_type=msg_type,
                code=error.get("code"),
                message=error.get("message"),
            )

        if error or msg_type not in PUSH_TYPES or self._on_push is None:
            return
        self._on_push(data)

    # ------------------------------------------------------------------
    # Typed requests
    # ------------------------------------------------------------------

    async def authorize(self, token: str) -> AccountInfo:
        """Authenticate the connection; required before any trading request."""
        self._token = token
        response = await self.send({"authorize": token})
        self._account = AccountInfo.model_validate(response.get("authorize") or {})
        self._authorized = True
        log.info(
            "deriv_ws.authorized",
            loginid=self._account.loginid,
            balance=str(self._account.balance),
            currency=self._account.currency,
        )
        return self._account

    def _require_authorized(self) -> None:
        if not self._authorized:
            msg = "Deriv API connection is not authorized"
            raise NotAuthorizedError(msg)

    async def subscribe_ticks(self, symbol: str) -> str:
        """Subscribe to an instrument's tick stream; returns the subscription id."""
        self._require_authorized()
        response = await self.send({"ticks": symbol, "subscribe": 1})
        return str((response.get("subscription") or {}).get("id", ""))

    async def buy_contract(
        self,
        bet: BetType,
        stake: Decimal,
        duration: int,
        duration_unit: str,
        currency: str,
        symbol: str,
    ) -> dict[str, Any]:
        """Buy a digit contract with ``stake``; returns the ``buy`` receipt."""
        self._require_authorized()
        response = await self.send({
            "buy": 1,
            "price": stake,
            "parameters": {
                "amount": stake,
                "basis": "stake",
                "contract_type": bet.value,
                "currency": currency,
                "duration": duration,
                "duration_unit": duration_unit,
                "symbol": symbol,
            },
        })
        receipt = response.get("buy") or {}
        if "contract_id" not in receipt:
            raise RemoteError("InvalidResponse", "buy response carried no contract_id", "buy")
        return receipt

    async def subscribe_contract(self, contract_id: str) -> str | None:
        """Stream updates for an open contract; returns the subscription id."""
        self._require_authorized()
        cid: int | str = int(contract_id) if contract_id.isdigit() else contract_id
        response = await self.send({
            "proposal_open_contract": 1,
            "contract_id": cid,
            "subscribe": 1,
        })
        sub_id = (response.get("subscription") or {}).get("id")
        return str(sub_id) if sub_id else None

    async def forget(self, subscription_id: str) -> bool:
        """Stop a stream by subscription id."""
        response = await self.send({"forget": subscription_id})
        return bool(response.get("forget"))

    async def get_balance(self, account: str = "current") -> Decimal:
        """Query the account balance."""
        self._require_authorized()
        response = await self.send({"balance": 1, "account": account})
        balance = (response.get("balance") or {}).get("balance")
        if balance is None:
            raise RemoteError("InvalidResponse", "balance response carried no balance", "balance")
        return Decimal(str(balance))
