"""derivbot orchestrator — wires all components together.

One event loop consumes every push (ticks, contract updates, simulated
settlements) from a single inbox queue and dispatches it synchronously
to the owning instrument engine. Placements run as tasks so the inbox
keeps draining while a buy request is in flight.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from derivbot.config.loader import ConfigError, ConfigLoader
from derivbot.config.settings import TraderSettings, mask_token
from derivbot.core.errors import APIConnectionError, DerivBotError
from derivbot.core.logging import configure_logging, get_logger
from derivbot.data.deriv_client import DerivAPIClient
from derivbot.data.dispatcher import PushDispatcher
from derivbot.execution.audit import AuditLogger
from derivbot.execution.events import LoggingEventSink
from derivbot.execution.live import LiveExecutor
from derivbot.execution.simulator import SimulatedExecutor
from derivbot.models.contract import Outcome
from derivbot.models.events import TradeSettled, TradeStarted
from derivbot.risk.kill_switch import KillSwitch
from derivbot.risk.martingale import MartingaleTable
from derivbot.risk.session_stats import SessionStats
from derivbot.strategies.digit_parity import DigitParityEngine

if TYPE_CHECKING:
    from collections.abc import Coroutine, Iterable

    from derivbot.interfaces import EventSink, TradeExecutor, TradingClient
    from derivbot.models.events import TraderEvent
    from derivbot.strategies.digit_parity import ContractResult, TradeIntent

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


class TraderOrchestrator:
    """Main bot event loop: ticks -> engines -> contracts -> stats."""

    def __init__(
        self,
        settings: TraderSettings,
        client: TradingClient | None = None,
        executor: TradeExecutor | None = None,
        sinks: Iterable[EventSink] | None = None,
        *,
        install_signal_handlers: bool = True,
    ) -> None:
        self._settings = settings
        self._client: TradingClient = client or DerivAPIClient(
            ws_url=settings.ws_url,
            request_timeout=settings.request_timeout,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            backoff_base=settings.backoff_base,
            backoff_cap=settings.backoff_cap,
            handshake_timeout=settings.handshake_timeout,
        )
        self._executor = executor
        if sinks is None:
            default_sinks: list[EventSink] = [LoggingEventSink(currency=settings.currency)]
            if settings.audit_path:
                default_sinks.append(AuditLogger(settings.audit_path))
            sinks = default_sinks
        self._sinks = list(sinks)
        self._install_signal_handlers = install_signal_handlers

        self._engines: dict[str, DigitParityEngine] = {}
        self._dispatcher = PushDispatcher()
        self._stats = SessionStats(symbols=settings.symbols)
        self._kill_switch = KillSwitch(
            max_consecutive_losses=settings.max_consecutive_losses,
            daily_loss_floor=settings.daily_loss_floor,
        )
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._tick_subscriptions: dict[str, str] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._consumer: asyncio.Task[None] | None = None
        self._shutdown_event = asyncio.Event()
        self._shutdown_reason = ""
        self._shutting_down = False
        self._exit_code = EXIT_OK
        self._signals: list[signal.Signals] = []

    @property
    def engines(self) -> dict[str, DigitParityEngine]:
        return dict(self._engines)

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def kill_switch(self) -> KillSwitch:
        return self._kill_switch

    @property
    def tick_subscriptions(self) -> dict[str, str]:
        return dict(self._tick_subscriptions)

    @property
    def shutdown_reason(self) -> str:
        return self._shutdown_reason

    @property
    def simulated(self) -> bool:
        return self._executor is not None and self._executor.mode == "simulation"

    async def start(self) -> int:
        """Validate, connect, trade until shutdown; returns the exit code.

        Raises:
            ValidationError: Invalid instruments or threshold (before connecting).
            APIConnectionError: The initial connection could not be opened.
        """
        settings = self._settings
        settings.validate_startup()
        self._build_engines()

        logger.info(
            "bot_start",
            mode="live" if settings.trading_enabled else "simulation",
            symbols=list(settings.symbols),
            threshold=settings.threshold,
            martingale=[str(s) for s in settings.martingale],
            token=mask_token(settings.token),
        )

        self._client.bind(
            on_push=self._enqueue,
            on_reconnect=self._on_reconnect,
            on_fatal=self._on_fatal,
        )
        await self._client.connect()

        try:
            account = await self._client.authorize(settings.token)
            self._stats.set_initial_balance(account.balance)
            self._setup_executor(account.balance)
            self._setup_signal_handlers()

            self._consumer = asyncio.create_task(self._consume())
            await self._subscribe_ticks()

            logger.info(
                "bot_ready",
                loginid=account.loginid,
                balance=str(account.balance),
                currency=account.currency,
                mode=self._executor.mode if self._executor else None,
            )
            await self._shutdown_event.wait()
        except DerivBotError as exc:
            logger.error("bot_startup_failed", error=str(exc), exc_info=True)
            self._exit_code = EXIT_FATAL
            self._shutdown_reason = self._shutdown_reason or f"startup failed: {exc}"
        except asyncio.CancelledError:
            logger.info("bot_cancelled")
            self._shutdown_reason = self._shutdown_reason or "cancelled"
        finally:
            await self._shutdown()

        return self._exit_code

    def request_shutdown(self, reason: str, exit_code: int = EXIT_OK) -> None:
        """Begin a graceful shutdown. The first reason wins."""
        if self._shutting_down:
            return
        self._shutting_down = True
        self._shutdown_reason = reason
        self._exit_code = exit_code
        logger.info("shutdown_requested", reason=reason)
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _build_engines(self) -> None:
        table = MartingaleTable(self._settings.martingale)
        for symbol in self._settings.symbols:
            if symbol in self._engines:
                continue
            engine = DigitParityEngine(symbol, self._settings.threshold, table)
            self._engines[symbol] = engine
            self._dispatcher.register(engine)

    def _setup_executor(self, balance: Decimal) -> None:
        settings = self._settings
        if self._executor is None:
            if settings.trading_enabled:
                self._executor = LiveExecutor(
                    self._client,
                    currency=settings.currency,
                    duration=settings.contract_duration,
                    duration_unit=settings.contract_duration_unit,
                )
            else:
                self._executor = SimulatedExecutor(
                    payout=settings.payout,
                    win_probability=settings.win_probability,
                    settle_delay=settings.settle_delay,
                )
        if isinstance(self._executor, SimulatedExecutor):
            self._executor.fund(balance)
            self._executor.bind(self._enqueue)

    def _setup_signal_handlers(self) -> None:
        if not self._install_signal_handlers:
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._request_shutdown, sig)
            except (NotImplementedError, RuntimeError):
                continue
            self._signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    def _request_shutdown(self, sig: signal.Signals) -> None:
        """Handle OS signal for graceful shutdown."""
        self.request_shutdown(f"signal {sig.name}")

    async def _subscribe_ticks(self) -> None:
        symbols = list(self._engines)
        sub_ids = await asyncio.gather(*(self._client.subscribe_ticks(s) for s in symbols))
        for symbol, sub_id in zip(symbols, sub_ids, strict=True):
            self._tick_subscriptions[symbol] = sub_id
            logger.info("ticks_subscribed", symbol=symbol, subscription_id=sub_id)

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def _enqueue(self, message: dict[str, Any]) -> None:
        self._inbox.put_nowait(message)

    async def _consume(self) -> None:
        while True:
            message = await self._inbox.get()
            try:
                self.handle_push(message)
            except Exception:
                logger.exception("push_handling_failed", msg_type=message.get("msg_type"))
            finally:
                self._inbox.task_done()

    def handle_push(self, message: dict[str, Any]) -> None:
        """Route one push and act on whatever the engine produced."""
        routed = self._dispatcher.dispatch(message)
        if routed is None:
            return
        if routed.intent is not None:
            self._spawn(self._execute(routed.intent))
        if routed.result is not None:
            self._on_contract_result(routed.result)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _may_trade(self) -> bool:
        return not self._shutting_down and not self._kill_switch.is_active

    async def _execute(self, intent: TradeIntent) -> None:
        engine = self._engines[intent.symbol]
        if not self._may_trade() or self._executor is None:
            logger.warning(
                "trade_refused",
                symbol=intent.symbol,
                bet=intent.bet.value,
                shutting_down=self._shutting_down,
                kill_switch=self._kill_switch.is_active,
            )
            engine.cancel_intent()
            return

        try:
            contract = await self._executor.submit(intent)
        except DerivBotError as exc:
            logger.error("trade_placement_failed", symbol=intent.symbol, error=str(exc))
            engine.on_placement_failed()
            return

        engine.on_order_placed(contract)
        self._stats.record_trade(intent.symbol)
        self._emit(
            TradeStarted(
                symbol=intent.symbol,
                bet_type=intent.bet,
                stake=contract.stake,
                contract_id=contract.contract_id,
                simulated=self.simulated,
            )
        )

        try:
            await self._executor.watch(contract)
        except DerivBotError as exc:
            logger.error(
                "contract_subscribe_failed",
                symbol=intent.symbol,
                contract_id=contract.contract_id,
                error=str(exc),
            )
            engine.on_placement_failed(contract.contract_id)

    def _on_contract_result(self, result: ContractResult) -> None:
        contract = result.contract
        if result.is_settlement:
            profit = contract.profit if contract.profit is not None else Decimal("0")
            won = self._stats.record_settlement(
                contract.symbol,
                profit,
                contract.balance_after,
                won=result.outcome is Outcome.WON,
            )
            self._emit(
                TradeSettled(
                    symbol=contract.symbol,
                    bet_type=contract.bet,
                    contract_id=contract.contract_id,
                    profit=profit,
                    balance_after=contract.balance_after,
                    won=won,
                    simulated=self.simulated,
                )
            )
            self._emit(self._stats.snapshot())
            if contract.subscription_id:
                self._spawn(self._forget(contract.subscription_id))
        else:
            logger.info(
                "contract_predicted",
                symbol=contract.symbol,
                contract_id=contract.contract_id,
                outcome=result.outcome.value,
                loss_count=result.loss_count,
            )
        self._check_safety()

    def _check_safety(self) -> None:
        loss_counts = {s: e.state.loss_count for s, e in self._engines.items()}
        if self._kill_switch.check(loss_counts, self._stats.profit):
            if not self._shutting_down:
                logger.warning(
                    "safety_limit_reached",
                    reason=self._kill_switch.reason,
                    triggered_at=self._kill_switch.triggered_at,
                    profit=str(self._stats.profit),
                )
            self.request_shutdown(f"safety limit: {self._kill_switch.reason}")

    def _emit(self, event: TraderEvent) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception:
                logger.exception("event_sink_failed", sink=type(sink).__name__, kind=event.kind)

    async def _forget(self, subscription_id: str) -> None:
        try:
            await self._client.forget(subscription_id)
        except DerivBotError as exc:
            logger.warning("forget_failed", subscription_id=subscription_id, error=str(exc))

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    async def _on_reconnect(self) -> None:
        """Replay tick and open-contract subscriptions on the new connection."""
        if self._shutting_down:
            return
        self._tick_subscriptions.clear()
        try:
            await self._subscribe_ticks()
            if self._executor is not None and self._executor.mode == "live":
                for engine in self._engines.values():
                    for contract in engine.open_contracts:
                        sub_id = await self._client.subscribe_contract(contract.contract_id)
                        contract.subscription_id = sub_id
                        logger.info(
                            "contract_resubscribed",
                            symbol=engine.symbol,
                            contract_id=contract.contract_id,
                            subscription_id=sub_id,
                        )
        except APIConnectionError as exc:
            if self._client.is_connected:
                logger.error("resubscribe_failed", error=str(exc))
                self.request_shutdown(f"resubscribe failed: {exc}", EXIT_FATAL)
            else:
                # the client reconnects again and calls back here
                logger.warning("resubscribe_interrupted", error=str(exc))
        except DerivBotError as exc:
            logger.error("resubscribe_failed", error=str(exc))
            self.request_shutdown(f"resubscribe failed: {exc}", EXIT_FATAL)

    def _on_fatal(self, reason: str) -> None:
        logger.critical("transport_fatal", reason=reason)
        self.request_shutdown(f"connection lost: {reason}", EXIT_FATAL)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def _shutdown(self) -> None:
        """Graceful cleanup: streams, final balance, summary, disconnect."""
        self._shutting_down = True
        reason = self._shutdown_reason or "stopped"
        logger.info("bot_shutdown", reason=reason)
        self._remove_signal_handlers()

        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._executor is not None:
            await self._executor.close()

        connected = self._client.is_connected and self._client.is_authorized
        if connected:
            await self._forget_streams()

        final_balance = await self._final_balance(connected=connected)
        self._emit(self._stats.summary(final_balance, reason, self._settings.currency))

        try:
            await self._client.disconnect()
        except Exception:
            logger.warning("disconnect_failed", exc_info=True)

    async def _forget_streams(self) -> None:
        for symbol, sub_id in list(self._tick_subscriptions.items()):
            try:
                await self._client.forget(sub_id)
                logger.info("ticks_unsubscribed", symbol=symbol)
            except DerivBotError as exc:
                logger.warning("ticks_unsubscribe_failed", symbol=symbol, error=str(exc))
        self._tick_subscriptions.clear()

        for engine in self._engines.values():
            for contract in engine.open_contracts:
                if not contract.subscription_id:
                    continue
                try:
                    await self._client.forget(contract.subscription_id)
                except DerivBotError as exc:
                    logger.warning(
                        "contract_unsubscribe_failed",
                        contract_id=contract.contract_id,
                        error=str(exc),
                    )

    async def _final_balance(self, *, connected: bool) -> Decimal:
        if isinstance(self._executor, SimulatedExecutor):
            return self._executor.balance
        if not connected:
            return self._stats.current_balance
        try:
            return await self._client.get_balance()
        except DerivBotError as exc:
            logger.warning("final_balance_failed", error=str(exc))
            return self._stats.current_balance


def load_settings(
    config_dir: str = "config",
    env: str | None = None,
    **overrides: Any,
) -> TraderSettings:
    """Load layered TOML config into settings and apply CLI overrides."""
    loader = ConfigLoader(config_dir=config_dir, env=env)
    loader.load()
    logger.debug("config_loaded", env=loader.env, sources=loader.sources)
    return TraderSettings.from_loader(loader).with_overrides(**overrides)


def run_bot(
    symbols: list[str] | None = None,
    threshold: int | None = None,
    *,
    simulation: bool = False,
    debug: bool = False,
    config_dir: str = "config",
    env: str | None = None,
) -> int:
    """Load config, build the orchestrator, and run it to completion."""
    try:
        settings = load_settings(
            config_dir=config_dir,
            env=env,
            symbols=symbols or None,
            threshold=threshold,
            trading_enabled=False if simulation else None,
            log_level="DEBUG" if debug else None,
        )
        settings.validate_startup()
    except (ConfigError, ValueError) as exc:
        logger.error("config_invalid", error=str(exc))
        return EXIT_CONFIG

    configure_logging(level=settings.log_level, file_path=settings.log_file)
    orchestrator = TraderOrchestrator(settings)
    try:
        return asyncio.run(orchestrator.start())
    except APIConnectionError as exc:
        logger.critical("connect_failed", error=str(exc))
        return EXIT_FATAL
