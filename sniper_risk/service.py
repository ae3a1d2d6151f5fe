"""
Sniper Service Orchestrator
===========================

Wires token discovery to the risk monitor:
- Pump.fun scanner yields eligible tokens every scan interval
- Each new token gets an entry observation from the price feed and a
  monitored position with the configured stake
- Monitors run until their positions close; shutdown stops them all

Entries are assumed filled at the observed price. Swap submission is owned
by the ExecutionSink; the default sink only logs (dry run).
"""

import asyncio
import logging
import signal
import time
from typing import Callable, Dict, List, Optional

from .alerts import TelegramAlerts
from .api import DexScreenerPriceFeed, PumpFunScanner, PumpToken
from .config import Config, config as default_config
from .core import ExecutionSink, PriceFeed, Supervisor
from .errors import FatalConfiguration, FeedError, PositionAlreadyMonitored, SupervisorClosed
from .events import EventFanout, LoggingEventSink
from .execution import DryRunExecutionSink

logger = logging.getLogger(__name__)


class SniperService:
    """
    Continuous discovery + risk monitoring service.

    Every component is injectable; unset ones default to the live adapters
    (Pump.fun scanner, DexScreener feed, dry-run execution).
    """

    def __init__(
        self,
        scanner: Optional[PumpFunScanner] = None,
        price_feed: Optional[PriceFeed] = None,
        execution_sink: Optional[ExecutionSink] = None,
        alerts: Optional[TelegramAlerts] = None,
        cfg: Optional[Config] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the service.

        Args:
            scanner: Token discovery feed
            price_feed: Shared PriceFeed for entries and monitors
            execution_sink: Shared ExecutionSink (default: dry run)
            alerts: Telegram alerts, attached as an extra event sink
            cfg: Configuration (default: global config)
            clock: Time source
        """
        self.config = cfg or default_config
        self.scanner = scanner or PumpFunScanner(filters=self.config.discovery)
        self.price_feed = price_feed or DexScreenerPriceFeed()
        self.execution_sink = execution_sink or DryRunExecutionSink()
        self.alerts = alerts
        self._clock = clock

        self.events = EventFanout([LoggingEventSink()])
        if alerts is not None:
            self.events.add(alerts)

        self.supervisor = Supervisor(
            self.price_feed,
            self.execution_sink,
            events=self.events,
            monitor_config=self.config.monitor,
            thresholds=self.config.thresholds,
            moon_fraction=self.config.moon_fraction,
            clock=clock,
        )

        # Tokens already entered once are never re-entered: mint -> created_timestamp.
        # Pruned once a token is too old to pass the discovery filters again.
        self._entered: Dict[str, float] = {}
        self._stop = asyncio.Event()

    # -------------------------------------------------------------------------
    # Entry handling
    # -------------------------------------------------------------------------

    async def handle_tokens(self, tokens: List[PumpToken]) -> List[str]:
        """
        Open positions for newly discovered tokens.

        Returns:
            Mints for which a position was opened
        """
        self._prune_entered()
        opened = []
        for token in tokens:
            if token.mint in self._entered or token.mint in self.supervisor:
                continue
            if len(self.supervisor) >= self.config.max_open_positions:
                logger.info(f"Max open positions ({self.config.max_open_positions}) reached, skipping rest of batch")
                break

            try:
                entry = await asyncio.wait_for(
                    self.price_feed.observe(token.mint),
                    timeout=self.config.monitor.feed_timeout_sec * 5,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Entry observation timed out for {token.symbol} ({token.mint})")
                continue
            except FeedError as e:
                logger.warning(f"No entry observation for {token.symbol} ({token.mint}): {e}")
                continue

            try:
                self.supervisor.open(
                    token.mint,
                    entry_price=entry.price,
                    entry_reserve=entry.liquidity_reserve,
                    stake=self.config.stake_sol,
                )
            except SupervisorClosed:
                logger.info("Supervisor closing, ignoring remaining tokens")
                break
            except (PositionAlreadyMonitored, FatalConfiguration) as e:
                logger.warning(f"Cannot open {token.symbol}: {e}")
                continue

            self._entered[token.mint] = token.created_timestamp
            opened.append(token.mint)
            logger.info(
                f"Entered {token.symbol} ({token.mint[:8]}) at {entry.price:.10g} SOL, "
                f"LP {token.liquidity:.2f} SOL, 24h {token.price_change_24h:+.1f}%"
            )
        return opened

    def _prune_entered(self):
        max_age = self.config.discovery.max_age_sec
        now = self._clock()
        stale = [mint for mint, created in self._entered.items() if now - created >= max_age]
        for mint in stale:
            del self._entered[mint]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def stop(self):
        """Request a graceful stop."""
        self._stop.set()

    def _install_signal_handlers(self) -> List[int]:
        """Route SIGINT / SIGTERM to stop(). Returns the signals installed."""
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown, sig)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on Windows / outside the main thread
                logger.debug(f"Signal handler for {sig} not installed")
        return installed

    async def _send_status(self, status: str, details: str = ""):
        """Send a service status alert off the event loop thread."""
        await asyncio.to_thread(self.alerts.send_service_status, status, details)

    def _handle_shutdown(self, signum):
        logger.info(f"Shutdown signal {signum} received, stopping service...")
        self.stop()

    async def run(self):
        """
        Main entry point - scan and monitor until stopped.

        On exit every monitor is cancelled and awaited before the HTTP
        sessions are closed.
        """
        logger.info("=" * 60)
        logger.info("SNIPER RISK MONITOR STARTING")
        logger.info("=" * 60)
        logger.info(f"Stake: {self.config.stake_sol} SOL | Moon fraction: {self.config.moon_fraction}")
        logger.info(f"Max open positions: {self.config.max_open_positions}")
        logger.info(
            f"Poll: {self.config.monitor.poll_interval_sec}s | Feed timeout: {self.config.monitor.feed_timeout_sec}s | "
            f"On feed exhaustion: {self.config.monitor.feed_exhaustion_policy.value}"
        )

        signals = self._install_signal_handlers()
        if self.alerts:
            await self._send_status("started", f"Stake {self.config.stake_sol} SOL")

        scan_task = asyncio.create_task(self.scanner.monitor_eligible_tokens(self.handle_tokens))
        stop_task = asyncio.create_task(self._stop.wait())
        try:
            done, _ = await asyncio.wait({scan_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if scan_task in done:
                # Scanner only returns by raising
                scan_task.result()
        except Exception as e:
            logger.error(f"Service error: {type(e).__name__}: {e}")
            if self.alerts:
                await self._send_status("error", f"{type(e).__name__}")
            raise
        finally:
            for sig in signals:
                asyncio.get_running_loop().remove_signal_handler(sig)
            for task in (scan_task, stop_task):
                task.cancel()
            await asyncio.gather(scan_task, stop_task, return_exceptions=True)

            await self.supervisor.shutdown()
            await self.scanner.close()
            close_feed = getattr(self.price_feed, "close", None)
            if close_feed is not None:
                await close_feed()

            logger.info("SNIPER RISK MONITOR STOPPED")
            if self.alerts:
                await self._send_status("stopped")
