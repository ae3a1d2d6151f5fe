"""
Supervisor

Tracks the active PositionMonitors keyed by token, guaranteeing at most one
monitor per token. Monitors are started on open() and discarded as soon as
their task finishes.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from ..config import ExitThresholds, MonitorConfig, config
from ..errors import FeedExhausted, PositionAlreadyMonitored, SupervisorClosed
from ..events import EventSink, EventType, LoggingEventSink, MonitorEvent
from ..models import Position
from .interfaces import ExecutionSink, PriceFeed
from .monitor import PositionMonitor

logger = logging.getLogger(__name__)


class Supervisor:
    """
    Owns the set of running PositionMonitors.

    Use as an async context manager so every monitor is stopped on exit:

        async with Supervisor(feed, sink) as supervisor:
            supervisor.open("Mint...", entry_price=1e-7, entry_reserve=30.0, stake=0.1)
            await supervisor.wait_idle()
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        execution_sink: ExecutionSink,
        events: Optional[EventSink] = None,
        monitor_config: Optional[MonitorConfig] = None,
        thresholds: Optional[ExitThresholds] = None,
        moon_fraction: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the supervisor.

        Args:
            price_feed: Shared PriceFeed handed to every monitor
            execution_sink: Shared ExecutionSink handed to every monitor
            events: Structured event sink (default: log only)
            monitor_config: Monitor loop settings (default from config)
            thresholds: Exit policy thresholds (default from config)
            moon_fraction: Default moon allocation for new positions (default from config)
            clock: Time source for opened_at and policy timers
        """
        self.price_feed = price_feed
        self.execution_sink = execution_sink
        self.events = events or LoggingEventSink()
        self.monitor_config = monitor_config or config.monitor
        self.thresholds = thresholds or config.thresholds
        self.moon_fraction = config.moon_fraction if moon_fraction is None else moon_fraction
        self._clock = clock

        self._monitors: Dict[str, PositionMonitor] = {}
        self._closing = False
        self._idle = asyncio.Event()
        self._idle.set()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def __contains__(self, token_id: str) -> bool:
        return token_id in self._monitors

    def __len__(self) -> int:
        return len(self._monitors)

    @property
    def active_tokens(self) -> List[str]:
        return list(self._monitors)

    def get(self, token_id: str) -> Optional[PositionMonitor]:
        return self._monitors.get(token_id)

    async def wait_idle(self):
        """Wait until no monitors are running."""
        await self._idle.wait()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def open(
        self,
        token_id: str,
        entry_price: float,
        entry_reserve: float,
        stake: float,
        moon_fraction: Optional[float] = None,
    ) -> PositionMonitor:
        """
        Open a position and start monitoring it.

        Must be called from within the running event loop.

        Raises:
            SupervisorClosed: shutdown() has been called
            PositionAlreadyMonitored: a monitor for token_id is already running
            FatalConfiguration: invalid position parameters (nothing is started)

        Returns:
            The started PositionMonitor
        """
        if self._closing:
            raise SupervisorClosed(f"Supervisor is shutting down, not opening {token_id}")
        if token_id in self._monitors:
            raise PositionAlreadyMonitored(token_id)

        position = Position(
            token_id=token_id,
            entry_price=entry_price,
            entry_reserve=entry_reserve,
            stake=stake,
            moon_fraction=self.moon_fraction if moon_fraction is None else moon_fraction,
            opened_at=self._clock(),
        )
        monitor = PositionMonitor(
            position,
            self.price_feed,
            self.execution_sink,
            events=self.events,
            monitor_config=self.monitor_config,
            thresholds=self.thresholds,
            clock=self._clock,
        )

        self._monitors[token_id] = monitor
        self._idle.clear()
        task = monitor.start()
        task.add_done_callback(lambda t: self._on_monitor_done(monitor, t))

        logger.info(f"Opened position {token_id}: stake={stake} moon_fraction={position.moon_fraction}")
        self._emit(
            EventType.POSITION_OPENED,
            token_id,
            entry_price=entry_price,
            entry_reserve=entry_reserve,
            stake=stake,
            moon_fraction=position.moon_fraction,
        )
        return monitor

    def on_closed(self, token_id: str) -> None:
        """Forget the monitor for a token. Safe to call more than once."""
        if self._monitors.pop(token_id, None) is not None:
            logger.debug(f"Removed monitor for {token_id}")
        if not self._monitors:
            self._idle.set()

    async def close(self, token_id: str) -> Optional[Position]:
        """
        Stop monitoring one position (manual close) and wait for it to finish.

        Returns:
            The position's final state, or None if it was not monitored
        """
        monitor = self._monitors.get(token_id)
        if monitor is None:
            return None
        monitor.cancel()
        await asyncio.gather(monitor.task, return_exceptions=True)
        if self._monitors.get(token_id) is monitor:
            self.on_closed(token_id)
        return monitor.position

    async def shutdown(self):
        """
        Cancel every monitor and wait until all of them have stopped.

        No new positions are accepted once shutdown has started.
        """
        self._closing = True
        monitors = list(self._monitors.values())
        if monitors:
            logger.info(f"Shutting down {len(monitors)} monitor(s)...")
        for monitor in monitors:
            monitor.cancel()
        await asyncio.gather(*(m.task for m in monitors), return_exceptions=True)
        for monitor in monitors:
            if self._monitors.get(monitor.token_id) is monitor:
                self.on_closed(monitor.token_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _on_monitor_done(self, monitor: PositionMonitor, task: asyncio.Task):
        """Task done-callback: report how the monitor ended and discard it."""
        if task.cancelled():
            logger.info(f"Monitor for {monitor.token_id} cancelled")
        else:
            error = task.exception()
            if isinstance(error, FeedExhausted):
                logger.error(f"Monitoring abandoned for {monitor.token_id}: {error}")
            elif error is not None:
                logger.error(f"Monitor for {monitor.token_id} crashed: {error!r}")

        # A newer monitor for the same token must not be removed
        if self._monitors.get(monitor.token_id) is monitor:
            self.on_closed(monitor.token_id)

    def _emit(self, event_type: EventType, token_id: str, **data):
        try:
            self.events.emit(MonitorEvent(event_type, token_id, data, self._clock()))
        except Exception as e:
            logger.error(f"Failed to emit {event_type.value} for {token_id}: {e}")
