"""
Position Monitor

Drives the exit policy engine for a single open position:
1. Polls the PriceFeed at a fixed interval (bounded by a shorter timeout)
2. Updates the peak price
3. Evaluates the exit policies
4. Applies the decision (stake bookkeeping, liquidation, events)
5. Stops when the position is closed, on cancellation, or when the feed is exhausted
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from ..config import ExitThresholds, FeedExhaustionPolicy, MonitorConfig, config
from ..errors import ExecutionFailed, FeedError, FeedExhausted, FeedUnavailable
from ..events import EventSink, EventType, LoggingEventSink, MonitorEvent
from ..models import Decision, Liquidation, Policy, Position, PriceObservation
from .exit_policy import evaluate
from .interfaces import ExecutionSink, PriceFeed

logger = logging.getLogger(__name__)


class PositionMonitor:
    """
    Owns one Position and runs its polling loop.

    Ticks are strictly sequential, so the position needs no locking: it is
    only ever touched from this monitor's task.

    Cancellation is honored while waiting for the next tick or for the
    price feed. A liquidation already decided in the current tick is always
    submitted before the task stops.
    """

    def __init__(
        self,
        position: Position,
        price_feed: PriceFeed,
        execution_sink: ExecutionSink,
        events: Optional[EventSink] = None,
        monitor_config: Optional[MonitorConfig] = None,
        thresholds: Optional[ExitThresholds] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the monitor.

        Args:
            position: Position to own (must not be shared with other monitors)
            price_feed: Source of price / liquidity observations
            execution_sink: Receives liquidation instructions
            events: Structured event sink (default: log only)
            monitor_config: Loop timing and failure handling (default from config)
            thresholds: Exit policy thresholds (default from config)
            clock: Time source, same clock as position.opened_at
        """
        self.position = position
        self.price_feed = price_feed
        self.execution_sink = execution_sink
        self.events = events or LoggingEventSink()
        self.config = monitor_config or config.monitor
        self.thresholds = thresholds or config.thresholds
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        # Set by cancel(); checked at every cancellation point in case the
        # CancelledError itself was swallowed by wait_for (Python < 3.12)
        self._stopping = False
        self._consecutive_failures = 0
        self.ticks = 0

    @property
    def token_id(self) -> str:
        return self.position.token_id

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    # -------------------------------------------------------------------------
    # Task handling
    # -------------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Schedule the monitoring loop on the running event loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self.run(), name=f"monitor:{self.token_id}"
            )
        return self._task

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def cancel(self) -> None:
        """Request the loop to stop at its next cancellation point."""
        self._stopping = True
        if self._task and not self._task.done():
            self._task.cancel()

    def _check_stop(self):
        if self._stopping:
            raise asyncio.CancelledError()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    async def run(self) -> Position:
        """
        Monitor the position until it is closed.

        Returns:
            The final position state

        Raises:
            FeedExhausted: feed failure limit exceeded under FAIL_OPEN
            asyncio.CancelledError: monitoring was cancelled
        """
        logger.info(
            f"Monitoring {self.token_id}: stake={self.position.stake} "
            f"entry={self.position.entry_price:.10g} reserve={self.position.entry_reserve:.10g}"
        )
        stop_reason = "closed"
        loop = asyncio.get_running_loop()
        interval = self.config.poll_interval_sec
        next_tick = loop.time()
        try:
            while not self.position.is_closed:
                self._check_stop()
                await self._tick()
                if self.position.is_closed:
                    break

                # Fixed rate: the interval counts from the previous tick start
                next_tick += interval
                delay = next_tick - loop.time()
                if delay < 0:
                    # Overran; skip missed ticks instead of bursting
                    next_tick = loop.time()
                    delay = 0
                await asyncio.sleep(delay)
                self._check_stop()
        except asyncio.CancelledError:
            stop_reason = "cancelled"
            raise
        except FeedExhausted:
            stop_reason = "feed_exhausted"
            raise
        finally:
            logger.info(f"Stopped monitoring {self.token_id} ({stop_reason}) after {self.ticks} ticks")
            self._emit(
                EventType.MONITOR_STOPPED,
                reason=stop_reason,
                status=self.position.status.value,
                remaining_stake=self.position.remaining_stake,
            )
        return self.position

    async def _tick(self):
        """One poll -> evaluate -> apply cycle."""
        self.ticks += 1

        observation = await self._observe()
        self._check_stop()
        if observation is None:
            if self._consecutive_failures > self.config.max_feed_failures:
                await self._escalate()
            return

        self._consecutive_failures = 0
        self.position.update_peak(observation.price)

        decision = evaluate(self.position, observation, self._clock(), self.thresholds)
        if decision.is_action:
            await self._apply(decision, observation)

    async def _observe(self) -> Optional[PriceObservation]:
        """
        Fetch and validate one observation.

        Returns:
            The observation, or None if this tick's feed call failed
        """
        try:
            observation = await asyncio.wait_for(
                self.price_feed.observe(self.token_id),
                timeout=self.config.feed_timeout_sec,
            )
            return observation.validate()
        except asyncio.TimeoutError:
            error = FeedUnavailable(f"No observation within {self.config.feed_timeout_sec}s")
        except FeedError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected price feed error for {self.token_id}: {e}")
            error = FeedUnavailable(str(e))

        self._consecutive_failures += 1
        logger.warning(
            f"Price feed failure for {self.token_id} "
            f"({self._consecutive_failures} in a row): {type(error).__name__}: {error}"
        )
        self._emit(
            EventType.FEED_FAILURE,
            error=type(error).__name__,
            message=str(error),
            consecutive=self._consecutive_failures,
        )
        return None

    async def _escalate(self):
        """Handle an exhausted price feed per the configured policy."""
        failures = self._consecutive_failures
        policy = self.config.feed_exhaustion_policy
        logger.error(f"Price feed exhausted for {self.token_id} after {failures} failures ({policy.value})")
        self._emit(EventType.FEED_EXHAUSTED, failures=failures, policy=policy.value)

        if policy is FeedExhaustionPolicy.FAIL_CLOSED:
            await self._apply(
                Decision.full_exit(Policy.FEED_EXHAUSTED, f"{failures} consecutive price feed failures")
            )
        else:
            raise FeedExhausted(self.token_id, failures)

    # -------------------------------------------------------------------------
    # Applying decisions
    # -------------------------------------------------------------------------

    async def _apply(self, decision: Decision, observation: Optional[PriceObservation] = None):
        """
        Update local state, then submit the liquidation.

        State is updated first and never rolled back. The submission is
        shielded so a cancellation arriving mid-apply only takes effect once
        the sink call has finished.
        """
        liquidation = self.position.apply_decision(decision, self.config.min_liquidation_stake)
        if liquidation is None:
            return

        logger.warning(
            f"{liquidation.policy.value.upper()} {self.token_id}: selling "
            f"{liquidation.fraction * 100:.1f}% ({liquidation.amount:.6f} SOL), "
            f"{liquidation.remaining_after:.6f} SOL left - {liquidation.reason}"
        )
        self._emit(
            EventType.EXIT_TRIGGERED,
            policy=liquidation.policy.value,
            kind=liquidation.kind.value,
            fraction=liquidation.fraction,
            amount=liquidation.amount,
            remaining_stake=liquidation.remaining_after,
            status=self.position.status.value,
            urgency=liquidation.urgency.value,
            price=observation.price if observation else None,
            reason=liquidation.reason,
        )

        submission = asyncio.ensure_future(self._submit(liquidation))
        cancelled = False
        while not submission.done():
            try:
                await asyncio.shield(submission)
            except asyncio.CancelledError:
                cancelled = True
        if cancelled:
            raise asyncio.CancelledError()

    async def _submit(self, liquidation: Liquidation):
        """Send a liquidation to the ExecutionSink. Failures are logged, not retried."""
        try:
            ack = await self.execution_sink.liquidate(
                liquidation.token_id, liquidation.fraction, liquidation.urgency
            )
            logger.info(f"Liquidation submitted for {self.token_id}: {ack}")
        except ExecutionFailed as e:
            logger.error(f"Liquidation failed for {self.token_id}: {e}")
            self._emit_execution_failure(liquidation, e)
        except Exception as e:
            logger.exception(f"Unexpected execution error for {self.token_id}: {e}")
            self._emit_execution_failure(liquidation, e)

    def _emit_execution_failure(self, liquidation: Liquidation, error: Exception):
        self._emit(
            EventType.EXECUTION_FAILED,
            policy=liquidation.policy.value,
            fraction=liquidation.fraction,
            amount=liquidation.amount,
            error=str(error),
        )

    def _emit(self, event_type: EventType, **data):
        try:
            self.events.emit(MonitorEvent(event_type, self.token_id, data, self._clock()))
        except Exception as e:
            logger.error(f"Failed to emit {event_type.value} for {self.token_id}: {e}")
