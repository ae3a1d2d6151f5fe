"""
Execution Sinks
===============

ExecutionSink implementations. Swap submission itself (Jupiter / Raydium,
wallet signing) lives outside this project; the dry-run sink stands in for
it by logging and recording every instruction.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque

from ..models import Urgency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmittedLiquidation:
    token_id: str
    fraction: float
    urgency: Urgency
    submitted_at: float = field(default_factory=time.time)


class DryRunExecutionSink:
    """
    Logs liquidation instructions instead of submitting swaps.

    Safe for concurrent use: appends are guarded by an asyncio.Lock. Only
    the most recent max_history instructions are kept.
    """

    def __init__(self, max_history: int = 1000):
        self.submitted: Deque[SubmittedLiquidation] = deque(maxlen=max_history)
        self._lock = asyncio.Lock()
        self._counter = 0

    async def liquidate(self, token_id: str, fraction: float, urgency: Urgency) -> str:
        async with self._lock:
            self._counter += 1
            self.submitted.append(SubmittedLiquidation(token_id, fraction, urgency))
            ack = f"dry-run-{self._counter}"

        logger.info(
            f"[DRY RUN] Would sell {fraction * 100:.1f}% of remaining {token_id} "
            f"({urgency.value}) -> {ack}"
        )
        return ack
