"""
Execution Package
=================

Liquidation sinks consumed by the position monitors.
"""

from .sink import DryRunExecutionSink, SubmittedLiquidation

__all__ = [
    "DryRunExecutionSink",
    "SubmittedLiquidation",
]
