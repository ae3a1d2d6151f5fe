# Core risk monitoring logic
from .exit_policy import evaluate
from .interfaces import ExecutionSink, PriceFeed
from .monitor import PositionMonitor
from .supervisor import Supervisor

__all__ = [
    "evaluate",
    "ExecutionSink",
    "PriceFeed",
    "PositionMonitor",
    "Supervisor",
]
