"""
Shared Data Models
==================

This package contains dataclasses used across the project.
"""

from .decision import (
    Decision,
    DecisionKind,
    Liquidation,
    Policy,
    Urgency,
    ONE_SHOT_POLICIES,
)
from .position import Position, PositionStatus, PriceObservation

__all__ = [
    "Decision",
    "DecisionKind",
    "Liquidation",
    "Policy",
    "Urgency",
    "ONE_SHOT_POLICIES",
    "Position",
    "PositionStatus",
    "PriceObservation",
]
