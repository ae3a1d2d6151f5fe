"""
Alerts Package
==============

Notification channels fed by monitor events.
"""

from .telegram import AlertConfig, TelegramAlerts, send_test_alert

__all__ = [
    "AlertConfig",
    "TelegramAlerts",
    "send_test_alert",
]
