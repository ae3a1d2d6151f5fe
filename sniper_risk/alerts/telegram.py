"""
Telegram Alerts
===============

Telegram notification system for the risk monitor. Implements the
EventSink protocol so it can be attached next to the logging sink.

Alert types:
- Exit alerts: rug-pull, panic, trailing stop, moon exits and partial sells
- Execution failures: liquidation could not be submitted
- Feed exhaustion: monitor gave up or force-sold on a dead price feed
- Service status: started / stopped / error
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytz
import requests

from .. import settings
from ..events import EventType, MonitorEvent

# Timezone for alert timestamps
EST = pytz.timezone("America/New_York")

logger = logging.getLogger(__name__)

# Rate limiting constants
MIN_ALERT_INTERVAL_SECONDS = 60  # Between non-critical alerts for the same token
MIN_MESSAGE_INTERVAL_SECONDS = 1  # Between any messages (Telegram limit: 30/sec)
MAX_ALERTS_PER_MINUTE = 20  # Global rate limit

# Policies whose alerts bypass rate limiting
CRITICAL_POLICIES = {"rug_pull", "panic_sell", "feed_exhausted"}

POLICY_LABELS = {
    "rug_pull": "🚨 RUG-PULL",
    "panic_sell": "🔥 PANIC SELL",
    "panic_timeout": "⏳ TIMEOUT",
    "trailing_stop": "📉 TRAILING STOP",
    "moon": "🌕 MOON",
    "feed_exhausted": "🛑 FEED DOWN",
}


@dataclass
class AlertConfig:
    """Configuration for alert sending."""
    bot_token: str
    chat_id: str
    dry_run: bool = False
    max_message_length: int = 4000
    # Rate limiting settings
    min_alert_interval: int = MIN_ALERT_INTERVAL_SECONDS
    min_message_interval: float = MIN_MESSAGE_INTERVAL_SECONDS


def short_mint(token_id: str) -> str:
    if len(token_id) <= 12:
        return token_id
    return f"{token_id[:6]}...{token_id[-4:]}"


def format_sol(amount: Optional[float]) -> str:
    if amount is None:
        return "?"
    if amount >= 1:
        return f"{amount:.2f} SOL"
    return f"{amount:.4f} SOL"


class TelegramAlerts:
    """
    Telegram alert sender for the risk monitor.

    emit() never blocks: messages go out on a background thread. Includes
    rate limiting to prevent Telegram API abuse; critical alerts skip it.
    """

    def __init__(self, config: AlertConfig):
        """
        Initialize Telegram alerts.

        Args:
            config: AlertConfig with bot token, chat ID, and settings
        """
        self.config = config
        self._validate()

        # Rate limiting state
        self._lock = threading.Lock()
        self._last_message_time: float = 0
        self._token_alert_times: Dict[str, float] = {}  # token_id -> last alert time
        self._alerts_this_minute: List[float] = []  # timestamps of recent alerts

    @classmethod
    def from_env(cls, dry_run: bool = False) -> Optional["TelegramAlerts"]:
        """
        Create TelegramAlerts from environment variables.

        Returns:
            TelegramAlerts instance if configured (or dry run), None otherwise
        """
        bot_token = os.environ.get("TELEGRAM_BOT_TOKEN", settings.TELEGRAM_BOT_TOKEN)
        chat_id = os.environ.get("TELEGRAM_CHAT_ID", settings.TELEGRAM_CHAT_ID)

        if not dry_run and (not bot_token or not chat_id):
            logger.warning(
                "Telegram not configured (set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID)"
            )
            return None

        return cls(AlertConfig(bot_token=bot_token, chat_id=chat_id, dry_run=dry_run))

    def _validate(self):
        """Validate configuration."""
        if not self.config.dry_run:
            if not self.config.bot_token:
                raise ValueError("TELEGRAM_BOT_TOKEN is required (or use --dry-run)")
            if not self.config.chat_id:
                raise ValueError("TELEGRAM_CHAT_ID is required (or use --dry-run)")

    # -------------------------------------------------------------------------
    # Rate limiting
    # -------------------------------------------------------------------------

    def _check_rate_limit(self) -> bool:
        """
        Check if we're within rate limits.

        Returns:
            True if we can send, False if rate limited
        """
        now = time.time()

        with self._lock:
            # Clean up old timestamps (older than 1 minute)
            self._alerts_this_minute = [t for t in self._alerts_this_minute if now - t < 60]
            recent = len(self._alerts_this_minute)

        if recent >= MAX_ALERTS_PER_MINUTE:
            logger.warning(f"Rate limited: {recent} alerts in last minute")
            return False
        return True

    def _enforce_message_interval(self):
        """Enforce minimum interval between messages."""
        elapsed = time.time() - self._last_message_time
        if elapsed < self.config.min_message_interval:
            time.sleep(self.config.min_message_interval - elapsed)

    def _can_alert_token(self, token_id: str) -> bool:
        """
        Check if a non-critical alert for this token is out of cooldown.

        Records the alert time when allowed.
        """
        now = time.time()
        with self._lock:
            last_alert = self._token_alert_times.get(token_id, 0)
            if now - last_alert < self.config.min_alert_interval:
                remaining = int(self.config.min_alert_interval - (now - last_alert))
                logger.debug(f"Token {short_mint(token_id)} in cooldown ({remaining}s remaining)")
                return False
            self._token_alert_times[token_id] = now
        return True

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def _send_message(self, text: str, skip_rate_limit: bool = False) -> Optional[int]:
        """
        Send a message via Telegram Bot API.

        Args:
            text: Message text (HTML formatted)
            skip_rate_limit: If True, skip rate limit check (for critical alerts)

        Returns:
            message_id if successful, None otherwise
        """
        text = self._truncate_message(text)

        if self.config.dry_run:
            logger.info(f"[DRY RUN] Would send Telegram message:\n{text}")
            # Fake message_id for dry run
            return 999999

        if not skip_rate_limit and not self._check_rate_limit():
            logger.warning("Message dropped due to rate limiting")
            return None

        self._enforce_message_interval()

        url = f"https://api.telegram.org/bot{self.config.bot_token}/sendMessage"
        payload = {
            "chat_id": self.config.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        try:
            response = requests.post(url, json=payload, timeout=10)
            response.raise_for_status()

            now = time.time()
            with self._lock:
                self._last_message_time = now
                self._alerts_this_minute.append(now)

            message_id = response.json().get("result", {}).get("message_id")
            logger.info(f"Telegram alert sent successfully (message_id: {message_id})")
            return message_id

        except requests.exceptions.Timeout:
            logger.error("Telegram request timed out")
            return None
        except requests.exceptions.HTTPError as e:
            # Log status code without exposing token in URL
            status_code = e.response.status_code if e.response is not None else "unknown"
            logger.error(f"Telegram HTTP error: {status_code}")
            if status_code == 429:
                logger.warning("Telegram rate limit hit (429) - backing off")
            return None
        except requests.exceptions.ConnectionError:
            logger.error("Telegram connection error - network issue")
            return None
        except requests.exceptions.RequestException:
            # Don't log exception details which may contain URL/token
            logger.error("Telegram request failed")
            return None

    def _send_message_async(self, text: str, skip_rate_limit: bool = False):
        """
        Send message without blocking. Fire and forget.

        Spawns a background thread so the monitor loop continues immediately.
        """
        def _send():
            try:
                self._send_message(text, skip_rate_limit=skip_rate_limit)
            except Exception as e:
                logger.error(f"Async send failed: {type(e).__name__}")

        thread = threading.Thread(target=_send, daemon=True)
        thread.start()

    def _truncate_message(self, text: str) -> str:
        """Truncate message to Telegram's character limit."""
        if len(text) > self.config.max_message_length:
            return text[:self.config.max_message_length - 20] + "\n... (truncated)"
        return text

    # -------------------------------------------------------------------------
    # EventSink
    # -------------------------------------------------------------------------

    def emit(self, event: MonitorEvent) -> None:
        """Turn a monitor event into an alert, if it warrants one."""
        message = self.format_event(event)
        if message is None:
            return

        critical = (
            event.type is EventType.FEED_EXHAUSTED
            or event.data.get("policy") in CRITICAL_POLICIES
        )
        if not critical and not self._can_alert_token(event.token_id):
            return
        self._send_message_async(message, skip_rate_limit=critical)

    def format_event(self, event: MonitorEvent) -> Optional[str]:
        """
        Format an event as an HTML message.

        Returns:
            Message text, or None for events that are not alerted
        """
        token = f"<code>{short_mint(event.token_id)}</code>"
        data = event.data

        if event.type is EventType.EXIT_TRIGGERED:
            label = POLICY_LABELS.get(data.get("policy"), str(data.get("policy", "EXIT")).upper())
            lines = [
                f"{label} {token}",
                f"Sold <b>{data.get('fraction', 0) * 100:.0f}%</b> ({format_sol(data.get('amount'))}), "
                f"{format_sol(data.get('remaining_stake'))} left",
            ]
            if data.get("reason"):
                lines.append(str(data["reason"]))
            return "\n".join(lines)

        if event.type is EventType.EXECUTION_FAILED:
            return (
                f"❌ Liquidation failed {token}\n"
                f"{data.get('policy', '?')}: {data.get('fraction', 0) * 100:.0f}% - {data.get('error', '')}"
            )

        if event.type is EventType.FEED_EXHAUSTED:
            action = "force selling" if data.get("policy") == "fail_closed" else "monitoring stopped"
            return (
                f"🛑 Price feed down {token}\n"
                f"{data.get('failures', '?')} consecutive failures - <b>{action}</b>"
            )

        return None

    def send_service_status(
        self,
        status: str,
        details: str = "",
        timestamp: datetime = None
    ) -> bool:
        """
        Send service status notification.

        These are critical operational alerts and skip rate limiting.

        Args:
            status: Status type ("started", "stopped", "error")
            details: Additional details
            timestamp: Timestamp (default: now)

        Returns:
            True if sent successfully
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        timestamp_et = timestamp.astimezone(EST)

        status_text = {
            "started": "Sniper service started",
            "stopped": "Sniper service stopped",
            "error": "Sniper service error",
        }.get(status, f"Status: {status}")

        lines = [f"<b>{status_text} at {timestamp_et.strftime('%H:%M:%S %Z')}</b>"]
        if details:
            lines.append("")
            lines.append(details)

        return self._send_message("\n".join(lines), skip_rate_limit=True) is not None


def send_test_alert(dry_run: bool = False) -> bool:
    """
    Send a test message to verify the Telegram configuration.

    Returns:
        True if the message was sent
    """
    alerts = TelegramAlerts.from_env(dry_run=dry_run)
    if alerts is None:
        return False
    return alerts._send_message("✅ Sniper risk monitor: test alert", skip_rate_limit=True) is not None
