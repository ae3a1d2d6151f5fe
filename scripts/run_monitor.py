#!/usr/bin/env python3
"""
Sniper Risk Monitor - CLI Entry Point
=====================================

Runs continuous Pump.fun discovery with a risk monitor per opened position.

Exit policies (first match per tick):
    - Rug-pull: liquidity reserve down >= 40% from entry -> sell everything
    - Panic: price down >= 60% from entry -> sell everything
    - Timeout: no 1.1x after 90s -> sell half (once)
    - Trailing stop: 30% off the peak (peak above entry) -> sell everything
    - Moon: 50x or 24h -> sell the moon allocation (once)

Usage:
    # Start service (dry-run execution, Telegram alerts if configured)
    python scripts/run_monitor.py

    # Console alerts only
    python scripts/run_monitor.py --dry-run

    # Test Telegram configuration
    python scripts/run_monitor.py --test-telegram
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sniper_risk.alerts import TelegramAlerts, send_test_alert
from sniper_risk.config import FeedExhaustionPolicy, config
from sniper_risk.errors import FatalConfiguration
from sniper_risk.service import SniperService
from sniper_risk.settings import LOG_FILE, LOG_LEVEL


def setup_logging(log_level: str = LOG_LEVEL, log_file: str = LOG_FILE):
    """Configure logging for the sniper service."""
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Date-stamped log file (e.g., logs/sniper_2026-01-18.log)
    date_str = datetime.now().strftime("%Y-%m-%d")
    dated_log_file = log_path.parent / f"{log_path.stem}_{date_str}{log_path.suffix}"

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    file_handler = logging.FileHandler(dated_log_file)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from HTTP libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    root_logger.info(f"Logging to: {dated_log_file}")


def main():
    parser = argparse.ArgumentParser(
        description='Pump.fun Sniper Risk Monitor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_monitor.py                    # Start service
  python scripts/run_monitor.py --dry-run          # Console alerts only
  python scripts/run_monitor.py --stake 0.25       # 0.25 SOL per position
  python scripts/run_monitor.py --fail-open        # Stop monitoring (alert) on dead feed
  python scripts/run_monitor.py --test-telegram    # Test Telegram setup
        """
    )

    parser.add_argument(
        '--stake',
        type=float,
        default=config.stake_sol,
        help=f'SOL committed per position (default: {config.stake_sol})'
    )

    parser.add_argument(
        '--max-positions',
        type=int,
        default=config.max_open_positions,
        help=f'Maximum concurrently monitored positions (default: {config.max_open_positions})'
    )

    parser.add_argument(
        '--poll',
        type=float,
        default=config.monitor.poll_interval_sec,
        help=f'Price poll interval in seconds (default: {config.monitor.poll_interval_sec})'
    )

    parser.add_argument(
        '--fail-open',
        action='store_true',
        help='On price feed exhaustion stop monitoring and alert instead of force selling'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print alerts to console instead of sending to Telegram'
    )

    parser.add_argument(
        '--test-telegram',
        action='store_true',
        help='Send a test alert to verify Telegram configuration'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=LOG_LEVEL,
        help=f'Log level (default: {LOG_LEVEL})'
    )

    args = parser.parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    if args.test_telegram:
        print("Testing Telegram configuration...")
        if send_test_alert(dry_run=args.dry_run):
            print("Test alert sent successfully!")
            sys.exit(0)
        print("Failed to send test alert. Check your TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID.")
        sys.exit(1)

    try:
        monitor_config = replace(
            config.monitor,
            poll_interval_sec=args.poll,
            feed_timeout_sec=min(config.monitor.feed_timeout_sec, args.poll * 0.8),
            feed_exhaustion_policy=(
                FeedExhaustionPolicy.FAIL_OPEN if args.fail_open else config.monitor.feed_exhaustion_policy
            ),
        )
        cfg = replace(
            config,
            monitor=monitor_config,
            stake_sol=args.stake,
            max_open_positions=args.max_positions,
        )
    except FatalConfiguration as e:
        print(f"Invalid configuration: {e}")
        sys.exit(2)

    print("\n" + "=" * 60)
    print("SNIPER RISK MONITOR")
    print("=" * 60)
    print(f"Stake:          {cfg.stake_sol} SOL (moon {cfg.moon_fraction * 100:.0f}%)")
    print(f"Max positions:  {cfg.max_open_positions}")
    print(f"Poll interval:  {cfg.monitor.poll_interval_sec}s (feed timeout {cfg.monitor.feed_timeout_sec:.2f}s)")
    print(f"Feed exhausted: {cfg.monitor.feed_exhaustion_policy.value}")
    print(f"Dry run:        {args.dry_run}")
    print(f"Log level:      {args.log_level}")
    print("=" * 60)

    alerts = TelegramAlerts.from_env(dry_run=args.dry_run)
    if alerts is None:
        print("\nWARNING: Telegram not configured, alerts go to the log only.")
        print("Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID or use --dry-run.")

    try:
        service = SniperService(alerts=alerts, cfg=cfg)
        print("\nStarting sniper service...")
        print("Press Ctrl+C to stop\n")
        asyncio.run(service.run())
    except KeyboardInterrupt:
        print("\n\nSniper stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Sniper service error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
