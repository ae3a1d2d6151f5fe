#!/usr/bin/env python3
"""
One-shot Pump.fun scan.

Fetches the newest coins once and prints those passing the discovery
filters. Useful for checking connectivity and filter settings.

Usage:
    python scripts/scan_tokens.py
    python scripts/scan_tokens.py --all   # show unfiltered coins too
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import aiohttp

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sniper_risk.api import PumpFunScanner, filter_eligible

logger = logging.getLogger(__name__)


async def scan(show_all: bool) -> int:
    async with PumpFunScanner() as scanner:
        try:
            tokens = await scanner.fetch_tokens()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not fetch tokens: {e}")
            return 1

    eligible = filter_eligible(tokens, scanner.filters)
    listed = tokens if show_all else eligible
    logger.info(f"Eligible tokens: {len(eligible)} of {len(tokens)}")

    for t in listed:
        marker = "*" if t in eligible else " "
        logger.info(
            f" {marker} {t.symbol} ({t.mint[:8]}) - LP: {t.liquidity:.2f} SOL, "
            f"24h: {t.price_change_24h:+.1f}%, status: {t.lp_status}"
        )
    return 0


def main():
    parser = argparse.ArgumentParser(description="One-shot Pump.fun eligibility scan")
    parser.add_argument("--all", action="store_true", help="List every fetched coin, eligible ones marked *")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    sys.exit(asyncio.run(scan(args.all)))


if __name__ == "__main__":
    main()
