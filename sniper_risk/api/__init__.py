"""
API Package
===========

External data sources for the risk monitor.

Components:
- pump_fun.py: PumpFunScanner, token discovery with static eligibility filters
- dexscreener.py: DexScreenerPriceFeed, PriceFeed for open positions
"""

from .dexscreener import DexScreenerPriceFeed, parse_pairs
from .pump_fun import PumpFunScanner, PumpToken, filter_eligible, is_eligible

__all__ = [
    "DexScreenerPriceFeed",
    "parse_pairs",
    "PumpFunScanner",
    "PumpToken",
    "filter_eligible",
    "is_eligible",
]
