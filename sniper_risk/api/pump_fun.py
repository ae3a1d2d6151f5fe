"""
Pump.fun Token Discovery

Polls the Pump.fun frontend API for freshly created coins and yields the
ones that pass the static eligibility filters:
- created less than 15 minutes ago
- mint authority revoked
- liquidity of at least 5 SOL
- LP status "initialized" or "pending"
- 24h price change above 20%
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

from .. import settings
from ..config import DiscoveryFilters, config

logger = logging.getLogger(__name__)

# The frontend API rejects requests without browser-like headers
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Origin": "https://pump.fun",
    "Referer": "https://pump.fun",
}


@dataclass
class PumpToken:
    """A coin listed on Pump.fun."""
    mint: str
    name: str
    symbol: str
    description: str
    image_uri: str
    created_timestamp: int
    metadata_uri: str
    market_cap: float
    liquidity: float
    price: float
    price_change_24h: float
    is_mint_authority_revoked: bool
    lp_status: str
    creator_address: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PumpToken":
        """
        Parse one coin from the API response.

        Raises:
            KeyError / TypeError / ValueError: required field missing or malformed
        """
        return cls(
            mint=data["mint"],
            name=data.get("name", ""),
            symbol=data.get("symbol", ""),
            description=data.get("description", ""),
            image_uri=data.get("image_uri", ""),
            created_timestamp=int(data["created_timestamp"]),
            metadata_uri=data.get("uri", ""),
            market_cap=float(data.get("market_cap") or 0),
            liquidity=float(data.get("liquidity") or 0),
            price=float(data.get("price") or 0),
            price_change_24h=float(data.get("price_change_24h") or 0),
            is_mint_authority_revoked=bool(data.get("is_mint_authority_revoked", False)),
            lp_status=data.get("lp_creation_status", ""),
            creator_address=data.get("creator", ""),
        )

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.created_timestamp)


def is_eligible(token: PumpToken, filters: DiscoveryFilters, now: float) -> bool:
    """Check a token against the static discovery filters."""
    return (
        token.age_seconds(now) < filters.max_age_sec
        and (token.is_mint_authority_revoked or not filters.require_mint_revoked)
        and token.liquidity >= filters.min_liquidity
        and token.lp_status in filters.lp_statuses
        and token.price_change_24h > filters.min_price_change_24h
    )


def filter_eligible(
    tokens: List[PumpToken],
    filters: Optional[DiscoveryFilters] = None,
    now: Optional[float] = None,
) -> List[PumpToken]:
    """Return the tokens that pass every discovery filter."""
    filters = filters or config.discovery
    now = time.time() if now is None else now
    return [t for t in tokens if is_eligible(t, filters, now)]


TokenCallback = Callable[[List[PumpToken]], Union[None, Awaitable[None]]]


class PumpFunScanner:
    """
    Async client for the Pump.fun coin listing.

    Handles:
    - Fetching the newest coins
    - Applying the discovery filters
    - Continuous polling with a callback per non-empty batch
    """

    def __init__(
        self,
        url: str = None,
        filters: Optional[DiscoveryFilters] = None,
        request_timeout: float = 10.0,
        poll_interval: float = None,
    ):
        self.url = url or settings.PUMP_FUN_COINS_URL
        self.filters = filters or config.discovery
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval if poll_interval is not None else config.scan_interval_sec
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers=DEFAULT_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                auto_decompress=True,
            )

    async def close(self):
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def fetch_tokens(self) -> List[PumpToken]:
        """
        Fetch the latest coins, unfiltered.

        Coins that fail to parse are skipped with a debug log.

        Raises:
            aiohttp.ClientError: on HTTP or network errors
        """
        await self._ensure_session()
        logger.debug(f"Requesting Pump.fun: {self.url}")

        async with self._session.get(self.url) as response:
            text = await response.text()
            if response.status != 200:
                logger.error(f"Pump.fun returned {response.status}: {text[:200]}")
                response.raise_for_status()
            data = await response.json(content_type=None)

        tokens = []
        for item in data or []:
            try:
                tokens.append(PumpToken.from_api(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping unparseable coin: {e}")
        return tokens

    async def get_eligible_tokens(self) -> List[PumpToken]:
        """Fetch the latest coins and keep those passing the discovery filters."""
        tokens = await self.fetch_tokens()
        eligible = filter_eligible(tokens, self.filters)
        logger.info(f"Found {len(eligible)} eligible tokens (of {len(tokens)})")
        return eligible

    async def monitor_eligible_tokens(self, callback: TokenCallback):
        """
        Poll forever, invoking callback with every non-empty batch.

        Scan errors are logged and polling continues. Cancel the task to stop.
        """
        while True:
            try:
                tokens = await self.get_eligible_tokens()
                if tokens:
                    result = callback(tokens)
                    if asyncio.iscoroutine(result):
                        await result
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning(f"Pump.fun scan error: {e}")
            await asyncio.sleep(self.poll_interval)
