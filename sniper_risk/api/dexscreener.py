"""
DexScreener Price Feed

Single responsibility: turn DexScreener pair data into PriceObservations.

Price is quoted in SOL (priceNative) and the liquidity reserve is the SOL
side of the most liquid SOL pool for the mint.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from .. import settings
from ..errors import FeedMalformed, FeedUnavailable
from ..models import PriceObservation

logger = logging.getLogger(__name__)

WSOL_MINT = "So11111111111111111111111111111111111111112"


def _is_sol_pair(pair: Dict[str, Any], token_id: str) -> bool:
    base = pair.get("baseToken") or {}
    quote = pair.get("quoteToken") or {}
    return (
        pair.get("chainId") == "solana"
        and base.get("address") == token_id
        and (quote.get("address") == WSOL_MINT or quote.get("symbol") == "SOL")
    )


def parse_pairs(payload: Any, token_id: str, observed_at: Optional[float] = None) -> PriceObservation:
    """
    Build an observation from a DexScreener /tokens response.

    Args:
        payload: Decoded JSON response
        token_id: Token mint address
        observed_at: Observation timestamp (default: now)

    Returns:
        Validated PriceObservation for the deepest SOL pool

    Raises:
        FeedMalformed: no usable SOL pair in the payload
    """
    if not isinstance(payload, dict):
        raise FeedMalformed(f"Unexpected DexScreener payload type: {type(payload).__name__}")

    pairs = [p for p in payload.get("pairs") or [] if isinstance(p, dict) and _is_sol_pair(p, token_id)]
    if not pairs:
        raise FeedMalformed(f"No SOL pair found for {token_id}")

    def quote_reserve(pair: Dict[str, Any]) -> float:
        try:
            return float((pair.get("liquidity") or {}).get("quote") or 0)
        except (TypeError, ValueError):
            return 0.0

    best = max(pairs, key=quote_reserve)
    try:
        price = float(best["priceNative"])
        reserve = float(best["liquidity"]["quote"])
    except (KeyError, TypeError, ValueError) as e:
        raise FeedMalformed(f"Incomplete pair data for {token_id}: {e}") from e

    observation = PriceObservation(
        price=price,
        liquidity_reserve=reserve,
        observed_at=observed_at if observed_at is not None else time.time(),
    )
    return observation.validate()


class DexScreenerPriceFeed:
    """
    Async PriceFeed backed by the DexScreener REST API.

    One aiohttp session is shared by every monitor; a semaphore bounds the
    number of requests in flight.
    """

    def __init__(
        self,
        url: str = None,
        max_concurrent: int = 5,
        request_timeout: float = 2.0,
    ):
        self.url = (url or settings.DEXSCREENER_TOKENS_URL).rstrip("/")
        self.max_concurrent = max_concurrent
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        """Create session and semaphore if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                headers={"Accept": "application/json"},
            )
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def close(self):
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def observe(self, token_id: str) -> PriceObservation:
        """
        Fetch the current price and SOL reserve for a token.

        Raises:
            FeedUnavailable: HTTP error, rate limit, or network failure
            FeedMalformed: response did not contain a usable SOL pair
        """
        await self._ensure_session()
        try:
            async with self._semaphore:
                async with self._session.get(f"{self.url}/{token_id}") as response:
                    if response.status == 429:
                        raise FeedUnavailable("DexScreener rate limited (429)")
                    if response.status != 200:
                        raise FeedUnavailable(f"DexScreener HTTP {response.status}")
                    payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise FeedUnavailable(f"DexScreener request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise FeedUnavailable("DexScreener request timed out") from e
        except ValueError as e:
            raise FeedMalformed(f"DexScreener returned invalid JSON: {e}") from e

        return parse_pairs(payload, token_id)
