# -*- coding: utf-8 -*-
"""
Price Service Module

Native asset (ETH) USD price resolution with caching and fallback support.
Sources are tried in order: Chainlink on-chain oracle, then the CoinGecko
public API. When both fail a cached price of any age is served as a degraded
value, and only with no cache at all does the resolver fall back to a
hardcoded constant.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Optional
import logging

import requests
from eth_utils import to_checksum_address

from ..config.chain_config import (
    CHAINLINK_AGGREGATOR_V3_ABI,
    CHAINLINK_DECIMALS,
    CHAINLINK_ETH_USD_FEED,
    COINGECKO_BASE_URL,
    COINGECKO_NATIVE_ID,
    COINGECKO_PRO_BASE_URL,
    ETH_PRICE_CACHE_TTL,
    FALLBACK_ETH_PRICE_USD,
    PRICE_API_TIMEOUT,
)

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_STALE_CACHE = "stale_cache"
SOURCE_FALLBACK = "fallback_constant"


@dataclass(frozen=True)
class PriceQuote:
    """A resolved USD price and where it came from."""
    price_usd: Decimal
    resolved_at: float
    source: str
    degraded: bool = False

    @property
    def is_fallback_constant(self) -> bool:
        return self.source == SOURCE_FALLBACK

    def to_dict(self) -> dict:
        return {
            'price_usd': float(self.price_usd),
            'resolved_at': self.resolved_at,
            'source': self.source,
            'degraded': self.degraded,
        }


class PriceSource:
    """One price strategy. Raise on failure; return a positive Decimal on success."""
    name = "source"
    needs_connection = False

    def fetch(self, w3: Any = None) -> Decimal:
        raise NotImplementedError


class ChainlinkPriceSource(PriceSource):
    """ETH/USD from the Chainlink aggregator on the current connection."""
    name = "chainlink"
    needs_connection = True

    def __init__(self, feed_address: str = CHAINLINK_ETH_USD_FEED, decimals: int = CHAINLINK_DECIMALS):
        self.feed_address = to_checksum_address(feed_address)
        self.decimals = decimals

    def fetch(self, w3: Any = None) -> Decimal:
        if w3 is None:
            raise ValueError("Chainlink price needs a live connection")
        contract = w3.eth.contract(address=self.feed_address, abi=CHAINLINK_AGGREGATOR_V3_ABI)
        round_data = contract.functions.latestRoundData().call()
        # Extract price (8 decimal places)
        return Decimal(round_data[1]) / Decimal(10 ** self.decimals)


class CoinGeckoPriceSource(PriceSource):
    """ETH/USD from the CoinGecko simple price endpoint (best effort)."""
    name = "coingecko"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = PRICE_API_TIMEOUT,
        session: Optional[requests.Session] = None,
        coin_id: str = COINGECKO_NATIVE_ID,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.coin_id = coin_id
        self.session = session or requests.Session()
        self.base_url = COINGECKO_PRO_BASE_URL if api_key else COINGECKO_BASE_URL

        headers = {
            'User-Agent': 'SettlementProcessor/1.0',
            'Accept': 'application/json'
        }
        if api_key:
            headers['x-cg-pro-api-key'] = api_key
        self.session.headers.update(headers)

    def fetch(self, w3: Any = None) -> Decimal:
        response = self.session.get(
            f"{self.base_url}/simple/price",
            params={'ids': self.coin_id, 'vs_currencies': 'usd'},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        price = (data.get(self.coin_id) or {}).get('usd')
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise ValueError(f"Unexpected CoinGecko payload: {data}")
        return Decimal(str(price))


class NativePriceResolver:
    """
    Resolves the native asset USD price through an ordered list of sources.

    The cached quote belongs to the instance; concurrent callers may race on
    it and the last writer wins.
    """

    def __init__(
        self,
        sources: Optional[List[PriceSource]] = None,
        max_age: float = ETH_PRICE_CACHE_TTL,
        fallback_price: Decimal = FALLBACK_ETH_PRICE_USD,
        clock: Callable[[], float] = time.time,
    ):
        self.sources = sources if sources is not None else [ChainlinkPriceSource(), CoinGeckoPriceSource()]
        self.max_age = max_age
        self.fallback_price = fallback_price
        self.clock = clock
        self._cached: Optional[PriceQuote] = None
        self.fallback_hits = 0

    @classmethod
    def from_settings(cls, settings) -> "NativePriceResolver":
        return cls(
            sources=[
                ChainlinkPriceSource(),
                CoinGeckoPriceSource(api_key=settings.coingecko_api_key, timeout=settings.price_api_timeout),
            ],
            max_age=settings.price_cache_ttl,
        )

    @property
    def cached_quote(self) -> Optional[PriceQuote]:
        return self._cached

    def clear_cache(self) -> None:
        self._cached = None
        logger.info("Price cache cleared")

    def resolve_usd_price(self, w3: Any = None) -> PriceQuote:
        """Get ETH price in USD from cache, Chainlink, CoinGecko, then fallbacks."""
        now = self.clock()

        # Check cache first
        if self._cached is not None and now - self._cached.resolved_at < self.max_age:
            return PriceQuote(self._cached.price_usd, self._cached.resolved_at, SOURCE_CACHE)

        for source in self.sources:
            if source.needs_connection and w3 is None:
                continue
            try:
                price = source.fetch(w3)
            except Exception as e:
                logger.warning(f"[ETH Price] {source.name} failed: {e}")
                continue

            if price <= 0:
                logger.warning(f"[ETH Price] {source.name} returned non-positive price {price}")
                continue

            quote = PriceQuote(price, self.clock(), source.name)
            self._cached = quote
            logger.debug(f"[ETH Price] Got from {source.name}: ${price}")
            return quote

        if self._cached is not None:
            age = now - self._cached.resolved_at
            logger.warning(
                f"[ETH Price] All sources failed, serving cached price ${self._cached.price_usd} "
                f"({age:.0f}s old)"
            )
            return PriceQuote(self._cached.price_usd, self._cached.resolved_at, SOURCE_STALE_CACHE, degraded=True)

        self.fallback_hits += 1
        logger.critical(
            f"[ETH Price] All sources failed and no cached price - using fallback ${self.fallback_price} "
            f"(hit #{self.fallback_hits})"
        )
        return PriceQuote(self.fallback_price, now, SOURCE_FALLBACK, degraded=True)
