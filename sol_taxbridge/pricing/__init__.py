"""USD price resolution: stablecoins, then Jupiter real-time, then Birdeye history."""
from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal
from typing import Iterable, Optional

from .. import utils
from ..providers import birdeye, jupiter
from ..types import NATIVE_SYMBOLS, WSOL_MINT

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
STABLECOIN_MINTS = {USDC_MINT, USDT_MINT}
STABLECOIN_SYMBOLS = {"USDC", "USDT"}
DEFAULT_PRICE_CONCURRENCY = 5
LOGGER = logging.getLogger(__name__)

PriceRequest = tuple[str, Optional[str], Optional[int]]


class PriceUnavailable(RuntimeError):
    """No provider could price a token."""

    def __init__(self, symbol: str, message: str = "Price unavailable") -> None:
        super().__init__(f"{message} for {symbol}")
        self.symbol = symbol


def normalize_mint(symbol: str, address: Optional[str]) -> Optional[str]:
    if address:
        return address
    if symbol.upper() in NATIVE_SYMBOLS:
        return WSOL_MINT
    return None


def is_stablecoin(symbol: str, address: Optional[str]) -> bool:
    if address in STABLECOIN_MINTS:
        return True
    return symbol.upper() in STABLECOIN_SYMBOLS


class PriceResolver:
    """Price cascade with an in-memory cache keyed on the token identity."""

    def __init__(
        self,
        *,
        jupiter_api_key: Optional[str] = None,
        birdeye_api_key: Optional[str] = None,
        timeout: float = 5.0,
    ) -> None:
        self.jupiter_api_key = jupiter_api_key or os.getenv("JUP_API_KEY")
        self.birdeye_api_key = birdeye_api_key or os.getenv("BIRDEYE_API_KEY")
        self.timeout = timeout
        self._cache: dict[tuple[str, Optional[str], Optional[int]], Optional[Decimal]] = {}

    async def _lookup(self, symbol: str, address: Optional[str], timestamp: Optional[int]) -> Decimal:
        if is_stablecoin(symbol, address):
            return Decimal("1")
        mint = normalize_mint(symbol, address)
        try:
            return await jupiter.price_usd(mint or symbol, api_key=self.jupiter_api_key, timeout=self.timeout)
        except jupiter.PriceLookupError as exc:
            LOGGER.debug("Jupiter had no price for %s: %s", symbol, exc)
        if mint is None or timestamp is None:
            raise PriceUnavailable(symbol, message="No mint/timestamp for historical lookup")
        if not self.birdeye_api_key:
            raise PriceUnavailable(symbol, message="Birdeye API key not configured")
        try:
            return await birdeye.historical_price_usd(
                mint, timestamp, api_key=self.birdeye_api_key, timeout=self.timeout
            )
        except birdeye.PriceLookupError as exc:
            raise PriceUnavailable(symbol, message=str(exc)) from exc

    async def resolve_price(
        self, symbol: str, address: Optional[str] = None, timestamp: Optional[int] = None
    ) -> Optional[Decimal]:
        """Return the USD price of ``symbol`` or ``None`` when no provider has one."""

        key = (symbol, address, timestamp)
        if key in self._cache:
            return self._cache[key]
        try:
            price: Optional[Decimal] = await self._lookup(symbol, address, timestamp)
        except PriceUnavailable as exc:
            LOGGER.warning("%s", exc)
            price = None
        self._cache[key] = price
        return price

    def resolve_price_sync(
        self, symbol: str, address: Optional[str] = None, timestamp: Optional[int] = None
    ) -> Optional[Decimal]:
        return utils.run_async(self.resolve_price(symbol, address, timestamp))


async def build_price_map(
    resolver: PriceResolver,
    tokens: Iterable[PriceRequest],
    *,
    concurrency: int = DEFAULT_PRICE_CONCURRENCY,
) -> dict[str, Decimal]:
    """Resolve a symbol -> USD price map for ``(symbol, address, timestamp)`` requests.

    The first request seen for a symbol is the one that is priced. Symbols no
    provider can price are left out of the map.
    """

    unique: dict[str, PriceRequest] = {}
    for request in tokens:
        symbol = request[0]
        if symbol and symbol not in unique:
            unique[symbol] = request

    semaphore = asyncio.Semaphore(concurrency)
    price_map: dict[str, Decimal] = {}

    async def worker(symbol: str, address: Optional[str], timestamp: Optional[int]) -> None:
        async with semaphore:
            price = await resolver.resolve_price(symbol, address, timestamp)
        if price is not None and symbol not in price_map:
            price_map[symbol] = price

    await asyncio.gather(*(worker(*request) for request in unique.values()))
    LOGGER.info("Resolved prices for %d of %d tokens", len(price_map), len(unique))
    return price_map
