"""Minimal Birdeye historical price client with caching."""
from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import httpx
from tenacity import RetryError, retry, stop_after_attempt, wait_exponential

from .. import utils

API_URL = "https://public-api.birdeye.so"
WINDOW_SECONDS = 300


class PriceLookupError(RuntimeError):
    def __init__(self, address: str, ts: int, message: str = "Price lookup failed") -> None:
        super().__init__(f"{message} for address={address} at {ts}")
        self.address = address
        self.ts = ts


def _cache_path(key: str) -> Path:
    return utils.ensure_cache_dir("providers", "birdeye") / f"{key}.json"


async def _cached_request(url: str, params: dict[str, Any], headers: dict[str, str], *, timeout: float) -> Optional[dict[str, Any]]:
    cache_key = utils.sha1_digest(f"{url}|{params}")
    path = _cache_path(cache_key)
    if path.exists():
        return utils.json_loads(path.read_text(encoding="utf-8"))
    async with httpx.AsyncClient(timeout=timeout) as client:
        try:
            data = await _perform_request(client, url, params, headers)
        except RetryError as exc:  # pragma: no cover
            raise exc.last_attempt.exception() if exc.last_attempt else exc
    path.write_text(utils.json_dumps(data), encoding="utf-8")
    return data


@retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8))
async def _perform_request(
    client: httpx.AsyncClient, url: str, params: dict[str, Any], headers: dict[str, str]
) -> dict[str, Any]:
    response = await client.get(url, params=params, headers=headers)
    response.raise_for_status()
    return response.json()


def closest_price(items: list[dict[str, Any]], ts: int) -> Optional[Decimal]:
    best: Optional[dict[str, Any]] = None
    for item in items:
        if not isinstance(item, dict) or item.get("value") is None or item.get("unixTime") is None:
            continue
        if best is None or abs(int(item["unixTime"]) - ts) < abs(int(best["unixTime"]) - ts):
            best = item
    if best is None:
        return None
    return Decimal(str(best["value"]))


async def historical_price_usd(
    address: str, ts: int, *, api_key: Optional[str] = None, timeout: float = 5.0
) -> Decimal:
    """Return the 1m-candle USD price closest to ``ts`` within a ±5 minute window."""

    api_key = api_key or os.getenv("BIRDEYE_API_KEY")
    if not api_key:
        raise PriceLookupError(address, ts, message="BIRDEYE_API_KEY not configured")
    url = f"{API_URL}/defi/historical_price"
    params = {
        "address": address,
        "address_type": "token",
        "type": "1m",
        "time_from": ts - WINDOW_SECONDS,
        "time_to": ts + WINDOW_SECONDS,
    }
    headers = {"X-API-KEY": api_key}
    try:
        data = await _cached_request(url, params, headers, timeout=timeout)
    except httpx.HTTPError as exc:
        raise PriceLookupError(address, ts, message=str(exc)) from exc
    except ValueError as exc:
        raise PriceLookupError(address, ts, message=f"Unreadable Birdeye response: {exc}") from exc
    body = data.get("data") if isinstance(data, dict) else None
    items = body.get("items") if isinstance(body, dict) else None
    try:
        price = closest_price(items if isinstance(items, list) else [], ts)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise PriceLookupError(address, ts, message=f"Malformed Birdeye price point: {exc}") from exc
    if price is None:
        raise PriceLookupError(address, ts, message="No Birdeye price points")
    return price
