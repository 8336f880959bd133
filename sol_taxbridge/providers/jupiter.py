"""Jupiter real-time price API client."""
from __future__ import annotations

import logging
import os
from decimal import Decimal
from typing import Any, Optional

import httpx
from tenacity import RetryError, retry, retry_if_exception, stop_after_attempt, wait_exponential

LOGGER = logging.getLogger(__name__)

JUPITER_PRICE_V2_URL = "https://api.jup.ag/price/v2"
JUPITER_PRICE_V3_URL = "https://api.jup.ag/price/v3"


class PriceLookupError(RuntimeError):
    def __init__(self, token: str, message: str = "Price lookup failed") -> None:
        super().__init__(f"{message} for token={token}")
        self.token = token


def _price_base_url(api_key: Optional[str]) -> str:
    override = os.getenv("JUPITER_PRICE_URL")
    if override:
        return override
    if api_key:
        return JUPITER_PRICE_V3_URL
    return JUPITER_PRICE_V2_URL


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception(_should_retry),
)
async def _perform_request(
    client: httpx.AsyncClient,
    params: dict[str, Any],
    *,
    base_url: str,
    api_key: Optional[str],
) -> dict[str, Any]:
    headers = {"accept": "application/json"}
    if api_key:
        headers["x-api-key"] = api_key
    response = await client.get(base_url, params=params, headers=headers)
    response.raise_for_status()
    return response.json()


def _extract_price(data: Any, token: str) -> Optional[Decimal]:
    if not isinstance(data, dict):
        return None
    # v2 nests under "data", v3 returns the mapping directly
    payload = data.get("data") if isinstance(data.get("data"), dict) else data
    item = payload.get(token) if isinstance(payload, dict) else None
    if not isinstance(item, dict):
        return None
    price = item.get("price", item.get("usdPrice"))
    if price is None:
        return None
    return Decimal(str(price))


async def price_usd(token: str, *, api_key: Optional[str] = None, timeout: float = 5.0) -> Decimal:
    """Return the current USD price for ``token`` (symbol or mint address)."""

    api_key = api_key or os.getenv("JUP_API_KEY")
    base_url = _price_base_url(api_key)
    async with httpx.AsyncClient(timeout=timeout) as client:
        try:
            data = await _perform_request(client, {"ids": token}, base_url=base_url, api_key=api_key)
        except RetryError as exc:  # pragma: no cover - network failure path
            raise PriceLookupError(token, message="Jupiter retries exhausted") from exc
        except httpx.HTTPError as exc:
            raise PriceLookupError(token, message=str(exc)) from exc
        except ValueError as exc:
            raise PriceLookupError(token, message=f"Unreadable Jupiter response: {exc}") from exc
    try:
        price = _extract_price(data, token)
    except ArithmeticError as exc:
        raise PriceLookupError(token, message=f"Malformed Jupiter price: {exc}") from exc
    if price is None:
        raise PriceLookupError(token, message="No price found in Jupiter response")
    return price
