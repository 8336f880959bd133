"""Solana JSON-RPC helpers."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from tenacity import RetryError, retry, retry_if_exception, stop_after_attempt, wait_exponential

from .. import utils


LOGGER = logging.getLogger(__name__)
DEFAULT_TIMEOUT = 30.0


class RpcError(RuntimeError):
    """The RPC node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: Any) -> None:
        super().__init__(f"{method} failed: {error}")
        self.method = method
        self.error = error


def rpc_endpoint(rpc_url: str, api_key: Optional[str] = None) -> str:
    if not api_key or "api-key=" in rpc_url:
        return rpc_url
    separator = "&" if "?" in rpc_url else "?"
    base = rpc_url if "?" in rpc_url else rpc_url.rstrip("/") + "/"
    return f"{base}{separator}api-key={api_key}"


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    if isinstance(exc, httpx.TransportError):
        return True
    return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception(_should_retry),
)
async def _perform_request(client: httpx.AsyncClient, rpc_url: str, method: str, params: Any) -> Any:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    response = await client.post(rpc_url, json=payload)
    response.raise_for_status()
    body = response.json()
    if not isinstance(body, dict):
        raise RpcError(method, "unexpected payload")
    if body.get("error"):
        raise RpcError(method, body["error"])
    return body.get("result")


async def call(client: httpx.AsyncClient, rpc_url: str, method: str, params: Any) -> Any:
    try:
        return await _perform_request(client, rpc_url, method, params)
    except RetryError as exc:  # pragma: no cover - network failure path
        LOGGER.warning("RPC %s failed after retries against %s", method, utils.redact_api_key(rpc_url))
        raise exc.last_attempt.exception() if exc.last_attempt else exc


async def get_signatures(
    client: httpx.AsyncClient,
    rpc_url: str,
    wallet: str,
    *,
    limit: int = 100,
    before: Optional[str] = None,
) -> list[dict[str, Any]]:
    options: dict[str, Any] = {"limit": limit}
    if before:
        options["before"] = before
    result = await call(client, rpc_url, "getSignaturesForAddress", [wallet, options])
    return result if isinstance(result, list) else []


async def get_transaction(client: httpx.AsyncClient, rpc_url: str, signature: str) -> Optional[dict[str, Any]]:
    options = {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"}
    result = await call(client, rpc_url, "getTransaction", [signature, options])
    return result if isinstance(result, dict) else None


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, http2=True)
