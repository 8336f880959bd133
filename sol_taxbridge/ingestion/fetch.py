"""Fetch raw transactions over JSON-RPC and persist them to the cache."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import time
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from .. import utils
from ..providers import solana_rpc
from ..types import RawTransfer
from .extract import extract_transfers, transaction_signature

LOGGER = logging.getLogger(__name__)

RAW_CACHE_DIR = utils.ensure_cache_dir("raw")

EvidenceFetcher = Callable[[str], Awaitable[list[RawTransfer]]]


class SecondaryFetchFailed(RuntimeError):
    """Re-fetching a transaction for rent/dust evidence did not succeed."""

    def __init__(self, transaction_id: str, message: str = "Secondary fetch failed") -> None:
        super().__init__(f"{message} for {transaction_id}")
        self.transaction_id = transaction_id


class RateLimiter:
    """Enforce a minimum interval between calls; one instance per caller."""

    def __init__(self, min_interval: float) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self.calls = 0
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            now = time.monotonic()
            if self._last is not None:
                delay = self.min_interval - (now - self._last)
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last = time.monotonic()
            self.calls += 1

    def reset(self) -> None:
        self._last = None
        self.calls = 0


def _wallet_cache_path(wallet: str) -> Path:
    return RAW_CACHE_DIR / f"{wallet}.jsonl"


def load_cached(wallet: str) -> list[dict]:
    """Cached payloads for ``wallet``; the first copy of each signature wins."""

    path = _wallet_cache_path(wallet)
    seen: set[str] = set()
    records: list[dict] = []
    for item in utils.read_jsonl(path):
        signature = transaction_signature(item) if isinstance(item, dict) else None
        if signature is not None:
            if signature in seen:
                continue
            seen.add(signature)
        records.append(item)
    return records


def _cached_signatures(wallet: str) -> set[str]:
    return {sig for sig in (transaction_signature(tx) for tx in load_cached(wallet)) if sig}


async def fetch_wallet(
    wallet: str,
    *,
    rpc_url: str,
    limiter: RateLimiter,
    limit: int = 100,
    before: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> list[dict]:
    """Fetch up to ``limit`` parsed transactions for ``wallet``.

    Transactions already in the raw cache are not fetched again; only new
    payloads are appended to it. Returns the newly fetched payloads.
    """

    if client is None:
        async with solana_rpc.make_client() as own_client:
            return await fetch_wallet(
                wallet, rpc_url=rpc_url, limiter=limiter, limit=limit, before=before, client=own_client
            )

    await limiter.wait()
    signatures = await solana_rpc.get_signatures(client, rpc_url, wallet, limit=limit, before=before)
    known = _cached_signatures(wallet)
    LOGGER.info("Found %d signatures for %s (%d cached)", len(signatures), utils.short_sig(wallet), len(known))
    fetched: list[dict] = []
    for entry in signatures:
        signature = entry.get("signature")
        if not signature or signature in known:
            continue
        await limiter.wait()
        try:
            tx = await solana_rpc.get_transaction(client, rpc_url, signature)
        except (httpx.HTTPError, solana_rpc.RpcError) as exc:
            LOGGER.warning("Failed to fetch transaction %s: %s", utils.short_sig(signature), exc)
            continue
        if tx is None:
            continue
        fetched.append(tx)
    if fetched:
        utils.write_jsonl(_wallet_cache_path(wallet), fetched)
    return fetched


async def fetch_many(
    wallets: Iterable[str], *, rpc_url: str, limiter: RateLimiter, limit: int = 100
) -> dict[str, list[dict]]:
    results: dict[str, list[dict]] = {}
    async with solana_rpc.make_client() as client:
        for wallet in wallets:
            results[wallet] = await fetch_wallet(wallet, rpc_url=rpc_url, limiter=limiter, limit=limit, client=client)
    return results


def make_evidence_fetcher(
    wallet: str,
    *,
    rpc_url: str,
    limiter: RateLimiter,
    client: httpx.AsyncClient,
) -> EvidenceFetcher:
    """Build a callable that re-reads one transaction's transfers from the node."""

    async def fetch_evidence(transaction_id: str) -> list[RawTransfer]:
        await limiter.wait()
        try:
            tx = await solana_rpc.get_transaction(client, rpc_url, transaction_id)
        except (httpx.HTTPError, solana_rpc.RpcError) as exc:
            raise SecondaryFetchFailed(transaction_id, message=str(exc)) from exc
        if tx is None:
            raise SecondaryFetchFailed(transaction_id, message="Transaction not found")
        return extract_transfers(wallet, tx)

    return fetch_evidence
