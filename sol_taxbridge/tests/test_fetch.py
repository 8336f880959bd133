from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from sol_taxbridge import utils
from sol_taxbridge.ingestion import fetch
from sol_taxbridge.providers import solana_rpc


def _payload(signature: str) -> dict:
    return {
        "blockTime": 1_700_000_000,
        "transaction": {"signatures": [signature], "message": {"accountKeys": []}},
        "meta": {"err": None, "fee": 0, "preBalances": [], "postBalances": []},
    }


def test_load_cached_dedup(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(fetch, "RAW_CACHE_DIR", tmp_path)
    utils.write_jsonl(tmp_path / "wallet.jsonl", [_payload("sig1"), _payload("sig1"), _payload("sig2")], mode="w")
    loaded = fetch.load_cached("wallet")
    assert [fetch.transaction_signature(item) for item in loaded] == ["sig1", "sig2"]


def test_fetch_wallet_skips_cached_signatures(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(fetch, "RAW_CACHE_DIR", tmp_path)
    utils.write_jsonl(tmp_path / "wallet.jsonl", [_payload("old")], mode="w")
    requested: list[str] = []

    async def fake_signatures(client, rpc_url, wallet, *, limit, before=None):
        return [{"signature": "old"}, {"signature": "new"}]

    async def fake_transaction(client, rpc_url, signature):
        requested.append(signature)
        return _payload(signature)

    monkeypatch.setattr(fetch.solana_rpc, "get_signatures", fake_signatures)
    monkeypatch.setattr(fetch.solana_rpc, "get_transaction", fake_transaction)
    limiter = fetch.RateLimiter(0)
    fetched = asyncio.run(fetch.fetch_wallet("wallet", rpc_url="http://rpc", limiter=limiter, client=object()))
    assert requested == ["new"]
    assert len(fetched) == 1
    assert limiter.calls == 2
    assert len(fetch.load_cached("wallet")) == 2


def test_fetch_wallet_skips_failed_transaction_fetch(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(fetch, "RAW_CACHE_DIR", tmp_path)

    async def fake_signatures(client, rpc_url, wallet, *, limit, before=None):
        return [{"signature": "bad"}, {"signature": "good"}]

    async def fake_transaction(client, rpc_url, signature):
        if signature == "bad":
            raise solana_rpc.RpcError("getTransaction", {"code": -32009})
        return _payload(signature)

    monkeypatch.setattr(fetch.solana_rpc, "get_signatures", fake_signatures)
    monkeypatch.setattr(fetch.solana_rpc, "get_transaction", fake_transaction)
    fetched = asyncio.run(
        fetch.fetch_wallet("wallet", rpc_url="http://rpc", limiter=fetch.RateLimiter(0), client=object())
    )
    assert [fetch.transaction_signature(tx) for tx in fetched] == ["good"]


def test_rate_limiter_enforces_interval() -> None:
    limiter = fetch.RateLimiter(0.05)

    async def run() -> float:
        start = time.monotonic()
        await limiter.wait()
        await limiter.wait()
        return time.monotonic() - start

    assert asyncio.run(run()) >= 0.045
    assert limiter.calls == 2
    limiter.reset()
    assert limiter.calls == 0


def test_evidence_fetcher_wraps_rpc_errors(monkeypatch) -> None:
    async def failing(client, rpc_url, signature):
        raise httpx.ConnectError("down", request=httpx.Request("POST", rpc_url))

    monkeypatch.setattr(fetch.solana_rpc, "get_transaction", failing)
    fetcher = fetch.make_evidence_fetcher("wallet", rpc_url="http://rpc", limiter=fetch.RateLimiter(0), client=object())
    with pytest.raises(fetch.SecondaryFetchFailed):
        asyncio.run(fetcher("sig1"))


def test_evidence_fetcher_missing_transaction(monkeypatch) -> None:
    async def missing(client, rpc_url, signature):
        return None

    monkeypatch.setattr(fetch.solana_rpc, "get_transaction", missing)
    fetcher = fetch.make_evidence_fetcher("wallet", rpc_url="http://rpc", limiter=fetch.RateLimiter(0), client=object())
    with pytest.raises(fetch.SecondaryFetchFailed, match="not found"):
        asyncio.run(fetcher("sig1"))


def test_rpc_endpoint_appends_key_once() -> None:
    assert solana_rpc.rpc_endpoint("https://rpc.example") == "https://rpc.example"
    assert solana_rpc.rpc_endpoint("https://rpc.example", "k") == "https://rpc.example/?api-key=k"
    assert solana_rpc.rpc_endpoint("https://rpc.example/?x=1", "k") == "https://rpc.example/?x=1&api-key=k"
    assert solana_rpc.rpc_endpoint("https://rpc.example/?api-key=a", "k") == "https://rpc.example/?api-key=a"


def test_logged_urls_hide_api_keys() -> None:
    redacted = utils.redact_api_key("https://rpc.example/?api-key=secret&cluster=main")
    assert "secret" not in redacted
    assert "REDACTED" in redacted
    assert "cluster=main" in redacted
