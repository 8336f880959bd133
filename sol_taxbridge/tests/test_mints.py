from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx

from sol_taxbridge.meta import mints
from sol_taxbridge.providers import helius, solana_rpc
from sol_taxbridge.types import WSOL_MINT, RawTransfer


def test_cache_round_trip(tmp_path) -> None:
    path = tmp_path / "mint_meta.json"
    cache = mints.MintMetaCache()
    cache.set("MINT1", symbol="BONK", decimals=5)
    cache.save(path)

    loaded = mints.MintMetaCache.load(path)
    assert "MINT1" in loaded
    assert loaded.get_symbol("MINT1") == "BONK"
    assert loaded.get_decimals("MINT1") == 5
    assert loaded.get_symbol("OTHER") is None


def test_unreadable_cache_starts_empty(tmp_path) -> None:
    path = tmp_path / "mint_meta.json"
    path.write_text("{not json", encoding="utf-8")
    assert mints.MintMetaCache.load(path).entries == {}


def test_resolve_symbols_queries_only_unknown_mints(monkeypatch) -> None:
    cache = mints.MintMetaCache()
    cache.set("CACHED", symbol="CCC", decimals=6)
    queried: list[str] = []

    async def fake_get_asset(mint, *, api_key=None, rpc_url=None, client=None):
        queried.append(mint)
        if mint == "BROKEN":
            raise solana_rpc.RpcError("getAsset", {"code": -32000})
        if mint == "EMPTY":
            return {"symbol": None, "name": None, "decimals": None}
        return {"symbol": "NEW", "name": "New Token", "decimals": 9}

    monkeypatch.setattr(mints.helius, "get_asset", fake_get_asset)
    symbols = asyncio.run(
        mints.resolve_symbols([WSOL_MINT, "CACHED", "FRESH", "BROKEN", "EMPTY", "FRESH"], cache, api_key="k")
    )
    assert symbols == {WSOL_MINT: "SOL", "CACHED": "CCC", "FRESH": "NEW", "BROKEN": None, "EMPTY": None}
    assert queried == ["FRESH", "BROKEN", "EMPTY"]
    assert cache.get_decimals("FRESH") == 9
    assert "EMPTY" not in cache
    assert "BROKEN" not in cache


def test_apply_symbols_keeps_existing() -> None:
    transfers = [
        RawTransfer(transaction_id="t", timestamp=1, direction="in", amount=Decimal("1"), asset_address="MINT1"),
        RawTransfer(
            transaction_id="t",
            timestamp=1,
            direction="out",
            amount=Decimal("1"),
            asset_symbol="SOL",
            asset_address=WSOL_MINT,
        ),
    ]
    resolved = mints.apply_symbols(transfers, {"MINT1": "BONK", WSOL_MINT: "WSOL"})
    assert [t.asset_symbol for t in resolved] == ["BONK", "SOL"]
    assert transfers[0].asset_symbol is None


def test_parse_asset_prefers_metadata() -> None:
    asset = {
        "content": {"metadata": {"symbol": " JUP ", "name": "Jupiter"}},
        "token_info": {"symbol": "X", "decimals": 6},
    }
    assert helius.parse_asset(asset) == {"symbol": "JUP", "name": "Jupiter", "decimals": 6}
    assert helius.parse_asset(None) == {"symbol": None, "name": None, "decimals": None}


def test_get_asset_without_key_skips_network(monkeypatch) -> None:
    monkeypatch.delenv("HELIUS_API_KEY", raising=False)

    async def boom(*args, **kwargs):
        raise httpx.ConnectError("should not be called")

    monkeypatch.setattr(helius.solana_rpc, "call", boom)
    assert asyncio.run(helius.get_asset("MINT")) == {"symbol": None, "name": None, "decimals": None}
