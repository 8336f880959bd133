"""Token metadata through the Helius DAS ``getAsset`` method."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import httpx

from .. import utils
from . import solana_rpc

DEFAULT_RPC_URL = "https://mainnet.helius-rpc.com"


def _cache_path(key: str) -> Path:
    return utils.ensure_cache_dir("providers", "helius") / f"{key}.json"


def parse_asset(asset: Any) -> dict[str, Any]:
    """Pull symbol, name and decimals out of a DAS asset payload."""

    if not isinstance(asset, dict):
        return {"symbol": None, "name": None, "decimals": None}
    content = asset.get("content") or {}
    metadata = content.get("metadata") or {} if isinstance(content, dict) else {}
    token_info = asset.get("token_info") or {}
    symbol = metadata.get("symbol") or token_info.get("symbol")
    name = metadata.get("name") or token_info.get("name")
    decimals = token_info.get("decimals")
    return {
        "symbol": symbol.strip() if isinstance(symbol, str) and symbol.strip() else None,
        "name": name if isinstance(name, str) else None,
        "decimals": int(decimals) if isinstance(decimals, int) else None,
    }


async def get_asset(
    mint: str,
    *,
    api_key: Optional[str] = None,
    rpc_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """Return ``{"symbol", "name", "decimals"}`` for ``mint``; raw payloads are cached."""

    api_key = api_key or os.getenv("HELIUS_API_KEY")
    if not api_key:
        return parse_asset(None)
    path = _cache_path(utils.sha1_digest(f"getAsset|{mint}"))
    if path.exists():
        return parse_asset(utils.json_loads(path.read_text(encoding="utf-8")))
    endpoint = solana_rpc.rpc_endpoint(rpc_url or os.getenv("HELIUS_RPC_URL", DEFAULT_RPC_URL), api_key)
    if client is None:
        async with solana_rpc.make_client() as own_client:
            asset = await solana_rpc.call(own_client, endpoint, "getAsset", {"id": mint})
    else:
        asset = await solana_rpc.call(client, endpoint, "getAsset", {"id": mint})
    path.write_text(utils.json_dumps(asset), encoding="utf-8")
    return parse_asset(asset)
