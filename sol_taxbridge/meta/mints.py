"""Persistent cache for mint metadata and symbol resolution."""
from __future__ import annotations

import logging
from pathlib import Path
import time
from typing import Iterable, Optional

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from .. import utils
from ..providers import helius, solana_rpc
from ..types import WSOL_MINT, RawTransfer

LOGGER = logging.getLogger(__name__)

DEFAULT_MINT_META_PATH = utils.ensure_cache_dir("meta") / "mint_meta.json"
WELL_KNOWN = {
    WSOL_MINT: ("SOL", 9),
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": ("USDC", 6),
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": ("USDT", 6),
}


class MintMeta(BaseModel):
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    fetched_at: Optional[int] = None

    @field_validator("symbol", mode="before")
    @classmethod
    def _text_only(cls, value):
        return value if isinstance(value, str) and value else None


class MintMetaCache:
    """Mint address to :class:`MintMeta`, stored as one JSON document."""

    def __init__(self, entries: Optional[dict[str, MintMeta]] = None) -> None:
        self.entries: dict[str, MintMeta] = dict(entries or {})

    @classmethod
    def load(cls, path: Path = DEFAULT_MINT_META_PATH) -> "MintMetaCache":
        if not path.exists():
            return cls()
        try:
            document = utils.json_loads(path.read_text(encoding="utf-8"))
        except ValueError:
            LOGGER.warning("Ignoring unreadable mint metadata cache at %s", path)
            return cls()
        entries: dict[str, MintMeta] = {}
        for mint, raw in (document.items() if isinstance(document, dict) else ()):
            try:
                entries[mint] = MintMeta.model_validate(raw)
            except ValidationError:
                LOGGER.debug("Dropping malformed metadata entry for %s", mint)
        return cls(entries)

    def save(self, path: Path = DEFAULT_MINT_META_PATH) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {mint: meta.model_dump() for mint, meta in self.entries.items()}
        path.write_text(utils.json_dumps(document), encoding="utf-8")

    def __contains__(self, mint: str) -> bool:
        return mint in self.entries

    def get_symbol(self, mint: str) -> Optional[str]:
        meta = self.entries.get(mint)
        return meta.symbol if meta else None

    def get_decimals(self, mint: str) -> Optional[int]:
        meta = self.entries.get(mint)
        return meta.decimals if meta else None

    def set(self, mint: str, *, symbol: Optional[str], decimals: Optional[int]) -> None:
        self.entries[mint] = MintMeta(symbol=symbol, decimals=decimals, fetched_at=int(time.time()))


async def resolve_symbols(
    mints: Iterable[str],
    cache: MintMetaCache,
    *,
    api_key: Optional[str] = None,
    rpc_url: Optional[str] = None,
) -> dict[str, Optional[str]]:
    """Return ``mint -> symbol`` filling ``cache`` from Helius for unseen mints.

    Lookups that fail leave the symbol unresolved (``None``).
    """

    symbols: dict[str, Optional[str]] = {}
    missing: list[str] = []
    for mint in dict.fromkeys(mints):
        if mint in WELL_KNOWN:
            symbols[mint] = WELL_KNOWN[mint][0]
        elif mint in cache:
            symbols[mint] = cache.get_symbol(mint)
        else:
            missing.append(mint)
    if not missing:
        return symbols
    async with solana_rpc.make_client() as client:
        for mint in missing:
            try:
                meta = await helius.get_asset(mint, api_key=api_key, rpc_url=rpc_url, client=client)
            except (httpx.HTTPError, solana_rpc.RpcError) as exc:
                LOGGER.warning("Metadata lookup failed for mint %s: %s", utils.short_sig(mint), exc)
                symbols[mint] = None
                continue
            if meta["symbol"] is not None or meta["decimals"] is not None:
                cache.set(mint, symbol=meta["symbol"], decimals=meta["decimals"])
            symbols[mint] = meta["symbol"]
    return symbols


def apply_symbols(transfers: Iterable[RawTransfer], symbols: dict[str, Optional[str]]) -> list[RawTransfer]:
    """Return copies of ``transfers`` with ``asset_symbol`` filled where known."""

    resolved = []
    for transfer in transfers:
        symbol = transfer.asset_symbol or symbols.get(transfer.asset_address)
        if symbol != transfer.asset_symbol:
            transfer = transfer.model_copy(update={"asset_symbol": symbol})
        resolved.append(transfer)
    return resolved
