"""Typer CLI for the sol_taxbridge application."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.logging import RichHandler

from . import get_version, utils
from .classification.model import GeminiModel
from .config import AppSettings, load_settings
from .ingestion import fetch as fetch_mod
from .ingestion.extract import extract_many
from .ingestion.grouping import group_transfers
from .meta.mints import MintMetaCache, apply_symbols, resolve_symbols
from .pipeline import process_async
from .pricing import PriceResolver, build_price_map
from .providers import solana_rpc
from .reporting import coinledger, formats, summaries
from .reporting import console as console_report
from .types import WSOL_MINT, NormalizedTransaction, WarningRecord

app = typer.Typer(help="Solana wallet activity to CoinLedger tax reports")
LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(get_version())
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    _configure_logging(verbose)


def _settings(wallet: List[str], config: Optional[Path], **extra) -> AppSettings:
    overrides = {"wallets": wallet} if wallet else {}
    overrides.update({key: value for key, value in extra.items() if value is not None})
    settings = load_settings(config, overrides)
    if not settings.wallets:
        raise typer.BadParameter("No wallets provided")
    return settings


def _rpc_url(settings: AppSettings) -> str:
    return solana_rpc.rpc_endpoint(settings.rpc_url, settings.api_keys.helius)


@app.command()
def fetch(
    wallet: List[str] = typer.Option([], "--wallet", "-w", help="Wallet address", show_default=False),
    config: Optional[Path] = typer.Option(None, "--config", help="Config YAML"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Signatures to fetch per wallet"),
) -> None:
    """Fetch parsed transactions for the supplied wallets into the raw cache."""

    settings = _settings(wallet, config, fetch_limit=limit)
    limiter = fetch_mod.RateLimiter(settings.rate_limit_seconds)
    results = asyncio.run(
        fetch_mod.fetch_many(settings.wallets, rpc_url=_rpc_url(settings), limiter=limiter, limit=settings.fetch_limit)
    )
    for addr, txs in results.items():
        typer.echo(f"{addr}: fetched {len(txs)} new transaction(s)")


async def _process_wallet(
    addr: str,
    settings: AppSettings,
    *,
    mint_cache: MintMetaCache,
    resolver: PriceResolver,
    refetch_evidence: bool,
    warnings: list[WarningRecord],
) -> tuple[list[NormalizedTransaction], dict]:
    raw_items = fetch_mod.load_cached(addr)
    if not raw_items:
        LOGGER.warning("No cached transactions for %s; run `fetch` first", utils.short_sig(addr))
        return [], {}
    transfers = extract_many(addr, raw_items)
    mints = [t.asset_address for t in transfers if t.asset_address and t.asset_address != WSOL_MINT]
    symbols = await resolve_symbols(mints, mint_cache, api_key=settings.api_keys.helius, rpc_url=settings.rpc_url)
    transfers = apply_symbols(transfers, symbols)
    groups = group_transfers(transfers)

    requests = [(t.asset_symbol, t.asset_address, t.timestamp) for t in transfers if t.asset_symbol]
    price_map = await build_price_map(resolver, requests, concurrency=settings.price_concurrency)

    model = None
    if settings.use_model and settings.api_keys.gemini:
        model = GeminiModel(api_key=settings.api_keys.gemini, model=settings.model_name, timeout=settings.model_timeout)
    elif settings.use_model:
        LOGGER.warning("No Gemini API key configured; using heuristic classification only")

    if not refetch_evidence:
        txs = await process_async(groups.values(), price_map, model=model, settings=settings, warnings=warnings)
        return txs, price_map
    limiter = fetch_mod.RateLimiter(settings.rate_limit_seconds)
    async with solana_rpc.make_client() as client:
        fetcher = fetch_mod.make_evidence_fetcher(addr, rpc_url=_rpc_url(settings), limiter=limiter, client=client)
        txs = await process_async(
            groups.values(), price_map, model=model, evidence_fetcher=fetcher, settings=settings, warnings=warnings
        )
    return txs, price_map


@app.command()
def report(
    wallet: List[str] = typer.Option([], "--wallet", "-w", help="Wallet address", show_default=False),
    config: Optional[Path] = typer.Option(None, "--config", help="Config YAML"),
    outdir: Optional[Path] = typer.Option(None, "--outdir", help="Output directory"),
    fmt: str = typer.Option("csv", "--format", help="Report format: csv, xlsx or both", show_default=True),
    include_spam: bool = typer.Option(False, "--include-spam", help="Export transactions flagged as spam"),
    no_model: bool = typer.Option(False, "--no-model", help="Skip the external classification model"),
    refetch_evidence: bool = typer.Option(
        False, "--refetch-evidence", help="Re-read each transaction from RPC for rent/dust detection"
    ),
) -> None:
    """Classify cached transactions and write CoinLedger reports."""

    if fmt not in formats.FORMATS:
        raise typer.BadParameter(f"--format must be one of {', '.join(formats.FORMATS)}")
    settings = _settings(
        wallet,
        config,
        include_spam=True if include_spam else None,
        use_model=False if no_model else None,
    )
    resolver = PriceResolver(
        jupiter_api_key=settings.api_keys.jupiter, birdeye_api_key=settings.api_keys.birdeye
    )
    mint_cache = MintMetaCache.load()
    warnings: list[WarningRecord] = []
    transactions: list[NormalizedTransaction] = []
    price_map: dict = {}
    for addr in settings.wallets:
        txs, prices = asyncio.run(
            _process_wallet(
                addr,
                settings,
                mint_cache=mint_cache,
                resolver=resolver,
                refetch_evidence=refetch_evidence,
                warnings=warnings,
            )
        )
        transactions.extend(txs)
        price_map.update(prices)
    mint_cache.save()

    exported = coinledger.exportable(transactions, include_spam=settings.include_spam)
    summary = summaries.summarize(transactions, price_map, include_spam=settings.include_spam)
    wallets = settings.wallets
    output_dir = outdir or Path("./reports") / ("combined" if len(wallets) > 1 else wallets[0])
    written = formats.export_reports(
        output_dir, exported, summary=summary, all_transactions=transactions, warnings=warnings, fmt=fmt
    )
    console_report.render_summary(summary, exported)
    for path in written:
        typer.echo(f"Wrote {path}")


if __name__ == "__main__":  # pragma: no cover
    app()
