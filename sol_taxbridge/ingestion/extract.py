"""Turn ``getTransaction`` (jsonParsed) payloads into wallet-relative transfers."""
from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Iterable, Optional

from .. import utils
from ..types import WSOL_MINT, RawTransfer

LOGGER = logging.getLogger(__name__)

NATIVE_DUST = Decimal("0.000001")


def transaction_signature(parsed_tx: dict[str, Any]) -> Optional[str]:
    transaction = parsed_tx.get("transaction") or {}
    signatures = transaction.get("signatures") if isinstance(transaction, dict) else None
    if isinstance(signatures, list) and signatures:
        return str(signatures[0])
    signature = parsed_tx.get("signature")
    return str(signature) if signature else None


def _account_keys(parsed_tx: dict[str, Any]) -> list[str]:
    message = (parsed_tx.get("transaction") or {}).get("message") or {}
    keys = []
    for key in message.get("accountKeys") or []:
        if isinstance(key, dict):
            keys.append(str(key.get("pubkey", "")))
        else:
            keys.append(str(key))
    return keys


def _ui_amount(balance: Optional[dict[str, Any]]) -> Decimal:
    if not balance:
        return Decimal("0")
    ui = balance.get("uiTokenAmount") or {}
    raw = ui.get("uiAmountString")
    if raw is None:
        raw = ui.get("uiAmount")
    if raw is None:
        return Decimal("0")
    return utils.to_decimal(raw)


def _token_decimals(*balances: Optional[dict[str, Any]]) -> int:
    for balance in balances:
        if balance and isinstance(balance.get("uiTokenAmount"), dict):
            decimals = balance["uiTokenAmount"].get("decimals")
            if isinstance(decimals, int):
                return decimals
    return 9


def _index_balances(entries: Iterable[dict[str, Any]]) -> dict[int, dict[str, Any]]:
    return {int(entry["accountIndex"]): entry for entry in entries if "accountIndex" in entry}


def _token_transfers(wallet: str, signature: str, ts: int, meta: dict[str, Any]) -> list[RawTransfer]:
    pre = _index_balances(meta.get("preTokenBalances") or [])
    post = _index_balances(meta.get("postTokenBalances") or [])
    transfers: list[RawTransfer] = []
    # accounts opened or closed inside the transaction only appear on one side
    for index in sorted(set(pre) | set(post)):
        before = pre.get(index)
        after = post.get(index)
        reference = after or before or {}
        if reference.get("owner") != wallet:
            continue
        change = _ui_amount(after) - _ui_amount(before)
        if change == 0:
            continue
        transfers.append(
            RawTransfer(
                transaction_id=signature,
                timestamp=ts,
                asset_address=str(reference.get("mint", "")),
                asset_decimals=_token_decimals(after, before),
                amount=abs(change),
                direction="out" if change < 0 else "in",
            )
        )
    return transfers


def _native_transfers(wallet: str, signature: str, ts: int, parsed_tx: dict[str, Any]) -> list[RawTransfer]:
    meta = parsed_tx["meta"]
    keys = _account_keys(parsed_tx)
    if wallet not in keys:
        return []
    index = keys.index(wallet)
    pre_balances = meta.get("preBalances") or []
    post_balances = meta.get("postBalances") or []
    if index >= len(pre_balances) or index >= len(post_balances):
        return []
    change = utils.lamports_to_sol(int(post_balances[index]) - int(pre_balances[index]))
    transfers: list[RawTransfer] = []
    if index == 0:
        # the fee payer's delta includes the network fee; report it as its own leg
        fee = utils.lamports_to_sol(int(meta.get("fee") or 0))
        change += fee
        if fee > 0:
            transfers.append(_native(signature, ts, fee, "out"))
    if abs(change) > NATIVE_DUST:
        transfers.append(_native(signature, ts, abs(change), "out" if change < 0 else "in"))
    return transfers


def _native(signature: str, ts: int, amount: Decimal, direction: str) -> RawTransfer:
    return RawTransfer(
        transaction_id=signature,
        timestamp=ts,
        asset_address=WSOL_MINT,
        asset_symbol="SOL",
        asset_decimals=9,
        amount=amount,
        direction=direction,
    )


def extract_transfers(wallet: str, parsed_tx: Optional[dict[str, Any]]) -> list[RawTransfer]:
    """Return the wallet's balance changes in ``parsed_tx``.

    Failed transactions and payloads without ``meta`` yield an empty list.
    """

    if not parsed_tx or not isinstance(parsed_tx.get("meta"), dict):
        return []
    signature = transaction_signature(parsed_tx)
    if signature is None:
        LOGGER.warning("Skipping transaction payload without a signature")
        return []
    meta = parsed_tx["meta"]
    if meta.get("err"):
        LOGGER.info("Skipping failed transaction %s: %s", utils.short_sig(signature), meta["err"])
        return []
    ts = int(parsed_tx.get("blockTime") or 0)
    transfers = _token_transfers(wallet, signature, ts, meta)
    transfers.extend(_native_transfers(wallet, signature, ts, parsed_tx))
    LOGGER.debug("Extracted %d transfers from %s", len(transfers), utils.short_sig(signature))
    return transfers


def extract_many(wallet: str, parsed_txs: Iterable[dict[str, Any]]) -> list[RawTransfer]:
    transfers: list[RawTransfer] = []
    for parsed_tx in parsed_txs:
        transfers.extend(extract_transfers(wallet, parsed_tx))
    return transfers
