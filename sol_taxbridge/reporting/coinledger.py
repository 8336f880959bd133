"""CoinLedger universal import rows."""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ..types import UNKNOWN_SYMBOL, NormalizedTransaction

DATE_FORMAT = "%m/%d/%Y %H:%M:%S"

COINLEDGER_COLUMNS = [
    "Date (UTC)",
    "Platform",
    "Asset Sent",
    "Amount Sent",
    "Asset Received",
    "Amount Received",
    "Fee Currency",
    "Fee Amount",
    "Type",
    "Description",
    "TxHash",
]


def format_asset(symbol: Optional[str], amount: Optional[Decimal], address: Optional[str]) -> str:
    if amount is None and not symbol:
        return ""
    if not symbol or symbol == UNKNOWN_SYMBOL:
        return f"{UNKNOWN_SYMBOL} ({address})" if address else UNKNOWN_SYMBOL
    return symbol


def format_amount(amount: Optional[Decimal]) -> str:
    if amount is None:
        return ""
    return format(amount.normalize(), "f")


def to_row(tx: NormalizedTransaction) -> dict[str, str]:
    return {
        "Date (UTC)": tx.timestamp.strftime(DATE_FORMAT),
        "Platform": tx.platform or "",
        "Asset Sent": format_asset(tx.asset_sent, tx.amount_sent, tx.asset_sent_address),
        "Amount Sent": format_amount(tx.amount_sent),
        "Asset Received": format_asset(tx.asset_received, tx.amount_received, tx.asset_received_address),
        "Amount Received": format_amount(tx.amount_received),
        "Fee Currency": tx.fee_asset or "",
        "Fee Amount": format_amount(tx.fee_amount),
        "Type": tx.type.value,
        "Description": tx.description,
        "TxHash": tx.transaction_id,
    }


def exportable(transactions: Iterable[NormalizedTransaction], *, include_spam: bool = False) -> list[NormalizedTransaction]:
    """Transactions to export, oldest first; spam is dropped unless requested."""

    selected = [tx for tx in transactions if include_spam or not tx.is_spam]
    return sorted(selected, key=lambda tx: (tx.timestamp, tx.transaction_id))


def to_rows(transactions: Sequence[NormalizedTransaction]) -> list[dict[str, str]]:
    return [to_row(tx) for tx in transactions]
