"""Provisional transaction type from the shape of a transfer group."""
from __future__ import annotations

from decimal import Decimal
import logging
from typing import Optional

from .. import utils
from ..ingestion.grouping import FEE_THRESHOLD, SeparatedTransfers, separate_fee
from ..types import NormalizedTransaction, RawTransfer, TransactionType, TransferGroup

LOGGER = logging.getLogger(__name__)

PROVISIONAL_CONFIDENCE = 0.5


def classify_shape(outgoing: int, incoming: int) -> TransactionType:
    if outgoing > 0 and incoming > 0:
        return TransactionType.trade
    if incoming > 0:
        # refined later to Deposit / Airdrop / Staking by the model
        return TransactionType.income
    if outgoing > 0:
        return TransactionType.withdrawal
    return TransactionType.trade


def _format_amount(amount: Decimal) -> str:
    return format(amount.normalize(), "f")


def describe(sent: Optional[RawTransfer], received: Optional[RawTransfer]) -> str:
    if sent is not None and received is not None:
        return (
            f"Swapped {_format_amount(sent.amount)} {sent.display_symbol} "
            f"for {_format_amount(received.amount)} {received.display_symbol}"
        )
    if received is not None:
        return f"Received {_format_amount(received.amount)} {received.display_symbol}"
    if sent is not None:
        return f"Sent {_format_amount(sent.amount)} {sent.display_symbol}"
    return "Transaction"


def build_transaction(group: TransferGroup, parts: SeparatedTransfers) -> NormalizedTransaction:
    outgoing, incoming = parts.main_outgoing, parts.main_incoming
    tx_type = classify_shape(len(outgoing), len(incoming))
    if not outgoing and not incoming:
        LOGGER.warning(
            "Degenerate group %s: no economic transfers after fee separation",
            utils.short_sig(group.transaction_id),
        )
    # multi-leg swaps collapse to the first leg on each side
    sent = outgoing[0] if outgoing else None
    received = incoming[0] if incoming else None
    fee = parts.fee
    return NormalizedTransaction(
        id=group.transaction_id,
        transaction_id=group.transaction_id,
        timestamp=utils.from_unix(group.timestamp),
        asset_sent=sent.display_symbol if sent else None,
        asset_sent_address=sent.asset_address if sent else None,
        amount_sent=sent.amount if sent else None,
        asset_received=received.display_symbol if received else None,
        asset_received_address=received.asset_address if received else None,
        amount_received=received.amount if received else None,
        fee_asset="SOL" if fee else None,
        fee_amount=fee.amount if fee else None,
        type=tx_type,
        description=describe(sent, received),
        classification_confidence=PROVISIONAL_CONFIDENCE,
    )


def classify_group(group: TransferGroup, *, fee_threshold: Decimal = FEE_THRESHOLD) -> NormalizedTransaction:
    """Separate the fee and build the provisional record for ``group``."""

    parts = separate_fee(group, threshold=fee_threshold)
    return build_transaction(group, parts)
