"""Cost basis, proceeds, gain/loss and loss classification.

Cost basis uses the transaction's own contemporaneous USD price for the sent
asset rather than historical acquisition lots, which makes it an estimate.
"""
from __future__ import annotations

from decimal import Decimal
import logging
from typing import Mapping, Optional

from ..types import LossInfo, NormalizedTransaction, TransactionType

LOGGER = logging.getLogger(__name__)

LOSS_TOLERANCE = Decimal("0.95")
THEFT_CONFIDENCE = 0.8
_LOSS_TYPES = (TransactionType.trade, TransactionType.withdrawal)
ZERO = Decimal("0")


def price_for(price_map: Mapping[str, Decimal], symbol: Optional[str]) -> Optional[Decimal]:
    if not symbol:
        return None
    return price_map.get(symbol)


def calculate_cost_basis(tx: NormalizedTransaction, price: Optional[Decimal]) -> Decimal:
    if tx.amount_sent and price:
        return tx.amount_sent * price
    return ZERO


def calculate_proceeds(tx: NormalizedTransaction, price: Optional[Decimal]) -> Decimal:
    if tx.amount_received and price:
        return tx.amount_received * price
    return ZERO


def calculate_gain_loss(cost_basis: Decimal, proceeds: Decimal) -> Decimal:
    return proceeds - cost_basis


def detect_loss(
    tx: NormalizedTransaction,
    *,
    sent_price: Optional[Decimal] = None,
    tolerance: Decimal = LOSS_TOLERANCE,
    theft_confidence: float = THEFT_CONFIDENCE,
) -> LossInfo:
    """Classify ``tx`` as an investment loss, a theft loss or neither.

    ``sent_price`` is the USD price of the sent asset; it defaults to
    ``tx.unit_price_usd`` when the caller has nothing more specific.
    """

    cost = tx.cost_basis_usd or ZERO
    proceeds = tx.proceeds_usd or ZERO
    if tx.type in _LOSS_TYPES and cost > 0 and proceeds > 0:
        if proceeds < cost * tolerance:
            return LossInfo(
                is_loss=True,
                loss_type=TransactionType.investment_loss,
                reason=f"Sold at loss: Proceeds ${proceeds:.2f} vs Cost ${cost:.2f}",
                estimated_loss_usd=cost - proceeds,
            )

    if tx.is_spam and tx.spam_confidence > theft_confidence and tx.type in _LOSS_TYPES:
        price = sent_price if sent_price is not None else tx.unit_price_usd
        value = tx.amount_sent * price if tx.amount_sent and price else ZERO
        return LossInfo(
            is_loss=True,
            loss_type=TransactionType.theft_loss,
            reason=f"Spam/scam detected: {', '.join(tx.spam_reasons[:2])}",
            estimated_loss_usd=value,
        )

    # casualty losses need a manual flag or exploit data; never inferred here
    return LossInfo(is_loss=False, reason="Normal transaction")


def apply_valuation(
    tx: NormalizedTransaction,
    price_map: Mapping[str, Decimal],
    *,
    tolerance: Decimal = LOSS_TOLERANCE,
) -> NormalizedTransaction:
    """Attach valuation fields to an already classified ``tx``.

    Classification fields are left untouched. Missing prices are not an
    error: the affected amounts default to zero and ``unit_price_usd`` stays
    unset.
    """

    sent_price = price_for(price_map, tx.asset_sent)
    received_price = price_for(price_map, tx.asset_received)
    unit_price = received_price if tx.asset_received else sent_price
    if unit_price is None and tx.primary_asset:
        LOGGER.debug("No USD price for %s in %s", tx.primary_asset, tx.transaction_id)

    cost = calculate_cost_basis(tx, sent_price)
    proceeds = calculate_proceeds(tx, received_price)
    tx.unit_price_usd = unit_price
    tx.cost_basis_usd = cost
    tx.proceeds_usd = proceeds
    tx.gain_loss_usd = calculate_gain_loss(cost, proceeds)
    tx.loss_info = detect_loss(tx, sent_price=sent_price, tolerance=tolerance)
    return tx
