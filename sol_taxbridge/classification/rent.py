"""Rent redemption and spam-dust detection from raw transfer evidence.

Closing a token account returns its rent-exempt deposit (about 0.002 SOL per
account) to the owner. Wallets that burn dust tokens to reclaim that deposit
produce a token outflow together with a small SOL inflow, which the spam
heuristics would otherwise happily flag as an unsolicited transfer. The
detector runs on the unseparated evidence of a group so that it sees every
signal, and its verdict is forced onto the transaction before any
probabilistic scoring happens.
"""
from __future__ import annotations

from decimal import Decimal
import logging
from typing import Iterable, Sequence

from .. import utils
from ..types import (
    ManualOverride,
    NormalizedTransaction,
    RawTransfer,
    RentRedemptionSignals,
    TransactionType,
)

LOGGER = logging.getLogger(__name__)

TYPICAL_RENT_AMOUNTS = (
    Decimal("0.00203928"),
    Decimal("0.00407856"),
    Decimal("0.00611784"),
    Decimal("0.00815712"),
)
BASE_RENT = TYPICAL_RENT_AMOUNTS[0]
RENT_TOLERANCE = Decimal("0.0005")
MIN_RENT_AMOUNT = Decimal("0.001")

BURN_WEIGHT = 0.3
SOL_INCOME_WEIGHT = 0.3
TYPICAL_AMOUNT_WEIGHT = 0.4
RENT_DECISION_CONFIDENCE = 0.6

SPAM_DUST_REASON = "received token without native-asset income"
SPAM_DUST_CONFIDENCE = 0.9


def _closest_typical_rent(amount: Decimal, tolerance: Decimal) -> Decimal | None:
    for typical in TYPICAL_RENT_AMOUNTS:
        if abs(amount - typical) < tolerance:
            return typical
    if amount >= MIN_RENT_AMOUNT:
        multiple = int((amount / BASE_RENT).to_integral_value())
        if multiple > 0 and abs(amount - BASE_RENT * multiple) < tolerance:
            return BASE_RENT * multiple
    return None


def detect_rent_redemption(
    evidence: Sequence[RawTransfer],
    *,
    tolerance: Decimal = RENT_TOLERANCE,
) -> RentRedemptionSignals:
    token_outflows = [t for t in evidence if t.direction == "out" and not t.is_native]
    sol_incomes = [t for t in evidence if t.direction == "in" and t.is_native and t.amount > 0]
    has_token_burn = bool(token_outflows)
    has_sol_income = bool(sol_incomes)
    rent_amount = sum((t.amount for t in sol_incomes), Decimal("0"))
    closest = _closest_typical_rent(rent_amount, tolerance)

    confidence = 0.0
    signals: list[str] = []
    if has_token_burn:
        confidence += BURN_WEIGHT
        plural = "s" if len(token_outflows) > 1 else ""
        signals.append(f"token burn ({len(token_outflows)} outflow{plural})")
    if has_sol_income and rent_amount >= MIN_RENT_AMOUNT:
        confidence += SOL_INCOME_WEIGHT
        signals.append(f"SOL income (+{rent_amount:.6f} SOL)")
    if closest is not None:
        confidence += TYPICAL_AMOUNT_WEIGHT
        signals.append(f"typical rent amount (~{closest:.6f} SOL)")
    confidence = min(round(confidence, 4), 1.0)

    is_rent = has_token_burn and has_sol_income and confidence >= RENT_DECISION_CONFIDENCE
    return RentRedemptionSignals(
        is_rent_redemption=is_rent,
        has_token_burn=has_token_burn,
        has_sol_income=has_sol_income,
        rent_amount=rent_amount,
        confidence=confidence,
        details=", ".join(signals) if signals else "no rent signals detected",
    )


def is_spam_dust(evidence: Iterable[RawTransfer]) -> bool:
    """A token arrived while the wallet sent no token and gained no SOL.

    Native outflows such as the network fee or account creation do not count
    as sending.
    """

    items = list(evidence)
    received_token = any(t.direction == "in" and not t.is_native for t in items)
    sent_token = any(t.direction == "out" and not t.is_native for t in items)
    received_native = any(t.direction == "in" and t.is_native and t.amount > 0 for t in items)
    return received_token and not sent_token and not received_native


def rent_description(amount: Decimal) -> str:
    return f"Rent recovery: reclaimed {amount:.6f} SOL from closed token account(s)"


def apply_forced_overrides(
    tx: NormalizedTransaction,
    evidence: Sequence[RawTransfer],
    *,
    tolerance: Decimal = RENT_TOLERANCE,
) -> RentRedemptionSignals:
    """Force rent-redemption or spam-dust verdicts onto ``tx``.

    Rent redemption is checked first and short-circuits the dust rule.
    """

    signals = detect_rent_redemption(evidence, tolerance=tolerance)
    LOGGER.debug(
        "Rent check %s: burn=%s sol_income=%s amount=%s confidence=%.2f (%s)",
        utils.short_sig(tx.transaction_id),
        signals.has_token_burn,
        signals.has_sol_income,
        signals.rent_amount,
        signals.confidence,
        signals.details,
    )
    if signals.is_rent_redemption:
        description = rent_description(signals.rent_amount)
        tx.type = TransactionType.income
        tx.is_spam = False
        tx.spam_confidence = 0.0
        tx.spam_reasons = []
        tx.description = description
        tx.state = ManualOverride(
            type=TransactionType.income,
            is_spam=False,
            description=description,
            source="rent_redemption",
        )
        LOGGER.info(
            "Rent redemption %s: %s", utils.short_sig(tx.transaction_id), signals.details
        )
        return signals
    if is_spam_dust(evidence):
        tx.is_spam = True
        tx.spam_confidence = SPAM_DUST_CONFIDENCE
        tx.spam_reasons = [SPAM_DUST_REASON]
        tx.state = ManualOverride(
            is_spam=True,
            spam_confidence=SPAM_DUST_CONFIDENCE,
            spam_reasons=[SPAM_DUST_REASON],
            source="spam_dust",
        )
        LOGGER.info("Spam dust %s: %s", utils.short_sig(tx.transaction_id), SPAM_DUST_REASON)
    return signals
