"""Additive spam heuristics for a single transaction."""
from __future__ import annotations

from decimal import Decimal
import re
from typing import Optional

from ..types import NormalizedTransaction, SpamVerdict, UNKNOWN_SYMBOL

SPAM_THRESHOLD = 0.5
MICRO_VALUE_USD = Decimal("0.0001")
LONG_NAME_LENGTH = 30
SHORT_NAME_LENGTH = 10

SUSPICIOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"claim",
        r"airdrop",
        r"free",
        r"bonus",
        r"reward",
        r"visit",
        r"\.com$",
        r"winner",
        r"prize",
        r"gift",
        r"www\.",
        r"http",
    )
)

WEIGHTS = {
    "zero_amount": 1.0,
    "unknown_token": 0.4,
    "suspicious_name": 0.4,
    "micro_value": 0.3,
    "unsolicited": 0.2,
    "long_name": 0.3,
    "all_caps": 0.1,
}


def _token_name(tx: NormalizedTransaction) -> str:
    return tx.asset_received or tx.asset_sent or ""


def score_spam(
    tx: NormalizedTransaction,
    unit_price_usd: Optional[Decimal] = None,
    *,
    threshold: float = SPAM_THRESHOLD,
) -> SpamVerdict:
    """Score ``tx`` without touching it.

    Every triggered factor adds its weight and a reason; the verdict is spam
    once the total reaches ``threshold``.
    """

    reasons: list[str] = []
    score = 0.0
    name = _token_name(tx)

    if (tx.amount_received is not None and tx.amount_received == 0) or (
        tx.amount_sent is not None and tx.amount_sent == 0
    ):
        score += WEIGHTS["zero_amount"]
        reasons.append("Zero amount transfer (dust attack)")

    if name in ("", UNKNOWN_SYMBOL):
        score += WEIGHTS["unknown_token"]
        reasons.append("Unknown or invalid token")

    if any(pattern.search(name) for pattern in SUSPICIOUS_PATTERNS):
        score += WEIGHTS["suspicious_name"]
        reasons.append("Suspicious token name pattern detected")

    if unit_price_usd is not None and unit_price_usd < MICRO_VALUE_USD:
        score += WEIGHTS["micro_value"]
        reasons.append(f"Token value < ${MICRO_VALUE_USD}")

    if tx.asset_received and (not tx.asset_sent or tx.amount_sent == 0):
        score += WEIGHTS["unsolicited"]
        reasons.append("Received without sending assets (potential spam airdrop)")

    if len(name) > LONG_NAME_LENGTH:
        score += WEIGHTS["long_name"]
        reasons.append("Token name unusually long")

    if name == name.upper() and len(name) > SHORT_NAME_LENGTH:
        score += WEIGHTS["all_caps"]
        reasons.append("Token name all caps")

    score = round(score, 4)
    return SpamVerdict(
        is_spam=score >= threshold,
        confidence=min(score, 1.0),
        reasons=reasons,
    )
