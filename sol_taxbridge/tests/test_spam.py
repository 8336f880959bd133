from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from sol_taxbridge.classification.classifier import classify_group
from sol_taxbridge.classification.spam import score_spam
from sol_taxbridge.types import NormalizedTransaction, RawTransfer, TransactionType, TransferGroup


def _tx(**fields) -> NormalizedTransaction:
    base = dict(
        id="sig1",
        transaction_id="sig1",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        type=TransactionType.trade,
        description="Transaction",
    )
    base.update(fields)
    return NormalizedTransaction(**base)


def test_zero_amount_leg_is_always_spam() -> None:
    verdict = score_spam(_tx(asset_sent="SOL", amount_sent=Decimal("1"), asset_received="BONK", amount_received=Decimal("0")))
    assert verdict.is_spam
    assert verdict.confidence == 1.0
    assert "Zero amount transfer (dust attack)" in verdict.reasons


def test_legit_swap_is_clean() -> None:
    verdict = score_spam(
        _tx(asset_sent="SOL", amount_sent=Decimal("1"), asset_received="USDC", amount_received=Decimal("100")),
        Decimal("1"),
    )
    assert not verdict.is_spam
    assert verdict.reasons == []
    assert verdict.confidence == 0


def test_suspicious_unsolicited_airdrop() -> None:
    verdict = score_spam(_tx(asset_received="claim-rewards.com", amount_received=Decimal("1000")))
    # keyword 0.4 + unsolicited 0.2
    assert verdict.confidence == pytest.approx(0.6)
    assert verdict.is_spam


def test_unknown_name_alone_is_below_threshold() -> None:
    verdict = score_spam(_tx(asset_sent="UNKNOWN", amount_sent=Decimal("5")))
    assert verdict.confidence == pytest.approx(0.4)
    assert not verdict.is_spam


def test_unknown_received_token_is_spam() -> None:
    verdict = score_spam(_tx(asset_received="UNKNOWN", amount_received=Decimal("3")), Decimal("0.5"))
    # 0.4 unknown + 0.2 unsolicited
    assert verdict.is_spam


def test_micro_value_factor() -> None:
    tx = _tx(asset_sent="SOL", amount_sent=Decimal("1"), asset_received="MEME", amount_received=Decimal("10"))
    assert score_spam(tx, Decimal("0.00001")).confidence == pytest.approx(0.3)
    assert score_spam(tx).confidence == 0


def test_long_and_all_caps_names() -> None:
    name = "A" * 31
    verdict = score_spam(_tx(asset_sent=name, amount_sent=Decimal("1")))
    assert verdict.confidence == pytest.approx(0.4)
    assert "Token name unusually long" in verdict.reasons
    assert "Token name all caps" in verdict.reasons


def test_threshold_is_configurable() -> None:
    tx = _tx(asset_sent="UNKNOWN", amount_sent=Decimal("5"))
    assert score_spam(tx, threshold=0.4).is_spam


def test_scoring_does_not_mutate_transaction() -> None:
    tx = _tx(asset_received="FREE", amount_received=Decimal("0"))
    score_spam(tx)
    assert tx.is_spam is None
    assert tx.spam_reasons == []


def test_unresolved_dust_token_scores_as_spam() -> None:
    group = TransferGroup(
        transaction_id="dust1",
        transfers=[
            RawTransfer(
                transaction_id="dust1",
                timestamp=1_700_000_000,
                asset_address="DUSTMINT",
                amount=Decimal("5"),
                direction="in",
            )
        ],
    )
    verdict = score_spam(classify_group(group))
    # 0.4 unknown + 0.2 unsolicited
    assert verdict.confidence == pytest.approx(0.6)
    assert verdict.is_spam
