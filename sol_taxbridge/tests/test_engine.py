from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sol_taxbridge.accounting.engine import apply_valuation, detect_loss
from sol_taxbridge.types import ManualOverride, NormalizedTransaction, TransactionType


def _tx(tx_type: TransactionType = TransactionType.trade, **fields) -> NormalizedTransaction:
    base = dict(
        id="sig1",
        transaction_id="sig1",
        timestamp=datetime(2024, 3, 1, tzinfo=timezone.utc),
        type=tx_type,
        description="Transaction",
    )
    base.update(fields)
    return NormalizedTransaction(**base)


def test_trade_sold_below_tolerance_is_investment_loss() -> None:
    tx = _tx(cost_basis_usd=Decimal("100"), proceeds_usd=Decimal("90"))
    info = detect_loss(tx)
    assert info.is_loss
    assert info.loss_type is TransactionType.investment_loss
    assert info.estimated_loss_usd == Decimal("10")
    assert info.reason == "Sold at loss: Proceeds $90.00 vs Cost $100.00"


def test_small_drawdown_is_not_a_loss() -> None:
    tx = _tx(cost_basis_usd=Decimal("100"), proceeds_usd=Decimal("96"))
    info = detect_loss(tx)
    assert not info.is_loss
    assert info.reason == "Normal transaction"


def test_income_is_never_investment_loss() -> None:
    tx = _tx(TransactionType.income, cost_basis_usd=Decimal("100"), proceeds_usd=Decimal("1"))
    assert not detect_loss(tx).is_loss


def test_high_confidence_spam_withdrawal_is_theft() -> None:
    tx = _tx(
        TransactionType.withdrawal,
        asset_sent="USDC",
        amount_sent=Decimal("50"),
        is_spam=True,
        spam_confidence=0.9,
        spam_reasons=["drainer", "phishing link", "third reason"],
    )
    info = detect_loss(tx, sent_price=Decimal("1"))
    assert info.loss_type is TransactionType.theft_loss
    assert info.estimated_loss_usd == Decimal("50")
    assert info.reason == "Spam/scam detected: drainer, phishing link"


def test_spam_at_theft_boundary_is_not_theft() -> None:
    tx = _tx(TransactionType.withdrawal, amount_sent=Decimal("1"), is_spam=True, spam_confidence=0.8)
    assert not detect_loss(tx).is_loss


def test_apply_valuation_prices_both_legs() -> None:
    tx = _tx(
        asset_sent="SOL",
        amount_sent=Decimal("2"),
        asset_received="BONK",
        amount_received=Decimal("1000"),
    )
    apply_valuation(tx, {"SOL": Decimal("50"), "BONK": Decimal("0.09")})
    assert tx.cost_basis_usd == Decimal("100")
    assert tx.proceeds_usd == Decimal("90.00")
    assert tx.gain_loss_usd == Decimal("-10.00")
    assert tx.unit_price_usd == Decimal("0.09")
    assert tx.loss_info.loss_type is TransactionType.investment_loss


def test_missing_prices_default_to_zero() -> None:
    tx = _tx(TransactionType.income, asset_received="MYST", amount_received=Decimal("5"))
    apply_valuation(tx, {})
    assert tx.unit_price_usd is None
    assert tx.proceeds_usd == 0
    assert tx.cost_basis_usd == 0
    assert tx.gain_loss_usd == 0
    assert not tx.loss_info.is_loss


def test_valuation_leaves_classification_alone() -> None:
    state = ManualOverride(type=TransactionType.income, is_spam=False, source="rent_redemption")
    tx = _tx(
        TransactionType.income,
        asset_received="SOL",
        amount_received=Decimal("0.002"),
        is_spam=False,
        description="Rent recovery",
        state=state,
    )
    apply_valuation(tx, {"SOL": Decimal("100")})
    assert tx.type is TransactionType.income
    assert tx.is_spam is False
    assert tx.description == "Rent recovery"
    assert tx.state == state
    assert tx.unit_price_usd == Decimal("100")
