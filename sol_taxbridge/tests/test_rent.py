from __future__ import annotations

from decimal import Decimal

from sol_taxbridge.classification.classifier import classify_group
from sol_taxbridge.classification.rent import (
    SPAM_DUST_CONFIDENCE,
    SPAM_DUST_REASON,
    apply_forced_overrides,
    detect_rent_redemption,
    is_spam_dust,
)
from sol_taxbridge.types import WSOL_MINT, ManualOverride, RawTransfer, TransactionType, TransferGroup


def _token(amount: str, direction: str) -> RawTransfer:
    return RawTransfer(
        transaction_id="sig1",
        timestamp=1_700_000_000,
        asset_address="DUST",
        asset_symbol="DUST",
        amount=Decimal(amount),
        direction=direction,
    )


def _sol(amount: str, direction: str) -> RawTransfer:
    return RawTransfer(
        transaction_id="sig1",
        timestamp=1_700_000_000,
        asset_address=WSOL_MINT,
        asset_symbol="SOL",
        amount=Decimal(amount),
        direction=direction,
    )


def test_single_account_close_is_rent_redemption() -> None:
    signals = detect_rent_redemption([_token("1", "out"), _sol("0.00203928", "in")])
    assert signals.is_rent_redemption
    assert signals.has_token_burn and signals.has_sol_income
    assert signals.confidence >= 0.6
    assert signals.confidence == 1.0
    assert signals.rent_amount == Decimal("0.00203928")


def test_multiple_accounts_match_whole_multiple() -> None:
    signals = detect_rent_redemption([_token("1", "out"), _sol(str(Decimal("0.00203928") * 7), "in")])
    assert signals.is_rent_redemption
    assert "typical rent amount" in signals.details


def test_large_sol_income_is_not_typical_rent() -> None:
    signals = detect_rent_redemption([_token("100", "out"), _sol("1.5", "in")])
    # burn + income only reaches the threshold without the typical-amount weight
    assert signals.confidence == 0.6
    assert signals.is_rent_redemption


def test_tiny_sol_income_is_not_rent() -> None:
    signals = detect_rent_redemption([_token("1", "out"), _sol("0.0002", "in")])
    assert signals.confidence == 0.3
    assert not signals.is_rent_redemption


def test_no_burn_is_not_rent() -> None:
    signals = detect_rent_redemption([_sol("0.00203928", "in")])
    assert not signals.is_rent_redemption
    assert signals.confidence == 0.7


def test_rent_override_forces_income_and_not_spam() -> None:
    evidence = [_token("1", "out"), _sol("0.00203928", "in")]
    tx = classify_group(TransferGroup(transaction_id="sig1", transfers=evidence))
    tx.spam_reasons = ["leftover"]
    apply_forced_overrides(tx, evidence)
    assert tx.type is TransactionType.income
    assert tx.is_spam is False
    assert tx.spam_confidence == 0
    assert tx.spam_reasons == []
    assert tx.description == "Rent recovery: reclaimed 0.002039 SOL from closed token account(s)"
    assert isinstance(tx.state, ManualOverride)
    assert tx.state.type is TransactionType.income
    assert tx.state.is_spam is False


def test_single_token_inflow_is_spam_dust() -> None:
    evidence = [_token("1", "in")]
    assert is_spam_dust(evidence)
    tx = classify_group(TransferGroup(transaction_id="sig1", transfers=evidence))
    apply_forced_overrides(tx, evidence)
    assert tx.is_spam is True
    assert tx.spam_confidence == SPAM_DUST_CONFIDENCE
    assert tx.spam_reasons == [SPAM_DUST_REASON]
    assert isinstance(tx.state, ManualOverride)
    assert tx.state.type is None
    assert tx.type is TransactionType.income


def test_native_outflow_does_not_count_as_sending() -> None:
    assert is_spam_dust([_sol("0.000005", "out"), _token("1", "in")])
    assert is_spam_dust([_sol("0.5", "out"), _token("10", "in")])


def test_token_swap_is_not_dust() -> None:
    assert not is_spam_dust([_token("3", "out"), _token("10", "in")])


def test_token_inflow_with_sol_income_is_not_dust() -> None:
    assert not is_spam_dust([_token("10", "in"), _sol("0.1", "in")])


def test_ordinary_transfer_leaves_state_untouched() -> None:
    evidence = [_token("5", "out")]
    tx = classify_group(TransferGroup(transaction_id="sig1", transfers=evidence))
    apply_forced_overrides(tx, evidence)
    assert tx.is_spam is None
    assert tx.state.kind == "unclassified"
