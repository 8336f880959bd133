from __future__ import annotations

from decimal import Decimal

import pytest

from sol_taxbridge.ingestion.grouping import (
    EmptyGroupError,
    MalformedGroupError,
    group_transfers,
    separate_fee,
)
from sol_taxbridge.types import WSOL_MINT, RawTransfer, TransferGroup


def _transfer(
    amount: str,
    direction: str,
    *,
    tx: str = "sig1",
    ts: int = 1_700_000_000,
    mint: str = "TOKEN",
    symbol: str | None = "TKN",
) -> RawTransfer:
    return RawTransfer(
        transaction_id=tx,
        timestamp=ts,
        asset_address=mint,
        asset_symbol=symbol,
        amount=Decimal(amount),
        direction=direction,
    )


def _sol(amount: str, direction: str, **kwargs) -> RawTransfer:
    return _transfer(amount, direction, mint=WSOL_MINT, symbol="SOL", **kwargs)


def test_group_transfers_preserves_first_seen_order() -> None:
    transfers = [
        _transfer("1", "in", tx="a"),
        _transfer("2", "out", tx="b"),
        _sol("0.5", "out", tx="a"),
    ]
    groups = group_transfers(transfers)
    assert list(groups) == ["a", "b"]
    assert [t.amount for t in groups["a"].transfers] == [Decimal("1"), Decimal("0.5")]


def test_fee_separated_from_swap() -> None:
    group = TransferGroup(
        transaction_id="sig1",
        transfers=[
            _sol("0.002", "out"),
            _transfer("50", "out", mint="AAA", symbol="AAA"),
            _transfer("1000", "in", mint="BBB", symbol="BBB"),
        ],
    )
    parts = separate_fee(group)
    assert parts.fee is not None
    assert parts.fee.amount == Decimal("0.002")
    assert [t.asset_symbol for t in parts.main_outgoing] == ["AAA"]
    assert [t.asset_symbol for t in parts.main_incoming] == ["BBB"]


def test_smallest_native_outflow_is_the_fee() -> None:
    group = TransferGroup(
        transaction_id="sig1",
        transfers=[_sol("0.005", "out"), _sol("0.000005", "out")],
    )
    parts = separate_fee(group)
    assert parts.fee.amount == Decimal("0.000005")
    assert [t.amount for t in parts.main_outgoing] == [Decimal("0.005")]


def test_large_native_outflow_is_not_a_fee() -> None:
    group = TransferGroup(transaction_id="sig1", transfers=[_sol("0.5", "out")])
    parts = separate_fee(group)
    assert parts.fee is None
    assert len(parts.main_outgoing) == 1


def test_fee_threshold_is_configurable() -> None:
    group = TransferGroup(transaction_id="sig1", transfers=[_sol("0.05", "out")])
    parts = separate_fee(group, threshold=Decimal("0.1"))
    assert parts.fee is not None
    assert parts.main_outgoing == []


def test_token_outflow_never_treated_as_fee() -> None:
    group = TransferGroup(transaction_id="sig1", transfers=[_transfer("0.001", "out")])
    assert separate_fee(group).fee is None


def test_empty_group_raises() -> None:
    with pytest.raises(EmptyGroupError):
        separate_fee(TransferGroup(transaction_id="sig1", transfers=[]))


def test_mixed_timestamps_raise() -> None:
    group = TransferGroup(
        transaction_id="sig1",
        transfers=[_transfer("1", "in", ts=1), _transfer("1", "out", ts=2)],
    )
    with pytest.raises(MalformedGroupError):
        separate_fee(group)


def test_mixed_transaction_ids_raise() -> None:
    group = TransferGroup(transaction_id="sig1", transfers=[_transfer("1", "in", tx="other")])
    with pytest.raises(MalformedGroupError):
        separate_fee(group)
