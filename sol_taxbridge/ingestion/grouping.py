"""Group flat transfers into logical transactions and split off the network fee."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Iterable, Optional

from ..types import RawTransfer, TransferGroup

LOGGER = logging.getLogger(__name__)

FEE_THRESHOLD = Decimal("0.01")


class EmptyGroupError(ValueError):
    """Raised when a transfer group carries no transfers."""


class MalformedGroupError(ValueError):
    """Raised when a group mixes transaction ids or timestamps."""


@dataclass
class SeparatedTransfers:
    main_outgoing: list[RawTransfer] = field(default_factory=list)
    main_incoming: list[RawTransfer] = field(default_factory=list)
    fee: Optional[RawTransfer] = None


def group_transfers(transfers: Iterable[RawTransfer]) -> dict[str, TransferGroup]:
    groups: dict[str, TransferGroup] = {}
    for transfer in transfers:
        group = groups.get(transfer.transaction_id)
        if group is None:
            group = TransferGroup(transaction_id=transfer.transaction_id)
            groups[transfer.transaction_id] = group
        group.transfers.append(transfer)
    return groups


def validate_group(group: TransferGroup) -> None:
    if not group.transfers:
        raise EmptyGroupError(f"Cannot parse empty transfer group {group.transaction_id}")
    ids = {t.transaction_id for t in group.transfers}
    if ids != {group.transaction_id}:
        raise MalformedGroupError(
            f"Group {group.transaction_id} contains transfers for {sorted(ids)}"
        )
    timestamps = {t.timestamp for t in group.transfers}
    if len(timestamps) > 1:
        raise MalformedGroupError(
            f"Group {group.transaction_id} has {len(timestamps)} distinct timestamps"
        )


def find_fee_candidate(
    transfers: Iterable[RawTransfer], *, threshold: Decimal = FEE_THRESHOLD
) -> Optional[RawTransfer]:
    candidates = [
        t for t in transfers if t.direction == "out" and t.is_native and t.amount < threshold
    ]
    if not candidates:
        return None
    # protocol fees are singular; any other small native outflow is economic
    return min(candidates, key=lambda t: t.amount)


def separate_fee(group: TransferGroup, *, threshold: Decimal = FEE_THRESHOLD) -> SeparatedTransfers:
    validate_group(group)
    fee = find_fee_candidate(group.transfers, threshold=threshold)
    outgoing = [t for t in group.transfers if t.direction == "out" and t is not fee]
    incoming = [t for t in group.transfers if t.direction == "in"]
    LOGGER.debug(
        "Group %s: %d out, %d in, fee=%s",
        group.transaction_id,
        len(outgoing),
        len(incoming),
        fee.amount if fee is not None else None,
    )
    return SeparatedTransfers(main_outgoing=outgoing, main_incoming=incoming, fee=fee)
