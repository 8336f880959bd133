"""Summary helpers for reporting."""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, Field

from ..types import NormalizedTransaction, TransactionType


class ProcessingSummary(BaseModel):
    total: int = 0
    exported: int = 0
    spam_filtered: int = 0
    rent_redemptions: int = 0
    model_classified: int = 0
    missing_prices: list[str] = Field(default_factory=list)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    losses_by_type: dict[str, Decimal] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)

    def as_overview(self) -> dict[str, str]:
        overview = {
            "Total transactions": str(self.total),
            "Exported": str(self.exported),
            "Spam filtered": str(self.spam_filtered),
            "Rent redemptions": str(self.rent_redemptions),
            "Model classified": str(self.model_classified),
            "Missing prices": ", ".join(self.missing_prices) or "none",
            "Date range": (
                f"{self.start:%Y-%m-%d} to {self.end:%Y-%m-%d}" if self.start and self.end else "n/a"
            ),
        }
        for loss_type, amount in self.losses_by_type.items():
            overview[f"{loss_type} (USD)"] = f"{amount:.2f}"
        return overview


def summarize(
    transactions: Sequence[NormalizedTransaction],
    price_map: Mapping[str, Decimal],
    *,
    include_spam: bool = False,
) -> ProcessingSummary:
    spam = [tx for tx in transactions if tx.is_spam]
    missing = sorted(
        {
            symbol
            for tx in transactions
            if not tx.is_spam
            for symbol in (tx.asset_sent, tx.asset_received)
            if symbol and symbol not in price_map
        }
    )
    losses: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    by_type: dict[str, int] = defaultdict(int)
    for tx in transactions:
        by_type[tx.type.value] += 1
        if tx.loss_info is not None and tx.loss_info.is_loss and tx.loss_info.loss_type is not None:
            losses[tx.loss_info.loss_type.value] += tx.loss_info.estimated_loss_usd
    timestamps = [tx.timestamp for tx in transactions]
    return ProcessingSummary(
        total=len(transactions),
        exported=len(transactions) if include_spam else len(transactions) - len(spam),
        spam_filtered=0 if include_spam else len(spam),
        rent_redemptions=sum(1 for tx in transactions if getattr(tx.state, "source", None) == "rent_redemption"),
        model_classified=sum(1 for tx in transactions if tx.state.kind == "model"),
        missing_prices=missing,
        start=min(timestamps) if timestamps else None,
        end=max(timestamps) if timestamps else None,
        losses_by_type=dict(losses),
        by_type=dict(by_type),
    )


def losses_frame(transactions: Iterable[NormalizedTransaction]) -> pd.DataFrame:
    rows = []
    for tx in transactions:
        info = tx.loss_info
        if info is None or not info.is_loss:
            continue
        rows.append(
            {
                "TxHash": tx.transaction_id,
                "Date (UTC)": tx.timestamp.isoformat(),
                "Loss Type": info.loss_type.value if info.loss_type else "",
                "Estimated Loss (USD)": float(info.estimated_loss_usd),
                "Reason": info.reason,
            }
        )
    return pd.DataFrame(rows, columns=["TxHash", "Date (UTC)", "Loss Type", "Estimated Loss (USD)", "Reason"])


def type_counts_frame(summary: ProcessingSummary) -> pd.DataFrame:
    ordered = [member.value for member in TransactionType if member.value in summary.by_type]
    return pd.DataFrame({"Type": ordered, "Count": [summary.by_type[name] for name in ordered]})
