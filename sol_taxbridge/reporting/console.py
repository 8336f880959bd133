"""Console rendering helpers using rich."""
from __future__ import annotations

from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from ..types import NormalizedTransaction
from .summaries import ProcessingSummary


def render_summary(
    summary: ProcessingSummary,
    transactions: Sequence[NormalizedTransaction],
    *,
    console: Optional[Console] = None,
    limit: int = 10,
) -> None:
    console = console or Console()
    overview = Table(title="Processing Summary", show_lines=False)
    overview.add_column("Metric")
    overview.add_column("Value")
    for key, value in summary.as_overview().items():
        overview.add_row(key, value)
    console.print(overview)

    if transactions:
        table = Table(title=f"First {min(limit, len(transactions))} transactions", show_lines=False)
        table.add_column("Date (UTC)")
        table.add_column("Type")
        table.add_column("Description")
        table.add_column("Spam")
        table.add_column("Gain/Loss (USD)")
        for tx in transactions[:limit]:
            table.add_row(
                f"{tx.timestamp:%Y-%m-%d %H:%M}",
                tx.type.value,
                tx.description,
                "yes" if tx.is_spam else "",
                f"{tx.gain_loss_usd:.2f}" if tx.gain_loss_usd is not None else "",
            )
        console.print(table)
    else:
        console.print("[yellow]No transactions to export.[/yellow]")

    losses = [tx for tx in transactions if tx.loss_info is not None and tx.loss_info.is_loss]
    if losses:
        loss_table = Table(title="Detected losses", show_lines=False)
        loss_table.add_column("TxHash")
        loss_table.add_column("Loss Type")
        loss_table.add_column("USD")
        for tx in losses:
            info = tx.loss_info
            loss_table.add_row(
                tx.transaction_id[:12],
                info.loss_type.value if info.loss_type else "",
                f"{info.estimated_loss_usd:.2f}",
            )
        console.print(loss_table)
