"""Output writers for CSV and XLSX reports."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from ..types import NormalizedTransaction, WarningRecord
from .coinledger import COINLEDGER_COLUMNS, to_rows
from .summaries import ProcessingSummary, losses_frame, type_counts_frame

FORMATS = ("csv", "xlsx", "both")


def coinledger_frame(transactions: Sequence[NormalizedTransaction]) -> pd.DataFrame:
    return pd.DataFrame(to_rows(transactions), columns=COINLEDGER_COLUMNS)


def write_csv(path: Path, transactions: Sequence[NormalizedTransaction]) -> None:
    df = coinledger_frame(transactions)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def _apply_header_style(sheet) -> None:
    bold = Font(bold=True)
    for cell in sheet[1]:
        cell.font = bold
    sheet.auto_filter.ref = sheet.dimensions
    sheet.freeze_panes = "A2"


def _auto_width(sheet) -> None:
    for col in sheet.columns:
        values = [str(cell.value) if cell.value is not None else "" for cell in col]
        max_len = max((len(value) for value in values), default=0)
        col_letter = get_column_letter(col[0].column)
        sheet.column_dimensions[col_letter].width = min(max_len + 2, 60)


def _append_frame(sheet, frame: pd.DataFrame) -> None:
    sheet.append(list(frame.columns))
    for row in frame.itertuples(index=False):
        sheet.append(list(row))
    _apply_header_style(sheet)
    _auto_width(sheet)


def write_xlsx(
    path: Path,
    transactions: Sequence[NormalizedTransaction],
    *,
    summary: ProcessingSummary,
    all_transactions: Sequence[NormalizedTransaction] = (),
    warnings: Sequence[WarningRecord] = (),
) -> None:
    """Write the CoinLedger sheet plus overview, losses and warnings sheets."""

    path.parent.mkdir(parents=True, exist_ok=True)
    workbook = Workbook()

    tx_sheet = workbook.active
    tx_sheet.title = "CoinLedger"
    _append_frame(tx_sheet, coinledger_frame(transactions))

    overview_sheet = workbook.create_sheet("Overview")
    overview_sheet.append(["Metric", "Value"])
    for key, value in summary.as_overview().items():
        overview_sheet.append([key, value])
    _apply_header_style(overview_sheet)
    _auto_width(overview_sheet)

    _append_frame(workbook.create_sheet("Types"), type_counts_frame(summary))

    losses = losses_frame(all_transactions or transactions)
    if not losses.empty:
        _append_frame(workbook.create_sheet("Losses"), losses)

    if warnings:
        warnings_sheet = workbook.create_sheet("Warnings")
        warnings_sheet.append(["transaction_id", "code", "message"])
        for warning in warnings:
            warnings_sheet.append([warning.transaction_id or "", warning.code, warning.message])
        _apply_header_style(warnings_sheet)
        _auto_width(warnings_sheet)

    workbook.save(path)


def export_reports(
    outdir: Path,
    transactions: Sequence[NormalizedTransaction],
    *,
    summary: ProcessingSummary,
    all_transactions: Sequence[NormalizedTransaction] = (),
    warnings: Sequence[WarningRecord] = (),
    fmt: str = "csv",
    stem: str = "coinledger",
) -> list[Path]:
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported format: {fmt}")
    outdir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    if fmt in ("csv", "both"):
        path = outdir / f"{stem}.csv"
        write_csv(path, transactions)
        written.append(path)
    if fmt in ("xlsx", "both"):
        path = outdir / f"{stem}.xlsx"
        write_xlsx(path, transactions, summary=summary, all_transactions=all_transactions, warnings=warnings)
        written.append(path)
    return written
