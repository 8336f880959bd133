"""Per-transaction enrichment: classify, override, score, resolve and value."""
from __future__ import annotations

import asyncio
from decimal import Decimal
import logging
from typing import Iterable, Mapping, Optional

from . import utils
from .accounting.engine import apply_valuation, price_for
from .classification.classifier import classify_group
from .classification.model import ClassificationModel, ModelUnavailable
from .classification.rent import apply_forced_overrides
from .classification.resolver import resolve
from .classification.spam import score_spam
from .config import AppSettings
from .ingestion.fetch import EvidenceFetcher, SecondaryFetchFailed
from .ingestion.grouping import EmptyGroupError, MalformedGroupError, validate_group
from .types import (
    ManualOverride,
    ModelClassification,
    NormalizedTransaction,
    RawTransfer,
    SpamVerdict,
    TransferGroup,
    WarningRecord,
)

LOGGER = logging.getLogger(__name__)


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


class Pipeline:
    """Runs every group through the fixed enrichment order under a semaphore."""

    def __init__(
        self,
        price_map: Mapping[str, Decimal],
        *,
        model: Optional[ClassificationModel] = None,
        evidence_fetcher: Optional[EvidenceFetcher] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.price_map = price_map
        self.model = model if self.settings.use_model else None
        self.evidence_fetcher = evidence_fetcher
        self.warnings: list[WarningRecord] = []

    def _warn(self, transaction_id: Optional[str], code: str, message: str) -> None:
        LOGGER.warning("%s: %s", code, message)
        self.warnings.append(WarningRecord(transaction_id=transaction_id, code=code, message=message))

    async def _evidence(self, group: TransferGroup) -> Optional[list[RawTransfer]]:
        if self.evidence_fetcher is None:
            return list(group.transfers)
        try:
            return await self.evidence_fetcher(group.transaction_id)
        except SecondaryFetchFailed as exc:
            self._warn(group.transaction_id, "secondary_fetch_failed", str(exc))
            return None

    async def _model_classification(self, tx: NormalizedTransaction) -> Optional[ModelClassification]:
        if self.model is None:
            return None
        try:
            return await self.model.classify(tx.summary())
        except ModelUnavailable as exc:
            self._warn(tx.transaction_id, "model_unavailable", str(exc))
            return None
        except Exception as exc:
            LOGGER.debug("Model adapter error", exc_info=True)
            self._warn(tx.transaction_id, "model_error", f"{type(exc).__name__}: {exc}")
            return None

    async def _model_spam(self, tx: NormalizedTransaction, unit_price: Optional[Decimal]) -> Optional[SpamVerdict]:
        if self.model is None:
            return None
        try:
            return await self.model.detect_spam(tx.summary(), unit_price)
        except ModelUnavailable as exc:
            self._warn(tx.transaction_id, "model_unavailable", str(exc))
            return None
        except Exception as exc:
            LOGGER.debug("Model adapter error", exc_info=True)
            self._warn(tx.transaction_id, "model_error", f"{type(exc).__name__}: {exc}")
            return None

    async def enrich(self, group: TransferGroup) -> NormalizedTransaction:
        settings = self.settings
        tx = classify_group(group, fee_threshold=_decimal(settings.fee_threshold))
        try:
            evidence = await self._evidence(group)
            if evidence is not None:
                apply_forced_overrides(tx, evidence, tolerance=_decimal(settings.rent_tolerance))

            manual = tx.state if isinstance(tx.state, ManualOverride) else None
            spam_forced = manual is not None and manual.is_spam is not None
            type_forced = manual is not None and manual.type is not None
            unit_price = price_for(self.price_map, tx.primary_asset)

            heuristic = None if spam_forced else score_spam(tx, unit_price, threshold=settings.spam_threshold)
            model_classification = None if type_forced else await self._model_classification(tx)
            model_spam = None if spam_forced else await self._model_spam(tx, unit_price)

            resolve(tx, model_classification=model_classification, model_spam=model_spam, heuristic=heuristic)
        except Exception:
            LOGGER.exception("Enrichment failed for %s; keeping provisional classification", tx.transaction_id)
            self.warnings.append(
                WarningRecord(transaction_id=tx.transaction_id, code="enrichment_failed", message="see log")
            )
        return apply_valuation(tx, self.price_map, tolerance=_decimal(settings.loss_tolerance))

    async def run(self, groups: Iterable[TransferGroup]) -> list[NormalizedTransaction]:
        valid: list[TransferGroup] = []
        for group in groups:
            try:
                validate_group(group)
            except (EmptyGroupError, MalformedGroupError) as exc:
                self._warn(group.transaction_id, "invalid_group", str(exc))
                continue
            valid.append(group)

        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def worker(group: TransferGroup) -> NormalizedTransaction:
            async with semaphore:
                return await self.enrich(group)

        results = await asyncio.gather(*(worker(group) for group in valid))
        LOGGER.info("Processed %d transactions (%d groups dropped)", len(results), len(self.warnings_of("invalid_group")))
        return list(results)

    def warnings_of(self, code: str) -> list[WarningRecord]:
        return [warning for warning in self.warnings if warning.code == code]


async def process_async(
    groups: Iterable[TransferGroup],
    price_map: Mapping[str, Decimal],
    *,
    model: Optional[ClassificationModel] = None,
    evidence_fetcher: Optional[EvidenceFetcher] = None,
    settings: Optional[AppSettings] = None,
    warnings: Optional[list[WarningRecord]] = None,
) -> list[NormalizedTransaction]:
    """Classify and value every group; warnings are appended to ``warnings`` when given."""

    pipeline = Pipeline(price_map, model=model, evidence_fetcher=evidence_fetcher, settings=settings)
    results = await pipeline.run(groups)
    if warnings is not None:
        warnings.extend(pipeline.warnings)
    return results


def process(
    groups: Iterable[TransferGroup],
    price_map: Mapping[str, Decimal],
    *,
    model: Optional[ClassificationModel] = None,
    evidence_fetcher: Optional[EvidenceFetcher] = None,
    settings: Optional[AppSettings] = None,
    warnings: Optional[list[WarningRecord]] = None,
) -> list[NormalizedTransaction]:
    return utils.run_async(
        process_async(
            groups,
            price_map,
            model=model,
            evidence_fetcher=evidence_fetcher,
            settings=settings,
            warnings=warnings,
        )
    )
