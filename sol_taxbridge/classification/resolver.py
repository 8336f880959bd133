"""Merge forced, model and heuristic classifications with strict precedence.

Precedence, per field:

1. ``ManualOverride`` values (rent redemption, spam dust, user edits).
2. External model output.
3. Heuristic output, and for the type field the provisional classifier type.

A missing model result means the model was disabled, failed or answered with
something unparseable. It never counts as a spam or not-spam signal.
"""
from __future__ import annotations

from typing import Optional

from .classifier import PROVISIONAL_CONFIDENCE
from ..types import (
    HeuristicClassified,
    ManualOverride,
    ModelClassification,
    ModelClassified,
    NormalizedTransaction,
    SpamVerdict,
)


def _resolve_spam(
    tx: NormalizedTransaction,
    manual: Optional[ManualOverride],
    model_spam: Optional[SpamVerdict],
    heuristic: Optional[SpamVerdict],
) -> None:
    if manual is not None and manual.is_spam is not None:
        verdict = SpamVerdict(
            is_spam=manual.is_spam,
            confidence=manual.spam_confidence,
            reasons=manual.spam_reasons,
        )
    else:
        verdict = model_spam if model_spam is not None else heuristic
    if verdict is None:
        return
    tx.is_spam = verdict.is_spam
    tx.spam_confidence = verdict.confidence if verdict.is_spam else 0.0
    tx.spam_reasons = list(verdict.reasons) if verdict.is_spam else []


def resolve(
    tx: NormalizedTransaction,
    *,
    model_classification: Optional[ModelClassification] = None,
    model_spam: Optional[SpamVerdict] = None,
    heuristic: Optional[SpamVerdict] = None,
) -> NormalizedTransaction:
    """Resolve the final classification of ``tx`` in place and return it."""

    state = tx.state
    manual = state if isinstance(state, ManualOverride) else None
    if isinstance(state, (ModelClassified, HeuristicClassified)):
        provisional_type = state.provisional_type
        provisional_description = state.provisional_description
    else:
        provisional_type = tx.type
        provisional_description = tx.description

    _resolve_spam(tx, manual, model_spam, heuristic)

    if manual is not None and manual.type is not None:
        tx.type = manual.type
        if manual.description:
            tx.description = manual.description
        return tx

    if model_classification is not None:
        tx.type = model_classification.type
        tx.description = model_classification.description
        tx.classification_confidence = model_classification.confidence
        if manual is None:
            tx.state = ModelClassified(
                provisional_type=provisional_type,
                provisional_description=provisional_description,
                confidence=model_classification.confidence,
                spam_from_model=model_spam is not None,
            )
        return tx

    tx.type = provisional_type
    tx.description = provisional_description
    tx.classification_confidence = PROVISIONAL_CONFIDENCE
    if manual is None:
        tx.state = HeuristicClassified(
            provisional_type=provisional_type,
            provisional_description=provisional_description,
        )
    return tx
