"""External classification model port and the Gemini adapter."""
from __future__ import annotations

from decimal import Decimal
import json
import logging
import os
import re
from typing import Any, Optional, Protocol

import httpx
from pydantic import ValidationError
from tenacity import RetryError, retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..types import ModelClassification, SpamVerdict, TransactionSummary

LOGGER = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class ModelUnavailable(RuntimeError):
    """The model could not be reached or answered with an unusable payload."""


class ClassificationModel(Protocol):
    async def classify(self, summary: TransactionSummary) -> ModelClassification:
        ...

    async def detect_spam(self, summary: TransactionSummary, unit_price: Optional[Decimal]) -> SpamVerdict:
        ...


def classification_prompt(summary: TransactionSummary) -> str:
    return f"""
Classify this Solana transaction for tax reporting purposes.

Transaction Details:
- Asset Sent: {summary.asset_sent or 'None'}
- Amount Sent: {summary.amount_sent or 0}
- Asset Received: {summary.asset_received or 'None'}
- Amount Received: {summary.amount_received or 0}
- Platform: {summary.platform or 'Unknown'}

Classification Rules:
1. If both sent and received: "Trade"
2. If only received (staking/rewards): "Staking" or "Income"
3. If only received (airdrop): "Airdrop"
4. If only received (transfer in): "Deposit"
5. If only sent (transfer out): "Withdrawal"
6. If only sent (payment): "Merchant Payment"

Respond in JSON format:
{{
  "type": "Trade" | "Deposit" | "Withdrawal" | "Income" | "Staking" | "Airdrop" | "Gift Sent" | "Gift Received" | "Merchant Payment",
  "confidence": number (0-1),
  "description": "Human-readable description"
}}
"""


def spam_prompt(summary: TransactionSummary, unit_price: Optional[Decimal]) -> str:
    token = summary.asset_received or summary.asset_sent or "UNKNOWN"
    amount = summary.amount_received or summary.amount_sent or 0
    price = f"${unit_price}" if unit_price is not None else "Unknown"
    return f"""
Analyze this Solana token transaction and determine if it's spam/scam.

Token: {token}
Amount: {amount}
Price (USD): {price}
Description: {summary.description or 'N/A'}

Common spam indicators:
- Token names with "claim", "visit", "winner", "free", URLs
- Extremely low value (<$0.0001)
- Unsolicited airdrops
- Tokens with excessive special characters

Respond in JSON format:
{{
  "isSpam": boolean,
  "confidence": number (0-1),
  "reasons": string[]
}}
"""


def _extract_json(text: str) -> dict[str, Any]:
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        raise ModelUnavailable("Model response contained no JSON object")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ModelUnavailable(f"Model response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ModelUnavailable("Model response JSON is not an object")
    return payload


def parse_classification(text: str, summary: TransactionSummary) -> ModelClassification:
    payload = _extract_json(text)
    if "type" not in payload:
        raise ModelUnavailable("Model classification missing 'type'")
    try:
        return ModelClassification(
            type=payload["type"],
            confidence=payload.get("confidence", 0.5),
            description=payload.get("description") or summary.description or "Transaction",
        )
    except (ValidationError, ValueError) as exc:
        raise ModelUnavailable(f"Malformed model classification: {exc}") from exc


def parse_spam_verdict(text: str) -> SpamVerdict:
    payload = _extract_json(text)
    is_spam = payload.get("isSpam", payload.get("is_spam"))
    if not isinstance(is_spam, bool):
        raise ModelUnavailable("Model spam verdict missing boolean 'isSpam'")
    reasons = payload.get("reasons") or []
    if not isinstance(reasons, list):
        reasons = [str(reasons)]
    try:
        return SpamVerdict(
            is_spam=is_spam,
            confidence=payload.get("confidence", 0),
            reasons=[str(reason) for reason in reasons],
        )
    except ValidationError as exc:
        raise ModelUnavailable(f"Malformed model spam verdict: {exc}") from exc


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    if isinstance(exc, httpx.TransportError):
        return True
    return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception(_should_retry),
)
async def _perform_request(client: httpx.AsyncClient, url: str, params: dict[str, str], body: dict[str, Any]) -> dict[str, Any]:
    response = await client.post(url, params=params, json=body)
    response.raise_for_status()
    return response.json()


def _response_text(body: dict[str, Any]) -> str:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ModelUnavailable("Unexpected payload from Gemini") from exc
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiModel:
    """``ClassificationModel`` backed by the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 20.0,
        base_url: str = GEMINI_BASE_URL,
    ) -> None:
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.model = model
        self.timeout = timeout
        self.base_url = base_url

    async def _generate(self, prompt: str) -> str:
        if not self.api_key:
            raise ModelUnavailable("GEMINI_API_KEY not configured")
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                payload = await _perform_request(client, url, {"key": self.api_key}, body)
            except RetryError as exc:  # pragma: no cover - network failure path
                raise ModelUnavailable(f"Gemini request failed after retries: {exc}") from exc
            except httpx.HTTPError as exc:
                raise ModelUnavailable(f"Gemini request failed: {exc}") from exc
        return _response_text(payload)

    async def classify(self, summary: TransactionSummary) -> ModelClassification:
        text = await self._generate(classification_prompt(summary))
        return parse_classification(text, summary)

    async def detect_spam(self, summary: TransactionSummary, unit_price: Optional[Decimal]) -> SpamVerdict:
        text = await self._generate(spam_prompt(summary, unit_price))
        return parse_spam_verdict(text)
