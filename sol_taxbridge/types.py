"""Core pydantic data models used across the project."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

WSOL_MINT = "So11111111111111111111111111111111111111112"
NATIVE_SYMBOLS = {"SOL", "WSOL"}
UNKNOWN_SYMBOL = "UNKNOWN"


class TransactionType(str, Enum):
    """CoinLedger transaction categories."""

    trade = "Trade"
    deposit = "Deposit"
    withdrawal = "Withdrawal"
    income = "Income"
    staking = "Staking"
    airdrop = "Airdrop"
    gift_sent = "Gift Sent"
    gift_received = "Gift Received"
    merchant_payment = "Merchant Payment"
    investment_loss = "Investment Loss"
    theft_loss = "Theft Loss"
    casualty_loss = "Casualty Loss"

    @classmethod
    def parse(cls, value: Any) -> "TransactionType":
        """Accept the CoinLedger label, the member name or the label without spaces."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unsupported transaction type: {value!r}")
        needle = value.strip().replace("_", "").replace(" ", "").lower()
        for member in cls:
            if needle in (member.value.replace(" ", "").lower(), member.name.replace("_", "")):
                return member
        raise ValueError(f"Unsupported transaction type: {value!r}")


class RawTransfer(BaseModel):
    """One signed balance change for the wallet inside one on-chain transaction."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    timestamp: int
    asset_address: str
    asset_symbol: Optional[str] = None
    asset_decimals: int = Field(default=9, ge=0)
    amount: Decimal = Field(ge=0)
    direction: Literal["in", "out"]
    counterparty_address: Optional[str] = None

    @property
    def is_native(self) -> bool:
        if self.asset_address == WSOL_MINT:
            return True
        return (self.asset_symbol or "").upper() in NATIVE_SYMBOLS

    @property
    def display_symbol(self) -> str:
        return self.asset_symbol or UNKNOWN_SYMBOL


class TransferGroup(BaseModel):
    """All transfers that share one transaction id."""

    transaction_id: str
    transfers: list[RawTransfer] = Field(default_factory=list)

    @property
    def timestamp(self) -> int:
        return self.transfers[0].timestamp


class LossInfo(BaseModel):
    is_loss: bool
    loss_type: Optional[TransactionType] = None
    reason: str
    estimated_loss_usd: Decimal = Decimal("0")


class SpamVerdict(BaseModel):
    is_spam: bool
    confidence: float = Field(ge=0, le=1)
    reasons: list[str] = Field(default_factory=list)


class ModelClassification(BaseModel):
    type: TransactionType
    confidence: float = Field(ge=0, le=1)
    description: str

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> TransactionType:
        return TransactionType.parse(value)


class RentRedemptionSignals(BaseModel):
    is_rent_redemption: bool
    has_token_burn: bool
    has_sol_income: bool
    rent_amount: Decimal
    confidence: float
    details: str


class Unclassified(BaseModel):
    kind: Literal["unclassified"] = "unclassified"


class ManualOverride(BaseModel):
    """Forced classification; each field it sets wins over every other source."""

    kind: Literal["manual"] = "manual"
    type: Optional[TransactionType] = None
    is_spam: Optional[bool] = None
    spam_confidence: float = 0.0
    spam_reasons: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    source: str = "manual"


class ModelClassified(BaseModel):
    kind: Literal["model"] = "model"
    provisional_type: TransactionType
    provisional_description: str
    confidence: float
    spam_from_model: bool


class HeuristicClassified(BaseModel):
    kind: Literal["heuristic"] = "heuristic"
    provisional_type: TransactionType
    provisional_description: str


ClassificationState = Annotated[
    Union[Unclassified, ManualOverride, ModelClassified, HeuristicClassified],
    Field(discriminator="kind"),
]


class TransactionSummary(BaseModel):
    """What the external classification model is allowed to see."""

    model_config = ConfigDict(frozen=True)

    asset_sent: Optional[str] = None
    amount_sent: Optional[Decimal] = None
    asset_received: Optional[str] = None
    amount_received: Optional[Decimal] = None
    platform: str = "Solana"
    description: str = ""
    provisional_type: Optional[TransactionType] = None


class NormalizedTransaction(BaseModel):
    """Canonical classified transaction handed to export."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    transaction_id: str
    timestamp: datetime
    platform: str = "Solana"

    asset_sent: Optional[str] = None
    asset_sent_address: Optional[str] = None
    amount_sent: Optional[Decimal] = None
    asset_received: Optional[str] = None
    asset_received_address: Optional[str] = None
    amount_received: Optional[Decimal] = None

    fee_asset: Optional[str] = None
    fee_amount: Optional[Decimal] = None

    type: TransactionType
    description: str
    is_spam: Optional[bool] = None
    spam_confidence: float = Field(default=0.0, ge=0, le=1)
    spam_reasons: list[str] = Field(default_factory=list)
    classification_confidence: float = Field(default=0.5, ge=0, le=1)
    state: ClassificationState = Field(default_factory=Unclassified)

    unit_price_usd: Optional[Decimal] = None
    cost_basis_usd: Optional[Decimal] = None
    proceeds_usd: Optional[Decimal] = None
    gain_loss_usd: Optional[Decimal] = None
    loss_info: Optional[LossInfo] = None

    @property
    def primary_asset(self) -> Optional[str]:
        return self.asset_received or self.asset_sent

    def summary(self) -> TransactionSummary:
        return TransactionSummary(
            asset_sent=self.asset_sent,
            amount_sent=self.amount_sent,
            asset_received=self.asset_received,
            amount_received=self.amount_received,
            platform=self.platform,
            description=self.description,
            provisional_type=self.type,
        )


class WarningRecord(BaseModel):
    """Represents a warning generated during processing."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    transaction_id: Optional[str] = None
    code: str
    message: str
