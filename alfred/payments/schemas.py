"""Pydantic schemas for the payment gate — nonces, sessions, ledgers and results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Nonce(CamelModel):
    address: str
    nonce: str
    expires_at: float


class NonceChallenge(CamelModel):
    nonce: str
    message: str


class Session(CamelModel):
    token: str
    address: str
    verified: bool = True
    paid: bool = False
    tx_hash: str | None = None
    expires_at: float


class SessionGrant(CamelModel):
    token: str
    address: str


class TelegramPaymentRecord(CamelModel):
    chat_id: str
    paid: bool = True
    tx_hash: str
    expires_at: float


class BetaRedemption(CamelModel):
    chat_id: str
    redeemed_at: float


class BetaRedemptionResult(CamelModel):
    success: bool
    already_redeemed: bool = False
    error: str | None = None


class PaymentFailure(str, Enum):
    TX_REQUIRED = "tx_required"
    NOT_CONFIRMED = "not_confirmed"
    REVERTED = "reverted"
    NOT_FOUND = "not_found"
    SENDER_MISMATCH = "sender_mismatch"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    INSUFFICIENT_AMOUNT = "insufficient_amount"


class PaymentStatus(CamelModel):
    """Outcome of a payment check. ``paid=False`` carries a reason or instructions."""

    paid: bool
    tx_hash: str | None = None
    address: str | None = None
    beta: bool | None = None
    reason: PaymentFailure | None = None
    error: str | None = None
    pay_to: str | None = None
    amount: str | None = None
    network: str | None = None


class ChainReceipt(BaseModel):
    tx_hash: str
    status: int
    block_number: int | None = None


class ChainTransaction(BaseModel):
    tx_hash: str
    from_address: str
    to_address: str | None = None
    value_wei: int
