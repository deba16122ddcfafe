"""
Payment / session service.

Wallet sign-in:  get_nonce → wallet signs the challenge → verify_signature
issues a 24h session → check_payment flips the session to paid once an
on-chain transfer to the payment wallet is verified.

A parallel ledger keyed by chat id serves clients that can't hold a
session; beta invite redemptions bypass payment on that ledger entirely.
"""

import logging
import secrets
import time
from typing import Callable, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from alfred.config import Settings
from alfred.errors import AuthError, ConfigurationError
from alfred.payments.kv_store import KVStore
from alfred.payments.schemas import (
    BetaRedemption,
    BetaRedemptionResult,
    ChainReceipt,
    ChainTransaction,
    Nonce,
    NonceChallenge,
    PaymentFailure,
    PaymentStatus,
    Session,
    SessionGrant,
    TelegramPaymentRecord,
)

logger = logging.getLogger('payments')

CHALLENGE_TEMPLATE = "Sign in to Alfred Curator\nNonce: {nonce}"

BETA_COUNT_KEY = 'beta:count'


class ChainSource(Protocol):
    def get_receipt(self, tx_hash: str) -> ChainReceipt | None: ...

    def get_transaction(self, tx_hash: str) -> ChainTransaction | None: ...


def challenge_message(nonce: str) -> str:
    """The exact text a wallet must sign for ``nonce``."""
    return CHALLENGE_TEMPLATE.format(nonce=nonce)


class PaymentService:
    def __init__(self, kv: KVStore, chain: ChainSource, settings: Settings,
                 clock: Callable[[], float] = time.time):
        self.kv = kv
        self.chain = chain
        self.settings = settings
        self._clock = clock
        self.payment_wallet = settings.payment_wallet
        # plain decimal string for clients, never exponent notation
        self.min_payment_eth = format(settings.min_payment_eth, 'f')
        self.min_payment_wei = Web3.to_wei(settings.min_payment_eth, 'ether')
        logger.info(
            f"Payments: wallet={self.payment_wallet or 'NOT CONFIGURED'} | "
            f"min={self.min_payment_eth} ETH | beta max uses={settings.beta_max_uses}"
        )

    # ------------------------------------------------------------------
    # Wallet sign-in
    # ------------------------------------------------------------------

    def get_nonce(self, address: str) -> NonceChallenge:
        if not address or not Web3.is_address(address):
            raise AuthError('Invalid wallet address', code='address_invalid')
        addr = address.lower()
        nonce = secrets.token_hex(16)
        record = Nonce(address=addr, nonce=nonce, expires_at=self._clock() + self.settings.nonce_ttl)
        # A new nonce replaces any outstanding one for this address
        self.kv.set(f"nonce:{addr}", record.model_dump(), ttl=self.settings.nonce_ttl)
        return NonceChallenge(nonce=nonce, message=challenge_message(nonce))

    def verify_signature(self, address: str, signature: str) -> SessionGrant:
        addr = (address or '').lower()
        key = f"nonce:{addr}"
        raw = self.kv.get(key)
        if raw is None:
            raise AuthError('No nonce found — request a nonce first', code='nonce_missing')
        entry = Nonce.model_validate(raw)
        if self._clock() > entry.expires_at:
            self.kv.delete(key)
            raise AuthError('Nonce expired', code='nonce_expired')

        message = encode_defunct(text=challenge_message(entry.nonce))
        try:
            recovered = Account.recover_message(message, signature=signature)
        except Exception as e:
            raise AuthError(f'Invalid signature: {e}', code='signature_invalid') from e
        if recovered.lower() != addr:
            raise AuthError('Signature does not match address', code='signature_mismatch')

        self.kv.delete(key)

        token = secrets.token_hex(32)
        session = Session(
            token=token,
            address=addr,
            expires_at=self._clock() + self.settings.session_ttl,
        )
        self.kv.set(f"session:{token}", session.model_dump(), ttl=self.settings.session_ttl)
        logger.info(f"Session created for {addr}")
        return SessionGrant(token=token, address=addr)

    def get_session(self, token: str | None) -> Session | None:
        if not token:
            return None
        raw = self.kv.get(f"session:{token}")
        if raw is None:
            return None
        session = Session.model_validate(raw)
        if self._clock() > session.expires_at:
            self.kv.delete(f"session:{token}")
            return None
        return session

    # ------------------------------------------------------------------
    # On-chain payment
    # ------------------------------------------------------------------

    def _require_wallet(self) -> str:
        if not self.payment_wallet:
            raise ConfigurationError('No PAYMENT_WALLET configured')
        return self.payment_wallet

    def payment_instructions(self, address: str | None = None) -> PaymentStatus:
        return PaymentStatus(
            paid=False,
            address=address,
            pay_to=self.payment_wallet,
            amount=self.min_payment_eth,
            network=self.settings.network_label,
        )

    def payment_terms(self) -> dict:
        return {
            'recipient': self.payment_wallet,
            'amount': self.min_payment_eth,
            'token': 'ETH',
            'network': self.settings.network_label,
        }

    def _verify_transfer(self, tx_hash: str, expected_sender: str | None = None) -> PaymentStatus:
        """Check receipt, recipient, value and (optionally) sender of ``tx_hash``.

        ChainRPCError from the reader propagates: an unreadable chain is a
        failure, never a pass.
        """
        wallet = self._require_wallet()

        receipt = self.chain.get_receipt(tx_hash)
        if receipt is None:
            return PaymentStatus(paid=False, tx_hash=tx_hash, reason=PaymentFailure.NOT_CONFIRMED,
                                 error='Transaction not confirmed yet — waiting for block')
        if receipt.status == 0:
            return PaymentStatus(paid=False, tx_hash=tx_hash, reason=PaymentFailure.REVERTED,
                                 error='Transaction reverted on-chain. Please send a new payment.')

        tx = self.chain.get_transaction(tx_hash)
        if tx is None:
            return PaymentStatus(paid=False, tx_hash=tx_hash, reason=PaymentFailure.NOT_FOUND,
                                 error='Transaction not found')

        if expected_sender and tx.from_address.lower() != expected_sender.lower():
            return PaymentStatus(paid=False, tx_hash=tx_hash, reason=PaymentFailure.SENDER_MISMATCH,
                                 error='Transaction sender does not match session wallet')
        if not tx.to_address or tx.to_address.lower() != wallet.lower():
            return PaymentStatus(paid=False, tx_hash=tx_hash, reason=PaymentFailure.RECIPIENT_MISMATCH,
                                 error='Transaction recipient does not match payment wallet')
        if tx.value_wei < self.min_payment_wei:
            sent = Web3.from_wei(tx.value_wei, 'ether')
            return PaymentStatus(paid=False, tx_hash=tx_hash, reason=PaymentFailure.INSUFFICIENT_AMOUNT,
                                 error=f'Insufficient amount. Sent: {sent} ETH, required: {self.min_payment_eth} ETH')

        return PaymentStatus(paid=True, tx_hash=tx_hash, address=tx.from_address.lower())

    def check_payment(self, session_token: str | None, tx_hash: str | None = None) -> PaymentStatus:
        """Payment state for a session, or a bare tx-hash check when no session is given.

        No tx hash returns payment instructions without touching state.
        """
        session = None
        if session_token:
            session = self.get_session(session_token)
            if session is None:
                raise AuthError('Invalid or expired session', code='session_invalid')
            if session.paid:
                return PaymentStatus(paid=True, tx_hash=session.tx_hash, address=session.address)

        self._require_wallet()

        if not tx_hash:
            return self.payment_instructions(session.address if session else None)

        status = self._verify_transfer(tx_hash, expected_sender=session.address if session else None)
        if not status.paid:
            logger.info(f"Payment check failed for {tx_hash}: {status.reason.value}")
            return status

        if session is not None:
            session.paid = True
            session.tx_hash = tx_hash
            remaining = max(session.expires_at - self._clock(), 1)
            self.kv.set(f"session:{session.token}", session.model_dump(), ttl=remaining)
            logger.info(f"Session for {session.address} marked paid ({tx_hash})")
            status.address = session.address
        return status

    # ------------------------------------------------------------------
    # Chat-identity ledger
    # ------------------------------------------------------------------

    def verify_telegram_payment(self, chat_id, tx_hash: str | None) -> PaymentStatus:
        """Record a payment for ``chat_id``. The sender is not bound to the chat."""
        self._require_wallet()
        if not tx_hash:
            return PaymentStatus(paid=False, reason=PaymentFailure.TX_REQUIRED, error='txHash required')

        status = self._verify_transfer(tx_hash)
        if not status.paid:
            return status

        chat = str(chat_id)
        record = TelegramPaymentRecord(
            chat_id=chat,
            tx_hash=tx_hash,
            expires_at=self._clock() + self.settings.telegram_payment_ttl,
        )
        self.kv.set(f"tg_paid:{chat}", record.model_dump(), ttl=self.settings.telegram_payment_ttl)
        logger.info(f"Chat {chat} paid via {tx_hash}")
        return PaymentStatus(paid=True, tx_hash=tx_hash)

    def is_telegram_paid(self, chat_id) -> PaymentStatus:
        chat = str(chat_id)
        if self.kv.get(f"beta:{chat}") is not None:
            return PaymentStatus(paid=True, beta=True)

        raw = self.kv.get(f"tg_paid:{chat}")
        if raw is not None:
            record = TelegramPaymentRecord.model_validate(raw)
            if self._clock() <= record.expires_at:
                return PaymentStatus(paid=True, tx_hash=record.tx_hash)
            self.kv.delete(f"tg_paid:{chat}")

        return self.payment_instructions()

    def redeem_beta_code(self, chat_id, code: str | None) -> BetaRedemptionResult:
        chat = str(chat_id)
        if self.kv.get(f"beta:{chat}") is not None:
            return BetaRedemptionResult(success=True, already_redeemed=True)
        if not code or not secrets.compare_digest(code.encode(), self.settings.beta_invite_code.encode()):
            return BetaRedemptionResult(success=False, error='Invalid code')
        if self.beta_used_count() >= self.settings.beta_max_uses:
            return BetaRedemptionResult(success=False, error='Beta is full')

        redemption = BetaRedemption(chat_id=chat, redeemed_at=self._clock())
        self.kv.set(f"beta:{chat}", redemption.model_dump())
        used = self.kv.incr(BETA_COUNT_KEY)
        logger.info(f"Beta code redeemed by chat {chat} ({used}/{self.settings.beta_max_uses})")
        return BetaRedemptionResult(success=True)

    def beta_used_count(self) -> int:
        raw = self.kv.get(BETA_COUNT_KEY)
        return int(raw.get('value', 0)) if raw else 0

    def cleanup(self) -> int:
        return self.kv.purge_expired()
