"""
Access gate for privileged resources.

Tiers are evaluated in order and the first that grants wins:
  1. loopback caller (container-internal traffic)
  2. legacy shared-secret bearer token
  3. wallet session that has paid
  4. inline transaction hash, verified on the spot (agent-to-agent calls)
Anything else is denied with payment instructions attached.
"""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel

from alfred.payments.service import PaymentService

logger = logging.getLogger('payments.access')

LOOPBACK_HOSTS = {'127.0.0.1', '::1', '::ffff:127.0.0.1', 'localhost'}


class AccessTier(str, Enum):
    OPEN = "open"
    LOOPBACK = "loopback"
    SHARED_SECRET = "shared_secret"
    SESSION = "session"
    TX_HASH = "tx_hash"
    DENIED = "denied"


@dataclass
class AccessRequest:
    client_host: str | None = None
    bearer_token: str | None = None
    session_token: str | None = None
    tx_hash: str | None = None


class AccessDecision(BaseModel):
    granted: bool
    tier: AccessTier
    reason: str = ""
    address: str | None = None
    payment: dict | None = None


class AccessGate:
    def __init__(self, payments: PaymentService, api_token: str | None = None,
                 trust_loopback: bool = True):
        self.payments = payments
        self.api_token = api_token
        self.trust_loopback = trust_loopback

    def authorize(self, request: AccessRequest, privileged: bool = True) -> AccessDecision:
        """Decide access. AuthError is never raised for a bad session here;
        ChainRPCError and ConfigurationError from tx verification propagate."""
        if not privileged:
            return AccessDecision(granted=True, tier=AccessTier.OPEN)

        if self.trust_loopback and request.client_host in LOOPBACK_HOSTS:
            return AccessDecision(granted=True, tier=AccessTier.LOOPBACK)

        if self.api_token and request.bearer_token and hmac.compare_digest(
                request.bearer_token.encode(), self.api_token.encode()):
            return AccessDecision(granted=True, tier=AccessTier.SHARED_SECRET)

        session = self.payments.get_session(request.session_token)
        if session is not None and session.paid:
            return AccessDecision(granted=True, tier=AccessTier.SESSION, address=session.address)

        if request.tx_hash and self.payments.payment_wallet:
            # Bound to the session when there is one, so the sender must match it
            status = self.payments.check_payment(session.token if session else None, request.tx_hash)
            if status.paid:
                tier = AccessTier.SESSION if session is not None else AccessTier.TX_HASH
                logger.info(f"Access granted via tx {request.tx_hash} ({tier.value})")
                return AccessDecision(granted=True, tier=tier, address=status.address)
            return AccessDecision(
                granted=False,
                tier=AccessTier.DENIED,
                reason=status.error or 'Payment not verified',
                payment=self.payments.payment_terms(),
            )

        reason = 'Session has not paid' if session is not None else 'Payment required'
        payment = self.payments.payment_terms() if self.payments.payment_wallet else None
        return AccessDecision(granted=False, tier=AccessTier.DENIED, reason=reason, payment=payment)
