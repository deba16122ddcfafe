"""Error taxonomy shared by the curator and the payment gate."""


class CuratorError(Exception):
    """Base class for all service errors."""


class TransientSourceError(CuratorError):
    """A feed, scorer or delivery call failed or timed out. Never cycle-fatal."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class AuthError(CuratorError):
    """Nonce, signature or session failure. No state was mutated."""

    def __init__(self, message: str, code: str = 'auth_failed'):
        super().__init__(message)
        self.code = code


class PaymentError(CuratorError):
    """A payment could not be verified. ``reason`` is machine-readable."""

    def __init__(self, message: str, reason: str = 'payment_failed'):
        super().__init__(message)
        self.reason = reason


class ChainRPCError(PaymentError):
    """The chain could not be read. Never treated as success."""

    def __init__(self, message: str):
        super().__init__(message, reason='rpc_error')


class PersistenceError(CuratorError):
    """Curator memory could not be written to disk."""


class ConfigurationError(CuratorError):
    """A required setting (wallet, API key) is missing for this operation."""
