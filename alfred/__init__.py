"""Alfred curator — signal curation with wallet-gated access."""

__version__ = "0.3.0"
