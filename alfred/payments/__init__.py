"""Wallet sign-in, payment verification and the access gate."""
