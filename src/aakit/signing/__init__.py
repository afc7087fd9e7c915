"""Signer resolution and WebAuthn signature packing."""

__all__ = []
