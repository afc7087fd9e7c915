"""
Account providers.

One ``ProviderAdapter`` per account implementation plus the facade that
dispatches on ``AccountConfig.provider``.
"""

__all__ = []
