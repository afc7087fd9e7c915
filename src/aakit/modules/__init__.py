"""ERC-7579 module catalog, validator builders and on-chain module reads."""

__all__ = []
