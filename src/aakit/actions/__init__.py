"""Call builders for owner management and social recovery."""

__all__ = []
