"""Smart-session encoding and policies."""

__all__ = []
