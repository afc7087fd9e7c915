"""Account deployment and execution status polling."""

__all__ = []
