"""
aakit Core Module

Byte codec, data model, exception hierarchy, configuration and logging shared
by every other package.
"""

__all__ = []
