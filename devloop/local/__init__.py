"""
Local package for devloop.

This package holds the effective configuration, the role and invocation
model, and the process supervisor.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
