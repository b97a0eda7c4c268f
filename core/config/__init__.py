"""
IDTIX Core Config — Public API
================================
Environment-driven settings and logging setup.
"""

from core.config.settings import (
    IdtixSettings,
    VALID_LOG_LEVELS,
    configure_logging,
)

__all__ = [
    "IdtixSettings",
    "VALID_LOG_LEVELS",
    "configure_logging",
]
