"""
Utility modules for StrikeGuard.

Provides:
- logging: Logging setup with secret filtering
- permissions: Permission decorators for commands
- database: Dataset stores (SQLite and in-memory)
- audit: Moderation audit log
- text: Text normalization and formatting helpers
- numbers: Base conversion for strike ids
"""

from strikeguard.utils.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
