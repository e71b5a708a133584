"""
Logging setup for StrikeGuard.

All handlers share one SecretFilter, so credentials from the config are
masked on the console and in the optional log file alike. TwitchIO's own
logger is attached to the same handlers at WARNING.
"""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strikeguard.config import Config

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
ROOT_LOGGER = "strikeguard"
REDACTED = "[REDACTED]"

# Anything this short would mask ordinary words
MIN_SECRET_LENGTH = 4


class SecretFilter(logging.Filter):
    """Masks registered secrets in the message and its arguments."""

    def __init__(self, secrets: list[str] | None = None) -> None:
        super().__init__()
        self._pattern: re.Pattern[str] | None = None
        self.set_secrets(secrets or [])

    def set_secrets(self, secrets: list[str]) -> None:
        """
        Replace the secrets to mask.

        Args:
            secrets: Values to mask, case-insensitively. Values shorter than
                MIN_SECRET_LENGTH are skipped.
        """
        kept = sorted({s for s in secrets if len(s) >= MIN_SECRET_LENGTH}, key=len, reverse=True)
        self._pattern = re.compile("|".join(map(re.escape, kept)), re.IGNORECASE) if kept else None

    def _mask(self, value: object) -> object:
        if self._pattern is None or not isinstance(value, str):
            return value
        return self._pattern.sub(REDACTED, value)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True

        record.msg = self._mask(record.msg)
        if isinstance(record.args, dict):
            record.args = {key: self._mask(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(map(self._mask, record.args))
        return True


class ColoredFormatter(logging.Formatter):
    """Colors the level name on a terminal and leaves other output plain."""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "1;41",
    }

    def __init__(self, fmt: str | None = None, use_colors: bool | None = None) -> None:
        super().__init__(fmt)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        code = self.LEVEL_COLORS.get(record.levelno)
        if not self.use_colors or code is None:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"\033[{code}m{levelname:<8}\033[0m"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _handler(handler: logging.Handler, formatter: logging.Formatter, secret_filter: SecretFilter) -> logging.Handler:
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(secret_filter)
    return handler


def setup_logging(config: Config) -> None:
    """
    Configure the strikeguard logger from the bot settings.

    Args:
        config: Supplies the level, the optional log file and the secrets
    """
    secret_filter = SecretFilter(config.secrets)
    handlers = [_handler(logging.StreamHandler(sys.stderr), ColoredFormatter(LOG_FORMAT), secret_filter)]

    if config.log_file:
        path = Path(config.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _handler(logging.FileHandler(path, encoding="utf-8"), logging.Formatter(LOG_FORMAT), secret_filter)
        )

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.getLevelName(config.log_level))
    logger.handlers[:] = handlers

    twitchio_logger = logging.getLogger("twitchio")
    twitchio_logger.setLevel(logging.WARNING)
    twitchio_logger.handlers[:] = handlers

    logger.debug("Logging initialized at %s", config.log_level)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, placed under the strikeguard namespace."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
