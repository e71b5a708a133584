"""
StrikeGuard - a Twitch moderation bot built with TwitchIO.

This package provides:
- An obfuscation-resistant banned word matcher
- Graduated, expiring strikes with automatic timeouts and bans
- Invite and link control
- Strike lookup and moderation commands
"""

from strikeguard.config import Config, load_config

__version__ = "1.0.0"
__all__ = ["Config", "load_config", "main"]


def main() -> None:
    """Entry point for the moderation bot."""
    import asyncio
    import signal
    import sys

    from strikeguard.bot import StrikeGuardBot
    from strikeguard.utils.logging import get_logger, setup_logging

    # Load configuration
    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    logger = get_logger(__name__)

    logger.info(
        "Starting StrikeGuard v%s (%s)",
        __version__,
        "production" if config.production else "development",
    )

    bot = StrikeGuardBot(config)

    # Handle graceful shutdown
    def signal_handler(sig: int, frame: object) -> None:
        logger.info("Received shutdown signal, stopping bot...")
        asyncio.create_task(bot.close())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        bot.run()
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.exception("Bot crashed with error: %s", e)
        sys.exit(1)
    finally:
        logger.info("Bot shutdown complete")
