"""
The Twitch bot.

StrikeGuardBot wires the moderation core (matcher, strike ledger, audit log,
punishment engine and automod pipeline) onto one dataset store and loads
the automod and strike cogs.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

from twitchio.ext import commands

from strikeguard.automod.bad_words import load_bad_words
from strikeguard.automod.links import LinkFilter
from strikeguard.automod.matcher import BadWordMatcher
from strikeguard.automod.names import ModerationPolicy
from strikeguard.automod.pipeline import AutomodPipeline
from strikeguard.config import Config
from strikeguard.gateway import ChatUser, TwitchGateway
from strikeguard.punishments.engine import PunishmentEngine, PunishmentSettings
from strikeguard.punishments.ledger import StrikeLedger
from strikeguard.utils.audit import AuditLog
from strikeguard.utils.database import DatasetStore, SqliteDatasetStore
from strikeguard.utils.logging import get_logger

if TYPE_CHECKING:
    from twitchio import Channel, Message

logger = get_logger(__name__)

COGS = ("strikeguard.cogs.automod", "strikeguard.cogs.strikes")


class StrikeGuardBot(commands.Bot):
    """
    Twitch moderation bot.

    Attributes:
        config: Bot configuration
        store: Dataset store shared by the ledger, audit log and dictionary
        gateway: Platform actions used by the moderation core
        matcher: Banned word matcher
        ledger: Strike ledger
        audit: Moderation audit log
        engine: Punishment engine
        pipeline: Message automod pipeline
    """

    def __init__(self, config: Config, store: DatasetStore | None = None) -> None:
        """
        Initialize the bot and the moderation core.

        Args:
            config: Bot configuration object
            store: Dataset store, defaults to the SQLite database in config

        Raises:
            re.error: If a banned word pattern does not compile
            ValueError: If the stored dictionary is malformed
        """
        self.config = config
        self._ready = asyncio.Event()

        super().__init__(
            token=config.oauth_token,
            client_id=config.client_id,
            nick=config.bot_nick,
            prefix=config.prefix,
            initial_channels=config.channels,
        )

        self.store = store or SqliteDatasetStore(config.database_path)
        self.gateway = TwitchGateway(self)
        settings = PunishmentSettings(
            strikes_per_mute=config.strikes_per_mute,
            mute_lengths=config.mute_lengths,
            mute_unit=config.mute_unit,
            expiry=config.strike_expiry,
        )

        entries = load_bad_words(self.store, include_test_word=not config.production)
        self.matcher = BadWordMatcher(entries, settings.partial_strike_count)
        self.ledger = StrikeLedger(self.store, settings.expiry)
        self.audit = AuditLog(self.store, self.gateway, config.mod_log_channel)
        self.engine = PunishmentEngine(
            self.ledger,
            self.gateway,
            self.audit,
            home_channel=config.channels[0],
            settings=settings,
            production=config.production,
        )
        self.pipeline = AutomodPipeline(
            self.matcher,
            self.engine,
            LinkFilter(
                config.advertise_channel,
                set(config.whitelisted_invites),
                set(config.link_channels),
                settings.partial_strike_count,
            ),
            ModerationPolicy(
                guilds=frozenset(config.channels),
                exempt_channels=config.unmoderated_channels,
            ),
            embed_strike_shift=config.embed_strike_shift,
        )

        logger.info("Bot initialized for channels: %s", ", ".join(config.channels))

        # Load cogs immediately (TwitchIO 2.x style)
        for cog_path in COGS:
            self.load_module(cog_path)
            logger.info("Loaded cog: %s", cog_path)

    async def event_ready(self) -> None:
        channels = ", ".join(channel.name for channel in self.connected_channels)
        logger.info("%s is moderating %s", self.nick, channels or "no channels yet")
        self._ready.set()

    async def event_channel_joined(self, channel: Channel) -> None:
        logger.info("Joined channel: %s", channel.name)

    async def event_message(self, message: Message) -> None:
        """Dispatch commands. Automod listens to the same event in its cog."""
        if not message.echo:
            await self.handle_commands(message)

    async def event_command_error(self, context: commands.Context, error: Exception) -> None:
        """
        Report a failed command to its author.

        Unknown commands and failed checks stay silent; the guards in
        utils.permissions already answered when an answer was due.
        """
        if isinstance(error, (commands.CommandNotFound, commands.CheckFailure)):
            return

        name = context.command.name if context.command else "unknown"
        if isinstance(error, commands.MissingRequiredArgument):
            await context.send(f"@{context.author.name} Missing an argument, see {self.config.prefix}{name}.")
            return

        logger.error("Command %s failed", name, exc_info=error)
        await context.send(f"@{context.author.name} Something went wrong running {self.config.prefix}{name}.")

    async def resolve_user(self, name: str) -> Optional[ChatUser]:
        """
        Look up an account by login name.

        Args:
            name: Login name, with or without a leading @

        Returns:
            ChatUser, or None when no such account exists
        """
        login = name.lstrip("@").lower()
        users = await self.fetch_users(names=[login]) if login else []
        if not users:
            return None
        user = users[0]
        return ChatUser(id=str(user.id), name=user.name, display_name=user.display_name or user.name)

    async def wait_until_ready(self) -> None:
        await self._ready.wait()
