"""
Auto-moderation cog.

Runs every chat message through the automod pipeline:
- Banned words, including obfuscated ones
- Server and bot invites outside the advertising channel
- Links to unknown sites from untrusted users
- Display names that cannot be typed or contain banned words
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from twitchio.ext import commands
from twitchio.ext.commands import Context

from strikeguard.automod.matcher import ScanResult, redact
from strikeguard.automod.names import check_display_name
from strikeguard.automod.pipeline import AutomodDecision
from strikeguard.gateway import ChatMessage, ChatUser, GatewayError, PermissionDenied, message_from_twitch
from strikeguard.utils.logging import get_logger
from strikeguard.utils.permissions import author_is_owner, cooldown, is_moderator
from strikeguard.utils.text import join_with_and

if TYPE_CHECKING:
    from twitchio import Message

    from strikeguard.bot import StrikeGuardBot

logger = get_logger(__name__)

WORD_CHECK_COMMAND = "isbadword"


def is_word_check(content: str, prefix: str) -> bool:
    """Whether a message invokes the word check command."""
    words = content.split(maxsplit=1)
    return bool(words) and words[0].lower() == f"{prefix}{WORD_CHECK_COMMAND}"


def describe_scan(result: ScanResult) -> str:
    """
    Explain a scan to whoever asked for it.

    Matched words are shown redacted so the reply never repeats them.
    """
    if not result:
        return "✅ No bad words found."

    words = result.matched
    strikes = f"{result.strikes:g} strike{'' if result.strikes == 1 else 's'}"
    return (
        f"❌ {len(words)} bad word{'' if len(words) == 1 else 's'} detected: "
        f"{join_with_and(words, redact)}. Posting that text would give you {strikes}, so don't."
    )


class AutoMod(commands.Cog):
    """
    Auto-moderation cog.

    Deleted messages get a public notice that removes itself after
    NOTICE_LIFETIME seconds.
    """

    NOTICE_LIFETIME = 300

    def __init__(self, bot: StrikeGuardBot) -> None:
        """Initialize the automod cog."""
        self.bot = bot
        self.enabled: bool = bot.config.automod_enabled
        self._cleanup_tasks: set[asyncio.Task[None]] = set()
        self._checked_names: set[str] = set()
        logger.info("AutoMod cog initialized (%s)", "enabled" if self.enabled else "disabled")

    @commands.Cog.event()
    async def event_message(self, message: Message) -> None:
        """Process incoming messages."""
        if not self.enabled or message.echo:
            return
        if not message.author or not message.content:
            return
        # The word check removes its own message without a strike
        if is_word_check(message.content, self.bot.config.prefix):
            return

        await self.moderate(message_from_twitch(message))

    async def moderate(self, message: ChatMessage) -> AutomodDecision:
        """
        Apply automod to a message and enforce the decision.

        Args:
            message: Incoming message

        Returns:
            AutomodDecision: What the pipeline decided
        """
        await self.check_name(message.author)

        decision = await self.bot.pipeline.evaluate(message)
        if decision.delete:
            await self.enforce(message, decision)
        return decision

    async def enforce(self, message: ChatMessage, decision: AutomodDecision) -> None:
        """Delete a flagged message and post the public notice."""
        channel = message.channel.name
        try:
            await self.bot.gateway.delete_message(channel, message.id)
        except PermissionDenied:
            await self.bot.audit.alert(
                f"⚠️ Unable to delete message {message.id} from {message.author.mention} "
                f"in #{channel} ({' '.join(decision.notices)})",
                user=message.author.id,
            )
            return

        notice_id = await self.bot.gateway.send_message(channel, decision.public_notice(message))
        if notice_id:
            self._schedule_delete(channel, notice_id)

    def _schedule_delete(self, channel: str, message_id: str) -> None:
        task = asyncio.create_task(self._delete_later(channel, message_id))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _delete_later(self, channel: str, message_id: str) -> None:
        await asyncio.sleep(self.NOTICE_LIFETIME)
        try:
            await self.bot.gateway.delete_message(channel, message_id)
        except GatewayError as e:
            logger.debug("Could not remove notice %s in #%s: %s", message_id, channel, e)

    async def check_name(self, user: ChatUser) -> None:
        """Alert moderators, once per session, about an unsuitable display name."""
        if user.id in self._checked_names:
            return
        self._checked_names.add(user.id)

        verdict = check_display_name(user.display_name or user.name, self.bot.matcher, user.name)
        if verdict.acceptable:
            return
        await self.bot.audit.alert(
            f"⚠️ {user.mention} has an unsuitable display name ({verdict.censored}). "
            f"Suggested name: {verdict.suggestion}",
            user=user.id,
        )

    # ==================== Commands ====================

    @commands.command(name="automod")
    @is_moderator()
    async def automod_cmd(self, ctx: Context, action: str = "status") -> None:
        """Control automod. Usage: !automod <on/off/status>"""
        action = action.lower()

        if action in ("on", "off"):
            if not author_is_owner(ctx.author, self.bot.config):
                await ctx.send(f"@{ctx.author.name} Only the owner can enable/disable automod.")
                return

            self.enabled = action == "on"
            state = "ENABLED" if self.enabled else "DISABLED"
            await ctx.send(f"@{ctx.author.name} AutoMod is now {state}.")
            logger.info("AutoMod %s by %s", state.lower(), ctx.author.name)

        elif action == "status":
            status = "ENABLED" if self.enabled else "DISABLED"
            await ctx.send(
                f"@{ctx.author.name} AutoMod: {status} | Banned word tiers: {self.bot.matcher.tiers}"
            )

        else:
            await ctx.send(f"@{ctx.author.name} Usage: !automod <on/off/status>")

    @commands.command(name=WORD_CHECK_COMMAND)
    @cooldown(rate=5.0)
    async def is_bad_word_cmd(self, ctx: Context, *, text: str = "") -> None:
        """Check text for banned words. Usage: !isbadword <text>"""
        if not text.strip():
            await ctx.send(f"@{ctx.author.name} Usage: !{WORD_CHECK_COMMAND} <text>")
            return
        await self.check_text(message_from_twitch(ctx.message), text)

    async def check_text(self, message: ChatMessage, text: str) -> ScanResult:
        """
        Answer a word check.

        The asking message is deleted when the text would be caught, so
        checking never leaves banned words in chat.

        Args:
            message: Message that asked for the check
            text: Text to check

        Returns:
            The scan of text
        """
        result = self.bot.matcher.scan(text)
        channel = message.channel.name
        if result:
            try:
                await self.bot.gateway.delete_message(channel, message.id)
            except GatewayError as e:
                logger.debug("Could not remove word check %s in #%s: %s", message.id, channel, e)
        await self.bot.gateway.send_message(channel, f"{message.author.mention} {describe_scan(result)}")
        return result


def prepare(bot: StrikeGuardBot) -> None:
    """Prepare the cog for loading."""
    bot.add_cog(AutoMod(bot))
