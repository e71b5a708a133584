"""
Message automod pipeline.

Runs every check on one message, issues the strikes and tells the caller
whether to delete the message and what to say about it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from strikeguard.automod.links import INVITE_PATTERN, LinkFilter, LinkViolation
from strikeguard.automod.matcher import BadWordMatcher, CensorResult, merge
from strikeguard.automod.names import ModerationPolicy, bad_words_allowed
from strikeguard.gateway import ChatMessage
from strikeguard.punishments.engine import Note, PunishmentEngine, WarnResult
from strikeguard.utils.logging import get_logger
from strikeguard.utils.text import join_with_and, strip_markdown

logger = get_logger(__name__)

# Looks up the server name behind an invite code, None when unknown
InviteResolver = Callable[[str], Awaitable[Optional[str]]]


@dataclass
class AutomodDecision:
    """
    What to do with a message.

    Attributes:
        delete: The message broke a rule and should be removed
        notices: Sentences for the public warning
        violations: Link rules that were broken
        language: Combined banned word scan, False when clean
        warnings: Strikes issued for the message
    """
    delete: bool = False
    notices: list[str] = field(default_factory=list)
    violations: list[LinkViolation] = field(default_factory=list)
    language: CensorResult | bool = False
    warnings: list[WarnResult] = field(default_factory=list)

    def public_notice(self, message: ChatMessage) -> str:
        """Warning to post in the channel, mentioning anyone who was ghost pinged."""
        text = f"{message.author.mention} " + " ".join(self.notices)
        if message.mentions:
            pinged = join_with_and(message.mentions, lambda name: f"@{name}")
            text += f" (ghost pinged {pinged})"
        return text


class AutomodPipeline:
    """Applies link control and the banned word matcher to chat messages."""

    def __init__(
        self,
        matcher: BadWordMatcher,
        engine: PunishmentEngine,
        link_filter: LinkFilter,
        policy: ModerationPolicy,
        embed_strike_shift: int = 1,
        resolve_invite: InviteResolver | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            matcher: Banned word matcher
            engine: Punishment engine that issues the strikes
            link_filter: Invite and link rules
            policy: Where banned words are tolerated
            embed_strike_shift: Tiers subtracted for text the author did
                not type, such as embeds
            resolve_invite: Optional lookup of invite server names, which
                are scanned for banned words too
        """
        self.matcher = matcher
        self.engine = engine
        self.link_filter = link_filter
        self.policy = policy
        self.embed_strike_shift = embed_strike_shift
        self.resolve_invite = resolve_invite

    async def _invite_names(self, content: str) -> list[str]:
        if self.resolve_invite is None:
            return []
        names = []
        for match in INVITE_PATTERN.finditer(content):
            name = await self.resolve_invite(match.group("code"))
            if name:
                names.append(name)
        return names

    async def evaluate(self, message: ChatMessage) -> AutomodDecision:
        """
        Check a message and issue strikes for what it broke.

        Args:
            message: Incoming message

        Returns:
            AutomodDecision: Whether to delete it and the notice to post
        """
        decision = AutomodDecision()
        if bad_words_allowed(message.channel, self.policy):
            return decision

        author = message.author
        channel = message.channel.base

        decision.violations = self.link_filter.check(
            message.content, channel, author.is_trusted, author.is_bot
        )
        for violation in decision.violations:
            decision.warnings.append(
                await self.engine.warn(
                    author,
                    violation.reason(channel),
                    violation.strikes,
                    Note("\n".join(violation.links)),
                    channel=channel,
                )
            )
            decision.notices.append(violation.notice(self.link_filter.advertise_channel or channel))
            decision.delete = True

        typed = [
            self.matcher.scan(strip_markdown(message.content)),
            *(self.matcher.scan(name) for name in message.sticker_names),
            *(self.matcher.scan(name) for name in await self._invite_names(message.content)),
        ]
        embedded = [
            self.matcher.scan(text, self.embed_strike_shift) for text in message.embed_texts if text
        ]
        decision.language = merge(typed + embedded, self.matcher.tiers)

        if decision.language:
            words = decision.language.matched
            decision.warnings.append(
                await self.engine.warn(
                    author,
                    "Used a banned word" if len(words) == 1 else "Used banned words",
                    decision.language.strikes,
                    Note(", ".join(words)),
                    channel=channel,
                )
            )
            if decision.language.strikes < 1:
                decision.notices.append("Please don't say that here!")
            else:
                decision.notices.append("Please watch your language!")
            decision.delete = True

        if decision.delete:
            logger.info(
                "Automod flagged message %s from %s in #%s", message.id, author.name, channel
            )
        return decision
