"""
Chat platform gateway.

The moderation core only talks to the platform through the Gateway protocol
defined here. TwitchGateway implements it on top of a TwitchIO bot using chat
commands, the same way the moderation commands do.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from strikeguard.utils.logging import get_logger

if TYPE_CHECKING:
    from twitchio import Channel, Message

    from strikeguard.bot import StrikeGuardBot

logger = get_logger(__name__)

MAX_TIMEOUT_SECONDS = 1_209_600  # 2 weeks


class GatewayError(Exception):
    """A platform request failed."""


class PermissionDenied(GatewayError):
    """The bot is not allowed to perform the request."""


class DeliveryFailed(GatewayError):
    """A private message could not be delivered."""


class ChannelKind(Enum):
    """Kinds of conversation a message can arrive in."""
    TEXT = "text"
    DM = "dm"
    PRIVATE_THREAD = "private_thread"


@dataclass(frozen=True)
class ChatUser:
    """A platform account as seen by the moderation core."""
    id: str
    name: str
    display_name: str = ""
    is_mod: bool = False
    is_broadcaster: bool = False
    is_vip: bool = False
    is_subscriber: bool = False
    is_bot: bool = False

    @property
    def mention(self) -> str:
        return f"@{self.name}"

    @property
    def is_protected(self) -> bool:
        """Paying supporters are never banned automatically."""
        return self.is_subscriber

    @property
    def is_elevated(self) -> bool:
        return self.is_mod or self.is_broadcaster or self.is_vip

    @property
    def is_trusted(self) -> bool:
        return self.is_elevated or self.is_subscriber


@dataclass(frozen=True)
class ChannelInfo:
    """Where a message was sent."""
    name: str
    kind: ChannelKind = ChannelKind.TEXT
    parent: str | None = None
    category: str | None = None
    guild: str | None = None
    everyone_can_view: bool = True

    @property
    def base(self) -> str:
        """The channel itself, or the channel a thread lives in."""
        return self.parent or self.name


@dataclass
class ChatMessage:
    """A message event, stripped down to what automod reads."""
    id: str
    content: str
    author: ChatUser
    channel: ChannelInfo
    sticker_names: list[str] = field(default_factory=list)
    embed_texts: list[str] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)


class Gateway(Protocol):
    """Requests the moderation core can make of the platform."""

    async def send_message(self, channel: str, content: str) -> str | None:
        """Send a message; returns its id when the platform reports one."""
        ...

    async def delete_message(self, channel: str, message_id: str) -> None:
        ...

    async def timeout_user(
        self, channel: str, user: ChatUser, until: datetime, reason: str
    ) -> None:
        ...

    async def ban_user(self, channel: str, user: ChatUser, reason: str) -> None:
        ...

    async def send_direct(self, user: ChatUser, content: str) -> None:
        ...


class TwitchGateway:
    """
    Gateway backed by a TwitchIO bot.

    Moderation requests are sent as chat commands in the target channel. The
    bot must be a moderator there, otherwise PermissionDenied is raised
    before anything is sent.
    """

    def __init__(self, bot: StrikeGuardBot) -> None:
        self.bot = bot

    def _channel(self, name: str) -> Channel:
        channel = self.bot.get_channel(name)
        if channel is None:
            raise GatewayError(f"Not connected to channel {name}")
        return channel

    def _moderated_channel(self, name: str) -> Channel:
        channel = self._channel(name)
        me = channel.get_chatter(self.bot.nick)
        if me is None or not getattr(me, "is_mod", False):
            raise PermissionDenied(f"Bot is not a moderator in {name}")
        return channel

    async def send_message(self, channel: str, content: str) -> str | None:
        await self._channel(channel).send(content[:500])
        # IRC does not echo message ids back to the sender
        return None

    async def delete_message(self, channel: str, message_id: str) -> None:
        await self._moderated_channel(channel).send(f"/delete {message_id}")

    async def timeout_user(
        self, channel: str, user: ChatUser, until: datetime, reason: str
    ) -> None:
        seconds = math.ceil((until - datetime.now(timezone.utc)).total_seconds())
        seconds = max(1, min(seconds, MAX_TIMEOUT_SECONDS))
        await self._moderated_channel(channel).send(
            f"/timeout {user.name} {seconds} {reason[:100]}"
        )

    async def ban_user(self, channel: str, user: ChatUser, reason: str) -> None:
        await self._moderated_channel(channel).send(f"/ban {user.name} {reason[:100]}")

    async def send_direct(self, user: ChatUser, content: str) -> None:
        home = self.bot.config.channels[0]
        try:
            await self._channel(home).send(f"/w {user.name} {content[:450]}")
        except GatewayError as e:
            raise DeliveryFailed(str(e)) from e


def user_from_twitch(author: object) -> ChatUser:
    """Build a ChatUser from a TwitchIO chatter."""
    return ChatUser(
        id=str(getattr(author, "id", None) or getattr(author, "name", "")),
        name=getattr(author, "name", "") or "",
        display_name=getattr(author, "display_name", None) or getattr(author, "name", "") or "",
        is_mod=getattr(author, "is_mod", False),
        is_broadcaster=getattr(author, "is_broadcaster", False),
        is_vip=getattr(author, "is_vip", False),
        is_subscriber=getattr(author, "is_subscriber", False),
    )


def message_from_twitch(message: Message) -> ChatMessage:
    """
    Build a ChatMessage from a TwitchIO message.

    Whispers arrive without a channel and are treated as direct messages.
    """
    if message.channel is None:
        channel = ChannelInfo(name="", kind=ChannelKind.DM)
    else:
        channel = ChannelInfo(name=message.channel.name, guild=message.channel.name)

    mentions = [word[1:].lower() for word in message.content.split() if word.startswith("@")]
    return ChatMessage(
        id=str(message.id or ""),
        content=message.content,
        author=user_from_twitch(message.author),
        channel=channel,
        mentions=mentions,
    )
