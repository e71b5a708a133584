"""
Command guards.

is_moderator() answers non-moderators with a refusal; cooldown() drops
repeated uses without a reply.
"""

from __future__ import annotations

import time
from collections import defaultdict
from functools import wraps
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from twitchio.ext.commands import Context

from strikeguard.utils.logging import get_logger

if TYPE_CHECKING:
    from strikeguard.config import Config

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def author_is_owner(author: Any, config: Config | None) -> bool:
    return config is not None and author.name.lower() == config.owner.lower()


def author_is_moderator(author: Any, config: Config | None) -> bool:
    """Channel moderators, the broadcaster and the bot owner."""
    return bool(author.is_mod or author.is_broadcaster) or author_is_owner(author, config)


class CooldownManager:
    """Last use of every command, per channel and user."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._last_used: defaultdict[str, dict[str, float]] = defaultdict(dict)

    def try_use(self, command_name: str, key: str, rate: float) -> float:
        """
        Record a use of a command unless it is still cooling down.

        Args:
            command_name: Command being used
            key: Who is using it, as "channel:user"
            rate: Seconds between two uses

        Returns:
            float: Seconds left to wait, 0 when the use was recorded
        """
        now = self.clock()
        last = self._last_used[command_name].get(key)
        if last is not None and now - last < rate:
            return rate - (now - last)
        self._last_used[command_name][key] = now
        return 0


_cooldowns = CooldownManager()


def _guard(check: Callable[[Any, Context, str], Awaitable[bool]]) -> Callable[[F], F]:
    """Build a command decorator that only runs the command when check passes."""

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(self: Any, ctx: Context, *args: Any, **kwargs: Any) -> Any:
            if not await check(self, ctx, func.__name__):
                return None
            return await func(self, ctx, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def is_moderator() -> Callable[[F], F]:
    """Restrict a command to moderators, the broadcaster and the owner."""

    async def check(cog: Any, ctx: Context, command: str) -> bool:
        if author_is_moderator(ctx.author, getattr(cog.bot, "config", None)):
            return True
        logger.warning("%s tried moderator command %s in #%s", ctx.author.name, command, ctx.channel.name)
        await ctx.send(f"@{ctx.author.name} This command is for moderators only.")
        return False

    return _guard(check)


def cooldown(rate: float = 3.0) -> Callable[[F], F]:
    """
    Limit how often each user may run a command in a channel.

    Args:
        rate: Seconds between two uses
    """

    async def check(cog: Any, ctx: Context, command: str) -> bool:
        remaining = _cooldowns.try_use(command, f"{ctx.channel.name}:{ctx.author.name}", rate)
        if remaining:
            logger.debug("%s is on cooldown for %s (%.1fs left)", command, ctx.author.name, remaining)
        return not remaining

    return _guard(check)
