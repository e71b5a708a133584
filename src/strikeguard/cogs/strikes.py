"""
Strike commands.

Lets users look up their own strikes and moderators look up, issue, remove
and restore anyone's.
"""

from __future__ import annotations

import math
import re
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from twitchio.ext import commands
from twitchio.ext.commands import Context

from strikeguard.gateway import ChatUser, user_from_twitch
from strikeguard.punishments.engine import ModeratorAction
from strikeguard.punishments.ledger import Strike, total_weight
from strikeguard.utils.logging import get_logger
from strikeguard.utils.numbers import MAX_BASE, convert_base
from strikeguard.utils.permissions import author_is_moderator, cooldown, is_moderator
from strikeguard.utils.text import truncate_text

if TYPE_CHECKING:
    from strikeguard.bot import StrikeGuardBot

logger = get_logger(__name__)

MAX_LISTED = 8
COUNT_PATTERN = re.compile(r"\d+(?:\.\d+)?")


def format_age(date_ms: int, now_ms: int) -> str:
    """Describe how long ago a timestamp was, in its largest whole unit."""
    seconds = max(0, (now_ms - date_ms) // 1000)
    for name, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            amount = seconds // size
            return f"{amount} {name}{'' if amount == 1 else 's'} ago"
    return "just now"


def format_strike(strike: Strike, now_ms: int) -> str:
    """One line of a strike list: id, weight when not 1, and age."""
    text = strike.id
    if strike.count != 1:
        text += " (verbal)" if strike.count < 1 else f" (x{strike.count:g})"
    text += f" - {format_age(strike.date, now_ms)}"
    return f"~{text}~" if strike.removed else text


class Strikes(commands.Cog):
    """Strike lookup and manual moderation commands."""

    def __init__(self, bot: StrikeGuardBot) -> None:
        self.bot = bot

    def _now_ms(self) -> int:
        return int(time.time() * 1000)

    @commands.command(name="strikes")
    @cooldown(rate=5.0)
    async def strikes_cmd(self, ctx: Context, username: str = "") -> None:
        """View your or (moderators only) someone else's strikes. Usage: !strikes [@username]"""
        if username and username.lstrip("@").lower() != ctx.author.name.lower():
            if not author_is_moderator(ctx.author, self.bot.config):
                await ctx.send(
                    f"@{ctx.author.name} You don't have permission to view this member's strikes!"
                )
                return
            user = await self.bot.resolve_user(username)
            if user is None:
                await ctx.send(f"@{ctx.author.name} User {username} not found.")
                return
        else:
            user = user_from_twitch(ctx.author)

        strikes = self.bot.ledger.strikes_for(user.id)
        if not strikes:
            await ctx.send(f"@{ctx.author.name} {user.name} has never been warned!")
            return

        now_ms = self._now_ms()
        active = math.trunc(total_weight(self.bot.ledger.active_strikes_for(user.id, now_ms)))
        listed = ", ".join(format_strike(strike, now_ms) for strike in strikes[:MAX_LISTED])
        more = f" and {len(strikes) - MAX_LISTED} more" if len(strikes) > MAX_LISTED else ""
        await ctx.send(
            f"@{ctx.author.name} {user.name}'s strikes ({active} active): {listed}{more}"
        )

    @commands.command(name="strike")
    @cooldown(rate=3.0)
    async def strike_cmd(self, ctx: Context, strike_id: str = "") -> None:
        """View a strike by ID. Usage: !strike <id>"""
        if not strike_id:
            await ctx.send(f"@{ctx.author.name} Usage: !strike <id>")
            return

        strike = self.bot.ledger.find(strike_id)
        if strike is None:
            await ctx.send(f"@{ctx.author.name} Invalid strike ID!")
            return

        is_mod = author_is_moderator(ctx.author, self.bot.config)
        if strike.user != str(ctx.author.id) and not is_mod:
            await ctx.send(
                f"@{ctx.author.name} You don't have permission to view this member's strikes!"
            )
            return

        entry = self.bot.audit.get(convert_base(strike.id, MAX_BASE, 10))
        reason = entry.details.get("reason", "") if entry else ""
        issued = datetime.fromtimestamp(strike.date / 1000, timezone.utc)

        parts = [
            f"Strike {strike.id}" + (" (removed)" if strike.removed else ""),
            f"Count: {strike.count:g}",
            f"Issued: {issued:%Y-%m-%d %H:%M} UTC",
        ]
        if is_mod and entry:
            parts.append(f"Moderator: {entry.details.get('moderator', 'unknown')}")
        if reason:
            parts.append(f"Reason: {truncate_text(reason, 150)}")
        await ctx.send(f"@{ctx.author.name} " + " | ".join(parts))

    async def _toggle(self, ctx: Context, strike_id: str, removed: bool) -> None:
        verb = "removestrike" if removed else "restorestrike"
        if not strike_id:
            await ctx.send(f"@{ctx.author.name} Usage: !{verb} <id>")
            return

        found = self.bot.ledger.find(strike_id)
        if found is None:
            await ctx.send(f"@{ctx.author.name} Invalid strike ID!")
            return

        if found.removed == removed:
            state = "already removed" if removed else "not removed"
            await ctx.send(f"@{ctx.author.name} Strike {found.id} is {state}.")
            return

        if removed:
            strike = await self.bot.ledger.mark_removed(found.id)
        else:
            strike = await self.bot.ledger.mark_restored(found.id)
        if strike is None:
            await ctx.send(f"@{ctx.author.name} Invalid strike ID!")
            return

        action = "Removed" if removed else "Restored"
        await self.bot.audit.log(
            f"{action} strike {strike.id} of user {strike.user} by @{ctx.author.name}",
            action=verb,
            strike=strike.id,
            moderator=ctx.author.name,
        )
        await ctx.send(f"@{ctx.author.name} {action} strike {strike.id}.")

    @commands.command(name="removestrike")
    @is_moderator()
    async def remove_strike_cmd(self, ctx: Context, strike_id: str = "") -> None:
        """Remove a strike. Usage: !removestrike <id>"""
        await self._toggle(ctx, strike_id, True)

    @commands.command(name="restorestrike")
    @is_moderator()
    async def restore_strike_cmd(self, ctx: Context, strike_id: str = "") -> None:
        """Add a removed strike back. Usage: !restorestrike <id>"""
        await self._toggle(ctx, strike_id, False)

    @commands.command(name="warn")
    @is_moderator()
    async def warn_cmd(self, ctx: Context, username: str = "", *, rest: str = "") -> None:
        """Warn a user. Usage: !warn @username [count] <reason>"""
        count = 1.0
        words = rest.split(maxsplit=1)
        if words and COUNT_PATTERN.fullmatch(words[0]):
            count = float(words[0])
            rest = words[1] if len(words) > 1 else ""

        if not username or not rest.strip():
            await ctx.send(f"@{ctx.author.name} Usage: !warn @username [count] <reason>")
            return

        user = await self.bot.resolve_user(username)
        if user is None:
            await ctx.send(f"@{ctx.author.name} User {username} not found.")
            return

        moderator: ChatUser = user_from_twitch(ctx.author)
        result = await self.bot.engine.warn(
            user,
            rest.strip(),
            count,
            ModeratorAction(moderator),
            channel=ctx.channel.name,
        )

        if result.plan.is_verbal:
            outcome = "verbally warned"
        else:
            plural = "" if result.plan.display_strikes == 1 else "s"
            outcome = f"given {result.plan.display_strikes} strike{plural}"
        await ctx.send(f"@{ctx.author.name} {user.name} was {outcome} (strike {result.strike.id}).")
        logger.info("Manual strike %s added to %s by %s", result.strike.id, user.name, ctx.author.name)


def prepare(bot: StrikeGuardBot) -> None:
    """Prepare the cog for loading."""
    bot.add_cog(Strikes(bot))
