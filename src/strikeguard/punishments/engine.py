"""
Punishment state machine.

Strikes add up per user. Every STRIKES_PER_MUTE strikes the user is muted
for the next length in MUTE_LENGTHS. Past the last mute the user gets one
last chance, and the strike after that is a ban. Strikes stop counting once
they expire, so well-behaved users drift back down.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from strikeguard.gateway import ChatUser, DeliveryFailed, Gateway, GatewayError, PermissionDenied
from strikeguard.punishments.ledger import Strike, StrikeLedger, total_weight
from strikeguard.utils.audit import AuditLog
from strikeguard.utils.logging import get_logger
from strikeguard.utils.numbers import MAX_BASE, convert_base

logger = get_logger(__name__)

DEFAULT_STRIKES = 1
STRIKES_PER_MUTE = 3
MUTE_LENGTHS = (8, 16, 36)
EXPIRY_LENGTH = timedelta(days=21)


@dataclass(frozen=True)
class Note:
    """Free-text context attached to an automatic strike."""
    text: str


@dataclass(frozen=True)
class ModeratorAction:
    """A strike issued by hand."""
    moderator: ChatUser


StrikeContext = Union[Note, ModeratorAction]


@dataclass(frozen=True)
class PunishmentSettings:
    """
    Escalation constants.

    Attributes:
        strikes_per_mute: Strikes between two mutes
        mute_lengths: Length of each successive mute, in mute_unit
        mute_unit: Unit of mute_lengths (hours in production)
        expiry: How long a strike counts
    """
    strikes_per_mute: int = STRIKES_PER_MUTE
    mute_lengths: tuple[int, ...] = MUTE_LENGTHS
    mute_unit: timedelta = timedelta(hours=1)
    expiry: timedelta = EXPIRY_LENGTH

    @property
    def partial_strike_count(self) -> float:
        """The smallest weight a strike can have."""
        return 1 / (self.strikes_per_mute + 1)

    @property
    def last_chance_threshold(self) -> int:
        return len(self.mute_lengths) * self.strikes_per_mute

    @property
    def mute_unit_name(self) -> str:
        return "hour" if self.mute_unit >= timedelta(hours=1) else "minute"


@dataclass
class EscalationPlan:
    """What a new strike does to a user."""
    old_weight: float
    added: float
    new_weight: float
    old_tier: int
    new_tier: int
    mute_length: int
    ban: bool
    last_chance: bool
    last_chance_deadline: Optional[int]
    display_strikes: int
    verbal_strikes: int

    @property
    def is_verbal(self) -> bool:
        """Whether the strike shows as a verbal warning."""
        return self.display_strikes == 0


def round_strikes(weight: float, minimum: float) -> float:
    """Round to the nearest quarter, halves rounding up, but at least minimum."""
    return max(math.floor(weight * 4 + 0.5) / 4, minimum)


def plan_escalation(
    old_weight: float,
    added_weight: float,
    settings: PunishmentSettings,
    oldest_active_ms: Optional[int] = None,
    now_ms: int = 0,
) -> EscalationPlan:
    """
    Decide what a new strike does.

    Args:
        old_weight: Total weight of the user's active strikes
        added_weight: Requested weight of the new strike
        settings: Escalation constants
        oldest_active_ms: Date of the oldest active strike, if any
        now_ms: Current time, used when there is no active strike

    Returns:
        EscalationPlan: Mute, ban and notice decisions
    """
    spm = settings.strikes_per_mute
    added = round_strikes(added_weight, settings.partial_strike_count)
    new_weight = old_weight + added

    old_tier = math.floor(old_weight / spm)
    new_tier = math.floor(new_weight / spm)
    mute_length = sum(settings.mute_lengths[old_tier:new_tier])

    threshold = settings.last_chance_threshold
    ban = new_weight > threshold + 1
    last_chance = not ban and new_weight > threshold

    deadline = None
    if last_chance:
        start = oldest_active_ms if oldest_active_ms is not None else now_ms
        deadline = start + int(settings.expiry.total_seconds() * 1000)

    verbal_strikes = math.floor(old_weight % 1 + added % 1)
    return EscalationPlan(
        old_weight=old_weight,
        added=added,
        new_weight=new_weight,
        old_tier=old_tier,
        new_tier=new_tier,
        mute_length=0 if ban else mute_length,
        ban=ban,
        last_chance=last_chance,
        last_chance_deadline=deadline,
        display_strikes=math.trunc(added) + verbal_strikes,
        verbal_strikes=verbal_strikes,
    )


@dataclass
class WarnResult:
    """
    Outcome of a warn.

    Attributes:
        strike: The stored strike
        plan: The escalation decisions
        banned: The ban went through
        muted_until: End of the timeout that went through, if any
        notified: The user got the warning by private message
        alerts: Audit alerts raised for actions that could not be taken
    """
    strike: Strike
    plan: EscalationPlan
    banned: bool = False
    muted_until: Optional[datetime] = None
    notified: bool = False
    alerts: list[str] = field(default_factory=list)


class PunishmentEngine:
    """
    Issues strikes and carries out the punishments they trigger.

    Warns for one user run one at a time, so two messages sent at once
    cannot both read the same old total.
    """

    def __init__(
        self,
        ledger: StrikeLedger,
        gateway: Gateway,
        audit: AuditLog,
        home_channel: str,
        settings: PunishmentSettings | None = None,
        production: bool = False,
        community: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the engine.

        Args:
            ledger: Strike storage
            gateway: Platform actions
            audit: Audit log, its entry ids become strike ids
            home_channel: Channel to moderate in when a warn names none
            settings: Escalation constants
            production: Whether the bot runs in production
            community: Name shown in warning messages
            clock: Time source in seconds
        """
        self.ledger = ledger
        self.gateway = gateway
        self.audit = audit
        self.home_channel = home_channel
        self.settings = settings or PunishmentSettings()
        self.production = production
        self.community = community or home_channel
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: Counter[str] = Counter()

    def can_auto_ban(self, user: ChatUser) -> bool:
        """Supporters are never banned automatically, nor anyone with a role outside production."""
        if user.is_protected:
            return False
        return self.production or not user.is_elevated

    async def warn(
        self,
        user: ChatUser,
        reason: str,
        strikes: float = DEFAULT_STRIKES,
        context: StrikeContext | None = None,
        channel: str | None = None,
    ) -> WarnResult:
        """
        Give a user a strike and punish them if it crosses a threshold.

        Args:
            user: User to warn
            reason: Why, shown to the user and in the audit log
            strikes: Requested weight, rounded to a quarter
            context: A note for automatic strikes, or the moderator
            channel: Channel to mute or ban in

        Returns:
            WarnResult: What was done

        Raises:
            sqlite3.Error, OSError: If the strike cannot be stored
        """
        lock = self._locks.setdefault(user.id, asyncio.Lock())
        self._lock_holders[user.id] += 1
        try:
            async with lock:
                return await self._warn(user, reason, strikes, context, channel or self.home_channel)
        finally:
            # Last warn in flight for this user drops the lock
            self._lock_holders[user.id] -= 1
            if not self._lock_holders[user.id]:
                del self._lock_holders[user.id]
                del self._locks[user.id]

    async def _warn(
        self,
        user: ChatUser,
        reason: str,
        strikes: float,
        context: StrikeContext | None,
        channel: str,
    ) -> WarnResult:
        now_ms = int(self.clock() * 1000)
        active = self.ledger.active_strikes_for(user.id, now_ms)
        plan = plan_escalation(
            total_weight(active),
            strikes,
            self.settings,
            oldest_active_ms=active[0].date if active else None,
            now_ms=now_ms,
        )

        moderator = context.moderator.mention if isinstance(context, ModeratorAction) else "automod"
        notes = [context.text] if isinstance(context, Note) and context.text else []
        if plan.verbal_strikes:
            notes.append("Too many verbal strikes")
        note = "\n".join(notes)

        if plan.display_strikes:
            plural = "" if plan.display_strikes == 1 else "s"
            summary = f"⚠️ {user.mention} gained {plan.display_strikes} strike{plural} from {moderator}!"
        else:
            summary = f"⚠️ {user.mention} verbally warned by {moderator}!"

        entry = await self.audit.log(
            summary,
            action="strike",
            user=user.id,
            moderator=moderator,
            reason=reason,
            context=note,
            count=plan.added,
        )
        strike = Strike(
            user=user.id,
            date=now_ms,
            id=convert_base(entry.id, 10, MAX_BASE),
            count=plan.added,
        )
        result = WarnResult(strike=strike, plan=plan)

        await self.ledger.append(strike)

        result.notified = await self._notify(user, self._warning_text(plan, strike, reason, note))

        if plan.ban:
            await self._ban(user, channel, result)
        elif plan.mute_length:
            await self._mute(user, channel, plan.mute_length, now_ms, result)

        if plan.last_chance and plan.last_chance_deadline is not None:
            deadline = datetime.fromtimestamp(plan.last_chance_deadline / 1000, timezone.utc)
            await self._notify(
                user,
                "This is your last chance. If you get another strike before "
                f"{deadline:%B %d, %Y}, you will be banned.",
            )

        return result

    def _warning_text(self, plan: EscalationPlan, strike: Strike, reason: str, note: str) -> str:
        if plan.is_verbal:
            title = "You were verbally warned"
        elif plan.display_strikes > 1:
            title = f"You were warned {plan.display_strikes} times"
        else:
            title = "You were warned"

        text = f"{title} in {self.community}! {reason}"
        if note:
            text += f" ({note})"
        text += f" | Strike {strike.id}"
        if not plan.is_verbal:
            text += f" | Expiring in {self.settings.expiry.days} days"
        return text

    async def _notify(self, user: ChatUser, text: str) -> bool:
        try:
            await self.gateway.send_direct(user, text)
        except DeliveryFailed as e:
            logger.debug("Could not message %s: %s", user.name, e)
            return False
        return True

    async def _alert(self, user: ChatUser, text: str, result: WarnResult) -> None:
        entry = await self.audit.alert(text, user=user.id)
        result.alerts.append(entry.content)

    async def _ban(self, user: ChatUser, channel: str, result: WarnResult) -> None:
        denied = f"⚠️ Missing permissions to ban {user.mention}."
        if not self.can_auto_ban(user):
            await self._alert(user, denied, result)
            return

        try:
            await self.gateway.ban_user(channel, user, "Too many strikes")
        except PermissionDenied:
            await self._alert(user, denied, result)
            return
        except GatewayError as e:
            logger.warning("Ban of %s in #%s failed: %s", user.name, channel, e)
            await self._alert(user, f"⚠️ Could not ban {user.mention}: {e}", result)
            return
        result.banned = True
        logger.info("Banned %s for too many strikes", user.name)

    async def _mute(
        self, user: ChatUser, channel: str, length: int, now_ms: int, result: WarnResult
    ) -> None:
        until = datetime.fromtimestamp(now_ms / 1000, timezone.utc) + length * self.settings.mute_unit
        duration = f"{length} {self.settings.mute_unit_name}{'' if length == 1 else 's'}"
        try:
            await self.gateway.timeout_user(channel, user, until, "Too many strikes")
        except PermissionDenied:
            await self._alert(user, f"⚠️ Missing permissions to mute {user.mention} for {duration}.", result)
            return
        except GatewayError as e:
            logger.warning("Mute of %s in #%s failed: %s", user.name, channel, e)
            await self._alert(user, f"⚠️ Could not mute {user.mention} for {duration}: {e}", result)
            return
        result.muted_until = until
        logger.info("Muted %s for %d %ss", user.name, length, self.settings.mute_unit_name)
