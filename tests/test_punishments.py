"""
Tests for strikes and punishments.

These tests verify:
- The strike ledger (expiry, lookup, removal)
- Escalation planning (mutes, last chance, bans)
- The punishment engine against a fake gateway
"""

from __future__ import annotations

import asyncio
import sqlite3
import sys
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from strikeguard.gateway import ChatUser, DeliveryFailed, GatewayError, PermissionDenied
from strikeguard.punishments.engine import (
    ModeratorAction,
    Note,
    PunishmentEngine,
    PunishmentSettings,
    plan_escalation,
    round_strikes,
)
from strikeguard.punishments.ledger import Strike, StrikeLedger, total_weight
from strikeguard.utils.audit import AuditLog
from strikeguard.utils.database import MemoryDatasetStore
from strikeguard.utils.numbers import MAX_BASE, convert_base

DAY_MS = 86_400_000
NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


class FakeClock:
    """Settable time source in seconds."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.send_message = AsyncMock(return_value=None)
    gateway.delete_message = AsyncMock()
    gateway.timeout_user = AsyncMock()
    gateway.ban_user = AsyncMock()
    gateway.send_direct = AsyncMock()
    return gateway


def make_engine(
    strikes: list[Strike] | None = None,
    production: bool = True,
    gateway: MagicMock | None = None,
) -> PunishmentEngine:
    clock = FakeClock()
    store = MemoryDatasetStore({"strikes": [asdict(strike) for strike in strikes or []]})
    return PunishmentEngine(
        StrikeLedger(store),
        gateway or make_gateway(),
        AuditLog(store, clock=clock),
        home_channel="home",
        settings=PunishmentSettings(),
        production=production,
        community="Test Community",
        clock=clock,
    )


def strike(user: str = "1", days_ago: float = 1, count: float = 1, removed: bool = False, strike_id: str = "") -> Strike:
    date = NOW_MS - int(days_ago * DAY_MS)
    return Strike(user=user, date=date, id=strike_id or f"s{date}", count=count, removed=removed)


BOB = ChatUser(id="1", name="bob", display_name="Bob")


class TestLedger:
    """Tests for the strike ledger."""

    def test_active_strikes_skip_expired_and_removed(self) -> None:
        store = MemoryDatasetStore({
            "strikes": [
                asdict(strike(days_ago=1, strike_id="new")),
                asdict(strike(days_ago=5, strike_id="old")),
                asdict(strike(days_ago=22, strike_id="expired")),
                asdict(strike(days_ago=2, strike_id="removed", removed=True)),
                asdict(strike(user="2", days_ago=1, strike_id="other")),
            ]
        })
        ledger = StrikeLedger(store)

        active = ledger.active_strikes_for("1", NOW_MS)

        assert [s.id for s in active] == ["old", "new"]
        assert total_weight(active) == 2
        assert [s.id for s in ledger.strikes_for("1")] == ["new", "removed", "old", "expired"]

    def test_expiry_boundary(self) -> None:
        exactly = strike(days_ago=21)
        assert not exactly.is_active(NOW_MS, timedelta(days=21))
        assert exactly.is_active(NOW_MS - 1, timedelta(days=21))

    def test_append_and_find(self) -> None:
        ledger = StrikeLedger(MemoryDatasetStore())
        entry_id = "1063217845512658944"
        strike_id = convert_base(entry_id, 10, MAX_BASE)

        asyncio.run(ledger.append(Strike(user="1", date=NOW_MS, id=strike_id, count=0.25)))

        assert ledger.get(strike_id).count == 0.25
        assert ledger.find(strike_id).id == strike_id
        assert ledger.find(entry_id).id == strike_id
        assert ledger.find("nope") is None

    def test_remove_and_restore(self) -> None:
        ledger = StrikeLedger(MemoryDatasetStore({"strikes": [asdict(strike(strike_id="abc"))]}))

        removed = asyncio.run(ledger.mark_removed("abc"))
        assert removed.removed
        assert ledger.active_strikes_for("1", NOW_MS) == []

        restored = asyncio.run(ledger.mark_restored("abc"))
        assert not restored.removed
        assert len(ledger.active_strikes_for("1", NOW_MS)) == 1

        assert asyncio.run(ledger.mark_removed("missing")) is None


class TestEscalationPlan:
    """Tests for plan_escalation."""

    SETTINGS = PunishmentSettings()

    def test_rounding(self) -> None:
        assert round_strikes(1, 0.25) == 1
        assert round_strikes(1.125, 0.25) == 1.25
        assert round_strikes(1.3, 0.25) == 1.25
        assert round_strikes(0.1, 0.25) == 0.25
        assert round_strikes(0, 0.25) == 0.25

    def test_partial_strike_count(self) -> None:
        assert self.SETTINGS.partial_strike_count == 0.25
        assert PunishmentSettings(strikes_per_mute=1).partial_strike_count == 0.5

    def test_no_punishment_below_threshold(self) -> None:
        plan = plan_escalation(0, 1, self.SETTINGS)

        assert plan.new_weight == 1
        assert plan.mute_length == 0
        assert not plan.ban
        assert not plan.last_chance
        assert plan.display_strikes == 1

    @pytest.mark.parametrize(
        "old, added, mute",
        [(2, 1, 8), (5, 1, 16), (8, 1, 36), (0, 3, 8), (0, 6, 24), (2.75, 0.25, 8)],
    )
    def test_mutes(self, old: float, added: float, mute: int) -> None:
        plan = plan_escalation(old, added, self.SETTINGS)

        assert plan.mute_length == mute
        assert not plan.ban

    def test_last_chance(self) -> None:
        plan = plan_escalation(9, 1, self.SETTINGS, oldest_active_ms=5000, now_ms=9000)

        assert plan.last_chance
        assert not plan.ban
        assert plan.mute_length == 0
        assert plan.last_chance_deadline == 5000 + 21 * DAY_MS

    def test_last_chance_without_active_strikes(self) -> None:
        plan = plan_escalation(0, 10, self.SETTINGS, now_ms=9000)

        assert plan.last_chance
        assert plan.last_chance_deadline == 9000 + 21 * DAY_MS

    def test_ban(self) -> None:
        plan = plan_escalation(10, 1, self.SETTINGS)

        assert plan.ban
        assert not plan.last_chance
        assert plan.mute_length == 0

    def test_ban_threshold(self) -> None:
        """Test that a ban needs more than one strike past the last mute."""
        assert not plan_escalation(9.75, 0.25, self.SETTINGS).ban
        assert plan_escalation(10, 0.25, self.SETTINGS).ban

    def test_verbal_strikes(self) -> None:
        """Test that partial strikes show as verbal until they add up."""
        first = plan_escalation(0, 0.25, self.SETTINGS)
        assert first.is_verbal
        assert first.display_strikes == 0

        fourth = plan_escalation(0.75, 0.25, self.SETTINGS)
        assert fourth.verbal_strikes == 1
        assert fourth.display_strikes == 1
        assert not fourth.is_verbal

        mixed = plan_escalation(0.5, 1.75, self.SETTINGS)
        assert mixed.display_strikes == 2


class TestPunishmentEngine:
    """Tests for PunishmentEngine.warn."""

    def test_warn_stores_strike_and_notifies(self) -> None:
        engine = make_engine()

        result = asyncio.run(engine.warn(BOB, "Spamming", 1, Note("buy followers")))

        assert result.notified
        assert result.strike.count == 1
        assert engine.ledger.get(result.strike.id) == result.strike
        assert result.muted_until is None

        entry = engine.audit.get(convert_base(result.strike.id, MAX_BASE, 10))
        assert entry.content == "⚠️ @bob gained 1 strike from automod!"
        assert entry.details["reason"] == "Spamming"
        assert entry.details["context"] == "buy followers"

        text = engine.gateway.send_direct.await_args.args[1]
        assert text.startswith("You were warned in Test Community! Spamming (buy followers)")
        assert f"Strike {result.strike.id}" in text
        assert "Expiring in 21 days" in text

    def test_moderator_warn_is_attributed(self) -> None:
        engine = make_engine()
        mod = ChatUser(id="9", name="mod", is_mod=True)

        result = asyncio.run(engine.warn(BOB, "Rude", 2, ModeratorAction(mod)))

        entry = engine.audit.get(convert_base(result.strike.id, MAX_BASE, 10))
        assert entry.content == "⚠️ @bob gained 2 strikes from @mod!"
        assert entry.details["moderator"] == "@mod"

    def test_verbal_warning(self) -> None:
        engine = make_engine()

        result = asyncio.run(engine.warn(BOB, "Mild language", 0.25))

        assert result.plan.is_verbal
        assert result.strike.count == 0.25
        text = engine.gateway.send_direct.await_args.args[1]
        assert text.startswith("You were verbally warned")
        assert "Expiring" not in text

    def test_escalation_scenario(self) -> None:
        """Test the full path from first mute to ban."""
        gateway = make_gateway()
        engine = make_engine(gateway=gateway)
        start = datetime.fromtimestamp(NOW, timezone.utc)

        asyncio.run(engine.warn(BOB, "one", 3))
        gateway.timeout_user.assert_awaited_with("home", BOB, start + timedelta(hours=8), "Too many strikes")

        asyncio.run(engine.warn(BOB, "two", 3))
        gateway.timeout_user.assert_awaited_with("home", BOB, start + timedelta(hours=16), "Too many strikes")

        result = asyncio.run(engine.warn(BOB, "three", 3, channel="other"))
        gateway.timeout_user.assert_awaited_with("other", BOB, start + timedelta(hours=36), "Too many strikes")
        assert result.muted_until == start + timedelta(hours=36)

        result = asyncio.run(engine.warn(BOB, "four", 1))
        assert result.plan.last_chance
        assert gateway.timeout_user.await_count == 3
        last = gateway.send_direct.await_args.args[1]
        assert last.startswith("This is your last chance.")
        gateway.ban_user.assert_not_awaited()

        result = asyncio.run(engine.warn(BOB, "five", 1))
        assert result.banned
        gateway.ban_user.assert_awaited_once_with("home", BOB, "Too many strikes")
        assert gateway.timeout_user.await_count == 3

        assert total_weight(engine.ledger.active_strikes_for(BOB.id, NOW_MS)) == 11

    def test_strikes_expire(self) -> None:
        """Test that expired strikes no longer escalate."""
        engine = make_engine([strike(days_ago=30, count=2)])

        result = asyncio.run(engine.warn(BOB, "again", 1))

        assert result.plan.old_weight == 0
        engine.gateway.timeout_user.assert_not_awaited()

    def test_undeliverable_warning_is_not_fatal(self) -> None:
        gateway = make_gateway()
        gateway.send_direct = AsyncMock(side_effect=DeliveryFailed("whispers disabled"))
        engine = make_engine([strike(count=2)], gateway=gateway)

        result = asyncio.run(engine.warn(BOB, "Spam", 1))

        assert not result.notified
        assert engine.ledger.get(result.strike.id) is not None
        gateway.timeout_user.assert_awaited_once()

    def test_missing_mute_permission_alerts(self) -> None:
        gateway = make_gateway()
        gateway.timeout_user = AsyncMock(side_effect=PermissionDenied("not a mod"))
        engine = make_engine([strike(count=2)], gateway=gateway)

        result = asyncio.run(engine.warn(BOB, "Spam", 1))

        assert result.muted_until is None
        assert result.alerts == ["⚠️ Missing permissions to mute @bob for 8 hours."]
        assert engine.ledger.get(result.strike.id) is not None

    def test_development_mutes_in_minutes(self) -> None:
        gateway = make_gateway()
        gateway.timeout_user = AsyncMock(side_effect=PermissionDenied("not a mod"))
        engine = make_engine([strike(count=2)], gateway=gateway)
        engine.settings = PunishmentSettings(mute_unit=timedelta(minutes=1))

        result = asyncio.run(engine.warn(BOB, "Spam", 1))

        assert result.alerts == ["⚠️ Missing permissions to mute @bob for 8 minutes."]

    def test_protected_users_are_not_banned(self) -> None:
        gateway = make_gateway()
        supporter = ChatUser(id="1", name="bob", is_subscriber=True)
        engine = make_engine([strike(count=10)], gateway=gateway)

        result = asyncio.run(engine.warn(supporter, "Again", 1))

        assert result.plan.ban
        assert not result.banned
        assert result.alerts == ["⚠️ Missing permissions to ban @bob."]
        gateway.ban_user.assert_not_awaited()

    def test_missing_ban_permission_alerts(self) -> None:
        gateway = make_gateway()
        gateway.ban_user = AsyncMock(side_effect=PermissionDenied("not a mod"))
        engine = make_engine([strike(count=10)], gateway=gateway)

        result = asyncio.run(engine.warn(BOB, "Again", 1))

        assert not result.banned
        assert result.alerts == ["⚠️ Missing permissions to ban @bob."]

    def test_can_auto_ban(self) -> None:
        vip = ChatUser(id="2", name="vip", is_vip=True)
        supporter = ChatUser(id="3", name="sub", is_subscriber=True)

        production = make_engine(production=True)
        development = make_engine(production=False)

        assert production.can_auto_ban(BOB)
        assert production.can_auto_ban(vip)
        assert not production.can_auto_ban(supporter)
        assert development.can_auto_ban(BOB)
        assert not development.can_auto_ban(vip)

    def test_storage_failure_propagates(self) -> None:
        """Test that a strike that cannot be stored is never enforced."""
        engine = make_engine([strike(count=2)])
        engine.ledger.append = AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error"))

        with pytest.raises(sqlite3.OperationalError):
            asyncio.run(engine.warn(BOB, "Spam", 1))

        engine.gateway.timeout_user.assert_not_awaited()
        # Nobody is told about a strike that was never stored
        engine.gateway.send_direct.assert_not_awaited()
        assert engine._locks == {}

    def test_unreachable_channel_mute_alerts(self) -> None:
        """Test that a failed mute is reported and the warn carries on."""
        gateway = make_gateway()
        gateway.timeout_user = AsyncMock(side_effect=GatewayError("Not connected to channel home"))
        engine = make_engine([strike(count=8.5)], gateway=gateway)

        result = asyncio.run(engine.warn(BOB, "Spam", 1))

        assert result.muted_until is None
        assert result.alerts == ["⚠️ Could not mute @bob for 36 hours: Not connected to channel home"]
        assert result.plan.last_chance
        assert gateway.send_direct.await_args.args[1].startswith("This is your last chance.")
        assert engine.ledger.get(result.strike.id) is not None

    def test_unreachable_channel_ban_alerts(self) -> None:
        gateway = make_gateway()
        gateway.ban_user = AsyncMock(side_effect=GatewayError("Not connected to channel home"))
        engine = make_engine([strike(count=10)], gateway=gateway)

        result = asyncio.run(engine.warn(BOB, "Again", 1))

        assert not result.banned
        assert result.alerts == ["⚠️ Could not ban @bob: Not connected to channel home"]

    def test_concurrent_warns_are_serialized(self) -> None:
        """Test that simultaneous warns each see the previous one."""
        engine = make_engine([strike(count=2)])

        async def warn_twice():
            return await asyncio.gather(
                engine.warn(BOB, "first", 1),
                engine.warn(BOB, "second", 1),
            )

        first, second = asyncio.run(warn_twice())

        assert {first.plan.old_weight, second.plan.old_weight} == {2, 3}
        assert engine.gateway.timeout_user.await_count == 1

    def test_user_locks_are_released(self) -> None:
        """Test that per-user locks do not outlive the warns using them."""
        engine = make_engine()

        async def warn_many():
            await asyncio.gather(
                engine.warn(BOB, "first", 1),
                engine.warn(BOB, "second", 1),
                engine.warn(ChatUser(id="2", name="alice"), "third", 1),
            )
            return dict(engine._locks)

        assert asyncio.run(warn_many()) == {}
        assert engine._lock_holders == {}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
