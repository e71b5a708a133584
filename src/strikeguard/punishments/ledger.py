"""
Strike ledger.

Strikes are append-only: they expire by age and can be removed or restored
by moderators, but are never deleted. The ledger is the "strikes" dataset.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, replace
from datetime import timedelta

from strikeguard.utils.database import DatasetStore, Record
from strikeguard.utils.logging import get_logger
from strikeguard.utils.numbers import MAX_BASE, convert_base

logger = get_logger(__name__)

DATASET = "strikes"
DEFAULT_EXPIRY = timedelta(days=21)


@dataclass(frozen=True)
class Strike:
    """
    One strike.

    Attributes:
        user: Id of the warned user
        date: When it was issued, in milliseconds since the epoch
        id: Strike id, the audit entry id in base MAX_BASE
        count: Strike weight
        removed: Set by a moderator to void the strike
    """
    user: str
    date: int
    id: str
    count: float
    removed: bool = False

    @classmethod
    def from_record(cls, record: Record) -> Strike:
        return cls(
            user=str(record["user"]),
            date=int(record["date"]),
            id=str(record["id"]),
            count=float(record["count"]),
            removed=bool(record.get("removed", False)),
        )

    def expires_at(self, expiry: timedelta) -> int:
        """Expiry time in milliseconds since the epoch."""
        return self.date + int(expiry.total_seconds() * 1000)

    def is_active(self, now_ms: int, expiry: timedelta) -> bool:
        return not self.removed and self.expires_at(expiry) > now_ms


def total_weight(strikes: list[Strike]) -> float:
    """Sum the weights of strikes."""
    return sum(strike.count for strike in strikes)


class StrikeLedger:
    """
    Reads and appends strikes.

    Every change rewrites the whole dataset, so changes are serialized by a
    lock owned by the ledger.
    """

    def __init__(self, store: DatasetStore, expiry: timedelta = DEFAULT_EXPIRY) -> None:
        """
        Initialize the ledger.

        Args:
            store: Dataset store holding the strikes
            expiry: How long a strike counts towards punishments
        """
        self.store = store
        self.expiry = expiry
        self._lock = asyncio.Lock()

    def all(self) -> list[Strike]:
        return [Strike.from_record(record) for record in self.store.read(DATASET)]

    async def append(self, strike: Strike) -> None:
        """
        Add a strike.

        Raises:
            sqlite3.Error, OSError: If the store cannot be written
        """
        async with self._lock:
            records = self.store.read(DATASET)
            records.append(asdict(strike))
            self.store.write(DATASET, records)
        logger.info("Strike %s added for user %s (%s)", strike.id, strike.user, strike.count)

    def active_strikes_for(self, user_id: str, now_ms: int) -> list[Strike]:
        """
        Strikes that still count against a user.

        Args:
            user_id: User to look up
            now_ms: Current time in milliseconds since the epoch

        Returns:
            list[Strike]: Not removed and not expired, oldest first
        """
        strikes = [
            strike
            for strike in self.all()
            if strike.user == user_id and strike.is_active(now_ms, self.expiry)
        ]
        return sorted(strikes, key=lambda strike: strike.date)

    def strikes_for(self, user_id: str) -> list[Strike]:
        """Every strike a user ever got, newest first."""
        strikes = [strike for strike in self.all() if strike.user == user_id]
        return sorted(strikes, key=lambda strike: strike.date, reverse=True)

    def get(self, strike_id: str) -> Strike | None:
        for strike in self.all():
            if strike.id == strike_id:
                return strike
        return None

    def find(self, query: str) -> Strike | None:
        """Look up a strike by its id, or by the decimal audit entry id it was issued under."""
        strike = self.get(query)
        if strike is None and query.isascii() and query.isdigit():
            strike = self.get(convert_base(query, 10, MAX_BASE))
        return strike

    async def _set_removed(self, strike_id: str, removed: bool) -> Strike | None:
        async with self._lock:
            records = self.store.read(DATASET)
            for index, record in enumerate(records):
                if str(record.get("id")) != strike_id:
                    continue
                strike = Strike.from_record(record)
                if strike.removed != removed:
                    strike = replace(strike, removed=removed)
                    records[index] = asdict(strike)
                    self.store.write(DATASET, records)
                    logger.info(
                        "Strike %s %s", strike_id, "removed" if removed else "restored"
                    )
                return strike
        return None

    async def mark_removed(self, strike_id: str) -> Strike | None:
        """Void a strike. Returns the strike, or None when the id is unknown."""
        return await self._set_removed(strike_id, True)

    async def mark_restored(self, strike_id: str) -> Strike | None:
        """Undo mark_removed. Returns the strike, or None when the id is unknown."""
        return await self._set_removed(strike_id, False)
