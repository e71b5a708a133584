"""
Moderation audit log.

Every moderation action gets an entry: it is logged, stored in the
"mod_actions" dataset and, when a log channel is configured, posted there.
Entry ids are snowflakes, so they sort by time and double as strike ids.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from strikeguard.gateway import GatewayError
from strikeguard.utils.database import DatasetStore
from strikeguard.utils.logging import get_logger

if TYPE_CHECKING:
    from strikeguard.gateway import Gateway

logger = get_logger(__name__)

DATASET = "mod_actions"
SEQUENCE_BITS = 22


class LogSeverity(Enum):
    """How urgently a moderator should look at an entry."""
    INFO = "info"
    ALERT = "alert"


@dataclass
class AuditEntry:
    """One stored audit log entry."""
    id: str
    date: int
    severity: str
    content: str
    details: dict[str, Any] = field(default_factory=dict)


class SnowflakeGenerator:
    """Time-ordered unique ids: milliseconds shifted left, plus a sequence."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._last_ms = -1
        self._sequence = 0

    def __call__(self) -> int:
        now_ms = int(self.clock() * 1000)
        if now_ms <= self._last_ms:
            # Clock went backwards or same millisecond: keep counting
            now_ms = self._last_ms
            self._sequence += 1
            if self._sequence >= 1 << SEQUENCE_BITS:
                now_ms += 1
                self._sequence = 0
        else:
            self._sequence = 0
        self._last_ms = now_ms
        return (now_ms << SEQUENCE_BITS) | self._sequence


class AuditLog:
    """
    Writes and looks up audit entries.

    Storage failures propagate; posting to the log channel is best effort.
    """

    def __init__(
        self,
        store: DatasetStore,
        gateway: Gateway | None = None,
        channel: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the audit log.

        Args:
            store: Dataset store for entries
            gateway: Gateway used to post entries to the log channel
            channel: Log channel name, entries are only stored when unset
            clock: Time source in seconds
        """
        self.store = store
        self.gateway = gateway
        self.channel = channel
        self.clock = clock
        self._next_id = SnowflakeGenerator(clock)

    async def log(
        self,
        content: str,
        severity: LogSeverity = LogSeverity.INFO,
        **details: Any,
    ) -> AuditEntry:
        """
        Record an entry.

        Args:
            content: Human readable summary
            severity: INFO for routine actions, ALERT when a moderator must act
            **details: Extra JSON-serializable fields to store

        Returns:
            AuditEntry: The stored entry
        """
        entry = AuditEntry(
            id=str(self._next_id()),
            date=int(self.clock() * 1000),
            severity=severity.value,
            content=content,
            details=details,
        )

        records = self.store.read(DATASET)
        records.append(asdict(entry))
        self.store.write(DATASET, records)

        if severity == LogSeverity.ALERT:
            logger.warning("[audit %s] %s", entry.id, content)
        else:
            logger.info("[audit %s] %s", entry.id, content)

        if self.gateway and self.channel:
            prefix = "🚨 " if severity == LogSeverity.ALERT else ""
            try:
                await self.gateway.send_message(self.channel, f"{prefix}{content}")
            except GatewayError as e:
                logger.warning("Could not post audit entry %s to #%s: %s", entry.id, self.channel, e)

        return entry

    async def alert(self, content: str, **details: Any) -> AuditEntry:
        """Record an entry a moderator has to follow up on."""
        return await self.log(content, LogSeverity.ALERT, **details)

    def get(self, entry_id: str) -> AuditEntry | None:
        """Look up an entry by its decimal id."""
        for record in self.store.read(DATASET):
            if record.get("id") == entry_id:
                return AuditEntry(**record)
        return None
