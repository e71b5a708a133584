"""
Tests for the utility modules.

These tests verify:
- Text normalization and formatting
- Base conversion of strike ids
- Dataset stores
- The moderation audit log
"""

from __future__ import annotations

import asyncio
import os
import sqlite3
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestText:
    """Tests for text helpers."""

    def test_caesar_is_its_own_inverse(self) -> None:
        from strikeguard.utils.text import caesar

        assert caesar("Hello, World!") == "Uryyb, Jbeyq!"
        assert caesar(caesar("automodmute")) == "automodmute"
        assert caesar("abc", 1) == "bcd"
        assert caesar("Zz", 1) == "Aa"

    def test_normalize_strips_marks(self) -> None:
        from strikeguard.utils.text import normalize

        assert normalize("ḟůçķ") == "fuck"
        assert normalize("a­b​c") == "abc"
        assert normalize("plain") == "plain"

    def test_strip_markdown(self) -> None:
        from strikeguard.utils.text import strip_markdown

        assert strip_markdown("**bold** and *it*") == "bold and it"
        assert strip_markdown("~~gone~~ `code`") == "gone code"
        assert strip_markdown("> quoted") == "quoted"

    def test_join_with_and(self) -> None:
        from strikeguard.utils.text import join_with_and

        assert join_with_and([]) == ""
        assert join_with_and(["a"]) == "a"
        assert join_with_and(["a", "b"]) == "a and b"
        assert join_with_and(["a", "b", "c"]) == "a, b, and c"
        assert join_with_and([1, 2], lambda n: f"#{n}") == "#1 and #2"

    def test_truncate_text(self) -> None:
        from strikeguard.utils.text import truncate_text

        assert truncate_text("short", 10) == "short"
        assert truncate_text("a" * 20, 10) == "a" * 9 + "…"
        assert truncate_text("two\nlines", 50) == "two lines…"


class TestNumbers:
    """Tests for base conversion."""

    def test_round_trip_of_a_snowflake(self) -> None:
        from strikeguard.utils.numbers import MAX_BASE, convert_base

        snowflake = "1063217845512658944"
        encoded = convert_base(snowflake, 10, MAX_BASE)

        assert len(encoded) < len(snowflake)
        assert convert_base(encoded, MAX_BASE, 10) == snowflake

    def test_known_values(self) -> None:
        from strikeguard.utils.numbers import MAX_BASE, convert_base

        assert MAX_BASE == 71
        assert convert_base("255", 10, 16) == "FF"
        assert convert_base("FF", 16, 2) == "11111111"
        assert convert_base("71", 10, MAX_BASE) == "10"
        assert convert_base("70", 10, MAX_BASE) == "."

    def test_zero(self) -> None:
        from strikeguard.utils.numbers import convert_base

        assert convert_base("0", 10, 2) == "0"
        assert convert_base("", 10, 2) == "0"

    def test_invalid_input(self) -> None:
        from strikeguard.utils.numbers import convert_base

        with pytest.raises(ValueError):
            convert_base("12", 1, 10)
        with pytest.raises(ValueError):
            convert_base("12", 10, 99)
        with pytest.raises(ValueError):
            convert_base("19", 8, 10)
        with pytest.raises(ValueError):
            convert_base("1?", 10, 16)


class TestDatasetStores:
    """Tests for dataset persistence."""

    @pytest.fixture
    def db_path(self):
        """Create a temporary database path for testing."""
        with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
            path = f.name
        yield path

        # Cleanup
        try:
            os.unlink(path)
        except OSError:
            pass

    def test_sqlite_read_write(self, db_path: str) -> None:
        from strikeguard.utils.database import SqliteDatasetStore

        store = SqliteDatasetStore(db_path)

        assert store.read("strikes") == []

        store.write("strikes", [{"id": "a", "count": 1}])
        store.write("strikes", [{"id": "a", "count": 1}, {"id": "b", "count": 0.5}])

        assert store.read("strikes") == [{"id": "a", "count": 1}, {"id": "b", "count": 0.5}]
        assert store.read("bad_words") == []

    def test_sqlite_persists_across_instances(self, db_path: str) -> None:
        from strikeguard.utils.database import SqliteDatasetStore

        SqliteDatasetStore(db_path).write("mod_actions", [{"content": "⚠️ ünïcode"}])

        assert SqliteDatasetStore(db_path).read("mod_actions") == [{"content": "⚠️ ünïcode"}]

    def test_sqlite_errors_propagate(self, db_path: str) -> None:
        from strikeguard.utils.database import SqliteDatasetStore

        store = SqliteDatasetStore(db_path)
        with store.get_connection() as conn:
            conn.execute("DROP TABLE datasets")

        with pytest.raises(sqlite3.OperationalError):
            store.write("strikes", [])

    def test_memory_store_copies_records(self) -> None:
        from strikeguard.utils.database import MemoryDatasetStore

        records = [{"id": "a"}]
        store = MemoryDatasetStore({"strikes": records})
        records.append({"id": "b"})

        loaded = store.read("strikes")
        loaded.append({"id": "c"})

        assert store.read("strikes") == [{"id": "a"}]


class TestAuditLog:
    """Tests for the moderation audit log."""

    def test_snowflakes_are_unique_and_ordered(self) -> None:
        from strikeguard.utils.audit import SnowflakeGenerator

        now = [1000.0]
        generate = SnowflakeGenerator(clock=lambda: now[0])

        first = generate()
        second = generate()
        now[0] += 1
        third = generate()

        assert first < second < third
        assert first >> 22 == 1_000_000
        assert second - first == 1

    def test_log_stores_and_posts(self) -> None:
        from strikeguard.utils.audit import AuditLog, LogSeverity
        from strikeguard.utils.database import MemoryDatasetStore

        store = MemoryDatasetStore()
        gateway = MagicMock()
        gateway.send_message = AsyncMock(return_value=None)
        audit = AuditLog(store, gateway, "modlog", clock=lambda: 1000.0)

        entry = asyncio.run(audit.log("Something happened", user="42"))
        alert = asyncio.run(audit.alert("Act now"))

        assert entry.severity == LogSeverity.INFO.value
        assert entry.date == 1_000_000
        assert alert.severity == LogSeverity.ALERT.value
        assert audit.get(entry.id) == entry
        assert audit.get("missing") is None
        assert len(store.read("mod_actions")) == 2

        gateway.send_message.assert_any_await("modlog", "Something happened")
        gateway.send_message.assert_any_await("modlog", "🚨 Act now")

    def test_posting_failure_keeps_entry(self) -> None:
        from strikeguard.gateway import GatewayError
        from strikeguard.utils.audit import AuditLog
        from strikeguard.utils.database import MemoryDatasetStore

        gateway = MagicMock()
        gateway.send_message = AsyncMock(side_effect=GatewayError("not connected"))
        audit = AuditLog(MemoryDatasetStore(), gateway, "modlog")

        entry = asyncio.run(audit.log("Still stored"))

        assert audit.get(entry.id) == entry

    def test_no_channel_means_no_posting(self) -> None:
        from strikeguard.utils.audit import AuditLog
        from strikeguard.utils.database import MemoryDatasetStore

        gateway = MagicMock()
        gateway.send_message = AsyncMock()
        audit = AuditLog(MemoryDatasetStore(), gateway)

        asyncio.run(audit.log("Quiet"))

        gateway.send_message.assert_not_awaited()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
