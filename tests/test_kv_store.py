"""
Key-value store tests: in-memory TTL semantics and the Supabase query shapes.

The Supabase client is a MagicMock; no database connection.

Run with: pytest tests/test_kv_store.py -v
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from alfred.payments.kv_store import MemoryKVStore, SupabaseKVStore, parse_timestamp
from helpers import FakeClock


class TestMemoryKVStore:
    def test_set_get_delete(self, kv):
        kv.set("a", {"x": 1})
        assert kv.get("a") == {"x": 1}
        kv.delete("a")
        assert kv.get("a") is None

    def test_returns_copies(self, kv):
        kv.set("a", {"x": 1})
        kv.get("a")["x"] = 99
        assert kv.get("a") == {"x": 1}

    def test_ttl_expiry(self, kv, clock):
        kv.set("short", {"v": 1}, ttl=10)
        clock.advance(10)
        assert kv.get("short") == {"v": 1}
        clock.advance(1)
        assert kv.get("short") is None

    def test_no_ttl_never_expires(self, kv, clock):
        kv.set("forever", {"v": 1})
        clock.advance(10 ** 9)
        assert kv.get("forever") == {"v": 1}

    def test_incr(self, kv):
        assert kv.incr("count") == 1
        assert kv.incr("count") == 2
        assert kv.incr("count", 5) == 7
        assert kv.get("count") == {"value": 7}

    def test_purge_expired(self, kv, clock):
        kv.set("a", {}, ttl=5)
        kv.set("b", {}, ttl=50)
        kv.set("c", {})
        clock.advance(10)
        assert kv.purge_expired() == 1
        assert len(kv) == 2


class TestSupabaseKVStore:
    def _store(self, rows=None):
        client = MagicMock()
        table = client.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=rows or [])
        return SupabaseKVStore(client, table="kv_store", clock=FakeClock()), client, table

    def test_get_returns_value(self):
        store, client, table = self._store([{"value": {"a": 1}, "expires_at": None}])
        assert store.get("k") == {"a": 1}
        client.table.assert_called_with("kv_store")
        table.select.return_value.eq.assert_called_with("key", "k")

    def test_get_missing(self):
        store, _, _ = self._store([])
        assert store.get("k") is None

    def test_get_expired_deletes(self):
        past = datetime(2000, 1, 1, tzinfo=timezone.utc).isoformat()
        store, _, table = self._store([{"value": {"a": 1}, "expires_at": past}])
        assert store.get("k") is None
        table.delete.return_value.eq.assert_called_with("key", "k")

    @pytest.mark.parametrize("expires_at", [
        "2000-01-01T00:00:00.12+00:00",
        "2000-01-01T00:00:00Z",
        "2000-01-01 00:00:00.5+00",
    ])
    def test_get_expired_postgres_formats(self, expires_at):
        store, _, table = self._store([{"value": {"a": 1}, "expires_at": expires_at}])
        assert store.get("k") is None
        table.delete.return_value.eq.assert_called_with("key", "k")

    def test_get_unexpired_short_fraction(self):
        store, _, table = self._store([{"value": {"a": 1}, "expires_at": "2099-01-01T00:00:00.123+00:00"}])
        assert store.get("k") == {"a": 1}
        table.delete.assert_not_called()

    def test_set_upserts_with_expiry(self):
        store, _, table = self._store()
        store.set("k", {"a": 1}, ttl=60)
        row = table.upsert.call_args.args[0]
        assert row["key"] == "k"
        assert row["value"] == {"a": 1}
        expected = datetime.fromtimestamp(1_700_000_060.0, tz=timezone.utc).isoformat()
        assert row["expires_at"] == expected
        assert table.upsert.call_args.kwargs == {"on_conflict": "key"}

    def test_set_without_ttl(self):
        store, _, table = self._store()
        store.set("k", {"a": 1})
        assert table.upsert.call_args.args[0]["expires_at"] is None

    def test_incr_read_modify_write(self):
        store, _, table = self._store([{"value": {"value": 4}, "expires_at": None}])
        assert store.incr("beta:count") == 5
        assert table.upsert.call_args.args[0]["value"] == {"value": 5}

    def test_purge(self):
        store, _, table = self._store()
        table.delete.return_value.lt.return_value.execute.return_value = MagicMock(data=[{}, {}])
        assert store.purge_expired() == 2
        column, _ = table.delete.return_value.lt.call_args.args
        assert column == "expires_at"


def test_default_clock_is_wall_time():
    store = MemoryKVStore()
    store.set("k", {"v": 1}, ttl=60)
    assert store.get("k") == {"v": 1}


class TestParseTimestamp:
    @pytest.mark.parametrize("text,micro", [
        ("2026-03-01T10:00:00+00:00", 0),
        ("2026-03-01T10:00:00.12+00:00", 120000),
        ("2026-03-01T10:00:00.1234567+00:00", 123456),
        ("2026-03-01T10:00:00Z", 0),
        ("2026-03-01 10:00:00.5+00", 500000),
        ("2026-03-01T10:00:00", 0),
    ])
    def test_postgres_variants(self, text, micro):
        expected = datetime(2026, 3, 1, 10, 0, 0, micro, tzinfo=timezone.utc)
        assert parse_timestamp(text) == expected

    def test_non_utc_offset(self):
        parsed = parse_timestamp("2026-03-01T12:00:00.25+02:00")
        assert parsed == datetime(2026, 3, 1, 10, 0, 0, 250000, tzinfo=timezone.utc)

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a timestamp")
