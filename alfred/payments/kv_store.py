"""
Key-value storage with per-key TTL for nonces, sessions and payment ledgers.

Expiry is enforced lazily on read; ``purge_expired`` is an optional sweep.
The in-memory backend is the default; the Supabase backend lets the same
call sites survive restarts and run across instances.
"""

import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Protocol

from supabase import Client

logger = logging.getLogger('payments')

_FRACTION_RE = re.compile(r'\.(\d+)')
_SHORT_OFFSET_RE = re.compile(r'(\d{2}:\d{2}(?:\.\d+)?[+-]\d{2})$')


def parse_timestamp(text: str) -> datetime:
    """Parse a Postgres/PostgREST timestamp.

    Accepts a trailing ``Z``, an hour-only offset and fractional seconds of
    any length, which ``datetime.fromisoformat`` rejects before Python 3.11.
    Naive values are UTC.
    """
    text = text.strip().replace('Z', '+00:00').replace('z', '+00:00')
    text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    text = _SHORT_OFFSET_RE.sub(r'\1:00', text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class KVStore(Protocol):
    def get(self, key: str) -> dict | None: ...

    def set(self, key: str, value: dict, ttl: float | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def incr(self, key: str, amount: int = 1) -> int: ...

    def purge_expired(self) -> int: ...


class MemoryKVStore:
    """Process-local store. Contents are lost on restart."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: dict[str, tuple[dict, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> dict | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() > expires_at:
                del self._data[key]
                return None
            return dict(value)

    def set(self, key: str, value: dict, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (dict(value), expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def incr(self, key: str, amount: int = 1) -> int:
        with self._lock:
            value, expires_at = self._data.get(key, ({'value': 0}, None))
            count = int(value.get('value', 0)) + amount
            self._data[key] = ({'value': count}, expires_at)
            return count

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._data.items() if exp is not None and now > exp]
            for key in expired:
                del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)


class SupabaseKVStore:
    """Store backed by a ``kv_store(key, value jsonb, expires_at timestamptz)`` table.

    ``incr`` is read-modify-write and not atomic across instances.
    """

    def __init__(self, client: Client, table: str = 'kv_store',
                 clock: Callable[[], float] = time.time):
        self.client = client
        self.table = table
        self._clock = clock

    def _expires_iso(self, ttl: float | None) -> str | None:
        if ttl is None:
            return None
        return datetime.fromtimestamp(self._clock() + ttl, tz=timezone.utc).isoformat()

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()

    def get(self, key: str) -> dict | None:
        result = self.client.table(self.table)\
            .select('value, expires_at')\
            .eq('key', key)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        row = result.data[0]
        expires_at = row.get('expires_at')
        if expires_at and parse_timestamp(expires_at).timestamp() < self._clock():
            self.delete(key)
            return None
        return row.get('value')

    def set(self, key: str, value: dict, ttl: float | None = None) -> None:
        self.client.table(self.table).upsert(
            {'key': key, 'value': value, 'expires_at': self._expires_iso(ttl)},
            on_conflict='key',
        ).execute()

    def delete(self, key: str) -> None:
        self.client.table(self.table).delete().eq('key', key).execute()

    def incr(self, key: str, amount: int = 1) -> int:
        current = self.get(key) or {'value': 0}
        count = int(current.get('value', 0)) + amount
        self.set(key, {'value': count})
        return count

    def purge_expired(self) -> int:
        result = self.client.table(self.table)\
            .delete()\
            .lt('expires_at', self._now_iso())\
            .execute()
        purged = len(result.data or [])
        if purged:
            logger.info(f"KV purge: removed {purged} expired keys")
        return purged
