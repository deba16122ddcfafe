"""
File-backed curator memory.

Holds the seen-hash history (capped, oldest evicted first) and the
accumulated signal records. Every write goes to a uniquely named temp
file that is then renamed over the real one, so a crash mid-write never
corrupts it. Mutations and writes are serialized on one lock.
"""

import base64
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from alfred.errors import PersistenceError
from alfred.processor.schemas import CuratorMemory, SignalRecord

logger = logging.getLogger('curator.memory')


def title_hash(title: str) -> str:
    """Seen marker for an item: base64 of the raw, un-normalized title."""
    return base64.b64encode(title.encode('utf-8')).decode('ascii')


class MemoryStore:
    def __init__(self, path: Path, max_history: int = 200):
        self.path = Path(path)
        self.max_history = max_history
        self._lock = threading.RLock()
        self.memory = self.load()
        self._seen = set(self.memory.seen_hashes)

    def load(self) -> CuratorMemory:
        if not self.path.exists():
            return CuratorMemory()
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
            memory = CuratorMemory.model_validate(data)
            logger.info(f"Loaded memory: {len(memory.seen_hashes)} seen, {len(memory.high_signals)} signals")
            return memory
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load memory from {self.path}: {e} — starting empty")
            return CuratorMemory()

    # ------------------------------------------------------------------
    # Seen hashes
    # ------------------------------------------------------------------

    def has_seen(self, title: str) -> bool:
        return title_hash(title) in self._seen

    def mark_seen(self, title: str):
        digest = title_hash(title)
        with self._lock:
            if digest in self._seen:
                return
            self.memory.seen_hashes.append(digest)
            self._seen.add(digest)

    def prune(self) -> int:
        """Keep only the newest ``max_history`` hashes. Returns how many were dropped."""
        with self._lock:
            excess = len(self.memory.seen_hashes) - self.max_history
            if excess <= 0:
                return 0
            self.memory.seen_hashes = self.memory.seen_hashes[excess:]
            self._seen = set(self.memory.seen_hashes)
            return excess

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def add_signal(self, signal: SignalRecord):
        with self._lock:
            self.memory.high_signals.append(signal)

    def top_signals(self, limit: int = 20, min_score: int = 0) -> list[SignalRecord]:
        """Highest score first, newest first among equal scores."""
        if limit <= 0:
            return []
        signals = [s for s in self.memory.high_signals if s.score >= min_score]
        signals.sort(key=lambda s: (s.score, s.timestamp), reverse=True)
        return signals[:limit]

    def recent_signals(self, limit: int = 20) -> list[SignalRecord]:
        if limit <= 0:
            return []
        return list(reversed(self.memory.high_signals[-limit:]))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self):
        """Atomically write memory to disk. Raises PersistenceError."""
        with self._lock:
            payload = self.memory.model_dump(mode='json', by_alias=True)
            tmp_name = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=self.path.parent,
                                                 prefix=f'{self.path.name}.', suffix='.tmp',
                                                 delete=False) as f:
                    tmp_name = f.name
                    json.dump(payload, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except OSError as e:
                if tmp_name and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise PersistenceError(f"Failed to save memory to {self.path}: {e}") from e

    def save(self) -> bool:
        """persist() that logs instead of raising; in-memory state stays authoritative."""
        try:
            self.persist()
            return True
        except PersistenceError as e:
            logger.error(str(e))
            return False

    def reset(self, keep_signals: bool = True) -> dict:
        with self._lock:
            cleared = {
                'seenHashes': len(self.memory.seen_hashes),
                'signals': 0 if keep_signals else len(self.memory.high_signals),
            }
            self.memory.seen_hashes = []
            self._seen = set()
            if not keep_signals:
                self.memory.high_signals = []
            self.save()
            return cleared

    def stats(self) -> dict:
        return {
            'seenItems': len(self.memory.seen_hashes),
            'highSignals': len(self.memory.high_signals),
        }
