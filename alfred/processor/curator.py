"""
Curator cycle orchestrator.

One cycle: ingest → drop items already in memory → score up to the
per-cycle cap → record signals and seen hashes → prune → persist.
At most one cycle runs at a time; a trigger that arrives while a cycle is
in flight is dropped, not queued.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable

from alfred.processor.channel import SignalChannel
from alfred.processor.memory import MemoryStore
from alfred.processor.schemas import CycleResult, FeedItem, SignalRecord
from alfred.processor.scorer import SignalScorer

logger = logging.getLogger('curator')


class Curator:
    def __init__(
        self,
        store: MemoryStore,
        scorer: SignalScorer,
        fetch_items: Callable[[], list[FeedItem]],
        channel: SignalChannel | None = None,
        max_scores_per_cycle: int = 10,
        score_delay: float = 2.0,
        alert_threshold: int = 8,
        feed_count: int = 0,
        interval_minutes: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.scorer = scorer
        self.fetch_items = fetch_items
        self.channel = channel
        self.max_scores_per_cycle = max_scores_per_cycle
        self.score_delay = score_delay
        self.alert_threshold = alert_threshold
        self.feed_count = feed_count
        self.interval_minutes = interval_minutes
        self._sleep = sleep
        self._running = threading.Lock()
        self.last_result: CycleResult | None = None

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run_cycle(self) -> CycleResult | None:
        """Run one cycle. Returns None when another cycle was already running."""
        if not self._running.acquire(blocking=False):
            logger.warning("Curation cycle already running — trigger dropped")
            return None
        try:
            self.last_result = self._run()
            return self.last_result
        finally:
            self._running.release()

    def _run(self) -> CycleResult:
        start = time.time()
        result = CycleResult(started_at=datetime.now(timezone.utc).isoformat())
        logger.info("Starting curation cycle...")

        try:
            items = self.fetch_items()
        except Exception as e:
            logger.error(f"Ingestion failed, cycle continues with no items: {e}", exc_info=True)
            items = []
        result.fetched = len(items)

        fresh = [item for item in items if not self.store.has_seen(item.title)]
        batch = fresh[:self.max_scores_per_cycle]
        result.new_items = len(fresh)
        result.deferred = len(fresh) - len(batch)

        for index, item in enumerate(batch):
            if index and self.score_delay > 0:
                self._sleep(self.score_delay)
            self._score_item(item, result)
            # Marked seen whatever the outcome, so a bad item can't stall the queue
            self.store.mark_seen(item.title)

        dropped = self.store.prune()
        if dropped:
            logger.info(f"Pruned {dropped} old seen hashes")
        result.seen_total = len(self.store.memory.seen_hashes)
        result.persisted = self.store.save()
        result.duration_seconds = round(time.time() - start, 2)

        logger.info(
            f"Cycle complete: {result.fetched} fetched, {result.new_items} new, "
            f"{result.scored} scored ({result.llm_scored} by LLM), {result.deferred} deferred, "
            f"{result.high_signals} high signals in {result.duration_seconds}s"
        )
        return result

    def _score_item(self, item: FeedItem, result: CycleResult):
        try:
            scored = self.scorer.score(item)
        except Exception as e:
            logger.warning(f"Scoring failed for '{item.title[:40]}': {e}")
            return

        signal = SignalRecord(
            title=item.title,
            link=item.link,
            source=item.source,
            score=scored.score,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self.store.add_signal(signal)
        if self.channel is not None:
            self.channel.publish(signal)

        result.scored += 1
        if scored.method == 'llm':
            result.llm_scored += 1
        if signal.score >= self.alert_threshold:
            result.high_signals += 1
            logger.info(f"HIGH SIGNAL ({signal.score}/10): {signal.title}")

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def reset(self, keep_signals: bool = True) -> dict | None:
        """Clear memory. Returns None when a cycle is running; the reset is dropped."""
        if not self._running.acquire(blocking=False):
            logger.warning("Curation cycle running — reset dropped")
            return None
        try:
            cleared = self.store.reset(keep_signals=keep_signals)
        finally:
            self._running.release()
        logger.info(f"Memory reset: {cleared}")
        return cleared

    def stats(self) -> dict:
        stats = {'feeds': self.feed_count, **self.store.stats(), 'running': self.is_running}
        if self.interval_minutes:
            stats['intervalMinutes'] = self.interval_minutes
        if self.last_result is not None:
            stats['lastCycle'] = self.last_result.model_dump(by_alias=True)
        return stats

    def describe(self) -> str:
        s = self.store.stats()
        return (
            f"Curator Memory:\n- Tracking {self.feed_count} feeds\n"
            f"- Seen {s['seenItems']} items\n- Found {s['highSignals']} signals"
        )
