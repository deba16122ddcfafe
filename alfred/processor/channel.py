"""
Signal delivery.

The curator publishes every new SignalRecord onto a SignalChannel; delivery
consumers drain it independently, so scheduling a cycle and talking to a
transport never block each other.
"""

import logging
import queue
import threading

import httpx

from alfred.processor.schemas import SignalRecord

logger = logging.getLogger('curator.channel')

TELEGRAM_API = 'https://api.telegram.org'


class SignalChannel:
    """Bounded FIFO of SignalRecords. A full channel drops the newest signal."""

    def __init__(self, maxsize: int = 1000):
        self._queue: queue.Queue[SignalRecord] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, signal: SignalRecord) -> bool:
        try:
            self._queue.put_nowait(signal)
            return True
        except queue.Full:
            self.dropped += 1
            logger.warning(f"Signal channel full, dropped: {signal.title[:60]}")
            return False

    def get(self, timeout: float | None = None) -> SignalRecord | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[SignalRecord]:
        signals = []
        while True:
            try:
                signals.append(self._queue.get_nowait())
            except queue.Empty:
                return signals

    def __len__(self) -> int:
        return self._queue.qsize()


def format_signal(signal: SignalRecord) -> str:
    return f"HIGH SIGNAL ({signal.score}/10)\n{signal.title}\n{signal.source} — {signal.link}"


class TelegramDelivery:
    """Consumes a SignalChannel and posts high signals to one Telegram chat."""

    def __init__(self, channel: SignalChannel, bot_token: str | None, chat_id: str | None,
                 threshold: int = 8, client: httpx.Client | None = None):
        self.channel = channel
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.threshold = threshold
        self.client = client or httpx.Client(timeout=10)
        self._stop = threading.Event()

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send(self, text: str) -> bool:
        try:
            resp = self.client.post(
                f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage",
                data={
                    'chat_id': self.chat_id,
                    'text': text[:4000],
                    'disable_web_page_preview': 'true',
                },
            )
            resp.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Telegram send failed: {e}")
            return False

    def deliver(self, signal: SignalRecord) -> bool:
        if not self.enabled or signal.score < self.threshold:
            return False
        return self.send(format_signal(signal))

    def flush(self) -> int:
        """Deliver everything currently queued. Returns the number sent."""
        return sum(1 for signal in self.channel.drain() if self.deliver(signal))

    def run(self, poll_interval: float = 1.0):
        logger.info(f"Telegram delivery started (threshold {self.threshold})")
        while not self._stop.is_set():
            signal = self.channel.get(timeout=poll_interval)
            if signal is not None:
                self.deliver(signal)
        logger.info("Telegram delivery stopped")

    def stop(self):
        self._stop.set()
