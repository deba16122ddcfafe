"""
Shared fixtures for the Alfred Curator test suite.

Nothing here touches the network: HTTP goes through httpx.MockTransport,
the chain is a FakeChain, the LLM is a MagicMock and time is a FakeClock.
"""
from datetime import datetime, timezone

import pytest
from eth_account import Account

from alfred.config import Settings
from alfred.payments.access import AccessGate
from alfred.payments.kv_store import MemoryKVStore
from alfred.payments.service import PaymentService
from alfred.processor.curator import Curator
from alfred.processor.memory import MemoryStore
from alfred.processor.scorer import SignalScorer
from helpers import PAYMENT_WALLET, FakeChain, FakeClock, make_item, sign


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, payment_wallet=PAYMENT_WALLET)


@pytest.fixture
def kv(clock):
    return MemoryKVStore(clock=clock)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def payments(kv, chain, settings, clock):
    return PaymentService(kv=kv, chain=chain, settings=settings, clock=clock)


@pytest.fixture
def gate(payments):
    return AccessGate(payments, api_token="secret-token", trust_loopback=True)


@pytest.fixture
def account():
    return Account.create()


@pytest.fixture
def session_for(payments):
    """Run the nonce → sign → verify flow for an account and return the grant."""
    def _login(acct):
        challenge = payments.get_nonce(acct.address)
        return payments.verify_signature(acct.address, sign(acct, challenge.message))
    return _login


@pytest.fixture
def store(tmp_path):
    return MemoryStore(tmp_path / "curator_memory.json", max_history=200)


@pytest.fixture
def keyword_scorer():
    return SignalScorer(client=None, model="test-model")


@pytest.fixture
def feed_items():
    return [
        make_item("SEC approves spot Ethereum ETF"),
        make_item("Startup raises $40 million for rollup tooling", source="The Block"),
        make_item("Local team ships a new dashboard", source="Hacker News"),
    ]


@pytest.fixture
def curator(store, keyword_scorer, feed_items):
    return Curator(
        store=store,
        scorer=keyword_scorer,
        fetch_items=lambda: list(feed_items),
        score_delay=0,
        feed_count=6,
    )


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
