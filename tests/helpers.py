"""Test doubles shared across the suite: fake clock, fake chain, signing, items."""
from eth_account import Account
from eth_account.messages import encode_defunct

from alfred.payments.schemas import ChainReceipt, ChainTransaction
from alfred.processor.schemas import FeedItem

PAYMENT_WALLET = "0x1111111111111111111111111111111111111111"
ONE_MILLI_ETH = 10 ** 15


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeChain:
    """In-memory chain: register receipts/transactions, or make every read fail."""

    def __init__(self):
        self.receipts = {}
        self.transactions = {}
        self.error = None

    def add_transfer(self, tx_hash: str, sender: str, to: str = PAYMENT_WALLET,
                     value_wei: int = ONE_MILLI_ETH, status: int = 1):
        self.receipts[tx_hash] = ChainReceipt(tx_hash=tx_hash, status=status, block_number=1)
        self.transactions[tx_hash] = ChainTransaction(
            tx_hash=tx_hash, from_address=sender, to_address=to, value_wei=value_wei,
        )

    def get_receipt(self, tx_hash):
        if self.error:
            raise self.error
        return self.receipts.get(tx_hash)

    def get_transaction(self, tx_hash):
        if self.error:
            raise self.error
        return self.transactions.get(tx_hash)


def sign(account, message: str) -> str:
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return signed.signature.hex()


def make_item(title: str, source: str = "CoinDesk", **kwargs) -> FeedItem:
    slug = "-".join(title.lower().split())[:40]
    return FeedItem(title=title, link=f"https://example.com/{slug}", source=source, **kwargs)
