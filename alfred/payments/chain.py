"""On-chain reads for payment verification."""

import logging

from web3 import Web3
from web3.exceptions import TransactionNotFound

from alfred.errors import ChainRPCError
from alfred.payments.schemas import ChainReceipt, ChainTransaction

logger = logging.getLogger('payments')


class ChainReader:
    """Thin wrapper over a web3 HTTP provider.

    A transaction the node doesn't know yet returns None; any other RPC
    failure raises ChainRPCError so it is never mistaken for a verdict.
    """

    def __init__(self, rpc_url: str, timeout: float = 10.0, web3: Web3 | None = None):
        self.rpc_url = rpc_url
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout}))

    def get_receipt(self, tx_hash: str) -> ChainReceipt | None:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            logger.error(f"RPC error fetching receipt {tx_hash}: {e}")
            raise ChainRPCError(f"Could not read transaction receipt: {e}") from e
        if receipt is None:
            return None
        return ChainReceipt(
            tx_hash=tx_hash,
            status=int(receipt['status']),
            block_number=receipt.get('blockNumber'),
        )

    def get_transaction(self, tx_hash: str) -> ChainTransaction | None:
        try:
            tx = self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            logger.error(f"RPC error fetching transaction {tx_hash}: {e}")
            raise ChainRPCError(f"Could not read transaction: {e}") from e
        if tx is None:
            return None
        return ChainTransaction(
            tx_hash=tx_hash,
            from_address=tx['from'],
            to_address=tx.get('to'),
            value_wei=int(tx['value']),
        )
