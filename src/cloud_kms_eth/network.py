"""JSON-RPC access for nonce, gas, fee data, broadcast and receipts.

Reads are idempotent and retried with linear backoff. Broadcasting is sent
exactly once: a resubmitted transaction can hit "nonce too low" or
"already known", and those must reach the caller unchanged.
"""

import logging

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TimeExhausted

from cloud_kms_eth.exceptions import BroadcastError, NetworkError
from cloud_kms_eth.types.ethereum_types import FeeData, TransactionReceipt
from cloud_kms_eth.utils import retry_call

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 0.5
# max fee = 2 * base fee + tip
BASE_FEE_MULTIPLIER = 2

CHAIN_RPC_URLS: dict[int, str] = {
    1: "https://eth.llamarpc.com",
    10: "https://mainnet.optimism.io",
    56: "https://bsc-dataseed.binance.org/",
    137: "https://polygon-rpc.com",
    250: "https://rpc.ftm.tools/",
    8453: "https://mainnet.base.org",
    42161: "https://arb1.arbitrum.io/rpc",
    43114: "https://api.avax.network/ext/bc/C/rpc",
    84532: "https://sepolia.base.org",
    97: "https://data-seed-prebsc-1-s1.binance.org:8545",
    43113: "https://api.avax-test.network/ext/bc/C/rpc",
}

EXPLORER_TX_URLS: dict[int, str] = {
    1: "https://etherscan.io/tx/",
    10: "https://optimistic.etherscan.io/tx/",
    56: "https://bscscan.com/tx/",
    97: "https://testnet.bscscan.com/tx/",
    137: "https://polygonscan.com/tx/",
    250: "https://ftmscan.com/tx/",
    8453: "https://basescan.org/tx/",
    42161: "https://arbiscan.io/tx/",
    43113: "https://testnet.snowtrace.io/tx/",
    43114: "https://snowtrace.io/tx/",
    84532: "https://sepolia.basescan.org/tx/",
    11155111: "https://sepolia.etherscan.io/tx/",
}


def resolve_rpc_url(rpc_url: str | None, chain_id: int | None) -> str:
    """
    Pick the RPC endpoint: an explicit URL wins, then the public endpoint for ``chain_id``.

    Raises:
        NetworkError: If neither is available
    """
    if rpc_url:
        return rpc_url
    if chain_id in CHAIN_RPC_URLS:
        return CHAIN_RPC_URLS[chain_id]
    known = ", ".join(str(chain) for chain in sorted(CHAIN_RPC_URLS))
    msg = f"RPC URL required. Provide one or use a known chain id ({known})"
    raise NetworkError(msg)


def explorer_url(chain_id: int | None, tx_hash: str) -> str | None:
    base = EXPLORER_TX_URLS.get(chain_id) if chain_id is not None else None
    return f"{base}{tx_hash}" if base else None


class NetworkClient:
    """Thin wrapper over ``web3`` with timeouts, bounded read retries and typed results."""

    def __init__(
        self,
        provider_uri: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        web3: Web3 | None = None,
    ):
        self.provider_uri = provider_uri
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.w3 = web3 or Web3(Web3.HTTPProvider(provider_uri, request_kwargs={"timeout": timeout}))

    def _read(self, description: str, func):
        return retry_call(func, attempts=self.max_retries, backoff=self.retry_backoff, description=description)

    def get_chain_id(self) -> int:
        return self._read("eth_chainId", lambda: int(self.w3.eth.chain_id))

    def get_nonce(self, address: str) -> int:
        """Next nonce for ``address``, counting pending transactions."""
        checksum = Web3.to_checksum_address(address)
        return self._read("eth_getTransactionCount", lambda: int(self.w3.eth.get_transaction_count(checksum, "pending")))

    def estimate_gas(self, transaction: dict) -> int:
        return self._read("eth_estimateGas", lambda: int(self.w3.eth.estimate_gas(transaction)))

    def get_fee_data(self) -> FeeData:
        """
        Current fee suggestion.

        Nodes that report ``baseFeePerGas`` on the latest block get EIP-1559
        values; older chains get a plain gas price.
        """
        block = self._read("eth_getBlockByNumber", lambda: self.w3.eth.get_block("latest"))
        base_fee = block.get("baseFeePerGas")

        if base_fee is None:
            gas_price = self._read("eth_gasPrice", lambda: int(self.w3.eth.gas_price))
            logger.debug("Node has no base fee, gas price %d", gas_price)
            return FeeData(gas_price=gas_price)

        priority_fee = self._read("eth_maxPriorityFeePerGas", lambda: int(self.w3.eth.max_priority_fee))
        max_fee = BASE_FEE_MULTIPLIER * int(base_fee) + priority_fee
        logger.debug("Base fee %d, max fee %d, priority fee %d", base_fee, max_fee, priority_fee)
        return FeeData(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)

    def broadcast(self, raw_transaction: bytes | str) -> str:
        """
        Send a signed transaction once.

        Returns:
            str: ``0x``-prefixed transaction hash

        Raises:
            BroadcastError: If the node rejects the transaction or cannot be reached
        """
        try:
            tx_hash = self.w3.eth.send_raw_transaction(HexBytes(raw_transaction))
        except Exception as e:
            msg = f"Transaction failed: {e}"
            raise BroadcastError(msg) from e

        tx_hash_hex = HexBytes(tx_hash).to_0x_hex()
        logger.info("Broadcast transaction %s", tx_hash_hex)
        return tx_hash_hex

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> TransactionReceipt:
        """
        Block until the transaction is mined.

        Raises:
            NetworkError: If no receipt arrives within ``timeout`` seconds
        """
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            msg = f"Transaction {tx_hash} not mined after {timeout} seconds"
            raise NetworkError(msg) from e
        except Exception as e:
            msg = f"Failed to fetch receipt for {tx_hash}: {e}"
            raise NetworkError(msg) from e

        return TransactionReceipt(
            transaction_hash=HexBytes(receipt["transactionHash"]).to_0x_hex(),
            block_number=int(receipt["blockNumber"]),
            status=int(receipt["status"]),
        )
