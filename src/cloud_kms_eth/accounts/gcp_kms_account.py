import logging
from functools import cached_property

from eth_account import Account
from eth_account.messages import _hash_eip191_message, encode_defunct
from eth_typing import ChecksumAddress
from pydantic import BaseModel, Field, PrivateAttr

from cloud_kms_eth.config import BaseConfig
from cloud_kms_eth.exceptions import SigningError
from cloud_kms_eth.keys import extract_public_key_bytes, public_key_to_address
from cloud_kms_eth.network import NetworkClient
from cloud_kms_eth.providers.base import HSMProvider
from cloud_kms_eth.providers.google import GoogleCloudHSM
from cloud_kms_eth.signature import canonicalize_signature, resolve_recovery_id, to_message_v
from cloud_kms_eth.transactions import TransactionBuilder
from cloud_kms_eth.types.ethereum_types import (
    MSG_HASH_LENGTH,
    CanonicalSignature,
    Signature,
    SignedTransaction,
    TransactionReceipt,
    TransactionRequest,
)

logger = logging.getLogger(__name__)


class GCPKmsAccount(BaseModel):
    """Account implementation using Google Cloud KMS."""

    # Public fields
    key_path: str = Field(default="")

    # Private attributes
    _hsm: HSMProvider = PrivateAttr()
    _network: NetworkClient | None = PrivateAttr(default=None)
    _cached_public_key: bytes | None = PrivateAttr(default=None)
    _settings: BaseConfig = PrivateAttr()

    def __init__(
        self,
        config: BaseConfig | None = None,
        hsm: HSMProvider | None = None,
        network: NetworkClient | None = None,
        **data,
    ):
        super().__init__(**data)
        self._settings = config or BaseConfig.from_env()
        self._hsm = hsm or GoogleCloudHSM(self._settings)
        self._network = network
        self.key_path = self._settings.key_version_path

    @property
    def network(self) -> NetworkClient:
        """JSON-RPC client, created from the config on first use."""
        if self._network is None:
            self._network = NetworkClient(
                self._settings.web3_provider_uri,
                timeout=self._settings.rpc_timeout,
                max_retries=self._settings.max_retries,
            )
        return self._network

    @property
    def public_key(self) -> bytes:
        """64-byte ``X || Y`` public key, fetched from KMS once."""
        if self._cached_public_key is None:
            self._cached_public_key = extract_public_key_bytes(self._hsm.get_public_key())
        return self._cached_public_key

    @cached_property
    def address(self) -> ChecksumAddress:
        """Get Ethereum address derived from public key."""
        return public_key_to_address(self.public_key)

    def sign_digest(self, digest: bytes, typed: bool = False) -> tuple[CanonicalSignature, int]:
        """
        Sign a 32-byte digest and resolve its recovery id.

        Args:
            digest: Keccak-256 hash to sign
            typed: Limit the recovery id to 0 or 1

        Returns:
            tuple[CanonicalSignature, int]: Low-s signature and its recovery id
        """
        if len(digest) != MSG_HASH_LENGTH:
            msg = "Invalid message hash length"
            raise SigningError(msg)

        signature = canonicalize_signature(self._hsm.sign_digest(digest))
        recovery_id = resolve_recovery_id(signature, digest, self.address, typed=typed)
        return signature, recovery_id

    def sign_message(self, message: str | bytes) -> Signature:
        """
        Sign a message with the GCP KMS key (EIP-191 personal message).

        Args:
            message: Message to sign (str or bytes); ``0x``-prefixed text is treated as hex

        Returns:
            Signature: The v, r, s components of the signature, with v 27 or 28

        Example:
            >>> account = GCPKmsAccount()
            >>> signature = account.sign_message("Hello Ethereum!")
        """
        if isinstance(message, str):
            if message.startswith("0x"):
                signable = encode_defunct(hexstr=message)
            else:
                signable = encode_defunct(text=message)
        elif isinstance(message, bytes):
            signable = encode_defunct(primitive=message)
        else:
            msg = f"Unsupported message type: {type(message)}"
            raise TypeError(msg)

        signature, recovery_id = self.sign_digest(_hash_eip191_message(signable), typed=True)
        return Signature(v=to_message_v(recovery_id), r=signature.r, s=signature.s)

    def sign_transaction(self, transaction: TransactionRequest | dict) -> SignedTransaction:
        """
        Sign a legacy (EIP-155) or EIP-1559 transaction.

        Missing nonce, gas limit and fees are fetched from the network. The
        result is checked by recovering the sender from the final bytes.

        Args:
            transaction: Request, or a web3.py-style transaction dictionary

        Returns:
            SignedTransaction: Serialized signed transaction

        Raises:
            AmbiguousFeeModel: If only one EIP-1559 fee field is given
            RecoveryExhausted: If the signature does not belong to this key
            SigningError: If the sealed transaction does not recover to this account
        """
        if isinstance(transaction, dict):
            transaction = TransactionRequest.from_dict(transaction)

        builder = TransactionBuilder(self.network, default_chain_id=self._settings.chain_id)
        unsigned = builder.build(transaction, self.address)

        signature, recovery_id = self.sign_digest(unsigned.digest(), typed=unsigned.typed)
        signed = unsigned.seal(signature, recovery_id)

        recovered = Account.recover_transaction(signed.raw_transaction)
        if recovered != self.address:
            msg = f"Signed transaction recovers to {recovered}, expected {self.address}"
            raise SigningError(msg)

        logger.info("Signed %s transaction %s", signed.fee_model.value, signed.hash.hex())
        return signed

    def send_transaction(
        self, transaction: TransactionRequest | dict, wait: bool = False, timeout: float = 120.0
    ) -> str | TransactionReceipt:
        """Sign and broadcast; with ``wait`` return the receipt instead of the hash."""
        signed = self.sign_transaction(transaction)
        tx_hash = self.network.broadcast(signed.raw_transaction)
        if not wait:
            return tx_hash
        return self.network.wait_for_receipt(tx_hash, timeout=timeout)
