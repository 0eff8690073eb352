from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from ecdsa import SECP256k1
from ecdsa.util import sigencode_der
from eth_keys import keys
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from google.cloud import kms
from hexbytes import HexBytes

from cloud_kms_eth.accounts.gcp_kms_account import GCPKmsAccount
from cloud_kms_eth.config import BaseConfig
from cloud_kms_eth.network import NetworkClient
from cloud_kms_eth.providers.google import GoogleCloudHSM

# Test Constants
# Hardhat / Anvil account #0
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TEST_ENV = {
    "project_id": "test-project",
    "location_id": "global",
    "key_ring_id": "test-ring",
    "key_id": "test-key",
}
TEST_KEY_PATH = "projects/test-project/locations/global/keyRings/test-ring/cryptoKeys/test-key/cryptoKeyVersions/1"
TEST_MESSAGE = "Hello Ethereum!"
TEST_TX_HASH = HexBytes("0x" + "ab" * 32)

GWEI = 10**9

_private_key = keys.PrivateKey(bytes.fromhex(TEST_PRIVATE_KEY[2:]))
_public_key = ec.derive_private_key(int(TEST_PRIVATE_KEY, 16), ec.SECP256K1()).public_key()
TEST_PUBLIC_KEY_PEM = _public_key.public_bytes(
    serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
).decode()
TEST_PUBLIC_KEY_DER = _public_key.public_bytes(
    serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
)
TEST_PUBLIC_KEY_RAW = _public_key.public_bytes(
    serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
)


def sign_der(digest: bytes, high_s: bool = False) -> bytes:
    """Sign like Cloud KMS: DER output, no recovery id, either half of s."""
    signature = _private_key.sign_msg_hash(digest)
    s = SECP256k1.order - signature.s if high_s else signature.s
    return sigencode_der(signature.r, s, SECP256k1.order)


@pytest.fixture
def test_address() -> ChecksumAddress:
    """Get the address of the test key."""
    return to_checksum_address(TEST_ADDRESS)


@pytest.fixture
def test_message() -> str:
    return TEST_MESSAGE


@pytest.fixture
def private_key() -> keys.PrivateKey:
    return _private_key


@pytest.fixture
def public_key_pem() -> str:
    return TEST_PUBLIC_KEY_PEM


@pytest.fixture
def public_key_der() -> bytes:
    return TEST_PUBLIC_KEY_DER


@pytest.fixture
def public_key_raw() -> bytes:
    return TEST_PUBLIC_KEY_RAW


@pytest.fixture
def der_signer() -> Callable[..., bytes]:
    """Signs a digest with the test key and returns DER."""
    return sign_der


@pytest.fixture
def test_config() -> BaseConfig:
    return BaseConfig(**TEST_ENV)


@pytest.fixture
def mock_kms_client() -> MagicMock:
    """Create a mock KMS client backed by the test key."""
    mock_client = MagicMock(spec=kms.KeyManagementServiceClient)

    # Mock the get_public_key response
    mock_public_key_response = MagicMock()
    mock_public_key_response.pem = TEST_PUBLIC_KEY_PEM
    mock_client.get_public_key.return_value = mock_public_key_response

    # Sign whatever digest arrives with the local key, returning DER like KMS
    def asymmetric_sign(request: dict[str, Any]) -> MagicMock:
        response = MagicMock()
        response.signature = sign_der(request["digest"]["sha256"])
        return response

    mock_client.asymmetric_sign.side_effect = asymmetric_sign
    return mock_client


@pytest.fixture
def hsm(test_config: BaseConfig, mock_kms_client: MagicMock) -> GoogleCloudHSM:
    return GoogleCloudHSM(test_config, client=mock_kms_client)


@pytest.fixture
def mock_web3() -> MagicMock:
    """Web3 stand-in for a London-enabled chain with id 1."""
    web3 = MagicMock()
    web3.eth.chain_id = 1
    web3.eth.get_transaction_count.return_value = 7
    web3.eth.estimate_gas.return_value = 21000
    web3.eth.get_block.return_value = {"number": 100, "baseFeePerGas": 10 * GWEI}
    web3.eth.max_priority_fee = 2 * GWEI
    web3.eth.gas_price = 20 * GWEI
    web3.eth.send_raw_transaction.return_value = TEST_TX_HASH
    web3.eth.wait_for_transaction_receipt.return_value = {
        "transactionHash": TEST_TX_HASH,
        "blockNumber": 101,
        "status": 1,
    }
    return web3


@pytest.fixture
def network(mock_web3: MagicMock) -> NetworkClient:
    return NetworkClient("http://localhost:8545", max_retries=3, retry_backoff=0, web3=mock_web3)


@pytest.fixture
def gcp_kms_account(test_config: BaseConfig, hsm: GoogleCloudHSM, network: NetworkClient) -> GCPKmsAccount:
    """Create a GCP KMS account with mocked client and node."""
    return GCPKmsAccount(config=test_config, hsm=hsm, network=network)
