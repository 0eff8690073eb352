from enum import Enum

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cloud_kms_eth.utils import hex_to_bytes

MSG_HASH_LENGTH: int = 32
SIGNATURE_LENGTH: int = 65
ADDRESS_LENGTH: int = 20

# secp256k1 group order
SECP256K1_N = int("fffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364141", 16)
SECP256K1_HALF_N = SECP256K1_N // 2


class Signature(BaseModel):
    """Represents an Ethereum signature with v, r, s components."""

    v: int = Field(..., description="Recovery identifier")
    r: bytes = Field(..., description="R component of signature")
    s: bytes = Field(..., description="S component of signature")

    @field_validator("r", "s")
    @classmethod
    def validate_length(cls, v: bytes) -> bytes:
        if len(v) != MSG_HASH_LENGTH:
            msg = f"Length must be 32 bytes, got {len(v)} bytes"
            raise ValueError(msg)
        return v

    @field_validator("v")
    @classmethod
    def validate_v(cls, v: int) -> int:
        if v < 0:
            msg = "v must be non-negative"
            raise ValueError(msg)
        return v

    def to_hex(self) -> str:
        """Convert signature to hex string."""
        return "0x" + (self.r + self.s + bytes([self.v])).hex()

    def to_vrs(self) -> tuple[int, int, int]:
        return self.v, int.from_bytes(self.r, "big"), int.from_bytes(self.s, "big")

    @classmethod
    def from_hex(cls, hex_str: str) -> "Signature":
        """Create signature from hex string."""
        if hex_str.startswith("0x"):
            hex_str = hex_str[2:]
        sig_bytes = bytes.fromhex(hex_str)
        if len(sig_bytes) != SIGNATURE_LENGTH:
            msg = f"Invalid signature length: {len(sig_bytes)}"
            raise ValueError(msg)
        return cls(v=sig_bytes[64], r=sig_bytes[0:32], s=sig_bytes[32:64])


class CanonicalSignature(BaseModel):
    """Low-s (r, s) pair decoded from an HSM DER signature."""

    model_config = ConfigDict(frozen=True)

    r: bytes = Field(..., description="R component, 32 bytes big-endian")
    s: bytes = Field(..., description="S component, 32 bytes big-endian, always <= N/2")
    flipped: bool = Field(False, description="Whether s was replaced by N - s")

    @field_validator("r", "s")
    @classmethod
    def validate_length(cls, v: bytes) -> bytes:
        if len(v) != MSG_HASH_LENGTH:
            msg = f"Length must be 32 bytes, got {len(v)} bytes"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_range(self) -> "CanonicalSignature":
        if not 0 < self.r_int < SECP256K1_N:
            msg = "r must be in [1, N-1]"
            raise ValueError(msg)
        if not 0 < self.s_int <= SECP256K1_HALF_N:
            msg = "s must be in [1, N/2]"
            raise ValueError(msg)
        return self

    @property
    def r_int(self) -> int:
        return int.from_bytes(self.r, "big")

    @property
    def s_int(self) -> int:
        return int.from_bytes(self.s, "big")


class FeeModel(str, Enum):
    """Fee market a transaction is priced in."""

    LEGACY = "legacy"
    DYNAMIC = "dynamic"


class TransactionRequest(BaseModel):
    """Caller-supplied transaction fields; anything left out is filled from the network."""

    to: str = Field(..., description="Recipient address")
    value: int = Field(0, ge=0, description="Transaction value in Wei")
    data: bytes = Field(b"", description="Fully encoded call data")
    nonce: int | None = Field(None, ge=0, description="Transaction nonce")
    chain_id: int | None = Field(None, gt=0, description="Chain ID")
    gas_limit: int | None = Field(None, gt=0, description="Gas limit")
    gas_price: int | None = Field(None, ge=0, description="Gas price in Wei (legacy)")
    max_fee_per_gas: int | None = Field(None, ge=0, description="EIP-1559 fee cap in Wei")
    max_priority_fee_per_gas: int | None = Field(None, ge=0, description="EIP-1559 tip in Wei")

    @field_validator("to")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not is_address(v):
            msg = "Invalid Ethereum address"
            raise ValueError(msg)
        return to_checksum_address(v)

    @field_validator("data", mode="before")
    @classmethod
    def validate_hex(cls, v):
        if isinstance(v, str):
            return hex_to_bytes(v)
        return v

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionRequest":
        """
        Create a request from a web3.py-style transaction dictionary.

        Args:
            data: Transaction dictionary using either camelCase (``gasPrice``, ``chainId``)
                or snake_case keys. ``from`` is ignored; the sender is always the HSM key.

        Returns:
            TransactionRequest: A new request instance
        """
        tx_data = data.copy()

        tx_data.pop("from", None)
        renames = {
            "gas": "gas_limit",
            "gasPrice": "gas_price",
            "chainId": "chain_id",
            "maxFeePerGas": "max_fee_per_gas",
            "maxPriorityFeePerGas": "max_priority_fee_per_gas",
            "input": "data",
        }
        for old, new in renames.items():
            if old in tx_data:
                tx_data[new] = tx_data.pop(old)

        return cls(**tx_data)


class FeeData(BaseModel):
    """Fee suggestion returned by the node."""

    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None

    @property
    def supports_dynamic_fees(self) -> bool:
        return self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None


class SignedTransaction(BaseModel):
    """Final serialized transaction together with its signature values."""

    raw_transaction: bytes
    hash: bytes
    fee_model: FeeModel
    v: int
    r: int
    s: int

    def to_hex(self) -> str:
        return "0x" + self.raw_transaction.hex()


class TransactionReceipt(BaseModel):
    """Subset of a mined transaction receipt."""

    transaction_hash: str
    block_number: int
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1

