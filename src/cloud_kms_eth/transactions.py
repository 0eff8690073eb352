"""Unsigned preimages and signed serializations for legacy (EIP-155) and EIP-1559 transactions.

A transaction goes through three phases:

1. Draft: ``TransactionRequest`` from the caller, with missing nonce, gas limit
   and fees filled in by ``TransactionBuilder`` from the network.
2. Digest: ``UnsignedTransaction.preimage()`` and its Keccak-256 ``digest()``,
   which is what the HSM signs.
3. Sealed: ``UnsignedTransaction.seal()`` embeds (r, s, v/yParity).
"""

import logging
from typing import TYPE_CHECKING

import rlp
from eth_utils import keccak, to_bytes, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, model_validator
from rlp.exceptions import RLPException
from rlp.sedes import Binary, CountableList, List, big_endian_int, binary

from cloud_kms_eth.exceptions import AmbiguousFeeModel, SigningError, TransactionError
from cloud_kms_eth.signature import to_eip155_v
from cloud_kms_eth.types.ethereum_types import (
    ADDRESS_LENGTH,
    CanonicalSignature,
    FeeModel,
    SignedTransaction,
    TransactionRequest,
)

if TYPE_CHECKING:
    from cloud_kms_eth.network import NetworkClient

logger = logging.getLogger(__name__)

TYPED_TRANSACTION_TYPE = 2
ENCODABLE_RECOVERY_IDS = (0, 1)

address_sedes = Binary.fixed_length(ADDRESS_LENGTH, allow_empty=False)
access_list_sedes = CountableList(List([address_sedes, CountableList(Binary.fixed_length(32))]))


class LegacyTransaction(rlp.Serializable):
    """EIP-155 layout. The preimage uses v=chainId, r=s=0."""

    fields = [
        ("nonce", big_endian_int),
        ("gasPrice", big_endian_int),
        ("gas", big_endian_int),
        ("to", address_sedes),
        ("value", big_endian_int),
        ("data", binary),
        ("v", big_endian_int),
        ("r", big_endian_int),
        ("s", big_endian_int),
    ]


_DYNAMIC_FEE_FIELDS = [
    ("chainId", big_endian_int),
    ("nonce", big_endian_int),
    ("maxPriorityFeePerGas", big_endian_int),
    ("maxFeePerGas", big_endian_int),
    ("gas", big_endian_int),
    ("to", address_sedes),
    ("value", big_endian_int),
    ("data", binary),
    ("accessList", access_list_sedes),
]


class UnsignedDynamicFeeTransaction(rlp.Serializable):
    fields = _DYNAMIC_FEE_FIELDS


class DynamicFeeTransaction(rlp.Serializable):
    fields = [
        *_DYNAMIC_FEE_FIELDS,
        ("yParity", big_endian_int),
        ("r", big_endian_int),
        ("s", big_endian_int),
    ]


def select_fee_model(request: TransactionRequest) -> FeeModel | None:
    """
    Decide the envelope from the fee fields the caller supplied.

    Both EIP-1559 fields present is the only trigger for the typed envelope;
    a ``gas_price`` given next to them is ignored. Exactly one of the pair is
    rejected. ``gas_price`` alone selects legacy. ``None`` means the caller
    left fees to the network.

    Raises:
        AmbiguousFeeModel: If only one of max_fee_per_gas / max_priority_fee_per_gas is set
    """
    typed_fields = (request.max_fee_per_gas, request.max_priority_fee_per_gas)

    if all(field is not None for field in typed_fields):
        if request.gas_price is not None:
            logger.warning("gas_price ignored: max_fee_per_gas and max_priority_fee_per_gas select EIP-1559")
        return FeeModel.DYNAMIC

    if any(field is not None for field in typed_fields):
        msg = (
            "max_fee_per_gas and max_priority_fee_per_gas must be given together"
            + (" (gas_price was also given)" if request.gas_price is not None else "")
        )
        raise AmbiguousFeeModel(msg)

    if request.gas_price is not None:
        return FeeModel.LEGACY
    return None


class UnsignedTransaction(BaseModel):
    """Fully resolved transaction fields; immutable once built."""

    model_config = ConfigDict(frozen=True)

    fee_model: FeeModel
    chain_id: int = Field(..., gt=0)
    nonce: int = Field(..., ge=0)
    gas_limit: int = Field(..., gt=0)
    to: str
    value: int = Field(0, ge=0)
    data: bytes = b""
    gas_price: int | None = Field(None, ge=0)
    max_fee_per_gas: int | None = Field(None, ge=0)
    max_priority_fee_per_gas: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_fee_fields(self) -> "UnsignedTransaction":
        typed_fields = (self.max_fee_per_gas, self.max_priority_fee_per_gas)
        if self.fee_model is FeeModel.LEGACY:
            if self.gas_price is None or any(field is not None for field in typed_fields):
                msg = "Legacy transactions carry gas_price and no EIP-1559 fee fields"
                raise ValueError(msg)
        elif self.gas_price is not None or any(field is None for field in typed_fields):
            msg = "EIP-1559 transactions carry both fee caps and no gas_price"
            raise ValueError(msg)
        return self

    @property
    def typed(self) -> bool:
        return self.fee_model is FeeModel.DYNAMIC

    def _to_bytes(self) -> bytes:
        return to_bytes(hexstr=self.to)

    def _dynamic_fields(self) -> dict:
        return {
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "maxFeePerGas": self.max_fee_per_gas,
            "gas": self.gas_limit,
            "to": self._to_bytes(),
            "value": self.value,
            "data": self.data,
            "accessList": [],
        }

    def _legacy(self, v: int, r: int, s: int) -> LegacyTransaction:
        return LegacyTransaction(
            nonce=self.nonce,
            gasPrice=self.gas_price,
            gas=self.gas_limit,
            to=self._to_bytes(),
            value=self.value,
            data=self.data,
            v=v,
            r=r,
            s=s,
        )

    def preimage(self) -> bytes:
        """Exact bytes whose Keccak-256 hash is signed."""
        if self.typed:
            return bytes([TYPED_TRANSACTION_TYPE]) + rlp.encode(UnsignedDynamicFeeTransaction(**self._dynamic_fields()))
        return rlp.encode(self._legacy(self.chain_id, 0, 0))

    def digest(self) -> bytes:
        return keccak(self.preimage())

    def seal(self, signature: CanonicalSignature, recovery_id: int) -> SignedTransaction:
        """
        Serialize the transaction with its signature.

        Args:
            signature: Canonical signature over ``digest()``
            recovery_id: Id returned by the recovery resolver

        Returns:
            SignedTransaction: Raw bytes ready for broadcast

        Raises:
            SigningError: If the recovery id cannot be encoded in a transaction
        """
        if recovery_id not in ENCODABLE_RECOVERY_IDS:
            msg = f"Recovery id {recovery_id} cannot be encoded in a transaction"
            raise SigningError(msg)

        r, s = signature.r_int, signature.s_int
        if self.typed:
            v = recovery_id
            sealed = DynamicFeeTransaction(**self._dynamic_fields(), yParity=v, r=r, s=s)
            raw = bytes([TYPED_TRANSACTION_TYPE]) + rlp.encode(sealed)
        else:
            v = to_eip155_v(recovery_id, self.chain_id)
            raw = rlp.encode(self._legacy(v, r, s))

        return SignedTransaction(raw_transaction=raw, hash=keccak(raw), fee_model=self.fee_model, v=v, r=r, s=s)


class TransactionBuilder:
    """Turns a ``TransactionRequest`` into an ``UnsignedTransaction``, asking the network for gaps."""

    def __init__(self, network: "NetworkClient | None" = None, default_chain_id: int | None = None):
        self.network = network
        self.default_chain_id = default_chain_id

    def _require_network(self, field: str) -> "NetworkClient":
        if self.network is None:
            msg = f"{field} not set and no network client configured"
            raise TransactionError(msg)
        return self.network

    def build(self, request: TransactionRequest, sender: str) -> UnsignedTransaction:
        fee_model = select_fee_model(request)

        chain_id = request.chain_id or self.default_chain_id
        if chain_id is None:
            chain_id = self._require_network("chain_id").get_chain_id()

        nonce = request.nonce
        if nonce is None:
            nonce = self._require_network("nonce").get_nonce(sender)

        gas_limit = request.gas_limit
        if gas_limit is None:
            gas_limit = self._require_network("gas_limit").estimate_gas(
                {"from": sender, "to": request.to, "value": request.value, "data": "0x" + request.data.hex()}
            )

        fees = {
            "gas_price": request.gas_price,
            "max_fee_per_gas": request.max_fee_per_gas,
            "max_priority_fee_per_gas": request.max_priority_fee_per_gas,
        }
        if fee_model is None:
            fee_data = self._require_network("fees").get_fee_data()
            if fee_data.supports_dynamic_fees:
                fee_model = FeeModel.DYNAMIC
                fees["max_fee_per_gas"] = fee_data.max_fee_per_gas
                fees["max_priority_fee_per_gas"] = fee_data.max_priority_fee_per_gas
            else:
                fee_model = FeeModel.LEGACY
                fees["gas_price"] = fee_data.gas_price
        elif fee_model is FeeModel.DYNAMIC:
            fees["gas_price"] = None

        logger.debug("Built %s transaction: chain %d, nonce %d, gas %d", fee_model.value, chain_id, nonce, gas_limit)
        return UnsignedTransaction(
            fee_model=fee_model,
            chain_id=chain_id,
            nonce=nonce,
            gas_limit=gas_limit,
            to=request.to,
            value=request.value,
            data=request.data,
            **fees,
        )


def decode_transaction(raw: bytes) -> dict:
    """
    Decode a signed legacy or EIP-1559 transaction into web3-style fields.

    Raises:
        TransactionError: If the bytes are not one of the two supported serializations
    """
    if not raw:
        msg = "Empty transaction"
        raise TransactionError(msg)

    try:
        if raw[0] == TYPED_TRANSACTION_TYPE:
            tx = rlp.decode(raw[1:], DynamicFeeTransaction)
            return {
                "type": TYPED_TRANSACTION_TYPE,
                "chainId": tx.chainId,
                "nonce": tx.nonce,
                "maxPriorityFeePerGas": tx.maxPriorityFeePerGas,
                "maxFeePerGas": tx.maxFeePerGas,
                "gas": tx.gas,
                "to": to_checksum_address(tx.to),
                "value": tx.value,
                "data": tx.data,
                "accessList": list(tx.accessList),
                "v": tx.yParity,
                "r": tx.r,
                "s": tx.s,
            }
        if raw[0] >= 0xC0:
            tx = rlp.decode(raw, LegacyTransaction)
            return {
                "type": 0,
                "chainId": (tx.v - 35) // 2 if tx.v >= 35 else None,
                "nonce": tx.nonce,
                "gasPrice": tx.gasPrice,
                "gas": tx.gas,
                "to": to_checksum_address(tx.to),
                "value": tx.value,
                "data": tx.data,
                "v": tx.v,
                "r": tx.r,
                "s": tx.s,
            }
    except RLPException as e:
        msg = f"Cannot decode transaction: {e}"
        raise TransactionError(msg) from e

    msg = f"Unsupported transaction type 0x{raw[0]:02x}"
    raise TransactionError(msg)
