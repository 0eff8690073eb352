from cloud_kms_eth.accounts.gcp_kms_account import GCPKmsAccount
from cloud_kms_eth.config import BaseConfig
from cloud_kms_eth.exceptions import (
    AmbiguousFeeModel,
    HSMError,
    InvalidScalarLength,
    InvalidSignatureEncoding,
    KeyNotFoundError,
    MalformedEncoding,
    RecoveryExhausted,
    ScalarOutOfRange,
    SigningError,
    UnsupportedPublicKeyFormat,
)
from cloud_kms_eth.types.ethereum_types import Signature, SignedTransaction, TransactionRequest

__all__ = [
    "AmbiguousFeeModel",
    "BaseConfig",
    "GCPKmsAccount",
    "HSMError",
    "InvalidScalarLength",
    "InvalidSignatureEncoding",
    "KeyNotFoundError",
    "MalformedEncoding",
    "RecoveryExhausted",
    "ScalarOutOfRange",
    "Signature",
    "SignedTransaction",
    "SigningError",
    "TransactionRequest",
    "UnsupportedPublicKeyFormat",
]
