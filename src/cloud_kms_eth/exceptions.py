class HSMError(Exception):
    """Base exception for HSM operations."""

    pass


class ConfigurationError(HSMError):
    """Invalid or missing configuration."""

    pass


class MalformedEncoding(HSMError):
    """ASN.1/DER structure does not match what the signing service produces or expects."""

    pass


class InvalidSignatureEncoding(MalformedEncoding):
    """DER signature is not a SEQUENCE of two well-formed INTEGERs."""

    pass


class UnsupportedPublicKeyFormat(MalformedEncoding):
    """Public key is neither a raw uncompressed point nor a secp256k1 SubjectPublicKeyInfo."""

    pass


class SigningError(HSMError):
    """Error during signature operations."""

    pass


class RecoveryExhausted(SigningError):
    """No recovery id reconstructs the expected signer."""

    pass


class KeyNotFoundError(HSMError):
    """Key not found in HSM."""

    pass


class KeyImportError(HSMError):
    """Error while preparing or importing key material."""

    pass


class InvalidScalarLength(KeyImportError):
    """Raw private key is not exactly 32 bytes."""

    pass


class ScalarOutOfRange(KeyImportError):
    """Raw private key is not in [1, N-1]."""

    pass


class TransactionError(HSMError):
    """Transaction fields cannot be turned into a valid preimage."""

    pass


class AmbiguousFeeModel(TransactionError):
    """Caller mixed legacy and EIP-1559 fee fields in a way that has no single reading."""

    pass


class AbiEncodingError(HSMError):
    """Function call parameters do not match the function signature."""

    pass


class NetworkError(HSMError):
    """RPC node call failed."""

    pass


class BroadcastError(NetworkError):
    """Node rejected or failed to accept a signed transaction."""

    pass
