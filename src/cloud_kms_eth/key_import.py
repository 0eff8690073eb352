"""Import an existing secp256k1 private key into the HSM.

The scalar is encoded as PKCS#8, encrypted with the import job's RSA key
(RSA-OAEP, SHA-256) and handed to the provider. Nothing here keeps or logs
the plaintext.
"""

import logging

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from cloud_kms_eth.exceptions import KeyImportError
from cloud_kms_eth.keys import encode_pkcs8_private_key, parse_private_key_hex
from cloud_kms_eth.providers.base import HSMProvider

logger = logging.getLogger(__name__)


def wrap_key_material(pkcs8: bytes, wrapping_key_pem: bytes | str) -> bytes:
    """
    Encrypt PKCS#8 key material with RSA-OAEP (MGF1 SHA-256, SHA-256).

    Raises:
        KeyImportError: If the wrapping key is not an RSA public key or the
            material does not fit in one OAEP block
    """
    if isinstance(wrapping_key_pem, str):
        wrapping_key_pem = wrapping_key_pem.encode("utf-8")
    try:
        wrapping_key = serialization.load_pem_public_key(wrapping_key_pem)
    except ValueError as e:
        msg = f"Invalid wrapping key: {e}"
        raise KeyImportError(msg) from e
    if not isinstance(wrapping_key, rsa.RSAPublicKey):
        msg = "Wrapping key must be an RSA public key"
        raise KeyImportError(msg)

    try:
        return wrapping_key.encrypt(
            pkcs8,
            padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None),
        )
    except ValueError as e:
        msg = f"Key material cannot be wrapped: {e}"
        raise KeyImportError(msg) from e


def import_private_key(hsm: HSMProvider, private_key: str | bytes, import_job: str) -> str:
    """
    Import a raw private key into the configured crypto key.

    Args:
        hsm: Provider whose crypto key receives the new version
        private_key: 32-byte scalar, or its hex form with or without ``0x``
        import_job: Import job name or full resource name

    Returns:
        str: Resource name of the imported key version

    Raises:
        InvalidScalarLength: If the key is not 32 bytes
        ScalarOutOfRange: If the key is 0 or >= N
        KeyImportError: If wrapping or the import call fails
    """
    scalar = parse_private_key_hex(private_key) if isinstance(private_key, str) else bytes(private_key)
    wrapped = wrap_key_material(encode_pkcs8_private_key(scalar), hsm.get_wrapping_key(import_job))

    logger.info("Importing wrapped key material through import job %s", import_job)
    return hsm.import_key_material(wrapped, import_job)
