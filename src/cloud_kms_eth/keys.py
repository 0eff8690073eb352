"""secp256k1 key material: PKCS#8 private keys for import, public keys and addresses."""

from cryptography.hazmat.primitives import serialization
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_checksum_address

from cloud_kms_eth import asn1
from cloud_kms_eth.exceptions import (
    InvalidScalarLength,
    MalformedEncoding,
    ScalarOutOfRange,
    UnsupportedPublicKeyFormat,
)
from cloud_kms_eth.types.ethereum_types import SECP256K1_N

PRIVATE_KEY_LENGTH = 32
PUBLIC_KEY_LENGTH = 64
UNCOMPRESSED_POINT_PREFIX = 0x04
PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
PEM_FOOTER = "-----END PUBLIC KEY-----"

_EC_ALGORITHM = asn1.encode_sequence(
    asn1.write_tlv(asn1.TAG_OID, asn1.encode_oid(asn1.OID_EC_PUBLIC_KEY)),
    asn1.write_tlv(asn1.TAG_OID, asn1.encode_oid(asn1.OID_SECP256K1)),
)


def validate_private_scalar(scalar: bytes) -> int:
    """
    Check that ``scalar`` is a usable secp256k1 private key.

    Returns:
        int: The scalar as an integer

    Raises:
        InvalidScalarLength: If it is not exactly 32 bytes
        ScalarOutOfRange: If it is 0 or >= N
    """
    if len(scalar) != PRIVATE_KEY_LENGTH:
        msg = f"Private key must be exactly 32 bytes, got {len(scalar)}"
        raise InvalidScalarLength(msg)
    value = int.from_bytes(scalar, "big")
    if not 0 < value < SECP256K1_N:
        msg = "Private key must be in [1, N-1] for secp256k1"
        raise ScalarOutOfRange(msg)
    return value


def parse_private_key_hex(private_key_hex: str) -> bytes:
    """Decode a hex private key, with or without ``0x``."""
    text = private_key_hex.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    if len(text) != PRIVATE_KEY_LENGTH * 2:
        msg = f"Invalid private key length: expected 64 hex characters (32 bytes), got {len(text)}"
        raise InvalidScalarLength(msg)
    try:
        return bytes.fromhex(text)
    except ValueError as error:
        msg = "Invalid private key format: must be hexadecimal"
        raise InvalidScalarLength(msg) from error


def encode_pkcs8_private_key(scalar: bytes) -> bytes:
    """
    Wrap a raw scalar as PKCS#8 ``PrivateKeyInfo`` for secp256k1.

    The inner ``ECPrivateKey`` carries only the version and the key itself;
    Cloud KMS derives the public point on import.
    """
    validate_private_scalar(scalar)

    ec_private_key = asn1.encode_sequence(
        asn1.write_tlv(asn1.TAG_INTEGER, asn1.encode_integer(1)),
        asn1.write_tlv(asn1.TAG_OCTET_STRING, scalar),
    )
    return asn1.encode_sequence(
        asn1.write_tlv(asn1.TAG_INTEGER, asn1.encode_integer(0)),
        _EC_ALGORITHM,
        asn1.write_tlv(asn1.TAG_OCTET_STRING, ec_private_key),
    )


def _check_ec_algorithm(content: bytes) -> None:
    oids = asn1.read_children(content)
    if len(oids) != 2 or any(oid.tag != asn1.TAG_OID for oid in oids):
        msg = "AlgorithmIdentifier must hold two OIDs"
        raise MalformedEncoding(msg)
    algorithm, curve = (asn1.decode_oid(oid.value) for oid in oids)
    if algorithm != asn1.OID_EC_PUBLIC_KEY or curve != asn1.OID_SECP256K1:
        msg = f"Unsupported key algorithm {algorithm} / {curve}"
        raise MalformedEncoding(msg)


def decode_pkcs8_private_key(der: bytes) -> bytes:
    """Extract the raw scalar from a PKCS#8 secp256k1 private key."""
    info = asn1.read_children(asn1.read_single(der, asn1.TAG_SEQUENCE).value)
    if [child.tag for child in info[:3]] != [asn1.TAG_INTEGER, asn1.TAG_SEQUENCE, asn1.TAG_OCTET_STRING]:
        msg = "Not a PKCS#8 PrivateKeyInfo"
        raise MalformedEncoding(msg)
    if asn1.decode_integer(info[0].value) != 0:
        msg = "Unsupported PrivateKeyInfo version"
        raise MalformedEncoding(msg)
    _check_ec_algorithm(info[1].value)

    ec_key = asn1.read_children(asn1.read_single(info[2].value, asn1.TAG_SEQUENCE).value)
    if len(ec_key) < 2 or ec_key[0].tag != asn1.TAG_INTEGER or ec_key[1].tag != asn1.TAG_OCTET_STRING:
        msg = "Not an ECPrivateKey"
        raise MalformedEncoding(msg)
    if asn1.decode_integer(ec_key[0].value) != 1:
        msg = "Unsupported ECPrivateKey version"
        raise MalformedEncoding(msg)

    scalar = ec_key[1].value
    validate_private_scalar(scalar)
    return scalar


def _pem_to_der(pem_str: str) -> bytes:
    if PEM_HEADER not in pem_str:
        pem_str = f"{PEM_HEADER}\n{pem_str.strip()}\n{PEM_FOOTER}"
    try:
        public_key = serialization.load_pem_public_key(pem_str.encode("utf-8"))
    except ValueError as error:
        msg = f"Invalid PEM public key: {error}"
        raise UnsupportedPublicKeyFormat(msg) from error
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _spki_point(der: bytes) -> bytes:
    try:
        spki = asn1.read_children(asn1.read_single(der, asn1.TAG_SEQUENCE).value)
        if len(spki) != 2 or spki[0].tag != asn1.TAG_SEQUENCE or spki[1].tag != asn1.TAG_BIT_STRING:
            msg = "SubjectPublicKeyInfo must be SEQUENCE { AlgorithmIdentifier, BIT STRING }"
            raise MalformedEncoding(msg)
        _check_ec_algorithm(spki[0].value)
    except MalformedEncoding as e:
        msg = f"Unsupported DER public key: {e}"
        raise UnsupportedPublicKeyFormat(msg) from e

    bit_string = spki[1].value
    if not bit_string or bit_string[0] != 0:
        msg = "BIT STRING must have zero unused bits"
        raise UnsupportedPublicKeyFormat(msg)
    return bit_string[1:]


def extract_public_key_bytes(public_key: bytes | str) -> bytes:
    """
    Normalize an exported public key to the 64-byte ``X || Y`` form.

    Args:
        public_key: Raw uncompressed point (65 bytes with ``0x04`` prefix, or 64 bytes),
            DER SubjectPublicKeyInfo, or PEM text as returned by Cloud KMS

    Raises:
        UnsupportedPublicKeyFormat: If the input is none of the above
    """
    if isinstance(public_key, str):
        if public_key.startswith("0x"):
            try:
                public_key = bytes.fromhex(public_key[2:])
            except ValueError as error:
                msg = "Invalid hex public key"
                raise UnsupportedPublicKeyFormat(msg) from error
        else:
            public_key = _pem_to_der(public_key)
    elif public_key.startswith(b"-----"):
        try:
            text = public_key.decode("ascii")
        except UnicodeDecodeError as error:
            msg = "PEM public key is not ASCII"
            raise UnsupportedPublicKeyFormat(msg) from error
        public_key = _pem_to_der(text)

    if len(public_key) == PUBLIC_KEY_LENGTH:
        return bytes(public_key)

    point = _spki_point(public_key) if public_key[:1] == bytes([asn1.TAG_SEQUENCE]) else public_key
    if len(point) != PUBLIC_KEY_LENGTH + 1 or point[0] != UNCOMPRESSED_POINT_PREFIX:
        msg = "Public key must be an uncompressed secp256k1 point (0x04 || X || Y)"
        raise UnsupportedPublicKeyFormat(msg)
    return bytes(point[1:])


def public_key_to_address(public_key: bytes | str) -> ChecksumAddress:
    """Ethereum address: last 20 bytes of Keccak-256(X || Y), EIP-55 cased."""
    return to_checksum_address(keccak(extract_public_key_bytes(public_key))[-20:])
