"""DER signature canonicalization and recovery id resolution.

Cloud KMS returns ``SEQUENCE { INTEGER r, INTEGER s }`` without a recovery id.
Ethereum needs a low-s ``(r, s)`` plus the id that selects which of the
candidate public keys signed, so the id is found by recovering each candidate
and comparing it with the key's known address.
"""

import logging

from ecdsa import SECP256k1
from ecdsa.ellipticcurve import INFINITY, Point, PointJacobi
from ecdsa.numbertheory import SquareRootError, inverse_mod, square_root_mod_prime
from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from cloud_kms_eth import asn1
from cloud_kms_eth.exceptions import InvalidSignatureEncoding, MalformedEncoding, RecoveryExhausted, SigningError
from cloud_kms_eth.keys import public_key_to_address
from cloud_kms_eth.types.ethereum_types import MSG_HASH_LENGTH, SECP256K1_HALF_N, SECP256K1_N, CanonicalSignature

logger = logging.getLogger(__name__)

# Ids 2 and 3 only exist when r + N is still a valid x coordinate
LEGACY_RECOVERY_IDS: tuple[int, ...] = (0, 1, 2, 3)
TYPED_RECOVERY_IDS: tuple[int, ...] = (0, 1)


def _decode_component(content: bytes, name: str) -> int:
    if not content:
        msg = f"Zero-length INTEGER for {name}"
        raise InvalidSignatureEncoding(msg)
    if content[0] & 0x80:
        msg = f"Negative INTEGER for {name}"
        raise InvalidSignatureEncoding(msg)
    if len(content) > 1 and content[0] == 0:
        if not content[1] & 0x80:
            msg = f"Non-minimal INTEGER padding for {name}"
            raise InvalidSignatureEncoding(msg)
        content = content[1:]
    if len(content) > MSG_HASH_LENGTH:
        msg = f"{name} is {len(content)} bytes, expected at most {MSG_HASH_LENGTH}"
        raise InvalidSignatureEncoding(msg)

    value = int.from_bytes(content, "big")
    if not 0 < value < SECP256K1_N:
        msg = f"{name} is outside [1, N-1]"
        raise InvalidSignatureEncoding(msg)
    return value


def parse_der_signature(der_sig: bytes) -> tuple[int, int]:
    """
    Decode a DER ECDSA signature into integers.

    Args:
        der_sig: ``SEQUENCE { INTEGER r, INTEGER s }`` as returned by the HSM

    Returns:
        tuple[int, int]: r and s

    Raises:
        InvalidSignatureEncoding: On any structural mismatch
    """
    try:
        sequence = asn1.read_single(der_sig, asn1.TAG_SEQUENCE)
        children = asn1.read_children(sequence.value)
    except MalformedEncoding as e:
        msg = f"Invalid DER signature: {e}"
        raise InvalidSignatureEncoding(msg) from e

    if len(children) != 2 or any(child.tag != asn1.TAG_INTEGER for child in children):
        msg = "DER signature must be SEQUENCE { INTEGER r, INTEGER s }"
        raise InvalidSignatureEncoding(msg)

    return _decode_component(children[0].value, "r"), _decode_component(children[1].value, "s")


def canonicalize_signature(der_sig: bytes) -> CanonicalSignature:
    """Normalize a DER signature according to EIP-2 (s <= N/2)."""
    r, s = parse_der_signature(der_sig)

    flipped = s > SECP256K1_HALF_N
    if flipped:
        s = SECP256K1_N - s

    return CanonicalSignature(r=r.to_bytes(32, "big"), s=s.to_bytes(32, "big"), flipped=flipped)


def recover_public_key(msg_hash: bytes, r: int, s: int, recovery_id: int) -> bytes | None:
    """
    Recover the public key selected by ``recovery_id`` (SEC 1, section 4.1.6).

    Returns:
        bytes | None: 64-byte ``X || Y``, or None when no such candidate point exists
    """
    if len(msg_hash) != MSG_HASH_LENGTH:
        msg = f"Message hash must be 32 bytes, got {len(msg_hash)}"
        raise SigningError(msg)
    if recovery_id not in LEGACY_RECOVERY_IDS:
        msg = f"Recovery id must be 0-3, got {recovery_id}"
        raise SigningError(msg)

    curve = SECP256k1.curve
    generator = SECP256k1.generator
    n = SECP256k1.order
    p = curve.p()

    x = r + (recovery_id >> 1) * n
    if x >= p:
        return None

    alpha = (pow(x, 3, p) + curve.a() * x + curve.b()) % p
    try:
        beta = square_root_mod_prime(alpha, p)
    except SquareRootError:
        return None
    y = beta if beta % 2 == recovery_id & 1 else p - beta

    point_r = PointJacobi.from_affine(Point(curve, x, y))
    e = int.from_bytes(msg_hash, "big") % n
    r_inv = inverse_mod(r, n)

    # Q = r^-1 * (s*R - e*G)
    q = point_r * (s * r_inv % n) + generator * (-e * r_inv % n)
    if q == INFINITY:
        return None

    affine = q.to_affine()
    return affine.x().to_bytes(32, "big") + affine.y().to_bytes(32, "big")


def candidate_recovery_ids(typed: bool) -> tuple[int, ...]:
    return TYPED_RECOVERY_IDS if typed else LEGACY_RECOVERY_IDS


def _expected_address(expected_signer: str | bytes) -> ChecksumAddress:
    if isinstance(expected_signer, str) and is_address(expected_signer):
        return to_checksum_address(expected_signer)
    return public_key_to_address(expected_signer)


def resolve_recovery_id(
    signature: CanonicalSignature,
    msg_hash: bytes,
    expected_signer: str | bytes,
    typed: bool = False,
) -> int:
    """
    Find the recovery id that reproduces the expected signer.

    Args:
        signature: Canonical (low-s) signature
        msg_hash: The 32-byte digest that was signed
        expected_signer: Address, or public key in raw/DER/PEM form
        typed: Restrict the search to the yParity space of typed transactions

    Returns:
        int: The matching recovery id

    Raises:
        RecoveryExhausted: If no candidate recovers the expected signer
    """
    expected = _expected_address(expected_signer)
    candidates = candidate_recovery_ids(typed)
    logger.debug(
        "Resolving recovery id for digest %s (s flipped: %s, candidates: %s)",
        msg_hash.hex(),
        signature.flipped,
        candidates,
    )

    for recovery_id in candidates:
        public_key = recover_public_key(msg_hash, signature.r_int, signature.s_int, recovery_id)
        if public_key is None:
            continue
        if public_key_to_address(public_key) == expected:
            logger.debug("Recovery id %d matches %s", recovery_id, expected)
            return recovery_id

    msg = f"No recovery id in {candidates} recovers signer {expected}"
    raise RecoveryExhausted(msg)


def to_eip155_v(recovery_id: int, chain_id: int) -> int:
    return chain_id * 2 + 35 + recovery_id


def to_message_v(recovery_id: int) -> int:
    return 27 + recovery_id
