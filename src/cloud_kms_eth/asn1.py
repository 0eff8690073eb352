"""Minimal DER reader/writer for the structures exchanged with the HSM.

Only what signatures, SubjectPublicKeyInfo and PKCS#8 EC keys need:
INTEGER, BIT STRING, OCTET STRING, OBJECT IDENTIFIER and SEQUENCE, with
short-form lengths and long-form lengths of one or two octets.
"""

from typing import NamedTuple

from cloud_kms_eth.exceptions import MalformedEncoding

TAG_INTEGER = 0x02
TAG_BIT_STRING = 0x03
TAG_OCTET_STRING = 0x04
TAG_OID = 0x06
TAG_SEQUENCE = 0x30

OID_EC_PUBLIC_KEY = "1.2.840.10045.2.1"
OID_SECP256K1 = "1.3.132.0.10"

MAX_LENGTH = 0xFFFF


class TLV(NamedTuple):
    """One decoded tag-length-value element."""

    tag: int
    length: int
    value: bytes
    next_offset: int


def encode_length(length: int) -> bytes:
    if length < 0:
        msg = f"Negative length: {length}"
        raise MalformedEncoding(msg)
    if length < 0x80:
        return bytes([length])
    if length <= 0xFF:
        return bytes([0x81, length])
    if length <= MAX_LENGTH:
        return bytes([0x82, length >> 8, length & 0xFF])
    msg = f"Length too large: {length}"
    raise MalformedEncoding(msg)


def read_tlv(data: bytes, offset: int = 0, expected_tag: int | None = None) -> TLV:
    """
    Read a single TLV element starting at ``offset``.

    Args:
        data: Buffer holding the encoding
        offset: Position of the tag byte
        expected_tag: If given, the tag the element must carry

    Returns:
        TLV: tag, content length, content bytes and the offset just past the element

    Raises:
        MalformedEncoding: If the buffer is truncated, the length form is unsupported
            or the tag does not match ``expected_tag``
    """
    end = len(data)
    if offset + 2 > end:
        msg = f"Truncated TLV header at offset {offset}"
        raise MalformedEncoding(msg)

    tag = data[offset]
    if expected_tag is not None and tag != expected_tag:
        msg = f"Expected tag 0x{expected_tag:02x} at offset {offset}, got 0x{tag:02x}"
        raise MalformedEncoding(msg)

    first = data[offset + 1]
    cursor = offset + 2
    if first < 0x80:
        length = first
    else:
        num_octets = first & 0x7F
        if num_octets not in (1, 2):
            msg = f"Unsupported length form 0x{first:02x} at offset {offset + 1}"
            raise MalformedEncoding(msg)
        if cursor + num_octets > end:
            msg = f"Truncated length at offset {cursor}"
            raise MalformedEncoding(msg)
        length = int.from_bytes(data[cursor : cursor + num_octets], "big")
        cursor += num_octets
        # DER requires the shortest form
        if length < 0x80 or (num_octets == 2 and length <= 0xFF):
            msg = f"Non-minimal length encoding at offset {offset + 1}"
            raise MalformedEncoding(msg)

    if cursor + length > end:
        msg = f"Declared length {length} exceeds remaining {end - cursor} bytes at offset {offset}"
        raise MalformedEncoding(msg)

    return TLV(tag, length, bytes(data[cursor : cursor + length]), cursor + length)


def read_single(data: bytes, expected_tag: int) -> TLV:
    """Read one element that must span the whole buffer."""
    element = read_tlv(data, 0, expected_tag)
    if element.next_offset != len(data):
        msg = f"{len(data) - element.next_offset} trailing bytes after top-level element"
        raise MalformedEncoding(msg)
    return element


def read_children(content: bytes) -> list[TLV]:
    """Split the content of a constructed element into its children."""
    children = []
    offset = 0
    while offset < len(content):
        child = read_tlv(content, offset)
        children.append(child)
        offset = child.next_offset
    return children


def write_tlv(tag: int, value: bytes) -> bytes:
    return bytes([tag]) + encode_length(len(value)) + value


def encode_integer(value: int) -> bytes:
    """DER INTEGER content for a non-negative integer."""
    if value < 0:
        msg = "Only non-negative integers are supported"
        raise MalformedEncoding(msg)
    content = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
    if content[0] & 0x80:
        content = b"\x00" + content
    return content


def decode_integer(content: bytes) -> int:
    """Decode DER INTEGER content, rejecting negative and non-minimal encodings."""
    if not content:
        msg = "Zero-length INTEGER"
        raise MalformedEncoding(msg)
    if content[0] & 0x80:
        msg = "Negative INTEGER"
        raise MalformedEncoding(msg)
    if len(content) > 1 and content[0] == 0 and not content[1] & 0x80:
        msg = "Non-minimal INTEGER padding"
        raise MalformedEncoding(msg)
    return int.from_bytes(content, "big")


def encode_oid(dotted: str) -> bytes:
    arcs = [int(arc) for arc in dotted.split(".")]
    if len(arcs) < 2:
        msg = f"OID needs at least two arcs: {dotted}"
        raise MalformedEncoding(msg)
    body = [40 * arcs[0] + arcs[1], *arcs[2:]]
    out = bytearray()
    for arc in body:
        chunk = [arc & 0x7F]
        arc >>= 7
        while arc:
            chunk.append(0x80 | (arc & 0x7F))
            arc >>= 7
        out.extend(reversed(chunk))
    return bytes(out)


def decode_oid(content: bytes) -> str:
    if not content or content[-1] & 0x80:
        msg = "Truncated OBJECT IDENTIFIER"
        raise MalformedEncoding(msg)
    arcs = []
    arc = 0
    for byte in content:
        arc = (arc << 7) | (byte & 0x7F)
        if not byte & 0x80:
            arcs.append(arc)
            arc = 0
    first = arcs[0]
    head = [min(first // 40, 2), first - 40 * min(first // 40, 2)]
    return ".".join(str(a) for a in head + arcs[1:])


def encode_sequence(*elements: bytes) -> bytes:
    return write_tlv(TAG_SEQUENCE, b"".join(elements))
