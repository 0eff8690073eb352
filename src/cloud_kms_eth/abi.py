"""Contract call data from a human-readable signature and typed parameters.

Each parameter carries its declared ABI type next to its value, so text from
the command line is converted according to the function signature instead of
by guessing from what the text looks like.
"""

import re
from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict

from cloud_kms_eth.exceptions import AbiEncodingError
from cloud_kms_eth.utils import hex_to_bytes

_SIGNATURE_RE = re.compile(r"^\s*([A-Za-z_$][A-Za-z0-9_$]*)\s*\((.*)\)\s*$")
_ARRAY_RE = re.compile(r"^(.+)\[(\d*)\]$")
_INT_RE = re.compile(r"^(u?)int(\d*)$")
_BYTES_RE = re.compile(r"^bytes(\d*)$")
_BARE_INT_RE = re.compile(r"^(u?int)(?=\[|$)")


class AbiParam(BaseModel):
    """A call argument tagged with its ABI type."""

    model_config = ConfigDict(frozen=True)

    abi_type: str
    value: Any


def parse_function_signature(signature: str) -> tuple[str, list[str]]:
    """
    Split ``"transfer(address,uint256)"`` into its name and parameter types.

    Raises:
        AbiEncodingError: If the signature is malformed or uses tuple types
    """
    match = _SIGNATURE_RE.match(signature)
    if not match:
        msg = f"Invalid function signature: {signature!r}"
        raise AbiEncodingError(msg)

    name, params = match.groups()
    if "(" in params or ")" in params:
        msg = "Tuple parameters are not supported"
        raise AbiEncodingError(msg)

    types = [_BARE_INT_RE.sub(r"\g<1>256", abi_type.strip()) for abi_type in params.split(",") if abi_type.strip()]
    return name, types


def _coerce_int(abi_type: str, signed: bool, bits: int, text: str) -> int:
    try:
        value = int(text, 0)
    except ValueError as e:
        msg = f"Invalid {abi_type} value: {text!r}"
        raise AbiEncodingError(msg) from e

    low, high = (-(1 << (bits - 1)), (1 << (bits - 1)) - 1) if signed else (0, (1 << bits) - 1)
    if not low <= value <= high:
        msg = f"{abi_type} value {value} out of range"
        raise AbiEncodingError(msg)
    return value


def _coerce_scalar(abi_type: str, text: str) -> Any:
    if abi_type == "string":
        return text
    text = text.strip()

    if abi_type == "address":
        if not is_address(text):
            msg = f"Invalid address: {text!r}"
            raise AbiEncodingError(msg)
        return to_checksum_address(text)

    if abi_type == "bool":
        lowered = text.lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
        msg = f"Invalid bool value: {text!r}"
        raise AbiEncodingError(msg)

    int_match = _INT_RE.match(abi_type)
    if int_match:
        bits = int(int_match.group(2) or 256)
        if bits % 8 or not 8 <= bits <= 256:
            msg = f"Unsupported integer type: {abi_type}"
            raise AbiEncodingError(msg)
        return _coerce_int(abi_type, not int_match.group(1), bits, text)

    bytes_match = _BYTES_RE.match(abi_type)
    if bytes_match:
        try:
            value = hex_to_bytes(text)
        except ValueError as e:
            msg = f"Invalid {abi_type} value: {text!r}"
            raise AbiEncodingError(msg) from e
        size = bytes_match.group(1)
        if size and (not 1 <= int(size) <= 32 or len(value) > int(size)):
            msg = f"{abi_type} value is {len(value)} bytes"
            raise AbiEncodingError(msg)
        return value

    msg = f"Unsupported ABI type: {abi_type}"
    raise AbiEncodingError(msg)


def coerce_param(abi_type: str, text: str) -> AbiParam:
    """
    Convert command-line text into a typed parameter.

    Arrays are written as comma-separated items, optionally in brackets:
    ``"[0xabc...,0xdef...]"`` for ``address[]``.
    """
    array_match = _ARRAY_RE.match(abi_type)
    if array_match:
        item_type, length = array_match.groups()
        body = text.strip()
        if body.startswith("[") and body.endswith("]"):
            body = body[1:-1]
        items = [item for item in body.split(",") if item.strip()] if body.strip() else []
        if length and len(items) != int(length):
            msg = f"{abi_type} expects {length} items, got {len(items)}"
            raise AbiEncodingError(msg)
        return AbiParam(abi_type=abi_type, value=[coerce_param(item_type, item).value for item in items])

    return AbiParam(abi_type=abi_type, value=_coerce_scalar(abi_type, text))


def encode_function_call(signature: str, params: list[AbiParam | str]) -> bytes:
    """
    Build call data: 4-byte selector followed by the ABI-encoded arguments.

    Args:
        signature: Function signature, e.g. ``"transfer(address,uint256)"``
        params: Typed parameters, or raw text to be converted using the signature

    Raises:
        AbiEncodingError: On a count or type mismatch, or a value that does not encode
    """
    name, types = parse_function_signature(signature)
    if len(params) != len(types):
        msg = (
            f'Parameter count mismatch: function "{name}" expects {len(types)} parameter(s), '
            f"but {len(params)} were provided"
        )
        raise AbiEncodingError(msg)

    typed_params = []
    for abi_type, param in zip(types, params):
        if isinstance(param, str):
            param = coerce_param(abi_type, param)
        elif param.abi_type != abi_type:
            msg = f"Parameter type {param.abi_type} does not match {abi_type}"
            raise AbiEncodingError(msg)
        typed_params.append(param)

    canonical = f"{name}({','.join(types)})"
    try:
        encoded = encode(types, [param.value for param in typed_params])
    except Exception as e:
        msg = f"Cannot encode arguments for {canonical}: {e}"
        raise AbiEncodingError(msg) from e
    return function_signature_to_4byte_selector(canonical) + encoded
