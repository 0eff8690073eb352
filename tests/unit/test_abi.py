"""Unit tests for contract call data encoding."""
import pytest
from eth_abi import decode

from cloud_kms_eth.abi import AbiParam, coerce_param, encode_function_call, parse_function_signature
from cloud_kms_eth.exceptions import AbiEncodingError

DEAD = "0x000000000000000000000000000000000000dEaD"


def test_erc20_transfer():
    data = encode_function_call("transfer(address,uint256)", [DEAD, "1000"])

    assert data[:4] == bytes.fromhex("a9059cbb")
    assert data[4:] == bytes.fromhex("00" * 12 + DEAD[2:].lower() + f"{1000:064x}")


def test_typed_params():
    params = [AbiParam(abi_type="address", value=DEAD), AbiParam(abi_type="uint256", value=5)]
    assert encode_function_call("transfer(address,uint256)", params) == encode_function_call(
        "transfer(address,uint256)", [DEAD, "5"]
    )


def test_typed_param_type_mismatch():
    with pytest.raises(AbiEncodingError, match="does not match"):
        encode_function_call("approve(address,uint256)", [DEAD, AbiParam(abi_type="int256", value=1)])


def test_no_params():
    assert encode_function_call("totalSupply()", []) == bytes.fromhex("18160ddd")


@pytest.mark.parametrize("params", [[], [DEAD], [DEAD, "1", "2"]])
def test_parameter_count_mismatch(params):
    with pytest.raises(AbiEncodingError, match='Parameter count mismatch: function "transfer" expects 2'):
        encode_function_call("transfer(address,uint256)", params)


def test_parse_signature():
    assert parse_function_signature(" setValues ( uint , int8[], bytes32 ) ") == (
        "setValues",
        ["uint256", "int8[]", "bytes32"],
    )


def test_bare_int_selector_matches_canonical():
    assert encode_function_call("balanceOf(address)", [DEAD])[:4] == bytes.fromhex("70a08231")
    assert encode_function_call("set(uint)", ["1"]) == encode_function_call("set(uint256)", ["1"])


@pytest.mark.parametrize("signature", ["transfer", "1abc()", "f(uint256", "swap((address,uint256))"])
def test_invalid_signature(signature):
    with pytest.raises(AbiEncodingError):
        parse_function_signature(signature)


@pytest.mark.parametrize(
    "abi_type,text,expected",
    [
        ("uint256", "0x10", 16),
        ("uint8", "255", 255),
        ("int16", "-32768", -32768),
        ("bool", "true", True),
        ("bool", "0", False),
        ("string", " hello ", " hello "),
        ("bytes", "0xabcd", b"\xab\xcd"),
        ("bytes4", "a9059cbb", bytes.fromhex("a9059cbb")),
        ("address", DEAD.lower(), DEAD),
    ],
)
def test_coerce_scalar(abi_type, text, expected):
    assert coerce_param(abi_type, text).value == expected


@pytest.mark.parametrize(
    "abi_type,text",
    [
        ("uint8", "256"),
        ("uint256", "-1"),
        ("int8", "128"),
        ("uint256", "ten"),
        ("bool", "yes"),
        ("address", "0x1234"),
        ("bytes2", "0xabcdef"),
        ("bytes", "0xzz"),
        ("uint7", "1"),
        ("fixed128x18", "1"),
    ],
)
def test_coerce_rejects(abi_type, text):
    with pytest.raises(AbiEncodingError):
        coerce_param(abi_type, text)


def test_coerce_arrays():
    assert coerce_param("uint256[]", "[1, 2,3]").value == [1, 2, 3]
    assert coerce_param("address[]", f"{DEAD},{DEAD.lower()}").value == [DEAD, DEAD]
    assert coerce_param("uint256[]", "[]").value == []
    assert coerce_param("bool[2]", "true,false").value == [True, False]


def test_fixed_array_length_checked():
    with pytest.raises(AbiEncodingError, match="expects 2 items"):
        coerce_param("uint8[2]", "1,2,3")


def test_array_call_round_trip():
    data = encode_function_call("batch(address[],uint256[])", [f"[{DEAD}]", "[7]"])
    assert decode(["address[]", "uint256[]"], data[4:]) == ((DEAD.lower(),), (7,))


def test_string_whitespace_is_encoded():
    data = encode_function_call("setName(string)", ["  hi  "])
    assert decode(["string"], data[4:]) == ("  hi  ",)
