"""
Byte-level encoding helpers shared by every account provider.

Wraps eth_abi for standard and packed ABI encoding, pycryptodome for
keccak256, and eth_utils for address normalization. Everything here is pure:
no chain access, no hidden state.

Usage:
    from aakit.core.codec import encode_function_call, create2_address

    data = encode_function_call("installModule(uint256,address,bytes)", [1, validator, b""])
    address = create2_address(factory, salt, init_code_hash)
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence, Union

from Crypto.Hash import keccak as _keccak
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_abi.packed import encode_packed as _encode_packed
from eth_utils import is_address, to_checksum_address

HexLike = Union[str, bytes, bytearray]

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
SENTINEL_ADDRESS = "0x0000000000000000000000000000000000000001"
ZERO_HASH = b"\x00" * 32


def keccak256(data: HexLike) -> bytes:
    """Compute keccak256 over raw bytes (hex strings are decoded first)."""
    k = _keccak.new(digest_bits=256)
    k.update(to_bytes(data))
    return k.digest()


def keccak_text(text: str) -> bytes:
    return keccak256(text.encode("utf-8"))


def function_selector(signature: str) -> bytes:
    """Return the 4-byte selector for a canonical function signature."""
    return keccak_text(signature)[:4]


def to_bytes(value: HexLike) -> bytes:
    """Convert a 0x-prefixed hex string or bytes-like value to bytes.

    Raises:
        ValueError: If the string is not valid hex
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise TypeError(f"Expected hex string or bytes, got {type(value).__name__}")
    raw = value[2:] if value.startswith(("0x", "0X")) else value
    if len(raw) % 2:
        raw = "0" + raw
    try:
        return bytes.fromhex(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid hex value: {value!r}") from exc


def to_hex(value: HexLike) -> str:
    return "0x" + to_bytes(value).hex()


def concat(*parts: HexLike) -> bytes:
    return b"".join(to_bytes(part) for part in parts)


def pad_left(value: HexLike, size: int) -> bytes:
    data = to_bytes(value)
    if len(data) > size:
        raise ValueError(f"Value of {len(data)} bytes does not fit in {size} bytes")
    return data.rjust(size, b"\x00")


def int_to_bytes(value: int, size: int) -> bytes:
    if value < 0:
        raise ValueError("Only unsigned integers can be encoded")
    return value.to_bytes(size, "big")


def normalize_address(address: HexLike) -> str:
    """Return the EIP-55 checksummed form of an address.

    Raises:
        ValueError: If the value is not a 20-byte address
    """
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise ValueError(f"Address must be 20 bytes, got {len(address)}")
        return to_checksum_address(address)
    if not is_address(address.lower()):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address.lower())


def same_address(a: HexLike, b: HexLike) -> bool:
    return normalize_address(a) == normalize_address(b)


def address_bytes(address: HexLike) -> bytes:
    return bytes.fromhex(normalize_address(address)[2:])


def _prepare(types: Sequence[str], values: Sequence[Any]) -> list:
    if len(types) != len(values):
        raise ValueError(f"Expected {len(types)} values, got {len(values)}")
    return [_prepare_value(abi_type, value) for abi_type, value in zip(types, values)]


def _split_tuple_components(inner: str) -> list[str]:
    components, depth, start = [], 0, 0
    for index, char in enumerate(inner):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            components.append(inner[start:index])
            start = index + 1
    if inner:
        components.append(inner[start:])
    return components


def _prepare_value(abi_type: str, value: Any) -> Any:
    """Normalize hex strings and addresses so eth_abi accepts them."""
    if abi_type.endswith("]"):
        base = abi_type[: abi_type.rindex("[")]
        return [_prepare_value(base, item) for item in value]
    if abi_type.startswith("("):
        components = _split_tuple_components(abi_type[1:-1])
        return tuple(_prepare_value(t, v) for t, v in zip(components, value))
    if abi_type == "address":
        return normalize_address(value)
    if abi_type == "bytes" or (abi_type.startswith("bytes") and isinstance(value, str)):
        return to_bytes(value)
    return value


def encode_abi(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """ABI-encode values (Solidity ``abi.encode``)."""
    return encode(list(types), _prepare(types, values))


def decode_abi(types: Sequence[str], data: HexLike) -> tuple:
    return decode(list(types), to_bytes(data))


def encode_packed(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """Packed encoding (Solidity ``abi.encodePacked``)."""
    return _encode_packed(list(types), _prepare(types, values))


def _argument_types(signature: str) -> list[str]:
    return _split_tuple_components(signature[signature.index("(") + 1 : -1])


def encode_function_call(signature: str, args: Iterable[Any]) -> bytes:
    """Encode calldata for ``signature`` such as ``"transfer(address,uint256)"``."""
    return function_selector(signature) + encode_abi(_argument_types(signature), list(args))


def decode_function_call(signature: str, data: HexLike) -> tuple:
    """Decode calldata produced for ``signature``.

    Raises:
        ValueError: If the selector does not match the signature
    """
    raw = to_bytes(data)
    if raw[:4] != function_selector(signature):
        raise ValueError(f"Calldata does not match {signature}")
    try:
        return decode_abi(_argument_types(signature), raw[4:])
    except DecodingError as exc:
        raise ValueError(f"Malformed calldata for {signature}: {exc}") from exc


def create2_address(factory: HexLike, salt: HexLike, init_code_hash: HexLike) -> str:
    """Derive a CREATE2 address: keccak(0xff ++ factory ++ salt ++ init_code_hash)[12:]."""
    salt_bytes = to_bytes(salt)
    code_hash = to_bytes(init_code_hash)
    if len(salt_bytes) != 32 or len(code_hash) != 32:
        raise ValueError("CREATE2 salt and init code hash must be 32 bytes")
    digest = keccak256(b"\xff" + address_bytes(factory) + salt_bytes + code_hash)
    return to_checksum_address(digest[12:])
