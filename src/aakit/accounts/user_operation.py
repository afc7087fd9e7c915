"""
ERC-4337 v0.7 user operations.

The packed form hashed by the EntryPoint splits the gas fields into two
``bytes32`` words and folds factory and paymaster fields into ``initCode``
and ``paymasterAndData``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from aakit.core.codec import (
    address_bytes,
    concat,
    encode_abi,
    int_to_bytes,
    keccak256,
    normalize_address,
    to_hex,
)


@dataclass(frozen=True)
class UserOperation:
    sender: str
    nonce: int
    call_data: bytes
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    factory: Optional[str] = None
    factory_data: bytes = b""
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: bytes = b""
    signature: bytes = b""
    # signed EIP-7702 authorization, forwarded to the bundler as-is
    authorization: Optional[Any] = None

    @property
    def init_code(self) -> bytes:
        if self.factory is None:
            return b""
        return concat(address_bytes(self.factory), self.factory_data)

    @property
    def paymaster_and_data(self) -> bytes:
        if self.paymaster is None:
            return b""
        return concat(
            address_bytes(self.paymaster),
            int_to_bytes(self.paymaster_verification_gas_limit, 16),
            int_to_bytes(self.paymaster_post_op_gas_limit, 16),
            self.paymaster_data,
        )

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=signature)

    def to_rpc(self) -> Dict[str, Any]:
        """JSON-RPC representation (``eth_sendUserOperation``)."""
        op: Dict[str, Any] = {
            "sender": normalize_address(self.sender),
            "nonce": hex(self.nonce),
            "callData": to_hex(self.call_data),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "signature": to_hex(self.signature),
        }
        if self.factory is not None:
            op["factory"] = normalize_address(self.factory)
            op["factoryData"] = to_hex(self.factory_data)
        if self.paymaster is not None:
            op["paymaster"] = normalize_address(self.paymaster)
            op["paymasterVerificationGasLimit"] = hex(self.paymaster_verification_gas_limit)
            op["paymasterPostOpGasLimit"] = hex(self.paymaster_post_op_gas_limit)
            op["paymasterData"] = to_hex(self.paymaster_data)
        return op


def user_operation_hash(user_op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Hash an operation the way EntryPoint v0.7 ``getUserOpHash`` does.

    The signature field is never part of the hash.
    """
    account_gas_limits = concat(
        int_to_bytes(user_op.verification_gas_limit, 16),
        int_to_bytes(user_op.call_gas_limit, 16),
    )
    gas_fees = concat(
        int_to_bytes(user_op.max_priority_fee_per_gas, 16),
        int_to_bytes(user_op.max_fee_per_gas, 16),
    )
    packed = encode_abi(
        ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
        [
            user_op.sender,
            user_op.nonce,
            keccak256(user_op.init_code),
            keccak256(user_op.call_data),
            account_gas_limits,
            user_op.pre_verification_gas,
            gas_fees,
            keccak256(user_op.paymaster_and_data),
        ],
    )
    return keccak256(encode_abi(["bytes32", "address", "uint256"], [keccak256(packed), entry_point, chain_id]))
