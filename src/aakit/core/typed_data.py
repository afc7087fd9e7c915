"""
EIP-712 domain separators and digests.

Only the domain fields that are set take part in the domain type, so the same
helper covers Safe's ``(chainId, verifyingContract)`` domain as well as the
full ``(name, version, chainId, verifyingContract, salt)`` form.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from aakit.core.codec import encode_abi, keccak256, keccak_text, normalize_address, to_bytes

EIP712_PREFIX = b"\x19\x01"


@dataclass(frozen=True)
class Eip712Domain:
    """EIP-712 domain. ``None`` fields are left out of the domain type."""
    name: Optional[str] = None
    version: Optional[str] = None
    chain_id: Optional[int] = None
    verifying_contract: Optional[str] = None
    salt: Optional[bytes] = None

    def _fields(self) -> List[Tuple[str, str, Any]]:
        fields = []
        if self.name is not None:
            fields.append(("string", "name", keccak_text(self.name)))
        if self.version is not None:
            fields.append(("string", "version", keccak_text(self.version)))
        if self.chain_id is not None:
            fields.append(("uint256", "chainId", self.chain_id))
        if self.verifying_contract is not None:
            fields.append(("address", "verifyingContract", normalize_address(self.verifying_contract)))
        if self.salt is not None:
            fields.append(("bytes32", "salt", to_bytes(self.salt)))
        return fields

    def type_string(self) -> str:
        return "EIP712Domain(" + ",".join(f"{t} {n}" for t, n, _ in self._fields()) + ")"

    def separator(self) -> bytes:
        fields = self._fields()
        # dynamic fields are already hashed, so they encode as bytes32
        types = ["bytes32"] + ["bytes32" if t == "string" else t for t, _, _ in fields]
        values = [keccak_text(self.type_string())] + [v for _, _, v in fields]
        return keccak256(encode_abi(types, values))

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.name is not None:
            d["name"] = self.name
        if self.version is not None:
            d["version"] = self.version
        if self.chain_id is not None:
            d["chainId"] = self.chain_id
        if self.verifying_contract is not None:
            d["verifyingContract"] = normalize_address(self.verifying_contract)
        if self.salt is not None:
            d["salt"] = "0x" + to_bytes(self.salt).hex()
        return d


def hash_typed_data(domain: Eip712Domain, struct_hash: bytes) -> bytes:
    """keccak(0x1901 ++ domainSeparator ++ structHash)"""
    return keccak256(EIP712_PREFIX + domain.separator() + to_bytes(struct_hash))
