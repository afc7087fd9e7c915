"""
WebAuthn (P-256 passkey) signature packing.

The WebAuthn validator identifies credentials by
``keccak(abi.encode(x, y, account))`` and expects signatures as
``abi.encode(bytes32[] credIds, bool usePrecompile, WebAuthn[] assertions)``
with both arrays sorted by credential id.

``SoftwarePasskey`` is a WebAuthnAccount backed by a local P-256 key, useful
for servers and tests that need passkey signatures without a browser.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Sequence

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from aakit.core.codec import ZERO_ADDRESS, encode_abi, keccak256, to_bytes
from aakit.core.types import WebAuthnAccount, WebAuthnAssertion, WebAuthnCredential

P256_N = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551

_WEBAUTHN_TUPLE = "(bytes,string,uint256,uint256,uint256,uint256)[]"

_MOCK_AUTHENTICATOR_DATA = bytes.fromhex(
    "49960de5880e8c687434170f6476605b8fe4aeb9a28632c7995cf3ba831d97631d00000000"
)
_MOCK_CLIENT_DATA_JSON = (
    '{"type":"webauthn.get","challenge":"tbxXNFS9X_4Byr1cMwqKrIGB-_30a0QhZ6y7ucM0BOE",'
    '"origin":"http://localhost:3000","crossOrigin":false}'
)


def credential_id(credential: WebAuthnCredential, account: str) -> bytes:
    return keccak256(encode_abi(["uint256", "uint256", "address"], [credential.x, credential.y, account]))


def normalize_s(s: int) -> int:
    """Return the low-s form; the validator rejects malleable high-s values."""
    return P256_N - s if s > P256_N // 2 else s


def parse_signature(signature) -> tuple[int, int]:
    """Split a raw 64-byte r ++ s signature."""
    raw = to_bytes(signature)
    if len(raw) != 64:
        raise ValueError(f"Expected 64-byte P-256 signature, got {len(raw)} bytes")
    return int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")


def pack_signature(
    credential_ids: Sequence[bytes],
    use_precompile: bool,
    assertions: Sequence[WebAuthnAssertion],
) -> bytes:
    if len(credential_ids) != len(assertions):
        raise ValueError("Each credential id needs exactly one assertion")
    ordered = sorted(zip(credential_ids, assertions), key=lambda pair: pair[0])
    return encode_abi(
        ["bytes32[]", "bool", _WEBAUTHN_TUPLE],
        [
            [cred_id for cred_id, _ in ordered],
            use_precompile,
            [
                (
                    a.authenticator_data,
                    a.client_data_json,
                    a.challenge_index,
                    a.type_index,
                    a.r,
                    normalize_s(a.s),
                )
                for _, a in ordered
            ],
        ],
    )


def mock_webauthn_signature(credential: WebAuthnCredential, account: str = ZERO_ADDRESS) -> bytes:
    """Stub passkey signature for gas estimation."""
    assertion = WebAuthnAssertion(
        authenticator_data=_MOCK_AUTHENTICATOR_DATA,
        client_data_json=_MOCK_CLIENT_DATA_JSON,
        challenge_index=23,
        type_index=1,
        r=0x635BC6D0F68FF895CAE8A288ECF7542A6A9CD555DF784B73E1E2EA7E9104B1DB,
        s=0x15E9015D280CB19527881C625FEE43FD3A405D5B0D199A8C8E6589A7381209E4,
    )
    return pack_signature([credential_id(credential, account)], False, [assertion])


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


class SoftwarePasskey(WebAuthnAccount):
    """A passkey held as a local P-256 private key."""

    def __init__(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        credential_id: str = "software-passkey",
        rp_id: str = "localhost",
        origin: str = "http://localhost",
    ) -> None:
        if not isinstance(private_key.curve, ec.SECP256R1):
            raise ValueError("Passkeys must use the P-256 curve")
        self._private_key = private_key
        self.rp_id = rp_id
        self.origin = origin
        numbers = private_key.public_key().public_numbers()
        self.credential = WebAuthnCredential(id=credential_id, x=numbers.x, y=numbers.y)

    @classmethod
    def generate(cls, **kwargs) -> "SoftwarePasskey":
        return cls(ec.generate_private_key(ec.SECP256R1()), **kwargs)

    def sign(self, hash: bytes) -> WebAuthnAssertion:
        # flags: user present | user verified
        authenticator_data = hashlib.sha256(self.rp_id.encode()).digest() + b"\x05" + b"\x00" * 4
        client_data_json = json.dumps(
            {
                "type": "webauthn.get",
                "challenge": _b64url(to_bytes(hash)),
                "origin": self.origin,
                "crossOrigin": False,
            },
            separators=(",", ":"),
        )
        message = authenticator_data + hashlib.sha256(client_data_json.encode()).digest()
        der = self._private_key.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return WebAuthnAssertion(
            authenticator_data=authenticator_data,
            client_data_json=client_data_json,
            challenge_index=client_data_json.index('"challenge"'),
            type_index=client_data_json.index('"type"'),
            r=r,
            s=normalize_s(s),
        )
