"""
Smart-session encoding.

A session is identified by its permission id,
``keccak(abi.encode(sessionValidator, sessionValidatorInitData, salt))``.
Signatures routed through the smart-session validator carry a one-byte mode
prefix: USE for an already enabled session, ENABLE to enable the session in
the same user operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence, Tuple

from web3 import Web3

from aakit.core.codec import (
    ZERO_HASH,
    concat,
    encode_abi,
    encode_function_call,
    encode_packed,
    keccak256,
    to_bytes,
)
from aakit.core.types import Call, Session
from aakit.modules.catalog import SMART_SESSIONS_VALIDATOR_ADDRESS
from aakit.modules.read import read_contract
from aakit.modules.validators import validator_for
from aakit.sessions import policies

logger = logging.getLogger(__name__)

SMART_SESSIONS_FALLBACK_TARGET_FLAG = "0x0000000000000000000000000000000000000001"
SMART_SESSIONS_FALLBACK_TARGET_SELECTOR_FLAG = bytes.fromhex("00000001")

POLICY_DATA = "(address,bytes)"
ERC7739_DATA = f"((bytes32,string[])[],{POLICY_DATA}[])"
ACTION_DATA = f"(bytes4,address,{POLICY_DATA}[])"
SESSION = f"(address,bytes,bytes32,{POLICY_DATA}[],{ERC7739_DATA},{ACTION_DATA}[],bool)"
CHAIN_DIGEST = "(uint64,bytes32)"
ENABLE_SESSION = f"(uint8,{CHAIN_DIGEST}[],{SESSION},bytes)"


class SmartSessionMode(IntEnum):
    USE = 0
    ENABLE = 1
    UNSAFE_ENABLE = 2


@dataclass(frozen=True)
class ChainDigest:
    chain_id: int
    session_digest: bytes


@dataclass(frozen=True)
class EnableSessionData:
    """Owner approval that enables a session in the same user operation."""
    chain_digest_index: int
    hashes_and_chain_ids: Tuple[ChainDigest, ...]
    session: Session
    permission_enable_signature: bytes


def permission_id(session: Session) -> bytes:
    validator = validator_for(session.owners)
    return keccak256(
        encode_abi(
            ["address", "bytes", "bytes32"],
            [validator.address, validator.init_data, session.salt],
        )
    )


def _actions(session: Session) -> list:
    if not session.actions:
        return [
            (
                SMART_SESSIONS_FALLBACK_TARGET_SELECTOR_FLAG,
                SMART_SESSIONS_FALLBACK_TARGET_FLAG,
                policies.encode_all(()),
            )
        ]
    return [
        (to_bytes(action.selector), action.target, policies.encode_all(action.policies))
        for action in session.actions
    ]


def _allowed_content(session: Session) -> list:
    if not session.allowed_content:
        return [(ZERO_HASH, [""])]
    return [
        (to_bytes(content.domain_separator), list(content.content_names))
        for content in session.allowed_content
    ]


def session_data(session: Session) -> tuple:
    """The on-chain ``Session`` struct as an ABI-encodable tuple."""
    validator = validator_for(session.owners)
    return (
        validator.address,
        validator.init_data,
        session.salt,
        policies.encode_all(session.policies),
        (_allowed_content(session), policies.encode_all(session.signing_policies)),
        _actions(session),
        session.permit_erc4337_paymaster,
    )


def encode_signature(
    mode: SmartSessionMode,
    permission_id: bytes,
    signature: bytes,
    enable_data: Optional[EnableSessionData] = None,
) -> bytes:
    """Encode a validator signature for the smart-session validator.

    Raises:
        ValueError: If ENABLE mode is used without enable data
        NotImplementedError: For UNSAFE_ENABLE mode
    """
    if mode is SmartSessionMode.USE:
        return encode_packed(["bytes1", "bytes32", "bytes"], [b"\x00", permission_id, signature])
    if mode is SmartSessionMode.ENABLE:
        if enable_data is None:
            raise ValueError("Enable data is required for ENABLE mode")
        enable_session = (
            enable_data.chain_digest_index,
            [(d.chain_id, d.session_digest) for d in enable_data.hashes_and_chain_ids],
            session_data(enable_data.session),
            enable_data.permission_enable_signature,
        )
        return concat(b"\x01", encode_abi([ENABLE_SESSION, "bytes"], [enable_session, signature]))
    raise NotImplementedError(f"Smart session mode {mode.name} is not supported")


def enable_sessions_call(sessions: Sequence[Session]) -> Call:
    return Call(
        to=SMART_SESSIONS_VALIDATOR_ADDRESS,
        data=encode_function_call(
            f"enableSessions({SESSION}[])",
            [[session_data(session) for session in sessions]],
        ),
    )


def is_session_enabled(w3: Web3, account: str, permission: bytes) -> bool:
    (enabled,) = read_contract(
        w3,
        SMART_SESSIONS_VALIDATOR_ADDRESS,
        "isPermissionEnabled(bytes32,address)",
        [permission, account],
        ["bool"],
    )
    return bool(enabled)


def session_digest(w3: Web3, account: str, session: Session, mode: SmartSessionMode) -> bytes:
    """Digest the account owner signs to approve enabling ``session``."""
    (digest,) = read_contract(
        w3,
        SMART_SESSIONS_VALIDATOR_ADDRESS,
        f"getSessionDigest(bytes32,address,{SESSION},uint8)",
        [permission_id(session), account, session_data(session), int(mode)],
        ["bytes32"],
    )
    logger.debug(
        "Read session digest",
        extra={"event": "sessions.digest", "account": account, "mode": mode.name},
    )
    return digest
