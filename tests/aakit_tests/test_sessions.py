"""
Tests for smart-session encoding and policies.
"""

import pytest

from aakit.core.codec import ZERO_HASH, decode_abi, function_selector, int_to_bytes, keccak256
from aakit.core.exceptions import ConfigurationError
from aakit.core.types import Action, EcdsaOwners, Session
from aakit.modules.catalog import SMART_SESSIONS_VALIDATOR_ADDRESS
from aakit.sessions import policies
from aakit.sessions.codec import (
    SMART_SESSIONS_FALLBACK_TARGET_FLAG,
    ChainDigest,
    EnableSessionData,
    SmartSessionMode,
    enable_sessions_call,
    encode_signature,
    permission_id,
    session_data,
)

PERMISSION = b"\x42" * 32
SIGNATURE = b"\x11" * 65


@pytest.fixture
def session(owner_b):
    return Session(owners=EcdsaOwners(accounts=(owner_b,)))


class TestPermissionId:
    """Permission id derivation"""

    def test_stable_for_equal_sessions(self, owner_b):
        first = Session(owners=EcdsaOwners(accounts=(owner_b,)))
        second = Session(owners=EcdsaOwners(accounts=(owner_b,)))
        assert permission_id(first) == permission_id(second)
        assert len(permission_id(first)) == 32

    def test_salt_changes_id(self, owner_b):
        plain = Session(owners=EcdsaOwners(accounts=(owner_b,)))
        salted = Session(owners=EcdsaOwners(accounts=(owner_b,)), salt=b"\x01" * 32)
        assert permission_id(plain) != permission_id(salted)

    def test_salt_must_be_32_bytes(self, owner_b):
        with pytest.raises(ConfigurationError):
            Session(owners=EcdsaOwners(accounts=(owner_b,)), salt=b"\x01")


class TestSignatureModes:
    """Mode-prefixed session signatures"""

    def test_use_mode(self):
        encoded = encode_signature(SmartSessionMode.USE, PERMISSION, SIGNATURE)
        assert encoded == b"\x00" + PERMISSION + SIGNATURE

    def test_enable_mode(self, session):
        enable_data = EnableSessionData(
            chain_digest_index=0,
            hashes_and_chain_ids=(ChainDigest(chain_id=8453, session_digest=keccak256(b"digest")),),
            session=session,
            permission_enable_signature=b"\x22" * 65,
        )
        encoded = encode_signature(SmartSessionMode.ENABLE, PERMISSION, SIGNATURE, enable_data)
        assert encoded[:1] == b"\x01"
        # the trailing dynamic bytes argument is the session signature
        assert SIGNATURE in encoded

    def test_enable_mode_requires_data(self):
        with pytest.raises(ValueError):
            encode_signature(SmartSessionMode.ENABLE, PERMISSION, SIGNATURE)

    def test_unsafe_enable_is_unsupported(self):
        with pytest.raises(NotImplementedError):
            encode_signature(SmartSessionMode.UNSAFE_ENABLE, PERMISSION, SIGNATURE)


class TestSessionData:
    """On-chain session struct defaults"""

    def test_defaults_to_sudo_and_fallback_action(self, session):
        data = session_data(session)
        assert data[2] == ZERO_HASH
        assert data[3] == [(policies.SUDO_POLICY_ADDRESS, b"")]
        selector, target, action_policies = data[5][0]
        assert target == SMART_SESSIONS_FALLBACK_TARGET_FLAG
        assert selector == bytes.fromhex("00000001")
        assert action_policies == [(policies.SUDO_POLICY_ADDRESS, b"")]
        assert data[4][0] == [(ZERO_HASH, [""])]
        assert data[6] is True

    def test_explicit_actions(self, owner_b):
        target = "0x" + "aa" * 20
        selector = function_selector("transfer(address,uint256)")
        session = Session(
            owners=EcdsaOwners(accounts=(owner_b,)),
            actions=(Action(target=target, selector=selector, policies=(policies.UsageLimitPolicy(3),)),),
        )
        ((action_selector, action_target, action_policies),) = session_data(session)[5]
        assert action_selector == selector
        assert action_target == target
        assert action_policies[0][0] == policies.USAGE_LIMIT_POLICY_ADDRESS

    def test_enable_sessions_call_targets_validator(self, session):
        call = enable_sessions_call([session])
        assert call.to == SMART_SESSIONS_VALIDATOR_ADDRESS
        assert call.data[:4] == function_selector(
            "enableSessions((address,bytes,bytes32,(address,bytes)[],"
            "((bytes32,string[])[],(address,bytes)[]),(bytes4,address,(address,bytes)[])[],bool)[])"
        )


class TestPolicies:
    """Policy init data"""

    def test_sudo(self):
        assert policies.encode(policies.SudoPolicy()) == (policies.SUDO_POLICY_ADDRESS, b"")

    def test_time_frame_converts_milliseconds(self):
        address, data = policies.encode(policies.TimeFramePolicy(valid_until=5_000_000, valid_after=1_000))
        assert address == policies.TIME_FRAME_POLICY_ADDRESS
        assert data == int_to_bytes(5_000, 16) + int_to_bytes(1, 16)

    def test_usage_limit_is_packed_uint128(self):
        _, data = policies.encode(policies.UsageLimitPolicy(limit=7))
        assert data == int_to_bytes(7, 16)

    def test_value_limit(self):
        _, data = policies.encode(policies.ValueLimitPolicy(limit=10**18))
        assert data == int_to_bytes(10**18, 32)

    def test_spending_limits(self):
        token = "0x" + "bb" * 20
        _, data = policies.encode(
            policies.SpendingLimitsPolicy(limits=(policies.SpendingLimit(token=token, amount=100),))
        )
        tokens, amounts = decode_abi(["address[]", "uint256[]"], data)
        assert tokens[0].lower() == token
        assert amounts == (100,)

    def test_universal_action_pads_rules(self):
        policy = policies.UniversalActionPolicy(
            rules=(
                policies.ParamRule(
                    condition=policies.ParamCondition.EQUAL,
                    calldata_offset=0,
                    reference_value=42,
                    usage_limit=2,
                ),
            )
        )
        address, data = policies.encode(policy)
        assert address == policies.UNIVERSAL_ACTION_POLICY_ADDRESS
        ((value_limit, (length, rules)),) = decode_abi(
            ["(uint256,(uint256,(uint8,uint64,bool,bytes32,(uint256,uint256))[16]))"], data
        )
        assert value_limit == policies.MAX_UINT256
        assert length == 1
        assert len(rules) == policies.MAX_RULES
        assert rules[0][2] is True
        assert rules[0][3] == int_to_bytes(42, 32)
        assert rules[0][4] == (2, 0)
        assert rules[1] == (0, 0, False, b"\x00" * 32, (0, 0))

    def test_universal_action_rule_limit(self):
        rule = policies.ParamRule(
            condition=policies.ParamCondition.EQUAL, calldata_offset=0, reference_value=1
        )
        with pytest.raises(ConfigurationError):
            policies.UniversalActionPolicy(rules=(rule,) * (policies.MAX_RULES + 1))
        with pytest.raises(ConfigurationError):
            policies.UniversalActionPolicy(rules=())
