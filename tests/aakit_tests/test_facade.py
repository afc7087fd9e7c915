"""
Tests for the account facade: deployment checks, ERC-7579 execution encoding,
ERC-6492 wrapping and smart account handles.
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data

from aakit.accounts import facade
from aakit.accounts.base import encode_7579_calls
from aakit.accounts.kernel import REPLAYABLE_SIGNATURE_MAGIC, VALIDATION_TYPE_ROOT, wrap_message_hash
from aakit.accounts.nexus import NEXUS_IMPLEMENTATION_ADDRESS
from aakit.accounts.user_operation import UserOperation, user_operation_hash
from aakit.core import config as settings
from aakit.core.codec import (
    address_bytes,
    decode_abi,
    decode_function_call,
    encode_abi,
    keccak256,
    same_address,
)
from aakit.core.exceptions import (
    ExistingDelegationNotSupportedError,
    ModuleNotInstalledError,
    OwnersRequiredError,
    SessionsNotEnabledError,
)
from aakit.core.types import AccountConfig, Call, EcdsaOwners, ProviderKind, Recovery, Session, ValidatorConfig
from aakit.modules.catalog import SMART_SESSIONS_VALIDATOR_ADDRESS
from aakit.modules.validators import ECDSA_MOCK_SIGNATURE, SOCIAL_RECOVERY_VALIDATOR_ADDRESS
from aakit.sessions.codec import permission_id
from aakit.signing.resolver import typed_data_hash

HASH = keccak256(b"message")
TARGET = "0x" + "cd" * 20


def recover(digest, signature):
    return Account.recover_message(encode_defunct(primitive=digest), signature=signature)


def user_op(sender, **kwargs):
    return UserOperation(sender=sender, nonce=kwargs.pop("nonce", 0), call_data=b"\x01\x02", **kwargs)


class TestExecutionEncoding:
    """ERC-7579 execute calldata"""

    def test_empty_calls_rejected(self):
        with pytest.raises(ValueError):
            encode_7579_calls([])

    def test_single_call_is_packed(self):
        data = encode_7579_calls([Call(to=TARGET, value=5, data=b"\xbe\xef")])
        assert data[:4].hex() == "e9ae5c53"
        mode, execution = decode_function_call("execute(bytes32,bytes)", data)
        assert mode[0] == 0
        assert execution == address_bytes(TARGET) + (5).to_bytes(32, "big") + b"\xbe\xef"

    def test_batch_call_is_abi_encoded(self):
        calls = [Call(to=TARGET, data=b"\x01"), Call(to=TARGET, value=1)]
        mode, execution = decode_function_call("execute(bytes32,bytes)", encode_7579_calls(calls))
        assert mode[0] == 1
        (entries,) = decode_abi(["(address,uint256,bytes)[]"], execution)
        assert len(entries) == 2
        assert entries[1][1] == 1


class TestIsDeployed:
    """On-chain deployment detection"""

    def test_no_code(self, make_config, w3):
        assert not facade.is_deployed(make_config(), w3)

    def test_contract_code(self, make_config, w3, fake_eth):
        config = make_config()
        fake_eth.code[facade.address(config).lower()] = b"\x60\x80\x60\x40"
        assert facade.is_deployed(config, w3)

    def test_foreign_delegation_raises(self, make_config, w3, fake_eth, owner_b):
        config = make_config(delegate_key=owner_b)
        fake_eth.code[owner_b.address.lower()] = bytes.fromhex("ef0100") + b"\x77" * 20
        with pytest.raises(ExistingDelegationNotSupportedError):
            facade.is_deployed(config, w3)

    def test_own_delegation_counts_as_deployed(self, make_config, w3, fake_eth, owner_b):
        config = make_config(delegate_key=owner_b)
        fake_eth.code[owner_b.address.lower()] = bytes.fromhex("ef0100") + address_bytes(
            NEXUS_IMPLEMENTATION_ADDRESS
        )
        assert facade.is_deployed(config, w3)

    def test_delegation_on_non_delegated_config_raises(self, make_config, w3, fake_eth):
        config = make_config()
        fake_eth.code[facade.address(config).lower()] = bytes.fromhex("ef0100") + address_bytes(
            NEXUS_IMPLEMENTATION_ADDRESS
        )
        with pytest.raises(ExistingDelegationNotSupportedError):
            facade.is_deployed(config, w3)


class TestErc6492:
    """Counterfactual signature wrapping"""

    def test_undeployed_account_is_wrapped(self, make_config, w3):
        config = make_config()
        wrapped = facade.to_erc6492_signature(config, b"\xaa" * 65, w3)
        assert wrapped.endswith(facade.ERC6492_MAGIC_BYTES)
        factory, factory_data, signature = decode_abi(
            ["address", "bytes", "bytes"], wrapped[: -len(facade.ERC6492_MAGIC_BYTES)]
        )
        args = facade.deploy_args(config)
        assert same_address(factory, args.factory)
        assert factory_data == args.factory_data
        assert signature == b"\xaa" * 65

    def test_deployed_account_passes_through(self, make_config, w3, fake_eth):
        config = make_config()
        fake_eth.code[facade.address(config).lower()] = b"\x60\x80"
        assert facade.to_erc6492_signature(config, b"\xaa" * 65, w3) == b"\xaa" * 65


class TestUserOperation:
    """User operation packing and hashing"""

    def test_hash_ignores_signature(self):
        op = user_op(TARGET)
        entry_point = settings.ENTRY_POINT_ADDRESS
        assert user_operation_hash(op, entry_point, 1) == user_operation_hash(
            op.with_signature(b"\x01" * 65), entry_point, 1
        )

    def test_hash_binds_chain_and_nonce(self):
        op = user_op(TARGET)
        entry_point = settings.ENTRY_POINT_ADDRESS
        assert user_operation_hash(op, entry_point, 1) != user_operation_hash(op, entry_point, 2)
        assert user_operation_hash(op, entry_point, 1) != user_operation_hash(
            user_op(TARGET, nonce=1), entry_point, 1
        )

    def test_init_code_and_paymaster_fields(self):
        factory = "0x" + "0f" * 20
        paymaster = "0x" + "0e" * 20
        op = user_op(
            TARGET,
            factory=factory,
            factory_data=b"\x99",
            paymaster=paymaster,
            paymaster_verification_gas_limit=1,
            paymaster_post_op_gas_limit=2,
        )
        assert op.init_code == address_bytes(factory) + b"\x99"
        assert op.paymaster_and_data == address_bytes(paymaster) + (1).to_bytes(16, "big") + (2).to_bytes(16, "big")
        rpc = op.to_rpc()
        assert rpc["factoryData"] == "0x99"
        assert rpc["nonce"] == "0x0"
        assert "paymasterData" in rpc

    def test_rpc_omits_absent_factory(self):
        assert "factory" not in user_op(TARGET).to_rpc()


class TestSmartAccounts:
    """Smart account handles"""

    def test_owner_account_signs_user_operation(self, make_config, w3, owner_a):
        config = make_config()
        account = facade.smart_account(config, w3)
        op = user_op(account.address)
        signature = account.sign_user_operation(op)
        expected_hash = user_operation_hash(op, settings.ENTRY_POINT_ADDRESS, 8453)
        assert account.user_operation_hash(op) == expected_hash
        assert recover(expected_hash, signature) == owner_a.address
        assert account.stub_signature() == ECDSA_MOCK_SIGNATURE

    def test_nonce_reads_entry_point(self, make_config, w3, fake_eth):
        fake_eth.respond(settings.ENTRY_POINT_ADDRESS, "getNonce(address,uint192)", encode_abi(["uint256"], [7]))
        account = facade.smart_account(make_config(), w3)
        assert account.nonce() == 7
        _, key = decode_function_call(
            "getNonce(address,uint192)", fake_eth.calls[-1]["data"]
        )
        assert key == account.nonce_key()

    def test_owners_required(self, w3):
        with pytest.raises(OwnersRequiredError):
            facade.smart_account(AccountConfig(owners=None, provider=ProviderKind.NEXUS), w3)

    def test_delegated_account(self, make_config, w3, owner_b):
        account = facade.smart_account(make_config(delegate_key=owner_b), w3)
        assert account.address == owner_b.address
        assert account.nonce_key() == 0
        assert recover(HASH, account.sign(HASH)) == owner_b.address

    def test_session_account_requires_sessions(self, make_config, w3, owner_b):
        session = Session(owners=EcdsaOwners(accounts=(owner_b,)))
        with pytest.raises(SessionsNotEnabledError):
            facade.session_smart_account(make_config(), w3, session)

    def test_session_account_uses_session_key(self, make_config, w3, owner_b):
        session = Session(owners=EcdsaOwners(accounts=(owner_b,)))
        account = facade.session_smart_account(make_config(sessions=(session,)), w3, session)
        signature = account.sign(HASH)
        assert signature[:1] == b"\x00"
        assert signature[1:33] == permission_id(session)
        assert recover(HASH, signature[33:]) == owner_b.address
        assert account.validator.address == SMART_SESSIONS_VALIDATOR_ADDRESS
        assert not account.validator.is_root
        assert account.stub_signature()[1:33] == permission_id(session)

    def test_guardian_account_requires_recovery(self, make_config, w3, owner_b):
        with pytest.raises(ModuleNotInstalledError):
            facade.guardian_smart_account(make_config(), w3, [owner_b])

    def test_guardian_account_signs_with_guardians(self, make_config, w3, owner_b, owner_c):
        config = make_config(recovery=Recovery(guardians=(owner_b, owner_c), threshold=2))
        account = facade.guardian_smart_account(config, w3, [owner_b, owner_c])
        signature = account.sign(HASH)
        assert recover(HASH, signature[:65]) == owner_b.address
        assert recover(HASH, signature[65:]) == owner_c.address
        assert account.validator.address == SOCIAL_RECOVERY_VALIDATOR_ADDRESS
        assert len(account.stub_signature()) == 130


TYPED_DATA = {
    "types": {
        "EIP712Domain": [
            {"name": "name", "type": "string"},
            {"name": "chainId", "type": "uint256"},
        ],
        "Order": [
            {"name": "item", "type": "string"},
            {"name": "amount", "type": "uint256"},
        ],
    },
    "primaryType": "Order",
    "domain": {"name": "shop", "chainId": 8453},
    "message": {"item": "widget", "amount": 7},
}


class TestTypedDataSignatures:
    """EIP-1271 signatures over EIP-712 messages"""

    def test_typed_data_hash_matches_key_signature(self, owner_a):
        from_hash = owner_a.unsafe_sign_hash(typed_data_hash(TYPED_DATA)).signature
        from_message = owner_a.sign_typed_data(full_message=TYPED_DATA).signature
        assert bytes(from_hash) == bytes(from_message)

    @pytest.mark.parametrize("provider", [ProviderKind.NEXUS, ProviderKind.SAFE, ProviderKind.STARTALE])
    def test_owners_sign_typed_data(self, make_config, owner_a, provider):
        config = make_config(provider)
        validator = facade.owner_validator_config(config)
        packed = facade.typed_data_packed_signature(config, None, 8453, validator, TYPED_DATA)
        assert packed[:20] == address_bytes(validator.address)
        signable = encode_typed_data(full_message=TYPED_DATA)
        assert Account.recover_message(signable, signature=packed[20:]) == owner_a.address

    def test_kernel_root_signs_wrapped_hash(self, make_config, owner_a):
        config = make_config(ProviderKind.KERNEL)
        validator = facade.owner_validator_config(config)
        packed = facade.typed_data_packed_signature(config, None, 8453, validator, TYPED_DATA)
        assert packed[:1] == VALIDATION_TYPE_ROOT
        assert packed[1:33] == REPLAYABLE_SIGNATURE_MAGIC
        wrapped = wrap_message_hash(typed_data_hash(TYPED_DATA), facade.address(config))
        assert recover(wrapped, packed[33:]) == owner_a.address

    def test_transform_applies_before_wrapping(self, make_config):
        config = make_config(ProviderKind.NEXUS)
        validator = facade.owner_validator_config(config)
        packed = facade.typed_data_packed_signature(
            config, None, 8453, validator, TYPED_DATA, transform=lambda signature: b"\x01" + signature
        )
        assert packed[20:21] == b"\x01"
        assert len(packed) == 20 + 1 + 65

    def test_owners_required(self):
        config = AccountConfig(owners=None, provider=ProviderKind.NEXUS)
        with pytest.raises(OwnersRequiredError):
            facade.typed_data_packed_signature(
                config, None, 8453, ValidatorConfig(address="0x" + "11" * 20), TYPED_DATA
            )
