from unittest.mock import MagicMock

import pytest
from eth_account import Account

from aakit.core.codec import function_selector, to_bytes
from aakit.core.types import AccountConfig, EcdsaOwners, ProviderKind


class FakeEth:
    """Stands in for ``w3.eth``: view calls are answered from a (to, selector) table."""

    def __init__(self, chain_id: int = 8453):
        self.chain_id = chain_id
        self.code = {}
        self.responses = {}
        self.calls = []

    def respond(self, to: str, signature: str, result: bytes) -> None:
        self.responses[(to.lower(), function_selector(signature))] = result

    def get_code(self, address):
        return self.code.get(address.lower(), b"")

    def call(self, tx):
        data = to_bytes(tx["data"])
        self.calls.append(tx)
        return self.responses[(tx["to"].lower(), data[:4])]


@pytest.fixture
def owner_a():
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def owner_b():
    return Account.from_key("0x" + "22" * 32)


@pytest.fixture
def owner_c():
    return Account.from_key("0x" + "33" * 32)


@pytest.fixture
def fake_eth():
    return FakeEth()


@pytest.fixture
def w3(fake_eth):
    web3 = MagicMock()
    web3.eth = fake_eth
    return web3


@pytest.fixture
def make_config(owner_a):
    def _make(provider=ProviderKind.NEXUS, owners=None, **kwargs):
        return AccountConfig(
            owners=owners or EcdsaOwners(accounts=(owner_a,), threshold=1),
            provider=provider,
            **kwargs,
        )

    return _make
