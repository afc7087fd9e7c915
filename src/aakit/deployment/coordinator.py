"""
Account deployment.

Chooses one of three mutually exclusive paths for bringing an account on
chain and drives it to completion:

- STANDARD: the factory call is sent directly by a deployer key, or carried
  by a no-op user operation through the bundler.
- DELEGATION: the EOA signs an EIP-7702 authorization for the provider
  implementation and runs the module setup on itself.
- INTENT: a zero-value call through the intent service deploys the account
  as a side effect.

Deploying an account that already has code sends nothing.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.types import TxParams

from aakit.accounts import facade
from aakit.accounts.base import encode_7579_calls
from aakit.core import config as settings
from aakit.core.codec import ZERO_ADDRESS
from aakit.core.exceptions import (
    ConfigurationError,
    EoaRequiredError,
    ExecutionFailedError,
    FactoryArgsUnavailableError,
)
from aakit.core.types import AccountConfig, Call, EcdsaOwners, OwnerAddress, Session
from aakit.deployment.execution import BundlerClient, IntentClient, wait_for_execution
from aakit.modules.catalog import SAME_CHAIN_EXECUTOR_ADDRESS, get_default_setup
from aakit.modules.read import is_module_installed
from aakit.sessions.codec import enable_sessions_call, is_session_enabled, permission_id

logger = logging.getLogger(__name__)


class DeploymentPath(Enum):
    STANDARD = "standard"
    DELEGATION = "delegation"
    INTENT = "intent"


def _build_tx_params(
    w3: Web3,
    sender: str,
    *,
    value_wei: int = 0,
    gas: Optional[int] = None,
    max_fee_per_gas: Optional[int] = None,
    max_priority_fee_per_gas: Optional[int] = None,
) -> TxParams:
    base: TxParams = {
        "from": to_checksum_address(sender),
        "value": value_wei,
        "nonce": w3.eth.get_transaction_count(to_checksum_address(sender)),
        "chainId": w3.eth.chain_id,
    }
    if max_fee_per_gas is None or max_priority_fee_per_gas is None:
        latest_block = w3.eth.get_block("latest")
        base_fee = latest_block.get("baseFeePerGas") or w3.eth.gas_price
        try:
            priority_fee = int(w3.eth.max_priority_fee)
        except (Web3Exception, ValueError):
            priority_fee = int(base_fee // 10)
        max_priority_fee_per_gas = max_priority_fee_per_gas or priority_fee
        max_fee_per_gas = max_fee_per_gas or (base_fee * 2 + max_priority_fee_per_gas)
    base["maxFeePerGas"] = max_fee_per_gas
    base["maxPriorityFeePerGas"] = max_priority_fee_per_gas
    if gas is not None:
        base["gas"] = gas
    return base


class DeploymentCoordinator:
    """Deploys and sets up accounts on one chain.

    Args:
        w3: Web3 connected to the target chain
        bundler: Optional ERC-4337 bundler client
        intent_client: Optional intent service client
        receipt_timeout: Seconds to wait for transaction and user operation receipts
    """

    def __init__(
        self,
        w3: Web3,
        *,
        bundler: Optional[BundlerClient] = None,
        intent_client: Optional[IntentClient] = None,
        receipt_timeout: Optional[int] = None,
    ) -> None:
        self.w3 = w3
        self.bundler = bundler
        self.intent_client = intent_client
        self.receipt_timeout = receipt_timeout or settings.RECEIPT_TIMEOUT_SECONDS

    # ==================== Path selection ====================

    def select_path(self, config: AccountConfig) -> DeploymentPath:
        if config.is_delegated:
            return DeploymentPath.DELEGATION
        if config.deployer_key is not None:
            return DeploymentPath.STANDARD
        if config.init_data is not None and not config.init_data.intent_executor_installed:
            return DeploymentPath.STANDARD
        if self.intent_client is not None:
            return DeploymentPath.INTENT
        if self.bundler is not None:
            return DeploymentPath.STANDARD
        raise ConfigurationError(
            "No deployment path: configure a deployer key, a bundler or an intent client",
            details={"provider": config.provider.value, "stage": "deploy"},
        )

    # ==================== Deploy ====================

    def deploy(
        self,
        config: AccountConfig,
        *,
        path: Optional[DeploymentPath] = None,
        session: Optional[Session] = None,
        sponsored: bool = False,
    ) -> bool:
        """Deploy the account unless it already has code.

        Args:
            config: Account configuration
            path: Force a deployment path instead of selecting one
            session: Session to enable once the account exists
            sponsored: Ask the intent service to sponsor the deployment

        Returns:
            True if a deployment was submitted, False if the account already existed

        Raises:
            EoaRequiredError: If DELEGATION is requested without a delegate key
            ExistingDelegationNotSupportedError: If the address carries a foreign delegation
            FactoryArgsUnavailableError: If the account has no factory call
        """
        deployed = facade.is_deployed(config, self.w3)
        if not deployed:
            path = path or self.select_path(config)
            if path is DeploymentPath.DELEGATION and not config.is_delegated:
                raise EoaRequiredError(details={"provider": config.provider.value, "stage": "deploy"})
            if path is not DeploymentPath.DELEGATION and facade.init_code(config) is None:
                raise FactoryArgsUnavailableError(details={"provider": config.provider.value, "stage": "deploy"})
            logger.info(
                "Deploying account",
                extra={
                    "event": "deploy.start",
                    "provider": config.provider.value,
                    "address": facade.address(config),
                    "path": path.value,
                },
            )
            if path is DeploymentPath.DELEGATION:
                self._deploy_with_delegation(config)
            elif path is DeploymentPath.INTENT:
                self._deploy_with_intent(config, sponsored)
            elif config.deployer_key is not None:
                self._deploy_directly(config)
            else:
                self._deploy_with_bundler(config)

        if session is not None:
            self.enable_session(config, session)
        return not deployed

    def _deploy_directly(self, config: AccountConfig) -> Dict[str, Any]:
        factory, factory_data = facade.init_code(config)
        return self._send_transaction(config.deployer_key, factory, factory_data)

    def _deploy_with_bundler(self, config: AccountConfig) -> Dict[str, Any]:
        bundler = self._require_bundler(config)
        factory, factory_data = facade.init_code(config)
        account = facade.smart_account(config, self.w3)
        user_op_hash = bundler.send_user_operation(
            account,
            [Call(to=ZERO_ADDRESS)],
            factory=factory,
            factory_data=factory_data,
        )
        return bundler.wait_for_user_operation_receipt(user_op_hash, self.receipt_timeout)

    def _deploy_with_intent(self, config: AccountConfig, sponsored: bool) -> None:
        if self.intent_client is None:
            raise ConfigurationError(
                "An intent client is required for intent deployment",
                details={"provider": config.provider.value, "stage": "deploy"},
            )
        intent_id = self.intent_client.send_calls(
            config, self.w3.eth.chain_id, [Call(to=ZERO_ADDRESS)], sponsored=sponsored
        )
        wait_for_execution(self.intent_client, intent_id, accept_preconfirmed=True)

    def _deploy_with_delegation(self, config: AccountConfig) -> Dict[str, Any]:
        adapter = facade.get_adapter(config)
        delegate = adapter.require_delegate(config)
        implementation = adapter.delegation_implementation()
        init_calls = adapter.delegation_init_calls(config)
        chain_id = self.w3.eth.chain_id

        if self.bundler is not None:
            # the bundler sends the transaction, so the EOA nonce is unchanged
            nonce = self.w3.eth.get_transaction_count(delegate.address)
            authorization = delegate.sign_authorization(
                {"chainId": chain_id, "address": implementation, "nonce": nonce}
            )
            account = facade.smart_account(config, self.w3)
            user_op_hash = self.bundler.send_user_operation(account, init_calls, authorization=authorization)
            return self.bundler.wait_for_user_operation_receipt(user_op_hash, self.receipt_timeout)

        tx = _build_tx_params(self.w3, delegate.address)
        # a self-sponsored authorization is checked after the sender nonce bump
        authorization = delegate.sign_authorization(
            {"chainId": chain_id, "address": implementation, "nonce": tx["nonce"] + 1}
        )
        tx.update(
            {
                "to": to_checksum_address(delegate.address),
                "data": encode_7579_calls(init_calls),
                "authorizationList": [authorization],
            }
        )
        return self._sign_and_send(delegate, tx)

    # ==================== Transactions ====================

    def _send_transaction(self, key: Any, to: str, data: bytes) -> Dict[str, Any]:
        tx = _build_tx_params(self.w3, key.address)
        tx.update({"to": to_checksum_address(to), "data": data})
        return self._sign_and_send(key, tx)

    def _sign_and_send(self, key: Any, tx: TxParams) -> Dict[str, Any]:
        if "gas" not in tx:
            tx["gas"] = self.w3.eth.estimate_gas(tx)
        signed = key.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        result = dict(status=receipt["status"], tx_hash=Web3.to_hex(tx_hash), block=receipt["blockNumber"])
        if receipt["status"] != 1:
            raise ExecutionFailedError(
                f"Transaction {result['tx_hash']} reverted",
                reference=result["tx_hash"],
                details={"stage": "deploy", "block": result["block"]},
            )
        logger.info(
            "Transaction confirmed",
            extra={"event": "deploy.tx_confirmed", "tx_hash": result["tx_hash"], "block": result["block"]},
        )
        return result

    def _require_bundler(self, config: AccountConfig) -> BundlerClient:
        if self.bundler is None:
            raise ConfigurationError(
                "A bundler is required for this account",
                details={"provider": config.provider.value, "stage": "deploy"},
            )
        return self.bundler

    # ==================== Post-deploy setup ====================

    def execute(self, config: AccountConfig, calls: Sequence[Call], *, prefer_intent: bool = True) -> None:
        """Run calls from the account through the first available infrastructure."""
        if config.is_delegated:
            delegate = config.delegate_key
            self._send_transaction(delegate, delegate.address, encode_7579_calls(calls))
        elif prefer_intent and self.intent_client is not None:
            intent_id = self.intent_client.send_calls(config, self.w3.eth.chain_id, calls)
            wait_for_execution(self.intent_client, intent_id, accept_preconfirmed=True)
        else:
            bundler = self._require_bundler(config)
            account = facade.smart_account(config, self.w3)
            user_op_hash = bundler.send_user_operation(account, list(calls))
            bundler.wait_for_user_operation_receipt(user_op_hash, self.receipt_timeout)

    def enable_session(self, config: AccountConfig, session: Session) -> bool:
        """Enable ``session`` on the account unless it is already enabled."""
        account = facade.address(config)
        if is_session_enabled(self.w3, account, permission_id(session)):
            return False
        self.execute(config, [enable_sessions_call([session])])
        logger.info(
            "Session enabled",
            extra={"event": "deploy.session_enabled", "address": account},
        )
        return True

    def setup(self, config: AccountConfig) -> bool:
        """Install the default modules missing from an existing account.

        Returns:
            True if any module was installed
        """
        account = facade.address(config)
        missing = [
            module
            for module in get_default_setup(config).all_modules
            if not is_module_installed(self.w3, account, module)
        ]
        if not missing:
            return False
        calls: List[Call] = []
        for module in missing:
            calls.extend(facade.module_install_calls(config, module))
        # the intent service can only act once its executor is installed
        intent_executor_missing = any(
            module.address.lower() == SAME_CHAIN_EXECUTOR_ADDRESS.lower() for module in missing
        )
        self.execute(config, calls, prefer_intent=not intent_executor_missing)
        logger.info(
            "Installed missing modules",
            extra={"event": "deploy.setup", "address": account, "modules": len(missing)},
        )
        return True

    def deploy_accounts_for_owners(
        self,
        sponsor_key: Any,
        owner_addresses: Sequence[str],
        template: AccountConfig,
    ) -> List[Dict[str, str]]:
        """Deploy one single-owner account per address, paid for by ``sponsor_key``.

        Args:
            sponsor_key: Local key that sends and pays for the factory calls
            owner_addresses: Owners of the accounts to create
            template: Provider and module options shared by every account

        Returns:
            One ``{"owner", "account"}`` entry per owner, in input order
        """
        results = []
        for owner in owner_addresses:
            user_config = AccountConfig(
                owners=EcdsaOwners(accounts=(OwnerAddress(address=owner),), threshold=1),
                provider=template.provider,
                sessions=template.sessions,
                recovery=template.recovery,
                salt=template.salt,
                deployer_key=sponsor_key,
            )
            account = facade.address(user_config)
            if not facade.is_deployed(user_config, self.w3):
                self._deploy_directly(user_config)
            results.append({"owner": to_checksum_address(owner), "account": account})
        return results
