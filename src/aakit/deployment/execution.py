"""
Submission collaborators and bounded status polling.

Bundlers and the intent service are external systems; the deployment code
only talks to them through the two interfaces below. Polling an intent is
always bounded by a caller-supplied timeout.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from aakit.core import config
from aakit.core.exceptions import ExecutionFailedError, ExecutionTimeoutError
from aakit.core.types import AccountConfig, Call

logger = logging.getLogger(__name__)


class IntentStatus(Enum):
    PENDING = "PENDING"
    PRECONFIRMED = "PRECONFIRMED"
    FILLED = "FILLED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({IntentStatus.FAILED, IntentStatus.COMPLETED, IntentStatus.FILLED})


class BundlerClient(ABC):
    """ERC-4337 bundler: prepares, signs through the account and submits user operations."""

    @abstractmethod
    def send_user_operation(
        self,
        account: Any,
        calls: Sequence[Call],
        *,
        factory: Optional[str] = None,
        factory_data: Optional[bytes] = None,
        authorization: Optional[Any] = None,
    ) -> bytes:
        """Submit a user operation for ``account`` and return its hash."""

    @abstractmethod
    def wait_for_user_operation_receipt(self, user_op_hash: bytes, timeout: float) -> dict:
        """Block until the operation is included, at most ``timeout`` seconds."""


class IntentClient(ABC):
    """Intent (orchestrator) service executing calls on behalf of an account."""

    @abstractmethod
    def send_calls(
        self,
        config: AccountConfig,
        chain_id: int,
        calls: Sequence[Call],
        *,
        sponsored: bool = False,
    ) -> str:
        """Submit calls and return the intent id."""

    @abstractmethod
    def get_status(self, intent_id: str) -> IntentStatus:
        ...


def is_terminal(status: IntentStatus, accept_preconfirmed: bool = False) -> bool:
    if status in TERMINAL_STATUSES:
        return True
    return accept_preconfirmed and status is IntentStatus.PRECONFIRMED


def wait_for_execution(
    intent_client: IntentClient,
    intent_id: str,
    accept_preconfirmed: bool = False,
    timeout: Optional[float] = None,
    interval: Optional[float] = None,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> IntentStatus:
    """Poll an intent until it reaches a terminal status.

    Args:
        intent_client: Intent service
        intent_id: Id returned by ``send_calls``
        accept_preconfirmed: Treat PRECONFIRMED as terminal
        timeout: Upper bound in seconds, defaults to AAKIT_POLL_TIMEOUT_SECONDS
        interval: Delay between polls, defaults to AAKIT_POLL_INTERVAL_SECONDS

    Returns:
        The terminal status reached

    Raises:
        ExecutionFailedError: If the intent failed
        ExecutionTimeoutError: If no terminal status was reached in time
    """
    timeout = config.POLL_TIMEOUT_SECONDS if timeout is None else timeout
    interval = config.POLL_INTERVAL_SECONDS if interval is None else interval
    deadline = clock() + timeout

    while True:
        status = intent_client.get_status(intent_id)
        if status is IntentStatus.FAILED:
            logger.warning(
                "Intent execution failed",
                extra={"event": "execution.failed", "intent_id": intent_id},
            )
            raise ExecutionFailedError(f"Intent {intent_id} failed", reference=intent_id)
        if is_terminal(status, accept_preconfirmed):
            logger.info(
                "Intent execution finished",
                extra={"event": "execution.finished", "intent_id": intent_id, "status": status.value},
            )
            return status
        if clock() + interval > deadline:
            raise ExecutionTimeoutError(
                f"Intent {intent_id} did not finish within {timeout}s",
                timeout=timeout,
                details={"stage": "wait_for_execution", "status": status.value},
            )
        sleep(interval)
