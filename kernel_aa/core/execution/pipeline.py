"""
UserOperation pipeline

Drives one UserOperation through

    DRAFT -> GAS_ESTIMATED -> PAYMASTER_ATTACHED -> SIGNED -> SUBMITTED
          -> PENDING -> INCLUDED | REJECTED

Every step checks the transition table, so the operation cannot be signed
before the paymaster data it commits to is attached, nor submitted unsigned.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set, Union

from .paymaster_strategy import PaymasterStrategy
from .userop import UserOperation, UserOperationCall, UserOpReceipt
from .userop_builder import get_user_operation_hash
from ...errors import (
    InvalidTransitionError,
    KernelAAError,
    UserOperationReverted,
    UserOperationTimeout,
)
from ...providers.bundler import BundlerProvider

if TYPE_CHECKING:
    from ..account.kernel import KernelSmartContractAccount


logger = logging.getLogger(__name__)

CallInput = Union[UserOperationCall, Sequence[UserOperationCall]]


class UserOpState(str, Enum):
    DRAFT = "draft"
    GAS_ESTIMATED = "gas_estimated"
    PAYMASTER_ATTACHED = "paymaster_attached"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    PENDING = "pending"
    INCLUDED = "included"
    REJECTED = "rejected"


TERMINAL_STATES: Set[UserOpState] = {UserOpState.INCLUDED, UserOpState.REJECTED}


@dataclass
class StateTransition:
    from_state: UserOpState
    to_state: UserOpState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


async def wait_for_user_operation_receipt(
    bundler: BundlerProvider,
    user_op_hash: str,
    timeout_s: float,
    poll_interval_s: float,
) -> UserOpReceipt:
    """
    Poll the bundler until the operation is included.

    Raises ``UserOperationReverted`` when the receipt reports failure and
    ``UserOperationTimeout`` once ``timeout_s`` elapses.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s

    while True:
        receipt = await bundler.get_user_operation_receipt(user_op_hash)
        if receipt is not None:
            if not receipt.success:
                raise UserOperationReverted(
                    receipt.reason or "UserOperation execution reverted",
                    user_op_hash=user_op_hash,
                    transaction_hash=receipt.transaction_hash,
                )
            return receipt

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise UserOperationTimeout(user_op_hash, timeout_s)
        await asyncio.sleep(min(poll_interval_s, remaining))


class UserOperationPipeline:
    """
    One-shot builder for a single UserOperation.

    Not reusable: create a new pipeline per ``send_user_operation`` call so
    that nonce and deployment status are always read fresh.
    """

    TRANSITIONS: Dict[UserOpState, Set[UserOpState]] = {
        UserOpState.DRAFT: {UserOpState.GAS_ESTIMATED, UserOpState.REJECTED},
        UserOpState.GAS_ESTIMATED: {UserOpState.PAYMASTER_ATTACHED, UserOpState.REJECTED},
        UserOpState.PAYMASTER_ATTACHED: {UserOpState.SIGNED, UserOpState.REJECTED},
        UserOpState.SIGNED: {UserOpState.SUBMITTED, UserOpState.REJECTED},
        UserOpState.SUBMITTED: {UserOpState.PENDING, UserOpState.REJECTED},
        UserOpState.PENDING: {UserOpState.INCLUDED, UserOpState.REJECTED},
        UserOpState.INCLUDED: set(),
        UserOpState.REJECTED: set(),
    }

    def __init__(
        self,
        account: "KernelSmartContractAccount",
        bundler: BundlerProvider,
        paymaster_strategy: Optional[PaymasterStrategy] = None,
    ) -> None:
        self.account = account
        self.bundler = bundler
        self.network = account.network
        self.paymaster_strategy = paymaster_strategy or PaymasterStrategy()

        self.state: Optional[UserOpState] = None
        self.history: List[StateTransition] = []
        self.user_op: Optional[UserOperation] = None
        self.user_op_hash: Optional[str] = None
        self.receipt: Optional[UserOpReceipt] = None
        self.error: Optional[KernelAAError] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, to_state: UserOpState) -> None:
        if self.state is not None:
            if to_state not in self.TRANSITIONS[self.state]:
                raise InvalidTransitionError(self.state.value, to_state.value)
            self.history.append(StateTransition(from_state=self.state, to_state=to_state))
        self.state = to_state
        logger.info(f"UserOperation -> {to_state.value}")

    def _require(self, expected: UserOpState, next_state: UserOpState) -> None:
        if self.state is not expected:
            current = self.state.value if self.state else "unbuilt"
            raise InvalidTransitionError(current, next_state.value)

    def _fail(self, exc: KernelAAError) -> None:
        if exc.stage is None:
            exc.stage = (self.state or UserOpState.DRAFT).value
        self.error = exc
        if self.state is None or UserOpState.REJECTED in self.TRANSITIONS[self.state]:
            self._transition(UserOpState.REJECTED)
        logger.error(f"UserOperation rejected at {exc.stage}: {exc}")

    # Steps

    async def build_draft(self, calls: CallInput) -> UserOperation:
        if self.state is not None:
            raise InvalidTransitionError(self.state.value, UserOpState.DRAFT.value)

        is_batch = not isinstance(calls, UserOperationCall)
        call_list = list(calls) if is_batch else [calls]
        prepared = self.paymaster_strategy.prepare_calls(call_list)

        try:
            if is_batch or len(prepared) > 1:
                call_data = self.account.encode_batch_execute(prepared)
            else:
                call = prepared[0]
                call_data = self.account.encode_execute(call.target, call.value, call.data)

            self.user_op = UserOperation(
                sender=await self.account.get_address(),
                nonce=await self.account.get_nonce(),
                init_code=await self.account.get_init_code(),
                call_data=call_data,
                signature=self.account.get_dummy_signature(),
            )
        except KernelAAError as exc:
            self._fail(exc)
            raise

        self._transition(UserOpState.DRAFT)
        return self.user_op

    async def estimate_gas(self) -> UserOperation:
        self._require(UserOpState.DRAFT, UserOpState.GAS_ESTIMATED)
        try:
            estimate = await self.bundler.estimate_user_operation_gas(
                self.user_op, self.account.entry_point_address
            )
            fees = await self.account.rpc.get_fee_data()
        except KernelAAError as exc:
            self._fail(exc)
            raise

        self.user_op = self.user_op.evolve(
            call_gas_limit=estimate.call_gas_limit,
            verification_gas_limit=estimate.verification_gas_limit,
            pre_verification_gas=estimate.pre_verification_gas,
            max_fee_per_gas=fees.max_fee_per_gas,
            max_priority_fee_per_gas=fees.max_priority_fee_per_gas,
        )
        self._transition(UserOpState.GAS_ESTIMATED)
        return self.user_op

    async def attach_paymaster(self) -> UserOperation:
        self._require(UserOpState.GAS_ESTIMATED, UserOpState.PAYMASTER_ATTACHED)
        try:
            self.user_op = await self.paymaster_strategy.attach(self.user_op)
        except KernelAAError as exc:
            self._fail(exc)
            raise
        self._transition(UserOpState.PAYMASTER_ATTACHED)
        return self.user_op

    async def sign(self) -> UserOperation:
        self._require(UserOpState.PAYMASTER_ATTACHED, UserOpState.SIGNED)
        try:
            deployed = await self.account.is_account_deployed()
            init_code = "0x" if deployed else self.user_op.init_code
            if deployed and self.user_op.init_code != "0x":
                logger.warning(f"{self.user_op.sender} was deployed after drafting; dropping init code")

            # Nonce read last, right before the hash is signed
            nonce = await self.account.get_nonce()
            unsigned = self.user_op.evolve(init_code=init_code, nonce=nonce)
            self.user_op_hash = get_user_operation_hash(
                unsigned, self.account.entry_point_address, self.network.chain_id
            )
            signature = await self.account.sign_user_operation_hash(self.user_op_hash)
            if not deployed and self.network.wrap_undeployed_user_op_signatures:
                signature = await self.account.wrap_with_eip6492(signature)
        except KernelAAError as exc:
            self._fail(exc)
            raise

        self.user_op = unsigned.evolve(signature=signature)
        self._transition(UserOpState.SIGNED)
        return self.user_op

    async def submit(self) -> str:
        self._require(UserOpState.SIGNED, UserOpState.SUBMITTED)
        try:
            bundler_hash = await self.bundler.send_user_operation(
                self.user_op, self.account.entry_point_address
            )
        except KernelAAError as exc:
            self._fail(exc)
            raise

        if bundler_hash.lower() != (self.user_op_hash or "").lower():
            logger.warning(f"Bundler hash {bundler_hash} differs from local hash {self.user_op_hash}")
        self.user_op_hash = bundler_hash
        self._transition(UserOpState.SUBMITTED)
        return bundler_hash

    async def run(self, calls: CallInput) -> str:
        """Take the operation from nothing to SUBMITTED and return its hash."""
        await self.build_draft(calls)
        await self.estimate_gas()
        await self.attach_paymaster()
        await self.sign()
        return await self.submit()

    async def wait_for_inclusion(
        self,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ) -> UserOpReceipt:
        if self.state is UserOpState.SUBMITTED:
            self._transition(UserOpState.PENDING)
        self._require(UserOpState.PENDING, UserOpState.INCLUDED)

        try:
            receipt = await wait_for_user_operation_receipt(
                self.bundler,
                self.user_op_hash,
                timeout_s if timeout_s is not None else self.network.receipt_timeout_s,
                poll_interval_s if poll_interval_s is not None else self.network.receipt_poll_interval_s,
            )
        except UserOperationReverted as exc:
            self._fail(exc)
            raise
        except KernelAAError as exc:
            # Still pending: the caller may poll again with the same hash
            exc.stage = UserOpState.PENDING.value
            logger.warning(f"UserOperation {self.user_op_hash} still pending: {exc}")
            raise

        self.receipt = receipt
        self._transition(UserOpState.INCLUDED)
        return receipt
