"""
Top-level entry point: binds a Kernel account to RPC, bundler and paymaster
transports and drives UserOperations through the pipeline.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .account.kernel import KernelSmartContractAccount
from .execution.paymaster_strategy import (
    PaymasterPolicy,
    PaymasterStrategy,
    build_paymaster_strategy,
)
from .execution.pipeline import UserOperationPipeline, wait_for_user_operation_receipt
from .execution.userop import UserOperation, UserOperationCall, UserOpReceipt
from ..config import NetworkContext
from ..logging_config import user_operation_context
from ..providers.bundler import BundlerProvider
from ..providers.paymaster import PaymasterProvider
from ..providers.rpc import ChainRpcProvider


logger = logging.getLogger(__name__)

CallLike = Union[UserOperationCall, Mapping[str, Any], Tuple[Any, ...]]

CALL_SHAPE = "a UserOperationCall, a mapping with 'target', or a (target, value, data) tuple"


def _coerce_call(call: CallLike) -> UserOperationCall:
    if isinstance(call, UserOperationCall):
        return call
    if isinstance(call, Mapping):
        if "target" not in call:
            raise ValueError(f"Call mapping has no 'target'; expected {CALL_SHAPE}")
        return UserOperationCall(
            target=call["target"],
            data=call.get("data") or "0x",
            value=int(call.get("value") or 0),
        )
    if isinstance(call, (tuple, list)) and 1 <= len(call) <= 3 and isinstance(call[0], str):
        value = call[1] if len(call) > 1 else 0
        data = call[2] if len(call) > 2 else "0x"
        return UserOperationCall(target=call[0], value=int(value or 0), data=data or "0x")
    raise ValueError(f"Cannot build a call from {call!r}; expected {CALL_SHAPE}")


def _is_single_call(calls: Any) -> bool:
    """A bare (target, value, data) tuple is one call; any other sequence is a batch."""
    if isinstance(calls, tuple) and calls and isinstance(calls[0], str):
        return True
    return isinstance(calls, str) or not isinstance(calls, Sequence)


@dataclass(frozen=True)
class SendUserOperationResult:
    hash: str
    request: UserOperation


class KernelProvider:
    """
    Holds the transports for one network.

    Example:
        ```python
        provider = KernelProvider(Settings().network_context())
        signer = provider.connect(lambda p: KernelSmartContractAccount(
            rpc=p.rpc, network=p.network, owner=owner, index=0,
            validator=validator,
        ))
        result = await signer.send_user_operation(UserOperationCall(target=to, value=1))
        tx_hash = await signer.wait_for_user_operation_transaction(result.hash)
        ```
    """

    def __init__(
        self,
        network: NetworkContext,
        rpc: Optional[ChainRpcProvider] = None,
        bundler: Optional[BundlerProvider] = None,
        paymaster: Optional[PaymasterProvider] = None,
    ) -> None:
        self.network = network
        self.rpc = rpc or ChainRpcProvider(network)
        self.bundler = bundler or BundlerProvider(network)
        self.paymaster = paymaster or PaymasterProvider(network)

    def connect(
        self,
        account_factory: Callable[["KernelProvider"], KernelSmartContractAccount],
    ) -> "BoundAccount":
        return BoundAccount(provider=self, account=account_factory(self))

    async def health_check(self) -> Dict[str, Any]:
        return {
            "rpc": await self.rpc.health_check(),
            "bundler": await self.bundler.health_check(),
            "paymaster": await self.paymaster.health_check(),
        }

    async def aclose(self) -> None:
        await self.rpc.aclose()
        await self.bundler.aclose()
        await self.paymaster.aclose()

    async def __aenter__(self) -> "KernelProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


@dataclass(frozen=True)
class BoundAccount:
    """A Kernel account connected to a provider, with a paymaster policy."""
    provider: KernelProvider
    account: KernelSmartContractAccount
    paymaster_strategy: PaymasterStrategy = field(default_factory=PaymasterStrategy)

    @property
    def network(self) -> NetworkContext:
        return self.provider.network

    async def get_address(self) -> str:
        return await self.account.get_address()

    def with_zerodev_paymaster_and_data(
        self,
        policy: Union[PaymasterPolicy, str],
        gas_token: Optional[str] = None,
        **options: Any,
    ) -> "BoundAccount":
        """Copy of this binding that pays gas through ``policy``."""
        if gas_token is not None:
            options["gas_token"] = gas_token
        strategy = build_paymaster_strategy(
            policy,
            paymaster=self.provider.paymaster,
            entry_point=self.account.entry_point_address,
            project_id=self.network.project_id,
            **options,
        )
        return replace(self, paymaster_strategy=strategy)

    def new_pipeline(self) -> UserOperationPipeline:
        return UserOperationPipeline(
            account=self.account,
            bundler=self.provider.bundler,
            paymaster_strategy=self.paymaster_strategy,
        )

    async def send_user_operation(
        self,
        calls: Union[CallLike, Sequence[CallLike]],
    ) -> SendUserOperationResult:
        if _is_single_call(calls):
            call_input: Union[UserOperationCall, List[UserOperationCall]] = _coerce_call(calls)
        else:
            call_input = [_coerce_call(call) for call in calls]

        pipeline = self.new_pipeline()
        with user_operation_context(
            sender=await self.get_address(),
            paymaster_policy=self.paymaster_strategy.policy.value,
        ):
            user_op_hash = await pipeline.run(call_input)
        return SendUserOperationResult(hash=user_op_hash, request=pipeline.user_op)

    async def wait_for_user_operation_transaction(
        self,
        user_op_hash: str,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ) -> str:
        with user_operation_context(user_op_hash=user_op_hash):
            receipt = await wait_for_user_operation_receipt(
                self.provider.bundler,
                user_op_hash,
                timeout_s if timeout_s is not None else self.network.receipt_timeout_s,
                poll_interval_s if poll_interval_s is not None else self.network.receipt_poll_interval_s,
            )
        logger.info(f"UserOperation {user_op_hash} included in {receipt.transaction_hash}")
        return receipt.transaction_hash

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOpReceipt]:
        return await self.provider.bundler.get_user_operation_receipt(user_op_hash)

    async def sign_message(self, message: Union[str, bytes]) -> str:
        return await self.account.sign_message(message)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        return await self.account.sign_typed_data(typed_data)

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """EIP-1193 style dispatch; unknown methods go to the chain RPC."""
        params = params or []
        if method == "personal_sign":
            if not params:
                raise ValueError("personal_sign expects params [message, address]")
            return await self.account.sign_message(params[0])
        if method in ("eth_signTypedData", "eth_signTypedData_v4"):
            if len(params) < 2:
                raise ValueError(f"{method} expects params [address, typedData]")
            typed_data = params[1]
            if isinstance(typed_data, str):
                typed_data = json.loads(typed_data)
            return await self.account.sign_typed_data(typed_data)
        if method == "eth_accounts":
            return [await self.account.get_address()]
        if method == "eth_chainId":
            return hex(self.network.chain_id)
        return await self.provider.rpc.request(method, params)
