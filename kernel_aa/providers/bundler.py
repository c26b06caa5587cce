"""
ERC-4337 Bundler Provider.
"""

from __future__ import annotations

import logging
from typing import Any, List, NoReturn, Optional

import httpx

from .base import JsonRpcProvider, parse_rpc_error
from ..config import NetworkContext
from ..core.execution.userop import UserOperation, UserOpGasEstimate, UserOpReceipt
from ..errors import RpcError, SimulationRejected, TransientRpcError


logger = logging.getLogger(__name__)

# Methods whose errors are the bundler judging the UserOperation itself
SIMULATION_METHODS = frozenset({"eth_estimateUserOperationGas", "eth_sendUserOperation"})


class BundlerProvider(JsonRpcProvider):
    """
    Bundler JSON-RPC client.

    A JSON-RPC error from gas estimation or submission is a rejection of the
    operation (simulation revert, bad signature, missing prefund) and is
    raised as ``SimulationRejected`` with the bundler's message untouched, so
    callers can branch on codes such as ``AA21``. Errors from the read
    methods (receipts, lookups) say nothing about the operation and come
    back as plain ``RpcError``.
    """

    name = "bundler"
    timeout_s = 20

    def __init__(self, network: NetworkContext, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(network.bundler_url, timeout_s=network.request_timeout_s, client=client)
        self.network = network

    async def send_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> str:
        result = await self._rpc_call(
            "eth_sendUserOperation",
            [user_op.to_rpc_dict(), entry_point],
        )
        if not isinstance(result, str):
            raise TransientRpcError("Invalid bundler response for eth_sendUserOperation")
        logger.info(f"Bundler accepted UserOperation {result} from {user_op.sender}")
        return result

    async def estimate_user_operation_gas(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> UserOpGasEstimate:
        result = await self._rpc_call(
            "eth_estimateUserOperationGas",
            [user_op.to_rpc_dict(), entry_point],
        )
        if not isinstance(result, dict):
            raise TransientRpcError("Invalid bundler response for eth_estimateUserOperationGas")
        return UserOpGasEstimate.from_rpc(result)

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOpReceipt]:
        result = await self._rpc_call(
            "eth_getUserOperationReceipt",
            [user_op_hash],
        )
        if not result:
            return None
        return UserOpReceipt.from_rpc(user_op_hash, result)

    async def get_user_operation_by_hash(self, user_op_hash: str) -> Optional[UserOperation]:
        result = await self._rpc_call("eth_getUserOperationByHash", [user_op_hash])
        if not result:
            return None
        return UserOperation.from_rpc_dict(result.get("userOperation") or result)

    async def supported_entry_points(self) -> List[str]:
        result = await self._rpc_call("eth_supportedEntryPoints", [])
        return list(result or [])

    def _raise_rpc_error(self, method: str, error: Any) -> NoReturn:
        message, code, data = parse_rpc_error(error)
        if method in SIMULATION_METHODS:
            logger.error(f"Bundler rejected {method}: {message}")
            raise SimulationRejected(message, code=code, data=data)
        logger.warning(f"Bundler error on {method}: {message}")
        raise RpcError(message, code=code, data=data)
