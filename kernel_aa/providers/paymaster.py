"""
ERC-4337 Paymaster service provider.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, NoReturn, Optional

import httpx

from .base import JsonRpcProvider, parse_rpc_error
from ..config import NetworkContext
from ..core.execution.userop import UserOperation
from ..errors import SponsorshipDenied


logger = logging.getLogger(__name__)


class PaymasterProvider(JsonRpcProvider):
    name = "paymaster"
    timeout_s = 20

    def __init__(self, network: NetworkContext, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(network.paymaster_url, timeout_s=network.request_timeout_s, client=client)
        self.network = network
        self.rpc_method = network.paymaster_rpc_method

    async def sponsor_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        params = [user_op.to_rpc_dict(), entry_point]
        if context:
            params.append(context)
        result = await self._rpc_call(self.rpc_method, params)
        if isinstance(result, dict):
            paymaster_and_data = result.get("paymasterAndData") or result.get("paymaster_and_data")
            if paymaster_and_data:
                return paymaster_and_data
        if isinstance(result, str):
            return result
        policy = (context or {}).get("policy")
        raise SponsorshipDenied("Invalid paymaster response", policy=policy)

    def _raise_rpc_error(self, method: str, error: Any) -> NoReturn:
        message, _, _ = parse_rpc_error(error)
        logger.warning(f"Paymaster declined {method}: {message}")
        raise SponsorshipDenied(message)
