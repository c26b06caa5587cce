"""
Chain JSON-RPC provider: code lookups, view calls and fee data.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from .base import JsonRpcProvider
from ..config import NetworkContext
from ..errors import RpcError
from ..core.execution.userop import FeeData


DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000


class ChainRpcProvider(JsonRpcProvider):
    name = "rpc"

    def __init__(self, network: NetworkContext, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(network.rpc_url, timeout_s=network.request_timeout_s, client=client)
        self.network = network

    async def get_chain_id(self) -> int:
        return int(await self._rpc_call("eth_chainId", []), 16)

    async def get_code(self, address: str, block: str = "latest") -> str:
        result = await self._rpc_call("eth_getCode", [address, block])
        return result or "0x"

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        result = await self._rpc_call("eth_call", [{"to": to, "data": data}, block])
        return result or "0x"

    async def get_fee_data(self) -> FeeData:
        """
        EIP-1559 fees: latest base fee doubled plus the node's suggested tip.
        """
        block = await self._rpc_call("eth_getBlockByNumber", ["latest", False])
        base_fee = int(block.get("baseFeePerGas") or "0x0", 16) if block else 0

        try:
            priority_fee = int(await self._rpc_call("eth_maxPriorityFeePerGas", []), 16)
        except RpcError:
            # Not every node implements eth_maxPriorityFeePerGas
            priority_fee = DEFAULT_PRIORITY_FEE_WEI

        return FeeData(
            max_fee_per_gas=base_fee * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def request(self, method: str, params: list[Any]) -> Any:
        return await self._rpc_call(method, params)
