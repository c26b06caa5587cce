import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, NoReturn, Optional

import httpx

from ..errors import ProviderNotConfigured, RpcError, TransientRpcError


logger = logging.getLogger(__name__)


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class JsonRpcProvider(Provider):
    """
    Provider speaking JSON-RPC 2.0 over HTTP.

    Transport failures become ``TransientRpcError``; JSON-RPC error objects
    are handed to ``_raise_rpc_error`` so subclasses can map them onto the
    error type that matches their collaborator.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        if timeout_s is not None:
            self.timeout_s = timeout_s
        self._client = client
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": f"{self.name} not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": result}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        if not await self.ready():
            raise ProviderNotConfigured(f"{self.name} provider is not configured")

        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        self._request_id += 1
        try:
            response = await self._client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning(f"{self.name} transport failure on {method}: {exc}")
            raise TransientRpcError(f"{method} failed: {exc}") from exc
        except ValueError as exc:
            raise TransientRpcError(f"{method} returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise TransientRpcError(f"{method} returned a malformed JSON-RPC payload")
        if payload.get("error") is not None:
            self._raise_rpc_error(method, payload["error"])
        return payload.get("result")

    def _raise_rpc_error(self, method: str, error: Any) -> NoReturn:
        message, code, data = parse_rpc_error(error)
        raise RpcError(message, code=code, data=data)


def parse_rpc_error(error: Any) -> tuple:
    """Split a JSON-RPC error object into (message, code, data)."""
    if isinstance(error, dict):
        return str(error.get("message", error)), error.get("code"), error.get("data")
    return str(error), None, None
