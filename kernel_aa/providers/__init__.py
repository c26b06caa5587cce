from .base import JsonRpcProvider, Provider
from .bundler import BundlerProvider
from .paymaster import PaymasterProvider
from .rpc import ChainRpcProvider

__all__ = [
    "Provider",
    "JsonRpcProvider",
    "BundlerProvider",
    "PaymasterProvider",
    "ChainRpcProvider",
]
