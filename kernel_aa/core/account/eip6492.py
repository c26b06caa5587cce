"""
EIP-6492 signature wrapping for counterfactual contracts.

A wrapped signature is ``abi.encode(address factory, bytes factoryCalldata,
bytes innerSignature)`` followed by a 32-byte magic suffix. Verifiers that
see the suffix simulate the factory call before checking the inner signature
against the account's eventual code.
"""

from __future__ import annotations

from typing import NamedTuple

from eth_abi import decode, encode
from eth_utils import to_checksum_address

from ..execution.userop_builder import HexLike, hex_to_bytes


MAGIC_SUFFIX = bytes.fromhex("6492" * 16)


class WrappedSignature(NamedTuple):
    factory: str
    factory_call_data: bytes
    signature: bytes


def wrap_signature(factory: str, factory_call_data: HexLike, signature: HexLike) -> bytes:
    encoded = encode(
        ["address", "bytes", "bytes"],
        [to_checksum_address(factory), hex_to_bytes(factory_call_data), hex_to_bytes(signature)],
    )
    return encoded + MAGIC_SUFFIX


def is_wrapped(signature: HexLike) -> bool:
    return hex_to_bytes(signature).endswith(MAGIC_SUFFIX)


def unwrap_signature(signature: HexLike) -> WrappedSignature:
    raw = hex_to_bytes(signature)
    if not raw.endswith(MAGIC_SUFFIX):
        raise ValueError("Signature is not EIP-6492 wrapped")
    factory, factory_call_data, inner = decode(
        ["address", "bytes", "bytes"], raw[: -len(MAGIC_SUFFIX)]
    )
    return WrappedSignature(to_checksum_address(factory), factory_call_data, inner)
