"""
UserOperation calldata builders.
"""

from __future__ import annotations

from typing import Iterable, Union

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from .userop import UserOperation, UserOperationCall


HexLike = Union[str, bytes, bytearray]

CALL_TYPE_CALL = 0
CALL_TYPE_DELEGATECALL = 1

EXECUTE_SIGNATURE = "execute(address,uint256,bytes,uint8)"
MULTISEND_SIGNATURE = "multiSend(bytes)"
ERC20_APPROVE_SIGNATURE = "approve(address,uint256)"


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def hex_to_bytes(value: HexLike) -> bytes:
    """
    Decode a 0x-prefixed hex string.

    Odd-length input is padded on the right, so ``0x234`` decodes to
    ``b"\\x23\\x40"``. This is how viem-based tooling sizes such values, and
    the deployed account's calldata vectors depend on it.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    hex_data = _strip_0x(value)
    if len(hex_data) % 2 != 0:
        hex_data += "0"
    return bytes.fromhex(hex_data)


def to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def _selector_from_signature(signature: str) -> bytes:
    return keccak(text=signature)[:4]


EXECUTE_SELECTOR = _selector_from_signature(EXECUTE_SIGNATURE)
MULTISEND_SELECTOR = _selector_from_signature(MULTISEND_SIGNATURE)
ERC20_APPROVE_SELECTOR = _selector_from_signature(ERC20_APPROVE_SIGNATURE)


def build_execute_call_data(
    to_address: str,
    value_wei: int,
    data: HexLike,
    call_type: int = CALL_TYPE_CALL,
) -> str:
    """
    Build calldata for execute(address,uint256,bytes,uint8).
    """
    if value_wei < 0:
        raise ValueError("Value must be non-negative")
    if call_type not in (CALL_TYPE_CALL, CALL_TYPE_DELEGATECALL):
        raise ValueError(f"Unknown call type: {call_type}")
    encoded = encode(
        ["address", "uint256", "bytes", "uint8"],
        [to_checksum_address(to_address), value_wei, hex_to_bytes(data), call_type],
    )
    return to_hex(EXECUTE_SELECTOR + encoded)


def encode_multi_send(calls: Iterable[UserOperationCall]) -> str:
    """
    Build calldata for MultiSend.multiSend(bytes).

    Each call is packed as operation (uint8, always 0) ++ to (address) ++
    value (uint256) ++ data length (uint256) ++ data.
    """
    packed = b""
    for call in calls:
        data = hex_to_bytes(call.data)
        packed += encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [CALL_TYPE_CALL, to_checksum_address(call.target), call.value, len(data), data],
        )
    return to_hex(MULTISEND_SELECTOR + encode(["bytes"], [packed]))


def build_erc20_approve_call_data(spender: str, amount: int) -> str:
    return to_hex(
        ERC20_APPROVE_SELECTOR + encode(["address", "uint256"], [to_checksum_address(spender), amount])
    )


def build_entrypoint_get_nonce_call(sender: str, key: int = 0) -> str:
    """
    Build calldata for EntryPoint.getNonce(address,uint192).
    """
    selector = _selector_from_signature("getNonce(address,uint192)")
    return to_hex(selector + encode(["address", "uint192"], [to_checksum_address(sender), key]))


def get_user_operation_hash(user_op: UserOperation, entry_point: str, chain_id: int) -> str:
    """
    EntryPoint v0.6 getUserOpHash: the signature field is excluded, dynamic
    fields are hashed, and the result is bound to entry point and chain.
    """
    packed = encode(
        [
            "address", "uint256", "bytes32", "bytes32", "uint256",
            "uint256", "uint256", "uint256", "uint256", "bytes32",
        ],
        [
            to_checksum_address(user_op.sender),
            user_op.nonce,
            keccak(hex_to_bytes(user_op.init_code)),
            keccak(hex_to_bytes(user_op.call_data)),
            user_op.call_gas_limit,
            user_op.verification_gas_limit,
            user_op.pre_verification_gas,
            user_op.max_fee_per_gas,
            user_op.max_priority_fee_per_gas,
            keccak(hex_to_bytes(user_op.paymaster_and_data)),
        ],
    )
    return to_hex(
        keccak(encode(["bytes32", "address", "uint256"], [keccak(packed), to_checksum_address(entry_point), chain_id]))
    )
