"""
ERC-4337 UserOperation models and helpers (EntryPoint v0.6 layout).
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional


def _parse_hex(value: Optional[Any]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


# Field name -> camelCase JSON-RPC key, in EntryPoint v0.6 struct order
RPC_KEYS: Dict[str, str] = {
    "sender": "sender",
    "nonce": "nonce",
    "init_code": "initCode",
    "call_data": "callData",
    "call_gas_limit": "callGasLimit",
    "verification_gas_limit": "verificationGasLimit",
    "pre_verification_gas": "preVerificationGas",
    "max_fee_per_gas": "maxFeePerGas",
    "max_priority_fee_per_gas": "maxPriorityFeePerGas",
    "paymaster_and_data": "paymasterAndData",
    "signature": "signature",
}


@dataclass(frozen=True)
class UserOperation:
    """
    ERC-4337 UserOperation payload.

    Gas and fee values are raw integers (wei / gas units) and go over the
    wire as hex quantities. Byte fields are 0x-prefixed hex strings. The
    dataclass is frozen: pipeline stages derive new operations with
    ``evolve`` instead of editing one in place.
    """
    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: str = "0x"
    signature: str = "0x"

    def evolve(self, **changes: Any) -> "UserOperation":
        return replace(self, **changes)

    def to_rpc_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            payload[RPC_KEYS[item.name]] = hex(value) if isinstance(value, int) else value
        return payload

    @classmethod
    def from_rpc_dict(cls, data: Dict[str, Any]) -> "UserOperation":
        values: Dict[str, Any] = {}
        for item in fields(cls):
            raw = data.get(RPC_KEYS[item.name])
            if item.type in (int, "int"):
                values[item.name] = _parse_hex(raw) or 0
            elif item.name == "sender":
                values[item.name] = raw
            else:
                values[item.name] = raw or "0x"
        return cls(**values)


@dataclass
class UserOpGasEstimate:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOpGasEstimate":
        return cls(
            call_gas_limit=_parse_hex(data.get("callGasLimit")) or 0,
            verification_gas_limit=_parse_hex(data.get("verificationGasLimit")) or 0,
            pre_verification_gas=_parse_hex(data.get("preVerificationGas")) or 0,
        )


@dataclass
class FeeData:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@dataclass
class UserOpReceipt:
    user_op_hash: str
    success: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    actual_gas_cost: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def from_rpc(cls, user_op_hash: str, data: Dict[str, Any]) -> "UserOpReceipt":
        receipt = data.get("receipt") or {}
        success = data.get("success")
        if success is None:
            success = receipt.get("status") == "0x1"
        return cls(
            user_op_hash=user_op_hash,
            success=bool(success),
            transaction_hash=receipt.get("transactionHash"),
            block_number=_parse_hex(receipt.get("blockNumber")),
            gas_used=_parse_hex(data.get("actualGasUsed") or receipt.get("gasUsed")),
            actual_gas_cost=_parse_hex(data.get("actualGasCost")),
            reason=data.get("reason") or None,
        )


@dataclass(frozen=True)
class UserOperationCall:
    """A single (target, value, data) call dispatched through the account."""
    target: str
    data: str = "0x"
    value: int = 0
