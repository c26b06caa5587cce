"""
UserOperation execution layer

- UserOperation / UserOperationCall: the wire models
- userop_builder: calldata encoders and the EntryPoint v0.6 hash
- paymaster_strategy: fee-payment policies attached before signing
- pipeline: Draft -> ... -> Included | Rejected state machine

Only the models and builders are re-exported here; the pipeline depends on
the transport providers, which in turn import these models.
"""

from .userop import (
    FeeData,
    UserOperation,
    UserOperationCall,
    UserOpGasEstimate,
    UserOpReceipt,
)

from .userop_builder import (
    CALL_TYPE_CALL,
    CALL_TYPE_DELEGATECALL,
    build_erc20_approve_call_data,
    build_execute_call_data,
    encode_multi_send,
    get_user_operation_hash,
    hex_to_bytes,
    to_hex,
)

__all__ = [
    # Models
    "FeeData",
    "UserOperation",
    "UserOperationCall",
    "UserOpGasEstimate",
    "UserOpReceipt",
    # Builders
    "CALL_TYPE_CALL",
    "CALL_TYPE_DELEGATECALL",
    "build_erc20_approve_call_data",
    "build_execute_call_data",
    "encode_multi_send",
    "get_user_operation_hash",
    "hex_to_bytes",
    "to_hex",
]
