"""
Tests for ERC-4337 UserOperation calldata builders.
"""

import pytest

from kernel_aa.core.execution.userop import UserOperation, UserOperationCall
from kernel_aa.core.execution.userop_builder import (
    CALL_TYPE_DELEGATECALL,
    build_entrypoint_get_nonce_call,
    build_erc20_approve_call_data,
    build_execute_call_data,
    encode_multi_send,
    get_user_operation_hash,
    hex_to_bytes,
)


TARGET = "0xA7b2c01A5AfBCf1FAB17aCf95D8367eCcFeEb845"
ENTRY_POINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

EXECUTE_VECTOR = (
    "0x51945447"
    "000000000000000000000000a7b2c01a5afbcf1fab17acf95d8367eccfeeb845"
    "0000000000000000000000000000000000000000000000000000000000000001"
    "0000000000000000000000000000000000000000000000000000000000000080"
    "0000000000000000000000000000000000000000000000000000000000000000"
    "0000000000000000000000000000000000000000000000000000000000000002"
    "2340000000000000000000000000000000000000000000000000000000000000"
)


def test_build_execute_call_data_encodes_execute() -> None:
    call_data = build_execute_call_data(to_address=TARGET, value_wei=1, data="0x234")

    assert call_data == EXECUTE_VECTOR


def test_build_execute_call_data_delegatecall_sets_call_type() -> None:
    call_data = build_execute_call_data(TARGET, 1, "0x234", CALL_TYPE_DELEGATECALL)

    # Only the operation word differs from a plain call
    expected = EXECUTE_VECTOR[: 10 + 64 * 3] + "0" * 63 + "1" + EXECUTE_VECTOR[10 + 64 * 4 :]
    assert call_data == expected


def test_build_execute_call_data_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        build_execute_call_data(TARGET, -1, "0x")
    with pytest.raises(ValueError):
        build_execute_call_data(TARGET, 0, "0x", call_type=2)


def test_hex_to_bytes_pads_odd_length_on_the_right() -> None:
    assert hex_to_bytes("0x234") == b"\x23\x40"
    assert hex_to_bytes("0x") == b""
    assert hex_to_bytes(b"\x01") == b"\x01"


def test_encode_multi_send_packs_each_call() -> None:
    calls = [
        UserOperationCall(target=TARGET, value=5, data="0xdeadbeef"),
        UserOperationCall(target="0x1111111111111111111111111111111111111111"),
    ]

    call_data = encode_multi_send(calls)
    raw = hex_to_bytes(call_data)

    assert call_data.startswith("0x8d80ff0a")
    packed_length = int.from_bytes(raw[4 + 32 : 4 + 64], "big")
    # operation + to + value + length + data, per call
    assert packed_length == (1 + 20 + 32 + 32 + 4) + (1 + 20 + 32 + 32)

    packed = raw[4 + 64 : 4 + 64 + packed_length]
    assert packed[0] == 0
    assert packed[1:21] == hex_to_bytes(TARGET)
    assert int.from_bytes(packed[21:53], "big") == 5
    assert int.from_bytes(packed[53:85], "big") == 4
    assert packed[85:89] == bytes.fromhex("deadbeef")


def test_erc20_approve_and_get_nonce_selectors() -> None:
    approve = build_erc20_approve_call_data(TARGET, 10**18)
    get_nonce = build_entrypoint_get_nonce_call(TARGET)

    assert approve.startswith("0x095ea7b3")
    assert approve.endswith(hex(10**18)[2:].rjust(64, "0"))
    assert get_nonce.startswith("0x35567e1a")
    assert get_nonce.endswith("0" * 64)


def test_user_operation_hash_ignores_signature_but_binds_chain() -> None:
    op = UserOperation(
        sender=TARGET,
        nonce=3,
        init_code="0x",
        call_data=EXECUTE_VECTOR,
        call_gas_limit=35_000,
        verification_gas_limit=400_000,
        pre_verification_gas=48_000,
        max_fee_per_gas=3_500_000_000,
        max_priority_fee_per_gas=1_500_000_000,
    )

    base = get_user_operation_hash(op, ENTRY_POINT, 80001)

    assert len(hex_to_bytes(base)) == 32
    assert get_user_operation_hash(op.evolve(signature="0x1234"), ENTRY_POINT, 80001) == base
    assert get_user_operation_hash(op, ENTRY_POINT, 1) != base
    assert get_user_operation_hash(op.evolve(paymaster_and_data="0xabcd"), ENTRY_POINT, 80001) != base
