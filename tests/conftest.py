"""
Shared fixtures: an in-memory chain, bundler and paymaster service that speak
through the real provider classes, plus a deterministic mock owner.
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

import pytest
from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address

from kernel_aa.config import NetworkContext
from kernel_aa.core.account.kernel import (
    ERC1271_MAGIC_VALUE,
    GET_ACCOUNT_ADDRESS_SELECTOR,
    IS_VALID_SIGNATURE_SELECTOR,
    KernelSmartContractAccount,
)
from kernel_aa.core.account.signer import SmartAccountSigner
from kernel_aa.core.account.validator import KernelValidator, ValidatorMode
from kernel_aa.core.execution.userop import UserOperation
from kernel_aa.core.execution.userop_builder import get_user_operation_hash, hex_to_bytes
from kernel_aa.core.provider import KernelProvider
from kernel_aa.providers.bundler import BundlerProvider
from kernel_aa.providers.paymaster import PaymasterProvider
from kernel_aa.providers.rpc import ChainRpcProvider


VALIDATOR_ADDRESS = "0x180D6465F921C7E0DEA0040107D342c87455fFF5"
FACTORY_ADDRESS = "0x5D006d3880645ec6e254E18C1F879DAC9Dd71A39"
ENTRY_POINT_ADDRESS = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
PAYMASTER_ADDRESS = "0x9d0021F6A4D6bd3B4B1Dd2E8C2B3fCCd8C2a1f4E"
MOCK_OWNER_ADDRESS = "0x48D4d3536cDe7A257087206870c6B6E76e3D4ff4"
MOCK_OWNER_SIGNATURE = bytes.fromhex(
    "4d61c5c27fb64b207cbf3bcf60d78e725659cff5f93db9a1316162117dff72aa"
    "631761619d93d4d97dfb761ba00b61f9274c6a4a76e494df644d968dd84ddcdb1c"
)

GET_NONCE_SELECTOR = keccak(text="getNonce(address,uint192)")[:4]


class MockSigner(SmartAccountSigner):
    """Owner that returns the same signature for every request."""

    def __init__(self, address: str = MOCK_OWNER_ADDRESS, signature: bytes = MOCK_OWNER_SIGNATURE):
        self.address = address
        self.signature = signature
        self.signed: List[Any] = []

    async def get_address(self) -> str:
        return self.address

    async def sign_message(self, message) -> bytes:
        self.signed.append(message)
        return self.signature

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        self.signed.append(typed_data)
        return self.signature


class ChainState:
    """Ledger shared by the fake chain, bundler and paymaster."""

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        self.deployed: Set[str] = set()
        self.nonces: Dict[str, int] = defaultdict(int)
        self.deposits: Dict[str, int] = defaultdict(int)
        self.base_fee = 1_000_000_000
        self.priority_fee = 1_500_000_000

        self.rpc_calls: List[str] = []
        self.sent: List[UserOperation] = []
        self.pending: Dict[str, UserOperation] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.polls: Dict[str, int] = defaultdict(int)
        self.polls_before_inclusion = 1
        self.hold_inclusion = False
        self.revert_reason: Optional[str] = None
        self.estimate_error: Optional[Dict[str, Any]] = None
        # Raised (exceptions) or returned as JSON-RPC errors (dicts) on the next receipt polls
        self.receipt_failures: List[Any] = []

        self.sponsored_policies: Set[str] = set()
        self.paymaster_requests: List[List[Any]] = []

    def factory_view(self, validator: str, data: bytes, index: int) -> str:
        digest = keccak(b"kernel" + hex_to_bytes(validator) + data + index.to_bytes(32, "big"))
        return to_checksum_address(digest[12:])

    def deploy(self, address: str) -> None:
        self.deployed.add(to_checksum_address(address))

    def call(self, to: str, data: str) -> str:
        raw = hex_to_bytes(data)
        selector, args = raw[:4], raw[4:]
        if selector == GET_ACCOUNT_ADDRESS_SELECTOR:
            validator, init_data, index = decode(["address", "bytes", "uint256"], args)
            return "0x" + encode(["address"], [self.factory_view(validator, init_data, index)]).hex()
        if selector == GET_NONCE_SELECTOR:
            sender, _key = decode(["address", "uint192"], args)
            return "0x" + encode(["uint256"], [self.nonces[to_checksum_address(sender)]]).hex()
        if selector == IS_VALID_SIGNATURE_SELECTOR:
            return "0x" + (ERC1271_MAGIC_VALUE + b"\x00" * 28).hex()
        return None


class FakeChainRpc(ChainRpcProvider):
    def __init__(self, network: NetworkContext, state: ChainState):
        super().__init__(network)
        self.state = state

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        self.state.rpc_calls.append(method)
        if method == "eth_chainId":
            return hex(self.state.chain_id)
        if method == "eth_getCode":
            return "0x6080" if to_checksum_address(params[0]) in self.state.deployed else "0x"
        if method == "eth_call":
            result = self.state.call(params[0]["to"], params[0]["data"])
            if result is None:
                self._raise_rpc_error(method, {"code": 3, "message": "execution reverted"})
            return result
        if method == "eth_getBlockByNumber":
            return {"number": "0x1", "baseFeePerGas": hex(self.state.base_fee)}
        if method == "eth_maxPriorityFeePerGas":
            return hex(self.state.priority_fee)
        self._raise_rpc_error(method, {"code": -32601, "message": f"Method {method} not found"})


class FakeBundler(BundlerProvider):
    def __init__(self, network: NetworkContext, state: ChainState):
        super().__init__(network)
        self.state = state

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        state = self.state
        if method == "eth_chainId":
            return hex(state.chain_id)
        if method == "eth_estimateUserOperationGas":
            if state.estimate_error:
                self._raise_rpc_error(method, state.estimate_error)
            return {
                "callGasLimit": hex(35_000),
                "verificationGasLimit": hex(400_000),
                "preVerificationGas": hex(48_000),
            }
        if method == "eth_sendUserOperation":
            op = UserOperation.from_rpc_dict(params[0])
            sender = to_checksum_address(op.sender)
            if op.paymaster_and_data == "0x" and state.deposits[sender] == 0:
                self._raise_rpc_error(method, {"code": -32500, "message": "AA21 didn't pay prefund"})
            if op.nonce != state.nonces[sender]:
                self._raise_rpc_error(method, {"code": -32500, "message": "AA25 invalid account nonce"})
            user_op_hash = get_user_operation_hash(op, params[1], state.chain_id)
            state.sent.append(op)
            state.pending[user_op_hash] = op
            return user_op_hash
        if method == "eth_getUserOperationReceipt":
            if state.receipt_failures:
                failure = state.receipt_failures.pop(0)
                if isinstance(failure, Exception):
                    raise failure
                self._raise_rpc_error(method, failure)
            user_op_hash = params[0]
            if user_op_hash in state.receipts:
                return state.receipts[user_op_hash]
            if user_op_hash not in state.pending or state.hold_inclusion:
                return None
            state.polls[user_op_hash] += 1
            if state.polls[user_op_hash] <= state.polls_before_inclusion:
                return None
            return self._include(user_op_hash)
        if method == "eth_supportedEntryPoints":
            return [ENTRY_POINT_ADDRESS]
        self._raise_rpc_error(method, {"code": -32601, "message": f"Method {method} not found"})

    def _include(self, user_op_hash: str) -> Dict[str, Any]:
        state = self.state
        op = state.pending.pop(user_op_hash)
        sender = to_checksum_address(op.sender)
        state.nonces[sender] += 1
        if op.init_code != "0x":
            state.deploy(sender)
        success = state.revert_reason is None
        receipt = {
            "userOpHash": user_op_hash,
            "sender": sender,
            "nonce": hex(op.nonce),
            "success": success,
            "reason": state.revert_reason or "",
            "actualGasCost": hex(21_000 * 2_000_000_000),
            "actualGasUsed": hex(21_000),
            "receipt": {
                "transactionHash": "0x" + keccak(hexstr=user_op_hash).hex(),
                "blockNumber": hex(len(state.receipts) + 1),
                "status": "0x1" if success else "0x0",
            },
        }
        state.receipts[user_op_hash] = receipt
        return receipt


class FakePaymaster(PaymasterProvider):
    def __init__(self, network: NetworkContext, state: ChainState):
        super().__init__(network)
        self.state = state

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        if method == "eth_chainId":
            return hex(self.state.chain_id)
        self.state.paymaster_requests.append(params)
        context = params[2] if len(params) > 2 else {}
        policy = context.get("policy")
        if policy not in self.state.sponsored_policies:
            self._raise_rpc_error(
                method, {"code": -32001, "message": f"{policy} denied: no sponsorship policy for project"}
            )
        return {"paymasterAndData": PAYMASTER_ADDRESS.lower() + "00" * 64 + "ab" * 65}


@pytest.fixture
def network() -> NetworkContext:
    return NetworkContext(
        chain_id=80001,
        rpc_url="http://rpc.test",
        bundler_url="http://bundler.test",
        paymaster_url="http://paymaster.test",
        entry_point_address=ENTRY_POINT_ADDRESS,
        project_id="test-project",
        factory_address=FACTORY_ADDRESS,
        validator_address=VALIDATOR_ADDRESS,
        receipt_poll_interval_s=0.001,
        receipt_timeout_s=1.0,
    )


@pytest.fixture
def chain_state(network: NetworkContext) -> ChainState:
    return ChainState(network.chain_id)


@pytest.fixture
def rpc(network: NetworkContext, chain_state: ChainState) -> FakeChainRpc:
    return FakeChainRpc(network, chain_state)


@pytest.fixture
def bundler(network: NetworkContext, chain_state: ChainState) -> FakeBundler:
    return FakeBundler(network, chain_state)


@pytest.fixture
def paymaster(network: NetworkContext, chain_state: ChainState) -> FakePaymaster:
    return FakePaymaster(network, chain_state)


@pytest.fixture
def mock_signer() -> MockSigner:
    return MockSigner()


@pytest.fixture
def make_account(network, rpc, mock_signer):
    """Build a Kernel account for ``index`` owned by ``owner`` (mock by default)."""

    def _make(index: int, owner: Optional[SmartAccountSigner] = None, mode: ValidatorMode = ValidatorMode.SUDO):
        owner = owner or mock_signer
        validator = KernelValidator(validator_address=VALIDATOR_ADDRESS, mode=mode, owner=owner)
        return KernelSmartContractAccount(
            rpc=rpc,
            network=network,
            owner=owner,
            index=index,
            validator=validator,
            default_validator=validator,
        )

    return _make


@pytest.fixture
def provider(network, rpc, bundler, paymaster) -> KernelProvider:
    return KernelProvider(network, rpc=rpc, bundler=bundler, paymaster=paymaster)


@pytest.fixture
def connect(provider, make_account):
    def _connect(index: int, owner: Optional[SmartAccountSigner] = None):
        return provider.connect(lambda _provider: make_account(index, owner))

    return _connect
