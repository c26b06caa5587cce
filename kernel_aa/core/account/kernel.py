"""
Kernel smart contract account.

One instance represents one counterfactual wallet: (factory, owner, index).
The address is derived once and kept; nonce and deployment status are read
from the chain every time they are asked for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

from .eip6492 import wrap_signature
from .signer import SignableMessage, SmartAccountSigner
from .validator import KernelValidator, ValidatorMode
from ..execution.userop import UserOperationCall
from ..execution.userop_builder import (
    CALL_TYPE_CALL,
    CALL_TYPE_DELEGATECALL,
    HexLike,
    build_entrypoint_get_nonce_call,
    build_execute_call_data,
    encode_multi_send,
    hex_to_bytes,
    to_hex,
)
from ...config import NetworkContext
from ...errors import AddressDerivationMismatch, RpcError
from ...providers.rpc import ChainRpcProvider


logger = logging.getLogger(__name__)

CREATE_ACCOUNT_SELECTOR = keccak(text="createAccount(address,bytes,uint256)")[:4]
GET_ACCOUNT_ADDRESS_SELECTOR = keccak(text="getAccountAddress(address,bytes,uint256)")[:4]
KERNEL_INITIALIZE_SELECTOR = keccak(text="initialize(address,bytes)")[:4]
IS_VALID_SIGNATURE_SELECTOR = keccak(text="isValidSignature(bytes32,bytes)")[:4]
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


@dataclass(frozen=True)
class Create2Derivation:
    """
    Offline replica of the factory's CREATE2 address computation.

    The factory deploys an EIP-1967 proxy pointing at ``kernel_template``
    with salt ``keccak(validator ++ data ++ index)``. The proxy creation code
    is deployment specific, so callers supply it.
    """
    kernel_template: str
    proxy_creation_code: bytes

    def compute(self, factory: str, validator: str, data: bytes, index: int) -> str:
        salt = keccak(
            encode_packed(
                ["address", "bytes", "uint256"],
                [to_checksum_address(validator), data, index],
            )
        )
        initialize = KERNEL_INITIALIZE_SELECTOR + encode(
            ["address", "bytes"], [to_checksum_address(validator), data]
        )
        init_code_hash = keccak(
            self.proxy_creation_code
            + encode(["address", "bytes"], [to_checksum_address(self.kernel_template), initialize])
        )
        digest = keccak(b"\xff" + hex_to_bytes(factory) + salt + init_code_hash)
        return to_checksum_address(digest[12:])


class KernelSmartContractAccount:
    """
    Counterfactual Kernel wallet.

    Args:
        rpc: Chain JSON-RPC transport used for view calls and code lookups
        network: Explicit chain context (entry point, factory, chain id)
        owner: Signer that owns the account
        index: Salt distinguishing accounts of the same owner and factory
        validator: Validator used for runtime signatures. Defaults to a sudo
            validator for ``owner`` at ``network.validator_address``
        default_validator: Validator configured into the init code
            (defaults to ``validator``)
        factory_address: Overrides ``network.factory_address``
        entry_point_address: Overrides ``network.entry_point_address``
        address_derivation: Optional offline CREATE2 replica, cross-checked
            against the factory view
    """

    def __init__(
        self,
        *,
        rpc: ChainRpcProvider,
        network: NetworkContext,
        owner: SmartAccountSigner,
        index: int,
        validator: Optional[KernelValidator] = None,
        default_validator: Optional[KernelValidator] = None,
        factory_address: Optional[str] = None,
        entry_point_address: Optional[str] = None,
        address_derivation: Optional[Create2Derivation] = None,
    ) -> None:
        if index < 0:
            raise ValueError("Account index must be non-negative")
        self.rpc = rpc
        self.network = network
        self.owner = owner
        self.index = index
        if validator is None:
            if not network.validator_address:
                raise ValueError("No validator given and no validator_address configured for the network")
            validator = KernelValidator(
                validator_address=network.validator_address,
                mode=ValidatorMode.SUDO,
                owner=owner,
            )
        self.validator = validator
        self.default_validator = default_validator or validator
        self.factory_address = to_checksum_address(factory_address or network.factory_address)
        self.entry_point_address = to_checksum_address(entry_point_address or network.entry_point_address)
        self.address_derivation = address_derivation
        self._cached_address: Optional[str] = None

    # Address

    async def get_address(self) -> str:
        if self._cached_address is None:
            onchain = await self._fetch_factory_address()
            if self.address_derivation is not None:
                local = await self.compute_counterfactual_address()
                if local != onchain:
                    logger.error(
                        f"CREATE2 derivation diverges from factory view for index {self.index}: "
                        f"{local} != {onchain}"
                    )
                    raise AddressDerivationMismatch(local, onchain)
            self._cached_address = onchain
            logger.debug(f"Kernel account index {self.index} resolved to {onchain}")
        return self._cached_address

    async def compute_counterfactual_address(self) -> str:
        """Derive the address locally. Requires ``address_derivation``."""
        if self.address_derivation is None:
            raise ValueError("No CREATE2 derivation configured for this account")
        return self.address_derivation.compute(
            self.factory_address,
            self.default_validator.validator_address,
            await self._validator_init_data(),
            self.index,
        )

    async def _fetch_factory_address(self) -> str:
        data = GET_ACCOUNT_ADDRESS_SELECTOR + encode(
            ["address", "bytes", "uint256"],
            [
                to_checksum_address(self.default_validator.validator_address),
                await self._validator_init_data(),
                self.index,
            ],
        )
        result = await self.rpc.call(self.factory_address, to_hex(data))
        try:
            (address,) = decode(["address"], hex_to_bytes(result))
        except DecodingError as exc:
            raise RpcError(
                f"getAccountAddress on factory {self.factory_address} returned undecodable data: {result}"
            ) from exc
        return to_checksum_address(address)

    # Chain state (never cached)

    async def get_nonce(self) -> int:
        result = await self.rpc.call(
            self.entry_point_address,
            build_entrypoint_get_nonce_call(await self.get_address()),
        )
        try:
            (nonce,) = decode(["uint256"], hex_to_bytes(result))
        except DecodingError as exc:
            raise RpcError(
                f"getNonce on entry point {self.entry_point_address} returned undecodable data: {result}"
            ) from exc
        return nonce

    async def is_account_deployed(self) -> bool:
        code = await self.rpc.get_code(await self.get_address())
        return len(hex_to_bytes(code)) > 0

    # Deployment

    async def _validator_init_data(self) -> bytes:
        owner_address = await self.default_validator.get_owner_address()
        return self.default_validator.encode_validator_init_data(owner_address)

    async def get_factory_call_data(self) -> str:
        """createAccount(validator, validatorInitData, index) calldata."""
        encoded = encode(
            ["address", "bytes", "uint256"],
            [
                to_checksum_address(self.default_validator.validator_address),
                await self._validator_init_data(),
                self.index,
            ],
        )
        return to_hex(CREATE_ACCOUNT_SELECTOR + encoded)

    async def get_init_code(self) -> str:
        if await self.is_account_deployed():
            return "0x"
        return self.factory_address.lower() + (await self.get_factory_call_data())[2:]

    # Call encoding

    def encode_execute(self, target: str, value: int, data: HexLike) -> str:
        return build_execute_call_data(target, value, data, CALL_TYPE_CALL)

    def encode_execute_delegate(self, target: str, value: int, data: HexLike) -> str:
        return build_execute_call_data(target, value, data, CALL_TYPE_DELEGATECALL)

    def encode_batch_execute(self, calls: Sequence[UserOperationCall]) -> str:
        if not calls:
            raise ValueError("Batch must contain at least one call")
        return self.encode_execute_delegate(
            self.network.multisend_address, 0, encode_multi_send(calls)
        )

    # Signing

    def get_dummy_signature(self) -> str:
        return to_hex(self.validator.get_dummy_signature())

    async def sign_user_operation_hash(self, user_op_hash: str) -> str:
        return to_hex(await self.validator.sign_user_op_hash(hex_to_bytes(user_op_hash)))

    async def sign_message(self, message: SignableMessage) -> str:
        """
        personal_sign for the account. Raw validator signature once deployed,
        EIP-6492 wrapped while the account is still counterfactual.
        """
        signature = await self.validator.sign_message(message)
        return await self._wrap_if_undeployed(signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        signature = await self.validator.sign_typed_data(typed_data)
        return await self._wrap_if_undeployed(signature)

    async def wrap_with_eip6492(self, signature: HexLike) -> str:
        return to_hex(
            wrap_signature(self.factory_address, await self.get_factory_call_data(), signature)
        )

    async def _wrap_if_undeployed(self, signature: bytes) -> str:
        if await self.is_account_deployed():
            return to_hex(signature)
        return await self.wrap_with_eip6492(signature)

    async def is_valid_signature(self, message_hash: HexLike, signature: HexLike) -> bool:
        """ERC-1271 check against the deployed account."""
        if not await self.is_account_deployed():
            logger.debug("ERC-1271 check skipped: account not deployed")
            return False
        data = IS_VALID_SIGNATURE_SELECTOR + encode(
            ["bytes32", "bytes"], [hex_to_bytes(message_hash), hex_to_bytes(signature)]
        )
        try:
            result = await self.rpc.call(await self.get_address(), to_hex(data))
        except RpcError as exc:
            logger.info(f"isValidSignature reverted: {exc}")
            return False
        return hex_to_bytes(result)[:4] == ERC1271_MAGIC_VALUE
