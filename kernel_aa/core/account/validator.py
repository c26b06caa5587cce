"""
Kernel validator modules.

A validator turns an owner signature into what the Kernel account expects
for a given validation mode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Dict

from eth_utils import to_bytes, to_checksum_address

from .signer import SignableMessage, SmartAccountSigner
from ...errors import SigningFailed


logger = logging.getLogger(__name__)


class ValidatorMode(str, Enum):
    SUDO = "sudo"
    PLUGIN = "plugin"
    ENABLE = "enable"


# 4-byte prefix the Kernel account reads to pick its validation path
MODE_TAGS: Dict[ValidatorMode, bytes] = {
    ValidatorMode.SUDO: bytes.fromhex("00000000"),
    ValidatorMode.PLUGIN: bytes.fromhex("00000001"),
    ValidatorMode.ENABLE: bytes.fromhex("00000002"),
}

# Well-formed ECDSA signature (r, s, v) used only for gas estimation
DUMMY_ECDSA_SIGNATURE = bytes.fromhex(
    "fffffffffffffffffffffffffffffff000000000000000000000000000000000"
    "7aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
    "1c"
)


@dataclass
class KernelValidator:
    """ECDSA validator: the owner's EOA signs for the account."""
    validator_address: str
    mode: ValidatorMode
    owner: SmartAccountSigner

    @property
    def mode_tag(self) -> bytes:
        return MODE_TAGS[self.mode]

    async def get_owner_address(self) -> str:
        return await self._call_signer(self.owner.get_address())

    def encode_validator_init_data(self, owner_address: str) -> bytes:
        """Factory-side configuration: the packed 20-byte owner address."""
        return to_bytes(hexstr=to_checksum_address(owner_address))

    async def sign_message(self, message: SignableMessage) -> bytes:
        signature = await self._call_signer(self.owner.sign_message(message))
        if self.mode is ValidatorMode.SUDO:
            return signature
        return self.mode_tag + signature

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signature = await self._call_signer(self.owner.sign_typed_data(typed_data))
        if self.mode is ValidatorMode.SUDO:
            return signature
        return self.mode_tag + signature

    async def sign_user_op_hash(self, user_op_hash: bytes) -> bytes:
        """UserOperation signature: mode tag followed by the owner signature."""
        signature = await self._call_signer(self.owner.sign_message(user_op_hash))
        return self.mode_tag + signature

    def get_dummy_signature(self) -> bytes:
        return self.mode_tag + DUMMY_ECDSA_SIGNATURE

    async def _call_signer(self, pending: Awaitable[Any]) -> Any:
        try:
            return await pending
        except SigningFailed:
            raise
        except Exception as exc:
            logger.error(f"Signer failed for validator {self.validator_address}: {exc}")
            raise SigningFailed(str(exc)) from exc
