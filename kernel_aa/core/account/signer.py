"""
Signer capability used by validators.

The elliptic-curve routine and key storage belong to the signer; the rest of
the package only sees the three coroutines below.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_hex

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount


SignableMessage = Union[str, bytes]


def message_to_bytes(message: SignableMessage) -> bytes:
    """
    Hex strings are signed as raw bytes, any other string as UTF-8 text.
    """
    if isinstance(message, (bytes, bytearray)):
        return bytes(message)
    if message.startswith("0x") and is_hex(message):
        hex_data = message[2:]
        if len(hex_data) % 2 != 0:
            hex_data = "0" + hex_data
        return bytes.fromhex(hex_data)
    return message.encode("utf-8")


class SmartAccountSigner(ABC):
    """Owner of a smart account."""

    @abstractmethod
    async def get_address(self) -> str:
        pass

    @abstractmethod
    async def sign_message(self, message: SignableMessage) -> bytes:
        """EIP-191 personal_sign signature over ``message``."""
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        """EIP-712 signature over a full typed-data payload."""
        pass


class LocalAccountSigner(SmartAccountSigner):
    """Signer backed by an eth_account LocalAccount.

    Example:
        ```python
        signer = LocalAccountSigner.from_private_key("0x...")
        ```
    """

    def __init__(self, account: "LocalAccount") -> None:
        self._account = account

    @classmethod
    def from_private_key(cls, private_key: str) -> "LocalAccountSigner":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._account.address

    async def get_address(self) -> str:
        return self._account.address

    async def sign_message(self, message: SignableMessage) -> bytes:
        signed = self._account.sign_message(encode_defunct(primitive=message_to_bytes(message)))
        return bytes(signed.signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signed = self._account.sign_typed_data(full_message=typed_data)
        return bytes(signed.signature)


def recover_message_signer(message: SignableMessage, signature: bytes) -> str:
    """Address that produced a personal_sign ``signature`` over ``message``."""
    return Account.recover_message(
        encode_defunct(primitive=message_to_bytes(message)),
        signature=signature,
    )
