"""
Error taxonomy for the Kernel account client.

Every error raised by the package derives from ``KernelAAError``. The
UserOperation pipeline stamps ``stage`` with the state it was in when the
error surfaced; the rest of the error is left exactly as the collaborator
reported it.
"""

from typing import Any, Optional


class KernelAAError(Exception):
    """Base exception for the package."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class ProviderNotConfigured(KernelAAError):
    """A transport was used without its endpoint configured."""
    pass


class TransientRpcError(KernelAAError):
    """Transport or network failure. Safe for the caller to retry."""
    pass


class RpcError(KernelAAError):
    """JSON-RPC error object returned by a chain read."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class SimulationRejected(KernelAAError):
    """Bundler or entry point simulation rejected the UserOperation."""

    def __init__(self, reason: str, code: Optional[int] = None, data: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.code = code
        self.data = data


class UserOperationReverted(KernelAAError):
    """The UserOperation was included but its execution reverted."""

    def __init__(self, reason: str, user_op_hash: str, transaction_hash: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.user_op_hash = user_op_hash
        self.transaction_hash = transaction_hash


class SponsorshipDenied(KernelAAError):
    """Paymaster service declined to sponsor or accept token payment."""

    def __init__(self, reason: str, policy: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.policy = policy


class SigningFailed(KernelAAError):
    """Signer failed or the owner rejected the request."""
    pass


class UserOperationTimeout(KernelAAError):
    """Inclusion polling gave up. The operation may still land later."""

    def __init__(self, user_op_hash: str, timeout_s: float):
        super().__init__(f"UserOperation {user_op_hash} not included after {timeout_s}s")
        self.user_op_hash = user_op_hash
        self.timeout_s = timeout_s


class InvalidTransitionError(KernelAAError):
    """Pipeline step invoked from a state that does not allow it."""

    def __init__(self, from_state: str, to_state: str):
        super().__init__(f"Invalid UserOperation transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class AddressDerivationMismatch(KernelAAError):
    """Local CREATE2 derivation disagrees with the factory view."""

    def __init__(self, local_address: str, onchain_address: str):
        super().__init__(
            f"Local counterfactual address {local_address} != factory view {onchain_address}"
        )
        self.local_address = local_address
        self.onchain_address = onchain_address
