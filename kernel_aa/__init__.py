"""
Kernel smart account client for ERC-4337.

Counterfactual Kernel wallets, validator-tagged signatures with EIP-6492
wrapping, paymaster policies and a bundler-backed UserOperation pipeline.
"""

from .config import NetworkContext, Settings
from .core.account import (
    Create2Derivation,
    KernelSmartContractAccount,
    KernelValidator,
    LocalAccountSigner,
    SmartAccountSigner,
    ValidatorMode,
)
from .core.execution.paymaster_strategy import PaymasterPolicy
from .core.execution.pipeline import UserOperationPipeline, UserOpState
from .core.execution.userop import UserOperation, UserOperationCall
from .core.provider import BoundAccount, KernelProvider, SendUserOperationResult
from .logging_config import setup_logging
from .errors import (
    KernelAAError,
    SigningFailed,
    SimulationRejected,
    SponsorshipDenied,
    TransientRpcError,
    UserOperationReverted,
    UserOperationTimeout,
)

__version__ = "0.1.0"

__all__ = [
    "NetworkContext",
    "Settings",
    "setup_logging",
    "Create2Derivation",
    "KernelSmartContractAccount",
    "KernelValidator",
    "LocalAccountSigner",
    "SmartAccountSigner",
    "ValidatorMode",
    "PaymasterPolicy",
    "UserOperationPipeline",
    "UserOpState",
    "UserOperation",
    "UserOperationCall",
    "BoundAccount",
    "KernelProvider",
    "SendUserOperationResult",
    "KernelAAError",
    "SigningFailed",
    "SimulationRejected",
    "SponsorshipDenied",
    "TransientRpcError",
    "UserOperationReverted",
    "UserOperationTimeout",
]
