from .eip6492 import MAGIC_SUFFIX, WrappedSignature, is_wrapped, unwrap_signature, wrap_signature
from .kernel import Create2Derivation, KernelSmartContractAccount
from .signer import LocalAccountSigner, SmartAccountSigner, recover_message_signer
from .validator import KernelValidator, ValidatorMode

__all__ = [
    "MAGIC_SUFFIX",
    "WrappedSignature",
    "is_wrapped",
    "unwrap_signature",
    "wrap_signature",
    "Create2Derivation",
    "KernelSmartContractAccount",
    "LocalAccountSigner",
    "SmartAccountSigner",
    "recover_message_signer",
    "KernelValidator",
    "ValidatorMode",
]
