from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

# EntryPoint v0.6 singleton
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

# Gnosis MultiSend used by Kernel batch execution
MULTISEND_ADDRESS = "0x8ae01fcf7c655655ff2c6ef907b8b4718ab4e17c"


@dataclass(frozen=True)
class NetworkContext:
    """
    Everything a component needs to know about the chain it talks to.

    Passed explicitly into every provider, account and pipeline; nothing in
    the package reads configuration from a module-level instance.
    """
    chain_id: int
    rpc_url: str
    bundler_url: str
    entry_point_address: str = ENTRYPOINT_V06
    paymaster_url: str = ""
    paymaster_rpc_method: str = "pm_sponsorUserOperation"
    project_id: str = ""
    factory_address: str = ""
    validator_address: str = ""
    multisend_address: str = MULTISEND_ADDRESS
    request_timeout_s: float = 30.0
    receipt_poll_interval_s: float = 2.0
    receipt_timeout_s: float = 60.0
    wrap_undeployed_user_op_signatures: bool = True


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Chain
    chain_id: int = Field(default=80001, description="EVM chain id the account lives on")
    rpc_url: str = Field(default="", description="JSON-RPC endpoint for chain reads")

    # ERC-4337 infrastructure
    bundler_url: str = Field(
        default="",
        description="Bundler JSON-RPC endpoint",
        validation_alias=AliasChoices("bundler_url", "erc4337_bundler_url"),
    )
    paymaster_url: str = Field(
        default="",
        description="Paymaster service endpoint (empty disables sponsorship)",
        validation_alias=AliasChoices("paymaster_url", "erc4337_paymaster_url"),
    )
    paymaster_rpc_method: str = Field(
        default="pm_sponsorUserOperation",
        description="JSON-RPC method exposed by the paymaster service",
    )
    zerodev_project_id: str = Field(default="", description="ZeroDev project id sent with paymaster requests")
    entry_point_address: str = Field(default=ENTRYPOINT_V06, description="EntryPoint contract address")

    # Kernel account
    kernel_factory_address: str = Field(default="", description="Kernel account factory address")
    kernel_validator_address: str = Field(default="", description="Default ECDSA validator module address")
    multisend_address: str = Field(default=MULTISEND_ADDRESS, description="MultiSend contract used for batches")

    # Timeouts
    request_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")
    receipt_poll_interval_seconds: float = Field(default=2.0, description="Delay between receipt polls")
    receipt_timeout_seconds: float = Field(default=60.0, description="Default bound for inclusion polling")

    wrap_undeployed_user_op_signatures: bool = Field(
        default=True,
        description="Wrap UserOperation signatures with EIP-6492 while the account is undeployed",
    )

    def network_context(self, project_id: Optional[str] = None) -> NetworkContext:
        return NetworkContext(
            chain_id=self.chain_id,
            rpc_url=self.rpc_url,
            bundler_url=self.bundler_url,
            entry_point_address=self.entry_point_address,
            paymaster_url=self.paymaster_url,
            paymaster_rpc_method=self.paymaster_rpc_method,
            project_id=project_id or self.zerodev_project_id,
            factory_address=self.kernel_factory_address,
            validator_address=self.kernel_validator_address,
            multisend_address=self.multisend_address,
            request_timeout_s=self.request_timeout_seconds,
            receipt_poll_interval_s=self.receipt_poll_interval_seconds,
            receipt_timeout_s=self.receipt_timeout_seconds,
            wrap_undeployed_user_op_signatures=self.wrap_undeployed_user_op_signatures,
        )
