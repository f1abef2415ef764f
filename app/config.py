from pathlib import Path
from typing import Annotated, Any, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .core.recovery.errors import ConfigurationError


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Default the bundler endpoint to the home chain RPC."""

        super().model_post_init(__context)

        if not self.bundler_url:
            object.__setattr__(self, "bundler_url", self.rpc_url)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Home chain (L1): token, paymaster, POS and bridge contracts live here
    rpc_url: str = Field(default="http://localhost:8545", description="Home chain JSON-RPC endpoint")
    chain_id: int = Field(default=31337, description="Home chain id")
    bundler_url: str = Field(
        default="",
        description="ERC-4337 bundler endpoint (defaults to rpc_url)",
    )

    # L2 chain: counterpart of the bridge
    l2_rpc_url: str = Field(default="http://localhost:9545", description="L2 JSON-RPC endpoint")
    l2_chain_id: int = Field(default=31338, description="L2 chain id")

    # Contract addresses
    vyra_token_address: str = Field(
        default="0x5FbDB2315678afecb367f032d93F642f64180aa3",
        validation_alias=AliasChoices("vyra_token_address", "vyra_token"),
        description="VYR ERC-20 token",
    )
    paymaster_address: str = Field(default="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512", description="Paymaster contract")
    pos_address: str = Field(default="0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0", description="Point-of-sale contract")
    bridge_address: str = Field(default="0xCf7Ed3AccA5a467e9e704C703E8D87F634fB0Fc9", description="Bridge contract on the home chain")
    l2_bridge_address: str = Field(default="0xCf7Ed3AccA5a467e9e704C703E8D87F634fB0Fc9", description="Bridge contract on L2")
    entry_point_address: str = Field(default="0x0165878A594ca255338adfa4d48449f69242Eb8F", description="ERC-4337 EntryPoint")

    # Funding account that pays for sponsorship and settlement transactions
    relayer_private_key: str = Field(default="", description="Hex private key of the funding account")

    # Bridge
    bridge_validators: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated validator addresses allowed to attest withdrawals",
    )
    bridge_signature_threshold: int = Field(default=2, ge=1, description="Distinct validator signatures required")
    bridge_merge_pending_withdrawals: bool = Field(
        default=True,
        description="Add signatures to a still-pending withdrawal that cites the same source hash",
    )

    # Paymaster policy
    paymaster_max_gas_per_request: int = Field(default=5_000_000, ge=0, description="Largest sponsorable gas amount")
    paymaster_max_daily_sponsorships: int = Field(default=100, ge=1, description="Sponsorships per user per UTC day")
    paymaster_dedup_ttl_seconds: int = Field(default=3600, ge=1, description="Replay guard window for signatures")

    # Session keys and invoices
    session_key_max_lifetime_seconds: int = Field(default=30 * 24 * 3600, ge=60, description="Longest session key lifetime")
    invoice_default_expiry_seconds: int = Field(default=24 * 3600, ge=60, description="Invoice expiry when none is given")
    token_decimals: int = Field(default=18, ge=0, le=36, description="VYR token decimals")

    # Chain calls
    chain_request_timeout_seconds: float = Field(default=30.0, gt=0, description="RPC request timeout")
    chain_max_retries: int = Field(default=3, ge=1, description="Attempts per chain submission")
    chain_retry_initial_delay_seconds: float = Field(default=0.5, ge=0, description="First retry delay")
    gas_limit: int = Field(default=300_000, ge=21_000, description="Gas limit for relayed transactions")
    max_priority_fee_per_gas_wei: int = Field(default=1_500_000_000, ge=0, description="EIP-1559 tip")

    # ERC-4337
    userop_call_gas_limit: int = Field(default=200_000, description="UserOperation callGasLimit")
    userop_verification_gas_limit: int = Field(default=150_000, description="UserOperation verificationGasLimit")
    userop_pre_verification_gas: int = Field(default=50_000, description="UserOperation preVerificationGas")
    account_execute_signature: str = Field(
        default="execute(address,uint256,bytes)",
        description="Smart account execute function signature",
    )

    @field_validator("bridge_validators", mode="before")
    @classmethod
    def _split_validators(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def validate_runtime(self) -> None:
        """Fail loudly when chain configuration is incomplete.

        Raises:
            ConfigurationError: listing every missing or inconsistent value
        """
        problems: List[str] = []

        required = {
            "RPC_URL": self.rpc_url,
            "L2_RPC_URL": self.l2_rpc_url,
            "VYRA_TOKEN_ADDRESS": self.vyra_token_address,
            "PAYMASTER_ADDRESS": self.paymaster_address,
            "POS_ADDRESS": self.pos_address,
            "BRIDGE_ADDRESS": self.bridge_address,
            "L2_BRIDGE_ADDRESS": self.l2_bridge_address,
            "ENTRY_POINT_ADDRESS": self.entry_point_address,
            "RELAYER_PRIVATE_KEY": self.relayer_private_key,
        }
        for name, value in required.items():
            if not value or not value.strip():
                problems.append(f"{name} is empty")

        if self.chain_id <= 0:
            problems.append("CHAIN_ID must be positive")
        if self.l2_chain_id <= 0:
            problems.append("L2_CHAIN_ID must be positive")
        if self.chain_id == self.l2_chain_id:
            problems.append("CHAIN_ID and L2_CHAIN_ID must differ")

        if not self.bridge_validators:
            problems.append("BRIDGE_VALIDATORS is empty")
        elif self.bridge_signature_threshold > len(set(v.lower() for v in self.bridge_validators)):
            problems.append(
                f"BRIDGE_SIGNATURE_THRESHOLD ({self.bridge_signature_threshold}) exceeds "
                f"the number of distinct validators ({len(self.bridge_validators)})"
            )

        if problems:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(problems),
                details={"problems": problems},
            )


# Global settings instance
settings = Settings()
