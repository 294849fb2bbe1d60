"""Application configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="rwa-deployer", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")

    # API
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 prefix")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )

    # Blockchain
    rpc_url: str = Field(
        default="https://ethereum-sepolia-rpc.publicnode.com",
        description="Primary RPC endpoint",
    )
    rpc_backup_urls: list[str] = Field(
        default=["https://rpc.sepolia.org"],
        description="Backup RPC endpoints",
    )
    chain_id: int = Field(default=11155111, description="Chain ID of the RPC network")
    rpc_max_retries: int = Field(default=3, ge=1, description="Retries per RPC")
    rpc_retry_delay: float = Field(default=1.0, ge=0, description="Retry delay (s)")

    # Signer (server-side hot wallet used by the HTTP API)
    signer_private_key: str = Field(
        default="", description="Hot wallet private key (empty = no signer)"
    )
    gas_limit_multiplier: float = Field(default=1.2, ge=1.0)
    gas_price_multiplier: float = Field(default=1.1, ge=1.0)

    # Transaction lifecycle
    receipt_timeout: float = Field(
        default=120.0, gt=0, description="Max wait for an inclusion receipt (s)"
    )
    receipt_poll_latency: float = Field(
        default=2.0, gt=0, description="Receipt polling interval (s)"
    )
    confirmation_poll_interval: float = Field(
        default=15.0, gt=0, description="Block height polling interval (s)"
    )
    confirmation_target_depth: int = Field(
        default=12, ge=1, description="Confirmation depth considered final"
    )
    confirmation_max_polls: int = Field(
        default=240, ge=1, description="Upper bound on confirmation polls"
    )

    # Factory addresses per network
    factory_address_mainnet: str | None = Field(default=None)
    factory_address_sepolia: str | None = Field(default=None)
    factory_address_polygon: str | None = Field(default=None)
    factory_address_bsc: str | None = Field(default=None)

    # Contract artifacts
    artifact_dir: Path | None = Field(
        default=None, description="Directory with compiled contract artifacts"
    )
    allow_placeholder_bytecode: bool = Field(
        default=False,
        description="Deploy placeholder init code when bytecode is missing (demo mode)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log output format"
    )

    @computed_field
    @property
    def factory_addresses(self) -> dict[int, str]:
        """Configured factory addresses keyed by chain ID."""
        configured = {
            1: self.factory_address_mainnet,
            11155111: self.factory_address_sepolia,
            137: self.factory_address_polygon,
            56: self.factory_address_bsc,
        }
        return {chain_id: addr for chain_id, addr in configured.items() if addr}

    @computed_field
    @property
    def has_signer(self) -> bool:
        """Whether a hot wallet key is configured."""
        return bool(self.signer_private_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
