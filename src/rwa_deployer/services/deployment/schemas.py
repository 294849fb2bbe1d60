"""Deployment pipeline schemas."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rwa_deployer.core.exceptions import DeploymentError


class DeploymentStage(str, Enum):
    """Stage of a single deployment or contract-call operation."""

    PREPARING = "preparing"
    DEPLOYING = "deploying"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStage.COMPLETED, DeploymentStage.FAILED)


class ConfirmationState(str, Enum):
    """Confirmation status of an included transaction."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class DeploymentProgress(BaseModel):
    """Progress notification emitted while an operation runs."""

    model_config = ConfigDict(frozen=True)

    stage: DeploymentStage = Field(..., description="Current stage")
    message: str = Field(..., description="Human-readable status")
    tx_hash: str | None = Field(None, description="Accepted transaction hash")
    contract_address: str | None = Field(None, description="Resulting address")
    error: str | None = Field(None, description="Failure detail")

    @model_validator(mode="after")
    def check_stage_fields(self) -> "DeploymentProgress":
        if (self.error is not None) != (self.stage == DeploymentStage.FAILED):
            raise ValueError("error must be set exactly when stage is failed")
        if self.contract_address and self.stage != DeploymentStage.COMPLETED:
            raise ValueError("contract_address is only reported on completion")
        return self


class DeploymentResult(BaseModel):
    """Terminal outcome of an operation."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the operation succeeded")
    contract_address: str | None = Field(None, description="Deployed contract")
    tx_hash: str | None = Field(None, description="Transaction hash")
    error: str | None = Field(None, description="Failure detail")
    error_code: str | None = Field(None, description="Failure category code")

    @model_validator(mode="after")
    def check_outcome(self) -> "DeploymentResult":
        if self.success and (self.error or self.error_code):
            raise ValueError("successful result cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("failed result requires an error")
        return self

    @classmethod
    def failure(cls, error: DeploymentError, tx_hash: str | None = None) -> "DeploymentResult":
        return cls(success=False, error=error.message, error_code=error.code, tx_hash=tx_hash)


class TokenParams(BaseModel):
    """Constructor parameters for an RWA token.

    Amounts are decimal strings in display units; they are validated and
    scaled when the transaction is built.
    """

    name: str = Field(..., description="Token name")
    symbol: str = Field(..., description="Token symbol")
    decimals: int = Field(default=18, description="Token decimals")
    initial_supply: str = Field(..., description="Initial supply in whole tokens")
    asset_type: str = Field(default="", description="Underlying asset type")
    asset_location: str = Field(default="", description="Underlying asset location")
    asset_value: str = Field(default="0", description="Asset value in USD")
    category: str = Field(default="", description="Factory listing category")


class ConfirmationStatus(BaseModel):
    """Confirmation update reported by the monitor."""

    model_config = ConfigDict(frozen=True)

    state: ConfirmationState = Field(..., description="Confirmation state")
    depth: int = Field(default=0, ge=0, description="Blocks since inclusion, inclusive")
    tx_hash: str | None = Field(None, description="Monitored transaction")


class ContractDetails(BaseModel):
    """Partial record of optional token fields."""

    address: str = Field(..., description="Contract address")
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    total_supply: int | None = None
    owner: str | None = None
    error: str | None = Field(None, description="Set when nothing could be read")


# =============================================================================
# API request/response models
# =============================================================================


class FactoryDeploymentRequest(TokenParams):
    """Token parameters plus an optional factory override."""

    factory_address: str | None = Field(
        None, description="Factory address (defaults to the chain's registered factory)"
    )


class TransferRequest(BaseModel):
    """Token transfer from the service wallet."""

    token_address: str = Field(..., description="Token contract address")
    recipient: str = Field(..., description="Recipient address")
    amount: str = Field(..., description="Amount in token base units")


class OperationResponse(BaseModel):
    """Result of an operation together with every progress emission."""

    result: DeploymentResult
    progress: list[DeploymentProgress] = Field(default_factory=list)
    explorer_url: str | None = Field(None, description="Transaction explorer link")


class ChainResponse(BaseModel):
    """Chain registry entry as served by the API."""

    chain_id: int
    name: str | None = None
    explorer_base_url: str
    factory_address: str | None = None
    supported: bool = True


class TokenHolding(BaseModel):
    """A factory token, with the owner's balance when one was requested."""

    address: str = Field(..., description="Token contract address")
    balance: str | None = Field(None, description="Owner balance in base units")


class TokenListResponse(BaseModel):
    """Tokens recorded by a factory."""

    factory_address: str
    owner: str | None = None
    tokens: list[TokenHolding] = Field(default_factory=list)
