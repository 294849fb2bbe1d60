"""Deployment service module: orchestration and confirmation tracking."""

from rwa_deployer.services.deployment.monitor import (
    ConfirmationMonitor,
    MonitorHandle,
    get_confirmation_monitor,
)
from rwa_deployer.services.deployment.orchestrator import (
    DeploymentOrchestrator,
    ProgressCallback,
    get_deployment_orchestrator,
)
from rwa_deployer.services.deployment.schemas import (
    ConfirmationState,
    ConfirmationStatus,
    ContractDetails,
    DeploymentProgress,
    DeploymentResult,
    DeploymentStage,
    TokenListResponse,
    TokenParams,
)
from rwa_deployer.services.deployment.validation import (
    format_address,
    is_valid_address,
    parse_units,
    require_address,
)

__all__ = [
    # Orchestrator
    "DeploymentOrchestrator",
    "ProgressCallback",
    "get_deployment_orchestrator",
    # Monitor
    "ConfirmationMonitor",
    "MonitorHandle",
    "get_confirmation_monitor",
    # Schemas
    "ConfirmationState",
    "ConfirmationStatus",
    "ContractDetails",
    "DeploymentProgress",
    "DeploymentResult",
    "DeploymentStage",
    "TokenListResponse",
    "TokenParams",
    # Validation
    "format_address",
    "is_valid_address",
    "parse_units",
    "require_address",
]
