"""Deployment and transfer API endpoints.

Operations are signed by the service's hot wallet. A failed operation is
still a 200 response: the failure is the ``result`` of the operation, and
the progress list shows where it stopped.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from rwa_deployer.infrastructure.blockchain.chains import ChainRegistry, get_chain_registry
from rwa_deployer.infrastructure.blockchain.signer import SignerContext, get_signer_context
from rwa_deployer.services.deployment import (
    DeploymentOrchestrator,
    DeploymentProgress,
    DeploymentResult,
    TokenParams,
    get_deployment_orchestrator,
)
from rwa_deployer.services.deployment.schemas import (
    FactoryDeploymentRequest,
    OperationResponse,
    TransferRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/deployments", tags=["Deployments"])
transfers_router = APIRouter(prefix="/transfers", tags=["Transfers"])


def get_wallet_context() -> SignerContext:
    """Signer context for the configured hot wallet."""
    return get_signer_context()


Orchestrator = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
WalletContext = Annotated[SignerContext, Depends(get_wallet_context)]
Registry = Annotated[ChainRegistry, Depends(get_chain_registry)]


def _build_response(
    result: DeploymentResult,
    progress: list[DeploymentProgress],
    context: SignerContext,
    registry: ChainRegistry,
) -> OperationResponse:
    explorer_url = None
    if result.tx_hash and context.chain_id is not None:
        explorer_url = registry.explorer_tx_url(context.chain_id, result.tx_hash)
    return OperationResponse(result=result, progress=progress, explorer_url=explorer_url)


@router.post("/token", response_model=OperationResponse)
async def deploy_token(
    request: TokenParams,
    orchestrator: Orchestrator,
    context: WalletContext,
    registry: Registry,
) -> OperationResponse:
    """Deploy an RWA token directly from its bytecode."""
    progress: list[DeploymentProgress] = []
    result = await orchestrator.deploy_token(context, request, on_progress=progress.append)
    return _build_response(result, progress, context, registry)


@router.post("/factory-token", response_model=OperationResponse)
async def deploy_factory_token(
    request: FactoryDeploymentRequest,
    orchestrator: Orchestrator,
    context: WalletContext,
    registry: Registry,
) -> OperationResponse:
    """Deploy an RWA token through the factory, paying its deployment fee."""
    progress: list[DeploymentProgress] = []
    params = TokenParams(**request.model_dump(exclude={"factory_address"}))
    result = await orchestrator.deploy_via_factory(
        context, request.factory_address, params, on_progress=progress.append
    )
    return _build_response(result, progress, context, registry)


@transfers_router.post("", response_model=OperationResponse)
async def transfer_tokens(
    request: TransferRequest,
    orchestrator: Orchestrator,
    context: WalletContext,
    registry: Registry,
) -> OperationResponse:
    """Transfer tokens from the service wallet."""
    progress: list[DeploymentProgress] = []
    result = await orchestrator.transfer(
        context,
        request.token_address,
        request.recipient,
        request.amount,
        on_progress=progress.append,
    )
    return _build_response(result, progress, context, registry)
