"""Contract inspection API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from rwa_deployer.core.config import get_settings
from rwa_deployer.core.exceptions import PreconditionError, classify_exception
from rwa_deployer.infrastructure.blockchain.client import ChainClient, get_chain_client
from rwa_deployer.services.deployment import (
    ContractDetails,
    DeploymentOrchestrator,
    TokenListResponse,
    get_deployment_orchestrator,
    is_valid_address,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["Contracts"])

Orchestrator = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
Client = Annotated[ChainClient, Depends(get_chain_client)]


@router.get("", response_model=TokenListResponse)
async def list_factory_tokens(
    orchestrator: Orchestrator,
    client: Client,
    owner: str | None = Query(None, description="Only tokens this address holds"),
    factory: str | None = Query(None, description="Factory address; defaults to the configured chain's"),
) -> TokenListResponse:
    """List tokens deployed through the factory, optionally filtered by holder."""
    try:
        return await orchestrator.list_factory_tokens(
            client, factory, owner, chain_id=get_settings().chain_id
        )
    except PreconditionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message
        )
    except Exception as e:
        error = classify_exception(e)
        logger.error(f"Factory token listing failed: {error.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)


@router.get("/{address}", response_model=ContractDetails)
async def get_contract_details(
    address: str,
    orchestrator: Orchestrator,
    client: Client,
) -> ContractDetails:
    """Read name, symbol, decimals, total supply and owner where available.

    Fields the contract does not expose are omitted; ``error`` is set only
    when nothing could be read.
    """
    if not is_valid_address(address):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid contract address: '{address}'",
        )
    return await orchestrator.get_contract_details(client, address)


@router.get("/{address}/balance")
async def get_token_balance(
    address: str,
    orchestrator: Orchestrator,
    client: Client,
    owner: str = Query(..., description="Holder address"),
) -> dict:
    """Get a holder's balance of the token in base units."""
    try:
        balance = await orchestrator.get_token_balance(client, address, owner)
    except PreconditionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message
        )
    except Exception as e:
        error = classify_exception(e)
        logger.error(f"Balance read failed for {address}: {error.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)

    return {"token": address, "owner": owner, "balance": str(balance)}
