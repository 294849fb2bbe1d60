"""Chain registry API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from rwa_deployer.infrastructure.blockchain.chains import ChainRegistry, get_chain_registry
from rwa_deployer.services.deployment.schemas import ChainResponse

router = APIRouter(prefix="/chains", tags=["Chains"])


@router.get("", response_model=list[ChainResponse])
async def list_chains(
    registry: Annotated[ChainRegistry, Depends(get_chain_registry)],
) -> list[ChainResponse]:
    """List built-in chains."""
    return [
        ChainResponse(
            chain_id=chain.chain_id,
            name=chain.name,
            explorer_base_url=chain.explorer_base_url,
            factory_address=chain.factory_address,
        )
        for chain in registry.chains
    ]


@router.get("/{chain_id}", response_model=ChainResponse)
async def get_chain(
    chain_id: int,
    registry: Annotated[ChainRegistry, Depends(get_chain_registry)],
) -> ChainResponse:
    """Get chain metadata.

    Unknown chains are reported as unsupported with the default explorer.
    """
    chain = registry.get(chain_id)
    if chain is None:
        return ChainResponse(
            chain_id=chain_id,
            explorer_base_url=registry.explorer_base_url(chain_id),
            supported=False,
        )
    return ChainResponse(
        chain_id=chain.chain_id,
        name=chain.name,
        explorer_base_url=chain.explorer_base_url,
        factory_address=chain.factory_address,
    )
