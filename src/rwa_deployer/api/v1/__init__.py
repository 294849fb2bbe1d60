"""API v1 module."""

from fastapi import APIRouter

from rwa_deployer.api.v1.endpoints import chains, confirmations, contracts, deployments

api_router = APIRouter()

# Include routers
api_router.include_router(deployments.router)
api_router.include_router(deployments.transfers_router)
api_router.include_router(chains.router)
api_router.include_router(contracts.router)
api_router.include_router(confirmations.router)
