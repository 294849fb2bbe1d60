"""FastAPI application factory and main entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rwa_deployer import __version__
from rwa_deployer.api.v1 import api_router
from rwa_deployer.core.config import get_settings
from rwa_deployer.core.logging import configure_logging
from rwa_deployer.infrastructure.blockchain.client import ChainClient, get_chain_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings)
    app.state.settings = settings

    if not settings.has_signer:
        logger.warning("SIGNER_PRIVATE_KEY not set; write operations will fail")
    logger.info(
        f"{settings.app_name} {__version__} started on chain {settings.chain_id} "
        f"({settings.environment})"
    )

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="RWA token deployment and confirmation API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all application routes."""
    settings = get_settings()

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/health", tags=["System"])
    async def health_check(
        client: Annotated[ChainClient, Depends(get_chain_client)],
    ):
        """Health check endpoint for load balancers and monitoring.

        Reports ``degraded`` when the RPC endpoints do not answer.
        """
        rpc_healthy = await client.health_check()
        return {
            "status": "healthy" if rpc_healthy else "degraded",
            "rpc_healthy": rpc_healthy,
            "version": __version__,
            "chain_id": settings.chain_id,
            "signer_configured": settings.has_signer,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


# Create application instance
app = create_app()
