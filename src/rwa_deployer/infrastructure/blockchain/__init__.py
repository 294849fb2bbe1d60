"""Blockchain infrastructure module."""

from rwa_deployer.infrastructure.blockchain.chains import (
    ChainInfo,
    ChainRegistry,
    get_chain_registry,
)
from rwa_deployer.infrastructure.blockchain.client import (
    ChainClient,
    Web3ChainClient,
    get_chain_client,
)
from rwa_deployer.infrastructure.blockchain.contracts import (
    ArtifactLoader,
    ContractManager,
    get_artifact_loader,
)
from rwa_deployer.infrastructure.blockchain.events import (
    DecodedEvent,
    EventParser,
    EventType,
)
from rwa_deployer.infrastructure.blockchain.signer import (
    LocalAccountSigner,
    Signer,
    SignerContext,
    get_signer_context,
)

__all__ = [
    # Chains
    "ChainInfo",
    "ChainRegistry",
    "get_chain_registry",
    # Client
    "ChainClient",
    "Web3ChainClient",
    "get_chain_client",
    # Contracts
    "ArtifactLoader",
    "ContractManager",
    "get_artifact_loader",
    # Events
    "DecodedEvent",
    "EventParser",
    "EventType",
    # Signers
    "Signer",
    "LocalAccountSigner",
    "SignerContext",
    "get_signer_context",
]
