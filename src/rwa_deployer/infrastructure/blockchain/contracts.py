"""Contract artifact loading and ABI handling.

Loads ABIs and bytecode from the packaged ``abi/`` directory, optionally
overridden by compiled artifacts in ``artifact_dir``, and provides contract
encoding and read-only call helpers.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_abi import decode
from web3 import Web3
from web3.types import TxParams

from rwa_deployer.core.config import get_settings
from rwa_deployer.core.exceptions import ConfigurationError
from rwa_deployer.infrastructure.blockchain.client import ChainClient

logger = logging.getLogger(__name__)

PACKAGED_ABI_DIR = Path(__file__).parent.parent.parent / "abi"

# Minimal init code (free memory pointer + callvalue check); deploys an empty
# contract. Only used when allow_placeholder_bytecode is enabled.
PLACEHOLDER_BYTECODE = "0x608060405234801561001057600080fd5b50"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

RWA_TOKEN = "RWAToken"
RWA_FACTORY = "RWAFactory"
TEST_USDT = "TestUSDT"


@dataclass(frozen=True)
class ContractArtifact:
    """ABI plus (possibly missing) creation bytecode for one contract."""

    name: str
    abi: list[dict]
    bytecode: str | None = None

    @property
    def has_bytecode(self) -> bool:
        return bool(self.bytecode) and self.bytecode not in ("0x", PLACEHOLDER_BYTECODE)


class ArtifactLoader:
    """Loads and caches contract artifacts from JSON files.

    Each file holds ``{"abi": [...], "bytecode": "0x..."}`` (hardhat and
    foundry artifacts both fit). Files in later directories override earlier
    ones with the same stem.
    """

    def __init__(
        self,
        directories: list[Path] | None = None,
        allow_placeholder_bytecode: bool = False,
    ):
        self.directories = directories or [PACKAGED_ABI_DIR]
        self.allow_placeholder_bytecode = allow_placeholder_bytecode
        self._artifacts: dict[str, ContractArtifact] = {}
        self._load_all_artifacts()

    def _load_all_artifacts(self) -> None:
        """Load all artifacts from the configured directories."""
        for directory in self.directories:
            if not directory.exists():
                logger.warning(f"Artifact directory not found: {directory}")
                continue

            for artifact_file in sorted(directory.glob("*.json")):
                try:
                    with open(artifact_file, "r") as f:
                        data = json.load(f)
                except (OSError, json.JSONDecodeError) as e:
                    logger.error(f"Failed to load artifact {artifact_file}: {e}")
                    continue

                abi = data.get("abi", [])
                if not abi:
                    continue

                name = artifact_file.stem
                bytecode = data.get("bytecode")
                # foundry nests bytecode as {"object": "0x..."}
                if isinstance(bytecode, dict):
                    bytecode = bytecode.get("object")
                self._artifacts[name] = ContractArtifact(
                    name=name, abi=abi, bytecode=bytecode or None
                )
                logger.debug(f"Loaded artifact: {name} ({len(abi)} ABI entries)")

        logger.info(f"Loaded {len(self._artifacts)} artifacts: {list(self._artifacts)}")

    def get_artifact(self, contract_name: str) -> ContractArtifact:
        if contract_name not in self._artifacts:
            raise ConfigurationError(f"Artifact not found for contract: {contract_name}")
        return self._artifacts[contract_name]

    def get_abi(self, contract_name: str) -> list[dict]:
        return self.get_artifact(contract_name).abi

    def get_bytecode(self, contract_name: str) -> str:
        """Get creation bytecode for a contract.

        Raises:
            ConfigurationError: If compiled bytecode is missing and placeholder
                bytecode is not allowed
        """
        artifact = self.get_artifact(contract_name)
        if artifact.has_bytecode:
            return artifact.bytecode

        if not self.allow_placeholder_bytecode:
            raise ConfigurationError(
                f"Compiled bytecode for {contract_name} is missing. "
                "Set ARTIFACT_DIR to compiled artifacts or enable "
                "ALLOW_PLACEHOLDER_BYTECODE for demo deployments."
            )

        logger.warning(
            f"Using placeholder bytecode for {contract_name}; "
            "the deployed contract will have no code"
        )
        return PLACEHOLDER_BYTECODE

    @property
    def token_abi(self) -> list[dict]:
        return self.get_abi(RWA_TOKEN)

    @property
    def factory_abi(self) -> list[dict]:
        return self.get_abi(RWA_FACTORY)

    @property
    def test_usdt_abi(self) -> list[dict]:
        return self.get_abi(TEST_USDT)


@lru_cache(maxsize=1)
def get_artifact_loader() -> ArtifactLoader:
    """Get the artifact loader built from settings."""
    settings = get_settings()
    directories = [PACKAGED_ABI_DIR]
    if settings.artifact_dir:
        directories.append(Path(settings.artifact_dir))
    return ArtifactLoader(
        directories=directories,
        allow_placeholder_bytecode=settings.allow_placeholder_bytecode,
    )


class ContractManager:
    """Encodes contract calls and performs read-only calls."""

    def __init__(self, client: ChainClient, artifact_loader: ArtifactLoader | None = None):
        """Initialize contract manager.

        Args:
            client: Blockchain client for RPC calls
            artifact_loader: Artifact source (uses cached settings loader if None)
        """
        self.client = client
        self.w3 = Web3()  # For encoding/decoding only
        self.artifacts = artifact_loader or get_artifact_loader()

    def encode_function_call(
        self, abi: list[dict], function_name: str, args: list[Any] | None = None
    ) -> bytes:
        """Encode function call data.

        Args:
            abi: Contract ABI
            function_name: Name of the function to call
            args: Function arguments

        Returns:
            Encoded function call data
        """
        contract = self.w3.eth.contract(address=ZERO_ADDRESS, abi=abi)
        func = contract.get_function_by_name(function_name)
        return func(*args if args else [])._encode_transaction_data()

    def encode_deployment(self, contract_name: str, args: list[Any] | None = None) -> str:
        """Encode creation bytecode followed by ABI-encoded constructor args."""
        artifact = self.artifacts.get_artifact(contract_name)
        bytecode = self.artifacts.get_bytecode(contract_name)
        contract = self.w3.eth.contract(abi=artifact.abi, bytecode=bytecode)
        return contract.constructor(*args if args else []).data_in_transaction

    def decode_function_result(
        self, abi: list[dict], function_name: str, data: bytes
    ) -> Any:
        """Decode function result.

        Args:
            abi: Contract ABI
            function_name: Name of the function
            data: Raw result data

        Returns:
            Decoded result
        """
        func_abi = None
        for item in abi:
            if item.get("type") == "function" and item.get("name") == function_name:
                func_abi = item
                break

        if not func_abi:
            raise ValueError(f"Function {function_name} not found in ABI")

        output_types = []
        for o in func_abi.get("outputs", []):
            if o["type"] == "tuple":
                components = o.get("components", [])
                component_types = ",".join(c["type"] for c in components)
                output_types.append(f"({component_types})")
            else:
                output_types.append(o["type"])

        if not output_types:
            return None

        decoded = decode(output_types, data)
        return decoded[0] if len(decoded) == 1 else decoded

    async def call_contract(
        self,
        address: str,
        abi: list[dict],
        function_name: str,
        args: list[Any] | None = None,
    ) -> Any:
        """Call contract function (read-only).

        Args:
            address: Contract address
            abi: Contract ABI
            function_name: Function name
            args: Function arguments

        Returns:
            Decoded function result
        """
        checksum_address = Web3.to_checksum_address(address)
        data = self.encode_function_call(abi, function_name, args)
        tx_params: TxParams = {"to": checksum_address, "data": data}
        result = await self.client.eth_call(tx_params)
        return self.decode_function_result(abi, function_name, result)

    # =========================================================================
    # RWAFactory Contract Methods
    # =========================================================================

    async def get_deployment_fee(self, factory_address: str) -> int:
        """Get the fee (wei) charged by the factory per deployment."""
        return await self.call_contract(
            factory_address, self.artifacts.factory_abi, "deploymentFee"
        )

    async def get_all_tokens(self, factory_address: str) -> list[str]:
        """Get every token address recorded by the factory."""
        return list(
            await self.call_contract(
                factory_address, self.artifacts.factory_abi, "getAllTokens"
            )
        )

    # =========================================================================
    # Token Contract Methods
    # =========================================================================

    async def get_balance_of(self, token_address: str, owner: str) -> int:
        """Get token balance (base units) of an owner."""
        return await self.call_contract(
            token_address, self.artifacts.token_abi, "balanceOf", [owner]
        )

    async def get_contract_details(self, contract_address: str) -> dict[str, Any]:
        """Read common token fields, tolerating any that are missing.

        Each field is read independently; a failed read leaves that key out
        and never prevents the other fields from being collected.

        Args:
            contract_address: Token contract address

        Returns:
            Dictionary with the fields that could be read
        """
        abi = self.artifacts.token_abi
        optional_functions = [
            ("name", "name"),
            ("symbol", "symbol"),
            ("decimals", "decimals"),
            ("totalSupply", "total_supply"),
            ("owner", "owner"),
        ]

        results = await asyncio.gather(
            *(
                self.call_contract(contract_address, abi, func_name)
                for func_name, _ in optional_functions
            ),
            return_exceptions=True,
        )

        details: dict[str, Any] = {}
        for (func_name, key), value in zip(optional_functions, results):
            if isinstance(value, BaseException):
                logger.debug(f"{func_name}() unavailable on {contract_address}: {value}")
                continue
            details[key] = value

        return details
