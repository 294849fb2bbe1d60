"""Deployment orchestration: submit, wait for inclusion, decode outcome.

Each public operation drives one transaction through

    preparing -> deploying -> waiting -> completed | failed

reporting every stage to an optional progress callback. Operations always
resolve to a ``DeploymentResult``; errors from the signer, the node, or the
inputs are converted at this boundary and never raised to the caller.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable

from web3.types import TxParams

from rwa_deployer.core.config import get_settings
from rwa_deployer.core.exceptions import (
    ChainRejectionError,
    InsufficientFundsError,
    PreconditionError,
    TransactionTimeoutError,
    classify_exception,
)
from rwa_deployer.infrastructure.blockchain.chains import ChainRegistry, get_chain_registry
from rwa_deployer.infrastructure.blockchain.client import ChainClient
from rwa_deployer.infrastructure.blockchain.contracts import (
    RWA_FACTORY,
    RWA_TOKEN,
    TEST_USDT,
    ArtifactLoader,
    ContractManager,
    get_artifact_loader,
)
from rwa_deployer.infrastructure.blockchain.events import EventParser, EventType
from rwa_deployer.infrastructure.blockchain.signer import Signer, SignerContext
from rwa_deployer.services.deployment.schemas import (
    ContractDetails,
    DeploymentProgress,
    DeploymentResult,
    DeploymentStage,
    TokenHolding,
    TokenListResponse,
    TokenParams,
)
from rwa_deployer.services.deployment.validation import (
    format_address,
    parse_base_units,
    parse_units,
    require_address,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DeploymentProgress], None]

# Builds the transaction to submit once preconditions hold.
TransactionBuilder = Callable[[Signer, ContractManager], Awaitable[TxParams]]
# Extracts the resulting contract address (if any) from a successful receipt.
OutcomeExtractor = Callable[[dict[str, Any]], str | None]

_STAGE_ORDER = (
    DeploymentStage.PREPARING,
    DeploymentStage.DEPLOYING,
    DeploymentStage.WAITING,
    DeploymentStage.COMPLETED,
)

# USD values are recorded on chain in cents
ASSET_VALUE_DECIMALS = 2


class _ProgressTracker:
    """Per-invocation progress stream that enforces stage order."""

    def __init__(self, callback: ProgressCallback | None, operation: str):
        self._callback = callback
        self.operation = operation
        self.stage: DeploymentStage | None = None
        self.tx_hash: str | None = None

    @property
    def settled(self) -> bool:
        return self.stage is not None and self.stage.is_terminal

    def emit(self, stage: DeploymentStage, message: str, **fields: Any) -> None:
        if self.settled:
            logger.debug(f"{self.operation}: dropping {stage.value} after settlement")
            return
        if (
            stage != DeploymentStage.FAILED
            and self.stage is not None
            and _STAGE_ORDER.index(stage) != _STAGE_ORDER.index(self.stage) + 1
        ):
            raise RuntimeError(f"Illegal transition {self.stage.value} -> {stage.value}")

        progress = DeploymentProgress(
            stage=stage, message=message, tx_hash=self.tx_hash, **fields
        )
        self.stage = stage

        if self._callback:
            try:
                self._callback(progress)
            except Exception as e:
                logger.error(f"{self.operation}: progress callback error: {e}")


class DeploymentOrchestrator:
    """Runs deployments and contract calls through an injected signer.

    The orchestrator holds only immutable collaborators; all per-call state
    lives in the call, so concurrent operations never interfere.
    """

    def __init__(
        self,
        artifact_loader: ArtifactLoader | None = None,
        event_parser: EventParser | None = None,
        chain_registry: ChainRegistry | None = None,
        receipt_timeout: float | None = None,
        receipt_poll_latency: float | None = None,
    ):
        """Initialize orchestrator.

        Args:
            artifact_loader: Contract ABIs and bytecode
            event_parser: Receipt log decoder
            chain_registry: Chain metadata (factory addresses)
            receipt_timeout: Default max wait for inclusion in seconds
            receipt_poll_latency: Receipt polling interval in seconds
        """
        settings = get_settings()
        self.artifacts = artifact_loader or get_artifact_loader()
        self.event_parser = event_parser or EventParser()
        self.chain_registry = chain_registry or get_chain_registry()
        self.receipt_timeout = (
            receipt_timeout if receipt_timeout is not None else settings.receipt_timeout
        )
        self.receipt_poll_latency = (
            receipt_poll_latency if receipt_poll_latency is not None
            else settings.receipt_poll_latency
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def deploy_token(
        self,
        context: SignerContext,
        params: TokenParams,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> DeploymentResult:
        """Deploy an RWA token directly from its creation bytecode.

        The new address is read from the creation receipt.
        """

        async def build(signer: Signer, contracts: ContractManager) -> TxParams:
            args = _token_args(params)
            constructor_args = [*args[:4], signer.address, *args[4:7]]
            return {
                "data": contracts.encode_deployment(RWA_TOKEN, constructor_args),
                "value": 0,
            }

        return await self._execute(
            f"{params.symbol or 'RWA'} token deployment",
            context,
            build,
            _created_contract_address,
            on_progress,
            timeout,
        )

    async def deploy_via_factory(
        self,
        context: SignerContext,
        factory_address: str | None,
        params: TokenParams,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> DeploymentResult:
        """Deploy an RWA token through the factory contract.

        Pays the factory's current deployment fee and recovers the token
        address from the factory's TokenDeployed event. A successful receipt
        without that event is reported as a failure.

        Args:
            context: Signer context
            factory_address: Factory address; None uses the chain registry
            params: Token parameters
            on_progress: Progress callback
            timeout: Max wait for inclusion in seconds
        """
        resolved: dict[str, str] = {}

        async def build(signer: Signer, contracts: ContractManager) -> TxParams:
            address = factory_address
            if address is None and context.chain_id is not None:
                address = self.chain_registry.factory_address(context.chain_id)
            if address is None:
                raise PreconditionError(
                    f"No factory configured for chain {context.chain_id}"
                )
            factory = require_address(address, "factory address")
            resolved["factory"] = factory
            args = _token_args(params)

            fee = await contracts.get_deployment_fee(factory)
            logger.info(f"Factory {format_address(factory)} deployment fee: {fee} wei")

            data = contracts.encode_function_call(
                self.artifacts.factory_abi,
                "deployRWAToken",
                [*args, params.category],
            )
            return {"to": factory, "data": data, "value": fee}

        def extract(receipt: dict[str, Any]) -> str:
            factory = resolved["factory"].lower()
            factory_logs = [
                log
                for log in receipt.get("logs") or []
                if str(log.get("address", "")).lower() == factory
            ]
            event = self.event_parser.require_event(
                factory_logs, EventType.TOKEN_DEPLOYED
            )
            return event.named_args["token_address"]

        return await self._execute(
            f"{params.symbol or 'RWA'} factory deployment",
            context,
            build,
            extract,
            on_progress,
            timeout,
        )

    async def transfer(
        self,
        context: SignerContext,
        token_address: str,
        recipient: str,
        amount_base_units: int | str,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> DeploymentResult:
        """Transfer tokens from the signer to a recipient.

        Addresses and amount are validated before any network call.
        """

        async def build(signer: Signer, contracts: ContractManager) -> TxParams:
            token = require_address(token_address, "token address")
            to = require_address(recipient, "recipient address")
            amount = parse_base_units(amount_base_units)

            balance = await contracts.get_balance_of(token, signer.address)
            if amount > balance:
                raise InsufficientFundsError(
                    f"Insufficient token balance: have {balance}, need {amount}"
                )

            data = contracts.encode_function_call(
                self.artifacts.token_abi, "transfer", [to, amount]
            )
            return {"to": token, "data": data, "value": 0}

        return await self._execute(
            f"transfer to {format_address(str(recipient))}",
            context,
            build,
            lambda receipt: None,
            on_progress,
            timeout,
        )

    async def deploy_test_usdt(
        self,
        context: SignerContext,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> DeploymentResult:
        """Deploy the TestUSDT faucet token."""

        async def build(signer: Signer, contracts: ContractManager) -> TxParams:
            return {"data": contracts.encode_deployment(TEST_USDT), "value": 0}

        return await self._execute(
            "TestUSDT deployment",
            context,
            build,
            _created_contract_address,
            on_progress,
            timeout,
        )

    async def deploy_factory(
        self,
        context: SignerContext,
        deployment_fee_ether: str,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> DeploymentResult:
        """Deploy the RWA factory with a per-deployment fee given in ether."""

        async def build(signer: Signer, contracts: ContractManager) -> TxParams:
            fee = parse_units(
                deployment_fee_ether, 18, "deployment fee", allow_zero=True
            )
            return {"data": contracts.encode_deployment(RWA_FACTORY, [fee]), "value": 0}

        return await self._execute(
            "RWA Factory deployment",
            context,
            build,
            _created_contract_address,
            on_progress,
            timeout,
        )

    async def get_contract_details(
        self, client: ChainClient, contract_address: str
    ) -> ContractDetails:
        """Collect optional token fields into a partial record."""
        try:
            address = require_address(contract_address, "contract address")
        except PreconditionError as e:
            return ContractDetails(address=str(contract_address), error=e.message)

        details = await ContractManager(client, self.artifacts).get_contract_details(address)
        if not details:
            return ContractDetails(
                address=address, error="Failed to load contract details"
            )
        return ContractDetails(address=address, **details)

    async def get_token_balance(
        self, client: ChainClient, token_address: str, owner: str
    ) -> int:
        """Read an owner's token balance in base units.

        Raises:
            InvalidAddressError: If either address is malformed
        """
        token = require_address(token_address, "token address")
        holder = require_address(owner, "owner address")
        return await ContractManager(client, self.artifacts).get_balance_of(token, holder)

    async def list_factory_tokens(
        self,
        client: ChainClient,
        factory_address: str | None = None,
        owner: str | None = None,
        chain_id: int | None = None,
    ) -> TokenListResponse:
        """List tokens deployed through a factory.

        With ``owner`` only tokens the owner holds a non-zero balance of are
        returned; tokens whose balance cannot be read are left out.

        Args:
            client: Blockchain client
            factory_address: Factory address; None uses the chain registry
            owner: Holder to filter by
            chain_id: Chain used to resolve the factory

        Raises:
            PreconditionError: If no valid factory or owner address is given
        """
        if factory_address is None and chain_id is not None:
            factory_address = self.chain_registry.factory_address(chain_id)
        if factory_address is None:
            raise PreconditionError(f"No factory configured for chain {chain_id}")
        factory = require_address(factory_address, "factory address")
        holder = require_address(owner, "owner address") if owner is not None else None

        contracts = ContractManager(client, self.artifacts)
        tokens = await contracts.get_all_tokens(factory)
        if holder is None:
            return TokenListResponse(
                factory_address=factory,
                tokens=[TokenHolding(address=token) for token in tokens],
            )

        balances = await asyncio.gather(
            *(contracts.get_balance_of(token, holder) for token in tokens),
            return_exceptions=True,
        )
        holdings = []
        for token, balance in zip(tokens, balances):
            if isinstance(balance, BaseException):
                logger.debug(f"balanceOf unavailable on {token}: {balance}")
                continue
            if balance > 0:
                holdings.append(TokenHolding(address=token, balance=str(balance)))
        return TokenListResponse(factory_address=factory, owner=holder, tokens=holdings)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _execute(
        self,
        operation: str,
        context: SignerContext,
        build: TransactionBuilder,
        extract: OutcomeExtractor,
        on_progress: ProgressCallback | None,
        timeout: float | None,
    ) -> DeploymentResult:
        """Drive one transaction from intent to a terminal result."""
        tracker = _ProgressTracker(on_progress, operation)
        timeout = timeout if timeout is not None else self.receipt_timeout

        try:
            tracker.emit(DeploymentStage.PREPARING, f"Preparing {operation}...")
            if timeout <= 0:
                raise PreconditionError(f"Invalid timeout: {timeout}s must be greater than 0")
            signer = await context.get_signer()
            contracts = ContractManager(context.client, self.artifacts)
            transaction = await build(signer, contracts)

            tracker.emit(DeploymentStage.DEPLOYING, f"Submitting {operation}...")
            tx_hash = await signer.send_transaction(transaction)
            tracker.tx_hash = tx_hash
            logger.info(f"{operation}: submitted {tx_hash}")

            tracker.emit(
                DeploymentStage.WAITING, f"Waiting for {operation} confirmation..."
            )
            receipt = await self._wait_for_receipt(
                context.client, tx_hash, timeout
            )
            if receipt.get("status") != 1:
                raise ChainRejectionError(
                    f"Transaction {tx_hash} reverted in block {receipt.get('blockNumber')}"
                )

            contract_address = extract(receipt)
            tracker.emit(
                DeploymentStage.COMPLETED,
                f"{operation[:1].upper()}{operation[1:]} succeeded",
                contract_address=contract_address,
            )
            logger.info(
                f"{operation}: completed in block {receipt.get('blockNumber')}"
                + (f", contract {contract_address}" if contract_address else "")
            )
            return DeploymentResult(
                success=True, contract_address=contract_address, tx_hash=tx_hash
            )

        except asyncio.CancelledError:
            tracker.emit(
                DeploymentStage.FAILED, f"{operation} cancelled", error="Operation cancelled"
            )
            raise

        except Exception as e:
            error = classify_exception(e)
            if isinstance(error, PreconditionError):
                logger.warning(f"{operation} rejected: {error.message}")
            else:
                logger.error(f"{operation} failed ({error.code}): {error.message}")
            tracker.emit(DeploymentStage.FAILED, f"{operation} failed", error=error.message)
            return DeploymentResult.failure(error, tx_hash=tracker.tx_hash)

    async def _wait_for_receipt(
        self, client: ChainClient, tx_hash: str, timeout: float
    ) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(
                client.wait_for_transaction_receipt(
                    tx_hash, timeout=timeout, poll_latency=self.receipt_poll_latency
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise TransactionTimeoutError(
                f"Transaction {tx_hash} not included within {timeout}s"
            ) from None


def _token_args(params: TokenParams) -> list[Any]:
    """Validate token parameters into shared constructor/factory arguments.

    Returns:
        [name, symbol, decimals, initial_supply, asset_type, asset_location,
         asset_value_cents]
    """
    if not params.name.strip():
        raise PreconditionError("Token name is required")
    if not params.symbol.strip():
        raise PreconditionError("Token symbol is required")
    if not 0 <= params.decimals <= 255:
        raise PreconditionError("Token decimals must be between 0 and 255")

    initial_supply = parse_units(params.initial_supply, params.decimals, "initial supply")
    asset_value = parse_units(
        params.asset_value, ASSET_VALUE_DECIMALS, "asset value", allow_zero=True
    )
    return [
        params.name,
        params.symbol,
        params.decimals,
        initial_supply,
        params.asset_type,
        params.asset_location,
        asset_value,
    ]


def _created_contract_address(receipt: dict[str, Any]) -> str:
    address = receipt.get("contractAddress")
    if not address:
        raise ChainRejectionError("Creation receipt has no contract address")
    return address


@lru_cache(maxsize=1)
def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the shared orchestrator (stateless between calls)."""
    return DeploymentOrchestrator()
