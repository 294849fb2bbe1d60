"""Blockchain client with multi-RPC failover support."""

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware
from web3.types import BlockIdentifier, TxParams, Wei

from rwa_deployer.core.config import get_settings
from rwa_deployer.core.exceptions import (
    NetworkError,
    TransactionTimeoutError,
    classify_exception,
)

logger = logging.getLogger(__name__)

# Errors that describe the request itself; another RPC will answer the same.
_NON_RETRYABLE = (ContractLogicError, TransactionNotFound)


def _is_node_rejection(error: Exception) -> bool:
    """Whether the node refused the request for a reason failover cannot fix."""
    message = str(error).lower()
    return "insufficient funds" in message or "execution reverted" in message


class ChainClient(ABC):
    """Abstract base class for blockchain clients."""

    @abstractmethod
    async def get_block_number(self) -> int:
        """Get current block number."""
        ...

    @abstractmethod
    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt, or None if not yet included."""
        ...

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """Get transaction count (nonce) for address."""
        ...

    @abstractmethod
    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        ...

    @abstractmethod
    async def get_gas_price(self) -> Wei:
        """Get current gas price."""
        ...

    @abstractmethod
    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Broadcast a signed transaction and return its hash."""
        ...

    async def wait_for_transaction_receipt(
        self, tx_hash: str, timeout: float = 120, poll_latency: float = 2.0
    ) -> dict[str, Any]:
        """Wait for transaction receipt with timeout.

        Args:
            tx_hash: Transaction hash
            timeout: Maximum wait time in seconds
            poll_latency: Polling interval in seconds

        Returns:
            Transaction receipt

        Raises:
            TransactionTimeoutError: If transaction not included within timeout
        """
        elapsed = 0.0
        while elapsed < timeout:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                return receipt
            await asyncio.sleep(poll_latency)
            elapsed += poll_latency

        raise TransactionTimeoutError(
            f"Transaction {tx_hash} not included within {timeout}s"
        )

    async def health_check(self) -> bool:
        """Check if the RPC answers with a plausible block height."""
        try:
            block_number = await self.get_block_number()
            return block_number > 0
        except Exception as e:
            logger.warning(f"RPC health check failed: {e}")
            return False


class Web3ChainClient(ChainClient):
    """EVM JSON-RPC client with multi-RPC failover."""

    def __init__(
        self,
        rpc_urls: list[str] | None = None,
        chain_id: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ):
        """Initialize chain client.

        Args:
            rpc_urls: List of RPC endpoints (primary + backups).
                     If None, uses rpc_url and rpc_backup_urls settings.
            chain_id: Chain ID served by the endpoints.
                     If None, uses the chain_id setting.
            max_retries: Maximum retry attempts per RPC
            retry_delay: Delay between retries in seconds
        """
        settings = get_settings()
        self.rpc_urls = rpc_urls or [settings.rpc_url, *settings.rpc_backup_urls]
        self.chain_id = chain_id if chain_id is not None else settings.chain_id
        self.max_retries = max_retries or settings.rpc_max_retries
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.rpc_retry_delay
        )
        self._current_rpc_index = 0
        self._web3: AsyncWeb3 | None = None

    @property
    def web3(self) -> AsyncWeb3:
        """Get or create Web3 instance."""
        if self._web3 is None:
            self._web3 = self._create_web3()
        return self._web3

    def _create_web3(self, rpc_index: int | None = None) -> AsyncWeb3:
        """Create Web3 instance for specified RPC with POA middleware."""
        index = rpc_index if rpc_index is not None else self._current_rpc_index
        rpc_url = self.rpc_urls[index]
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        # Polygon and BSC blocks carry POA extraData
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return w3

    async def _execute_with_failover(
        self, method: str, *args: Any, **kwargs: Any
    ) -> Any:
        """Execute method with automatic RPC failover.

        Args:
            method: web3.eth method name to call
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            Result from the Web3 method

        Raises:
            NetworkError: If all RPCs fail
        """
        last_error: Exception | None = None

        for rpc_offset in range(len(self.rpc_urls)):
            rpc_index = (self._current_rpc_index + rpc_offset) % len(self.rpc_urls)
            web3 = self._create_web3(rpc_index)

            for attempt in range(self.max_retries):
                try:
                    web3_method = getattr(web3.eth, method)
                    result = await web3_method(*args, **kwargs)

                    self._current_rpc_index = rpc_index
                    self._web3 = web3

                    return result

                except _NON_RETRYABLE:
                    raise

                except Exception as e:
                    if _is_node_rejection(e):
                        raise classify_exception(e) from e
                    last_error = e
                    logger.warning(
                        f"RPC {self.rpc_urls[rpc_index]} {method} failed "
                        f"(attempt {attempt + 1}): {e}"
                    )
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(self.retry_delay * (attempt + 1))

            logger.warning(
                f"Switching from RPC {self.rpc_urls[rpc_index]} to next backup"
            )

        raise NetworkError(f"All RPCs failed. Last error: {last_error}")

    async def get_block_number(self) -> int:
        """Get current block number."""
        return await self._execute_with_failover("get_block_number")

    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        return await self._execute_with_failover("call", transaction, block_identifier)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt."""
        try:
            receipt = await self._execute_with_failover(
                "get_transaction_receipt", tx_hash
            )
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt else None

    async def get_transaction_count(self, address: str) -> int:
        """Get transaction count (nonce) for address."""
        return await self._execute_with_failover(
            "get_transaction_count", address, "pending"
        )

    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        return await self._execute_with_failover("estimate_gas", transaction)

    async def get_gas_price(self) -> Wei:
        """Get current gas price."""
        # eth.gas_price is a property; _gas_price is the eth_gasPrice method behind it
        return await self._execute_with_failover("_gas_price")

    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Send signed raw transaction.

        Args:
            signed_tx: Signed transaction bytes

        Returns:
            Transaction hash as 0x-prefixed hex string
        """
        tx_hash = await self._execute_with_failover("send_raw_transaction", signed_tx)
        return Web3.to_hex(tx_hash)


@lru_cache(maxsize=1)
def get_chain_client() -> Web3ChainClient:
    """Get the shared client for the configured network."""
    return Web3ChainClient()
