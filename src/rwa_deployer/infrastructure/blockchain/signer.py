"""Transaction signers and the explicit signer context.

A ``Signer`` turns an unsigned transaction into a broadcast transaction hash.
Callers hand the pipeline a ``SignerContext`` instead of relying on any
ambient wallet object.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.types import TxParams

from rwa_deployer.core.config import get_settings
from rwa_deployer.core.exceptions import PreconditionError
from rwa_deployer.infrastructure.blockchain.client import ChainClient, get_chain_client

logger = logging.getLogger(__name__)


class Signer(ABC):
    """Entity able to authorize and submit transactions for one account."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing account."""
        ...

    @abstractmethod
    async def send_transaction(self, transaction: TxParams) -> str:
        """Sign and broadcast a transaction.

        Args:
            transaction: Partial transaction (``to``/``data``/``value``);
                         ``to`` is omitted for contract creation

        Returns:
            Transaction hash as 0x-prefixed hex string
        """
        ...


class LocalAccountSigner(Signer):
    """Signer backed by a private key held in process.

    Fills in nonce, gas price and gas limit, signs locally, and sends the raw
    transaction through the chain client.
    """

    def __init__(
        self,
        client: ChainClient,
        private_key: str,
        chain_id: int,
        gas_limit_multiplier: float = 1.2,
        gas_price_multiplier: float = 1.1,
    ):
        """Initialize local signer.

        Args:
            client: Blockchain client for sending transactions
            private_key: Private key for signing (hex string with or without 0x)
            chain_id: Chain ID embedded in signed transactions
            gas_limit_multiplier: Multiplier for estimated gas limit
            gas_price_multiplier: Multiplier for gas price
        """
        self.client = client
        self.chain_id = chain_id
        self.gas_limit_multiplier = gas_limit_multiplier
        self.gas_price_multiplier = gas_price_multiplier

        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        self.account: LocalAccount = Account.from_key(key)

        logger.info(f"LocalAccountSigner initialized for address: {self.account.address}")

    @property
    def address(self) -> str:
        return self.account.address

    async def send_transaction(self, transaction: TxParams) -> str:
        tx: dict = {
            "from": self.account.address,
            "data": transaction.get("data", b""),
            "value": transaction.get("value", 0),
            "chainId": self.chain_id,
        }
        if transaction.get("to"):
            tx["to"] = Web3.to_checksum_address(transaction["to"])

        tx["nonce"] = await self.client.get_transaction_count(self.account.address)

        base_gas_price = await self.client.get_gas_price()
        tx["gasPrice"] = int(base_gas_price * self.gas_price_multiplier)

        gas_limit = transaction.get("gas")
        if gas_limit is None:
            estimated_gas = await self.client.estimate_gas(
                {k: v for k, v in tx.items() if k not in ("nonce", "gasPrice", "chainId")}
            )
            gas_limit = int(estimated_gas * self.gas_limit_multiplier)
            logger.debug(f"Estimated gas: {estimated_gas}, using: {gas_limit}")
        tx["gas"] = gas_limit

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = await self.client.send_raw_transaction(signed_tx.raw_transaction)
        logger.info(f"Transaction sent: {tx_hash}, nonce: {tx['nonce']}")
        return tx_hash


@dataclass
class SignerContext:
    """Connection handed to every pipeline operation.

    ``signer`` is None when no wallet is connected; operations then fail with
    a precondition error before anything is submitted.
    """

    client: ChainClient | None
    signer: Signer | None = None
    chain_id: int | None = None

    async def get_signer(self) -> Signer:
        if self.client is None:
            raise PreconditionError("No wallet provider available")
        if self.signer is None:
            raise PreconditionError("No signer available: connect a wallet first")
        return self.signer


def get_signer_context(
    client: ChainClient | None = None,
    private_key: str | None = None,
) -> SignerContext:
    """Create a SignerContext from settings.

    Args:
        client: Blockchain client (uses the shared client if not provided)
        private_key: Private key (uses signer_private_key setting if not provided)

    Returns:
        Context whose signer is None when no key is configured
    """
    settings = get_settings()

    if client is None:
        client = get_chain_client()

    private_key = private_key or settings.signer_private_key
    signer = None
    if private_key:
        signer = LocalAccountSigner(
            client=client,
            private_key=private_key,
            chain_id=settings.chain_id,
            gas_limit_multiplier=settings.gas_limit_multiplier,
            gas_price_multiplier=settings.gas_price_multiplier,
        )

    return SignerContext(client=client, signer=signer, chain_id=settings.chain_id)
