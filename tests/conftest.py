"""Pytest configuration and fixtures."""

import json
from typing import Any

import pytest
from eth_abi import encode
from fastapi.testclient import TestClient
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError

from rwa_deployer.infrastructure.blockchain.chains import ChainRegistry
from rwa_deployer.infrastructure.blockchain.client import ChainClient
from rwa_deployer.infrastructure.blockchain.contracts import PACKAGED_ABI_DIR, ArtifactLoader
from rwa_deployer.infrastructure.blockchain.signer import Signer, SignerContext

SIGNER_ADDRESS = "0x1111111111111111111111111111111111111111"
TOKEN_ADDRESS = "0x2222222222222222222222222222222222222222"
FACTORY_ADDRESS = "0x3333333333333333333333333333333333333333"
RECIPIENT_ADDRESS = "0x4444444444444444444444444444444444444444"
DEPLOYED_ADDRESS = "0x5555555555555555555555555555555555555555"
TX_HASH = "0x" + "ab" * 32

# Arbitrary init code standing in for compiled bytecode
TEST_BYTECODE = "0x6080604052348015600f57600080fd5b50603f80601d6000396000f3fe"


def selector(signature: str) -> str:
    return Web3.keccak(text=signature)[:4].hex()


def address_topic(address: str) -> str:
    return Web3.to_hex(encode(["address"], [address]))


def event_topic(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature))


def token_deployed_log(
    factory: str = FACTORY_ADDRESS,
    token: str = DEPLOYED_ADDRESS,
    deployer: str = SIGNER_ADDRESS,
    name: str = "Test",
    symbol: str = "TST",
    category: str = "real-estate",
    log_index: int = 0,
) -> dict[str, Any]:
    """Raw TokenDeployed log as it appears in a receipt."""
    return {
        "address": factory,
        "topics": [
            event_topic("TokenDeployed(address,address,string,string,string)"),
            address_topic(token),
            address_topic(deployer),
        ],
        "data": Web3.to_hex(encode(["string", "string", "string"], [name, symbol, category])),
        "logIndex": log_index,
    }


def transfer_log(
    token: str = TOKEN_ADDRESS,
    sender: str = SIGNER_ADDRESS,
    recipient: str = RECIPIENT_ADDRESS,
    value: int = 1000,
    log_index: int = 0,
) -> dict[str, Any]:
    """Raw ERC-20 Transfer log."""
    return {
        "address": token,
        "topics": [
            event_topic("Transfer(address,address,uint256)"),
            address_topic(sender),
            address_topic(recipient),
        ],
        "data": Web3.to_hex(encode(["uint256"], [value])),
        "logIndex": log_index,
    }


def make_receipt(
    status: int = 1,
    block_number: int = 100,
    logs: list[dict] | None = None,
    contract_address: str | None = None,
    tx_hash: str = TX_HASH,
) -> dict[str, Any]:
    return {
        "transactionHash": tx_hash,
        "status": status,
        "blockNumber": block_number,
        "logs": logs or [],
        "contractAddress": contract_address,
    }


class FakeChainClient(ChainClient):
    """In-memory chain client recording every RPC call."""

    def __init__(self, block_number: int = 100):
        self.block_number = block_number
        self.block_numbers: list[int] = []
        self.receipts: dict[str, dict[str, Any]] = {}
        self.call_results: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.sent: list[bytes] = []

    def set_call_result(self, signature: str, types: list[str], values: list[Any]) -> None:
        """Answer eth_call for ``signature`` with ABI-encoded ``values``."""
        self.call_results[selector(signature)] = encode(types, values)

    async def get_block_number(self) -> int:
        self.calls.append("get_block_number")
        if self.block_numbers:
            self.block_number = self.block_numbers.pop(0)
        return self.block_number

    async def eth_call(self, transaction, block_identifier="latest") -> bytes:
        self.calls.append("eth_call")
        data = bytes(HexBytes(transaction["data"]))
        result = self.call_results.get(data[:4].hex())
        if result is None:
            raise ContractLogicError("execution reverted")
        return result

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        self.calls.append("get_transaction_receipt")
        return self.receipts.get(tx_hash)

    async def get_transaction_count(self, address: str) -> int:
        self.calls.append("get_transaction_count")
        return 7

    async def estimate_gas(self, transaction) -> int:
        self.calls.append("estimate_gas")
        return 100_000

    async def get_gas_price(self) -> int:
        self.calls.append("get_gas_price")
        return 10_000_000_000

    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        self.calls.append("send_raw_transaction")
        self.sent.append(signed_tx)
        return TX_HASH


class FakeSigner(Signer):
    """Signer that records transactions and returns a fixed hash."""

    def __init__(self, tx_hash: str = TX_HASH, error: Exception | None = None):
        self.tx_hash = tx_hash
        self.error = error
        self.sent: list[dict[str, Any]] = []

    @property
    def address(self) -> str:
        return SIGNER_ADDRESS

    async def send_transaction(self, transaction) -> str:
        if self.error:
            raise self.error
        self.sent.append(dict(transaction))
        return self.tx_hash


@pytest.fixture
def chain_client():
    """Fake chain client with no receipts or call results."""
    return FakeChainClient()


@pytest.fixture
def fake_signer():
    return FakeSigner()


@pytest.fixture
def signer_context(chain_client, fake_signer):
    """Connected signer context on Sepolia."""
    return SignerContext(client=chain_client, signer=fake_signer, chain_id=11155111)


@pytest.fixture
def artifact_loader(tmp_path):
    """Packaged ABIs overridden with test bytecode for every contract."""
    for name in ("RWAToken", "RWAFactory", "TestUSDT"):
        packaged = json.loads((PACKAGED_ABI_DIR / f"{name}.json").read_text())
        packaged["bytecode"] = TEST_BYTECODE
        (tmp_path / f"{name}.json").write_text(json.dumps(packaged))
    return ArtifactLoader(directories=[PACKAGED_ABI_DIR, tmp_path])


@pytest.fixture
def chain_registry():
    return ChainRegistry(factory_addresses={11155111: FACTORY_ADDRESS})


@pytest.fixture(scope="session")
def app():
    """Create FastAPI application for testing."""
    from rwa_deployer.main import create_app

    return create_app()


@pytest.fixture
def client(app):
    """Create test client."""
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def settings():
    """Create settings instance for testing."""
    from rwa_deployer.core.config import Settings

    return Settings(environment="testing")
