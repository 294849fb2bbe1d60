"""Static chain registry: explorer URLs and factory deployments per chain."""

from dataclasses import dataclass, replace
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from rwa_deployer.core.config import get_settings

DEFAULT_EXPLORER_URL = "https://etherscan.io"


@dataclass(frozen=True)
class ChainInfo:
    """Registry entry for a supported chain."""

    chain_id: int
    name: str
    explorer_base_url: str
    factory_address: str | None = None


BUILTIN_CHAINS: tuple[ChainInfo, ...] = (
    ChainInfo(1, "Ethereum Mainnet", "https://etherscan.io"),
    ChainInfo(11155111, "Sepolia", "https://sepolia.etherscan.io"),
    ChainInfo(137, "Polygon", "https://polygonscan.com"),
    ChainInfo(56, "BNB Smart Chain", "https://bscscan.com"),
)


class ChainRegistry:
    """Read-only lookup from chain ID to chain metadata.

    Unknown chain IDs resolve to the default explorer and no factory.
    """

    def __init__(
        self,
        chains: tuple[ChainInfo, ...] = BUILTIN_CHAINS,
        factory_addresses: Mapping[int, str] | None = None,
        default_explorer_url: str = DEFAULT_EXPLORER_URL,
    ):
        factory_addresses = factory_addresses or {}
        self._chains: Mapping[int, ChainInfo] = MappingProxyType(
            {
                chain.chain_id: replace(
                    chain,
                    factory_address=factory_addresses.get(
                        chain.chain_id, chain.factory_address
                    ),
                )
                for chain in chains
            }
        )
        self.default_explorer_url = default_explorer_url

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._chains

    @property
    def chains(self) -> list[ChainInfo]:
        return list(self._chains.values())

    def get(self, chain_id: int) -> ChainInfo | None:
        return self._chains.get(chain_id)

    def explorer_base_url(self, chain_id: int) -> str:
        chain = self._chains.get(chain_id)
        return chain.explorer_base_url if chain else self.default_explorer_url

    def factory_address(self, chain_id: int) -> str | None:
        chain = self._chains.get(chain_id)
        return chain.factory_address if chain else None

    def explorer_tx_url(self, chain_id: int, tx_hash: str) -> str:
        return f"{self.explorer_base_url(chain_id)}/tx/{tx_hash}"

    def explorer_address_url(self, chain_id: int, address: str) -> str:
        return f"{self.explorer_base_url(chain_id)}/address/{address}"


@lru_cache(maxsize=1)
def get_chain_registry() -> ChainRegistry:
    """Get the registry built from configured factory addresses."""
    return ChainRegistry(factory_addresses=get_settings().factory_addresses)
