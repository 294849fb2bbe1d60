"""Decoding of receipt logs into named contract events.

``EventParser`` is a pure decoder: no I/O and no state beyond the topic map
built at construction. Receipts routinely carry logs from unrelated
contracts, so a log that matches nothing, or matches a topic but fails to
decode, is skipped rather than raised.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from eth_abi import decode
from hexbytes import HexBytes
from web3 import Web3

from rwa_deployer.core.exceptions import EventNotFoundError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Supported event types."""

    # =========================================================================
    # RWAFactory Events
    # =========================================================================
    TOKEN_DEPLOYED = "TokenDeployed"
    TOKEN_VERIFIED = "TokenVerified"
    FEE_UPDATED = "FeeUpdated"

    # =========================================================================
    # Token Events (RWAToken, TestUSDT)
    # =========================================================================
    TRANSFER = "Transfer"
    ASSET_VERIFIED = "AssetVerified"
    ASSET_UPDATED = "AssetUpdated"
    MINT = "Mint"


@dataclass(frozen=True)
class EventParam:
    """One event parameter in declaration order."""

    name: str
    type: str
    indexed: bool = False

    @property
    def is_dynamic(self) -> bool:
        # Indexed dynamic values are stored as their keccak hash only
        return (
            self.type in ("string", "bytes")
            or self.type.endswith("]")
            or self.type.startswith("(")
        )


EVENT_SIGNATURES: dict[EventType, tuple[EventParam, ...]] = {
    # TokenDeployed(address indexed tokenAddress, address indexed deployer,
    #               string name, string symbol, string category)
    EventType.TOKEN_DEPLOYED: (
        EventParam("token_address", "address", indexed=True),
        EventParam("deployer", "address", indexed=True),
        EventParam("name", "string"),
        EventParam("symbol", "string"),
        EventParam("category", "string"),
    ),
    EventType.TOKEN_VERIFIED: (
        EventParam("token_address", "address", indexed=True),
        EventParam("verifier", "address", indexed=True),
    ),
    EventType.FEE_UPDATED: (
        EventParam("old_fee", "uint256"),
        EventParam("new_fee", "uint256"),
    ),
    EventType.TRANSFER: (
        EventParam("from", "address", indexed=True),
        EventParam("to", "address", indexed=True),
        EventParam("value", "uint256"),
    ),
    EventType.ASSET_VERIFIED: (EventParam("verifier", "address", indexed=True),),
    EventType.ASSET_UPDATED: (
        EventParam("new_asset_type", "string"),
        EventParam("new_asset_value", "uint256"),
    ),
    EventType.MINT: (
        EventParam("to", "address", indexed=True),
        EventParam("amount", "uint256"),
    ),
}


def event_signature(name: str, params: Iterable[EventParam]) -> str:
    """Canonical signature text, e.g. ``Transfer(address,address,uint256)``."""
    return f"{name}({','.join(p.type for p in params)})"


@dataclass
class DecodedEvent:
    """Event decoded from a single receipt log."""

    name: str
    args: tuple[Any, ...]
    named_args: dict[str, Any] = field(default_factory=dict)
    address: str = ""
    log_index: int = 0


class EventParser:
    """Parses receipt logs against a table of known event signatures."""

    def __init__(
        self, signatures: Mapping[EventType | str, tuple[EventParam, ...]] | None = None
    ):
        """Initialize event parser.

        Args:
            signatures: Event name -> ordered parameters (defaults to
                        EVENT_SIGNATURES)
        """
        self.signatures = dict(signatures if signatures is not None else EVENT_SIGNATURES)
        self._build_topic_map()

    def _build_topic_map(self) -> None:
        """Build mapping from topic0 hash to event name."""
        self.topic_to_event: dict[bytes, str] = {}
        for event_type, params in self.signatures.items():
            name = event_type.value if isinstance(event_type, EventType) else event_type
            topic = Web3.keccak(text=event_signature(name, params))
            self.topic_to_event[bytes(topic)] = name
        self._params_by_name = {
            (k.value if isinstance(k, EventType) else k): v
            for k, v in self.signatures.items()
        }

    def parse_log(self, log: Mapping[str, Any]) -> DecodedEvent | None:
        """Parse a single log entry.

        Args:
            log: Raw log entry from a transaction receipt

        Returns:
            DecodedEvent or None if the log is unknown or malformed
        """
        try:
            topics = [HexBytes(t) for t in log.get("topics") or []]
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping log with unreadable topics: {e}")
            return None

        if not topics:
            return None

        name = self.topic_to_event.get(bytes(topics[0]))
        if not name:
            logger.debug(f"Unknown event topic: {topics[0].hex()}")
            return None

        try:
            named_args = self._decode_event_args(self._params_by_name[name], topics, log)
        except Exception as e:
            logger.debug(f"Failed to decode {name} log: {e}")
            return None

        address = log.get("address", "")
        if hasattr(address, "lower"):
            address = address.lower()

        return DecodedEvent(
            name=name,
            args=tuple(named_args.values()),
            named_args=named_args,
            address=address,
            log_index=log.get("logIndex", 0) or 0,
        )

    def _decode_event_args(
        self,
        params: tuple[EventParam, ...],
        topics: list[HexBytes],
        log: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Decode indexed args from topics and the rest from data.

        Raises:
            ValueError: If the topic count does not fit the signature (e.g. an
                ERC-721 Transfer matched against the ERC-20 signature)
        """
        indexed = [p for p in params if p.indexed]
        if len(topics) != len(indexed) + 1:
            raise ValueError(
                f"expected {len(indexed) + 1} topics, got {len(topics)}"
            )

        data = HexBytes(log.get("data") or b"")
        non_indexed = [p for p in params if not p.indexed]
        data_values = iter(decode([p.type for p in non_indexed], data) if non_indexed else ())
        topic_values = iter(topics[1:])

        args: dict[str, Any] = {}
        for param in params:
            if param.indexed:
                topic = next(topic_values)
                args[param.name] = (
                    Web3.to_hex(topic) if param.is_dynamic else decode([param.type], topic)[0]
                )
            else:
                args[param.name] = next(data_values)
        return args

    def parse_logs(self, logs: Iterable[Mapping[str, Any]]) -> list[DecodedEvent]:
        """Parse multiple logs, dropping those that do not decode."""
        events = []
        for log in logs:
            event = self.parse_log(log)
            if event:
                events.append(event)
        return events

    def find_event(
        self, logs: Iterable[Mapping[str, Any]], name: EventType | str
    ) -> DecodedEvent | None:
        """Return the first log that decodes as the requested event."""
        wanted = name.value if isinstance(name, EventType) else name
        for log in logs:
            event = self.parse_log(log)
            if event and event.name == wanted:
                return event
        return None

    def require_event(
        self, logs: Iterable[Mapping[str, Any]], name: EventType | str
    ) -> DecodedEvent:
        """Like find_event, but raise EventNotFoundError when absent."""
        event = self.find_event(logs, name)
        if event is None:
            wanted = name.value if isinstance(name, EventType) else name
            raise EventNotFoundError(f"event not found: {wanted}")
        return event
