"""Tests for receipt log decoding."""

import random

import pytest
from eth_abi import encode
from web3 import Web3

from conftest import (
    DEPLOYED_ADDRESS,
    FACTORY_ADDRESS,
    RECIPIENT_ADDRESS,
    SIGNER_ADDRESS,
    TOKEN_ADDRESS,
    address_topic,
    event_topic,
    token_deployed_log,
    transfer_log,
)
from rwa_deployer.core.exceptions import EventNotFoundError
from rwa_deployer.infrastructure.blockchain.events import (
    EVENT_SIGNATURES,
    EventParam,
    EventParser,
    EventType,
    event_signature,
)


def unrelated_log(i: int) -> dict:
    """Log from some other contract with an unknown topic."""
    return {
        "address": "0x" + f"{i + 0x60:02x}" * 20,
        "topics": [Web3.to_hex(Web3.keccak(text=f"Unrelated{i}(uint256)"))],
        "data": Web3.to_hex(encode(["uint256"], [i])),
        "logIndex": i,
    }


class TestEventSignatures:
    """Tests for the event signature table."""

    def test_token_deployed_signature(self):
        """Test TokenDeployed canonical signature."""
        params = EVENT_SIGNATURES[EventType.TOKEN_DEPLOYED]
        assert event_signature("TokenDeployed", params) == (
            "TokenDeployed(address,address,string,string,string)"
        )

    def test_transfer_signature(self):
        """Test ERC-20 Transfer canonical signature."""
        params = EVENT_SIGNATURES[EventType.TRANSFER]
        assert event_signature("Transfer", params) == "Transfer(address,address,uint256)"

    def test_dynamic_params(self):
        """Test dynamic type detection."""
        assert EventParam("x", "string").is_dynamic
        assert EventParam("x", "bytes").is_dynamic
        assert EventParam("x", "uint256[]").is_dynamic
        assert not EventParam("x", "address").is_dynamic
        assert not EventParam("x", "bytes32").is_dynamic

    def test_topic_map_covers_all_events(self):
        """Test parser registers a topic for every event."""
        parser = EventParser()
        assert set(parser.topic_to_event.values()) == {e.value for e in EventType}


class TestEventParser:
    """Tests for EventParser."""

    @pytest.fixture
    def parser(self):
        return EventParser()

    def test_parse_token_deployed(self, parser):
        """Test decoding of indexed and non-indexed arguments."""
        event = parser.parse_log(token_deployed_log(log_index=3))

        assert event.name == "TokenDeployed"
        assert event.named_args["token_address"] == DEPLOYED_ADDRESS
        assert event.named_args["deployer"] == SIGNER_ADDRESS
        assert event.named_args["name"] == "Test"
        assert event.named_args["symbol"] == "TST"
        assert event.named_args["category"] == "real-estate"
        assert event.args == (DEPLOYED_ADDRESS, SIGNER_ADDRESS, "Test", "TST", "real-estate")
        assert event.address == FACTORY_ADDRESS.lower()
        assert event.log_index == 3

    def test_parse_transfer(self, parser):
        """Test ERC-20 Transfer decoding."""
        event = parser.parse_log(transfer_log(value=12345))

        assert event.name == "Transfer"
        assert event.named_args == {
            "from": SIGNER_ADDRESS,
            "to": RECIPIENT_ADDRESS,
            "value": 12345,
        }

    def test_topics_as_bytes(self, parser):
        """Test topics given as raw bytes decode the same."""
        log = token_deployed_log()
        log["topics"] = [bytes.fromhex(t[2:]) for t in log["topics"]]

        event = parser.parse_log(log)

        assert event.named_args["token_address"] == DEPLOYED_ADDRESS

    def test_unknown_topic_ignored(self, parser):
        """Test logs with unknown topics are dropped."""
        assert parser.parse_log(unrelated_log(1)) is None

    def test_log_without_topics_ignored(self, parser):
        """Test anonymous logs are dropped."""
        assert parser.parse_log({"address": TOKEN_ADDRESS, "topics": [], "data": "0x"}) is None

    def test_erc721_transfer_ignored(self, parser):
        """Test a Transfer with the wrong topic count is dropped."""
        log = {
            "address": TOKEN_ADDRESS,
            "topics": [
                event_topic("Transfer(address,address,uint256)"),
                address_topic(SIGNER_ADDRESS),
                address_topic(RECIPIENT_ADDRESS),
                Web3.to_hex(encode(["uint256"], [7])),
            ],
            "data": "0x",
        }
        assert parser.parse_log(log) is None

    def test_malformed_data_ignored(self, parser):
        """Test a known topic with undecodable data is dropped."""
        log = token_deployed_log()
        log["data"] = "0x1234"
        assert parser.parse_log(log) is None

    def test_indexed_dynamic_kept_as_hash(self):
        """Test indexed strings are returned as their topic hash."""
        parser = EventParser({"Tagged": (EventParam("tag", "string", indexed=True),)})
        tag_hash = Web3.to_hex(Web3.keccak(text="gold"))
        log = {
            "address": TOKEN_ADDRESS,
            "topics": [event_topic("Tagged(string)"), tag_hash],
            "data": "0x",
        }

        event = parser.parse_log(log)

        assert event.named_args["tag"] == tag_hash

    def test_parse_logs_drops_unmatched(self, parser):
        """Test parse_logs keeps only decodable events in order."""
        logs = [unrelated_log(0), transfer_log(log_index=1), unrelated_log(2), token_deployed_log()]

        events = parser.parse_logs(logs)

        assert [e.name for e in events] == ["Transfer", "TokenDeployed"]


class TestFindEvent:
    """Tests for locating an event among unrelated logs."""

    @pytest.fixture
    def parser(self):
        return EventParser()

    @pytest.mark.parametrize("seed", range(5))
    @pytest.mark.parametrize("unrelated", [0, 1, 4, 10])
    def test_finds_event_regardless_of_position(self, parser, seed, unrelated):
        """Test the match is found among N unrelated logs in any order."""
        logs = [unrelated_log(i) for i in range(unrelated)]
        logs += [transfer_log(log_index=50 + i) for i in range(2)]
        logs.append(token_deployed_log(token=DEPLOYED_ADDRESS))
        random.Random(seed).shuffle(logs)

        event = parser.find_event(logs, EventType.TOKEN_DEPLOYED)

        assert event.named_args["token_address"] == DEPLOYED_ADDRESS
        assert event.args[2:] == ("Test", "TST", "real-estate")

    def test_find_by_name_string(self, parser):
        """Test events can be requested by plain name."""
        event = parser.find_event([transfer_log()], "Transfer")
        assert event.name == "Transfer"

    def test_find_missing_returns_none(self, parser):
        """Test find_event returns None when absent."""
        assert parser.find_event([transfer_log(), unrelated_log(3)], EventType.TOKEN_DEPLOYED) is None

    def test_require_missing_raises(self, parser):
        """Test require_event raises EventNotFoundError when absent."""
        with pytest.raises(EventNotFoundError, match="event not found: TokenDeployed"):
            parser.require_event([transfer_log()], EventType.TOKEN_DEPLOYED)
