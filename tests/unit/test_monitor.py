"""Tests for the confirmation monitor."""

import asyncio

import pytest

from conftest import TX_HASH, FakeChainClient, make_receipt
from rwa_deployer.core.exceptions import NetworkError
from rwa_deployer.services.deployment.monitor import ConfirmationMonitor, MonitorHandle
from rwa_deployer.services.deployment.schemas import ConfirmationState, ConfirmationStatus


def make_monitor(client: FakeChainClient, **kwargs) -> ConfirmationMonitor:
    options = {
        "poll_interval": 0.001,
        "receipt_timeout": 0.1,
        "receipt_poll_latency": 0.005,
        "max_polls": 100,
    }
    options.update(kwargs)
    return ConfirmationMonitor(client, **options)


class FlakyClient(FakeChainClient):
    """Client whose block height reads fail a number of times first."""

    def __init__(self, failures: int, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    async def get_block_number(self) -> int:
        if self.failures:
            self.failures -= 1
            self.calls.append("get_block_number")
            raise NetworkError("All RPCs failed")
        return await super().get_block_number()


class TestConfirmationMonitor:
    """Tests for ConfirmationMonitor.monitor."""

    @pytest.mark.asyncio
    async def test_reaches_target_depth(self):
        """Test depth is reported until the target and polling stops there."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt(block_number=100)
        client.block_numbers = [100, 101, 103, 111, 115]
        updates: list[ConfirmationStatus] = []

        confirmed = await make_monitor(client).monitor(TX_HASH, updates.append)

        assert confirmed is True
        assert updates[0].state == ConfirmationState.PENDING
        assert [u.depth for u in updates[1:]] == [1, 2, 4, 12]
        assert all(u.state == ConfirmationState.CONFIRMED for u in updates[1:])
        # the 115 height is never requested
        assert client.calls.count("get_block_number") == 4

    @pytest.mark.asyncio
    async def test_depth_never_decreases(self):
        """Test a lagging node's lower height does not lower the depth."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt(block_number=100)
        client.block_numbers = [102, 99, 101, 104]
        updates: list[ConfirmationStatus] = []

        await make_monitor(client).monitor(TX_HASH, updates.append, target_depth=5)

        depths = [u.depth for u in updates[1:]]
        assert depths == sorted(depths)
        assert depths == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_target_depth_one(self):
        """Test the inclusion block alone satisfies a target of one."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt()
        updates: list[ConfirmationStatus] = []

        confirmed = await make_monitor(client).monitor(TX_HASH, updates.append, target_depth=1)

        assert confirmed is True
        assert [u.state for u in updates] == [
            ConfirmationState.PENDING,
            ConfirmationState.CONFIRMED,
        ]
        assert "get_block_number" not in client.calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target_depth", [0, -3])
    async def test_target_depth_below_one_rejected(self, target_depth):
        """Test an explicit target below one is refused instead of defaulted."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt()

        with pytest.raises(ValueError, match="target_depth"):
            await make_monitor(client).monitor(TX_HASH, target_depth=target_depth)
        assert client.calls == []

    def test_explicit_zero_settings_kept(self):
        """Test zero constructor values are not replaced by settings."""
        monitor = make_monitor(FakeChainClient(), max_polls=0, receipt_timeout=0)

        assert monitor.max_polls == 0
        assert monitor.receipt_timeout == 0

    @pytest.mark.asyncio
    async def test_zero_poll_budget(self):
        """Test a zero poll budget stops right after inclusion."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt()

        confirmed = await make_monitor(client, max_polls=0).monitor(TX_HASH, target_depth=12)

        assert confirmed is True
        assert "get_block_number" not in client.calls

    @pytest.mark.asyncio
    async def test_failed_receipt_stops(self):
        """Test a reverted transaction is reported failed without polling."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt(status=0)
        updates: list[ConfirmationStatus] = []

        confirmed = await make_monitor(client).monitor(TX_HASH, updates.append)

        assert confirmed is False
        assert [u.state for u in updates] == [
            ConfirmationState.PENDING,
            ConfirmationState.FAILED,
        ]
        assert "get_block_number" not in client.calls

    @pytest.mark.asyncio
    async def test_no_receipt_fails(self):
        """Test an unresolvable receipt wait is reported failed, not raised."""
        client = FakeChainClient()
        updates: list[ConfirmationStatus] = []

        confirmed = await make_monitor(client, receipt_timeout=0.03).monitor(
            TX_HASH, updates.append
        )

        assert confirmed is False
        assert updates[-1].state == ConfirmationState.FAILED

    @pytest.mark.asyncio
    async def test_transient_poll_errors_retried(self):
        """Test height read failures do not end monitoring."""
        client = FlakyClient(failures=2)
        client.receipts[TX_HASH] = make_receipt(block_number=100)
        client.block_numbers = [102]
        updates: list[ConfirmationStatus] = []

        confirmed = await make_monitor(client).monitor(TX_HASH, updates.append, target_depth=3)

        assert confirmed is True
        assert updates[-1].depth == 3

    @pytest.mark.asyncio
    async def test_poll_budget_bounds_loop(self):
        """Test the loop stops after max_polls when the chain stalls."""
        client = FakeChainClient(block_number=100)
        client.receipts[TX_HASH] = make_receipt(block_number=100)

        confirmed = await make_monitor(client, max_polls=5).monitor(TX_HASH, target_depth=12)

        assert confirmed is True
        assert client.calls.count("get_block_number") == 5

    @pytest.mark.asyncio
    async def test_cancel_event_stops_polling(self):
        """Test a set cancel event stops the loop before the next poll."""
        client = FakeChainClient(block_number=100)
        client.receipts[TX_HASH] = make_receipt(block_number=100)
        cancel = asyncio.Event()

        def on_update(status: ConfirmationStatus) -> None:
            if status.depth == 1:
                cancel.set()

        confirmed = await make_monitor(client).monitor(
            TX_HASH, on_update, target_depth=12, cancel_event=cancel
        )

        assert confirmed is True
        assert "get_block_number" not in client.calls

    @pytest.mark.asyncio
    async def test_callback_errors_isolated(self):
        """Test a raising callback does not stop monitoring."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt(block_number=100)
        client.block_numbers = [101]

        def broken(status):
            raise RuntimeError("closed")

        assert await make_monitor(client).monitor(TX_HASH, broken, target_depth=2) is True


class TestMonitorHandle:
    """Tests for background monitoring."""

    @pytest.mark.asyncio
    async def test_start_and_wait(self):
        """Test start runs the monitor as a task."""
        client = FakeChainClient()
        client.receipts[TX_HASH] = make_receipt(block_number=100)
        client.block_numbers = [101, 102]
        updates: list[ConfirmationStatus] = []

        handle = make_monitor(client).start(TX_HASH, updates.append, target_depth=3)

        assert isinstance(handle, MonitorHandle)
        assert await handle.wait() is True
        assert handle.done
        assert updates[-1].depth == 3

    @pytest.mark.asyncio
    async def test_cancel_during_sleep(self):
        """Test cancel wakes the loop from its interval sleep."""
        client = FakeChainClient(block_number=100)
        client.receipts[TX_HASH] = make_receipt(block_number=100)

        handle = make_monitor(client, poll_interval=60).start(TX_HASH, target_depth=12)
        await asyncio.sleep(0.05)
        handle.cancel()

        assert await asyncio.wait_for(handle.wait(), timeout=1) is True
        assert client.calls.count("get_block_number") == 1

    @pytest.mark.asyncio
    async def test_cancel_before_inclusion(self):
        """Test cancelling while waiting for the receipt returns False."""
        client = FakeChainClient()
        updates: list[ConfirmationStatus] = []

        handle = make_monitor(client, receipt_timeout=60).start(TX_HASH, updates.append)
        await asyncio.sleep(0.02)
        handle.cancel()

        assert await asyncio.wait_for(handle.wait(), timeout=1) is False
        assert [u.state for u in updates] == [ConfirmationState.PENDING]
